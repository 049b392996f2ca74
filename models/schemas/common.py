from datetime import date
from decimal import Decimal, InvalidOperation

from marshmallow import ValidationError

from models.transaction import TransactionKind


def normalize_kind(raw: str) -> TransactionKind:
    if raw is None:
        raise ValidationError("kind is required")
    try:
        return TransactionKind(str(raw).strip().upper())
    except ValueError:
        allowed = [k.value for k in TransactionKind]
        raise ValidationError(f"kind must be one of {allowed}")


def validate_not_future(d: date) -> None:
    if d and d > date.today():
        raise ValidationError("Date cannot be in the future.")


def to_decimal_2(value) -> Decimal:
    if value is None:
        return None
    try:
        d = Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValidationError("Invalid decimal.")
    if d.is_nan() or d.is_infinite():
        raise ValidationError("Invalid decimal.")
    return d.quantize(Decimal("0.01"))
