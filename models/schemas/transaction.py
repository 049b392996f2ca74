from marshmallow import Schema, fields, validate, validates, pre_load, ValidationError, EXCLUDE

from models.schemas.common import to_decimal_2, validate_not_future, normalize_kind


class TransactionCreateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    amount = fields.Decimal(required=True, places=2, as_string=False)
    kind = fields.String(required=True)
    category = fields.String(required=True, validate=validate.Length(min=1, max=64))
    description = fields.String(load_default="", validate=validate.Length(max=255))
    occurred_on = fields.Date(required=True, data_key="occurredOn")

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get("kind"), str):
            data = dict(data)
            data["kind"] = data["kind"].strip().upper()
        return data

    @validates("amount")
    def _validate_amount(self, value, **kwargs):
        if to_decimal_2(value) <= 0:
            raise ValidationError("amount must be greater than 0.")

    @validates("kind")
    def _validate_kind(self, value, **kwargs):
        normalize_kind(value)

    @validates("occurred_on")
    def _validate_date(self, value, **kwargs):
        validate_not_future(value)


class TransactionUpdateSchema(TransactionCreateSchema):
    """Same rules, every field optional."""
    amount = fields.Decimal(places=2, as_string=False)
    kind = fields.String()
    category = fields.String(validate=validate.Length(min=1, max=64))
    description = fields.String(validate=validate.Length(max=255))
    occurred_on = fields.Date(data_key="occurredOn")


class TransactionOutSchema(Schema):
    id = fields.String()
    amount = fields.Decimal(places=2, as_string=True)
    kind = fields.Function(lambda obj: getattr(obj.kind, "value", obj.kind))
    category = fields.String()
    description = fields.String()
    occurred_on = fields.Date(data_key="occurredOn")
    created_at = fields.DateTime(data_key="createdAt")
    updated_at = fields.DateTime(data_key="updatedAt")
