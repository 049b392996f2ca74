from __future__ import annotations

from typing import Tuple, Optional
from datetime import date

from flask import Blueprint, request, jsonify, abort, g, current_app
from marshmallow import ValidationError

from models.transaction import Transaction
from models.schemas.common import normalize_kind
from models.schemas.transaction import (
    TransactionCreateSchema,
    TransactionUpdateSchema,
    TransactionOutSchema,
)
from utils.decorators import access_token_required

bp = Blueprint("transactions", __name__)

tx_create_schema = TransactionCreateSchema()
tx_update_schema = TransactionUpdateSchema()
tx_out_schema = TransactionOutSchema()
tx_list_out_schema = TransactionOutSchema(many=True)

MAX_LIMIT = 100

SORT_COLUMNS = {
    "occurred_on": Transaction.occurred_on,
    "amount": Transaction.amount,
    "created_at": Transaction.created_at,
}


def _session():
    return current_app.extensions["storage"].get_session()


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
        if page < 1:
            page = 1
        if limit < 1:
            limit = 1
        if limit > MAX_LIMIT:
            limit = MAX_LIMIT
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


def parse_sort(default: str = "-occurred_on"):
    sort_param = request.args.get("sort", default)
    fields = [s.strip() for s in sort_param.split(",") if s.strip()]
    order_by = []
    for f in fields:
        desc = f.startswith("-")
        key = f[1:] if desc else f
        col = SORT_COLUMNS.get(key)
        if col is None:
            abort(400, description=f"Unsupported sort field: {key}")
        order_by.append(col.desc() if desc else col.asc())
    # Stable ordering for equal dates
    order_by.append(Transaction.id.asc())
    return order_by


def parse_date_param(name: str) -> Optional[date]:
    val = request.args.get(name)
    if not val:
        return None
    try:
        return date.fromisoformat(val)
    except ValueError:
        abort(400, description=f"Invalid date format for {name}. Use YYYY-MM-DD")


def get_owned_or_404(tx_id: str) -> Transaction:
    """Records of other users are indistinguishable from missing ones."""
    tx = (
        _session()
        .query(Transaction)
        .filter(Transaction.id == tx_id, Transaction.user_id == g.current_user_id)
        .first()
    )
    if not tx:
        abort(404, description="Transaction not found")
    return tx


@bp.post("/transactions")
@access_token_required()
def create_transaction():
    """
    Record an expense or income for the current user
    ---
    tags:
      - Transactions
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            amount: { type: number, example: 12.5 }
            kind:
              type: string
              enum: [EXPENSE, INCOME]
            category: { type: string }
            description: { type: string, maxLength: 255 }
            occurredOn: { type: string, format: date }
    responses:
      201:
        description: Created
      400:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = tx_create_schema.load(payload)

    tx = Transaction(
        user_id=g.current_user_id,
        amount=data["amount"],
        kind=normalize_kind(data["kind"]),
        category=data["category"],
        description=data.get("description", ""),
        occurred_on=data["occurred_on"],
    )
    storage = current_app.extensions["storage"]
    storage.new(tx)
    storage.save()

    return jsonify({"data": tx_out_schema.dump(tx)}), 201


@bp.get("/transactions")
@access_token_required()
def list_transactions():
    """
    List the current user's transactions with pagination, sorting, and filters
    ---
    tags:
      - Transactions
    security:
      - Bearer: []
    parameters:
      - in: query
        name: page
        type: integer
        default: 1
      - in: query
        name: limit
        type: integer
        default: 20
      - in: query
        name: sort
        type: string
        description: "Allowed: occurred_on, amount, created_at (prefix with - for descending)"
        default: "-occurred_on"
      - in: query
        name: kind
        type: string
        enum: [EXPENSE, INCOME]
      - in: query
        name: category
        type: string
      - in: query
        name: from
        type: string
        format: date
        description: "YYYY-MM-DD (inclusive)"
      - in: query
        name: to
        type: string
        format: date
        description: "YYYY-MM-DD (inclusive)"
    responses:
      200:
        description: List of transactions
    """
    page, limit = parse_pagination()
    order_by = parse_sort()

    query = _session().query(Transaction).filter(Transaction.user_id == g.current_user_id)

    kind_str = request.args.get("kind")
    if kind_str:
        try:
            query = query.filter(Transaction.kind == normalize_kind(kind_str))
        except ValidationError as ve:
            abort(400, description=str(ve.messages[0] if isinstance(ve.messages, list) else ve.messages))

    category = request.args.get("category")
    if category:
        query = query.filter(Transaction.category == category)

    date_from = parse_date_param("from")
    date_to = parse_date_param("to")
    if date_from:
        query = query.filter(Transaction.occurred_on >= date_from)
    if date_to:
        query = query.filter(Transaction.occurred_on <= date_to)

    total = query.count()
    rows = (
        query.order_by(*order_by)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return jsonify(
        {
            "data": tx_list_out_schema.dump(rows),
            "meta": {
                "page": page,
                "limit": limit,
                "total": total,
                "sort": request.args.get("sort", "-occurred_on"),
            },
        }
    )


@bp.get("/transactions/<tx_id>")
@access_token_required()
def get_transaction(tx_id: str):
    """
    Get a single transaction owned by the current user
    ---
    tags:
      - Transactions
    security:
      - Bearer: []
    parameters:
      - in: path
        name: tx_id
        type: string
        required: true
    responses:
      200:
        description: Transaction found
      404:
        description: Not found
    """
    return jsonify({"data": tx_out_schema.dump(get_owned_or_404(tx_id))})


@bp.put("/transactions/<tx_id>")
@access_token_required()
def update_transaction(tx_id: str):
    """
    Update a transaction owned by the current user
    ---
    tags:
      - Transactions
    security:
      - Bearer: []
    parameters:
      - in: path
        name: tx_id
        type: string
        required: true
    responses:
      200:
        description: Updated
      404:
        description: Not found
    """
    tx = get_owned_or_404(tx_id)
    payload = request.get_json(silent=True) or {}
    data = tx_update_schema.load(payload)

    if "kind" in data:
        data["kind"] = normalize_kind(data["kind"])
    for field in ("amount", "kind", "category", "description", "occurred_on"):
        if field in data:
            setattr(tx, field, data[field])

    storage = current_app.extensions["storage"]
    storage.new(tx)
    storage.save()
    return jsonify({"data": tx_out_schema.dump(tx)})


@bp.delete("/transactions/<tx_id>")
@access_token_required()
def delete_transaction(tx_id: str):
    """
    Delete a transaction owned by the current user
    ---
    tags:
      - Transactions
    security:
      - Bearer: []
    parameters:
      - in: path
        name: tx_id
        type: string
        required: true
    responses:
      204:
        description: Deleted
      404:
        description: Not found
    """
    tx = get_owned_or_404(tx_id)
    storage = current_app.extensions["storage"]
    storage.delete(tx)
    storage.save()
    return ("", 204)
