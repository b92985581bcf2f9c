# Overview: Flask API routes for stock; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_auth, require_role
from ..services import stock_ledger
from ..validation import ValidationError, to_int

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_auth
def list_stock():
    """
    Query params:
    - only_purchased: "true" to list only parts with at least one IN entry
    - search: part number / item name substring
    """
    only_purchased = request.args.get("only_purchased", "false").lower() == "true"
    rows = stock_ledger.list_stock(only_purchased=only_purchased, search=request.args.get("search"))
    return {"data": rows}


@stock_bp.get("/<int:part_id>")
@require_auth
def get_stock(part_id: int):
    return stock_ledger.get_stock(part_id)


@stock_bp.get("/<int:part_id>/transactions")
@require_auth
def part_transactions(part_id: int):
    limit = min(1000, max(1, request.args.get("limit", 200, type=int)))
    txs = stock_ledger.list_part_transactions(part_id, limit=limit)
    return {"data": [tx.to_dict() for tx in txs]}


@stock_bp.post("/<int:part_id>/adjust")
@require_auth
@require_role("admin", "manager")
def adjust_stock(part_id: int):
    """
    Body: {"quantity": <target stock>, "note": "..."}.

    Writes one corrective ledger entry for the difference.
    """
    payload = request.get_json(silent=True) or {}
    if payload.get("quantity") is None:
        raise ValidationError("quantity is required")

    note = payload.get("note")
    result = stock_ledger.adjust_stock(
        part_id=part_id,
        target_quantity=to_int(payload["quantity"], "quantity"),
        note=str(note).strip()[:255] if note else None,
        actor_user_id=g.user_id,
    )
    return result
