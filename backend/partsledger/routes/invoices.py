# Overview: Flask API routes for invoices; parses input and returns JSON responses.

# backend/partsledger/routes/invoices.py
"""
Invoice routes.

Every write goes through services.invoice_service, which owns the
transaction; these handlers only parse input and shape JSON. Typed errors
(ValidationError, NotFoundError, ConflictError, ...) propagate to the
app-level error handler.
"""
from flask import Blueprint, request, g

from ..decorators import require_auth, require_role
from ..services import invoice_service, numbering_service, reporting_service
from ..time_utils import parse_iso_date, today
from ..validation import (
    INVOICE_STATUSES,
    ValidationError,
    parse_id_list,
    parse_invoice_request,
    require_paise,
    to_decimal,
)

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _flag(name: str) -> bool:
    return request.args.get(name, "false").lower() == "true"


def _arg_date(name: str):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date")


@invoices_bp.get("")
@require_auth
def list_invoices():
    """
    Query params:
    - type: PURCHASE | SALE
    - status: DRAFT | SUBMITTED | PAID | CANCELLED
    - start / end: inclusive invoice-date range (YYYY-MM-DD)
    - q: invoice number substring
    - page / limit: pagination (default 1 / 50)
    """
    invoice_type = request.args.get("type")
    status = request.args.get("status")
    return invoice_service.list_invoices(
        invoice_type=invoice_type.upper() if invoice_type else None,
        status=status.upper() if status else None,
        start=_arg_date("start"),
        end=_arg_date("end"),
        q=request.args.get("q"),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("limit", 50, type=int),
    )


@invoices_bp.get("/next-number")
@require_auth
def next_number():
    """Preview only; the number is allocated for real when the invoice is created."""
    invoice_type = (request.args.get("type") or "").upper()
    invoice_date = _arg_date("date") or today()
    number = numbering_service.get_next_invoice_number(invoice_type, invoice_date)
    return {"invoice_number": number, "type": invoice_type}


@invoices_bp.get("/statistics")
@require_auth
def statistics():
    return reporting_service.invoice_statistics(request.args.get("start"), request.args.get("end"))


@invoices_bp.post("/bulk")
@require_auth
def bulk_fetch():
    ids = parse_id_list(request.get_json(silent=True))
    invoices = invoice_service.get_invoices(ids)
    return {"data": [inv.to_dict() for inv in invoices]}


@invoices_bp.post("/bulk-update-status")
@require_auth
@require_role("admin", "manager")
def bulk_update_status():
    payload = request.get_json(silent=True) or {}
    ids = parse_id_list(payload)
    status = str(payload.get("status") or "").upper()
    if status not in INVOICE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(INVOICE_STATUSES)}")
    return invoice_service.bulk_update_status(ids, status)


@invoices_bp.post("/bulk-delete")
@require_auth
def bulk_delete():
    ids = parse_id_list(request.get_json(silent=True))
    return invoice_service.bulk_delete(ids)


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice(invoice_id: int):
    return invoice_service.get_invoice(invoice_id).to_dict()


@invoices_bp.post("")
@require_auth
def create_invoice():
    request_obj = parse_invoice_request(request.get_json(silent=True))
    invoice = invoice_service.create_invoice(request_obj, actor_user_id=g.user_id)
    return invoice.to_dict(), 201


@invoices_bp.put("/<int:invoice_id>")
@require_auth
def update_invoice(invoice_id: int):
    """?allow_edit_submitted=true lets admins and managers edit SUBMITTED invoices."""
    allow_edit_submitted = _flag("allow_edit_submitted")
    if allow_edit_submitted and g.user_role not in ("admin", "manager"):
        return {"error": "Permission denied"}, 403

    request_obj = parse_invoice_request(request.get_json(silent=True))
    invoice = invoice_service.update_invoice(
        invoice_id,
        request_obj,
        allow_edit_submitted=allow_edit_submitted,
        actor_user_id=g.user_id,
    )
    return invoice.to_dict()


@invoices_bp.delete("/<int:invoice_id>")
@require_auth
def delete_invoice(invoice_id: int):
    """?force=true (admin only) deletes non-DRAFT invoices as well."""
    force = _flag("force")
    if force and g.user_role != "admin":
        return {"error": "Permission denied"}, 403

    invoice_service.delete_invoice(invoice_id, force=force)
    return {"message": "Invoice deleted successfully"}


@invoices_bp.patch("/<int:invoice_id>/status")
@require_auth
def change_status(invoice_id: int):
    payload = request.get_json(silent=True) or {}
    status = str(payload.get("status") or "").upper()
    if not status:
        raise ValidationError("status is required")
    return invoice_service.change_status(invoice_id, status).to_dict()


@invoices_bp.post("/<int:invoice_id>/payment")
@require_auth
def record_payment(invoice_id: int):
    """
    Body:
    - paid_amount: total paid so far (required, 0..total)
    - payment_date (YYYY-MM-DD), payment_method, payment_note: optional
    - on_credit: bool, marks an unpaid balance as ON_CREDIT
    """
    payload = request.get_json(silent=True) or {}
    if payload.get("paid_amount") is None:
        raise ValidationError("paid_amount is required")

    try:
        payment_date = parse_iso_date(payload.get("payment_date"))
    except ValueError:
        raise ValidationError("payment_date must be an ISO-8601 date")

    method = payload.get("payment_method")
    note = payload.get("payment_note")
    invoice = invoice_service.record_payment(
        invoice_id,
        paid_amount=require_paise(to_decimal(payload["paid_amount"], "paid_amount"), "paid_amount"),
        payment_date=payment_date,
        payment_method=str(method).strip()[:32] if method else None,
        payment_note=str(note).strip()[:255] if note else None,
        on_credit=bool(payload.get("on_credit")),
    )
    return invoice.to_dict()
