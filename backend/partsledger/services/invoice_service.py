# Overview: Service-layer operations for invoices; encapsulates business logic and database work.

"""
Invoice Lifecycle Manager

================================================================================
PURPOSE: Create, edit and delete PURCHASE / SALE invoices together with the
line items and stock ledger entries they imply, as single atomic units.
================================================================================

STATE MACHINE:
    DRAFT -> SUBMITTED -> PAID
    DRAFT | SUBMITTED -> CANCELLED

    DRAFT:     editable and deletable
    SUBMITTED: editable only with allow_edit_submitted, deletable only with force
    PAID / CANCELLED: terminal; deletable only with force

EFFECTS:
Every line item produces exactly one ledger entry (IN for PURCHASE, OUT for
SALE). Editing an invoice is an explicit two-phase operation inside one
transaction:
    1. retract: delete the invoice's ledger entries, then its line items
    2. apply:   insert the new line items, then one ledger entry per item
Deleting retracts and then removes the header. No ORM cascades are relied
on, so the ordering is visible here.

ATOMICITY:
Each public write runs through concurrency.run_with_retry: any error rolls
back the whole transaction. Cached read views are invalidated only after
the commit succeeds.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload, selectinload

from ..extensions import db
from ..models import Invoice, InvoiceItem, Part
from ..validation import (
    INVOICE_STATUSES,
    INVOICE_TYPES,
    ConflictError,
    InvalidStateError,
    InvoiceRequest,
    NotFoundError,
    TransientStorageError,
    ValidationError,
)
from . import cache_service
from .catalog_service import require_live_customer, require_live_part, require_live_supplier
from .concurrency import lock_for_update, run_with_retry
from .money import compute_invoice_totals, derive_payment_state, line_amount, quantize_money
from .numbering_service import allocate_invoice_number
from .stock_ledger import IN, OUT, assert_stock_available, record_movement, reverse_for_invoice

logger = logging.getLogger(__name__)

VALID_TRANSITIONS = {
    ("DRAFT", "SUBMITTED"),
    ("SUBMITTED", "PAID"),
    ("DRAFT", "CANCELLED"),
    ("SUBMITTED", "CANCELLED"),
}


def can_transition(from_status: str, to_status: str) -> bool:
    for status in (from_status, to_status):
        if status not in INVOICE_STATUSES:
            raise ValidationError(
                f"Invalid status '{status}'. Must be one of: {', '.join(INVOICE_STATUSES)}"
            )
    if from_status == to_status:
        return True
    return (from_status, to_status) in VALID_TRANSITIONS


def _invalidate_read_views() -> None:
    cache_service.invalidate(cache_service.INVOICES, cache_service.STOCK, cache_service.REPORTS)


def _load_invoice(invoice_id: int, *, lock: bool = False) -> Invoice:
    query = db.session.query(Invoice).filter_by(id=invoice_id)
    if lock:
        query = lock_for_update(query)
    invoice = query.first()
    if invoice is None:
        raise NotFoundError("Invoice not found", {"invoice_id": invoice_id})
    return invoice


def _require_counterparty(request: InvoiceRequest) -> None:
    """Exactly one live counterparty: a supplier for PURCHASE, a customer for SALE."""
    if request.type not in INVOICE_TYPES:
        raise ValidationError("type must be PURCHASE or SALE")
    if request.type == "PURCHASE":
        if request.supplier_id is None or request.customer_id is not None:
            raise ValidationError(
                "PURCHASE invoices take a supplier_id and no customer_id",
                {"supplier_id": request.supplier_id, "customer_id": request.customer_id},
            )
        require_live_supplier(request.supplier_id)
    else:
        if request.customer_id is None or request.supplier_id is not None:
            raise ValidationError(
                "SALE invoices take a customer_id and no supplier_id",
                {"supplier_id": request.supplier_id, "customer_id": request.customer_id},
            )
        require_live_customer(request.customer_id)


def _ensure_number_free(invoice_number: str, invoice_type: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Invoice.id).filter(
        Invoice.invoice_number == invoice_number,
        Invoice.type == invoice_type,
    )
    if exclude_id is not None:
        query = query.filter(Invoice.id != exclude_id)
    clash = query.first()
    if clash is not None:
        raise ConflictError(
            f"Invoice number {invoice_number} already exists for {invoice_type}",
            {"invoice_number": invoice_number, "type": invoice_type, "existing_id": clash.id},
        )


def _stock_floor_enabled(invoice_type: str) -> bool:
    return invoice_type == "SALE" and bool(current_app.config.get("ENFORCE_STOCK_FLOOR"))


def _requirements(request: InvoiceRequest) -> dict[int, int]:
    totals: dict[int, int] = defaultdict(int)
    for line in request.items:
        totals[line.part_id] += line.quantity
    return dict(totals)


def _apply_header(invoice: Invoice, request: InvoiceRequest) -> None:
    totals = compute_invoice_totals(
        [(line.quantity, line.rate) for line in request.items],
        discount_percent=request.discount_percent,
        discount_amount=request.discount_amount,
        cgst_percent=request.cgst_percent,
        sgst_percent=request.sgst_percent,
    )
    for key, value in totals.as_columns().items():
        setattr(invoice, key, value)

    invoice.date = request.date
    invoice.supplier_id = request.supplier_id
    invoice.customer_id = request.customer_id
    for key, value in request.extra.items():
        setattr(invoice, key, value)


def _apply_effects(invoice: Invoice, request: InvoiceRequest, *, actor_user_id: int | None) -> None:
    """
    Phase 2: insert line items and one ledger entry per item.

    Part lookups happen per line, so a bad part in any position aborts the
    enclosing transaction with nothing half-written.
    """
    direction = IN if invoice.type == "PURCHASE" else OUT
    for index, line in enumerate(request.items):
        try:
            part: Part = require_live_part(line.part_id)
        except NotFoundError as exc:
            exc.details["index"] = index
            raise

        item = InvoiceItem(
            invoice_id=invoice.id,
            part_id=part.id,
            hsn_code=part.hsn_code,
            unit=line.unit or part.unit,
            quantity=line.quantity,
            rate=quantize_money(line.rate),
            amount=quantize_money(line_amount(line.quantity, line.rate)),
        )
        db.session.add(item)
        db.session.flush()

        record_movement(
            part_id=part.id,
            direction=direction,
            quantity=item.quantity,
            invoice_item_id=item.id,
            note=f"{invoice.type} {invoice.invoice_number}",
            created_by_user_id=actor_user_id,
        )


def _retract_effects(invoice: Invoice) -> None:
    """Phase 1: delete the invoice's ledger entries, then its line items."""
    reverse_for_invoice(invoice.id)
    db.session.query(InvoiceItem).filter(InvoiceItem.invoice_id == invoice.id).delete(
        synchronize_session=False
    )
    db.session.expire(invoice, ["items"])


def _is_number_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    return "uq_invoices_number_type" in message or "invoices.invoice_number" in message


# =============================================================================
# Create / update / delete
# =============================================================================

def create_invoice(request: InvoiceRequest, *, actor_user_id: int | None = None) -> Invoice:
    """
    Create an invoice, its items and their ledger entries in one transaction.

    When request.invoice_number is empty the next gap-filling number of the
    (type, month) bucket is allocated. If a concurrent writer takes the same
    number first, the unique constraint fires and the whole transaction is
    re-run with a fresh allocation.
    """
    if not request.items:
        raise ValidationError("At least one line item is required")

    def _op() -> int:
        _require_counterparty(request)

        if request.invoice_number:
            invoice_number = request.invoice_number
            _ensure_number_free(invoice_number, request.type)
        else:
            invoice_number = allocate_invoice_number(request.type, request.date)

        if _stock_floor_enabled(request.type):
            assert_stock_available(_requirements(request))

        invoice = Invoice(
            invoice_number=invoice_number,
            type=request.type,
            status=request.status or "DRAFT",
            created_by_user_id=actor_user_id,
            updated_by_user_id=actor_user_id,
        )
        _apply_header(invoice, request)
        invoice.payment_status = "UNPAID"
        invoice.paid_amount = 0
        invoice.due_amount = invoice.total

        db.session.add(invoice)
        db.session.flush()

        _apply_effects(invoice, request, actor_user_id=actor_user_id)

        db.session.commit()
        return invoice.id

    attempts = max(1, int(current_app.config.get("NUMBERING_RETRY_ATTEMPTS", 5)))
    for attempt in range(attempts):
        try:
            invoice_id = run_with_retry(_op)
            break
        except IntegrityError as exc:
            if not _is_number_conflict(exc):
                raise
            if request.invoice_number:
                raise ConflictError(
                    f"Invoice number {request.invoice_number} already exists for {request.type}",
                    {"invoice_number": request.invoice_number, "type": request.type},
                ) from exc
            if attempt >= attempts - 1:
                raise TransientStorageError(
                    "Could not allocate an invoice number, retry the operation",
                    {"attempts": attempts},
                ) from exc
            logger.info("Invoice number race in %s bucket, retrying (attempt %s)", request.type, attempt + 1)

    _invalidate_read_views()
    return get_invoice(invoice_id)


def update_invoice(
    invoice_id: int,
    request: InvoiceRequest,
    *,
    allow_edit_submitted: bool = False,
    actor_user_id: int | None = None,
) -> Invoice:
    """
    Replace an invoice's header, items and ledger entries.

    Only DRAFT invoices are editable; SUBMITTED ones too when the caller
    passes allow_edit_submitted. The invoice type never changes.
    """
    if not request.items:
        raise ValidationError("At least one line item is required")

    def _op() -> int:
        invoice = _load_invoice(invoice_id, lock=True)

        editable = invoice.status == "DRAFT" or (
            invoice.status == "SUBMITTED" and allow_edit_submitted
        )
        if not editable:
            raise InvalidStateError(
                f"Cannot edit a {invoice.status} invoice",
                {"invoice_id": invoice.id, "status": invoice.status},
            )
        if request.type != invoice.type:
            raise ValidationError("Invoice type cannot be changed")

        new_number = request.invoice_number or invoice.invoice_number
        if new_number != invoice.invoice_number:
            _ensure_number_free(new_number, invoice.type, exclude_id=invoice.id)

        _require_counterparty(request)

        _retract_effects(invoice)

        if _stock_floor_enabled(invoice.type):
            assert_stock_available(_requirements(request))

        invoice.invoice_number = new_number
        if request.status:
            invoice.status = request.status
        invoice.updated_by_user_id = actor_user_id
        _apply_header(invoice, request)

        paid = min(quantize_money(Decimal(invoice.paid_amount or 0)), invoice.total)
        status, due = derive_payment_state(
            invoice.total,
            paid,
            on_credit=invoice.payment_status == "ON_CREDIT",
        )
        invoice.paid_amount = paid
        invoice.payment_status = status
        invoice.due_amount = due

        db.session.flush()
        _apply_effects(invoice, request, actor_user_id=actor_user_id)

        db.session.commit()
        return invoice.id

    try:
        updated_id = run_with_retry(_op)
    except IntegrityError as exc:
        if not _is_number_conflict(exc):
            raise
        raise ConflictError(
            "Invoice number already exists for this type",
            {"invoice_number": request.invoice_number},
        ) from exc

    _invalidate_read_views()
    return get_invoice(updated_id)


def delete_invoice(invoice_id: int, *, force: bool = False) -> None:
    """Delete ledger entries, items and header, in that order. DRAFT only unless force."""
    def _op() -> None:
        invoice = _load_invoice(invoice_id, lock=True)
        if invoice.status != "DRAFT" and not force:
            raise InvalidStateError(
                f"Cannot delete a {invoice.status} invoice. Only DRAFT invoices can be deleted.",
                {"invoice_id": invoice.id, "status": invoice.status},
            )

        _retract_effects(invoice)
        db.session.delete(invoice)
        db.session.commit()

    run_with_retry(_op)
    _invalidate_read_views()


def bulk_delete(ids: list[int]) -> dict:
    """
    Delete many DRAFT invoices, all or nothing.

    A single non-DRAFT (or unknown) id rejects the whole batch and is
    reported back so the caller can correct and resubmit.
    """
    if not ids:
        raise ValidationError("ids array is required")

    def _op() -> int:
        invoices = lock_for_update(
            db.session.query(Invoice).filter(Invoice.id.in_(ids)).order_by(Invoice.id)
        ).all()

        found = {inv.id for inv in invoices}
        missing = [i for i in ids if i not in found]
        if missing:
            raise NotFoundError("Some invoices were not found", {"missing_ids": missing})

        non_draft = [inv.id for inv in invoices if inv.status != "DRAFT"]
        if non_draft:
            raise ConflictError(
                f"Cannot delete {len(non_draft)} non-draft invoice(s). Only DRAFT invoices can be deleted.",
                {"non_draft_ids": non_draft},
            )

        for invoice in invoices:
            _retract_effects(invoice)
            db.session.delete(invoice)
        db.session.commit()
        return len(invoices)

    deleted = run_with_retry(_op)
    _invalidate_read_views()
    return {"deleted": deleted}


def bulk_update_status(ids: list[int], status: str) -> dict:
    """
    Set status on many invoices at once.

    Deliberately unconditional: no per-row transition check. Callers are
    expected to have validated legality (e.g. submitting a batch of drafts).
    """
    if not ids:
        raise ValidationError("ids array is required")
    if status not in INVOICE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(INVOICE_STATUSES)}")

    def _op() -> int:
        count = (
            db.session.query(Invoice)
            .filter(Invoice.id.in_(ids))
            .update({Invoice.status: status}, synchronize_session=False)
        )
        db.session.commit()
        return count

    updated = run_with_retry(_op)
    _invalidate_read_views()
    return {"updated": updated, "status": status}


def change_status(invoice_id: int, status: str) -> Invoice:
    """Single-invoice status change, checked against the state machine."""
    def _op() -> int:
        invoice = _load_invoice(invoice_id, lock=True)
        if not can_transition(invoice.status, status):
            raise InvalidStateError(
                f"Cannot move invoice from {invoice.status} to {status}",
                {"invoice_id": invoice.id, "from": invoice.status, "to": status},
            )
        invoice.status = status
        db.session.commit()
        return invoice.id

    changed_id = run_with_retry(_op)
    _invalidate_read_views()
    return get_invoice(changed_id)


def record_payment(
    invoice_id: int,
    *,
    paid_amount,
    payment_date: date | None = None,
    payment_method: str | None = None,
    payment_note: str | None = None,
    on_credit: bool = False,
) -> Invoice:
    """
    Record how much of the invoice has been paid.

    Sets payment_status / due_amount only; invoice status and the stock
    ledger are untouched.
    """
    def _op() -> int:
        invoice = _load_invoice(invoice_id, lock=True)
        if invoice.status == "CANCELLED":
            raise InvalidStateError("Cannot record a payment on a CANCELLED invoice")

        paid = quantize_money(paid_amount)
        status, due = derive_payment_state(invoice.total, paid, on_credit=on_credit)
        invoice.paid_amount = paid
        invoice.due_amount = due
        invoice.payment_status = status
        invoice.payment_date = payment_date
        invoice.payment_method = payment_method
        invoice.payment_note = payment_note
        db.session.commit()
        return invoice.id

    paid_id = run_with_retry(_op)
    _invalidate_read_views()
    return get_invoice(paid_id)


# =============================================================================
# Reads
# =============================================================================

def _with_details(query):
    return query.options(
        selectinload(Invoice.items).joinedload(InvoiceItem.part),
        joinedload(Invoice.supplier),
        joinedload(Invoice.customer),
    )


def get_invoice(invoice_id: int) -> Invoice:
    invoice = _with_details(db.session.query(Invoice)).filter(Invoice.id == invoice_id).first()
    if invoice is None:
        raise NotFoundError("Invoice not found", {"invoice_id": invoice_id})
    return invoice


def get_invoices(ids: list[int]) -> list[Invoice]:
    if not ids:
        raise ValidationError("ids array is required")
    return _with_details(db.session.query(Invoice)).filter(Invoice.id.in_(ids)).order_by(Invoice.id).all()


def list_invoices(
    *,
    invoice_type: str | None = None,
    status: str | None = None,
    start: date | None = None,
    end: date | None = None,
    q: str | None = None,
    page: int = 1,
    per_page: int = 50,
) -> dict:
    if invoice_type is not None and invoice_type not in INVOICE_TYPES:
        raise ValidationError("type must be PURCHASE or SALE")
    if status is not None and status not in INVOICE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(INVOICE_STATUSES)}")

    page = max(1, page or 1)
    per_page = min(200, max(1, per_page or 50))

    query = db.session.query(Invoice)
    if invoice_type:
        query = query.filter(Invoice.type == invoice_type)
    if status:
        query = query.filter(Invoice.status == status)
    if start:
        query = query.filter(Invoice.date >= start)
    if end:
        query = query.filter(Invoice.date <= end)
    if q:
        query = query.filter(Invoice.invoice_number.ilike(f"%{q.strip()}%"))

    total = query.count()
    invoices = (
        query.options(joinedload(Invoice.supplier), joinedload(Invoice.customer))
        .order_by(Invoice.date.desc(), Invoice.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "data": [inv.to_dict(include_items=False) for inv in invoices],
        "pagination": {
            "page": page,
            "limit": per_page,
            "total": total,
            "total_pages": (total + per_page - 1) // per_page,
        },
    }
