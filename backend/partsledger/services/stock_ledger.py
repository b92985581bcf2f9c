# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

"""
Stock Ledger Invariants (authoritative)

- Stock is ledger-derived from InventoryTransaction rows; it is never stored
  as a mutable quantity on Part.
- stock(part) = SUM(quantity WHERE IN) - SUM(quantity WHERE OUT), over all
  rows including manual adjustments. Reads never clamp negatives.
- Entries are immutable. They are only deleted together with the invoice
  lines that produced them (reverse_for_invoice).
- Ledger writes never commit on their own: they ride in the enclosing
  invoice transaction, so a failure anywhere leaves no partial rows.
- Stock listings aggregate in a single grouped query, never one per part.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from sqlalchemy import case, func, update

from ..extensions import db
from ..models import InventoryTransaction, InvoiceItem, Part
from ..validation import ConflictError, ValidationError
from . import cache_service
from .catalog_service import require_live_part
from .concurrency import lock_for_update, run_with_retry

IN = "IN"
OUT = "OUT"
DIRECTIONS = (IN, OUT)


@dataclass(frozen=True)
class StockLevel:
    incoming: int = 0
    outgoing: int = 0

    @property
    def stock(self) -> int:
        return self.incoming - self.outgoing

    def to_dict(self) -> dict:
        return {"stock": self.stock, "incoming": self.incoming, "outgoing": self.outgoing}


def project_stock(entries: Iterable) -> StockLevel:
    """
    Fold ledger entries into a StockLevel.

    Pure reducer over anything with .direction / .quantity (ORM rows or
    plain records); the SQL aggregations below must agree with it.
    """
    incoming = 0
    outgoing = 0
    for entry in entries:
        if entry.direction == IN:
            incoming += entry.quantity
        elif entry.direction == OUT:
            outgoing += entry.quantity
        else:
            raise ValueError(f"unknown ledger direction {entry.direction!r}")
    return StockLevel(incoming=incoming, outgoing=outgoing)


def record_movement(
    *,
    part_id: int,
    direction: str,
    quantity: int,
    invoice_item_id: int | None = None,
    note: str | None = None,
    created_by_user_id: int | None = None,
) -> InventoryTransaction:
    """
    Append one immutable ledger entry (flush only, no commit).

    Direction correctness (PURCHASE => IN, SALE => OUT) is the caller's job.
    """
    if direction not in DIRECTIONS:
        raise ValidationError(f"direction must be one of: {', '.join(DIRECTIONS)}")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    tx = InventoryTransaction(
        part_id=part_id,
        direction=direction,
        quantity=quantity,
        invoice_item_id=invoice_item_id,
        note=note,
        created_by_user_id=created_by_user_id,
    )
    db.session.add(tx)
    db.session.flush()
    return tx


def _incoming_sum():
    return func.coalesce(
        func.sum(case((InventoryTransaction.direction == IN, InventoryTransaction.quantity), else_=0)),
        0,
    )


def _outgoing_sum():
    return func.coalesce(
        func.sum(case((InventoryTransaction.direction == OUT, InventoryTransaction.quantity), else_=0)),
        0,
    )


def stock_levels(part_id: int) -> StockLevel:
    row = db.session.query(
        _incoming_sum().label("incoming"),
        _outgoing_sum().label("outgoing"),
    ).filter(InventoryTransaction.part_id == part_id).one()
    return StockLevel(incoming=int(row.incoming or 0), outgoing=int(row.outgoing or 0))


def current_stock(part_id: int) -> int:
    """Signed stock for a part; negative means something oversold upstream."""
    return stock_levels(part_id).stock


def bulk_stock(part_ids: Iterable[int] | None = None) -> dict[int, StockLevel]:
    """
    Stock for many parts in ONE grouped query.

    part_ids=None aggregates the whole ledger. Parts with no entries are
    absent from the result; callers default them to StockLevel().
    """
    query = db.session.query(
        InventoryTransaction.part_id,
        _incoming_sum().label("incoming"),
        _outgoing_sum().label("outgoing"),
    )
    if part_ids is not None:
        ids = list(part_ids)
        if not ids:
            return {}
        query = query.filter(InventoryTransaction.part_id.in_(ids))

    rows = query.group_by(InventoryTransaction.part_id).all()
    return {
        row.part_id: StockLevel(incoming=int(row.incoming or 0), outgoing=int(row.outgoing or 0))
        for row in rows
    }


def reverse_for_invoice(invoice_id: int) -> int:
    """
    Delete every ledger entry produced by the invoice's lines.

    Used before re-creating lines on update and on delete. Returns the
    number of entries removed. No commit.
    """
    item_ids = db.session.query(InvoiceItem.id).filter(InvoiceItem.invoice_id == invoice_id)
    return (
        db.session.query(InventoryTransaction)
        .filter(InventoryTransaction.invoice_item_id.in_(item_ids.scalar_subquery()))
        .delete(synchronize_session=False)
    )


def assert_stock_available(requirements: Mapping[int, int]) -> None:
    """
    Stock floor check for outgoing lines.

    Locks the referenced Part rows (in id order, so concurrent sales lock in
    the same order) and then compares requested quantities to derived stock
    inside the caller's transaction. Raises ConflictError listing every
    short part.

    The lock is a SELECT ... FOR UPDATE followed by a no-op UPDATE of the
    same rows. SQLite ignores FOR UPDATE and takes its write lock only on
    the first write of a transaction, so the UPDATE is what serializes two
    sales of the same part there.
    """
    part_ids = sorted(requirements)
    if not part_ids:
        return

    lock_for_update(
        db.session.query(Part.id).filter(Part.id.in_(part_ids)).order_by(Part.id)
    ).all()
    db.session.execute(
        update(Part).where(Part.id.in_(part_ids)).values(updated_at=Part.updated_at),
        execution_options={"synchronize_session": False},
    )

    levels = bulk_stock(part_ids)
    insufficient = []
    for part_id in part_ids:
        available = levels.get(part_id, StockLevel()).stock
        requested = requirements[part_id]
        if available < requested:
            insufficient.append({
                "part_id": part_id,
                "requested_quantity": requested,
                "stock": available,
            })

    if insufficient:
        raise ConflictError("Insufficient stock", {"items": insufficient})


# =============================================================================
# Read surface
# =============================================================================

def get_stock(part_id: int) -> dict:
    require_live_part(part_id)
    return {"part_id": part_id, **stock_levels(part_id).to_dict()}


def list_stock(*, only_purchased: bool = False, search: str | None = None) -> list[dict]:
    """
    Live parts with their derived stock, ordered by part number.

    Two queries regardless of catalog size: one for parts, one grouped
    aggregation over the ledger.
    """
    search = (search or "").strip() or None

    def _compute() -> list[dict]:
        query = Part.live()
        if only_purchased:
            purchased = (
                db.session.query(InventoryTransaction.part_id)
                .filter(InventoryTransaction.direction == IN)
                .distinct()
            )
            query = query.filter(Part.id.in_(purchased.scalar_subquery()))
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                db.or_(Part.part_number.ilike(pattern), Part.item_name.ilike(pattern))
            )
        parts = query.order_by(Part.part_number.asc()).all()

        levels = bulk_stock(None if len(parts) > 500 else [p.id for p in parts])
        rows = []
        for part in parts:
            level = levels.get(part.id, StockLevel())
            rows.append({**part.to_dict(), **level.to_dict()})
        return rows

    return cache_service.cached(cache_service.STOCK, ("list", only_purchased, search), _compute)


def list_part_transactions(part_id: int, *, limit: int = 200) -> list[InventoryTransaction]:
    require_live_part(part_id)
    return (
        db.session.query(InventoryTransaction)
        .filter(InventoryTransaction.part_id == part_id)
        .order_by(InventoryTransaction.id.desc())
        .limit(limit)
        .all()
    )


# =============================================================================
# Manual correction
# =============================================================================

def adjust_stock(
    *,
    part_id: int,
    target_quantity: int,
    note: str | None = None,
    actor_user_id: int | None = None,
) -> dict:
    """
    Bring a part's derived stock to target_quantity.

    Writes a single corrective entry for the signed difference (none when
    already at target), so the ledger keeps explaining the number.
    """
    if isinstance(target_quantity, bool) or not isinstance(target_quantity, int):
        raise ValidationError("quantity must be an integer")
    if target_quantity < 0:
        raise ValidationError("quantity cannot be negative")

    def _op() -> dict:
        part = require_live_part(part_id, lock=True)
        previous = current_stock(part_id)
        delta = target_quantity - previous

        tx = None
        if delta != 0:
            tx = record_movement(
                part_id=part_id,
                direction=IN if delta > 0 else OUT,
                quantity=abs(delta),
                note=note or "Stock adjustment",
                created_by_user_id=actor_user_id,
            )

        db.session.commit()
        return {
            "part_id": part_id,
            "part_number": part.part_number,
            "previous_stock": previous,
            "new_stock": target_quantity,
            "adjustment_delta": delta,
            "transaction": tx.to_dict() if tx is not None else None,
        }

    result = run_with_retry(_op)
    cache_service.invalidate(cache_service.STOCK, cache_service.REPORTS)
    return result


# =============================================================================
# Audit
# =============================================================================

def audit_ledger() -> dict:
    """
    Cross-check ledger and invoice lines.

    - negative_stock: parts whose derived stock is below zero
    - items_without_entries: invoice lines with no ledger row
    - mismatched_entries: ledger rows whose part/quantity disagree with their line
    """
    negative = [
        {"part_id": part_id, "stock": level.stock}
        for part_id, level in sorted(bulk_stock().items())
        if level.stock < 0
    ]

    missing = (
        db.session.query(InvoiceItem.id)
        .outerjoin(InventoryTransaction, InventoryTransaction.invoice_item_id == InvoiceItem.id)
        .filter(InventoryTransaction.id.is_(None))
        .order_by(InvoiceItem.id)
        .all()
    )

    mismatched = (
        db.session.query(InventoryTransaction.id)
        .join(InvoiceItem, InvoiceItem.id == InventoryTransaction.invoice_item_id)
        .filter(
            db.or_(
                InventoryTransaction.part_id != InvoiceItem.part_id,
                InventoryTransaction.quantity != InvoiceItem.quantity,
            )
        )
        .order_by(InventoryTransaction.id)
        .all()
    )

    return {
        "negative_stock": negative,
        "items_without_entries": [row.id for row in missing],
        "mismatched_entries": [row.id for row in mismatched],
    }
