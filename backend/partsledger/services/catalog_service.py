# Overview: Service-layer operations for parts, suppliers and customers; encapsulates business logic and database work.

"""
Catalog Service

Parts, suppliers and customers are referenced (never owned) by invoices and
ledger entries, so they are soft-deleted only. Every default read filters
to live rows; the include_deleted variants exist for admin/audit use.

Parts are upserted by part number: scanning or re-entering a known part
number updates the existing row instead of creating a duplicate.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Part, Supplier
from ..validation import ConflictError, NotFoundError
from partsledger.time_utils import utcnow
from .concurrency import lock_for_update


def _unique_conflict(exc: IntegrityError) -> ConflictError:
    message = str(exc.orig).lower()
    if "barcode" in message:
        field = "Barcode"
    elif "qr_code" in message:
        field = "QR code"
    else:
        field = "Part number"
    return ConflictError(f"{field} already exists. Please use a different value.", {"field": field})


# =============================================================================
# Parts
# =============================================================================

def require_live_part(part_id: int, *, lock: bool = False) -> Part:
    query = db.session.query(Part).filter_by(id=part_id)
    if lock:
        query = lock_for_update(query)
    part = query.first()
    if part is None:
        raise NotFoundError("Part not found", {"part_id": part_id})
    if part.is_deleted:
        raise NotFoundError("Part has been deleted", {"part_id": part_id})
    return part


def get_part(part_id: int, *, include_deleted: bool = False) -> Part:
    if include_deleted:
        part = db.session.get(Part, part_id)
        if part is None:
            raise NotFoundError("Part not found", {"part_id": part_id})
        return part
    return require_live_part(part_id)


def upsert_part(patch: dict) -> tuple[Part, bool]:
    """
    Create or update a part keyed on part_number.

    Returns (part, created). Upserting a soft-deleted part number revives it.
    """
    part = db.session.query(Part).filter_by(part_number=patch["part_number"]).first()
    created = part is None
    if created:
        part = Part(part_number=patch["part_number"])
        db.session.add(part)

    for key, value in patch.items():
        if key != "part_number":
            setattr(part, key, value)
    if part.gst_percent is None:
        part.gst_percent = 18
    if not part.unit:
        part.unit = "Nos"
    part.is_deleted = False
    part.deleted_at = None

    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise _unique_conflict(exc) from exc
    return part, created


def update_part(part_id: int, patch: dict) -> Part:
    part = require_live_part(part_id)
    new_number = patch.get("part_number")
    if new_number and new_number != part.part_number:
        clash = db.session.query(Part.id).filter(Part.part_number == new_number, Part.id != part_id).first()
        if clash:
            raise ConflictError("Part number already exists. Please use a different value.")

    for key, value in patch.items():
        setattr(part, key, value)

    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise _unique_conflict(exc) from exc
    return part


def soft_delete_part(part_id: int) -> Part:
    part = require_live_part(part_id)
    part.is_deleted = True
    part.deleted_at = utcnow()
    db.session.commit()
    return part


def list_parts(*, page: int = 1, per_page: int = 50, include_deleted: bool = False) -> dict:
    page = max(1, page or 1)
    per_page = min(100, max(1, per_page or 50))

    query = db.session.query(Part) if include_deleted else Part.live()
    total = query.count()
    parts = (
        query.order_by(Part.part_number.asc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "data": [p.to_dict() for p in parts],
        "pagination": {
            "page": page,
            "limit": per_page,
            "total": total,
            "total_pages": (total + per_page - 1) // per_page,
        },
    }


def find_part_by_code(*, barcode: str | None = None, qr_code: str | None = None) -> Part:
    """Exact lookup used when scanning; deleted parts are not found."""
    query = Part.live()
    if barcode:
        part = query.filter(Part.barcode == barcode).first()
    elif qr_code:
        part = query.filter(Part.qr_code == qr_code).first()
    else:
        part = None
    if part is None:
        raise NotFoundError("Part not found")
    return part


def search_parts(q: str | None, *, limit: int = 50) -> list[Part]:
    query = Part.live()
    if q:
        pattern = f"%{q.strip()}%"
        query = query.filter(db.or_(Part.part_number.ilike(pattern), Part.item_name.ilike(pattern)))
    return query.order_by(Part.part_number.asc()).limit(limit).all()


# =============================================================================
# Suppliers / customers
# =============================================================================

PARTY_MODELS = {"supplier": Supplier, "customer": Customer}


def _require_live(model, party_id: int):
    label = model.__name__
    party = db.session.get(model, party_id)
    if party is None:
        raise NotFoundError(f"{label} not found", {f"{label.lower()}_id": party_id})
    if party.is_deleted:
        raise NotFoundError(f"{label} has been deleted", {f"{label.lower()}_id": party_id})
    return party


def require_live_supplier(supplier_id: int) -> Supplier:
    return _require_live(Supplier, supplier_id)


def require_live_customer(customer_id: int) -> Customer:
    return _require_live(Customer, customer_id)


def create_party(model, patch: dict):
    party = model(**patch)
    db.session.add(party)
    db.session.commit()
    return party


def update_party(model, party_id: int, patch: dict):
    party = _require_live(model, party_id)
    for key, value in patch.items():
        setattr(party, key, value)
    db.session.commit()
    return party


def get_party(model, party_id: int, *, include_deleted: bool = False):
    if include_deleted:
        party = db.session.get(model, party_id)
        if party is None:
            raise NotFoundError(f"{model.__name__} not found")
        return party
    return _require_live(model, party_id)


def list_parties(model, *, q: str | None = None, include_deleted: bool = False) -> list:
    query = db.session.query(model) if include_deleted else model.live()
    if q:
        query = query.filter(model.name.ilike(f"%{q.strip()}%"))
    return query.order_by(model.name.asc()).all()


def soft_delete_party(model, party_id: int):
    party = _require_live(model, party_id)
    party.is_deleted = True
    party.deleted_at = utcnow()
    db.session.commit()
    return party
