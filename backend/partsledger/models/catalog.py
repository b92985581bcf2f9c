from __future__ import annotations

import re

from ..extensions import db
from partsledger.time_utils import to_utc_z
from partsledger.services.money import money_str

# 550/42835C, 336/E8026 or purely numeric 027800028
PART_NUMBER_PATTERN = re.compile(r"^[0-9]+(/[A-Z0-9]+)?$", re.IGNORECASE)


class SoftDeleteMixin:
    """
    Tombstone flag for catalog entities that invoices reference.

    Rows are never hard-deleted once an invoice or ledger entry may point
    at them. Every default read goes through live(); admin and audit paths
    use the plain query to include deleted rows.
    """
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @classmethod
    def live(cls):
        return db.session.query(cls).filter(cls.is_deleted.is_(False))


class Part(SoftDeleteMixin, db.Model):
    """
    Catalog item that can be purchased and sold.

    Stock is NOT a column here: it is always derived from the
    inventory_transactions ledger (see services/stock_ledger.py).
    """
    __tablename__ = "parts"
    __table_args__ = (
        db.Index("ix_parts_item_name", "item_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    part_number = db.Column(db.String(64), nullable=False, unique=True)
    item_name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    hsn_code = db.Column(db.String(32), nullable=False)
    gst_percent = db.Column(db.Numeric(5, 2), nullable=False, default=18)
    unit = db.Column(db.String(16), nullable=False, default="Nos")

    mrp = db.Column(db.Numeric(14, 2), nullable=True)
    rtl = db.Column(db.Numeric(14, 2), nullable=True)

    barcode = db.Column(db.String(128), nullable=True, unique=True)
    qr_code = db.Column(db.String(255), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Part id={self.id} part_number={self.part_number!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "part_number": self.part_number,
            "item_name": self.item_name,
            "description": self.description,
            "hsn_code": self.hsn_code,
            "gst_percent": money_str(self.gst_percent),
            "unit": self.unit,
            "mrp": money_str(self.mrp),
            "rtl": money_str(self.rtl),
            "barcode": self.barcode,
            "qr_code": self.qr_code,
            "is_deleted": self.is_deleted,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class _Party(SoftDeleteMixin):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)
    gstin = db.Column(db.String(15), nullable=True)
    state = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "gstin": self.gstin,
            "state": self.state,
            "is_deleted": self.is_deleted,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(_Party, db.Model):
    """Counterparty on PURCHASE invoices."""
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    contact_person = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["contact_person"] = self.contact_person
        return data


class Customer(_Party, db.Model):
    """Counterparty on SALE invoices."""
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}
