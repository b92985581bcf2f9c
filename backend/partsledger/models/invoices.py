from __future__ import annotations

from ..extensions import db
from partsledger.time_utils import to_utc_z, to_iso_date
from partsledger.services.money import money_str
from partsledger.validation import INVOICE_STATUSES, INVOICE_TYPES, PAYMENT_STATUSES


def _one_of(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"


COUNTERPARTY_RULE = (
    "(type = 'PURCHASE' AND supplier_id IS NOT NULL AND customer_id IS NULL)"
    " OR (type = 'SALE' AND customer_id IS NOT NULL AND supplier_id IS NULL)"
)


class Invoice(db.Model):
    """
    PURCHASE or SALE invoice header.

    Owns its InvoiceItems (and, through them, their ledger entries).
    Exactly one of supplier_id / customer_id is populated, by type.

    Money invariants (maintained by services/money.py):
    - taxable_value = subtotal - discount_amount
    - total = round(taxable_value + cgst_amount + sgst_amount)
    - round_off = total - (taxable_value + cgst_amount + sgst_amount)
    """
    __tablename__ = "invoices"
    __table_args__ = (
        # Final guard against two writers allocating the same number
        db.UniqueConstraint("invoice_number", "type", name="uq_invoices_number_type"),
        db.CheckConstraint(_one_of("type", INVOICE_TYPES), name="ck_invoices_type"),
        db.CheckConstraint(_one_of("status", INVOICE_STATUSES), name="ck_invoices_status"),
        db.CheckConstraint(_one_of("payment_status", PAYMENT_STATUSES), name="ck_invoices_payment_status"),
        db.CheckConstraint(COUNTERPARTY_RULE, name="ck_invoices_counterparty"),
        db.Index("ix_invoices_type_date", "type", "date"),
        db.Index("ix_invoices_type_status", "type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False)
    date = db.Column(db.Date, nullable=False)
    type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    taxable_value = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    cgst_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    cgst_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    sgst_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    sgst_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    round_off = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    payment_status = db.Column(db.String(16), nullable=False, default="UNPAID", index=True)
    paid_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    due_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    payment_date = db.Column(db.Date, nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)
    payment_note = db.Column(db.String(255), nullable=True)

    delivery_note = db.Column(db.String(128), nullable=True)
    buyer_order_no = db.Column(db.String(128), nullable=True)
    dispatch_doc_no = db.Column(db.String(128), nullable=True)
    delivery_note_date = db.Column(db.Date, nullable=True)
    dispatched_through = db.Column(db.String(128), nullable=True)
    terms_of_delivery = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    updated_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # No ORM delete cascade: invoice_service removes ledger rows, items and
    # header explicitly, in that order.
    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        order_by="InvoiceItem.id",
        passive_deletes=True,
    )
    supplier = db.relationship("Supplier")
    customer = db.relationship("Customer")

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} {self.type} {self.invoice_number!r} status={self.status}>"

    def to_dict(self, *, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "date": to_iso_date(self.date),
            "type": self.type,
            "status": self.status,
            "supplier_id": self.supplier_id,
            "customer_id": self.customer_id,
            "subtotal": money_str(self.subtotal),
            "discount_percent": money_str(self.discount_percent),
            "discount_amount": money_str(self.discount_amount),
            "taxable_value": money_str(self.taxable_value),
            "cgst_percent": money_str(self.cgst_percent),
            "cgst_amount": money_str(self.cgst_amount),
            "sgst_percent": money_str(self.sgst_percent),
            "sgst_amount": money_str(self.sgst_amount),
            "round_off": money_str(self.round_off),
            "total": money_str(self.total),
            "payment_status": self.payment_status,
            "paid_amount": money_str(self.paid_amount),
            "due_amount": money_str(self.due_amount),
            "payment_date": to_iso_date(self.payment_date),
            "payment_method": self.payment_method,
            "payment_note": self.payment_note,
            "delivery_note": self.delivery_note,
            "buyer_order_no": self.buyer_order_no,
            "dispatch_doc_no": self.dispatch_doc_no,
            "delivery_note_date": to_iso_date(self.delivery_note_date),
            "dispatched_through": self.dispatched_through,
            "terms_of_delivery": self.terms_of_delivery,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        if self.supplier is not None:
            data["supplier"] = {"id": self.supplier.id, "name": self.supplier.name}
        if self.customer is not None:
            data["customer"] = {"id": self.customer.id, "name": self.customer.name}
        return data


class InvoiceItem(db.Model):
    """
    Invoice line.

    hsn_code and unit are snapshotted from the Part at write time so later
    catalog edits never rewrite history.
    """
    __tablename__ = "invoice_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_invoice_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    part_id = db.Column(db.Integer, db.ForeignKey("parts.id"), nullable=False, index=True)

    hsn_code = db.Column(db.String(32), nullable=False)
    unit = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    rate = db.Column(db.Numeric(14, 2), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)

    invoice = db.relationship("Invoice", back_populates="items")
    part = db.relationship("Part")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "part_id": self.part_id,
            "part_number": self.part.part_number if self.part else None,
            "item_name": self.part.item_name if self.part else None,
            "hsn_code": self.hsn_code,
            "unit": self.unit,
            "quantity": self.quantity,
            "rate": money_str(self.rate),
            "amount": money_str(self.amount),
        }


class InvoiceNumberBucket(db.Model):
    """
    One row per (type, financial-year-month) numbering bucket.

    Writers claim the row with an atomic UPDATE before scanning for the next
    free sequence; two creates in the same bucket serialize on it.
    """
    __tablename__ = "invoice_number_buckets"
    __table_args__ = (
        db.UniqueConstraint("invoice_type", "period", name="uq_invoice_number_buckets_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_type = db.Column(db.String(16), nullable=False)
    # e.g. "NOV/25-26"
    period = db.Column(db.String(16), nullable=False)
    claims = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_type": self.invoice_type,
            "period": self.period,
            "claims": self.claims,
            "updated_at": to_utc_z(self.updated_at),
        }
