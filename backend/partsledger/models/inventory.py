from __future__ import annotations

from ..extensions import db
from partsledger.time_utils import to_utc_z


class InventoryTransaction(db.Model):
    """
    One immutable IN/OUT stock movement.

    Rows are only ever inserted, or deleted together with the invoice line
    that produced them. Stock for a part is SUM(IN) - SUM(OUT).
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_invtx_quantity_positive"),
        db.CheckConstraint("direction IN ('IN', 'OUT')", name="ck_invtx_direction"),
        db.Index("ix_invtx_part_direction", "part_id", "direction"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    part_id = db.Column(db.Integer, db.ForeignKey("parts.id"), nullable=False, index=True)
    direction = db.Column(db.String(3), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    # NULL for manual stock adjustments
    invoice_item_id = db.Column(
        db.Integer, db.ForeignKey("invoice_items.id", ondelete="CASCADE"), nullable=True, index=True
    )

    note = db.Column(db.String(255), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    part = db.relationship("Part")

    def __repr__(self) -> str:
        return f"<InventoryTransaction id={self.id} part_id={self.part_id} {self.direction} {self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "part_id": self.part_id,
            "direction": self.direction,
            "quantity": self.quantity,
            "invoice_item_id": self.invoice_item_id,
            "note": self.note,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
