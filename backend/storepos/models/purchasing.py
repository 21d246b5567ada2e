from __future__ import annotations

from ..extensions import db
from storepos.time_utils import to_utc_z


class PurchaseOrder(db.Model):
    """
    Goods received from a supplier.

    Every line added stock when the order was recorded; editing or deleting
    the order reverses exactly those quantities.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_supplier_date", "supplier", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier = db.Column(db.String(255), nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.String(64), nullable=False)
    created_by_name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    lines = db.relationship(
        "PurchaseOrderLine",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.position",
    )

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def total_cost_cents(self) -> int:
        return sum(line.quantity * (line.unit_cost_cents or 0) for line in self.lines)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier": self.supplier,
            "date": to_utc_z(self.date),
            "notes": self.notes,
            "items": [line.to_dict() for line in self.lines],
            "total_quantity": self.total_quantity,
            "total_cost_cents": self.total_cost_cents,
            "created_by_id": self.created_by_id,
            "created_by_name": self.created_by_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseOrderLine(db.Model):
    """
    One received item. product_id / variation_combination_id are snapshots
    so the order stays readable after the catalog row is removed.
    """
    __tablename__ = "purchase_order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    variation_combination_id = db.Column(db.Integer, nullable=True)
    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(128), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    purchase_order = db.relationship("PurchaseOrder", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variation_combination_id": self.variation_combination_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
        }
