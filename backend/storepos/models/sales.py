from __future__ import annotations

from ..extensions import db
from storepos.time_utils import to_utc_z


SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_PARTIAL = "partial"
SALE_STATUS_REFUNDED = "refunded"

PAYMENT_METHODS = ("cash", "card", "bank_transfer")


def _pairs(variations) -> list[list[str]]:
    return [list(pair) for pair in (variations or [])]


class Sale(db.Model):
    """
    Sale document.

    Core fields (lines, totals, loyalty, cashier) are written once at
    creation. Afterwards only the return path touches the sale: it appends
    ReturnedItem rows and re-derives `status`
    (completed -> partial -> refunded).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable invoice number (e.g., "S-001")
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    # Caller-computed totals, recorded as supplied (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_type = db.Column(db.String(16), nullable=False, default="fixed")
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    loyalty_points_used = db.Column(db.Integer, nullable=False, default=0)
    loyalty_points_earned = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMPLETED, index=True)

    cashier_id = db.Column(db.String(64), nullable=False, index=True)
    cashier_name = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        order_by="SaleLine.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    payments = db.relationship(
        "SalePayment",
        back_populates="sale",
        order_by="SalePayment.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    returned_items = db.relationship(
        "ReturnedItem",
        back_populates="sale",
        order_by="ReturnedItem.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, *, lines: list[dict] | None = None) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer_info": {
                "name": self.customer_name,
                "phone": self.customer_phone,
                "email": self.customer_email,
            },
            "items": lines if lines is not None else [line.to_dict() for line in self.lines],
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "discount_type": self.discount_type,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "loyalty_points_used": self.loyalty_points_used,
            "loyalty_points_earned": self.loyalty_points_earned,
            "payments": [p.to_dict() for p in self.payments],
            "status": self.status,
            "returned_items": [r.to_dict() for r in self.returned_items],
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier_name,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class SaleLine(db.Model):
    """
    Point-in-time snapshot of one sold item.

    product_id / variation_combination_id are snapshots, not foreign keys:
    the catalog row may change or disappear after the sale.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.Index("ix_sale_lines_sale_position", "sale_id", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(128), nullable=False)

    # Negative quantity encodes an on-the-spot adjustment (stock goes up)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_type = db.Column(db.String(16), nullable=False, default="fixed")
    total_price_cents = db.Column(db.Integer, nullable=False)

    variation_combination_id = db.Column(db.Integer, nullable=True, index=True)
    variations = db.Column(db.JSON, nullable=True)

    sale = db.relationship("Sale", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "discount_type": self.discount_type,
            "total_price_cents": self.total_price_cents,
            "variation_combination_id": self.variation_combination_id,
            "variations": _pairs(self.variations),
        }


class SalePayment(db.Model):
    """Recorded tender for a sale (payments are recorded, not processed)."""
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    method = db.Column(db.String(32), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(128), nullable=True)

    sale = db.relationship("Sale", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
        }


class ReturnedItem(db.Model):
    """
    Append-only record of returned units against a sale.

    IMMUTABLE: rows are only inserted by the return path; there is no
    "undo a return" operation.
    """
    __tablename__ = "sale_returned_items"
    __table_args__ = (
        db.Index("ix_returned_items_sale_product", "sale_id", "product_id", "variation_combination_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    sale_line_id = db.Column(db.Integer, db.ForeignKey("sale_lines.id"), nullable=True)

    product_id = db.Column(db.Integer, nullable=False)
    variation_combination_id = db.Column(db.Integer, nullable=True)
    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(128), nullable=False)
    variations = db.Column(db.JSON, nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    # Refund for this entry (prorated from the original line total)
    total_price_cents = db.Column(db.Integer, nullable=False)

    returned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    reason = db.Column(db.String(255), nullable=True)
    refund_method = db.Column(db.String(32), nullable=True)
    processed_by_id = db.Column(db.String(64), nullable=False)
    processed_by_name = db.Column(db.String(255), nullable=False)

    sale = db.relationship("Sale", back_populates="returned_items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "sale_line_id": self.sale_line_id,
            "product_id": self.product_id,
            "variation_combination_id": self.variation_combination_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "variations": _pairs(self.variations),
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "returned_at": to_utc_z(self.returned_at),
            "reason": self.reason,
            "refund_method": self.refund_method,
            "processed_by_id": self.processed_by_id,
            "processed_by_name": self.processed_by_name,
        }
