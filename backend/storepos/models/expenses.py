from __future__ import annotations

from ..extensions import db
from storepos.time_utils import to_utc_z


PAYMENT_METHODS = ("cash", "card", "bank_transfer", "cheque")


class Expense(db.Model):
    """Store expense; category is referenced by name."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_category_date", "category", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category = db.Column(db.String(128), nullable=False, index=True)
    description = db.Column(db.String(512), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    payment_method = db.Column(db.String(32), nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Opaque media-host URL
    receipt_url = db.Column(db.String(512), nullable=True)

    added_by_id = db.Column(db.String(64), nullable=False)
    added_by_name = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "date": to_utc_z(self.date),
            "payment_method": self.payment_method,
            "reference": self.reference,
            "notes": self.notes,
            "receipt_url": self.receipt_url,
            "added_by_id": self.added_by_id,
            "added_by_name": self.added_by_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ExpenseCategory(db.Model):
    """
    Expense category.

    expense_count / total_amount_cents are DERIVED from a live aggregate
    over Expense rows with the same category name.
    """
    __tablename__ = "expense_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    color = db.Column(db.String(16), nullable=False, default="#EF4444")
    icon = db.Column(db.String(64), nullable=False, default="DollarSign")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    expense_count = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by_id = db.Column(db.String(64), nullable=False)
    created_by_name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "icon": self.icon,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "expense_count": self.expense_count,
            "total_amount_cents": self.total_amount_cents,
            "created_by_id": self.created_by_id,
            "created_by_name": self.created_by_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
