# Overview: Product and expense category CRUD with live aggregate recompute.

"""
Category Service

Categories are referenced BY NAME from products and expenses. Consequences:
- Renaming a category rewrites every referencing row in the same transaction.
- Deleting a category is refused while rows still reference it.

Derived fields (product_count, expense_count, total_amount_cents) are
recomputed from a live query on every read and write. Nothing is
maintained incrementally, so recomputing twice gives the same result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy import func, update

from ..errors import CategoryInUse, CategoryNotFound, DuplicateName
from ..extensions import db
from ..models import Category, Expense, ExpenseCategory, Product
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import run_with_retry
from .sales_service import paginate


CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "color", "icon", "is_active", "sort_order"},
    required_on_create={"name"},
)


# =============================================================================
# RECOMPUTE HOOKS
# =============================================================================

def recompute_category_stats(category: Category) -> Category:
    """Overwrite product_count with the number of active products in the category."""
    category.product_count = (
        db.session.query(func.count(Product.id))
        .filter(Product.category == category.name, Product.is_active.is_(True))
        .scalar()
        or 0
    )
    return category


def recompute_expense_category_stats(category: ExpenseCategory) -> ExpenseCategory:
    count, total = (
        db.session.query(func.count(Expense.id), func.coalesce(func.sum(Expense.amount_cents), 0))
        .filter(Expense.category == category.name)
        .one()
    )
    category.expense_count = count or 0
    category.total_amount_cents = total or 0
    return category


@dataclass(frozen=True)
class CategoryKind:
    model: type
    referencing_model: type
    recompute: Callable
    label: str

    def in_use_count(self, name: str) -> int:
        query = db.session.query(func.count(self.referencing_model.id)).filter(
            self.referencing_model.category == name
        )
        if self.referencing_model is Product:
            query = query.filter(Product.is_active.is_(True))
        return query.scalar() or 0


PRODUCT_CATEGORIES = CategoryKind(
    model=Category,
    referencing_model=Product,
    recompute=recompute_category_stats,
    label="Category",
)

EXPENSE_CATEGORIES = CategoryKind(
    model=ExpenseCategory,
    referencing_model=Expense,
    recompute=recompute_expense_category_stats,
    label="Expense category",
)


# =============================================================================
# CRUD
# =============================================================================

def _get_or_404(kind: CategoryKind, category_id: int):
    category = db.session.get(kind.model, category_id)
    if category is None:
        raise CategoryNotFound(
            f"{kind.label} {category_id} not found",
            details={"category_id": category_id},
        )
    return category


def _ensure_unique_name(kind: CategoryKind, name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(kind.model.id).filter(func.lower(kind.model.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(kind.model.id != exclude_id)
    if query.first() is not None:
        raise DuplicateName(
            f"{kind.label} with this name already exists",
            details={"name": name},
        )


def create_category(kind: CategoryKind, payload: dict, *, created_by_id: str, created_by_name: str):
    patch = validate_payload(model=kind.model, payload=payload, policy=CATEGORY_POLICY, partial=False)

    def _op():
        _ensure_unique_name(kind, patch["name"])
        category = kind.model(**patch, created_by_id=created_by_id, created_by_name=created_by_name)
        db.session.add(category)
        db.session.flush()
        kind.recompute(category)
        db.session.commit()
        return category

    return run_with_retry(_op)


def list_categories(kind: CategoryKind, *, page=None, limit=None, search=None, is_active=None) -> dict:
    query = db.session.query(kind.model)
    if search:
        query = query.filter(kind.model.name.ilike(f"%{search.strip()}%"))
    if is_active is not None:
        query = query.filter(kind.model.is_active.is_(is_active))

    rows, pagination = paginate(
        query.order_by(kind.model.sort_order.asc(), kind.model.name.asc()), page, limit
    )
    for category in rows:
        kind.recompute(category)
    db.session.commit()

    return {
        "categories": [c.to_dict() for c in rows],
        "pagination": pagination,
    }


def get_category(kind: CategoryKind, category_id: int):
    category = _get_or_404(kind, category_id)
    kind.recompute(category)
    db.session.commit()
    return category


def update_category(kind: CategoryKind, category_id: int, payload: dict):
    patch = validate_payload(model=kind.model, payload=payload, policy=CATEGORY_POLICY, partial=True)

    def _op():
        category = _get_or_404(kind, category_id)
        old_name = category.name
        new_name = patch.get("name", old_name)

        if new_name != old_name:
            _ensure_unique_name(kind, new_name, exclude_id=category.id)

        for key, value in patch.items():
            setattr(category, key, value)

        if new_name != old_name:
            ref = kind.referencing_model
            db.session.execute(
                update(ref)
                .where(ref.category == old_name)
                .values(category=new_name)
                .execution_options(synchronize_session="fetch")
            )

        kind.recompute(category)
        db.session.commit()
        return category

    return run_with_retry(_op)


def delete_category(kind: CategoryKind, category_id: int) -> None:
    def _op():
        category = _get_or_404(kind, category_id)
        in_use = kind.in_use_count(category.name)
        if in_use:
            raise CategoryInUse(
                f"Cannot delete {kind.label.lower()} that is in use",
                details={"name": category.name, "references": in_use},
            )
        db.session.delete(category)
        db.session.commit()

    run_with_retry(_op)
