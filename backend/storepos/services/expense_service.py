"""
Expense Service

Expenses reference their category by name. Receipts are stored on the media
host; replacing or removing a receipt deletes the old object best-effort
(a failed delete is logged and never fails the expense write).
"""

from __future__ import annotations

from ..errors import CategoryNotFound, ExpenseNotFound
from ..extensions import db, media
from ..models import Expense, ExpenseCategory
from ..models.expenses import PAYMENT_METHODS
from ..time_utils import parse_iso_datetime
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from .concurrency import run_with_retry
from .media_service import UploadedFile
from .sales_service import paginate


EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"category", "description", "amount_cents", "date", "payment_method", "reference", "notes"},
    required_on_create={"category", "description", "amount_cents", "payment_method"},
)

RECEIPT_FOLDER = "receipts"


def _check_refs(patch: dict) -> None:
    method = patch.get("payment_method")
    if method is not None and method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    name = patch.get("category")
    if name is not None:
        exists = db.session.query(ExpenseCategory.id).filter_by(name=name).first()
        if exists is None:
            raise CategoryNotFound(f"Expense category {name!r} not found", details={"name": name})


def get_expense(expense_id: int) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if expense is None:
        raise ExpenseNotFound(f"Expense {expense_id} not found", details={"expense_id": expense_id})
    return expense


def list_expenses(*, page=None, limit=None, category=None, start_date=None, end_date=None) -> dict:
    query = db.session.query(Expense)
    if category:
        query = query.filter(Expense.category == category)
    try:
        start = parse_iso_datetime(start_date)
        end = parse_iso_datetime(end_date)
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 dates")
    if start is not None:
        query = query.filter(Expense.date >= start)
    if end is not None:
        query = query.filter(Expense.date <= end)

    rows, pagination = paginate(query.order_by(Expense.date.desc(), Expense.id.desc()), page, limit)
    return {
        "expenses": [e.to_dict() for e in rows],
        "pagination": pagination,
    }


def create_expense(
    payload: dict,
    *,
    added_by_id: str,
    added_by_name: str,
    receipt: UploadedFile | None = None,
) -> Expense:
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
    _check_refs(patch)

    receipt_url = media.upload(receipt, subfolder=RECEIPT_FOLDER) if receipt is not None else None

    def _op():
        expense = Expense(
            **patch,
            receipt_url=receipt_url,
            added_by_id=added_by_id,
            added_by_name=added_by_name,
        )
        db.session.add(expense)
        db.session.commit()
        return expense

    try:
        return run_with_retry(_op)
    except Exception:
        # The row never landed; drop the orphaned upload
        if receipt_url:
            media.delete_quietly(receipt_url)
        raise


def update_expense(
    expense_id: int,
    payload: dict,
    *,
    receipt: UploadedFile | None = None,
    remove_receipt: bool = False,
) -> Expense:
    patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True)
    get_expense(expense_id)
    _check_refs(patch)

    new_url = media.upload(receipt, subfolder=RECEIPT_FOLDER) if receipt is not None else None
    replaced: list[str] = []

    def _op():
        expense = get_expense(expense_id)
        for key, value in patch.items():
            setattr(expense, key, value)
        if new_url is not None or remove_receipt:
            if expense.receipt_url:
                replaced.append(expense.receipt_url)
            expense.receipt_url = new_url
        db.session.commit()
        return expense

    expense = run_with_retry(_op)
    for url in replaced:
        media.delete_quietly(url)
    return expense


def delete_expense(expense_id: int) -> None:
    def _op():
        expense = get_expense(expense_id)
        receipt_url = expense.receipt_url
        db.session.delete(expense)
        db.session.commit()
        return receipt_url

    receipt_url = run_with_retry(_op)
    if receipt_url:
        media.delete_quietly(receipt_url)
