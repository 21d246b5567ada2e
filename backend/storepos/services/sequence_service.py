# Overview: Named sequence counters and invoice number formatting.

"""
Invoice numbers are PREFIX-NNN strings backed by a durable counter row.

CONCURRENCY:
- next_invoice_number() advances the counter with one atomic
  UPDATE sequence_counters SET sequence = sequence + 1, then reads the value
  back inside the same transaction (the UPDATE holds the row lock, so no
  other writer can observe or emit the same value).
- preview_invoice_number() only reads; it never reserves a number.
- initialize_counter() is idempotent: an existing row is never touched.

Called inside a sale transaction, the increment commits or rolls back
together with the sale, so a failed sale does not consume a number.
"""

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import CounterUnavailable
from ..extensions import db
from ..models import Sale, SequenceCounter
from .concurrency import begin_write, run_with_retry


TRAILING_DIGITS_RE = re.compile(r"(\d+)$")


def format_invoice_number(value: int, prefix: str, digits: int) -> str:
    return f"{prefix}-{value:0{digits}d}"


def _invoice_settings(
    sequence_name: str | None,
    prefix: str | None,
    digits: int | None,
) -> tuple[str, str, int]:
    cfg = current_app.config
    return (
        sequence_name or cfg.get("INVOICE_SEQUENCE_NAME", "invoiceNumber"),
        prefix if prefix is not None else cfg.get("INVOICE_PREFIX", "S"),
        digits if digits is not None else cfg.get("INVOICE_DIGITS", 3),
    )


def _seed_value() -> int:
    """
    Highest numeric suffix among existing invoice numbers, or the number
    of sales when no invoice number carries a parsable suffix.
    """
    max_suffix = 0
    for (invoice_number,) in db.session.query(Sale.invoice_number).yield_per(500):
        match = TRAILING_DIGITS_RE.search(invoice_number or "")
        if match:
            max_suffix = max(max_suffix, int(match.group(1)))

    if max_suffix:
        return max_suffix
    return db.session.query(func.count(Sale.id)).scalar() or 0


def _current_sequence(sequence_name: str) -> int | None:
    return (
        db.session.query(SequenceCounter.sequence)
        .filter_by(name=sequence_name)
        .scalar()
    )


def _ensure_counter_row(sequence_name: str) -> int:
    """
    Insert the counter row seeded from existing sales if it is missing.

    Returns the sequence value stored in the row. A concurrent insert of the
    same row loses the race with IntegrityError; the winner's value is kept.
    """
    existing = _current_sequence(sequence_name)
    if existing is not None:
        return existing

    seed = _seed_value()
    try:
        with db.session.begin_nested():
            db.session.add(SequenceCounter(name=sequence_name, sequence=seed))
    except IntegrityError:
        existing = _current_sequence(sequence_name)
        if existing is None:
            raise
        return existing

    current_app.logger.info("Seeded sequence %r at %d", sequence_name, seed)
    return seed


def next_sequence_value(sequence_name: str) -> int:
    """
    Atomically advance a named counter and return the new value.

    Runs in the caller's transaction; the caller commits.

    Raises:
        CounterUnavailable: the counter table cannot be updated
    """
    stmt = (
        update(SequenceCounter)
        .where(SequenceCounter.name == sequence_name)
        .values(sequence=SequenceCounter.sequence + 1)
        .execution_options(synchronize_session=False)
    )

    try:
        result = db.session.execute(stmt)
        if not result.rowcount:
            _ensure_counter_row(sequence_name)
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise CounterUnavailable(f"Sequence {sequence_name!r} could not be advanced")

        value = _current_sequence(sequence_name)
    except (OperationalError, StaleDataError):
        # Lock contention: let the enclosing run_with_retry decide
        raise
    except SQLAlchemyError as exc:
        current_app.logger.exception("Sequence %r increment failed", sequence_name)
        raise CounterUnavailable(
            "Invoice counter is unavailable",
            details={"sequence": sequence_name},
        ) from exc

    if value is None:
        raise CounterUnavailable(f"Sequence {sequence_name!r} disappeared during increment")
    return value


def next_invoice_number(
    *,
    sequence_name: str | None = None,
    prefix: str | None = None,
    digits: int | None = None,
) -> str:
    """Allocate the next invoice number (caller's transaction)."""
    sequence_name, prefix, digits = _invoice_settings(sequence_name, prefix, digits)
    return format_invoice_number(next_sequence_value(sequence_name), prefix, digits)


def preview_invoice_number(
    *,
    sequence_name: str | None = None,
    prefix: str | None = None,
    digits: int | None = None,
) -> str:
    """
    What the next allocation would return, without mutating state.

    Display only: a concurrent sale can still take this number first.
    """
    sequence_name, prefix, digits = _invoice_settings(sequence_name, prefix, digits)
    try:
        current = _current_sequence(sequence_name)
    except SQLAlchemyError as exc:
        raise CounterUnavailable("Invoice counter is unavailable") from exc
    next_value = (current if current is not None else _seed_value()) + 1
    return format_invoice_number(next_value, prefix, digits)


def initialize_counter(sequence_name: str | None = None) -> int:
    """
    Seed the counter from existing sales if it does not exist yet.

    Idempotent: returns the stored value untouched when the row exists.
    """
    sequence_name, _, _ = _invoice_settings(sequence_name, None, None)

    def _op() -> int:
        begin_write()
        value = _ensure_counter_row(sequence_name)
        db.session.commit()
        return value

    try:
        return run_with_retry(_op)
    except SQLAlchemyError as exc:
        raise CounterUnavailable("Invoice counter could not be initialized") from exc


def get_counter_status(sequence_name: str | None = None) -> dict:
    """Preview payload for the invoice counter status endpoint."""
    return {
        "next_invoice_number": preview_invoice_number(sequence_name=sequence_name),
        "total_sales_count": db.session.query(func.count(Sale.id)).scalar() or 0,
    }
