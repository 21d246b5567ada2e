"""
Return Processing Service

Records returned units against a historical sale.

DESIGN PRINCIPLES:
- Exact-key matching: (product_id, variation_combination_id) must match a
  sale line exactly; a flat return never matches a variation line and vice
  versa.
- Cumulative bound: everything returned so far for a key, plus this
  request, never exceeds the matched line's quantity.
- Validate all, then commit all: one bad line aborts the whole request.
- Refunds are prorated from the ORIGINAL line total, never from current prices.
- Returned items are append-only; sale status only moves
  completed -> partial -> refunded.

CONCURRENCY:
The sale row is locked (BEGIN IMMEDIATE on SQLite, FOR UPDATE elsewhere) and
its version_id is bumped on every return, so two concurrent returns against
the same sale cannot both pass the cumulative check.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import and_, func

from ..errors import LineNotFound, NotFoundError, OverReturn, SaleNotFound
from ..extensions import db
from ..models import Customer, ReturnedItem, Sale
from ..models.sales import SALE_STATUS_PARTIAL, SALE_STATUS_REFUNDED
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from ..validation import ValidationError, coerce_int, parse_json_field
from . import customer_service, stock_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .sales_service import paginate
from .variation_service import find_matching_line


REFUND_METHODS = ("cash", "card", "bank_transfer", "store_credit")


@dataclass
class ReturnLineRequest:
    product_id: int
    quantity: int
    variation_combination_id: int | None = None
    reason: str | None = None


# =============================================================================
# STATUS DERIVATION
# =============================================================================

def derive_status(current_status: str, original_quantity: int, returned_quantity: int) -> str:
    """
    refunded once everything is back, partial once anything is back,
    otherwise unchanged.
    """
    if original_quantity > 0 and returned_quantity >= original_quantity:
        return SALE_STATUS_REFUNDED
    if returned_quantity > 0:
        return SALE_STATUS_PARTIAL
    return current_status


def prorated_refund(line_total_cents: int, line_quantity: int, already_returned: int, quantity: int) -> int:
    """
    Refund for `quantity` more units of a line.

    Computed as the difference of two floors so that returning a line in
    several pieces sums to exactly the line total.
    """
    before = line_total_cents * already_returned // line_quantity
    after = line_total_cents * (already_returned + quantity) // line_quantity
    return after - before


# =============================================================================
# REQUEST PARSING
# =============================================================================

def _parse_lines(payload: dict) -> list[ReturnLineRequest]:
    items = parse_json_field(payload.get("items"), "items")
    if not isinstance(items, list) or not items:
        raise ValidationError("Return must contain at least one item")

    lines = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if raw.get("product_id") in (None, ""):
            raise ValidationError(f"items[{index}].product_id is required")

        quantity = coerce_int(raw.get("quantity"), f"items[{index}].quantity")
        if quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be a positive integer")

        combination_id = raw.get("variation_combination_id")
        lines.append(ReturnLineRequest(
            product_id=coerce_int(raw.get("product_id"), f"items[{index}].product_id"),
            quantity=quantity,
            variation_combination_id=(
                None if combination_id in (None, "")
                else coerce_int(combination_id, f"items[{index}].variation_combination_id")
            ),
            reason=raw.get("reason") or None,
        ))
    return lines


# =============================================================================
# CREATE RETURN
# =============================================================================

def create_return(
    sale_id: int,
    payload: dict,
    *,
    processed_by_id: str,
    processed_by_name: str,
) -> dict:
    """
    Validate and record a return against a sale.

    Returns:
        Summary dict: sale_id, returned_items, total_refund_cents,
        refund_method, processed_by, processed_at

    Raises:
        SaleNotFound: sale does not exist
        LineNotFound: no sale line matches (product, variation) exactly
        OverReturn: cumulative returned quantity would exceed the sold quantity
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    requests = _parse_lines(payload)
    reason = payload.get("reason") or None
    refund_method = payload.get("refund_method") or "cash"
    if refund_method not in REFUND_METHODS:
        raise ValidationError(f"refund_method must be one of: {', '.join(REFUND_METHODS)}")

    def _op() -> dict:
        begin_write()
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise SaleNotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})

        returned: dict[tuple[int, int | None], int] = {}
        for item in sale.returned_items:
            key = (item.product_id, item.variation_combination_id)
            returned[key] = returned.get(key, 0) + item.quantity

        # Validate every line before writing anything
        matched = []
        pending: dict[tuple[int, int | None], int] = {}
        for req in requests:
            line = find_matching_line(sale.lines, req.product_id, req.variation_combination_id)
            if line is None:
                if req.variation_combination_id is not None:
                    message = "Product variation not found in original sale"
                else:
                    message = "Product not found in original sale"
                raise LineNotFound(
                    message,
                    details={
                        "product_id": req.product_id,
                        "variation_combination_id": req.variation_combination_id,
                    },
                )

            key = (req.product_id, req.variation_combination_id)
            already = returned.get(key, 0) + pending.get(key, 0)
            remaining = max(0, line.quantity - already)
            if req.quantity > remaining:
                raise OverReturn(
                    f"Cannot return {req.quantity} of {line.product_name}. "
                    f"Only {remaining} remaining to return.",
                    details={
                        "product_id": req.product_id,
                        "variation_combination_id": req.variation_combination_id,
                        "requested": req.quantity,
                        "remaining": remaining,
                    },
                )

            matched.append((req, line, already))
            pending[key] = pending.get(key, 0) + req.quantity

        processed_at = utcnow()
        created: list[ReturnedItem] = []
        total_refund = 0

        for req, line, already in matched:
            refund = prorated_refund(line.total_price_cents, line.quantity, already, req.quantity)
            total_refund += refund

            item = ReturnedItem(
                sale_line_id=line.id,
                product_id=line.product_id,
                variation_combination_id=line.variation_combination_id,
                product_name=line.product_name,
                sku=line.sku,
                variations=line.variations,
                quantity=req.quantity,
                unit_price_cents=line.unit_price_cents,
                total_price_cents=refund,
                returned_at=processed_at,
                reason=req.reason or reason,
                refund_method=refund_method,
                processed_by_id=processed_by_id,
                processed_by_name=processed_by_name,
            )
            sale.returned_items.append(item)
            created.append(item)

            try:
                stock_service.adjust_stock(line.product_id, line.variation_combination_id, req.quantity)
            except NotFoundError:
                current_app.logger.warning(
                    "Stock not restored for return on sale %s: product %s / combination %s no longer exists",
                    sale.invoice_number, line.product_id, line.variation_combination_id,
                )

        # Negative adjustment lines are not returnable and do not count here
        original_qty = sum(line.quantity for line in sale.lines if line.quantity > 0)
        returned_qty = sum(returned.values()) + sum(pending.values())
        sale.status = derive_status(sale.status, original_qty, returned_qty)
        # Bump version_id even when status is unchanged
        sale.updated_at = processed_at

        if sale.customer_id is not None:
            customer = lock_for_update(
                db.session.query(Customer).filter_by(id=sale.customer_id)
            ).first()
            if customer is not None:
                customer_service.apply_refund(customer, refund_cents=total_refund)

        db.session.commit()

        return {
            "sale_id": sale.id,
            "invoice_number": sale.invoice_number,
            "status": sale.status,
            "returned_items": [item.to_dict() for item in created],
            "total_refund_cents": total_refund,
            "refund_method": refund_method,
            "processed_by": {"id": processed_by_id, "name": processed_by_name},
            "processed_at": to_utc_z(processed_at),
        }

    summary = run_with_retry(_op)
    current_app.logger.info(
        "Return recorded on sale %s (id=%s, refund_cents=%s, status=%s)",
        summary["invoice_number"], summary["sale_id"], summary["total_refund_cents"], summary["status"],
    )
    return summary


# =============================================================================
# READ
# =============================================================================

def list_returns(*, page=None, limit=None, start_date: str | None = None, end_date: str | None = None) -> dict:
    """Sales with at least one returned item, optionally within a return date range."""
    conditions = []
    try:
        start = parse_iso_datetime(start_date)
        end = parse_iso_datetime(end_date)
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 dates")
    if start is not None:
        conditions.append(ReturnedItem.returned_at >= start)
    if end is not None:
        conditions.append(ReturnedItem.returned_at <= end)

    criterion = and_(*conditions) if conditions else None
    query = db.session.query(Sale).filter(
        Sale.returned_items.any(criterion) if criterion is not None else Sale.returned_items.any()
    )
    rows, pagination = paginate(query.order_by(Sale.updated_at.desc(), Sale.id.desc()), page, limit)

    return {
        "returns": [
            {
                **sale.to_dict(),
                "total_refunded_cents": sum(r.total_price_cents for r in sale.returned_items),
            }
            for sale in rows
        ],
        "pagination": pagination,
    }


def get_return_details(sale_id: int) -> dict:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    if not sale.returned_items:
        raise NotFoundError("No returns found for this sale", details={"sale_id": sale_id})

    return {
        "sale_id": sale.id,
        "invoice_number": sale.invoice_number,
        "status": sale.status,
        "customer_info": sale.to_dict()["customer_info"],
        "returned_items": [r.to_dict() for r in sale.returned_items],
        "total_refunded_cents": sum(r.total_price_cents for r in sale.returned_items),
        "total_returned_quantity": sum(r.quantity for r in sale.returned_items),
    }


TOP_RETURNED_LIMIT = 10


def get_return_summary(*, start_date: str | None = None, end_date: str | None = None) -> dict:
    """
    Aggregate returned items, optionally within a return date range.

    summary counts returned-item records (one per line per return request);
    top_returned_products ranks product/variation keys by units returned.
    """
    try:
        start = parse_iso_datetime(start_date)
        end = parse_iso_datetime(end_date)
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 dates")

    conditions = []
    if start is not None:
        conditions.append(ReturnedItem.returned_at >= start)
    if end is not None:
        conditions.append(ReturnedItem.returned_at <= end)

    total_returns, total_refund = (
        db.session.query(
            func.count(ReturnedItem.id),
            func.coalesce(func.sum(ReturnedItem.total_price_cents), 0),
        )
        .filter(*conditions)
        .one()
    )

    returned_units = func.sum(ReturnedItem.quantity).label("return_count")
    rows = (
        db.session.query(
            ReturnedItem.product_id,
            ReturnedItem.variation_combination_id,
            func.max(ReturnedItem.product_name).label("product_name"),
            returned_units,
            func.sum(ReturnedItem.total_price_cents).label("refund_cents"),
        )
        .filter(*conditions)
        .group_by(ReturnedItem.product_id, ReturnedItem.variation_combination_id)
        .order_by(returned_units.desc(), ReturnedItem.product_id.asc())
        .limit(TOP_RETURNED_LIMIT)
        .all()
    )

    return {
        "summary": {
            "total_returns": total_returns,
            "total_refund_cents": int(total_refund),
            "average_refund_cents": round(total_refund / total_returns) if total_returns else 0,
        },
        "top_returned_products": [
            {
                "product_id": row.product_id,
                "variation_combination_id": row.variation_combination_id,
                "product_name": row.product_name,
                "return_count": int(row.return_count),
                "refund_cents": int(row.refund_cents),
            }
            for row in rows
        ],
    }
