"""
Purchase Order Service

Records goods received from suppliers. Recording an order adds each line's
quantity to the authoritative stock field (variation combination when the
line names one, otherwise the product's flat stock).

STOCK BOOKKEEPING:
- create: +quantity for every line
- update with new items: -old quantity for every stored line, then
  +new quantity for every new line, in one transaction
- delete: -quantity for every stored line

A revert against a product or combination that no longer exists is logged
and skipped; everything else is validated before the commit, and a failure
rolls back every stock change made by the request.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import NotFoundError, PurchaseOrderNotFound
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderLine
from ..time_utils import parse_iso_datetime
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    coerce_amount_cents,
    coerce_int,
    parse_json_field,
    validate_payload,
)
from . import stock_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .sales_service import paginate


PURCHASE_ORDER_POLICY = ModelValidationPolicy(
    writable_fields={"supplier", "date", "notes"},
    required_on_create={"supplier", "date"},
)


@dataclass
class ReceivedLine:
    product_id: int
    quantity: int
    variation_combination_id: int | None = None
    unit_cost_cents: int | None = None


def _split_payload(payload) -> tuple[dict, object]:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    header = {k: v for k, v in payload.items() if k != "items"}
    return header, payload.get("items")


def _parse_lines(raw) -> list[ReceivedLine]:
    items = parse_json_field(raw, "items")
    if not isinstance(items, list) or not items:
        raise ValidationError("Purchase order must contain at least one item")

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if item.get("product_id") in (None, ""):
            raise ValidationError(f"items[{index}].product_id is required")

        quantity = coerce_int(item.get("quantity"), f"items[{index}].quantity")
        if quantity < 1:
            raise ValidationError(f"items[{index}].quantity must be at least 1")

        combination_id = item.get("variation_combination_id")
        unit_cost = item.get("unit_cost_cents")
        lines.append(ReceivedLine(
            product_id=coerce_int(item.get("product_id"), f"items[{index}].product_id"),
            quantity=quantity,
            variation_combination_id=(
                None if combination_id in (None, "")
                else coerce_int(combination_id, f"items[{index}].variation_combination_id")
            ),
            unit_cost_cents=(
                None if unit_cost in (None, "")
                else coerce_amount_cents(unit_cost, f"items[{index}].unit_cost_cents")
            ),
        ))
    return lines


def _receive(order: PurchaseOrder, lines: list[ReceivedLine]) -> None:
    """Attach `lines` to `order` and add their quantities to stock."""
    for position, line in enumerate(lines):
        product = stock_service.get_product_or_404(line.product_id)
        sku = product.sku
        if line.variation_combination_id is not None:
            sku = stock_service.resolve_combination(product, line.variation_combination_id).sku

        order.lines.append(PurchaseOrderLine(
            position=position,
            product_id=product.id,
            variation_combination_id=line.variation_combination_id,
            product_name=product.name,
            sku=sku,
            quantity=line.quantity,
            unit_cost_cents=line.unit_cost_cents,
        ))
        stock_service.adjust_stock(product.id, line.variation_combination_id, line.quantity)


def _revert(order: PurchaseOrder) -> None:
    """Take back the stock every stored line added."""
    for line in order.lines:
        try:
            stock_service.adjust_stock(line.product_id, line.variation_combination_id, -line.quantity)
        except NotFoundError:
            current_app.logger.warning(
                "Stock not reverted for purchase order %s line %s: product %s / combination %s no longer exists",
                order.id, line.id, line.product_id, line.variation_combination_id,
            )


def _lock_order(order_id: int) -> PurchaseOrder:
    order = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=order_id)).first()
    if order is None:
        raise PurchaseOrderNotFound(
            f"Purchase order {order_id} not found",
            details={"purchase_order_id": order_id},
        )
    return order


# =============================================================================
# WRITE
# =============================================================================

def create_purchase_order(payload: dict, *, created_by_id: str, created_by_name: str) -> PurchaseOrder:
    """
    Record a purchase order and receive its items into stock.

    Raises:
        ValidationFailed: missing supplier/date, empty or malformed items
        ProductNotFound, VariationNotFound: an item does not exist
    """
    header, raw_items = _split_payload(payload)
    patch = validate_payload(model=PurchaseOrder, payload=header, policy=PURCHASE_ORDER_POLICY, partial=False)
    lines = _parse_lines(raw_items)

    def _op() -> PurchaseOrder:
        begin_write()
        order = PurchaseOrder(**patch, created_by_id=created_by_id, created_by_name=created_by_name)
        db.session.add(order)
        _receive(order, lines)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Purchase order %s recorded from %s (%s units)",
        order.id, order.supplier, order.total_quantity,
    )
    return order


def update_purchase_order(order_id: int, payload: dict) -> PurchaseOrder:
    """
    Update header fields. When `items` is present the stored lines are
    reverted out of stock and the new lines received in their place.
    """
    header, raw_items = _split_payload(payload)
    patch = validate_payload(model=PurchaseOrder, payload=header, policy=PURCHASE_ORDER_POLICY, partial=True)
    lines = _parse_lines(raw_items) if "items" in payload else None

    def _op() -> PurchaseOrder:
        begin_write()
        order = _lock_order(order_id)
        for key, value in patch.items():
            setattr(order, key, value)
        if lines is not None:
            _revert(order)
            order.lines.clear()
            db.session.flush()
            _receive(order, lines)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Purchase order %s updated", order.id)
    return order


def delete_purchase_order(order_id: int) -> None:
    def _op() -> None:
        begin_write()
        order = _lock_order(order_id)
        _revert(order)
        db.session.delete(order)
        db.session.commit()

    run_with_retry(_op)
    current_app.logger.info("Purchase order %s deleted and its stock reverted", order_id)


# =============================================================================
# READ
# =============================================================================

def get_purchase_order(order_id: int) -> PurchaseOrder:
    order = db.session.get(PurchaseOrder, order_id)
    if order is None:
        raise PurchaseOrderNotFound(
            f"Purchase order {order_id} not found",
            details={"purchase_order_id": order_id},
        )
    return order


def list_purchase_orders(*, page=None, limit=None, supplier=None, start_date=None, end_date=None) -> dict:
    query = db.session.query(PurchaseOrder)
    if supplier:
        like = f"%{supplier.strip()}%"
        query = query.filter(PurchaseOrder.supplier.ilike(like))
    try:
        start = parse_iso_datetime(start_date)
        end = parse_iso_datetime(end_date)
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 dates")
    if start is not None:
        query = query.filter(PurchaseOrder.date >= start)
    if end is not None:
        query = query.filter(PurchaseOrder.date <= end)

    rows, pagination = paginate(query.order_by(PurchaseOrder.date.desc(), PurchaseOrder.id.desc()), page, limit)
    return {
        "purchase_orders": [order.to_dict() for order in rows],
        "pagination": pagination,
    }
