"""
Sales Service - validate, number and commit a sale in one transaction

FLOW (createSale):
1. Parse and coerce the request (no database access)
2. BEGIN (IMMEDIATE on SQLite), lock customer and product rows
3. Validate every line: product exists, combination exists, stock suffices
4. Allocate invoice number, persist sale, decrement stock, update customer
5. COMMIT

A validation failure in step 3 raises before anything is written, and any
failure after that rolls the whole transaction back, including the invoice
counter increment.

NEGATIVE QUANTITIES:
A line with quantity < 0 is an on-the-spot adjustment recorded on the sale
itself: it skips the sufficiency check and increases stock. It is distinct
from return_service.create_return, which records an audited return against
a historical sale.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import delete, or_

from ..errors import InsufficientStock, NotFoundError, ProductNotFound, SaleNotFound
from ..extensions import db
from ..models import Product, Sale, SaleLine, SalePayment, ReturnedItem
from ..models.sales import PAYMENT_METHODS, SALE_STATUS_COMPLETED
from ..validation import ValidationError, coerce_amount_cents, coerce_int, parse_json_field
from ..time_utils import parse_iso_datetime
from . import customer_service, sequence_service, stock_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .settings_service import SaleSettings, get_sale_settings
from .variation_service import (
    find_matching_line,
    format_display,
    normalize_variations,
    resolve_variation_details,
)


DISCOUNT_TYPES = ("fixed", "percentage")
DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


@dataclass
class LineRequest:
    product_id: int
    quantity: int
    unit_price_cents: int
    total_price_cents: int
    discount_cents: int = 0
    discount_type: str = "fixed"
    product_name: str | None = None
    sku: str | None = None
    variation_combination_id: int | None = None
    variations: list[list[str]] = field(default_factory=list)


@dataclass
class SaleRequest:
    lines: list[LineRequest]
    subtotal_cents: int
    total_cents: int
    discount_cents: int = 0
    discount_type: str = "fixed"
    tax_cents: int = 0
    loyalty_points_used: int = 0
    customer_id: int | None = None
    customer_info: dict = field(default_factory=dict)
    payments: list[dict] = field(default_factory=list)
    notes: str | None = None


# =============================================================================
# REQUEST PARSING
# =============================================================================

def _optional_int(value, field_name: str) -> int | None:
    if value is None or value == "":
        return None
    return coerce_int(value, field_name)


def _discount_type(value, field_name: str) -> str:
    if value in (None, ""):
        return "fixed"
    if value not in DISCOUNT_TYPES:
        raise ValidationError(f"{field_name} must be one of: {', '.join(DISCOUNT_TYPES)}")
    return value


def _parse_line(raw: dict, index: int) -> LineRequest:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")

    prefix = f"items[{index}]"
    product_id = raw.get("product_id")
    if product_id in (None, ""):
        raise ValidationError(f"{prefix}.product_id is required")
    if raw.get("quantity") in (None, ""):
        raise ValidationError(f"{prefix}.quantity is required")

    quantity = coerce_int(raw.get("quantity"), f"{prefix}.quantity")
    unit_price_cents = coerce_amount_cents(raw.get("unit_price_cents", 0), f"{prefix}.unit_price_cents")
    discount_cents = coerce_amount_cents(raw.get("discount_cents", 0), f"{prefix}.discount_cents")

    total_raw = raw.get("total_price_cents")
    if total_raw in (None, ""):
        total_price_cents = unit_price_cents * quantity - discount_cents
    else:
        total_price_cents = coerce_amount_cents(total_raw, f"{prefix}.total_price_cents", allow_negative=True)

    return LineRequest(
        product_id=coerce_int(product_id, f"{prefix}.product_id"),
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        total_price_cents=total_price_cents,
        discount_cents=discount_cents,
        discount_type=_discount_type(raw.get("discount_type"), f"{prefix}.discount_type"),
        product_name=(raw.get("product_name") or None),
        sku=(raw.get("sku") or None),
        variation_combination_id=_optional_int(
            raw.get("variation_combination_id"), f"{prefix}.variation_combination_id"
        ),
        variations=normalize_variations(
            parse_json_field(raw.get("variations"), f"{prefix}.variations"),
            f"{prefix}.variations",
        ),
    )


def _parse_payment(raw: dict, index: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"payments[{index}] must be an object")
    method = raw.get("method")
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payments[{index}].method must be one of: {', '.join(PAYMENT_METHODS)}")
    return {
        "method": method,
        "amount_cents": coerce_amount_cents(raw.get("amount_cents", 0), f"payments[{index}].amount_cents"),
        "reference": raw.get("reference") or None,
    }


def parse_sale_request(payload: dict) -> SaleRequest:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    items = parse_json_field(payload.get("items"), "items")
    if not isinstance(items, list) or not items:
        raise ValidationError("Sale must contain at least one item")

    payments = parse_json_field(payload.get("payments") or [], "payments")
    if not isinstance(payments, list):
        raise ValidationError("payments must be a list")

    customer_info = parse_json_field(payload.get("customer_info") or {}, "customer_info")
    if not isinstance(customer_info, dict):
        raise ValidationError("customer_info must be an object")

    if payload.get("total_cents") in (None, ""):
        raise ValidationError("total_cents is required")

    lines = [_parse_line(raw, i) for i, raw in enumerate(items)]
    subtotal_raw = payload.get("subtotal_cents")
    if subtotal_raw in (None, ""):
        subtotal_cents = sum(line.total_price_cents for line in lines)
    else:
        subtotal_cents = coerce_amount_cents(subtotal_raw, "subtotal_cents", allow_negative=True)

    loyalty_points_used = coerce_int(payload.get("loyalty_points_used") or 0, "loyalty_points_used")
    if loyalty_points_used < 0:
        raise ValidationError("loyalty_points_used must be >= 0")

    return SaleRequest(
        lines=lines,
        subtotal_cents=subtotal_cents,
        total_cents=coerce_amount_cents(payload.get("total_cents"), "total_cents", allow_negative=True),
        discount_cents=coerce_amount_cents(payload.get("discount_cents") or 0, "discount_cents"),
        discount_type=_discount_type(payload.get("discount_type"), "discount_type"),
        tax_cents=coerce_amount_cents(payload.get("tax_cents") or 0, "tax_cents"),
        loyalty_points_used=loyalty_points_used,
        customer_id=_optional_int(payload.get("customer_id"), "customer_id"),
        customer_info={k: customer_info.get(k) for k in ("name", "phone", "email")},
        payments=[_parse_payment(raw, i) for i, raw in enumerate(payments)],
        notes=payload.get("notes") or None,
    )


# =============================================================================
# VALIDATION (no writes)
# =============================================================================

def _validate_lines(
    request: SaleRequest,
    products: dict[int, Product],
    settings: SaleSettings,
) -> None:
    """
    Check every line before anything is written.

    Positive quantities for the same product/combination are summed, so two
    lines of one SKU cannot jointly oversell it.
    """
    requested: dict[tuple[int, int | None], int] = {}

    for line in request.lines:
        product = products.get(line.product_id)
        if product is None:
            raise ProductNotFound(
                f"Product {line.product_id} not found",
                details={"product_id": line.product_id},
            )

        combination = None
        if line.variation_combination_id is not None:
            combination = stock_service.resolve_combination(product, line.variation_combination_id)

        if line.quantity < 0 or settings.override_out_of_stock:
            continue

        key = (product.id, line.variation_combination_id)
        requested[key] = requested.get(key, 0) + line.quantity
        available = stock_service.available_stock(product, combination)

        if available < requested[key]:
            label = product.name
            if combination is not None:
                label = format_display(product.name, combination.variations)
            raise InsufficientStock(
                f"Insufficient stock for {label}. Available: {available}, Requested: {requested[key]}",
                details={
                    "product_id": product.id,
                    "variation_combination_id": line.variation_combination_id,
                    "available": available,
                    "requested": requested[key],
                },
            )


# =============================================================================
# CREATE
# =============================================================================

def create_sale(
    payload: dict,
    *,
    cashier_id: str,
    cashier_name: str,
    settings: SaleSettings | None = None,
) -> Sale:
    """
    Validate and commit a sale.

    Args:
        payload: sale request body (items, totals, payments, customer)
        cashier_id / cashier_name: authenticated principal
        settings: injected settings snapshot; read from the store when None

    Raises:
        ValidationFailed, ProductNotFound, VariationNotFound,
        CustomerNotFound, InsufficientStock, CounterUnavailable, StorageTimeout
    """
    request = parse_sale_request(payload)
    if settings is None:
        settings = get_sale_settings()

    def _op() -> Sale:
        begin_write()

        customer = None
        if request.customer_id is not None:
            customer = customer_service.lock_customer(request.customer_id)

        product_ids = sorted({line.product_id for line in request.lines})
        products = {
            p.id: p
            for p in lock_for_update(
                db.session.query(Product).filter(Product.id.in_(product_ids)).order_by(Product.id)
            ).all()
        }

        _validate_lines(request, products, settings)

        points_earned = customer_service.points_for_amount(request.total_cents)
        invoice_number = sequence_service.next_invoice_number()

        info = request.customer_info
        sale = Sale(
            invoice_number=invoice_number,
            customer_id=request.customer_id,
            customer_name=info.get("name") or (customer.name if customer else None),
            customer_phone=info.get("phone") or (customer.phone if customer else None),
            customer_email=info.get("email") or (customer.email if customer else None),
            subtotal_cents=request.subtotal_cents,
            discount_cents=request.discount_cents,
            discount_type=request.discount_type,
            tax_cents=request.tax_cents,
            total_cents=request.total_cents,
            loyalty_points_used=request.loyalty_points_used,
            loyalty_points_earned=points_earned,
            status=SALE_STATUS_COMPLETED,
            cashier_id=cashier_id,
            cashier_name=cashier_name,
            notes=request.notes,
        )

        for position, line in enumerate(request.lines):
            product = products[line.product_id]
            combination = product.find_combination(line.variation_combination_id)
            variations = line.variations
            if not variations and combination is not None:
                variations = [list(pair) for pair in combination.variations or []]

            sale.lines.append(SaleLine(
                position=position,
                product_id=product.id,
                product_name=line.product_name or product.name,
                sku=line.sku or (combination.sku if combination is not None else product.sku),
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_cents=line.discount_cents,
                discount_type=line.discount_type,
                total_price_cents=line.total_price_cents,
                variation_combination_id=line.variation_combination_id,
                variations=variations or None,
            ))

        for payment in request.payments:
            sale.payments.append(SalePayment(**payment))

        db.session.add(sale)
        db.session.flush()

        for line in request.lines:
            stock_service.adjust_stock(line.product_id, line.variation_combination_id, -line.quantity)

        if customer is not None:
            customer_service.apply_sale(
                customer,
                total_cents=request.total_cents,
                points_used=request.loyalty_points_used,
                points_earned=points_earned,
            )

        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    current_app.logger.info(
        "Sale %s committed (id=%s, total_cents=%s, lines=%d)",
        sale.invoice_number, sale.id, sale.total_cents, len(sale.lines),
    )
    return sale


# =============================================================================
# READ
# =============================================================================

def get_sale_or_404(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def serialize_sale(sale: Sale) -> dict:
    """Sale with every line enriched with live variation details."""
    return sale.to_dict(lines=[resolve_variation_details(line.to_dict()) for line in sale.lines])


def get_sale(sale_id: int) -> dict:
    return serialize_sale(get_sale_or_404(sale_id))


def _page_args(page, limit) -> tuple[int, int]:
    page = coerce_int(page, "page") if page not in (None, "") else 1
    limit = coerce_int(limit, "limit") if limit not in (None, "") else DEFAULT_PAGE_LIMIT
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    return page, min(limit, MAX_PAGE_LIMIT)


def paginate(query, page, limit) -> tuple[list, dict]:
    page, limit = _page_args(page, limit)
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return rows, {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit,
    }


def list_sales(
    *,
    page=None,
    limit=None,
    search: str | None = None,
    date: str | None = None,
    status: str | None = None,
) -> dict:
    """
    Newest first. `search` matches invoice number or customer name,
    `date` (YYYY-MM-DD) restricts to that UTC day.
    """
    query = db.session.query(Sale)

    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Sale.invoice_number.ilike(like), Sale.customer_name.ilike(like)))

    if status:
        query = query.filter(Sale.status == status)

    if date:
        try:
            day_start = parse_iso_datetime(date)
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD")
        if day_start is not None:
            day_start = datetime(day_start.year, day_start.month, day_start.day)
            query = query.filter(
                Sale.created_at >= day_start,
                Sale.created_at < day_start + timedelta(days=1),
            )

    rows, pagination = paginate(query.order_by(Sale.created_at.desc(), Sale.id.desc()), page, limit)
    return {
        "sales": [sale.to_dict() for sale in rows],
        "pagination": pagination,
    }


# =============================================================================
# DELETE (admin)
# =============================================================================

def _net_quantities(sale: Sale) -> list[tuple[SaleLine, int]]:
    """
    Quantity still out of stock per line: sold minus what was already
    returned. Returned units are attributed to the first matching line,
    the same line create_return matched them against.
    """
    net = {line.id: line.quantity for line in sale.lines}
    for item in sale.returned_items:
        line = None
        if item.sale_line_id is not None:
            line = next((l for l in sale.lines if l.id == item.sale_line_id), None)
        if line is None:
            line = find_matching_line(sale.lines, item.product_id, item.variation_combination_id)
        if line is not None:
            net[line.id] -= item.quantity
    return [(line, net[line.id]) for line in sale.lines]


def delete_sale(sale_id: int) -> None:
    """
    Delete a sale and put its net quantities back into stock.

    Lines whose product or combination has since been deleted are skipped.
    Customer loyalty and purchase totals are left untouched.
    """
    def _op():
        begin_write()
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise SaleNotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})

        for line, quantity in _net_quantities(sale):
            try:
                stock_service.adjust_stock(line.product_id, line.variation_combination_id, quantity)
            except NotFoundError:
                current_app.logger.warning(
                    "Stock not restored for deleted sale %s line %s: product %s no longer exists",
                    sale.invoice_number, line.id, line.product_id,
                )

        # Returned items reference sale lines; remove them before the cascade
        db.session.execute(delete(ReturnedItem).where(ReturnedItem.sale_id == sale.id))
        db.session.expire(sale, ["returned_items"])

        invoice_number = sale.invoice_number
        db.session.delete(sale)
        db.session.commit()
        return invoice_number

    invoice_number = run_with_retry(_op)
    current_app.logger.info("Sale %s deleted (id=%s)", invoice_number, sale_id)
