from __future__ import annotations

import secrets
import string
import time

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateSku, InsufficientStock
from ..extensions import db
from ..models import Product, VariationCombination
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    coerce_amount_cents,
    coerce_int,
    parse_json_field,
    validate_payload,
)
from .concurrency import begin_write, run_with_retry
from .sales_service import paginate
from .settings_service import SaleSettings, get_sale_settings
from .stock_service import adjust_stock, available_stock, get_product_or_404, resolve_combination
from .variation_service import build_combination_label, generate_combination_sku, normalize_variations


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "description", "category",
        "purchase_price_cents", "selling_price_cents",
        "stock", "min_stock", "unit", "image_url", "is_active",
    },
    required_on_create={"sku", "name", "category", "selling_price_cents"},
)

BASE36 = string.digits + string.ascii_lowercase


def generate_barcode() -> str:
    """Epoch milliseconds followed by 5 random base-36 characters."""
    suffix = "".join(secrets.choice(BASE36) for _ in range(5))
    return f"{int(time.time() * 1000)}{suffix}"


def _parse_combinations(raw, product_sku: str, default_price: int) -> list[dict]:
    if raw in (None, ""):
        return []
    if not isinstance(raw, list):
        raise ValidationError("variation_combinations must be a list")

    combos = []
    seen_skus = set()
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"variation_combinations[{index}] must be an object")
        variations = normalize_variations(item.get("variations"), f"variation_combinations[{index}].variations")
        if not variations:
            raise ValidationError(f"variation_combinations[{index}].variations cannot be empty")

        sku = (item.get("sku") or "").strip() or generate_combination_sku(product_sku, variations)
        if sku in seen_skus:
            raise DuplicateSku(f"Duplicate combination SKU {sku}", details={"sku": sku})
        seen_skus.add(sku)

        price = item.get("price_cents")
        combos.append({
            "position": index,
            "variations": variations,
            "combination_name": (item.get("combination_name") or "").strip() or build_combination_label(variations),
            "sku": sku,
            "price_cents": default_price if price in (None, "") else coerce_amount_cents(
                price, f"variation_combinations[{index}].price_cents"
            ),
            "stock": coerce_int(item.get("stock") or 0, f"variation_combinations[{index}].stock"),
            "is_active": bool(item.get("is_active", True)),
        })
    return combos


def create_product(payload: dict) -> Product:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    fields = {k: v for k, v in payload.items() if k != "variation_combinations"}
    patch = validate_payload(model=Product, payload=fields, policy=PRODUCT_POLICY, partial=False)
    patch.setdefault("barcode", None)
    if not patch["barcode"]:
        patch["barcode"] = generate_barcode()

    combos = _parse_combinations(
        payload.get("variation_combinations"),
        patch["sku"],
        patch["selling_price_cents"],
    )

    def _op():
        if db.session.query(Product.id).filter_by(sku=patch["sku"]).first() is not None:
            raise DuplicateSku("Product with this SKU already exists", details={"sku": patch["sku"]})

        product = Product(**patch)
        for combo in combos:
            product.variation_combinations.append(VariationCombination(**combo))
        db.session.add(product)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise DuplicateSku(
                "Product SKU, barcode or combination SKU already exists",
                details={"sku": patch["sku"], "barcode": patch["barcode"]},
            ) from exc
        return product

    return run_with_retry(_op)


def get_product(product_id: int) -> Product:
    return get_product_or_404(product_id)


def list_products(*, page=None, limit=None, search=None, category=None, include_inactive=False) -> dict:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category:
        query = query.filter(Product.category == category)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(like), Product.sku.ilike(like), Product.barcode.ilike(like)))

    rows, pagination = paginate(query.order_by(Product.name.asc(), Product.id.asc()), page, limit)
    return {
        "products": [p.to_dict() for p in rows],
        "pagination": pagination,
    }


# =============================================================================
# MANUAL STOCK ADJUSTMENT
# =============================================================================

def _parse_adjustments(payload) -> list[tuple[int, int | None, int]]:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    items = parse_json_field(payload.get("items"), "items")
    if not isinstance(items, list) or not items:
        raise ValidationError("Stock adjustment must contain at least one item")

    adjustments = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if item.get("product_id") in (None, ""):
            raise ValidationError(f"items[{index}].product_id is required")
        delta = coerce_int(item.get("delta"), f"items[{index}].delta")
        if delta == 0:
            raise ValidationError(f"items[{index}].delta cannot be zero")
        combination_id = item.get("variation_combination_id")
        adjustments.append((
            coerce_int(item.get("product_id"), f"items[{index}].product_id"),
            None if combination_id in (None, "") else coerce_int(
                combination_id, f"items[{index}].variation_combination_id"
            ),
            delta,
        ))
    return adjustments


def adjust_stock_levels(payload: dict, *, settings: SaleSettings | None = None) -> list[dict]:
    """
    Apply signed stock deltas to products or variation combinations.

    All items succeed or none do. A delta that would take stock below zero
    is refused unless the out-of-stock override is on.

    Returns:
        The resulting stock level per adjusted item, in request order.
    """
    adjustments = _parse_adjustments(payload)
    if settings is None:
        settings = get_sale_settings()

    def _op() -> list[dict]:
        begin_write()
        projected: dict[tuple[int, int | None], int] = {}
        for product_id, combination_id, delta in adjustments:
            product = get_product_or_404(product_id)
            combination = None
            if combination_id is not None:
                combination = resolve_combination(product, combination_id)

            key = (product_id, combination_id)
            if key not in projected:
                projected[key] = available_stock(product, combination)
            projected[key] += delta
            if projected[key] < 0 and not settings.override_out_of_stock:
                available = projected[key] - delta
                raise InsufficientStock(
                    f"Insufficient stock for {product.name}. Available: {available}, Requested: {-delta}",
                    details={
                        "product_id": product_id,
                        "variation_combination_id": combination_id,
                        "available": available,
                        "requested": -delta,
                    },
                )

        for product_id, combination_id, delta in adjustments:
            adjust_stock(product_id, combination_id, delta)
        db.session.commit()

        return [
            {"product_id": product_id, "variation_combination_id": combination_id, "stock": stock}
            for (product_id, combination_id), stock in projected.items()
        ]

    levels = run_with_retry(_op)
    current_app.logger.info("Manual stock adjustment applied to %s item(s)", len(levels))
    return levels
