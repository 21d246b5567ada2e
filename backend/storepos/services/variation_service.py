# Overview: Variation map normalization, display labels and line matching.

"""
Variations are ordered (key, value) pairs, e.g. [["Color", "Red"], ["Size", "L"]].

Clients may send a JSON object (insertion order is kept) or a list of pairs;
both normalize to the list form before anything is stored or compared.
"""

from __future__ import annotations

from typing import Any, Iterable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product
from ..validation import ValidationError


def normalize_variations(raw: Any, field: str = "variations") -> list[list[str]]:
    if raw is None or raw == "":
        return []
    if isinstance(raw, dict):
        pairs = raw.items()
    elif isinstance(raw, (list, tuple)):
        pairs = raw
    else:
        raise ValidationError(f"{field} must be an object or a list of [key, value] pairs")

    normalized: list[list[str]] = []
    for pair in pairs:
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise ValidationError(f"{field} must be an object or a list of [key, value] pairs")
        key, value = pair
        if key is None or str(key).strip() == "":
            raise ValidationError(f"{field} keys cannot be blank")
        normalized.append([str(key).strip(), "" if value is None else str(value).strip()])
    return normalized


def format_display(product_name: str, variations: Iterable | None) -> str:
    """
    "Premium T-Shirt - Color: Red, Size: Large", or just the product name
    when there are no variations.
    """
    pairs = list(variations or [])
    if not pairs:
        return product_name
    rendered = ", ".join(f"{key}: {value}" for key, value in pairs)
    return f"{product_name} - {rendered}"


def build_combination_label(variations: Iterable) -> str:
    return " / ".join(str(value) for _, value in variations)


def generate_combination_sku(product_sku: str, variations: Iterable) -> str:
    parts = [str(value).upper().replace(" ", "-") for _, value in variations]
    return "-".join([product_sku, *parts])


def lines_match(line_product_id: int, line_combination_id: int | None,
                product_id: int, combination_id: int | None) -> bool:
    """
    Exact-key match between a sale line and a return line.

    A flat return line only matches a flat sale line, and a variation return
    line only matches the same combination id.
    """
    if line_product_id != product_id:
        return False
    if combination_id is None:
        return line_combination_id is None
    return line_combination_id == combination_id


def find_matching_line(lines, product_id: int, combination_id: int | None):
    """First returnable line with the exact key; adjustment lines (quantity <= 0) are skipped."""
    for line in lines:
        if line.quantity <= 0:
            continue
        if lines_match(line.product_id, line.variation_combination_id, product_id, combination_id):
            return line
    return None


def resolve_variation_details(line: dict) -> dict:
    """
    Enrich a serialized sale line with the live combination state.

    Best-effort: a deleted product or combination, or a failed lookup,
    leaves the line with only its point-in-time snapshot.
    """
    enriched = dict(line)
    variations = line.get("variations") or []
    enriched["has_variations"] = bool(variations)
    enriched["display_name"] = format_display(line.get("product_name", ""), variations)

    combination_id = line.get("variation_combination_id")
    if combination_id is None:
        return enriched

    try:
        product = db.session.get(Product, line.get("product_id"))
        combination = product.find_combination(combination_id) if product else None
    except SQLAlchemyError:
        current_app.logger.warning(
            "Variation lookup failed for product %s combination %s",
            line.get("product_id"), combination_id, exc_info=True,
        )
        return enriched

    if combination is None:
        return enriched

    enriched["variation_details"] = {
        "combination_id": combination.id,
        "combination_name": combination.combination_name,
        "sku": combination.sku,
        "price_cents": combination.price_cents,
        "stock": combination.stock,
        "is_active": combination.is_active,
        "variations": variations,
    }
    return enriched
