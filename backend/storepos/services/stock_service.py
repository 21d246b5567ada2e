# Overview: Catalog stock lookups and atomic stock adjustments.

"""
Stock Service

Every mutation is a single UPDATE ... SET stock = stock + :delta so that
concurrent sales and returns on the same SKU never lose an update. The ORM
object is expired afterwards so later reads in the same session see the
committed value.

A line's stock lives either on the product (flat) or on one of its
variation combinations; the presence of variation_combination_id decides.
"""

from __future__ import annotations

from sqlalchemy import update

from ..errors import ProductNotFound, VariationNotFound
from ..extensions import db
from ..models import Product, VariationCombination


def get_product_or_404(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(
            f"Product {product_id} not found",
            details={"product_id": product_id},
        )
    return product


def resolve_combination(product: Product, combination_id: int) -> VariationCombination:
    """Find a combination owned by `product`, or raise VariationNotFound."""
    combination = product.find_combination(combination_id)
    if combination is None:
        raise VariationNotFound(
            f"Variation combination not found for product {product.name}",
            details={"product_id": product.id, "variation_combination_id": combination_id},
        )
    return combination


def available_stock(product: Product, combination: VariationCombination | None) -> int:
    if combination is not None:
        return combination.stock
    return product.stock


def adjust_stock(product_id: int, combination_id: int | None, delta: int) -> None:
    """
    Add `delta` to the authoritative stock field (negative decrements).

    Runs in the caller's transaction. No floor is enforced here: sufficiency
    is checked before any mutation, and the out-of-stock override allows
    negative stock on purpose.
    """
    if delta == 0:
        return

    if combination_id is not None:
        stmt = (
            update(VariationCombination)
            .where(
                VariationCombination.id == combination_id,
                VariationCombination.product_id == product_id,
            )
            .values(stock=VariationCombination.stock + delta)
        )
    else:
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + delta, version_id=Product.version_id + 1)
        )

    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    if not result.rowcount:
        if combination_id is not None:
            raise VariationNotFound(
                "Variation combination not found",
                details={"product_id": product_id, "variation_combination_id": combination_id},
            )
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})

    _expire_cached(product_id, combination_id)


def _expire_cached(product_id: int, combination_id: int | None) -> None:
    identity_map = db.session.identity_map
    for model, key in ((Product, product_id), (VariationCombination, combination_id)):
        if key is None:
            continue
        obj = identity_map.get(db.session.identity_key(model, key))
        if obj is not None:
            db.session.expire(obj)
