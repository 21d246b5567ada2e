from __future__ import annotations

from flask import current_app

from ..errors import CustomerNotFound
from ..extensions import db
from ..models import Customer
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import lock_for_update, run_with_retry


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address", "loyalty_points", "is_active"},
    required_on_create={"name"},
)


def points_for_amount(amount_cents: int) -> int:
    """1 point per LOYALTY_POINT_UNIT_CENTS spent (floor); never negative."""
    unit = current_app.config.get("LOYALTY_POINT_UNIT_CENTS", 10000)
    if amount_cents <= 0:
        return 0
    return amount_cents // unit


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFound(
            f"Customer {customer_id} not found",
            details={"customer_id": customer_id},
        )
    return customer


def lock_customer(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if customer is None:
        raise CustomerNotFound(
            f"Customer {customer_id} not found",
            details={"customer_id": customer_id},
        )
    return customer


def create_customer(payload: dict) -> Customer:
    patch = validate_payload(
        model=Customer,
        payload=payload,
        policy=CUSTOMER_POLICY,
        partial=False,
    )

    def _op():
        customer = Customer(**patch)
        db.session.add(customer)
        db.session.commit()
        return customer

    return run_with_retry(_op)


# =============================================================================
# LOYALTY / PURCHASE TOTALS (caller's transaction)
# =============================================================================

def apply_sale(customer: Customer, *, total_cents: int, points_used: int, points_earned: int) -> None:
    customer.loyalty_points = max(0, customer.loyalty_points - points_used + points_earned)
    customer.total_purchases_cents = max(0, customer.total_purchases_cents + total_cents)
    customer.last_purchase_date = utcnow()


def apply_refund(customer: Customer, *, refund_cents: int) -> int:
    """Reverse loyalty and purchase totals for a refund; returns points deducted."""
    points = points_for_amount(refund_cents)
    customer.loyalty_points = max(0, customer.loyalty_points - points)
    customer.total_purchases_cents = max(0, customer.total_purchases_cents - refund_cents)
    return points
