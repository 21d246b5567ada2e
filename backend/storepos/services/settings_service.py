from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import StoreSettings
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import run_with_retry


SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={"store_name", "currency", "override_out_of_stock"},
)


@dataclass(frozen=True)
class SaleSettings:
    """Settings snapshot read once at the top of a sale."""
    override_out_of_stock: bool


def _get_or_create() -> tuple[StoreSettings, bool]:
    settings = db.session.query(StoreSettings).order_by(StoreSettings.id.asc()).first()
    if settings is not None:
        return settings, False
    settings = StoreSettings()
    db.session.add(settings)
    db.session.flush()
    return settings, True


def get_store_settings() -> StoreSettings:
    """Return the singleton settings row, creating defaults on first read."""
    settings, created = _get_or_create()
    if created:
        db.session.commit()
    return settings


def get_sale_settings() -> SaleSettings:
    settings = db.session.query(StoreSettings).order_by(StoreSettings.id.asc()).first()
    return SaleSettings(
        override_out_of_stock=bool(settings and settings.override_out_of_stock),
    )


def update_store_settings(payload: dict) -> StoreSettings:
    patch = validate_payload(
        model=StoreSettings,
        payload=payload,
        policy=SETTINGS_POLICY,
        partial=True,
    )

    def _op():
        settings, _ = _get_or_create()
        for key, value in patch.items():
            setattr(settings, key, value)
        db.session.commit()
        return settings

    return run_with_retry(_op)
