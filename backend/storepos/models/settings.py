from __future__ import annotations

from ..extensions import db
from storepos.time_utils import to_utc_z


class StoreSettings(db.Model):
    """
    Store-wide settings (singleton row).

    override_out_of_stock: when True, sales skip the stock sufficiency
    check and stock may go negative.
    """
    __tablename__ = "store_settings"

    id = db.Column(db.Integer, primary_key=True)
    store_name = db.Column(db.String(255), nullable=False, default="My Store")
    currency = db.Column(db.String(8), nullable=False, default="LKR")
    override_out_of_stock = db.Column(db.Boolean, nullable=False, default=False)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "store_name": self.store_name,
            "currency": self.currency,
            "override_out_of_stock": self.override_out_of_stock,
            "updated_at": to_utc_z(self.updated_at),
        }
