from __future__ import annotations

from ..extensions import db
from storepos.time_utils import to_utc_z


class SequenceCounter(db.Model):
    """
    Durable named counter.

    WHY: Invoice numbers must be unique under concurrent sales. The counter
    row is only ever advanced with a single UPDATE ... SET sequence = sequence + 1.
    """
    __tablename__ = "sequence_counters"

    name = db.Column(db.String(64), primary_key=True)
    sequence = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "sequence": self.sequence,
            "updated_at": to_utc_z(self.updated_at),
        }
