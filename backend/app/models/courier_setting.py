from datetime import datetime

from app.extensions import db


DEFAULT_BASE_PRICE_PER_BOX = 1200
DEFAULT_MIN_TOTAL = 0
DEFAULT_COMMISSION_RATE = 10
DEFAULT_URGENT_COMMISSION_RATE = 10
DEFAULT_URGENT_SURCHARGE_RATE = 0


class CourierSetting(db.Model):
    __tablename__ = "courier_settings"

    id = db.Column(db.Integer, primary_key=True)
    # NULL courier_name is the category default row.
    courier_name = db.Column(db.String(120), nullable=True, index=True)
    category = db.Column(db.String(64), nullable=False, default="", index=True)

    base_price_per_box = db.Column(db.Integer, nullable=False, default=DEFAULT_BASE_PRICE_PER_BOX)
    min_total = db.Column(db.Integer, nullable=False, default=DEFAULT_MIN_TOTAL)
    # Percentages, 0..100.
    commission_rate = db.Column(db.Integer, nullable=False, default=DEFAULT_COMMISSION_RATE)
    urgent_commission_rate = db.Column(db.Integer, nullable=False, default=DEFAULT_URGENT_COMMISSION_RATE)
    urgent_surcharge_rate = db.Column(db.Integer, nullable=False, default=DEFAULT_URGENT_SURCHARGE_RATE)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "courier_name": self.courier_name,
            "category": self.category or "",
            "base_price_per_box": int(self.base_price_per_box or 0),
            "min_total": int(self.min_total or 0),
            "commission_rate": int(self.commission_rate or 0),
            "urgent_commission_rate": int(self.urgent_commission_rate or 0),
            "urgent_surcharge_rate": int(self.urgent_surcharge_rate or 0),
            "is_active": bool(self.is_active),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
