from datetime import datetime

from app.extensions import db


class ClosingReport(db.Model):
    __tablename__ = "closing_reports"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True)
    helper_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    delivered_count = db.Column(db.Integer, nullable=False, default=0)
    returned_count = db.Column(db.Integer, nullable=False, default=0)
    other_count = db.Column(db.Integer, nullable=False, default=0)
    extra_costs = db.Column(db.Integer, nullable=False, default=0)

    supply_amount = db.Column(db.Integer, nullable=False, default=0)
    vat_amount = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Integer, nullable=False, default=0)

    memo = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def box_count(self) -> int:
        return int(self.delivered_count or 0) + int(self.returned_count or 0) + int(self.other_count or 0)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "helper_id": int(self.helper_id),
            "delivered_count": int(self.delivered_count or 0),
            "returned_count": int(self.returned_count or 0),
            "other_count": int(self.other_count or 0),
            "extra_costs": int(self.extra_costs or 0),
            "supply_amount": int(self.supply_amount or 0),
            "vat_amount": int(self.vat_amount or 0),
            "total_amount": int(self.total_amount or 0),
            "memo": self.memo or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
