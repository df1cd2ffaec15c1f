from datetime import datetime

from app.extensions import db


class CheckInRecord(db.Model):
    __tablename__ = "check_in_records"
    __table_args__ = (
        db.UniqueConstraint("helper_id", "requester_id", "check_in_date", name="uq_check_in_helper_requester_day"),
    )

    id = db.Column(db.Integer, primary_key=True)
    helper_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    requester_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    check_in_time = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    # Calendar day in KST, not the server's local day.
    check_in_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(24), nullable=False, default="checked_in")
    method = db.Column(db.String(16), nullable=False, default="order")

    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    address = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "helper_id": int(self.helper_id),
            "requester_id": int(self.requester_id),
            "order_id": int(self.order_id) if self.order_id is not None else None,
            "check_in_time": self.check_in_time.isoformat() if self.check_in_time else None,
            "check_in_date": self.check_in_date.isoformat() if self.check_in_date else None,
            "status": self.status or "checked_in",
            "method": self.method or "order",
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address or "",
        }
