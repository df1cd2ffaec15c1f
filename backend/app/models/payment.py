from datetime import datetime

from app.extensions import db


class PaymentStatus:
    INITIATED = "initiated"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    purpose = db.Column(db.String(24), nullable=False, default="balance")
    amount = db.Column(db.Integer, nullable=False, default=0)
    provider_payment_id = db.Column(db.String(128), nullable=False, unique=True)
    transaction_id = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=PaymentStatus.INITIATED, index=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "purpose": self.purpose or "balance",
            "amount": int(self.amount or 0),
            "provider_payment_id": self.provider_payment_id,
            "transaction_id": self.transaction_id or "",
            "status": self.status or PaymentStatus.INITIATED,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
