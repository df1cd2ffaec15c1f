from __future__ import annotations

import enum
from datetime import datetime

from app.extensions import db


class DisputeStatus(str, enum.Enum):
    PENDING = "pending"
    REVIEWING = "reviewing"
    RESOLVED = "resolved"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, value) -> "DisputeStatus":
        if isinstance(value, cls):
            return value
        return cls((str(value or "")).strip().lower())


TERMINAL_DISPUTE_STATUSES = frozenset({DisputeStatus.RESOLVED, DisputeStatus.REJECTED})


class Dispute(db.Model):
    __tablename__ = "disputes"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    settlement_id = db.Column(db.Integer, db.ForeignKey("settlement_statements.id"), nullable=True, index=True)
    reporter_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    # count | amount | quality | other
    dispute_type = db.Column(db.String(32), nullable=False, default="count")
    status = db.Column(db.String(16), nullable=False, default=DisputeStatus.PENDING.value, index=True)
    description = db.Column(db.Text, nullable=True)

    requested_delivered_count = db.Column(db.Integer, nullable=True)
    requested_returned_count = db.Column(db.Integer, nullable=True)
    deduction_amount = db.Column(db.Integer, nullable=True)

    resolution = db.Column(db.Text, nullable=True)
    admin_reply = db.Column(db.Text, nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)
    resolved_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return DisputeStatus.parse(self.status) in TERMINAL_DISPUTE_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "settlement_id": int(self.settlement_id) if self.settlement_id is not None else None,
            "reporter_id": int(self.reporter_id),
            "dispute_type": self.dispute_type or "",
            "status": self.status or DisputeStatus.PENDING.value,
            "description": self.description or "",
            "requested_delivered_count": self.requested_delivered_count,
            "requested_returned_count": self.requested_returned_count,
            "deduction_amount": self.deduction_amount,
            "resolution": self.resolution or "",
            "admin_reply": self.admin_reply or "",
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_by": self.resolved_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Deduction(db.Model):
    __tablename__ = "deductions"

    id = db.Column(db.Integer, primary_key=True)
    helper_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(240), nullable=False, default="")
    # One deduction per dispute; NULL for manual admin deductions.
    dispute_id = db.Column(db.Integer, db.ForeignKey("disputes.id"), nullable=True, unique=True)
    settlement_id = db.Column(db.Integer, db.ForeignKey("settlement_statements.id"), nullable=True, index=True)
    settlement_applied = db.Column(db.Boolean, nullable=False, default=False)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "helper_id": int(self.helper_id),
            "amount": int(self.amount or 0),
            "reason": self.reason or "",
            "dispute_id": int(self.dispute_id) if self.dispute_id is not None else None,
            "settlement_id": int(self.settlement_id) if self.settlement_id is not None else None,
            "settlement_applied": bool(self.settlement_applied),
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
