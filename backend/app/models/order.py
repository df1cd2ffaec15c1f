from __future__ import annotations

import enum
from datetime import datetime

from app.extensions import db


class OrderStatus(str, enum.Enum):
    OPEN = "open"
    MATCHING = "matching"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    CLOSING_SUBMITTED = "closing_submitted"
    BALANCE_PAID = "balance_paid"
    SETTLEMENT_PAID = "settlement_paid"
    CLOSED = "closed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value) -> "OrderStatus":
        if isinstance(value, cls):
            return value
        return cls((str(value or "")).strip().lower())


TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.CLOSED, OrderStatus.CANCELLED})
CHECKIN_SOURCE_STATUSES = frozenset({OrderStatus.OPEN, OrderStatus.SCHEDULED})


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    SELECTED = "selected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


ACTIVE_APPLICATION_STATUSES = frozenset({ApplicationStatus.APPROVED, ApplicationStatus.SELECTED})


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    requester_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False, default=OrderStatus.OPEN.value, index=True)
    # Direct-assignment path; application path lives in order_applications.
    matched_helper_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    company_name = db.Column(db.String(120), nullable=False, default="")
    category = db.Column(db.String(64), nullable=False, default="")
    quantity = db.Column(db.Integer, nullable=False, default=0)
    price_per_unit = db.Column(db.Integer, nullable=False, default=0)
    is_urgent = db.Column(db.Boolean, nullable=False, default=False)
    min_applied = db.Column(db.Boolean, nullable=False, default=False)
    urgent_applied = db.Column(db.Boolean, nullable=False, default=False)
    # Rates frozen when the order is priced and assigned; settlements read these.
    commission_rate = db.Column(db.Integer, nullable=True)
    team_rate = db.Column(db.Integer, nullable=True)

    scheduled_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def status_enum(self) -> OrderStatus:
        return OrderStatus.parse(self.status)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "requester_id": int(self.requester_id),
            "status": self.status or OrderStatus.OPEN.value,
            "matched_helper_id": int(self.matched_helper_id) if self.matched_helper_id is not None else None,
            "company_name": self.company_name or "",
            "category": self.category or "",
            "quantity": int(self.quantity or 0),
            "price_per_unit": int(self.price_per_unit or 0),
            "is_urgent": bool(self.is_urgent),
            "min_applied": bool(self.min_applied),
            "urgent_applied": bool(self.urgent_applied),
            "commission_rate": self.commission_rate,
            "team_rate": self.team_rate,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class OrderApplication(db.Model):
    __tablename__ = "order_applications"
    __table_args__ = (
        db.UniqueConstraint("order_id", "helper_id", name="uq_order_application_helper"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    helper_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    status = db.Column(db.String(24), nullable=False, default=ApplicationStatus.PENDING.value, index=True)
    checked_in_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "helper_id": int(self.helper_id),
            "status": self.status or ApplicationStatus.PENDING.value,
            "checked_in_at": self.checked_in_at.isoformat() if self.checked_in_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class OrderTransition(db.Model):
    __tablename__ = "order_transitions"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, nullable=False, index=True)
    from_status = db.Column(db.String(32), nullable=False, default="")
    to_status = db.Column(db.String(32), nullable=False)
    actor_type = db.Column(db.String(32), nullable=False, default="system")
    actor_id = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.String(240), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "order_id": int(self.order_id),
            "from_status": self.from_status or "",
            "to_status": self.to_status or "",
            "actor_type": self.actor_type or "",
            "actor_id": int(self.actor_id) if self.actor_id is not None else None,
            "reason": self.reason or "",
            "metadata_json": self.metadata_json or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
