from app.models.user import User
from app.models.order import (
    ACTIVE_APPLICATION_STATUSES,
    CHECKIN_SOURCE_STATUSES,
    TERMINAL_ORDER_STATUSES,
    ApplicationStatus,
    Order,
    OrderApplication,
    OrderStatus,
    OrderTransition,
)
from app.models.check_in import CheckInRecord
from app.models.courier_setting import CourierSetting
from app.models.team import Team, TeamMember
from app.models.closing_report import ClosingReport
from app.models.settlement import SettlementStatement, SettlementStatus
from app.models.dispute import Deduction, Dispute, DisputeStatus, TERMINAL_DISPUTE_STATUSES
from app.models.payment import Payment, PaymentStatus
from app.models.webhook_event import WebhookEvent
from app.models.platform_event import PlatformEvent
from app.models.idempotency_key import IdempotencyKey
from app.models.reconciliation_report import ReconciliationReport

__all__ = [
    "User",
    "Order",
    "OrderApplication",
    "OrderStatus",
    "OrderTransition",
    "ApplicationStatus",
    "ACTIVE_APPLICATION_STATUSES",
    "CHECKIN_SOURCE_STATUSES",
    "TERMINAL_ORDER_STATUSES",
    "CheckInRecord",
    "CourierSetting",
    "Team",
    "TeamMember",
    "ClosingReport",
    "SettlementStatement",
    "SettlementStatus",
    "Dispute",
    "DisputeStatus",
    "Deduction",
    "TERMINAL_DISPUTE_STATUSES",
    "Payment",
    "PaymentStatus",
    "WebhookEvent",
    "PlatformEvent",
    "IdempotencyKey",
    "ReconciliationReport",
]
