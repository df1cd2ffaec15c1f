from datetime import datetime

from app.extensions import db


class SettlementStatus:
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    PAID = "paid"


class SettlementStatement(db.Model):
    __tablename__ = "settlement_statements"
    __table_args__ = (
        db.UniqueConstraint("helper_id", "period", name="uq_settlement_helper_period"),
    )

    id = db.Column(db.Integer, primary_key=True)
    helper_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=True)
    # YYYY-MM in KST
    period = db.Column(db.String(7), nullable=False, index=True)

    order_count = db.Column(db.Integer, nullable=False, default=0)
    supply_amount = db.Column(db.Integer, nullable=False, default=0)
    vat_amount = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Integer, nullable=False, default=0)
    commission_amount = db.Column(db.Integer, nullable=False, default=0)
    platform_commission_amount = db.Column(db.Integer, nullable=False, default=0)
    team_commission_amount = db.Column(db.Integer, nullable=False, default=0)
    deduction_amount = db.Column(db.Integer, nullable=False, default=0)
    net_payout = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=SettlementStatus.DRAFT, index=True)
    warning = db.Column(db.String(240), nullable=True)
    # Order ids folded into this statement, JSON list.
    order_ids_json = db.Column(db.Text, nullable=True)

    paid_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "helper_id": int(self.helper_id),
            "team_id": int(self.team_id) if self.team_id is not None else None,
            "period": self.period,
            "order_count": int(self.order_count or 0),
            "supply_amount": int(self.supply_amount or 0),
            "vat_amount": int(self.vat_amount or 0),
            "total_amount": int(self.total_amount or 0),
            "commission_amount": int(self.commission_amount or 0),
            "platform_commission_amount": int(self.platform_commission_amount or 0),
            "team_commission_amount": int(self.team_commission_amount or 0),
            "deduction_amount": int(self.deduction_amount or 0),
            "net_payout": int(self.net_payout or 0),
            "status": self.status or SettlementStatus.DRAFT,
            "warning": self.warning or "",
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
