from datetime import datetime
import json

from app.extensions import db


class ReconciliationReport(db.Model):
    __tablename__ = "reconciliation_reports"

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(64), nullable=False, default="settlements")
    period = db.Column(db.String(7), nullable=True)
    summary_json = db.Column(db.Text, nullable=True)
    drift_count = db.Column(db.Integer, nullable=False, default=0)
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def summary(self) -> dict:
        if not self.summary_json:
            return {}
        try:
            return json.loads(self.summary_json)
        except ValueError:
            return {}

    def to_dict(self):
        return {
            "id": int(self.id),
            "scope": self.scope or "",
            "period": self.period or "",
            "summary": self.summary(),
            "drift_count": int(self.drift_count or 0),
            "created_by": int(self.created_by) if self.created_by is not None else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
