from datetime import datetime

from app.extensions import db


class Team(db.Model):
    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    leader_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # Percent of the order total, carved out of the platform commission.
    commission_rate = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "name": self.name or "",
            "leader_id": int(self.leader_id),
            "commission_rate": int(self.commission_rate or 0),
            "is_active": bool(self.is_active),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class TeamMember(db.Model):
    __tablename__ = "team_members"
    __table_args__ = (
        db.UniqueConstraint("team_id", "helper_id", name="uq_team_member_helper"),
    )

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False, index=True)
    helper_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    joined_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "team_id": int(self.team_id),
            "helper_id": int(self.helper_id),
            "is_active": bool(self.is_active),
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }
