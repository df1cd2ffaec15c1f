import secrets
import string
from datetime import datetime

from werkzeug.security import generate_password_hash, check_password_hash

from app.extensions import db


PERSONAL_CODE_LENGTH = 12
_PERSONAL_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_personal_code() -> str:
    return "".join(secrets.choice(_PERSONAL_CODE_ALPHABET) for _ in range(PERSONAL_CODE_LENGTH))


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    phone = db.Column(db.String(32), unique=True, index=True, nullable=True)

    password_hash = db.Column(db.String(255), nullable=False, default="")

    # helper | requester | admin
    role = db.Column(db.String(32), nullable=False, default="helper", index=True)

    personal_code = db.Column(db.String(PERSONAL_CODE_LENGTH), unique=True, index=True, nullable=True)
    # Requester QR secret; issued on first QR request.
    check_in_token = db.Column(db.String(64), nullable=True)
    daily_status = db.Column(db.String(16), nullable=False, default="off", server_default="off")

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def set_password(self, raw_password: str) -> None:
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return check_password_hash(self.password_hash, raw_password)

    def ensure_personal_code(self) -> str:
        if not (self.personal_code or "").strip():
            self.personal_code = generate_personal_code()
        return self.personal_code

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": getattr(self, "phone", None),
            "role": self.role or "helper",
            "daily_status": self.daily_status or "off",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
