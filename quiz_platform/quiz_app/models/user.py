"""Quiz participant model."""

from __future__ import annotations

from datetime import datetime, timezone

from ..extensions import db


def utcnow():
    return datetime.now(timezone.utc)


class QuizUser(db.Model):
    """Person taking a quiz over the messaging channel."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255))
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(32), index=True)
    subject = db.Column(db.String(255), index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    sessions = db.relationship(
        "QuizSession",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def international_phone(self) -> str:
        phone = (self.phone or "").strip()
        if not phone:
            return ""
        return phone if phone.startswith("+") else f"+{phone}"

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<QuizUser {self.email} ({self.subject})>"
