"""Quiz session model (one user's attempt at a ten-question quiz)."""

from __future__ import annotations

from datetime import datetime, timezone

from ..extensions import db


def utcnow():
    return datetime.now(timezone.utc)


class QuizSession(db.Model):
    __tablename__ = "sessions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    external_user_ref = db.Column(db.String(64), index=True)
    subject = db.Column(db.String(255))
    bearer_token = db.Column(db.Text)
    token_expiry = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    quiz_completed = db.Column(db.Boolean, nullable=False, default=False)
    quiz_analysis_generated = db.Column(db.Boolean, nullable=False, default=False)
    reconciliation_fired_at = db.Column(db.DateTime(timezone=True))
    settlement_payload = db.Column(db.JSON)
    order_id = db.Column(db.Integer)

    user = db.relationship("QuizUser", back_populates="sessions")
    questions = db.relationship(
        "SessionQuestion",
        back_populates="session",
        order_by="SessionQuestion.question_no",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def external_ref_int(self) -> int | None:
        try:
            return int(self.external_user_ref)
        except (TypeError, ValueError):
            return None
