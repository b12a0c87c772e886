"""Per-session question rows."""

from __future__ import annotations

from datetime import datetime, timezone

from ..extensions import db


def utcnow():
    return datetime.now(timezone.utc)


class SessionQuestion(db.Model):
    __tablename__ = "questions"
    __table_args__ = (
        db.UniqueConstraint("session_id", "question_no", name="uq_session_question_no"),
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(
        db.Integer,
        db.ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    question_no = db.Column(db.Integer, nullable=False)
    prompt = db.Column(db.Text, nullable=False)
    options = db.Column(db.JSON)  # {"A": "...", "B": "..."}
    answer = db.Column(db.String(8), nullable=False, default="")
    correct_answer = db.Column(db.String(8))
    answered = db.Column(db.Boolean, nullable=False, default=False)
    bank_id = db.Column(db.String(64))
    tier = db.Column(db.String(16))
    scenario = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    session = db.relationship("QuizSession", back_populates="questions")

    @property
    def status(self) -> str:
        return "answered" if self.answered else "pending"

