"""Quiz users, sessions and the start and resume flows."""

from __future__ import annotations

from typing import Optional

from flask import current_app

from ..extensions import db
from ..models import QuizSession, QuizUser
from ..utils import commit_or_rollback, generate_placeholder_token, token_expiry
from . import question_ledger, question_selector
from .assessment_client import AssessmentAPIError
from .question_ledger import LedgerError, SessionNotFound


class UserDetailsRequired(LookupError):
    """No user matches the contact and there is not enough data to create one."""


def upsert_user(name: str, email: str, phone: str, subject: str) -> QuizUser:
    """Reuse the user for this email, switching their subject if it changed."""

    user = QuizUser.query.filter_by(email=email, subject=subject).first()
    if user is not None:
        return user

    user = QuizUser.query.filter_by(email=email).order_by(QuizUser.created_at.desc()).first()
    if user is not None:
        user.subject = subject
        commit_or_rollback()
        current_app.logger.info("Switched user %s to subject %s", user.id, subject)
        return user

    user = QuizUser(name=name, email=email, phone=phone, subject=subject)
    db.session.add(user)
    commit_or_rollback()
    current_app.logger.info("Created quiz user %s", user.id)
    return user


def create_session(
    user: QuizUser,
    external_user_ref,
    subject: Optional[str] = None,
    *,
    ttl_minutes: Optional[int] = None,
) -> QuizSession:
    ttl = ttl_minutes if ttl_minutes is not None else current_app.config.get("SESSION_TOKEN_TTL_MIN", 60)
    session = QuizSession(
        user_id=user.id,
        external_user_ref=str(external_user_ref) if external_user_ref is not None else None,
        subject=subject or user.subject,
        bearer_token=generate_placeholder_token(),
        token_expiry=token_expiry(ttl),
    )
    db.session.add(session)
    commit_or_rollback()
    current_app.logger.info("Created session for user %s", user.id, extra={"session_id": session.id})
    return session


def latest_session_for_email(email: str) -> QuizSession:
    user = QuizUser.query.filter_by(email=email).order_by(QuizUser.created_at.desc()).first()
    if user is None:
        raise SessionNotFound("User not found")
    session = (
        QuizSession.query.filter_by(user_id=user.id)
        .order_by(QuizSession.created_at.desc(), QuizSession.id.desc())
        .first()
    )
    if session is None:
        raise SessionNotFound("No session found for user")
    return session


def latest_session_for_contact(phone: str, subject: str) -> QuizSession:
    session = (
        QuizSession.query.join(QuizUser, QuizSession.user_id == QuizUser.id)
        .filter(QuizUser.phone == phone, QuizUser.subject == subject)
        .order_by(QuizSession.created_at.desc(), QuizSession.id.desc())
        .first()
    )
    if session is None:
        raise SessionNotFound("No active session found for this phone and subject")
    return session


def _empty_summary() -> dict:
    return {
        "total_questions": 0,
        "questions_generated": False,
        "question_types": {"easy": 0, "medium": 0, "hard": 0},
    }


def _generate_questions(client, session: QuizSession, user: QuizUser, skill_id: int) -> dict:
    summary = _empty_summary()
    try:
        quiz_data = client.generate_quiz(skill_id)
        questionnaire = question_selector.extract_questionnaire(quiz_data)
        selected = question_selector.select_questions(questionnaire)
        created = question_ledger.create_questions(selected, session.id, user.id)
    except (AssessmentAPIError, ValueError, LedgerError) as exc:
        current_app.logger.warning(
            "Question generation failed: %s", exc, extra={"session_id": session.id}
        )
        return summary
    summary.update(
        total_questions=len(created),
        questions_generated=bool(created),
        question_types=question_selector.distribution_summary(selected),
    )
    return summary


def _open_entry(client, user: QuizUser, subject: str) -> tuple[QuizSession, dict]:
    entry = client.create_entry(subject)
    entry_data = entry.get("data") or {}
    skill_id = entry_data.get("id")
    if skill_id is None:
        raise AssessmentAPIError("new_entry_test_v2", "No skill id in response")
    return create_session(user, skill_id, subject), entry_data


def start_quiz(client, name: str, email: str, phone: str, subject: str) -> dict:
    """Register the attempt upstream, open a session and seed its questions.

    A failed entry creation aborts the start. Question generation is allowed to
    fail; the session then exists without questions.
    """

    user = upsert_user(name, email, phone, subject)
    session, entry_data = _open_entry(client, user, subject)
    quiz = _generate_questions(client, session, user, entry_data["id"])
    return _start_payload(user, session, entry_data["id"], entry_data, quiz)


def _resolve_user(name: Optional[str], email: Optional[str], phone: str, subject: str) -> QuizUser:
    if name and email:
        return upsert_user(name, email, phone, subject)
    user = (
        QuizUser.query.filter_by(phone=phone, subject=subject)
        .order_by(QuizUser.created_at.desc())
        .first()
    )
    if user is None:
        raise UserDetailsRequired("User not found. Provide name and email to create a new user.")
    return user


def _resolve_session(user: QuizUser, subject: str, session_id: Optional[int]) -> Optional[QuizSession]:
    if session_id is not None:
        session = QuizSession.query.filter_by(id=session_id, user_id=user.id, subject=subject).first()
        if session is not None:
            return session
        current_app.logger.info(
            "Ignoring session %s: not owned by user %s for %s", session_id, user.id, subject
        )
    return (
        QuizSession.query.filter_by(user_id=user.id, subject=subject)
        .order_by(QuizSession.created_at.desc(), QuizSession.id.desc())
        .first()
    )


def resume_quiz(
    client,
    *,
    phone: str,
    subject: str,
    name: Optional[str] = None,
    email: Optional[str] = None,
    session_id: Optional[int] = None,
) -> dict:
    """Pick up the user's quiz for `subject`, creating or backfilling only what is missing.

    The caller's `session_id` is honoured only when it belongs to the same user
    and subject; otherwise the newest matching session is used. A session
    without questions gets a fresh generation attempt. The result matches
    `start_quiz` plus `question_added`.
    """

    user = _resolve_user(name, email, phone, subject)
    session = _resolve_session(user, subject, session_id)
    entry_data: dict = {}
    if session is None:
        session, entry_data = _open_entry(client, user, subject)
    skill_id = session.external_ref_int

    existing = question_ledger.get_questions_by_session(session.id)
    if existing:
        quiz = {
            "total_questions": len(existing),
            "questions_generated": True,
            "question_types": question_selector.distribution_summary(
                {"question_type": question.tier} for question in existing
            ),
        }
    elif skill_id is not None:
        quiz = _generate_questions(client, session, user, skill_id)
    else:
        current_app.logger.warning(
            "Session has no external skill id; cannot generate questions",
            extra={"session_id": session.id},
        )
        quiz = _empty_summary()

    if not entry_data:
        entry_data = {"subject_name": subject, "quiz_status": "unknown", "is_paid": False}
    payload = _start_payload(user, session, skill_id, entry_data, quiz)
    payload["question_added"] = quiz["total_questions"] > 0
    return payload


def _start_payload(
    user: QuizUser,
    session: QuizSession,
    skill_id,
    entry_data: dict,
    quiz: dict,
) -> dict:
    first = question_ledger.first_question(session.id)
    return {
        "user": {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "phone": user.phone,
            "subject": user.subject,
            "created_at": user.created_at.isoformat() if user.created_at else None,
        },
        "certified_skill": {
            "id": skill_id,
            "subject_name": entry_data.get("subject_name"),
            "quiz_status": entry_data.get("quiz_status"),
            "is_paid": entry_data.get("is_paid"),
        },
        "session": {
            "id": session.id,
            "certified_token": session.bearer_token,
            "token_expiration": session.token_expiry.isoformat() if session.token_expiry else None,
        },
        "quiz": quiz,
        "first_question": (
            {"question_id": first.id, "question_no": first.question_no, "question": first.prompt}
            if first is not None
            else None
        ),
    }
