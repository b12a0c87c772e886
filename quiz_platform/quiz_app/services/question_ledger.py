"""Per-session question rows: creation, ordered reads, answer recording."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import QuizSession, SessionQuestion
from ..utils import commit_or_rollback

# Ordinals whose stored scenario text is surfaced with the next question.
SCENARIO_POSITIONS = frozenset({6, 9})
OPTION_LETTERS = ("A", "B", "C", "D")
_OPTION_LINE = re.compile(r"^\s*([A-D])[\).]\s*(.+?)\s*$", re.MULTILINE)


class LedgerError(Exception):
    """Base class for question ledger failures."""


class SessionNotFound(LedgerError):
    pass


class QuestionNotFound(LedgerError):
    pass


class SessionDeleted(LedgerError):
    """The session disappeared while its questions were being inserted."""


class QuestionIntegrityError(LedgerError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _session_exists(session_id: int) -> bool:
    return db.session.query(QuizSession.id).filter_by(id=session_id).first() is not None


def _options_from_candidate(candidate: Mapping[str, Any]) -> Dict[str, str]:
    raw = candidate.get("options")
    if isinstance(raw, Mapping):
        return {str(key).upper(): str(value) for key, value in raw.items() if value is not None}
    options: Dict[str, str] = {}
    for letter in OPTION_LETTERS:
        value = candidate.get(f"option_{letter.lower()}")
        if value is not None and str(value).strip():
            options[letter] = str(value).strip()
    return options


def _scenario_for(candidate: Mapping[str, Any], question_no: int) -> Optional[str]:
    if question_no not in SCENARIO_POSITIONS:
        return None
    title = candidate.get("scenario_title") or candidate.get("scenarioTitle")
    context = candidate.get("text_context") or candidate.get("textContext")
    parts = [str(part) for part in (title, context) if part]
    return "\n".join(parts) or None


def format_prompt(candidate: Mapping[str, Any], question_no: int, total: int) -> str:
    text = candidate.get("formatted_question") or candidate.get("question") or ""
    lines = [f"*Question {question_no} / {total}*", "", text]
    for letter, value in _options_from_candidate(candidate).items():
        lines.extend(["", f"{letter}) {value}"])
    return "\n".join(lines)


def _normalize_letter(value: Any) -> str:
    return str(value or "").strip().upper()


def create_questions(
    questions: List[Mapping[str, Any]],
    session_id: int,
    user_id: int,
) -> List[SessionQuestion]:
    """Insert the selected questions for a session as ordinals 1..N.

    Raises:
        SessionNotFound: the session is missing or belongs to another user.
        SessionDeleted: the session vanished part-way through the inserts.
        QuestionIntegrityError: any other integrity violation (message preserved).
    """

    session = db.session.get(QuizSession, session_id)
    if session is None or session.user_id != user_id:
        raise SessionNotFound(f"Session {session_id} not found for user {user_id}")

    total = len(questions)
    created: List[SessionQuestion] = []
    for question_no, candidate in enumerate(questions, start=1):
        if not _session_exists(session_id):
            db.session.rollback()
            raise SessionDeleted(f"Session {session_id} was deleted while creating questions")
        row = SessionQuestion(
            session_id=session_id,
            user_id=user_id,
            question_no=question_no,
            prompt=format_prompt(candidate, question_no, total),
            options=_options_from_candidate(candidate) or None,
            answer="",
            correct_answer=_normalize_letter(candidate.get("correct_answer")) or None,
            answered=False,
            bank_id=str(candidate.get("position_id") or candidate.get("q_id") or "") or None,
            tier=candidate.get("question_type"),
            scenario=_scenario_for(candidate, question_no),
        )
        db.session.add(row)
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            if not _session_exists(session_id):
                raise SessionDeleted(
                    f"Session {session_id} was deleted while creating questions"
                ) from exc
            raise QuestionIntegrityError(
                f"Failed to create question {question_no}: {exc.orig}"
            ) from exc
        created.append(row)

    commit_or_rollback()
    current_app.logger.info(
        "Created %s questions",
        len(created),
        extra={"session_id": session_id},
    )
    return created


def get_questions_by_session(session_id: int) -> List[SessionQuestion]:
    return (
        SessionQuestion.query.filter_by(session_id=session_id)
        .order_by(SessionQuestion.question_no.asc())
        .all()
    )


def get_question(question_id: int) -> Optional[SessionQuestion]:
    return db.session.get(SessionQuestion, question_id)


def update_question_answer(question_id: int, answer: str) -> Optional[SessionQuestion]:
    question = db.session.get(SessionQuestion, question_id)
    if question is None:
        return None
    question.answer = _normalize_letter(answer)
    question.answered = True
    question.updated_at = _now()
    commit_or_rollback()
    return question


def _total_questions(session_id: int) -> int:
    return SessionQuestion.query.filter_by(session_id=session_id).count()


def save_answer_and_get_next(question_id: int, answer: str, session_id: int) -> dict:
    """Record an answer and return the next pending question or a completion marker.

    The write and the next-ordinal read share one transaction.
    """

    question = (
        SessionQuestion.query.filter_by(id=question_id, session_id=session_id)
        .with_for_update()
        .first()
    )
    if question is None:
        db.session.rollback()
        raise QuestionNotFound(f"Question {question_id} not found in session {session_id}")

    question.answer = _normalize_letter(answer)
    question.answered = True
    question.updated_at = _now()
    db.session.flush()
    current_no = question.question_no

    next_question = SessionQuestion.query.filter_by(
        session_id=session_id, question_no=current_no + 1
    ).first()
    total = _total_questions(session_id)
    if next_question is None:
        payload = {
            "status": "complete",
            "question": "",
            "question_id": "",
            "current_question_no": current_no,
            "total_questions": total,
        }
    else:
        payload = {
            "status": "pending",
            "question": next_question.prompt,
            "question_id": next_question.id,
            "question_no": next_question.question_no,
            "current_question_no": current_no,
            "total_questions": total,
            "scenario": surfaced_scenario(next_question),
        }
    commit_or_rollback()

    current_app.logger.info(
        "Answer saved for question %s (%s)",
        current_no,
        payload["status"],
        extra={"session_id": session_id, "question_id": question_id},
    )
    return payload


def surfaced_scenario(question: SessionQuestion) -> Optional[str]:
    if question.question_no not in SCENARIO_POSITIONS:
        return None
    scenario = (question.scenario or "").strip()
    return scenario or None


def options_for(question: SessionQuestion) -> Dict[str, str]:
    """Letter -> option text, from the stored options or parsed out of the prompt."""

    if question.options:
        return {str(key).upper(): str(value) for key, value in question.options.items()}
    return {letter: text for letter, text in _OPTION_LINE.findall(question.prompt or "")}


def first_question(session_id: int) -> Optional[SessionQuestion]:
    return SessionQuestion.query.filter_by(session_id=session_id, question_no=1).first()
