"""Pytest configuration for ensuring project modules resolve correctly."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest

from quiz_app import create_app
from quiz_app.extensions import db
from quiz_app.models import QuizSession, QuizUser


def make_candidate(q_id: int, *, correct: str = "A", scenario_title: str | None = None, **extra) -> dict:
    candidate = {
        "q_id": q_id,
        "question": f"Bank question {q_id}?",
        "option_a": f"Option A{q_id}",
        "option_b": f"Option B{q_id}",
        "option_c": f"Option C{q_id}",
        "option_d": f"Option D{q_id}",
        "correct_answer": correct,
    }
    if scenario_title:
        candidate["scenario_title"] = scenario_title
        candidate["text_context"] = f"Context for {q_id}"
    candidate.update(extra)
    return candidate


def make_questionnaire() -> dict:
    return {
        "easy": [make_candidate(q_id) for q_id in (1, 2, 3, 4, 5)],
        "medium": [
            make_candidate(11, scenario_title="Warm-up case"),
            make_candidate(12, correct="B", scenario_title="Release planning"),
            make_candidate(13),
        ],
        "hard": [
            make_candidate(17, correct="C", scenario_title="Incident review"),
            make_candidate(18, scenario_title="Capacity review"),
            make_candidate(19),
        ],
    }


class FakeAssessmentClient:
    """In-memory stand-in for the assessment backend; `failures` maps method -> exception."""

    def __init__(self):
        self.calls: list[str] = []
        self.failures: dict[str, Exception] = {}
        self.skill_id = 4242
        self.token = "bearer-from-continue"
        self.order_id = 739568
        self.questionnaire = make_questionnaire()
        self.exchanged: dict | None = None
        self.saved: dict | None = None
        self.tokens_seen: list[str] = []

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        exc = self.failures.get(name)
        if exc is not None:
            raise exc

    def create_entry(self, subject):
        self._enter("create_entry")
        return {
            "result": "success",
            "data": {"id": self.skill_id, "subject_name": subject, "quiz_status": "pending", "is_paid": False},
        }

    def generate_quiz(self, skill_id):
        self._enter("generate_quiz")
        return {"result": "success", "data": {"quiz_question_answer": {"questionaire": self.questionnaire}}}

    def exchange_credential(self, skill_id, *, email, phone_number, name, password):
        self._enter("exchange_credential")
        self.exchanged = {
            "skill_id": skill_id,
            "email": email,
            "phone_number": phone_number,
            "name": name,
            "password": password,
        }
        return self.token

    def save_user_response(self, skill_id, attempt, completion_seconds, score):
        self._enter("save_user_response")
        self.saved = {
            "skill_id": skill_id,
            "attempt": attempt,
            "completion_seconds": completion_seconds,
            "score": score,
        }
        return {"result": "success", "message": "Response saved", "data": {}}

    def claim_certificate(self, skill_id, token):
        self._enter("claim_certificate")
        self.tokens_seen.append(token)
        return {"result": "success", "message": "Certificate claimed", "data": {"certificate_id": 9}}

    def create_paid_test(self, skill_id, token):
        self._enter("create_paid_test")
        self.tokens_seen.append(token)
        return {"result": "success", "message": "Order created", "data": {"id": self.order_id}}

    def fetch_analysis(self, skill_id, token):
        self._enter("fetch_analysis")
        self.tokens_seen.append(token)
        return {"result": "success", "message": "Analysis ready", "data": {"quiz_analysis": "Solid work"}}


class FakeReengagementClient:
    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.status = 200
        self.error: Exception | None = None

    def trigger(self, phone, name):
        self.calls.append((phone, name))
        if self.error is not None:
            raise self.error
        return self.status


@pytest.fixture()
def assessment_client():
    return FakeAssessmentClient()


@pytest.fixture()
def reengagement_client():
    return FakeReengagementClient()


@pytest.fixture()
def app_with_db(assessment_client, reengagement_client):
    app = create_app(
        "test",
        assessment_client=assessment_client,
        reengagement_client=reengagement_client,
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app_with_db):
    return app_with_db.test_client()


@pytest.fixture()
def quiz_session(app_with_db):
    user = QuizUser(name="Asha Rao", email="asha@example.com", phone="919876543210", subject="Python")
    db.session.add(user)
    db.session.commit()
    session = QuizSession(user_id=user.id, external_user_ref="4242", subject="Python", bearer_token="placeholder")
    db.session.add(session)
    db.session.commit()
    return session

