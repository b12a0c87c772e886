"""Tests for the settlement pipeline (fatal vs. best-effort steps)."""

from __future__ import annotations

import pytest

from conftest import make_questionnaire
from quiz_app.extensions import db
from quiz_app.models import QuizSession
from quiz_app.services import question_ledger, question_selector
from quiz_app.services.assessment_client import AssessmentAPIError
from quiz_app.services.settlement_pipeline import (
    NO_ANSWER,
    SettlementFailed,
    build_attempt,
    score_band,
    score_percentage,
)


@pytest.fixture()
def pipeline(app_with_db):
    return app_with_db.extensions["settlement_pipeline"]


def _seed_and_answer(session: QuizSession, answer: str | None = "A") -> None:
    selected = question_selector.select_questions(make_questionnaire())
    created = question_ledger.create_questions(selected, session.id, session.user_id)
    if answer is None:
        return
    for question in created:
        question_ledger.save_answer_and_get_next(question.id, answer, session.id)


def test_full_settlement_finalizes_session(pipeline, quiz_session, assessment_client):
    _seed_and_answer(quiz_session)

    result = pipeline.settle(quiz_session)

    assert assessment_client.calls == [
        "exchange_credential",
        "save_user_response",
        "claim_certificate",
        "create_paid_test",
        "fetch_analysis",
    ]
    assert assessment_client.exchanged["phone_number"] == "+919876543210"
    assert assessment_client.exchanged["password"] == "asha@example.com"
    # Ordinals 6 and 8 expect B and C; everything was answered A.
    assert assessment_client.saved["score"] == 80
    assert assessment_client.saved["attempt"][0] == {"quiz_id": 1, "user_answer": "Option A1", "is_correct": 1}
    assert set(assessment_client.tokens_seen) == {"bearer-from-continue"}

    session = db.session.get(QuizSession, quiz_session.id)
    assert session.bearer_token == "bearer-from-continue"
    assert session.token_expiry is not None
    assert session.quiz_completed is True
    assert session.quiz_analysis_generated is True
    assert session.order_id == 739568
    assert session.settlement_payload == result["quiz_attempt"]
    assert result["quiz_results"]["correct_answers"] == 8
    assert result["quiz_results"]["total_questions"] == 10
    assert all(step["success"] for step in result["steps"].values())


def test_credential_exchange_failure_aborts(pipeline, quiz_session, assessment_client):
    _seed_and_answer(quiz_session)
    assessment_client.failures["exchange_credential"] = AssessmentAPIError("continue", "Invalid credentials", 401)

    with pytest.raises(SettlementFailed) as excinfo:
        pipeline.settle(quiz_session)

    assert excinfo.value.step == "credential_exchange"
    assert "Invalid credentials" in excinfo.value.message
    assert assessment_client.calls == ["exchange_credential"]
    session = db.session.get(QuizSession, quiz_session.id)
    assert session.quiz_completed is False
    assert session.bearer_token == "placeholder"


def test_degraded_steps_still_complete_session(pipeline, quiz_session, assessment_client):
    _seed_and_answer(quiz_session)
    for name in ("save_user_response", "claim_certificate", "create_paid_test", "fetch_analysis"):
        assessment_client.failures[name] = AssessmentAPIError(name, "upstream unavailable", 503)

    result = pipeline.settle(quiz_session)

    session = db.session.get(QuizSession, quiz_session.id)
    assert session.quiz_completed is True
    assert session.quiz_analysis_generated is False
    assert session.order_id is None
    assert session.settlement_payload == result["quiz_attempt"]
    steps = result["steps"]
    assert steps["credential_exchange"]["success"] is True
    for name in ("save_user_response", "certificate_claim", "create_v2_test", "quiz_analysis"):
        assert steps[name]["success"] is False
        assert "upstream unavailable" in steps[name]["error"]


def test_paid_test_can_be_skipped(pipeline, quiz_session, assessment_client):
    _seed_and_answer(quiz_session)

    result = pipeline.settle(quiz_session, skip_paid_test=True)

    assert "create_paid_test" not in assessment_client.calls
    assert result["steps"]["create_v2_test"]["skipped"] is True
    assert result["session"]["order_id"] is None


def test_settle_with_token_skips_exchange_and_order(pipeline, quiz_session, assessment_client):
    _seed_and_answer(quiz_session)

    result = pipeline.settle_with_token(quiz_session, "held-token", skill_id=777)

    assert assessment_client.calls == ["save_user_response", "claim_certificate", "fetch_analysis"]
    assert set(assessment_client.tokens_seen) == {"held-token"}
    assert assessment_client.saved["skill_id"] == 777
    assert result["session"]["token_updated"] is False
    session = db.session.get(QuizSession, quiz_session.id)
    assert session.bearer_token == "placeholder"
    assert session.order_id is None
    assert session.quiz_completed is True


def test_unanswered_questions_use_sentinel(app_with_db, quiz_session):
    _seed_and_answer(quiz_session, answer=None)

    attempt = build_attempt(question_ledger.get_questions_by_session(quiz_session.id))

    assert {item["user_answer"] for item in attempt} == {NO_ANSWER}
    assert score_percentage(attempt) == 0


def test_empty_session_scores_zero(pipeline, quiz_session):
    result = pipeline.settle(quiz_session)

    assert result["quiz_attempt"] == []
    assert result["quiz_results"]["score"] == 0


@pytest.mark.parametrize(
    "score, band",
    [(100, "true_high"), (70, "true_high"), (60, "true_pass"), (50, "true_pass"), (65, "true_low"), (40, "true_low"), (0, "true_low")],
)
def test_score_band(score, band):
    assert score_band(score) == band
