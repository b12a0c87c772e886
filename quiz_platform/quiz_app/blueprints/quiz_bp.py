"""Quiz API: start, answer, submit and reconciliation endpoints."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request
from marshmallow import ValidationError

from ..extensions import db
from ..models import QuizSession
from ..schemas import (
    AutoSubmitSchema,
    ResumeQuizSchema,
    SaveAnswerSchema,
    SessionSchema,
    StartQuizSchema,
    SubmitQuizResponseSchema,
    SubmitWithTokenSchema,
)
from ..services import question_ledger, session_service
from ..services.assessment_client import AssessmentAPIError
from ..services.question_ledger import QuestionNotFound, SessionNotFound
from ..services.session_service import UserDetailsRequired
from ..services.settlement_pipeline import SettlementFailed, score_band

quiz_bp = Blueprint("quiz_bp", __name__)

start_schema = StartQuizSchema()
resume_schema = ResumeQuizSchema()
answer_schema = SaveAnswerSchema()
submit_schema = SubmitQuizResponseSchema()
token_submit_schema = SubmitWithTokenSchema()
auto_submit_schema = AutoSubmitSchema()
session_schema = SessionSchema()


def _component(name: str):
    return current_app.extensions[name]


def _failed(message: str, status: HTTPStatus, **extra):
    return jsonify({"result": "failed", "message": message, **extra}), status


def _settlement_response(result: dict):
    score = result["quiz_results"]["score"]
    return jsonify(
        {
            "success": score_band(score),
            "message": "Quiz response submitted successfully",
            "data": {**result, "score": score},
        }
    )


@quiz_bp.errorhandler(ValidationError)
def handle_validation_error(err: ValidationError):
    return jsonify({"result": "failed", "message": "Validation failed", "errors": err.messages}), HTTPStatus.BAD_REQUEST


@quiz_bp.errorhandler(SessionNotFound)
@quiz_bp.errorhandler(QuestionNotFound)
def handle_not_found(err: Exception):
    return _failed(str(err), HTTPStatus.NOT_FOUND)


@quiz_bp.errorhandler(UserDetailsRequired)
def handle_user_details_required(err: UserDetailsRequired):
    return jsonify({"success": False, "message": str(err)}), HTTPStatus.BAD_REQUEST


@quiz_bp.errorhandler(SettlementFailed)
def handle_settlement_failed(err: SettlementFailed):
    current_app.logger.error("Settlement failed at %s: %s", err.step, err.message)
    return _failed(f"Failed to submit quiz response: {err.message}", HTTPStatus.INTERNAL_SERVER_ERROR, step=err.step)


@quiz_bp.errorhandler(AssessmentAPIError)
def handle_assessment_error(err: AssessmentAPIError):
    current_app.logger.error("Assessment backend error: %s", err)
    return _failed("Internal server error", HTTPStatus.INTERNAL_SERVER_ERROR, error=str(err))


@quiz_bp.get("/ping")
def ping():
    return jsonify({"module": "quiz", "status": "ok"})


@quiz_bp.post("/start_quiz")
def start_quiz():
    payload = start_schema.load(request.get_json() or {})
    data = session_service.start_quiz(_component("assessment_client"), **payload)
    return (
        jsonify({"success": True, "message": "Quiz started successfully", "data": data}),
        HTTPStatus.CREATED,
    )


@quiz_bp.post("/start_quiz_clone")
def resume_quiz():
    payload = resume_schema.load(request.get_json() or {})
    data = session_service.resume_quiz(_component("assessment_client"), **payload)
    return (
        jsonify({"success": True, "message": "Quiz started successfully", "data": data}),
        HTTPStatus.CREATED,
    )


@quiz_bp.post("/save_answer")
def save_answer():
    payload = answer_schema.load(request.get_json() or {})
    question = question_ledger.get_question(payload["question_id"])
    if question is None:
        return jsonify({"success": False, "message": "Question not found"}), HTTPStatus.NOT_FOUND
    result = question_ledger.save_answer_and_get_next(
        payload["question_id"], payload["answer"], question.session_id
    )
    return jsonify({"success": True, "message": "Answer saved successfully", "data": result})


@quiz_bp.post("/submit_quiz_response")
def submit_quiz_response():
    payload = submit_schema.load(request.get_json() or {})
    session = session_service.latest_session_for_email(payload["email"])
    result = _component("settlement_pipeline").settle(
        session,
        skill_id=payload.get("certified_user_skill_id"),
        skip_paid_test=payload["skip_paid_test"],
    )
    return _settlement_response(result)


@quiz_bp.post("/submit_quiz_response_with_token")
def submit_quiz_response_with_token():
    payload = token_submit_schema.load(request.get_json() or {})
    session = session_service.latest_session_for_email(payload["email"])
    result = _component("settlement_pipeline").settle_with_token(
        session,
        payload["token"].strip(),
        skill_id=payload.get("certified_user_skill_id"),
    )
    return _settlement_response(result)


@quiz_bp.post("/auto_submit_quiz")
def auto_submit_quiz():
    payload = auto_submit_schema.load(request.get_json() or {})
    session = session_service.latest_session_for_contact(payload["phone"], payload["subject"])
    current_app.logger.info("Auto-submitting quiz", extra={"session_id": session.id})
    result = _component("settlement_pipeline").settle(session)
    return _settlement_response(result)


@quiz_bp.post("/reconciliation/run")
def run_reconciliation():
    summary = _component("reconciliation_job").run_tick()
    return jsonify(summary)


@quiz_bp.get("/sessions/<int:session_id>")
def get_session(session_id: int):
    session = db.session.get(QuizSession, session_id)
    if session is None:
        return _failed("Session not found", HTTPStatus.NOT_FOUND)
    return jsonify({"session": session_schema.dump(session)})
