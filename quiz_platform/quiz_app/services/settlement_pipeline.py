"""Settle a finished quiz session against the external assessment backend.

Settlement is a straight-line sequence of calls:

1. credential exchange (fatal)
2. credential persistence on the session row (fatal)
3. scored answer submission (best-effort)
4. certificate claim (best-effort)
5. paid-test / order creation (best-effort, optional)
6. analysis retrieval (best-effort, never raises)

Every step produces a `StepResult`. Only steps 1-2 raise, as `SettlementFailed`;
later failures are folded into the returned aggregate. The session row is then
finalized with a single write.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..metrics import record_settlement_step
from ..models import QuizSession, SessionQuestion
from ..utils import commit_or_rollback, derive_assessment_password, token_expiry
from . import question_ledger

NO_ANSWER = "No answer"

STEP_CREDENTIAL_EXCHANGE = "credential_exchange"
STEP_CREDENTIAL_PERSIST = "credential_persist"
STEP_SAVE_RESPONSE = "save_user_response"
STEP_CERTIFICATE_CLAIM = "certificate_claim"
STEP_PAID_TEST = "create_v2_test"
STEP_ANALYSIS = "quiz_analysis"

OK = "ok"
FAILED = "failed"
SKIPPED = "skipped"


class SettlementFailed(Exception):
    """A fatal settlement step failed; nothing after it was attempted."""

    def __init__(self, step: str, message: str):
        self.step = step
        self.message = message
        super().__init__(f"{step}: {message}")


@dataclass
class StepResult:
    step: str
    outcome: str
    message: str = ""
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, step: str, message: str = "", data: Any = None) -> "StepResult":
        return cls(step=step, outcome=OK, message=message, data=data)

    @classmethod
    def failed(cls, step: str, error: str) -> "StepResult":
        return cls(step=step, outcome=FAILED, message=error, error=error)

    @classmethod
    def skipped(cls, step: str, message: str) -> "StepResult":
        return cls(step=step, outcome=SKIPPED, message=message)

    @property
    def success(self) -> bool:
        return self.outcome == OK

    def to_dict(self) -> dict:
        payload = {
            "success": self.success,
            "message": self.message,
            "data": self.data,
            "error": self.error,
        }
        if self.outcome == SKIPPED:
            payload["skipped"] = True
        return payload


@dataclass
class SettlementAttempt:
    """In-memory record of one pipeline run for one session."""

    session_id: int
    skill_id: int
    token: Optional[str] = None
    token_updated: bool = False
    attempt: List[dict] = field(default_factory=list)
    elapsed_seconds: int = 0
    steps: Dict[str, StepResult] = field(default_factory=dict)
    order_id: Optional[int] = None

    def record(self, result: StepResult) -> StepResult:
        self.steps[result.step] = result
        record_settlement_step(result.step, result.outcome)
        return result


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _bank_id_as_int(value: Optional[str]) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def build_attempt(questions: List[SessionQuestion]) -> List[dict]:
    """Scored answer array for the backend, in ordinal order."""

    attempt = []
    for question in questions:
        answer = (question.answer or "").strip().upper()
        options = question_ledger.options_for(question)
        user_answer = options.get(answer) if answer else None
        correct = bool(answer) and answer == (question.correct_answer or "").strip().upper()
        attempt.append(
            {
                "quiz_id": _bank_id_as_int(question.bank_id),
                "user_answer": user_answer or NO_ANSWER,
                "is_correct": 1 if correct else 0,
            }
        )
    return attempt


def score_percentage(attempt: List[dict]) -> int:
    if not attempt:
        return 0
    correct = sum(1 for item in attempt if item["is_correct"] == 1)
    return int(math.floor(correct * 100 / len(attempt) + 0.5))


def elapsed_seconds(created_at: datetime, now: Optional[datetime] = None) -> int:
    now = _aware(now or datetime.now(timezone.utc))
    return max(0, int(round((now - _aware(created_at)).total_seconds())))


def score_band(score: int) -> str:
    if 70 <= score <= 100:
        return "true_high"
    if 50 <= score <= 60:
        return "true_pass"
    return "true_low"


class SettlementPipeline:
    def __init__(self, client, *, token_ttl_minutes: int = 60, clock: Callable[[], datetime] | None = None):
        self.client = client
        self.token_ttl_minutes = token_ttl_minutes
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def settle(
        self,
        session: QuizSession,
        *,
        skill_id: Optional[int] = None,
        skip_paid_test: bool = False,
    ) -> dict:
        """Run the full six-step settlement for `session`."""

        run = SettlementAttempt(session_id=session.id, skill_id=self._skill_id(session, skill_id))
        run.token = self._exchange_credential(session, run)
        self._persist_credential(session, run)
        self._submit_answers(session, run)
        self._claim_certificate(run)
        if skip_paid_test:
            run.record(StepResult.skipped(STEP_PAID_TEST, "Create V2 Test API skipped"))
        else:
            self._create_paid_test(run)
        self._fetch_analysis(run)
        return self._finalize(session, run)

    def settle_with_token(
        self,
        session: QuizSession,
        token: str,
        *,
        skill_id: Optional[int] = None,
    ) -> dict:
        """Settle with a credential the caller already holds; no exchange and no order."""

        run = SettlementAttempt(
            session_id=session.id,
            skill_id=self._skill_id(session, skill_id),
            token=token,
        )
        self._submit_answers(session, run)
        self._claim_certificate(run)
        self._fetch_analysis(run)
        return self._finalize(session, run)

    def _log(self, level: str, message: str, run: SettlementAttempt, step: str, *args) -> None:
        getattr(current_app.logger, level)(
            message, *args, extra={"session_id": run.session_id, "step": step}
        )

    @staticmethod
    def _skill_id(session: QuizSession, override: Optional[int]) -> int:
        skill_id = override if override is not None else session.external_ref_int
        if skill_id is None:
            raise SettlementFailed("prepare", f"Session {session.id} has no external skill id")
        return int(skill_id)

    def _exchange_credential(self, session: QuizSession, run: SettlementAttempt) -> str:
        user = session.user
        try:
            token = self.client.exchange_credential(
                run.skill_id,
                email=user.email,
                phone_number=user.international_phone,
                name=user.name,
                password=derive_assessment_password(user.email),
            )
        except Exception as exc:
            run.record(StepResult.failed(STEP_CREDENTIAL_EXCHANGE, str(exc)))
            self._log("error", "Credential exchange failed: %s", run, STEP_CREDENTIAL_EXCHANGE, exc)
            raise SettlementFailed(STEP_CREDENTIAL_EXCHANGE, str(exc)) from exc
        run.record(StepResult.ok(STEP_CREDENTIAL_EXCHANGE, "Credential exchanged"))
        return token

    def _persist_credential(self, session: QuizSession, run: SettlementAttempt) -> None:
        session.bearer_token = run.token
        session.token_expiry = token_expiry(self.token_ttl_minutes, now=self._clock())
        try:
            commit_or_rollback()
        except SQLAlchemyError as exc:
            run.record(StepResult.failed(STEP_CREDENTIAL_PERSIST, str(exc)))
            self._log("exception", "Failed to persist session credential", run, STEP_CREDENTIAL_PERSIST)
            raise SettlementFailed(STEP_CREDENTIAL_PERSIST, f"Failed to update session token: {exc}") from exc
        run.token_updated = True
        run.record(StepResult.ok(STEP_CREDENTIAL_PERSIST, "Session token updated"))

    def _best_effort(self, run: SettlementAttempt, step: str, call: Callable[[], dict]) -> StepResult:
        try:
            body = call()
        except Exception as exc:
            self._log("warning", "Step %s failed: %s", run, step, step, exc)
            return run.record(StepResult.failed(step, str(exc)))
        self._log("info", "Step %s completed", run, step, step)
        return run.record(StepResult.ok(step, str(body.get("message") or ""), body.get("data")))

    def _submit_answers(self, session: QuizSession, run: SettlementAttempt) -> None:
        questions = question_ledger.get_questions_by_session(session.id)
        run.attempt = build_attempt(questions)
        score = score_percentage(run.attempt)
        run.elapsed_seconds = elapsed = elapsed_seconds(session.created_at, self._clock())
        self._best_effort(
            run,
            STEP_SAVE_RESPONSE,
            lambda: self.client.save_user_response(run.skill_id, run.attempt, elapsed, score),
        )

    def _claim_certificate(self, run: SettlementAttempt) -> None:
        self._best_effort(
            run,
            STEP_CERTIFICATE_CLAIM,
            lambda: self.client.claim_certificate(run.skill_id, run.token),
        )

    def _create_paid_test(self, run: SettlementAttempt) -> None:
        result = self._best_effort(
            run,
            STEP_PAID_TEST,
            lambda: self.client.create_paid_test(run.skill_id, run.token),
        )
        if result.success and isinstance(result.data, dict):
            run.order_id = _bank_id_as_int(result.data.get("id"))

    def _fetch_analysis(self, run: SettlementAttempt) -> None:
        # Informational only: every failure becomes a failed result.
        self._best_effort(
            run,
            STEP_ANALYSIS,
            lambda: self.client.fetch_analysis(run.skill_id, run.token),
        )

    def _finalize(self, session: QuizSession, run: SettlementAttempt) -> dict:
        analysis = run.steps.get(STEP_ANALYSIS)
        analysis_generated = bool(analysis and analysis.success)

        session.quiz_completed = True
        session.quiz_analysis_generated = analysis_generated
        session.settlement_payload = run.attempt
        session.order_id = run.order_id
        commit_or_rollback()

        score = score_percentage(run.attempt)
        correct = sum(1 for item in run.attempt if item["is_correct"] == 1)
        user = session.user
        current_app.logger.info(
            "Session settled (score %s, analysis %s, order %s)",
            score,
            analysis_generated,
            run.order_id,
            extra={"session_id": session.id},
        )
        return {
            "user": {"id": user.id, "name": user.name, "email": user.email, "phone": user.phone},
            "session": {
                "id": session.id,
                "certified_skill_id": run.skill_id,
                "token_updated": run.token_updated,
                "quiz_completed": True,
                "quiz_analysis_generated": analysis_generated,
                "order_id": run.order_id,
            },
            "quiz_attempt": run.attempt,
            "quiz_results": {
                "score": score,
                "correct_answers": correct,
                "total_questions": len(run.attempt),
                "completion_time_seconds": run.elapsed_seconds,
            },
            "steps": {name: result.to_dict() for name, result in run.steps.items()},
        }
