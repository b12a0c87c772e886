"""Re-engage users whose quiz stalled before the first answer.

Once a minute the job looks at sessions aged [5, 6) minutes that were never
reconciled and whose first question is missing or unanswered, and posts the
user's contact to the re-engagement hook. A successful call stamps
`reconciliation_fired_at`, which keeps the session out of later ticks.
"""

from __future__ import annotations

import atexit
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import SchedulerAlreadyRunningError
from sqlalchemy import and_, func, or_

from ..extensions import db
from ..metrics import record_reconciliation
from ..models import QuizSession, QuizUser, SessionQuestion
from ..utils import commit_or_rollback

logger = logging.getLogger(__name__)

JOB_ID = "quiz-reconciliation"


class ReconciliationJob:
    def __init__(
        self,
        client,
        *,
        window_start_min: int = 5,
        window_end_min: int = 6,
        clock: Callable[[], datetime] | None = None,
    ):
        self.client = client
        self.window_start = timedelta(minutes=window_start_min)
        self.window_end = timedelta(minutes=window_end_min)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _window(self, now: datetime):
        return and_(
            QuizSession.created_at <= now - self.window_start,
            QuizSession.created_at > now - self.window_end,
            QuizSession.reconciliation_fired_at.is_(None),
        )

    def _candidates(self, now: datetime):
        first_question = and_(
            SessionQuestion.session_id == QuizSession.id,
            SessionQuestion.question_no == 1,
        )
        return (
            db.session.query(QuizSession.id, QuizUser.name, QuizUser.phone)
            .join(QuizUser, QuizSession.user_id == QuizUser.id)
            .outerjoin(SessionQuestion, first_question)
            .filter(
                self._window(now),
                or_(SessionQuestion.id.is_(None), SessionQuestion.answered.is_(False)),
            )
            .order_by(QuizSession.created_at.asc())
            .all()
        )

    def run_tick(self, now: Optional[datetime] = None) -> dict:
        """Process one tick and return `{processed, triggered, errors}`."""

        now = now or self._clock()
        try:
            pending = (
                db.session.query(func.count(QuizSession.id)).filter(self._window(now)).scalar() or 0
            )
            if pending == 0:
                return {"processed": 0, "triggered": 0, "errors": 0}

            rows = self._candidates(now)
            triggered = errors = 0
            for session_id, name, phone in rows:
                if self._reengage(session_id, name, phone, now):
                    triggered += 1
                else:
                    errors += 1
        except Exception:
            db.session.rollback()
            logger.exception("Reconciliation tick failed")
            record_reconciliation("error")
            return {"processed": 0, "triggered": 0, "errors": 1}

        record_reconciliation("triggered", triggered)
        record_reconciliation("error", errors)
        logger.info(
            "Reconciliation tick: %s in window, processed %s, triggered %s, errors %s",
            pending,
            len(rows),
            triggered,
            errors,
        )
        return {"processed": len(rows), "triggered": triggered, "errors": errors}

    def _reengage(self, session_id: int, name: Optional[str], phone: Optional[str], now: datetime) -> bool:
        log_extra = {"session_id": session_id}
        if not (phone or "").strip() or not (name or "").strip():
            logger.warning(
                "Skipping session: missing %s",
                "phone" if not (phone or "").strip() else "name",
                extra=log_extra,
            )
            return False
        try:
            status = self.client.trigger(phone, name)
            if not 200 <= status < 300:
                logger.warning("Re-engagement returned status %s", status, extra=log_extra)
                return False
            QuizSession.query.filter_by(id=session_id).update(
                {"reconciliation_fired_at": now}, synchronize_session=False
            )
            commit_or_rollback()
        except Exception:
            logger.exception("Re-engagement failed", extra=log_extra)
            return False
        logger.info("Re-engagement triggered", extra=log_extra)
        return True


class ReconciliationScheduler:
    """Runs `ReconciliationJob.run_tick` on a background interval inside an app context."""

    def __init__(self, app, job: ReconciliationJob, *, interval_seconds: int = 60, scheduler=None):
        self.app = app
        self.job = job
        self.interval_seconds = interval_seconds
        self._scheduler = scheduler or BackgroundScheduler(timezone=timezone.utc)

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def _tick(self) -> None:
        with self.app.app_context():
            self.job.run_tick()

    def start(self) -> None:
        self._scheduler.add_job(
            self._tick,
            "interval",
            seconds=self.interval_seconds,
            id=JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=max(self.interval_seconds // 2, 1),
        )
        if not self._scheduler.running:
            try:
                self._scheduler.start()
            except SchedulerAlreadyRunningError:
                pass
            atexit.register(self.shutdown)
        logger.info("Reconciliation scheduler started (every %ss)", self.interval_seconds)

    def shutdown(self, wait: bool = True) -> None:
        # wait=True lets an in-flight tick finish.
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
