"""Tests for the stalled-session re-engagement job and its scheduler."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from conftest import make_questionnaire
from quiz_app.extensions import db
from quiz_app.models import QuizSession, QuizUser
from quiz_app.services import question_ledger, question_selector
from quiz_app.services.reconciliation_service import JOB_ID, ReconciliationScheduler

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def job(app_with_db):
    return app_with_db.extensions["reconciliation_job"]


def _stalled_session(age: timedelta, *, phone: str | None = "919876543210", name: str | None = "Asha Rao", seed: bool = True):
    user = QuizUser(name=name, email=f"user{QuizUser.query.count()}@example.com", phone=phone, subject="Python")
    db.session.add(user)
    db.session.commit()
    session = QuizSession(user_id=user.id, external_user_ref="4242", subject="Python", created_at=NOW - age)
    db.session.add(session)
    db.session.commit()
    if seed:
        selected = question_selector.select_questions(make_questionnaire())
        question_ledger.create_questions(selected, session.id, user.id)
    return session.id


def _fired_at(session_id: int):
    return db.session.get(QuizSession, session_id).reconciliation_fired_at


def test_stalled_session_is_reengaged_once(job, reengagement_client):
    session_id = _stalled_session(timedelta(minutes=5, seconds=30))

    first = job.run_tick(now=NOW)
    second = job.run_tick(now=NOW + timedelta(seconds=20))

    assert first == {"processed": 1, "triggered": 1, "errors": 0}
    assert second == {"processed": 0, "triggered": 0, "errors": 0}
    assert reengagement_client.calls == [("919876543210", "Asha Rao")]
    assert _fired_at(session_id) is not None


def test_sessions_outside_window_are_ignored(job, reengagement_client):
    _stalled_session(timedelta(minutes=4, seconds=59))
    _stalled_session(timedelta(minutes=6))
    _stalled_session(timedelta(minutes=30))

    assert job.run_tick(now=NOW) == {"processed": 0, "triggered": 0, "errors": 0}
    assert reengagement_client.calls == []


def test_window_start_boundary_is_inclusive(job, reengagement_client):
    _stalled_session(timedelta(minutes=5))

    assert job.run_tick(now=NOW)["triggered"] == 1


def test_answered_first_question_is_excluded(job, reengagement_client):
    session_id = _stalled_session(timedelta(minutes=5, seconds=10))
    first = question_ledger.first_question(session_id)
    question_ledger.save_answer_and_get_next(first.id, "B", session_id)

    assert job.run_tick(now=NOW) == {"processed": 0, "triggered": 0, "errors": 0}
    assert reengagement_client.calls == []
    assert _fired_at(session_id) is None


def test_session_without_questions_is_included(job, reengagement_client):
    _stalled_session(timedelta(minutes=5, seconds=10), seed=False)

    assert job.run_tick(now=NOW)["triggered"] == 1


def test_missing_contact_counts_as_error(job, reengagement_client):
    session_id = _stalled_session(timedelta(minutes=5, seconds=10), phone="  ")

    assert job.run_tick(now=NOW) == {"processed": 1, "triggered": 0, "errors": 1}
    assert reengagement_client.calls == []
    assert _fired_at(session_id) is None


def test_rejected_trigger_is_retried_next_tick(job, reengagement_client):
    session_id = _stalled_session(timedelta(minutes=5, seconds=10))
    reengagement_client.status = 502

    assert job.run_tick(now=NOW) == {"processed": 1, "triggered": 0, "errors": 1}
    assert _fired_at(session_id) is None

    reengagement_client.status = 200
    assert job.run_tick(now=NOW + timedelta(seconds=30))["triggered"] == 1
    assert len(reengagement_client.calls) == 2


def test_trigger_exception_does_not_stop_other_sessions(job, reengagement_client):
    _stalled_session(timedelta(minutes=5, seconds=10))
    _stalled_session(timedelta(minutes=5, seconds=40))

    calls = []

    def flaky(phone, name):
        calls.append(phone)
        if len(calls) == 1:
            raise ConnectionError("hook down")
        return 200

    reengagement_client.trigger = flaky

    assert job.run_tick(now=NOW) == {"processed": 2, "triggered": 1, "errors": 1}


def test_query_failure_reports_single_error(job, monkeypatch):
    _stalled_session(timedelta(minutes=5, seconds=10))

    def broken(now):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(job, "_candidates", broken)

    assert job.run_tick(now=NOW) == {"processed": 0, "triggered": 0, "errors": 1}


def test_cli_reconcile_prints_summary(app_with_db, job, reengagement_client, monkeypatch):
    _stalled_session(timedelta(minutes=5, seconds=10))
    monkeypatch.setattr(job, "_clock", lambda: NOW)

    result = app_with_db.test_cli_runner().invoke(args=["reconcile"])

    assert result.exit_code == 0
    assert "processed=1 triggered=1 errors=0" in result.output


class _FakeScheduler:
    def __init__(self):
        self.running = False
        self.jobs = {}
        self.shutdown_calls = []

    def add_job(self, func, trigger, **kwargs):
        self.jobs[kwargs["id"]] = (func, trigger, kwargs)

    def start(self):
        self.running = True

    def shutdown(self, wait=True):
        self.shutdown_calls.append(wait)
        self.running = False


class _RecordingJob:
    def __init__(self):
        self.ticks = 0

    def run_tick(self):
        self.ticks += 1
        return {"processed": 0, "triggered": 0, "errors": 0}


def test_scheduler_registers_single_interval_job(app_with_db):
    backend = _FakeScheduler()
    recording = _RecordingJob()
    scheduler = ReconciliationScheduler(app_with_db, recording, interval_seconds=60, scheduler=backend)

    scheduler.start()
    scheduler.start()

    assert scheduler.running is True
    assert list(backend.jobs) == [JOB_ID]
    func, trigger, options = backend.jobs[JOB_ID]
    assert trigger == "interval"
    assert options["seconds"] == 60
    assert options["max_instances"] == 1
    assert options["coalesce"] is True

    func()
    assert recording.ticks == 1

    scheduler.shutdown()
    assert scheduler.running is False
    assert backend.shutdown_calls == [True]
