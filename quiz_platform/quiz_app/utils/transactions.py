"""Commit helpers shared by the service layer."""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db


def commit_or_rollback() -> None:
    """Commit the current unit of work; leave the session usable if it fails.

    Lock contention on SQLite is absorbed by the connection's busy_timeout, so a
    failure here is surfaced to the caller rather than retried.
    """

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
