"""Credential helpers for sessions and the assessment backend."""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timedelta, timezone

PLACEHOLDER_TOKEN_ALPHABET = string.ascii_lowercase
PLACEHOLDER_TOKEN_LENGTH = 20


def generate_placeholder_token(length: int = PLACEHOLDER_TOKEN_LENGTH) -> str:
    """Random token stored on a new session until the real credential is exchanged."""

    return "".join(secrets.choice(PLACEHOLDER_TOKEN_ALPHABET) for _ in range(length))


def token_expiry(ttl_minutes: int, *, now: datetime | None = None) -> datetime:
    base = now or datetime.now(timezone.utc)
    return base + timedelta(minutes=ttl_minutes)


def derive_assessment_password(email: str) -> str:
    """The backend account password is derived from the email so it can be replayed."""

    return (email or "").strip()
