"""Utility helpers (credentials, transactions)."""

from .security import derive_assessment_password, generate_placeholder_token, token_expiry
from .transactions import commit_or_rollback

__all__ = [
    "commit_or_rollback",
    "derive_assessment_password",
    "generate_placeholder_token",
    "token_expiry",
]
