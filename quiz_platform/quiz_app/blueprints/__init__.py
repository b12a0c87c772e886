"""REST API blueprints (quiz flow and system endpoints)."""

from __future__ import annotations

from .quiz_bp import quiz_bp
from .system_bp import system_bp

BLUEPRINTS = (
    (quiz_bp, "/api"),
    (system_bp, ""),
)

__all__ = [
    "BLUEPRINTS",
    "quiz_bp",
    "system_bp",
]
