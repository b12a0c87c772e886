"""Database models package."""

from .user import QuizUser
from .quiz_session import QuizSession
from .question import SessionQuestion

__all__ = [
    "QuizUser",
    "QuizSession",
    "SessionQuestion",
]
