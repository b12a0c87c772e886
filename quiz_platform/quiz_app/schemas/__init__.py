"""Serialization / validation schemas (Marshmallow)."""

from .question_schema import QuestionSchema, SessionSchema
from .session_schema import (
    AutoSubmitSchema,
    ResumeQuizSchema,
    SaveAnswerSchema,
    StartQuizSchema,
    SubmitQuizResponseSchema,
    SubmitWithTokenSchema,
)

__all__ = [
    "AutoSubmitSchema",
    "QuestionSchema",
    "ResumeQuizSchema",
    "SaveAnswerSchema",
    "SessionSchema",
    "StartQuizSchema",
    "SubmitQuizResponseSchema",
    "SubmitWithTokenSchema",
]
