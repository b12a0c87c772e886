"""Business logic modules (question ledger, settlement, reconciliation, etc.)."""

from . import (
    assessment_client,
    question_ledger,
    question_selector,
    reconciliation_service,
    session_service,
    settlement_pipeline,
)

__all__ = [
    "assessment_client",
    "question_ledger",
    "question_selector",
    "reconciliation_service",
    "session_service",
    "settlement_pipeline",
]
