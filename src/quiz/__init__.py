"""
Quiz module: timed practice sessions.

This module provides:
- QuizEngine: Session state machine (start, answer, navigate, submit)
- SessionStore: Persisted session record for orphan recovery
- Models: Question, SessionState, QuizResult, AcademicState

Scoring: +2 per correct answer, -0.66 per wrong answer, skipped questions
score zero.
"""

from .engine import NoQuestionsError, QuizEngine, randomize_options
from .models import AcademicState, Question, QuizResult, QuizTelemetry, SessionState, SessionStatus
from .session_store import SessionStore

__all__ = [
    "QuizEngine",
    "NoQuestionsError",
    "randomize_options",
    "SessionStore",
    "AcademicState",
    "Question",
    "QuizResult",
    "QuizTelemetry",
    "SessionState",
    "SessionStatus",
]
