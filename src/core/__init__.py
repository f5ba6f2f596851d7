"""
Core Module - Shared domain vocabulary.

Components:
- subjects: Exam subject registry (ids, papers, weights)
- events: Observer bus connecting the session engine and the oracle to a UI
"""

from src.core.events import (
    ORACLE_UPDATE,
    QUIZ_COMPLETE,
    QUIZ_TICK,
    QUIZ_UPDATE,
    EventBus,
    OracleUpdate,
    SessionUpdate,
    TickEvent,
)
from src.core.subjects import CSAT_SUBJECT_IDS, SUBJECTS, Paper, Subject, get_subject, subject_weight

__all__ = [
    # Events
    "EventBus",
    "OracleUpdate",
    "SessionUpdate",
    "TickEvent",
    "ORACLE_UPDATE",
    "QUIZ_COMPLETE",
    "QUIZ_TICK",
    "QUIZ_UPDATE",
    # Subjects
    "CSAT_SUBJECT_IDS",
    "SUBJECTS",
    "Paper",
    "Subject",
    "get_subject",
    "subject_weight",
]
