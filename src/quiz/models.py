"""
Quiz session data models.

Implements:
- Question: A loaded question (canonical `correct_answer` index only)
- QuizTelemetry: Per-question behavioral signals captured during a session
- SessionState: The live session owned by the QuizEngine
- QuizResult: Immutable scored record written to history
- AcademicState: Per-subject running mastery

Answers are keyed by the question's position in the session, never by the
stored question id: options are shuffled per session, so only the
session-relative index identifies what the learner actually saw.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

# Legacy and camelCase spellings accepted at the ingestion boundary.
_LEGACY_CORRECT_FIELDS = ("correct_option", "correctOption")
_CANONICAL_CORRECT_FIELDS = ("correct_answer", "correctAnswer")
_CORE_FIELDS = {"id", "options", "subject", "text", "is_correct", "isCorrect"}


class SessionStatus(str, Enum):
    """Lifecycle of a quiz session."""

    IDLE = "idle"
    ACTIVE = "active"
    SUBMITTED = "submitted"  # Terminal, success
    ABORTED = "aborted"  # Terminal, no questions available


def _int_keys(data: dict[Any, Any] | None) -> dict[int, int]:
    """JSON object keys come back as strings; restore integer indices."""
    return {int(k): int(v) for k, v in (data or {}).items()}


def _str_keys(data: dict[int, int]) -> dict[str, int]:
    return {str(k): v for k, v in data.items()}


# =============================================================================
# Question
# =============================================================================


@dataclass
class Question:
    """A multiple-choice question as used inside a session."""

    id: Any
    options: list[str]
    correct_answer: int
    subject: str | None = None
    text: str = ""
    is_correct: bool | None = None  # Written only at scoring time
    extra: dict[str, Any] = field(default_factory=dict)  # explanation, topic, level...

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Question:
        """
        Build a question from a stored record, normalizing the correct index.

        The legacy `correct_option` field takes precedence over
        `correct_answer` when both are present; neither survives as a
        separate field afterwards.

        Raises:
            ValueError: If the record has no options or no usable correct index
        """
        options = data.get("options")
        if not options:
            raise ValueError(f"Question {data.get('id')!r} has no options")

        correct = None
        for name in (*_LEGACY_CORRECT_FIELDS, *_CANONICAL_CORRECT_FIELDS):
            if data.get(name) is not None:
                correct = data[name]
                break
        if correct is None:
            raise ValueError(f"Question {data.get('id')!r} has no correct option")
        correct = int(correct)
        if not 0 <= correct < len(options):
            raise ValueError(f"Question {data.get('id')!r} correct index {correct} out of range")

        skip = _CORE_FIELDS | set(_LEGACY_CORRECT_FIELDS) | set(_CANONICAL_CORRECT_FIELDS)
        extra = {k: copy.deepcopy(v) for k, v in data.items() if k not in skip}
        is_correct = data.get("is_correct", data.get("isCorrect"))

        return cls(
            id=data.get("id"),
            options=[str(o) for o in options],
            correct_answer=correct,
            subject=data.get("subject"),
            text=data.get("text", "") or "",
            is_correct=is_correct,
            extra=extra,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = copy.deepcopy(self.extra)
        data.update(
            {
                "id": self.id,
                "subject": self.subject,
                "text": self.text,
                "options": list(self.options),
                "correct_answer": self.correct_answer,
            }
        )
        if self.is_correct is not None:
            data["is_correct"] = self.is_correct
        return data

    @property
    def correct_text(self) -> str:
        return self.options[self.correct_answer]


# =============================================================================
# Session Telemetry
# =============================================================================


@dataclass
class QuizTelemetry:
    """Behavioral signals for one session, all keyed by question index."""

    impulse_clicks: int = 0
    switches: dict[int, int] = field(default_factory=dict)  # Answer changes
    time_per_question: dict[int, int] = field(default_factory=dict)  # ms
    question_start_times: dict[int, int] = field(default_factory=dict)  # epoch ms, first view

    def to_dict(self) -> dict[str, Any]:
        return {
            "impulse_clicks": self.impulse_clicks,
            "switches": _str_keys(self.switches),
            "time_per_question": _str_keys(self.time_per_question),
            "question_start_times": _str_keys(self.question_start_times),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> QuizTelemetry:
        """Rebuild telemetry; missing fields (older records) get empty defaults."""
        data = data or {}
        return cls(
            impulse_clicks=int(data.get("impulse_clicks", 0) or 0),
            switches=_int_keys(data.get("switches")),
            time_per_question=_int_keys(data.get("time_per_question")),
            question_start_times=_int_keys(data.get("question_start_times")),
        )

    def result_copy(self) -> dict[str, Any]:
        """The subset of telemetry attached to a result."""
        return {
            "impulse_clicks": self.impulse_clicks,
            "switches": _str_keys(self.switches),
            "time_per_question": _str_keys(self.time_per_question),
        }


# =============================================================================
# Session State
# =============================================================================


@dataclass
class SessionState:
    """The live quiz session."""

    active: bool = False
    status: SessionStatus = SessionStatus.IDLE
    subject_id: str | None = None
    start_time: str | None = None  # ISO format
    total_duration: int = 0  # seconds
    time_left: int = 0  # seconds
    questions: list[Question] = field(default_factory=list)
    answers: dict[int, int] = field(default_factory=dict)  # question index -> option index
    bookmarks: dict[Any, None] = field(default_factory=dict)  # insertion-ordered set of question ids
    current_index: int = 0
    telemetry: QuizTelemetry = field(default_factory=QuizTelemetry)

    @property
    def current_question(self) -> Question | None:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    def is_bookmarked(self, question_id: Any) -> bool:
        return question_id in self.bookmarks

    def to_dict(self) -> dict[str, Any]:
        """Encode for the persisted session record (bookmarks as a list)."""
        return {
            "active": self.active,
            "status": self.status.value,
            "subject_id": self.subject_id,
            "start_time": self.start_time,
            "total_duration": self.total_duration,
            "time_left": self.time_left,
            "questions": [q.to_dict() for q in self.questions],
            "answers": _str_keys(self.answers),
            "bookmarks": list(self.bookmarks),
            "current_index": self.current_index,
            "telemetry": self.telemetry.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionState:
        """
        Decode a persisted record.

        Raises:
            KeyError, TypeError, ValueError: On a malformed record
        """
        active = bool(data["active"])
        status = data.get("status") or (SessionStatus.ACTIVE.value if active else SessionStatus.IDLE.value)
        state = cls(
            active=active,
            status=SessionStatus(status),
            subject_id=data.get("subject_id"),
            start_time=data.get("start_time"),
            total_duration=int(data.get("total_duration", 0)),
            time_left=int(data.get("time_left", 0)),
            questions=[Question.from_record(q) for q in data.get("questions", [])],
            answers=_int_keys(data.get("answers")),
            bookmarks=dict.fromkeys(data.get("bookmarks") or []),
            current_index=int(data.get("current_index", 0)),
            telemetry=QuizTelemetry.from_dict(data.get("telemetry")),
        )
        if state.active:
            state.validate()
        return state

    def validate(self) -> None:
        """
        Check the invariants of a live session.

        Raises:
            ValueError: If the state could not be resumed safely
        """
        count = len(self.questions)
        if count == 0:
            raise ValueError("Active session has no questions")
        if not 0 <= self.current_index < count:
            raise ValueError(f"Current index {self.current_index} outside 0..{count - 1}")
        if not 0 <= self.time_left <= self.total_duration:
            raise ValueError(f"Time left {self.time_left} outside 0..{self.total_duration}")
        for index, option in self.answers.items():
            if not 0 <= index < count:
                raise ValueError(f"Answer recorded for missing question {index}")
            if not 0 <= option < len(self.questions[index].options):
                raise ValueError(f"Answer {option} out of range for question {index}")


# =============================================================================
# Results & Mastery
# =============================================================================


@dataclass(frozen=True)
class QuizResult:
    """Scored outcome of one submitted session."""

    id: str
    timestamp: str  # ISO format
    subject: str | None
    score: float
    total_marks: float
    correct: int
    wrong: int
    skipped: int
    accuracy: int  # 0-100
    total_duration: int  # elapsed seconds
    questions: list[dict[str, Any]]
    telemetry: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuizResult:
        return cls(**{k: data[k] for k in cls.__dataclass_fields__})


@dataclass
class AcademicState:
    """Running mastery for one subject."""

    subject_id: str
    mastery: float = 0.0
    attempts: int = 0
    last_studied: str | None = None  # ISO format
    extra: dict[str, Any] = field(default_factory=dict)  # Fields owned by other writers

    def record_score(self, score: float, studied_at: str) -> None:
        """Fold a new score into the running mean."""
        self.mastery = (self.mastery * self.attempts + score) / (self.attempts + 1)
        self.attempts += 1
        self.last_studied = studied_at

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            {
                "subject_id": self.subject_id,
                "mastery": self.mastery,
                "attempts": self.attempts,
                "last_studied": self.last_studied,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AcademicState:
        known = {"subject_id", "mastery", "attempts", "last_studied"}
        return cls(
            subject_id=data["subject_id"],
            mastery=float(data.get("mastery", 0.0) or 0.0),
            attempts=int(data.get("attempts", 0) or 0),
            last_studied=data.get("last_studied"),
            extra={k: v for k, v in data.items() if k not in known},
        )
