"""
Academic Engine.

Maintains per-subject proficiency on a 0-100 scale next to the running score
mean the quiz engine keeps in each `academic_state` row:

- proficiency: weighted mastery index (WMI) of each session, blended in
  with a step that shrinks as evidence accumulates
- stability: min(1, questions_seen / 100), read by the ensemble as its
  confidence in the subject
- coverage: syllabus share touched (0.2% per question), for blind spots

WMI weights harder questions more:

    L1 = 1.0, L2 = 1.5, L3 = 2.5
    wmi = 100 * sum(weight of correct) / sum(weight of all)

Proficiency fades with inactivity by the subject's daily decay rate
(forgetting curve): proficiency *= (1 - decay_rate) ** days.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from src.core.subjects import SUBJECTS, get_subject
from src.db.gateway import ACADEMIC_STATE, StorageGateway
from src.quiz.models import QuizResult

DIFFICULTY_WEIGHTS = {"L1": 1.0, "L2": 1.5, "L3": 2.5}
DEFAULT_LEVEL = "L1"
DEFAULT_DECAY_RATE = 0.02
STABILITY_FULL_AT = 100  # Questions answered for full confidence
COVERAGE_PER_QUESTION = 0.002
LOAD_DECAY_AFTER_DAYS = 2
BLIND_SPOT_MIN_WEIGHT = 0.10
BLIND_SPOT_MAX_COVERAGE = 0.10
DAY_MS = 24 * 60 * 60 * 1000


@dataclass
class SubjectPerformance:
    """WMI of one subject's questions in a session."""

    wmi: float
    questions: int
    levels: dict[str, int] = field(default_factory=dict)


def calculate_wmi(questions: Iterable[dict[str, Any]]) -> SubjectPerformance:
    """Weighted share of correct answers (0-100); only is_correct=True counts."""
    earned = possible = 0.0
    levels: dict[str, int] = {}
    count = 0

    for question in questions:
        level = str(question.get("level") or DEFAULT_LEVEL).upper()
        weight = DIFFICULTY_WEIGHTS.get(level, 1.0)
        if question.get("is_correct") is True:
            earned += weight
        possible += weight
        levels[level] = levels.get(level, 0) + 1
        count += 1

    wmi = earned / possible * 100 if possible else 0.0
    return SubjectPerformance(wmi=wmi, questions=count, levels=levels)


def retention_factor(days: float, decay_rate: float) -> float:
    return (1.0 - decay_rate) ** max(0.0, days)


def _decay_rate(subject_id: str) -> float:
    subject = get_subject(subject_id)
    return subject.decay_rate if subject else DEFAULT_DECAY_RATE


class AcademicEngine:
    """
    Storage-backed owner of per-subject proficiency.

    Usage:
        engine = AcademicEngine(storage)
        await engine.load()
        await engine.process_quiz_result(result)
        engine.blind_spots()
    """

    def __init__(self, storage: StorageGateway, clock: Callable[[], float] = time.time):
        self.storage = storage
        self._clock = clock
        self.records: dict[str, dict[str, Any]] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def load(self) -> dict[str, dict[str, Any]]:
        """Read all subject rows and fade proficiency left untouched for days."""
        now = self._now_ms()
        self.records = {}
        for record in await self.storage.get_all(ACADEMIC_STATE):
            subject_id = record.get("subject_id")
            if subject_id is None:
                continue
            self.records[subject_id] = record

            last = record.get("last_tested")
            if not last or (now - last) / DAY_MS <= LOAD_DECAY_AFTER_DAYS:
                continue
            self._decay(record, now)
            record["last_tested"] = now
            await self.storage.put(ACADEMIC_STATE, record)

        return self.records

    async def process_quiz_result(self, result: QuizResult) -> dict[str, dict[str, Any]]:
        """
        Fold one scored session into each subject it touched.

        Returns:
            Updated rows keyed by subject id
        """
        groups: dict[str, list[dict[str, Any]]] = {}
        for question in result.questions:
            subject_id = question.get("subject") or result.subject
            if subject_id:
                groups.setdefault(subject_id, []).append(question)

        now = self._now_ms()
        updated: dict[str, dict[str, Any]] = {}
        for subject_id, questions in groups.items():
            performance = calculate_wmi(questions)
            # Re-read: the quiz engine has just written this row's running mean
            stored = await self.storage.get(ACADEMIC_STATE, subject_id)
            record = dict(stored or {"subject_id": subject_id, "mastery": 0.0, "attempts": 0})

            self._decay(record, now)
            self._apply(record, performance, now)
            await self.storage.put(ACADEMIC_STATE, record)

            self.records[subject_id] = record
            updated[subject_id] = record
            logger.debug(
                "Proficiency {} -> {} (wmi {:.1f}, stability {})",
                subject_id,
                record["proficiency"],
                performance.wmi,
                record["stability"],
            )

        return updated

    def _decay(self, record: dict[str, Any], now: int) -> None:
        last = record.get("last_tested")
        if not last:
            return
        days = (now - last) / DAY_MS
        if days < 1:
            return
        before = float(record.get("proficiency", 0.0) or 0.0)
        record["proficiency"] = round(before * retention_factor(days, _decay_rate(record["subject_id"])), 2)

    def _apply(self, record: dict[str, Any], performance: SubjectPerformance, now: int) -> None:
        seen = int(record.get("questions_seen", 0) or 0) + performance.questions
        stability = min(1.0, seen / STABILITY_FULL_AT)
        step = 0.5 - stability * 0.4  # Settled subjects move slowly

        current = float(record.get("proficiency", 0.0) or 0.0)
        levels = dict(record.get("levels") or {})
        for level, count in performance.levels.items():
            levels[level] = levels.get(level, 0) + count

        record.update(
            {
                "proficiency": round(current + (performance.wmi - current) * step, 2),
                "stability": round(stability, 2),
                "questions_seen": seen,
                "levels": levels,
                "streak": int(record.get("streak", 0) or 0) + 1,
                "coverage": round(
                    min(1.0, float(record.get("coverage", 0.0) or 0.0) + performance.questions * COVERAGE_PER_QUESTION),
                    4,
                ),
                "last_tested": now,
            }
        )

    def coverage(self, subject_id: str) -> float:
        return float((self.records.get(subject_id) or {}).get("coverage", 0.0) or 0.0)

    def blind_spots(self) -> list[str]:
        """Heavily weighted subjects with little syllabus coverage."""
        return [
            subject.id
            for subject in SUBJECTS
            if subject.weight > BLIND_SPOT_MIN_WEIGHT and self.coverage(subject.id) < BLIND_SPOT_MAX_COVERAGE
        ]
