"""
Subject Taxonomy.

Single source of truth for subject ids and their approximate exam weightage.
Ids must match the `subject` field of stored questions and the
`subject_id` of academic-state rows.

Paper 1 (General Studies) and Paper 2 (CSAT) weights each sum to 1.0.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Paper(str, Enum):
    """Exam paper a subject belongs to."""

    GS = "gs"
    CSAT = "csat"


@dataclass(frozen=True)
class Subject:
    """A practice subject."""

    id: str
    name: str
    paper: Paper
    weight: float  # Share of the paper's marks
    description: str = ""
    decay_rate: float = 0.02  # Daily proficiency loss without practice


SUBJECTS: tuple[Subject, ...] = (
    Subject("polity", "Indian Polity", Paper.GS, 0.18, "Constitution, Governance, and Political System", 0.015),
    Subject("history_modern", "Modern History", Paper.GS, 0.12, "Freedom Struggle (1857-1947)", 0.025),
    Subject("history_ancient", "Ancient & Medieval", Paper.GS, 0.08, "Art, Culture, and Dynasties", 0.030),
    Subject("geography", "Geography", Paper.GS, 0.14, "Physical, Social, and Economic Geography", 0.012),
    Subject("economy", "Economy", Paper.GS, 0.15, "Macroeconomics and Development", 0.010),
    Subject("environment", "Environment", Paper.GS, 0.16, "Ecology, Biodiversity, and Climate Change", 0.020),
    Subject("science", "Science & Tech", Paper.GS, 0.10, "Biology, Space, and Emerging Tech", 0.018),
    Subject("current_affairs", "Current Affairs", Paper.GS, 0.07, "International Relations and News", 0.040),
    Subject("csat_quant", "Quant (Math)", Paper.CSAT, 0.35, "Arithmetic, Algebra, and Geometry", 0.005),
    Subject("csat_logic", "Logical Reasoning", Paper.CSAT, 0.30, "Analytical Ability and Problem Solving", 0.005),
    Subject("csat_rc", "Reading Comp.", Paper.CSAT, 0.35, "Comprehension and Inference", 0.008),
)

_BY_ID = {subject.id: subject for subject in SUBJECTS}

CSAT_SUBJECT_IDS: tuple[str, ...] = tuple(s.id for s in SUBJECTS if s.paper is Paper.CSAT)


def get_subject(subject_id: str) -> Subject | None:
    """Look up a subject by id."""
    return _BY_ID.get(subject_id)


def subject_weight(subject_id: str, default: float = 0.0) -> float:
    """Exam weight of a subject (default for unknown ids)."""
    subject = _BY_ID.get(subject_id)
    return subject.weight if subject else default


def subject_name(subject_id: str) -> str:
    """Display name, falling back to the id itself."""
    subject = _BY_ID.get(subject_id)
    return subject.name if subject else subject_id
