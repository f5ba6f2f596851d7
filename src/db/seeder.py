"""
Question bank seeder.

Loads question records from JSON into the `questions` collection.

Supported inputs:
- A single JSON file holding a list of question records
- A directory of `<subject_id>.json` files (subject taken from the file name
  when a record has none)

Records are normalized on the way in: the legacy `correct_option` field is
folded into `correct_answer`, and malformed records are skipped.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from src.core.subjects import get_subject
from src.db.gateway import QUESTIONS, SqlStorageGateway
from src.quiz.models import Question

MIN_QUESTIONS = 5


@dataclass
class SeedResult:
    """Result of a seeding run."""

    total_read: int = 0
    total_seeded: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    per_subject: dict[str, int] = field(default_factory=dict)


def _read_records(path: Path) -> list[tuple[str | None, dict[str, Any]]]:
    """Read (default subject, record) pairs from a file or directory."""
    files = sorted(path.glob("*.json")) if path.is_dir() else [path]
    pairs: list[tuple[str | None, dict[str, Any]]] = []

    for file in files:
        default_subject = file.stem if path.is_dir() else None
        with open(file, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{file} must contain a JSON list of questions")
        pairs.extend((default_subject, record) for record in data)

    return pairs


def normalize_record(record: dict[str, Any], default_subject: str | None, index: int) -> dict[str, Any]:
    """
    Canonical stored form of one question record.

    Raises:
        ValueError: If the record is not a usable question
    """
    if not isinstance(record, dict):
        raise ValueError(f"Item {index} is not an object")

    subject = record.get("subject") or default_subject
    if not subject:
        raise ValueError(f"Item {index} has no subject")

    data = dict(record)
    data["subject"] = subject
    if data.get("id") is None:
        data["id"] = f"json_{subject}_{index}"

    question = Question.from_record(data)
    stored = question.to_dict()
    stored.pop("is_correct", None)
    return stored


async def seed_questions(storage: SqlStorageGateway, path: Path | str) -> SeedResult:
    """
    Load questions from JSON into storage.

    Args:
        storage: Storage gateway
        path: JSON file or directory of per-subject JSON files

    Returns:
        SeedResult with counts and per-item errors
    """
    path = Path(path)
    result = SeedResult()
    records: list[dict[str, Any]] = []

    for index, (default_subject, raw) in enumerate(_read_records(path)):
        result.total_read += 1
        try:
            record = normalize_record(raw, default_subject, index)
        except (ValueError, TypeError) as exc:
            result.skipped += 1
            result.errors.append(str(exc))
            logger.warning("Skipping question: {}", exc)
            continue

        if get_subject(record["subject"]) is None:
            logger.debug("Question {} uses unregistered subject {}", record["id"], record["subject"])
        result.per_subject[record["subject"]] = result.per_subject.get(record["subject"], 0) + 1
        records.append(record)

    if not records:
        logger.warning("No usable questions found in {}", path)
        return result

    result.total_seeded = await storage.bulk_put(QUESTIONS, records)
    logger.info("Seeded {} questions from {}", result.total_seeded, path)
    return result


async def needs_seeding(storage: SqlStorageGateway) -> bool:
    """True when the question bank is (nearly) empty."""
    keys = await storage.get_random_keys(QUESTIONS, None, None, MIN_QUESTIONS * 2)
    return len(keys) < MIN_QUESTIONS
