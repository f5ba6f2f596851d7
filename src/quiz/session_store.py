"""
Session record persistence for quiz sessions.

Enables orphan recovery: an active session is written to a single JSON file
after every mutation, so an unclean exit can be resumed on the next start
for the same subject. The record is removed on submit and on termination.

Record location: ~/.exam_oracle/quiz_state.json (see Settings)
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from loguru import logger

from src.quiz.models import SessionState


class SessionStore:
    """
    Manages the persisted session record.

    Only one record exists at a time: the engine owns a single live session.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def save(self, state: SessionState) -> Path | None:
        """Write the session record; inactive sessions are never written."""
        if not state.active:
            return None

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f)
        os.replace(tmp, self.path)
        return self.path

    def load(self) -> SessionState | None:
        """
        Load the session record.

        A corrupt or unreadable record is deleted and treated as absent.
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return SessionState.from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            logger.debug("Discarding unreadable session record {}: {}", self.path, exc)
            self.clear()
            return None

    def clear(self) -> bool:
        """Delete the session record."""
        try:
            self.path.unlink()
            return True
        except FileNotFoundError:
            return False

    def exists(self) -> bool:
        return self.path.exists()
