"""
Session and Oracle Event Bus.

Observer channel the core uses to notify the UI layer:

- quiz-tick: once per countdown tick, carries the remaining time
- quiz-update: after every mutating session operation, carries the
  operation kind and the full current state
- quiz-complete: once per submitted session, carries the result
- oracle-update: after every fresh prediction, carries the prediction
  and its display shaping
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from src.oracle.display import DisplayPrediction
    from src.oracle.models import PredictionResult
    from src.quiz.models import SessionState

QUIZ_TICK = "quiz-tick"
QUIZ_UPDATE = "quiz-update"
QUIZ_COMPLETE = "quiz-complete"
ORACLE_UPDATE = "oracle-update"


@dataclass(frozen=True)
class TickEvent:
    """Countdown tick."""

    time_left: int


@dataclass(frozen=True)
class SessionUpdate:
    """A mutating session operation (SESSION_START, ANSWER_SAVED, NAVIGATE...)."""

    type: str
    state: SessionState
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OracleUpdate:
    """A freshly computed prediction."""

    prediction: PredictionResult
    display: DisplayPrediction | None


Handler = Callable[[Any], None]


class EventBus:
    """
    Minimal synchronous pub/sub.

    Handlers run in subscription order on the emitting thread. A failing
    handler is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._subs: dict[str, list[Handler]] = {}

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register a handler; returns a callable that unsubscribes it."""
        self._subs.setdefault(event, []).append(handler)

        def _unsubscribe() -> None:
            handlers = self._subs.get(event, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def emit(self, event: str, payload: Any) -> None:
        for handler in list(self._subs.get(event, [])):
            try:
                handler(payload)
            except Exception:
                logger.exception("Event handler failed for {}", event)
