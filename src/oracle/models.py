"""
Prediction and worker-protocol data models.

PredictionResult is ephemeral: cached by the aggregator, broadcast on
oracle-update, never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PredictionFlag(str, Enum):
    """Risk tags attached to a prediction."""

    GAMBLER_RISK = "GAMBLER_RISK"
    FATIGUE_RISK = "FATIGUE_RISK"
    PANIC_PRONE = "PANIC_PRONE"
    CSAT_CRITICAL_FAIL = "CSAT_CRITICAL_FAIL"  # Disqualifying
    LOW_POWER_MODE = "LOW_POWER_MODE"  # Degraded (fallback model)


@dataclass(frozen=True)
class ScoreRange:
    min: float
    max: float

    @property
    def width(self) -> float:
        return self.max - self.min


@dataclass(frozen=True)
class PredictionResult:
    """Projected exam score with uncertainty and risk flags."""

    score: float
    range: ScoreRange
    confidence: float  # 0-1
    flags: list[str] = field(default_factory=list)
    breakdown: dict[str, float] = field(default_factory=dict)  # Per-model scores

    @property
    def degraded(self) -> bool:
        return PredictionFlag.LOW_POWER_MODE.value in self.flags

    def has_flag(self, flag: PredictionFlag | str) -> bool:
        value = flag.value if isinstance(flag, PredictionFlag) else flag
        return value in self.flags

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "range": {"min": self.range.min, "max": self.range.max},
            "confidence": self.confidence,
            "flags": list(self.flags),
            "breakdown": dict(self.breakdown),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PredictionResult:
        raw_range = data.get("range") or {}
        flags: list[str] = []
        for flag in data.get("flags", []):
            if flag not in flags:
                flags.append(flag)
        return cls(
            score=data["score"],
            range=ScoreRange(min=raw_range.get("min", 0), max=raw_range.get("max", 0)),
            confidence=float(data.get("confidence", 0.0)),
            flags=flags,
            breakdown=dict(data.get("breakdown", {})),
        )


# =============================================================================
# Worker Protocol
# =============================================================================


class WorkerCommand(str, Enum):
    PING = "PING"  # Warm-up, no reply contract
    RUN_ENSEMBLE = "RUN_ENSEMBLE"


class WorkerStatus(str, Enum):
    SUCCESS = "SUCCESS"
    PONG = "PONG"
    ERROR = "ERROR"


@dataclass(frozen=True)
class WorkerRequest:
    command: WorkerCommand
    request_id: int = 0
    data: dict[str, Any] | None = None  # Telemetry snapshot
    config: dict[str, Any] | None = None  # Ensemble model weights


@dataclass(frozen=True)
class WorkerResponse:
    status: WorkerStatus
    request_id: int = 0
    result: PredictionResult | None = None
    message: str | None = None


class WorkerError(RuntimeError):
    """The worker reported a failure for a computation."""


class WorkerUnavailableError(RuntimeError):
    """The worker could not be started or has been stopped."""
