"""
Behavioral Profile Engine.

Maintains a seven-trait learner profile inferred from quiz telemetry and
turns it into the multipliers the ensemble applies to academic scores.

Traits (all values in [0, 1]; confidence grows with evidence):
    focus, calm, risk, speed, precision, endurance, flexibility

Update rule per observed signal s:
    rate  = base_rate * (1 - confidence * 0.5)
    value = value + (s - value) * rate
    confidence += 0.05 * (1 - confidence)

Confidence decays by 0.98 per day of inactivity so stale profiles carry less
weight.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from src.db.gateway import PROFILES, StorageGateway
from src.quiz.models import QuizResult

TRAITS = ("focus", "calm", "risk", "speed", "precision", "endurance", "flexibility")

LEARNING_RATE_PASSIVE = 0.15  # Quizzes
LEARNING_RATE_ACTIVE = 0.08  # Drills and games
TIME_DECAY_DAILY = 0.98
FASTEST_AVG_MS = 10_000
SLOWEST_AVG_MS = 120_000
DAY_MS = 24 * 60 * 60 * 1000

# Multipliers used when no profile has been stored yet
NEUTRAL_MODIFIERS = {
    "silly_mistake_mod": 1.0,
    "panic_mod": 1.0,
    "fatigue_mod": 1.0,
    "risk_mod": 1.0,
}


@dataclass
class Trait:
    value: float = 0.5
    confidence: float = 0.0

    def update(self, signal: float, base_rate: float) -> None:
        rate = base_rate * (1.0 - self.confidence * 0.5)
        self.value = round(self.value + (signal - self.value) * rate, 3)
        self.confidence = min(1.0, self.confidence + 0.05 * (1.0 - self.confidence))


@dataclass
class BehavioralProfile:
    """The learner's behavioral profile."""

    user_id: str = "user_1"
    traits: dict[str, Trait] = field(default_factory=lambda: {name: Trait() for name in TRAITS})
    last_update: int | None = None  # epoch ms
    total_sessions: int = 0

    def trait(self, name: str) -> float:
        return self.traits[name].value

    @property
    def average_confidence(self) -> float:
        return sum(t.confidence for t in self.traits.values()) / len(self.traits)

    def prediction_modifiers(self) -> dict[str, float]:
        """Multipliers that warp simulated academic scores."""
        silly = 0.92 + self.trait("focus") * 0.08 + self.trait("precision") * 0.05
        panic = 0.88 if self.trait("calm") < 0.4 else 1.02
        fatigue = 0.95 if self.trait("endurance") < 0.5 else 1.0

        risk = self.trait("risk")
        if risk < 0.3:
            risk_mod = 0.98  # Too conservative, leaves marks on the table
        elif risk > 0.7:
            risk_mod = 0.90  # Negative marking disaster
        else:
            risk_mod = 1.03

        return {
            "silly_mistake_mod": round(silly, 3),
            "panic_mod": round(panic, 3),
            "fatigue_mod": round(fatigue, 3),
            "risk_mod": round(risk_mod, 3),
        }

    def archetype(self) -> str:
        """Human-readable label for the stats screen."""
        t = self.trait
        if t("risk") > 0.7 and t("calm") > 0.7:
            return "The Maverick"
        if t("focus") > 0.8 and t("endurance") > 0.8:
            return "The Marathon Runner"
        if t("precision") > 0.8 and t("speed") < 0.4:
            return "The Grandmaster"
        if t("speed") > 0.8 and t("precision") < 0.4:
            return "The Gunslinger"
        if t("calm") < 0.3:
            return "The Nervous Rookie"
        return "The Aspirant"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "user_id": self.user_id,
            "last_update": self.last_update,
            "total_sessions": self.total_sessions,
        }
        for name, trait in self.traits.items():
            data[name] = {"value": trait.value, "confidence": trait.confidence}
        return data

    def snapshot(self) -> dict[str, Any]:
        """Profile plus derived multipliers, as fed to the ensemble."""
        return {**self.to_dict(), **self.prediction_modifiers()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BehavioralProfile:
        """Merge a stored profile over defaults (older records may lack traits)."""
        traits = {}
        for name in TRAITS:
            raw = data.get(name) or {}
            traits[name] = Trait(
                value=float(raw.get("value", 0.5)),
                confidence=float(raw.get("confidence", 0.0)),
            )
        return cls(
            user_id=data.get("user_id", "user_1"),
            traits=traits,
            last_update=data.get("last_update"),
            total_sessions=int(data.get("total_sessions", 0) or 0),
        )


def normalize_time(ms: float) -> float:
    """Average ms per question -> speed score (10s = 1.0, 120s = 0.0)."""
    clamped = max(FASTEST_AVG_MS, min(ms, SLOWEST_AVG_MS))
    return 1.0 - (clamped - FASTEST_AVG_MS) / (SLOWEST_AVG_MS - FASTEST_AVG_MS)


def derive_signals(result: QuizResult) -> dict[str, float] | None:
    """
    Infer raw trait signals from one scored session.

    Returns:
        Mapping of trait name to signal, or None when the session had no questions
    """
    questions = result.questions
    count = len(questions) or int(result.total_marks / 2)
    if count <= 0:
        return None

    telemetry = result.telemetry or {}
    switches = {int(k): int(v) for k, v in (telemetry.get("switches") or {}).items()}

    impulse_rate = int(telemetry.get("impulse_clicks", 0) or 0) / count
    switch_rate = sum(switches.values()) / count
    focus = max(0.0, 1.0 - impulse_rate * 0.5 - switch_rate * 0.2)

    # Stamina: compare mistakes in the opening and closing quarters
    endurance = 0.5
    if len(questions) >= 8:
        quarter = len(questions) // 4
        first = sum(1 for q in questions[:quarter] if not q.get("is_correct"))
        last = sum(1 for q in questions[-quarter:] if not q.get("is_correct"))
        if last > first + 1:
            endurance = 0.3
        elif last < first:
            endurance = 0.8
        else:
            endurance = 0.6

    skip_rate = result.skipped / count
    wrong_rate = result.wrong / count
    if skip_rate > 0.4:
        risk = 0.2
    elif wrong_rate > 0.4 and skip_rate < 0.1:
        risk = 0.8
    else:
        risk = 0.5

    # Answer changes that still ended wrong read as anxiety
    anxious = 0.0
    if result.wrong > 0:
        for index, changes in switches.items():
            if 0 <= index < len(questions) and not questions[index].get("is_correct"):
                anxious += changes
        anxious /= result.wrong
    calm = max(0.0, 1.0 - anxious * 0.15)

    speed = normalize_time(result.total_duration * 1000 / count)

    return {"focus": focus, "endurance": endurance, "risk": risk, "calm": calm, "speed": speed}


class BehavioralEngine:
    """
    Storage-backed owner of the behavioral profile.

    Usage:
        engine = BehavioralEngine(storage)
        await engine.load()
        await engine.process_quiz_result(result)
    """

    def __init__(
        self,
        storage: StorageGateway,
        user_id: str = "user_1",
        clock: Callable[[], float] = time.time,
    ):
        self.storage = storage
        self._clock = clock
        self.profile = BehavioralProfile(user_id=user_id)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def load(self) -> BehavioralProfile:
        """Load (or create) the stored profile and apply inactivity decay."""
        saved = await self.storage.get(PROFILES, self.profile.user_id)
        if saved:
            self.profile = BehavioralProfile.from_dict({**saved, "user_id": self.profile.user_id})
            logger.debug("Profile loaded (confidence {:.2f})", self.profile.average_confidence)
            await self.apply_time_decay()
        else:
            logger.info("Creating new behavioral profile for {}", self.profile.user_id)
            await self.save()
        return self.profile

    async def save(self) -> None:
        self.profile.last_update = self._now_ms()
        await self.storage.put(PROFILES, self.profile.to_dict())

    async def apply_time_decay(self) -> bool:
        """Fade trait confidence after more than a day of inactivity."""
        now = self._now_ms()
        days = (now - (self.profile.last_update or now)) / DAY_MS
        if days <= 1:
            return False

        factor = TIME_DECAY_DAILY**days
        for trait in self.profile.traits.values():
            trait.confidence *= factor
        logger.debug("Applied time decay: {:.1f} days (factor {:.3f})", days, factor)
        await self.save()
        return True

    async def process_quiz_result(self, result: QuizResult) -> BehavioralProfile:
        """Fold one session's telemetry into the profile and persist it."""
        signals = derive_signals(result)
        if signals is None:
            return self.profile

        for name, signal in signals.items():
            before = self.profile.traits[name].value
            self.profile.traits[name].update(signal, LEARNING_RATE_PASSIVE)
            logger.debug("Trait {} updated: {:.2f} -> {}", name, before, self.profile.traits[name].value)

        self.profile.total_sessions += 1
        await self.save()
        return self.profile

    async def record_drill(self, trait: str, signal: float) -> BehavioralProfile:
        """Apply an active-practice signal (slower learning rate than quizzes)."""
        if trait not in self.profile.traits:
            raise ValueError(f"Unknown trait: {trait}")
        self.profile.traits[trait].update(max(0.0, min(1.0, signal)), LEARNING_RATE_ACTIVE)
        await self.save()
        return self.profile
