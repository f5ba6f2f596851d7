"""
Ensemble Score Simulation.

Blends three models over a telemetry snapshot:

    Model A: Latin-hypercube stress test (luck and volatility, gives the range)
    Model B: Bayesian adjustment (pulls thin data toward a safe baseline)
    Model C: Pattern recognition (penalizes toxic behavioral combinations)

Snapshot shape:
    {
        "academic": {subject_id: {"mastery": float, "weight": float, "stability"?: float}},
        "behavioral": {"silly_mistake_mod": float, "panic_mod": float, ...},
        "meta": {"total_tests": int, "days_to_exam": int},
    }

Pure computation; runs on the oracle worker thread.
"""

from __future__ import annotations

import math
import random
import sys
from dataclasses import dataclass
from typing import Any

from src.core.subjects import CSAT_SUBJECT_IDS
from src.oracle.models import PredictionFlag, PredictionResult, ScoreRange

DEFAULT_SIMULATION_RUNS = 500
DEFAULT_STABILITY = 0.5
NOISE_SCALE = 5.0  # Marks of spread per unit volatility
PANIC_Z_THRESHOLD = -1.0  # Panic only bites on bad-luck runs
CONSERVATIVE_BASELINE = 70.0  # Safe-but-failing score
NO_DATA_CONFIDENCE = 0.1
CSAT_SECTION_MARKS = 66.0
CSAT_QUALIFYING = 66.0

DEFAULT_MODELS: dict[str, dict[str, float]] = {
    "monte_carlo": {"weight": 0.50},
    "bayesian": {"weight": 0.30},
    "pattern": {"weight": 0.20},
}


@dataclass(frozen=True)
class StressTestResult:
    average: float
    min_score: int
    max_score: int


@dataclass(frozen=True)
class BayesianResult:
    score: float
    confidence: float


@dataclass(frozen=True)
class PatternResult:
    score: float
    flags: list[str]


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def box_muller(u1: float, rng: random.Random) -> float:
    """Standard-normal z from a stratified u1 and a random u2."""
    u2 = rng.random()
    safe_u1 = max(sys.float_info.epsilon, u1)
    return math.sqrt(-2.0 * math.log(safe_u1)) * math.cos(2.0 * math.pi * u2)


# =============================================================================
# Model A: Stress Test
# =============================================================================


def run_stress_test(snapshot: dict[str, Any], runs: int, rng: random.Random) -> StressTestResult:
    """
    Latin-hypercube Monte Carlo over per-subject base points.

    Run i draws from percentile (i + 0.5) / runs, so the tails of the
    distribution are always visited.
    """
    behavioral = snapshot.get("behavioral") or {}
    silly_mod = _number(behavioral.get("silly_mistake_mod")) or 1.0
    panic_mod = _number(behavioral.get("panic_mod")) or 1.0

    potentials: list[tuple[float, float]] = []
    for record in (snapshot.get("academic") or {}).values():
        mastery = _number((record or {}).get("mastery"))
        if mastery is None:
            continue
        weight = _number(record.get("weight")) or 0.0
        stability = _number(record.get("stability")) or DEFAULT_STABILITY
        potentials.append((2 * weight * mastery, (1.0 - stability) + 0.1))

    runs = max(1, runs)
    total = 0.0
    low = math.inf
    high = 0.0

    for i in range(runs):
        z = box_muller((i + 0.5) / runs, rng)
        run_score = 0.0
        for base, volatility in potentials:
            points = (base + volatility * z * NOISE_SCALE) * silly_mod
            if z < PANIC_Z_THRESHOLD:
                points *= panic_mod
            run_score += max(0.0, points)
        total += run_score
        low = min(low, run_score)
        high = max(high, run_score)

    return StressTestResult(
        average=total / runs,
        min_score=math.floor(low),
        max_score=math.ceil(high),
    )


# =============================================================================
# Model B: Bayesian Adjustment
# =============================================================================


def run_bayesian(snapshot: dict[str, Any], average: float) -> BayesianResult:
    stabilities = [
        s
        for s in ((_number((rec or {}).get("stability"))) for rec in (snapshot.get("academic") or {}).values())
        if s is not None
    ]
    confidence = sum(stabilities) / len(stabilities) if stabilities else NO_DATA_CONFIDENCE
    score = average * confidence + CONSERVATIVE_BASELINE * (1 - confidence)
    return BayesianResult(score=score, confidence=round(confidence, 2))


# =============================================================================
# Model C: Pattern Recognition
# =============================================================================


def run_pattern_recognition(snapshot: dict[str, Any], current: float) -> PatternResult:
    behavioral = snapshot.get("behavioral") or {}
    academic = snapshot.get("academic") or {}

    def mod(name: str) -> float:
        value = _number(behavioral.get(name))
        return 1.0 if value is None else value

    score = current
    flags: list[str] = []

    # Gambler's ruin: aggressive guessing plus careless mistakes
    if mod("risk_mod") > 1.03 and mod("silly_mistake_mod") < 0.95:
        score -= 12
        flags.append(PredictionFlag.GAMBLER_RISK.value)

    if mod("fatigue_mod") < 0.96:
        score -= 8
        flags.append(PredictionFlag.FATIGUE_RISK.value)

    if mod("panic_mod") < 0.92:
        score -= 5
        flags.append(PredictionFlag.PANIC_PRONE.value)

    # Paper II is qualifying only; the GS score stands but is flagged.
    csat_present = [sid for sid in CSAT_SUBJECT_IDS if academic.get(sid)]
    if csat_present:
        csat_score = sum(
            ((_number(academic[sid].get("mastery")) or 0.0) / 100) * CSAT_SECTION_MARKS for sid in csat_present
        )
        if csat_score < CSAT_QUALIFYING:
            flags.append(PredictionFlag.CSAT_CRITICAL_FAIL.value)

    return PatternResult(score=max(0.0, score), flags=flags)


# =============================================================================
# Ensemble
# =============================================================================


def run_ensemble(
    snapshot: dict[str, Any],
    config: dict[str, Any] | None = None,
    rng: random.Random | None = None,
) -> PredictionResult:
    """
    Run all three models and blend them.

    Args:
        snapshot: Telemetry snapshot (academic, behavioral, meta)
        config: {"simulation_runs": int, "models": {name: {"weight": float}}}
        rng: Random source (seed it for reproducible runs)

    Returns:
        Blended PredictionResult with the stress-test range
    """
    config = config or {}
    rng = rng or random.Random()

    stress = run_stress_test(snapshot, int(config.get("simulation_runs") or DEFAULT_SIMULATION_RUNS), rng)
    bayes = run_bayesian(snapshot, stress.average)
    pattern = run_pattern_recognition(snapshot, stress.average)

    models = {**DEFAULT_MODELS, **(config.get("models") or {})}
    w_mc = float(models["monte_carlo"]["weight"])
    w_bayes = float(models["bayesian"]["weight"])
    w_pattern = float(models["pattern"]["weight"])
    total_weight = w_mc + w_bayes + w_pattern
    if total_weight <= 0:
        raise ValueError("Ensemble weights must sum to a positive value")

    blended = (stress.average * w_mc + bayes.score * w_bayes + pattern.score * w_pattern) / total_weight

    return PredictionResult(
        score=round(blended),
        range=ScoreRange(min=stress.min_score, max=stress.max_score),
        confidence=bayes.confidence,
        flags=pattern.flags,
        breakdown={
            "mc": round(stress.average),
            "bayesian": round(bayes.score),
            "pattern": round(pattern.score),
        },
    )
