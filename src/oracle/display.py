"""
Prediction display shaping.

Pure functions turning a PredictionResult into what a UI shows: a
probability tier, a severity colour, warnings, and a bell-curve series for
charting.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from src.oracle.models import PredictionFlag, PredictionResult, ScoreRange

GREEN = "#00E676"
AMBER = "#FFC107"
ORANGE = "#FF5722"
RED = "#F44336"

# (score strictly above, probability %, colour), checked top-down
PROBABILITY_TIERS: tuple[tuple[float, int, str], ...] = (
    (105, 95, GREEN),
    (98, 80, GREEN),
    (88, 55, AMBER),
    (75, 25, ORANGE),
)
FLOOR_TIER = (10, RED)


@dataclass(frozen=True)
class ChartPoint:
    x: int
    y: float


@dataclass(frozen=True)
class DisplayPrediction:
    display_score: float
    probability_text: str
    probability_value: int
    color: str
    chart_data: list[ChartPoint] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def probability_tier(score: float) -> tuple[int, str]:
    for threshold, probability, color in PROBABILITY_TIERS:
        if score > threshold:
            return probability, color
    return FLOOR_TIER


def bell_curve_points(mean: float, score_range: ScoreRange) -> list[ChartPoint]:
    """Gaussian series from -3σ to +3σ in 0.3σ steps (σ = range / 6, at least 1)."""
    std_dev = max(1.0, (score_range.max - score_range.min) / 6)
    points = []
    for step in range(21):
        i = -3 + step * 0.3
        x = mean + i * std_dev
        y = math.exp(-0.5 * ((x - mean) / std_dev) ** 2)
        points.append(ChartPoint(x=round(x), y=y))
    return points


def format_for_display(prediction: PredictionResult | None) -> DisplayPrediction | None:
    if prediction is None:
        return None

    score = prediction.score
    flags = list(prediction.flags)

    if PredictionFlag.CSAT_CRITICAL_FAIL.value in flags:
        return DisplayPrediction(
            display_score=score,
            probability_text="CSAT DISQUALIFIED",
            probability_value=0,
            color=RED,
            chart_data=[],
            warnings=["CSAT Score < 66", *flags],
        )

    probability, color = probability_tier(score)
    score_range = prediction.range or ScoreRange(min=score * 0.9, max=score * 1.1)

    return DisplayPrediction(
        display_score=score,
        probability_text=f"{probability}% CHANCE",
        probability_value=probability,
        color=color,
        chart_data=bell_curve_points(score, score_range),
        warnings=flags,
    )
