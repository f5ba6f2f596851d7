"""
Oracle: exam score prediction.

Components:
- aggregator: MasterAggregator (snapshot, cache, worker dispatch, fallback)
- ensemble: Stress-test, Bayesian and pattern models
- worker: Background thread running the ensemble
- academic: Per-subject proficiency, stability, decay and coverage
- profile: Behavioral profile and the engine that learns it
- display: UI shaping (probability tier, colour, bell curve)
"""

from .academic import AcademicEngine
from .aggregator import MasterAggregator
from .display import DisplayPrediction, format_for_display
from .models import PredictionFlag, PredictionResult, ScoreRange
from .profile import BehavioralEngine, BehavioralProfile

__all__ = [
    "AcademicEngine",
    "MasterAggregator",
    "DisplayPrediction",
    "format_for_display",
    "PredictionFlag",
    "PredictionResult",
    "ScoreRange",
    "BehavioralEngine",
    "BehavioralProfile",
]
