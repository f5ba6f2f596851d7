"""
Master Aggregator: exam score prediction.

Collects a telemetry snapshot (per-subject mastery, behavioral profile,
meta counters), memoizes on its structural signature, and otherwise
dispatches the ensemble to the background worker.

Guarantees:
- At most one computation in flight; a concurrent call returns None.
- Single-entry cache: an unchanged snapshot returns the identical cached
  PredictionResult without a worker round-trip.
- Every call settles. A worker error or timeout degrades to the in-process
  fallback model, and that degraded result is not cached.
"""

from __future__ import annotations

import asyncio
import itertools
import json
from collections.abc import Callable
from datetime import date
from typing import Any

from loguru import logger

from config import Settings, get_settings
from src.core.events import ORACLE_UPDATE, EventBus, OracleUpdate
from src.core.subjects import subject_weight
from src.db.gateway import ACADEMIC_STATE, HISTORY, PROFILES, StorageGateway
from src.oracle.display import format_for_display
from src.oracle.models import (
    PredictionFlag,
    PredictionResult,
    ScoreRange,
    WorkerCommand,
    WorkerError,
    WorkerRequest,
    WorkerResponse,
    WorkerStatus,
    WorkerUnavailableError,
)
from src.oracle.profile import NEUTRAL_MODIFIERS, BehavioralProfile
from src.oracle.worker import OracleWorker

HISTORY_SCAN_LIMIT = 10_000
MAX_SCORE = 200
FALLBACK_SPREAD = 0.10
FALLBACK_CONFIDENCE = 0.5


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


class MasterAggregator:
    """
    Prediction coordinator.

    Usage:
        oracle = MasterAggregator(storage, events=bus)
        prediction = await oracle.get_prediction()
        await oracle.close()
    """

    def __init__(
        self,
        storage: StorageGateway,
        events: EventBus | None = None,
        settings: Settings | None = None,
        worker_factory: Callable[[Callable[[WorkerResponse], None]], Any] | None = OracleWorker,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize the aggregator.

        Args:
            storage: Gateway for academic state, profiles and history
            events: Bus for oracle-update notifications
            settings: Application settings (cached settings if None)
            worker_factory: Builds a worker from a reply callback (None forces the fallback)
            today: Date source for the exam countdown
        """
        self.storage = storage
        self.events = events or EventBus()
        self.settings = settings or get_settings()
        self._worker_factory = worker_factory
        self._today = today

        self._worker: Any = None
        self._init_attempted = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._calculating = False
        self._pending: asyncio.Future[PredictionResult] | None = None
        self._pending_id: int | None = None
        self._request_ids = itertools.count(1)

        self.last_signature: str | None = None
        self.last_prediction: PredictionResult | None = None

    @property
    def worker_available(self) -> bool:
        return self._worker is not None

    # =========================================================================
    # Initialization
    # =========================================================================

    def init(self) -> None:
        """Start the worker once; failure is logged and never retried."""
        if self._init_attempted:
            return
        self._init_attempted = True
        self._loop = asyncio.get_running_loop()

        if not self.settings.oracle_worker_enabled or self._worker_factory is None:
            logger.info("Oracle worker disabled; predictions use the fallback model")
            return

        try:
            worker = self._worker_factory(self._on_worker_message)
            worker.start()
            worker.post(WorkerRequest(command=WorkerCommand.PING))
        except Exception:
            logger.opt(exception=True).warning("Oracle worker unavailable; using fallback model")
            return

        self._worker = worker
        logger.debug("Oracle worker ready")

    async def close(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        worker, self._worker = self._worker, None
        if worker is not None:
            await asyncio.to_thread(worker.stop)

    # =========================================================================
    # Public API
    # =========================================================================

    async def get_prediction(self) -> PredictionResult | None:
        """
        Current score prediction.

        Returns:
            PredictionResult (cached when the snapshot is unchanged), or None
            if a computation is already in flight or gathering failed
        """
        self.init()
        # Replies are marshalled to whichever loop is asking now
        self._loop = asyncio.get_running_loop()

        if self._calculating:
            logger.debug("Prediction already in flight")
            return None
        self._calculating = True

        try:
            snapshot = await self._gather_telemetry()
            signature = json.dumps(snapshot, sort_keys=True, default=str)

            if self.last_prediction is not None and signature == self.last_signature:
                return self.last_prediction

            prediction, cacheable = await self._compute(snapshot)
            if cacheable:
                self.last_signature = signature
                self.last_prediction = prediction

            self.events.emit(ORACLE_UPDATE, OracleUpdate(prediction=prediction, display=format_for_display(prediction)))
            return prediction
        except Exception:
            logger.exception("Prediction failed")
            return None
        finally:
            self._calculating = False

    # =========================================================================
    # Computation
    # =========================================================================

    async def _compute(self, snapshot: dict[str, Any]) -> tuple[PredictionResult, bool]:
        """Returns (prediction, cacheable)."""
        if self._worker is None:
            return self._run_fallback_simulation(snapshot), True

        request_id = next(self._request_ids)
        self._pending = asyncio.get_running_loop().create_future()
        self._pending_id = request_id

        try:
            self._worker.post(
                WorkerRequest(
                    command=WorkerCommand.RUN_ENSEMBLE,
                    request_id=request_id,
                    data=snapshot,
                    config=self.settings.get_ensemble_config(),
                )
            )
            result = await asyncio.wait_for(self._pending, timeout=self.settings.oracle_timeout_seconds)
            return result, True
        except asyncio.TimeoutError:
            logger.warning("Oracle worker timed out after {}s; using fallback", self.settings.oracle_timeout_seconds)
        except (WorkerError, WorkerUnavailableError) as exc:
            logger.warning("Oracle worker failed ({}); using fallback", exc)
        finally:
            self._pending = None
            self._pending_id = None

        return self._run_fallback_simulation(snapshot), False

    def _on_worker_message(self, response: WorkerResponse) -> None:
        """Worker-thread callback; hands the reply to the event loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._handle_worker_message, response)

    def _handle_worker_message(self, response: WorkerResponse) -> None:
        if response.status is WorkerStatus.PONG:
            return

        pending = self._pending
        if pending is None or pending.done() or response.request_id != self._pending_id:
            logger.debug("Dropping stale worker reply {}", response.request_id)
            return

        if response.status is WorkerStatus.SUCCESS and response.result is not None:
            pending.set_result(response.result)
        else:
            logger.error("Oracle worker error: {}", response.message)
            pending.set_exception(WorkerError(response.message or "worker error"))

    def _run_fallback_simulation(self, snapshot: dict[str, Any]) -> PredictionResult:
        """Linear projection: sum of mastery x weight x 2."""
        total = sum(
            _number(record.get("mastery")) * _number(record.get("weight")) * 2
            for record in (snapshot.get("academic") or {}).values()
        )
        score = max(0, min(MAX_SCORE, round(total)))
        return PredictionResult(
            score=score,
            range=ScoreRange(
                min=round(score * (1 - FALLBACK_SPREAD), 2),
                max=round(score * (1 + FALLBACK_SPREAD), 2),
            ),
            confidence=FALLBACK_CONFIDENCE,
            flags=[PredictionFlag.LOW_POWER_MODE.value],
            breakdown={"mc": score, "bayesian": score, "pattern": score},
        )

    # =========================================================================
    # Data Collection
    # =========================================================================

    async def _gather_telemetry(self) -> dict[str, Any]:
        academic: dict[str, dict[str, Any]] = {}
        try:
            for record in await self.storage.get_all(ACADEMIC_STATE):
                subject_id = record.get("subject_id")
                if subject_id is None:
                    continue
                entry = dict(record)
                if entry.get("weight") is None:
                    entry["weight"] = subject_weight(subject_id)
                entry["score_mean"] = entry.get("mastery")
                entry["mastery"] = self._mastery_percent(record)
                academic[subject_id] = entry
        except Exception:
            logger.opt(exception=True).warning("Academic data fetch failed")

        user_id = self.settings.profile_user_id
        stored = None
        try:
            stored = await self.storage.get(PROFILES, user_id)
        except Exception:
            logger.opt(exception=True).warning("Profile fetch failed")

        if stored:
            behavioral = BehavioralProfile.from_dict(stored).snapshot()
        else:
            # Average aspirant
            behavioral = {**BehavioralProfile(user_id=user_id).to_dict(), **NEUTRAL_MODIFIERS}

        history_count = 0
        try:
            history_count = len(await self.storage.get_random_keys(HISTORY, None, None, HISTORY_SCAN_LIMIT))
        except Exception:
            logger.opt(exception=True).warning("History count failed")

        return {
            "academic": academic,
            "behavioral": behavioral,
            "meta": {
                "total_tests": history_count,
                "days_to_exam": self._days_to_exam(),
            },
        }

    def _mastery_percent(self, record: dict[str, Any]) -> float:
        """
        Subject strength on the 0-100 scale the ensemble expects.

        Uses the academic engine's proficiency when present; otherwise the
        running score mean as a share of a full session's marks.
        """
        proficiency = record.get("proficiency")
        if isinstance(proficiency, (int, float)) and not isinstance(proficiency, bool):
            return round(max(0.0, min(100.0, float(proficiency))), 2)

        full_marks = self.settings.questions_per_session * self.settings.correct_marks
        if full_marks <= 0:
            return 0.0
        return round(max(0.0, min(100.0, _number(record.get("mastery")) / full_marks * 100)), 2)

    def _days_to_exam(self) -> int:
        return max(0, (self.settings.exam_date - self._today()).days)
