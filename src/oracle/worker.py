"""
Oracle background worker.

An actor on a daemon thread: requests go in through a queue, replies come
back through the `on_message` callback (invoked on the worker thread; the
caller marshals them to its own loop).

    PING          -> PONG
    RUN_ENSEMBLE  -> SUCCESS(result) | ERROR(message)
"""

from __future__ import annotations

import queue
import random
import threading
from collections.abc import Callable

from loguru import logger

from src.oracle.ensemble import run_ensemble
from src.oracle.models import (
    WorkerCommand,
    WorkerRequest,
    WorkerResponse,
    WorkerStatus,
    WorkerUnavailableError,
)

_STOP = object()


class OracleWorker:
    """
    Background ensemble runner.

    Usage:
        worker = OracleWorker(on_message=handle_reply)
        worker.start()
        worker.post(WorkerRequest(WorkerCommand.RUN_ENSEMBLE, data=snapshot, config=cfg))
        # ... handle_reply(WorkerResponse) arrives later ...
        worker.stop()
    """

    def __init__(
        self,
        on_message: Callable[[WorkerResponse], None],
        rng: random.Random | None = None,
    ):
        self.on_message = on_message
        self._rng = rng or random.Random()
        self._inbox: queue.Queue[object] = queue.Queue()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._thread = threading.Thread(target=self._loop, name="oracle-worker", daemon=True)
        self._thread.start()
        logger.debug("Oracle worker started")

    def post(self, request: WorkerRequest) -> None:
        """Enqueue a request; returns immediately."""
        if not self.is_running:
            raise WorkerUnavailableError("Oracle worker is not running")
        self._inbox.put(request)

    def stop(self, timeout: float = 5.0) -> None:
        if not self.is_running:
            return
        self._inbox.put(_STOP)
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.debug("Oracle worker stopped")

    # =========================================================================
    # Worker Thread
    # =========================================================================

    def _loop(self) -> None:
        while True:
            item = self._inbox.get()
            if item is _STOP:
                break
            if isinstance(item, WorkerRequest):
                self._reply(self._handle(item))

    def _handle(self, request: WorkerRequest) -> WorkerResponse:
        if request.command is WorkerCommand.PING:
            return WorkerResponse(status=WorkerStatus.PONG, request_id=request.request_id)

        if request.command is WorkerCommand.RUN_ENSEMBLE:
            try:
                result = run_ensemble(request.data or {}, request.config, self._rng)
                return WorkerResponse(status=WorkerStatus.SUCCESS, request_id=request.request_id, result=result)
            except Exception as exc:
                logger.exception("Ensemble simulation failed")
                return WorkerResponse(status=WorkerStatus.ERROR, request_id=request.request_id, message=str(exc))

        return WorkerResponse(
            status=WorkerStatus.ERROR,
            request_id=request.request_id,
            message=f"Unknown command: {request.command}",
        )

    def _reply(self, response: WorkerResponse) -> None:
        try:
            self.on_message(response)
        except Exception:
            logger.exception("Oracle worker reply handler failed")
