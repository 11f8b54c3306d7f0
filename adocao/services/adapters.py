# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Bounded calls into external collaborators.

Area registry and inspection gate calls run on a small worker pool and are
awaited for at most ``timeout_seconds``. A call that does not return in time
raises ``AdapterTimeout``; there is no fallback value.

A timed-out call may still be running and land later. Callers that change
external state pass ``on_late_success`` to undo it once that happens. Calls
left running after their timeout are tracked; when they occupy every worker
the pool is replaced so new calls are not queued behind them.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional, Set

from opentelemetry import trace

from adocao.domain.errors import AdapterTimeout

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

DEFAULT_ADAPTER_TIMEOUT_SECONDS = 5.0


class AdapterCaller:
    """Runs collaborator calls with a timeout."""

    def __init__(self, timeout_seconds: Optional[float] = DEFAULT_ADAPTER_TIMEOUT_SECONDS, max_workers: int = 4):
        self.timeout_seconds = timeout_seconds
        self.max_workers = max_workers
        self._guard = threading.Lock()
        self._executor = self._new_executor()
        self._stalled: Set[Future] = set()

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="adocao-adapter")

    def _submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        with self._guard:
            return self._executor.submit(fn, *args)

    def _track_stalled(self, future: Future) -> None:
        with self._guard:
            stalled = self._stalled
            stalled.add(future)
            if len(stalled) >= self.max_workers:
                logger.error(
                    "All adapter workers are stuck on timed-out calls; starting a new pool",
                    extra={"stalled_calls": len(stalled)}
                )
                self._executor.shutdown(wait=False)
                self._executor = self._new_executor()
                self._stalled = set()
        future.add_done_callback(stalled.discard)

    def call(self, operation: str, fn: Callable[..., Any], *args: Any,
             on_late_success: Optional[Callable[[], None]] = None) -> Any:
        """
        Invoke ``fn(*args)`` and wait for it within the configured bound.

        Exceptions raised by the collaborator propagate unchanged.

        Args:
            operation: Name used in logs and spans
            fn: Collaborator function
            on_late_success: Run after a timed-out call eventually returns
                without error; not run when the call never started

        Raises:
            AdapterTimeout: when the call does not return in time
        """
        with tracer.start_as_current_span("adapter.call") as span:
            span.set_attributes({
                "adapter.operation": operation,
                "adapter.timeout_seconds": self.timeout_seconds or 0
            })
            if self.timeout_seconds is None:
                return fn(*args)

            future = self._submit(fn, *args)
            try:
                return future.result(timeout=self.timeout_seconds)
            except FutureTimeoutError:
                started = not future.cancel()
                if started and future.done():
                    return future.result()
                error = AdapterTimeout(operation, self.timeout_seconds)
                span.record_exception(error)
                span.set_status(trace.Status(trace.StatusCode.ERROR, error.message))
                span.set_attribute("adapter.still_running", started)
                logger.error(
                    "Adapter call timed out",
                    extra={"operation": operation, "timeout_seconds": self.timeout_seconds, "still_running": started}
                )
                if started:
                    if on_late_success is not None:
                        future.add_done_callback(_compensation(operation, on_late_success))
                    self._track_stalled(future)
                raise error

    def shutdown(self, wait: bool = False) -> None:
        with self._guard:
            executor = self._executor
        executor.shutdown(wait=wait)


def _compensation(operation: str, undo: Callable[[], None]) -> Callable[[Future], None]:
    def run(future: Future) -> None:
        if future.cancelled() or future.exception() is not None:
            return
        logger.warning("Timed-out adapter call completed late; compensating", extra={"operation": operation})
        try:
            undo()
        except Exception:
            logger.exception("Compensation after late adapter call failed", extra={"operation": operation})
    return run
