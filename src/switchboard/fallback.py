"""
Model Fallback — one logical model over an ordered list of backends

  models[0] (primary) → models[1] → ... → models[-1] → raise last error

Every failed attempt is reported to ``on_error`` and the next backend is
tried. Once the executor has moved off the primary it stays on the
fallback until ``model_reset_interval`` ms have passed; the next request
after that starts from the primary again (checked lazily, no timer).

Shared state is only ``current_index`` and ``last_failover_at``. Both are
read and written under a lock that is never held across a backend call.
Each request walks its own copy of the index, so concurrent requests never
skip a backend on each other's behalf.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
)

from .errors import NoModelsAvailableError, NormalizedError, normalize_error

logger = logging.getLogger(__name__)

DEFAULT_MODEL_RESET_INTERVAL_MS = 60_000

ErrorObserver = Callable[[NormalizedError, str], None]


def model_identifier(model: Any) -> str:
    for attr in ("model_id", "name"):
        value = getattr(model, attr, None)
        if isinstance(value, str) and value:
            return value
    return type(model).__name__


class FallbackModel:
    """Ordered backends behind a single ``invoke``/``stream`` handle."""

    def __init__(
        self,
        models: Sequence[Any],
        model_reset_interval: int = DEFAULT_MODEL_RESET_INTERVAL_MS,
        retry_after_output: bool = True,
        on_error: Optional[ErrorObserver] = None,
        should_retry: Optional[Callable[[BaseException], bool]] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if not models:
            raise NoModelsAvailableError()
        self._models: Tuple[Any, ...] = tuple(models)
        self._model_reset_interval = model_reset_interval
        self._retry_after_output = retry_after_output
        self._on_error = on_error
        self._should_retry = should_retry
        self._clock = clock or time.monotonic

        self._lock = threading.Lock()
        self._current_index = 0
        self._last_failover_at: Optional[float] = None

        # normalized failures of the most recent request
        self.last_failures: List[Tuple[str, NormalizedError]] = []

    # ── State ──

    @property
    def models(self) -> Tuple[Any, ...]:
        return self._models

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def last_failover_at(self) -> Optional[float]:
        return self._last_failover_at

    @property
    def current_model(self) -> Any:
        return self._models[self._current_index]

    @property
    def model_id(self) -> str:
        return model_identifier(self.current_model)

    def reset(self) -> None:
        """Go back to the primary immediately."""
        with self._lock:
            self._current_index = 0
            self._last_failover_at = None

    def _start_index(self) -> int:
        with self._lock:
            if self._current_index != 0 and self._last_failover_at is not None:
                elapsed_ms = (self._clock() - self._last_failover_at) * 1000
                if elapsed_ms >= self._model_reset_interval:
                    logger.info(
                        "reset interval elapsed (%.0fms), returning to primary %s",
                        elapsed_ms, model_identifier(self._models[0]),
                    )
                    self._current_index = 0
                    self._last_failover_at = None
            return self._current_index

    def _record_failover(self, next_index: int) -> None:
        with self._lock:
            # a slow request must not drag the shared index backwards
            self._current_index = max(self._current_index, next_index)
            self._last_failover_at = self._clock()

    # ── Failure handling ──

    def _notify(self, error: NormalizedError, model_id: str) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error, model_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("on_error observer raised for %s: %s", model_id, exc)

    def _retryable(self, exc: BaseException, model_id: str) -> bool:
        if self._should_retry is None:
            return True
        try:
            return bool(self._should_retry(exc))
        except Exception as predicate_exc:  # noqa: BLE001
            logger.error("should_retry raised for %s, not retrying: %s", model_id, predicate_exc)
            return False

    def _next_index(
        self,
        exc: BaseException,
        index: int,
        output_started: bool,
        failures: List[Tuple[str, NormalizedError]],
    ) -> Optional[int]:
        """Report a failed attempt; return where to retry, or None to raise."""
        model_id = model_identifier(self._models[index])
        error = normalize_error(exc)
        failures.append((model_id, error))
        self._notify(error, model_id)

        if output_started and not self._retry_after_output:
            logger.warning("%s failed after output started, not retrying: %s", model_id, error.message)
            return None
        if not self._retryable(exc, model_id):
            logger.warning("%s failed with non-retryable error: %s", model_id, error.message)
            return None

        next_index = index + 1
        if next_index >= len(self._models):
            logger.error(
                "all %d model(s) failed, last was %s: %s",
                len(failures), model_id, error.message,
            )
            return None

        self._record_failover(next_index)
        logger.warning(
            "%s failed (%s), falling back to %s",
            model_id, error.kind or error.message, model_identifier(self._models[next_index]),
        )
        return next_index

    def _begin(self) -> Tuple[int, List[Tuple[str, NormalizedError]]]:
        failures: List[Tuple[str, NormalizedError]] = []
        self.last_failures = failures
        return self._start_index(), failures

    # ── Sync ──

    def invoke(self, request: Any) -> Any:
        index, failures = self._begin()
        while True:
            try:
                return self._models[index].invoke(request)
            except Exception as exc:  # noqa: BLE001
                next_index = self._next_index(exc, index, False, failures)
                if next_index is None:
                    raise
                index = next_index

    def stream(self, request: Any) -> Iterator[Any]:
        index, failures = self._begin()
        while True:
            output_started = False
            try:
                for chunk in self._models[index].stream(request):
                    output_started = True
                    yield chunk
                return
            except Exception as exc:  # noqa: BLE001
                next_index = self._next_index(exc, index, output_started, failures)
                if next_index is None:
                    raise
                index = next_index

    # ── Async ──

    async def ainvoke(self, request: Any) -> Any:
        index, failures = self._begin()
        while True:
            try:
                return await self._models[index].ainvoke(request)
            except Exception as exc:  # noqa: BLE001
                next_index = self._next_index(exc, index, False, failures)
                if next_index is None:
                    raise
                index = next_index

    async def astream(self, request: Any) -> AsyncIterator[Any]:
        index, failures = self._begin()
        while True:
            output_started = False
            try:
                async for chunk in self._models[index].astream(request):
                    output_started = True
                    yield chunk
                return
            except Exception as exc:  # noqa: BLE001
                next_index = self._next_index(exc, index, output_started, failures)
                if next_index is None:
                    raise
                index = next_index


def create_fallback(
    models: Sequence[Any],
    *,
    model_reset_interval: int = DEFAULT_MODEL_RESET_INTERVAL_MS,
    retry_after_output: bool = True,
    on_error: Optional[ErrorObserver] = None,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    clock: Optional[Callable[[], float]] = None,
) -> FallbackModel:
    return FallbackModel(
        models,
        model_reset_interval=model_reset_interval,
        retry_after_output=retry_after_output,
        on_error=on_error,
        should_retry=should_retry,
        clock=clock,
    )
