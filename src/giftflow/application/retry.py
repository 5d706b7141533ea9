"""Shared retry policy for calls to external collaborators.

One policy object, applied the same way by the Order Committer, the
Fulfillment Trigger and the Refund Coordinator.  By default only
TransientError is retried; everything else propagates on the first
attempt.  When the budget is exhausted the last retryable error is wrapped
in a FatalError.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from giftflow.domain.exceptions import FatalError, TransientError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 4
    initial_backoff: float = 0.5  # seconds before the 2nd attempt
    backoff_factor: float = 2.0
    max_backoff: float = 8.0
    attempt_timeout: float | None = None  # seconds per attempt, None = unbounded
    retry_on: tuple[type[Exception], ...] = (TransientError,)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def call(
        self,
        operation: Callable[..., T],
        *args: Any,
        description: str = "external call",
        **kwargs: Any,
    ) -> T:
        """Run *operation* under this policy and return its result."""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.initial_backoff,
                exp_base=self.backoff_factor,
                max=self.max_backoff,
            ),
            retry=retry_if_exception_type(self.retry_on),
            sleep=self.sleep,
            before_sleep=_log_retry(description),
            reraise=True,
        )
        if self.attempt_timeout is None:
            pool = None
        else:
            pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="giftflow-call")
        in_flight: list[Future] = []
        try:
            for attempt in retrying:
                with attempt:
                    if pool is None:
                        return operation(*args, **kwargs)
                    return self._run_bounded(
                        pool, in_flight, operation, args, kwargs, description
                    )
        except self.retry_on as exc:
            raise FatalError(
                f"{description} failed after {self.max_attempts} attempts: {exc}"
            ) from exc
        finally:
            if pool is not None:
                pool.shutdown(wait=False)
        raise AssertionError("unreachable")  # pragma: no cover

    def _run_bounded(
        self,
        pool: ThreadPoolExecutor,
        in_flight: list[Future],
        operation: Callable[..., T],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
        description: str,
    ) -> T:
        """Wait up to ``attempt_timeout`` for the call.

        A call that timed out is not re-issued: the next attempt waits on
        the same call again, so at most one is ever in flight.  A stuck call
        is abandoned, not killed, once the budget runs out.
        """
        future = in_flight.pop() if in_flight else pool.submit(operation, *args, **kwargs)
        try:
            return future.result(timeout=self.attempt_timeout)
        except FutureTimeout as exc:
            if future.done():
                raise
            in_flight.append(future)
            raise TransientError(
                f"{description} timed out after {self.attempt_timeout}s"
            ) from exc


def _log_retry(description: str) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        logger.warning(
            "Retrying after transient failure",
            operation=description,
            attempt=state.attempt_number,
            wait_seconds=round(state.next_action.sleep, 3) if state.next_action else None,
            error=str(error),
        )

    return before_sleep
