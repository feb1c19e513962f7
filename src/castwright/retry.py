"""Resilient call wrapper shared by every generative back-end call.

A single retry policy lives here: attempt the operation, and on failure
sleep for the current backoff, grow it by ``2 * (0.5 + random() / 2)``
(exponential growth with jitter) and try again, up to ``max_retries``
additional attempts. The original exception is re-raised unchanged once
attempts are exhausted.

Runs can be aborted with a ``CancellationToken``. The token interrupts an
in-progress backoff sleep instead of waiting out the schedule. A token can
be passed explicitly or installed for the current task with
``cancellation_scope``.
"""

from __future__ import annotations

import asyncio
import random as _random
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from castwright.exceptions import PipelineCancelledError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator

    from tenacity import RetryCallState

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_BACKOFF = 1.0


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class CancellationToken:
    """Cooperative cancellation signal for a pipeline run."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Signal cancellation; idempotent."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()
            logger.info("cancellation_requested", reason=reason)

    def raise_if_cancelled(self) -> None:
        """Raise ``PipelineCancelledError`` if the token has been cancelled."""
        if self._event.is_set():
            raise PipelineCancelledError(self.reason or "cancelled")

    async def sleep(
        self,
        seconds: float,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Sleep for ``seconds`` unless cancelled first.

        Args:
            seconds: Delay to wait.
            sleeper: Underlying sleep coroutine function.

        Raises:
            PipelineCancelledError: If the token fires before or during
                the sleep.
        """
        self.raise_if_cancelled()
        sleep_task = asyncio.ensure_future(sleeper(seconds))
        cancel_task = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait(
                {sleep_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (sleep_task, cancel_task):
                if not task.done():
                    task.cancel()
        self.raise_if_cancelled()
        sleep_task.result()


_current_token: ContextVar[CancellationToken | None] = ContextVar(
    "castwright_cancel_token", default=None
)


@contextmanager
def cancellation_scope(token: CancellationToken | None) -> Iterator[None]:
    """Install ``token`` as the default for ``with_retry`` in this context."""
    reset = _current_token.set(token)
    try:
        yield
    finally:
        _current_token.reset(reset)


def current_cancel_token() -> CancellationToken | None:
    """Return the token installed by the innermost ``cancellation_scope``."""
    return _current_token.get()


# ---------------------------------------------------------------------------
# Backoff strategy
# ---------------------------------------------------------------------------


class wait_jittered_doubling(wait_base):  # noqa: N801 - tenacity naming
    """Stateful wait: first sleep is ``initial``, each next one grows by
    ``2 * (0.5 + random() / 2)``.

    One instance must be used per ``with_retry`` invocation.
    """

    def __init__(
        self,
        initial: float,
        random: Callable[[], float] = _random.random,
    ) -> None:
        self._next = initial
        self._random = random

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self._next
        self._next = self._next * 2 * (0.5 + self._random() / 2)
        return delay


def _should_retry(exc: BaseException) -> bool:
    return not isinstance(
        exc, (asyncio.CancelledError, PipelineCancelledError, KeyboardInterrupt)
    )


def _log_before_sleep(label: str) -> Callable[[RetryCallState], None]:
    def _log(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "call_retry_scheduled",
            operation=label,
            attempt=retry_state.attempt_number,
            backoff_seconds=round(delay, 3),
            error=str(error),
            error_type=type(error).__name__ if error else None,
        )

    return _log


# ---------------------------------------------------------------------------
# Wrapper
# ---------------------------------------------------------------------------


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    label: str = "operation",
    cancel_token: CancellationToken | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    random: Callable[[], float] = _random.random,
) -> T:
    """Run ``operation`` with exponential backoff and jitter.

    Args:
        operation: Zero-argument coroutine function to attempt.
        max_retries: Retries after the first attempt; ``max_retries + 1``
            attempts are made in total before giving up.
        initial_backoff: First backoff delay in seconds.
        label: Operation name used in log events.
        cancel_token: Optional token that aborts the retry sequence. Falls
            back to the token installed by ``cancellation_scope``.
        sleep: Sleep coroutine function (injectable for tests).
        random: Source of uniform ``[0, 1)`` floats for jitter.

    Returns:
        The value returned by the first successful attempt.

    Raises:
        Exception: The last attempt's exception, unchanged, once attempts
            are exhausted.
        PipelineCancelledError: If the token is cancelled.
    """
    token = cancel_token if cancel_token is not None else current_cancel_token()

    async def _attempt() -> T:
        if token is not None:
            token.raise_if_cancelled()
        return await operation()

    async def _sleep(seconds: float) -> None:
        if token is None:
            await sleep(seconds)
        else:
            await token.sleep(seconds, sleeper=sleep)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_jittered_doubling(initial_backoff, random=random),
        retry=retry_if_exception(_should_retry),
        before_sleep=_log_before_sleep(label),
        sleep=_sleep,
        reraise=True,
    )
    return await retrying(_attempt)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bound retry parameters handed to each stage at construction."""

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep)
    random: Callable[[], float] = field(default=_random.random)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str = "operation",
        cancel_token: CancellationToken | None = None,
    ) -> T:
        """Run ``operation`` through ``with_retry`` using this policy."""
        return await with_retry(
            operation,
            max_retries=self.max_retries,
            initial_backoff=self.initial_backoff,
            label=label,
            cancel_token=cancel_token,
            sleep=self.sleep,
            random=self.random,
        )
