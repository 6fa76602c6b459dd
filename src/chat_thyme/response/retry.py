"""
Retry policies for calls to unreliable services.

A :class:`RetryPolicy` is a plain value: how many attempts, how the wait grows,
and which exceptions are worth another attempt. Call sites apply it inline::

    async for attempt in MODEL_RETRY.retrying():
        with attempt:
            resp = await client.chat.completions.create(...)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


def _always(_: BaseException) -> bool:
    return True


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff."""

    name: str
    max_attempts: int = 4
    min_wait: float = 1.0
    max_wait: float = 15.0
    multiplier: float = 2.0
    retryable: Callable[[BaseException], bool] = _always

    def without_waits(self) -> "RetryPolicy":
        return replace(self, min_wait=0.0, max_wait=0.0)

    def retrying(self) -> AsyncRetrying:
        """Build a fresh tenacity controller for one call site."""
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self.max_attempts)),
            wait=wait_exponential(
                multiplier=self.min_wait,
                exp_base=self.multiplier,
                min=self.min_wait,
                max=self.max_wait,
            ),
            retry=retry_if_exception(self.retryable),
            before_sleep=self._log_failed_attempt,
        )

    def _log_failed_attempt(self, state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "%s attempt %d failed (%s). There are %d retries left...",
            self.name,
            state.attempt_number,
            exc,
            self.max_attempts - state.attempt_number,
        )


__all__ = ["RetryPolicy"]
