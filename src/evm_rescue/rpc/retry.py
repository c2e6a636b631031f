"""Exponential backoff wrapper around one logical operation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..exceptions import ExhaustedRetriesError
from .config import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryController:
    """Re-run an operation on classified-retryable failures.

    Failures rejected by ``is_retryable`` propagate immediately. When the
    retry budget is spent an :class:`ExhaustedRetriesError` wrapping the last
    cause is raised.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        is_retryable: Callable[[BaseException], bool],
        *,
        name: str = "operation",
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._policy = policy
        self._is_retryable = is_retryable
        self._name = name
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def run(self, operation: Callable[[], Awaitable[T]], *, action: str | None = None) -> T:
        label = action or self._name
        last_error: Exception | None = None

        for attempt in range(self._policy.max_attempts):
            try:
                return await operation()
            except Exception as exc:
                if not self._is_retryable(exc):
                    raise
                last_error = exc
                if attempt >= self._policy.max_retries:
                    break

                delay = self._policy.delay_for(attempt)
                logger.warning(
                    "%s failed with retryable error, retrying in %.1fs (%s/%s): %s",
                    label,
                    delay,
                    attempt + 1,
                    self._policy.max_retries,
                    exc,
                )
                sleep = self._sleep or asyncio.sleep
                await sleep(delay)

        logger.error("%s failed after %s attempts", label, self._policy.max_attempts)
        raise ExhaustedRetriesError(
            f"{label} failed after {self._policy.max_attempts} attempts",
            attempts=self._policy.max_attempts,
            last_error=last_error,
            details={"error": str(last_error)},
        ) from last_error
