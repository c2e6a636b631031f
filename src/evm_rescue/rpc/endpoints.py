"""Per-endpoint health and performance state."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any

from ..constants import FAILURE_LATENCY_PENALTY, UNHEALTHY_ERROR_THRESHOLD
from .config import EndpointConfig

logger = logging.getLogger(__name__)


@dataclass
class Endpoint:
    """Mutable health record for one configured endpoint.

    State machine: healthy -> unhealthy after ``UNHEALTHY_ERROR_THRESHOLD``
    consecutive failures; unhealthy -> healthy only through
    :meth:`record_probe_success`. Every mutation goes through a ``record_*``
    method.
    """

    url: str
    name: str
    weight: int
    max_requests_per_minute: int
    in_flight: int = 0
    is_healthy: bool = True
    response_time_ms: float = 0.0
    error_count: int = 0
    last_used: float = 0.0
    total_requests: int = 0
    failed_requests: int = 0
    last_error: str | None = None
    client: Any = field(default=None, repr=False, compare=False)

    @classmethod
    def from_config(cls, config: EndpointConfig) -> Endpoint:
        return cls(
            url=config.url,
            name=config.display_name,
            weight=config.weight,
            max_requests_per_minute=config.max_requests_per_minute,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def record_dispatch(self) -> None:
        self.in_flight += 1
        self.total_requests += 1
        self.last_used = time.time()

    def record_release(self) -> None:
        self.in_flight = max(0, self.in_flight - 1)

    def record_success(self, latency_ms: float) -> None:
        self.response_time_ms = (self.response_time_ms + latency_ms) / 2
        self.error_count = max(0, self.error_count - 1)

    def record_failure(self, error: BaseException) -> None:
        self.failed_requests += 1
        self.error_count += 1
        self.response_time_ms *= FAILURE_LATENCY_PENALTY
        self.last_error = str(error)
        if self.is_healthy and self.error_count >= UNHEALTHY_ERROR_THRESHOLD:
            self.is_healthy = False
            logger.warning(
                "Endpoint %s marked unhealthy after %s consecutive errors",
                self.name,
                self.error_count,
            )

    def record_probe_success(self, latency_ms: float) -> None:
        self.is_healthy = True
        self.error_count = 0
        self.response_time_ms = latency_ms
        logger.info("Endpoint %s restored to healthy (%.0fms)", self.name, latency_ms)

    def record_probe_failure(self, error: BaseException) -> None:
        self.last_error = str(error)

    def snapshot(self) -> Endpoint:
        """Detached copy safe to hand to callers."""
        return replace(self, client=None)
