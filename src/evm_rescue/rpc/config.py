"""Configuration containers for the RPC layer."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_MAX_CONCURRENCY = 5
DEFAULT_CACHE_MAX_ENTRIES = 1000
DEFAULT_HEALTH_CHECK_INTERVAL = 60.0
DEFAULT_PROBE_TIMEOUT = 5.0
DEFAULT_RETRY_BASE_DELAY = 1.0
DEFAULT_RETRY_MAX_DELAY = 30.0


@dataclass(frozen=True)
class EndpointConfig:
    """Static description of one JSON-RPC endpoint."""

    url: str
    name: str | None = None
    weight: int = 1
    max_requests_per_minute: int = 60

    @property
    def display_name(self) -> str:
        return self.name or self.url


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff parameters for one logical operation class.

    ``max_retries`` counts re-runs after the first attempt.
    """

    max_retries: int = 3
    base_delay: float = DEFAULT_RETRY_BASE_DELAY
    max_delay: float = DEFAULT_RETRY_MAX_DELAY

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the failed attempt with 0-based index ``attempt``."""
        return min(self.base_delay * (2**attempt), self.max_delay)


READ_RETRY_POLICY = RetryPolicy(max_retries=3)
SUBMISSION_RETRY_POLICY = RetryPolicy(max_retries=2)


@dataclass(frozen=True)
class CacheTTLConfig:
    """Per-operation cache lifetimes in seconds; 0 disables caching."""

    fee_data: float = 15.0
    token_info: float = 300.0
    balance: float = 0.0
    token_balance: float = 0.0
    chain_id: float = 3600.0
