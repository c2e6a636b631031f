"""Configuration containers for the rescue client."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace

from dotenv import load_dotenv

from ..constants import (
    CONTRACT_FRESHNESS_HOURS,
    DEFAULT_ENDPOINTS,
    NATIVE_SYMBOL,
    POLYGON_CHAIN_ID,
)
from ..exceptions import ValidationError
from ..rpc.config import (
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_HEALTH_CHECK_INTERVAL,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    READ_RETRY_POLICY,
    SUBMISSION_RETRY_POLICY,
    CacheTTLConfig,
    EndpointConfig,
    RetryPolicy,
)

logger = logging.getLogger(__name__)

DEFAULT_RECEIPT_TIMEOUT = 120.0
DEFAULT_VERIFY_TIMEOUT = 30.0
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_MONITOR_INTERVAL = 3.0
DEFAULT_BATCH_SPACING = 1.0


def default_endpoints() -> tuple[EndpointConfig, ...]:
    return tuple(
        EndpointConfig(url=url, name=name, weight=weight, max_requests_per_minute=rpm)
        for url, name, weight, rpm in DEFAULT_ENDPOINTS
    )


@dataclass(frozen=True)
class ClientConfig:
    """Aggregated configuration used to construct :class:`RescueClient`."""

    endpoints: tuple[EndpointConfig, ...] = field(default_factory=default_endpoints)
    chain_id: int = POLYGON_CHAIN_ID
    native_symbol: str = NATIVE_SYMBOL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    cache_max_entries: int = DEFAULT_CACHE_MAX_ENTRIES
    cache_ttl: CacheTTLConfig = CacheTTLConfig()
    health_check_interval: float = DEFAULT_HEALTH_CHECK_INTERVAL
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    read_retry: RetryPolicy = READ_RETRY_POLICY
    submission_retry: RetryPolicy = SUBMISSION_RETRY_POLICY
    receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    verify_timeout: float = DEFAULT_VERIFY_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    batch_spacing: float = DEFAULT_BATCH_SPACING
    contract_freshness_hours: float = CONTRACT_FRESHNESS_HOURS
    contract_store_path: str | None = None

    def with_endpoint_urls(self, urls: list[str]) -> ClientConfig:
        """Return a copy using ``urls`` in priority order (first is heaviest)."""

        if not urls:
            raise ValidationError("At least one RPC URL is required", field="endpoints")
        total = len(urls)
        endpoints = tuple(
            EndpointConfig(url=url, name=f"RPC {index + 1}", weight=total - index)
            for index, url in enumerate(urls)
        )
        return replace(self, endpoints=endpoints)


def load_config_from_env(env_file: str | None = None) -> ClientConfig:
    """Build a :class:`ClientConfig` from ``RESCUE_*`` environment variables."""

    load_dotenv(env_file)
    config = ClientConfig()

    urls = os.getenv("RESCUE_RPC_URLS")
    if urls:
        config = config.with_endpoint_urls([url.strip() for url in urls.split(",") if url.strip()])

    chain_id = _env_number("RESCUE_CHAIN_ID", int)
    if chain_id is not None:
        config = replace(config, chain_id=chain_id)

    timeout = _env_number("RESCUE_REQUEST_TIMEOUT", float)
    if timeout is not None:
        if timeout <= 0:
            raise ValidationError(
                "Request timeout must be positive", field="RESCUE_REQUEST_TIMEOUT", value=timeout
            )
        config = replace(config, request_timeout=timeout)

    concurrency = _env_number("RESCUE_MAX_CONCURRENCY", int)
    if concurrency is not None:
        if concurrency < 1:
            raise ValidationError(
                "Concurrency ceiling must be at least 1",
                field="RESCUE_MAX_CONCURRENCY",
                value=concurrency,
            )
        config = replace(config, max_concurrency=concurrency)

    store_path = os.getenv("RESCUE_CONTRACT_STORE")
    if store_path:
        config = replace(config, contract_store_path=store_path)

    logger.debug("Loaded client config with %s endpoints", len(config.endpoints))
    return config


def _env_number(name: str, kind: type[int] | type[float]) -> int | float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return kind(raw.strip())
    except ValueError as exc:
        raise ValidationError(f"{name} must be a number", field=name, value=raw) from exc
