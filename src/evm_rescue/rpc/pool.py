"""Pool of interchangeable JSON-RPC endpoints with health tracking and failover."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from enum import Enum
from typing import Any

from web3 import AsyncHTTPProvider, AsyncWeb3

from ..classification import classify_error
from ..exceptions import AllEndpointsFailedError, ValidationError
from ..types import ErrorKind
from ..utils import cache_key
from .cache import MISSING, ResultCache
from .config import (
    DEFAULT_HEALTH_CHECK_INTERVAL,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    EndpointConfig,
)
from .endpoints import Endpoint
from .operations import OPERATION_HANDLERS, Handler, get_block_number
from .retry import RetryController
from .throttle import ConcurrencyThrottle

logger = logging.getLogger(__name__)

Web3Factory = Callable[[str, float], Any]

# Deterministic answers from a working node: never a reason to fail over
NODE_VERDICTS = frozenset(
    {
        ErrorKind.EXECUTION_REVERTED,
        ErrorKind.INSUFFICIENT_FUNDS,
        ErrorKind.NONCE_EXPIRED,
        ErrorKind.REPLACEMENT_UNDERPRICED,
        ErrorKind.UNPREDICTABLE_GAS_LIMIT,
        ErrorKind.VALIDATION,
    }
)


def build_async_web3(rpc_url: str, request_timeout: float) -> AsyncWeb3:
    provider = AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout})
    return AsyncWeb3(provider)


class EndpointPool:
    """Dispatch named operations across endpoints in descending weight order.

    Candidates are tried strictly one after another; a later endpoint is used
    only once the earlier one's failure has been observed. Successful reads
    with ``ttl > 0`` populate the shared :class:`ResultCache`.
    """

    def __init__(
        self,
        endpoints: Sequence[EndpointConfig],
        *,
        cache: ResultCache | None = None,
        throttle: ConcurrencyThrottle | None = None,
        retry: RetryController | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        health_check_interval: float = DEFAULT_HEALTH_CHECK_INTERVAL,
        web3_factory: Web3Factory | None = None,
        handlers: Mapping[str, Handler] | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        ordered = sorted(endpoints, key=lambda config: config.weight, reverse=True)
        self._endpoints = [Endpoint.from_config(config) for config in ordered]
        self._cache = cache or ResultCache()
        self._throttle = throttle or ConcurrencyThrottle()
        self._retry = retry
        self._request_timeout = request_timeout
        self._probe_timeout = probe_timeout
        self._health_check_interval = health_check_interval
        self._web3_factory = web3_factory or build_async_web3
        self._handlers = dict(handlers or OPERATION_HANDLERS)
        self._clock = clock
        self._health_task: asyncio.Task[None] | None = None
        self._health_stop: asyncio.Event | None = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def cache(self) -> ResultCache:
        return self._cache

    @property
    def throttle(self) -> ConcurrencyThrottle:
        return self._throttle

    @property
    def endpoints(self) -> list[Endpoint]:
        return self._endpoints

    def get_endpoint_status(self) -> list[Endpoint]:
        return [endpoint.snapshot() for endpoint in self._endpoints]

    def healthy_endpoints(self) -> list[Endpoint]:
        return [endpoint for endpoint in self._endpoints if endpoint.is_healthy]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    async def execute(
        self,
        operation: str | Enum,
        params: Sequence[Any] = (),
        ttl: float = 0.0,
    ) -> Any:
        """Run ``operation`` with failover, caching results when ``ttl > 0``."""

        name = operation.value if isinstance(operation, Enum) else str(operation)
        args = tuple(params)
        if self._retry is None:
            return await self._execute_once(name, args, ttl)
        return await self._retry.run(lambda: self._execute_once(name, args, ttl), action=name)

    def invalidate(self, operation: str | Enum) -> int:
        name = operation.value if isinstance(operation, Enum) else str(operation)
        return self._cache.invalidate_prefix(f"{name}:")

    def clear_cache(self) -> None:
        logger.debug("Clearing RPC result cache")
        self._cache.clear()

    async def _execute_once(self, operation: str, params: tuple[Any, ...], ttl: float) -> Any:
        handler = self._handlers.get(operation)
        if handler is None:
            raise ValidationError(f"Unknown operation: {operation}", field="operation", value=operation)

        key = cache_key(operation, params)
        if ttl > 0:
            cached = self._cache.get(key)
            if cached is not MISSING:
                logger.debug("Cache hit for %s", operation)
                return cached

        candidates = self.healthy_endpoints()
        if not candidates:
            raise AllEndpointsFailedError(
                "No healthy RPC endpoints available",
                operation=operation,
                attempts=0,
            )

        last_error: Exception | None = None
        attempts = 0
        for endpoint in candidates:
            async with self._throttle.slot():
                attempts += 1
                endpoint.record_dispatch()
                started = self._clock()
                logger.debug("Dispatching %s via %s", operation, endpoint.name)
                try:
                    result = await asyncio.wait_for(
                        handler(self._web3_for(endpoint), *params),
                        timeout=self._request_timeout,
                    )
                except Exception as exc:
                    latency_ms = (self._clock() - started) * 1000
                    if classify_error(exc) in NODE_VERDICTS:
                        endpoint.record_success(latency_ms)
                        raise
                    endpoint.record_failure(exc)
                    last_error = exc
                    logger.warning("Endpoint %s failed for %s: %s", endpoint.name, operation, exc)
                    continue
                finally:
                    endpoint.record_release()

                endpoint.record_success((self._clock() - started) * 1000)

            if ttl > 0:
                self._cache.set(key, result, ttl)
            return result

        logger.error("All RPC endpoints failed for %s, last error: %s", operation, last_error)
        raise AllEndpointsFailedError(
            f"All RPC endpoints failed for {operation}: {last_error}",
            operation=operation,
            attempts=attempts,
            last_error=last_error,
            details={"error": str(last_error)},
        ) from last_error

    # ------------------------------------------------------------------
    # Health checks
    # ------------------------------------------------------------------
    async def probe(self, endpoint: Endpoint) -> tuple[bool, float, str | None]:
        """Liveness call against one endpoint without touching its state."""

        started = self._clock()
        try:
            await asyncio.wait_for(
                get_block_number(self._web3_for(endpoint)),
                timeout=self._probe_timeout,
            )
        except Exception as exc:
            return False, (self._clock() - started) * 1000, str(exc) or type(exc).__name__
        return True, (self._clock() - started) * 1000, None

    async def probe_unhealthy(self) -> int:
        """Re-test unhealthy endpoints; return how many were restored."""

        restored = 0
        for endpoint in self._endpoints:
            if endpoint.is_healthy:
                continue
            ok, latency_ms, error = await self.probe(endpoint)
            if ok:
                endpoint.record_probe_success(latency_ms)
                restored += 1
            else:
                endpoint.record_probe_failure(RuntimeError(error))
                logger.info("Health probe failed for %s: %s", endpoint.name, error)
        return restored

    def start_health_checks(self) -> None:
        if self._health_task is not None and not self._health_task.done():
            return
        self._health_stop = asyncio.Event()
        self._health_task = asyncio.create_task(self._health_loop(self._health_stop))
        logger.debug("Started endpoint health checks every %ss", self._health_check_interval)

    def stop_health_checks(self) -> None:
        """Suppress the next probe round; an in-flight probe is left to finish."""
        if self._health_stop is not None:
            self._health_stop.set()
        self._health_stop = None

    async def close(self) -> None:
        self.stop_health_checks()
        task, self._health_task = self._health_task, None
        if task is not None:
            await task
        for endpoint in self._endpoints:
            provider = getattr(endpoint.client, "provider", None)
            disconnect = getattr(provider, "disconnect", None)
            if disconnect is not None:
                await disconnect()
            endpoint.client = None

    async def _health_loop(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self._health_check_interval)
            except asyncio.TimeoutError:
                pass
            if stop.is_set():
                break
            await self.probe_unhealthy()

    def _web3_for(self, endpoint: Endpoint) -> Any:
        if endpoint.client is None:
            endpoint.client = self._web3_factory(endpoint.url, self._request_timeout)
        return endpoint.client
