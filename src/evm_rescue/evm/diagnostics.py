"""Reachability diagnostics across every configured endpoint."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..rpc.pool import EndpointPool
from ..types import DiagnosticResult, DiagnosticStatus, EndpointProbeResult

logger = logging.getLogger(__name__)

_STATUS_TEXT = {
    DiagnosticStatus.HEALTHY: "healthy",
    DiagnosticStatus.DEGRADED: "degraded",
    DiagnosticStatus.FAILED: "failed",
}


class NetworkDiagnostics:
    """Probe all endpoints, healthy or not, without touching their health state."""

    def __init__(self, pool: EndpointPool) -> None:
        self._pool = pool

    async def run(self) -> DiagnosticResult:
        logger.info("Running network diagnostics")
        probes: list[EndpointProbeResult] = []
        for endpoint in self._pool.endpoints:
            ok, latency_ms, error = await self._pool.probe(endpoint)
            probes.append(
                EndpointProbeResult(
                    name=endpoint.name,
                    url=endpoint.url,
                    is_healthy=ok,
                    response_time_ms=latency_ms,
                    checked_at=_timestamp(),
                    error=error,
                )
            )

        healthy = [probe for probe in probes if probe.is_healthy]
        errors: list[str] = []
        if not healthy:
            errors.append("All RPC endpoints are unreachable")
        elif len(healthy) < len(probes):
            errors.append(f"{len(probes) - len(healthy)} RPC endpoint(s) failed to respond")

        if not errors:
            status = DiagnosticStatus.HEALTHY
        elif healthy:
            status = DiagnosticStatus.DEGRADED
        else:
            status = DiagnosticStatus.FAILED

        latency = sum(probe.response_time_ms for probe in healthy) / len(healthy) if healthy else 0.0
        result = DiagnosticResult(
            timestamp=_timestamp(),
            overall_status=status,
            endpoints=probes,
            latency_ms=latency,
            errors=errors,
        )
        logger.info("Network diagnostics finished: %s", status.value)
        return result

    @staticmethod
    def report(result: DiagnosticResult) -> str:
        lines = [
            f"Network diagnostic report ({result.timestamp})",
            f"Overall status: {_STATUS_TEXT[result.overall_status]}",
            f"Average latency: {result.latency_ms:.0f}ms",
            "",
            "RPC endpoints:",
        ]
        for probe in result.endpoints:
            marker = "OK  " if probe.is_healthy else "FAIL"
            latency = f" ({probe.response_time_ms:.0f}ms)" if probe.response_time_ms > 0 else ""
            error = f" - {probe.error}" if probe.error else ""
            lines.append(f"  [{marker}] {probe.name}{latency}{error}")

        if result.errors:
            lines.append("")
            lines.append("Errors:")
            lines.extend(f"  - {error}" for error in result.errors)
        return "\n".join(lines) + "\n"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()
