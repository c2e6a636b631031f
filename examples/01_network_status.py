"""Example: Check endpoint health, network status and gas recommendations."""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv

from evm_rescue import RescueClient, load_config_from_env

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


async def main() -> None:
    """Print a diagnostic report and the recommended gas strategy."""

    async with RescueClient(load_config_from_env()) as client:
        diagnostics = await client.run_diagnostics()
        print(client.diagnostic_report(diagnostics))

        status = await client.get_network_status()
        logging.info(
            "Chain %s at block %s, gas price %s gwei, congestion %.2f",
            status.chain_id,
            status.block_number,
            status.gas_price_gwei,
            status.congestion,
        )

        recommendation = await client.get_optimal_gas_strategy()
        logging.info("Recommended gas strategy: %s", recommendation.recommended.value)
        for strategy, estimate in recommendation.estimates.items():
            logging.info("  %s: %s wei per transfer", strategy.value, estimate.total_cost)

        for endpoint in client.get_endpoint_status():
            logging.info(
                "Endpoint %s healthy=%s latency=%.0fms errors=%s",
                endpoint.name,
                endpoint.is_healthy,
                endpoint.response_time_ms,
                endpoint.error_count,
            )


if __name__ == "__main__":
    asyncio.run(main())
