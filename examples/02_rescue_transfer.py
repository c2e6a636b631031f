"""Example: Sweep the whole native balance of a wallet to a safe address."""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv

from evm_rescue import (
    CustomGasConfig,
    GasStrategy,
    RescueClient,
    TransactionRecord,
    load_config_from_env,
)

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"{name} not found in environment variables")
    return value


async def main() -> None:
    """Outbid any competing transaction and move everything to SAFE_ADDRESS."""

    private_key = _require_env("PRIVATE_KEY")
    safe_address = _require_env("SAFE_ADDRESS")
    aggressive = CustomGasConfig(aggressive=True)

    async with RescueClient(load_config_from_env()) as client:
        wallet = client.import_private_key(private_key)
        logging.info("Wallet %s holds %s MATIC", wallet, await client.get_balance())

        plan = await client.calculate_max_transfer_amount(
            safe_address, strategy=GasStrategy.FAST, custom=aggressive
        )
        logging.info(
            "Max transfer %s MATIC (gas limit %s, multiplier %sx)",
            plan.max_amount,
            plan.gas_estimate.gas_limit,
            plan.gas_estimate.multiplier,
        )
        if not plan.can_transfer:
            logging.error("Balance %s cannot cover gas", plan.available_balance)
            return

        result = await client.execute_max_transfer(
            safe_address, strategy=GasStrategy.FAST, custom=aggressive
        )
        record = TransactionRecord.from_result(result, plan.max_amount)
        if result.success:
            logging.info("Rescued in block %s; tx hash: %s", result.block_number, result.hash)
        else:
            logging.error("Rescue %s: %s", record.status.value, result.error)
            return

        verification = await client.verify_transaction(result.hash)
        logging.info("Verification status: %s", verification.status.value)


if __name__ == "__main__":
    asyncio.run(main())
