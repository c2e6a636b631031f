"""Example: Validate a token contract and send a small batch of transfers."""

from __future__ import annotations

import asyncio
import logging
import os

from dotenv import load_dotenv

from evm_rescue import RescueClient, TransferRequest, load_config_from_env

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOGLEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

TOKEN = os.getenv("TOKEN", "USDC")
AMOUNT = "0.01"


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"{name} not found in environment variables")
    return value


async def main() -> None:
    """Send AMOUNT of TOKEN to each address in RECIPIENTS (comma separated)."""

    private_key = _require_env("PRIVATE_KEY")
    recipients = [item.strip() for item in _require_env("RECIPIENTS").split(",") if item.strip()]

    async with RescueClient(load_config_from_env()) as client:
        client.import_private_key(private_key)

        info = await client.get_token_info(TOKEN)
        validation = await client.validate_contract_address(info.address)
        logging.info(
            "%s (%s) at %s validated as %s", info.name, info.symbol, info.address, validation.contract_type
        )

        balance = await client.get_token_balance(TOKEN)
        logging.info("Token balance: %s %s", balance.formatted_balance, info.symbol)

        transfers = [TransferRequest(to=recipient, amount=AMOUNT) for recipient in recipients]
        results = await client.send_batch_token_transactions(TOKEN, transfers)
        for transfer, result in zip(transfers, results):
            if result.success:
                logging.info("Sent %s %s to %s; tx hash: %s", AMOUNT, info.symbol, transfer.to, result.hash)
            else:
                logging.error("Transfer to %s failed: %s", transfer.to, result.error)

        skipped = len(transfers) - len(results)
        if skipped:
            logging.warning("Skipped %s transfers after the first failure", skipped)


if __name__ == "__main__":
    asyncio.run(main())
