"""Confirmation polling and classification for submitted transactions."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import replace
from typing import Any

from ..classification import describe_error
from ..constants import Operation
from ..rpc.pool import EndpointPool
from ..types import TransactionRecord, TxStatus, VerificationResult
from .config import DEFAULT_POLL_INTERVAL, DEFAULT_VERIFY_TIMEOUT

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ReceiptPoller:
    """Poll ``eth_getTransactionReceipt`` until a receipt shows up or time runs out.

    Lookup errors while polling are logged and the poll continues; the
    outcome is only ever a receipt or ``None``.
    """

    def __init__(
        self,
        pool: EndpointPool,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Sleep | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._pool = pool
        self._poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    async def wait(self, tx_hash: str, timeout: float) -> dict[str, Any] | None:
        """Return the receipt, or ``None`` once ``timeout`` seconds have passed.

        The bound also covers a lookup still in flight when time runs out.
        """
        try:
            return await asyncio.wait_for(self._poll(tx_hash, timeout), timeout=max(timeout, 0))
        except asyncio.TimeoutError:
            logger.warning("Receipt wait for %s hit the %ss limit mid-lookup", tx_hash, timeout)
            return None

    async def _poll(self, tx_hash: str, timeout: float) -> dict[str, Any] | None:
        clock = self._clock or asyncio.get_running_loop().time
        sleep = self._sleep or asyncio.sleep
        deadline = clock() + timeout

        while True:
            try:
                receipt = await self._pool.execute(Operation.GET_TRANSACTION_RECEIPT, (tx_hash,))
            except Exception as exc:
                logger.warning("Receipt lookup failed for %s: %s", tx_hash, exc)
                receipt = None
            if receipt:
                return receipt

            remaining = deadline - clock()
            if remaining <= 0:
                return None
            await sleep(min(self._poll_interval, remaining))


class TransactionVerifier:
    """Classify confirmation outcomes within a bounded wait."""

    def __init__(
        self,
        pool: EndpointPool,
        *,
        timeout: float = DEFAULT_VERIFY_TIMEOUT,
        poller: ReceiptPoller | None = None,
    ) -> None:
        self._pool = pool
        self._timeout = timeout
        self._poller = poller or ReceiptPoller(pool)

    async def verify(self, tx_hash: str) -> VerificationResult:
        try:
            receipt = await self._poller.wait(tx_hash, self._timeout)
        except Exception as exc:
            logger.error("Verification failed for %s: %s", tx_hash, exc)
            return VerificationResult(status=TxStatus.FAILED, error=describe_error(exc))

        if receipt is None:
            logger.warning("No receipt for %s after %ss", tx_hash, self._timeout)
            return VerificationResult(
                status=TxStatus.FAILED,
                error=f"Transaction confirmation timed out after {self._timeout:g}s",
            )

        status = receipt.get("status")
        verification = VerificationResult(
            status=TxStatus.CONFIRMED if status == 1 else TxStatus.FAILED,
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
            gas_price=receipt.get("effectiveGasPrice") or receipt.get("gasPrice"),
        )
        if status != 1:
            verification.error = "Transaction reverted on-chain"
        return verification

    async def verify_batch(self, tx_hashes: Iterable[str]) -> dict[str, VerificationResult]:
        hashes = list(dict.fromkeys(tx_hashes))
        outcomes = await asyncio.gather(
            *(self.verify(tx_hash) for tx_hash in hashes), return_exceptions=True
        )

        results: dict[str, VerificationResult] = {}
        for tx_hash, outcome in zip(hashes, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                results[tx_hash] = VerificationResult(
                    status=TxStatus.FAILED, error=describe_error(outcome)
                )
            else:
                results[tx_hash] = outcome
        return results

    async def refresh_record(self, record: TransactionRecord) -> TransactionRecord:
        """Return ``record`` updated with the verification outcome."""
        if not record.hash:
            return record
        verification = await self.verify(record.hash)
        return replace(record, status=verification.status, error=verification.error)

    async def is_transaction_visible(self, tx_hash: str) -> bool:
        try:
            transaction = await self._pool.execute(Operation.GET_TRANSACTION, (tx_hash,))
        except Exception as exc:
            logger.debug("Transaction lookup failed for %s: %s", tx_hash, exc)
            return False
        return transaction is not None
