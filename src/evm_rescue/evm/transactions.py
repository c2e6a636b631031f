"""Transaction build, sign, broadcast and receipt handling for the rescue client."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from ..classification import classify_error, describe_error, is_retryable_submission
from ..constants import ERC20_TRANSFER_SIGNATURE, Operation
from ..exceptions import ContractStateError, ValidationError
from ..rpc.config import SUBMISSION_RETRY_POLICY, RetryPolicy
from ..rpc.pool import EndpointPool
from ..rpc.retry import RetryController
from ..types import (
    CustomGasConfig,
    ErrorKind,
    GasEstimate,
    GasStrategy,
    PreflightResult,
    TransactionResult,
    TransferRequest,
)
from ..utils import encode_call, format_gwei, format_units, to_checksum
from .config import DEFAULT_BATCH_SPACING, DEFAULT_RECEIPT_TIMEOUT
from .connections import SignerSession
from .preflight import PreflightValidator
from .verifier import ReceiptPoller

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class TransactionSubmitter:
    """Build, sign and broadcast transfers, then wait for one confirmation.

    Each attempt runs preflight and gas estimation from scratch, so a retried
    submission gets a fresh nonce and a fresh price instead of rebroadcasting
    the previous payload. Public ``send_*`` methods never raise; failures come
    back as :class:`TransactionResult` with a human readable error.
    """

    def __init__(
        self,
        pool: EndpointPool,
        session: SignerSession,
        preflight: PreflightValidator,
        *,
        chain_id: int,
        native_symbol: str,
        retry_policy: RetryPolicy = SUBMISSION_RETRY_POLICY,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
        batch_spacing: float = DEFAULT_BATCH_SPACING,
        poller: ReceiptPoller | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self._pool = pool
        self._session = session
        self._preflight = preflight
        self._chain_id = chain_id
        self._native_symbol = native_symbol
        self._retry = RetryController(
            retry_policy, is_retryable_submission, name="submission", sleep=sleep
        )
        self._receipt_timeout = receipt_timeout
        self._batch_spacing = batch_spacing
        self._poller = poller or ReceiptPoller(pool, sleep=sleep)
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Single sends
    # ------------------------------------------------------------------
    async def send_native(
        self,
        to: str,
        amount: str,
        *,
        strategy: GasStrategy | str = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> TransactionResult:
        try:
            return await self._retry.run(
                lambda: self._attempt_native(to, amount, strategy, custom),
                action="native transfer",
            )
        except Exception as exc:
            return self._failure(exc, action="native transfer")

    async def send_token(
        self,
        token: str,
        to: str,
        amount: str,
        *,
        strategy: GasStrategy | str = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> TransactionResult:
        try:
            return await self._retry.run(
                lambda: self._attempt_token(token, to, amount, strategy, custom),
                action="token transfer",
            )
        except Exception as exc:
            return self._failure(exc, action="token transfer")

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------
    async def send_native_batch(
        self,
        transfers: Sequence[TransferRequest],
        *,
        strategy: GasStrategy | str = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> list[TransactionResult]:
        return await self._run_batch(
            transfers,
            lambda transfer: self.send_native(
                transfer.to, transfer.amount, strategy=strategy, custom=custom
            ),
        )

    async def send_token_batch(
        self,
        token: str,
        transfers: Sequence[TransferRequest],
        *,
        strategy: GasStrategy | str = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> list[TransactionResult]:
        return await self._run_batch(
            transfers,
            lambda transfer: self.send_token(
                token, transfer.to, transfer.amount, strategy=strategy, custom=custom
            ),
        )

    async def _run_batch(
        self,
        transfers: Sequence[TransferRequest],
        send: Callable[[TransferRequest], Awaitable[TransactionResult]],
    ) -> list[TransactionResult]:
        """Send sequentially, stopping at the first failure."""

        results: list[TransactionResult] = []
        sleep = self._sleep or asyncio.sleep
        for index, transfer in enumerate(transfers):
            if index:
                await sleep(self._batch_spacing)
            result = await send(transfer)
            results.append(result)
            if not result.success:
                logger.warning(
                    "Batch stopped at transfer %s/%s: %s", index + 1, len(transfers), result.error
                )
                break
        return results

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------
    async def _attempt_native(
        self,
        to: str,
        amount: str,
        strategy: GasStrategy | str,
        custom: CustomGasConfig | None,
    ) -> TransactionResult:
        preflight = await self._preflight.check_native(to, amount, strategy=strategy, custom=custom)
        estimate, value = self._require_valid(preflight)

        tx: dict[str, Any] = {"to": to_checksum(to, field="to"), "value": value}
        logger.info(
            "Sending %s %s to %s (gas limit %s, %s)",
            format_units(value),
            self._native_symbol,
            tx["to"],
            estimate.gas_limit,
            _describe_price(estimate),
        )
        return await self._broadcast(tx, estimate, preflight.nonce)

    async def _attempt_token(
        self,
        token: str,
        to: str,
        amount: str,
        strategy: GasStrategy | str,
        custom: CustomGasConfig | None,
    ) -> TransactionResult:
        preflight = await self._preflight.check_token(
            token, to, amount, strategy=strategy, custom=custom
        )
        estimate, value = self._require_valid(preflight)
        info = preflight.token_info
        if info is None:  # pragma: no cover - defensive
            raise ValidationError("Token metadata missing after preflight", field="token", value=token)

        tx: dict[str, Any] = {
            "to": to_checksum(info.address, field="token"),
            "value": 0,
            "data": encode_call(
                ERC20_TRANSFER_SIGNATURE,
                ("address", "uint256"),
                (to_checksum(to, field="to"), value),
            ),
        }
        logger.info(
            "Sending %s %s to %s (gas limit %s, %s)",
            amount,
            info.symbol,
            to,
            estimate.gas_limit,
            _describe_price(estimate),
        )
        return await self._broadcast(tx, estimate, preflight.nonce)

    def _require_valid(self, preflight: PreflightResult) -> tuple[GasEstimate, int]:
        if not preflight.is_valid:
            if preflight.failure is not None:
                raise preflight.failure
            raise ValidationError(f"Preflight failed: {', '.join(preflight.errors)}")
        for warning in preflight.warnings:
            logger.warning("Preflight warning: %s", warning)
        if preflight.gas_estimate is None or preflight.value is None:  # pragma: no cover - defensive
            raise ValidationError("Preflight did not produce a gas plan")
        return preflight.gas_estimate, preflight.value

    async def _broadcast(
        self, tx: dict[str, Any], estimate: GasEstimate, nonce: int | None
    ) -> TransactionResult:
        sender = self._session.address
        if nonce is None:
            nonce = int(await self._pool.execute(Operation.GET_NONCE, (sender,)))

        tx.update({"from": sender, "nonce": nonce, "chainId": self._chain_id, "gas": estimate.gas_limit})
        if estimate.is_fee_market:
            tx["maxFeePerGas"] = estimate.max_fee_per_gas
            tx["maxPriorityFeePerGas"] = estimate.max_priority_fee_per_gas
            tx["type"] = 2
        else:
            tx["gasPrice"] = estimate.gas_price

        raw_transaction = self._session.sign(tx)
        tx_hash = await self._pool.execute(Operation.SEND_RAW_TRANSACTION, (raw_transaction,))
        logger.info("Transaction sent hash=%s nonce=%s", tx_hash, nonce)

        receipt = await self._poller.wait(tx_hash, self._receipt_timeout)
        if receipt is None:
            logger.warning("Transaction %s not confirmed within %ss", tx_hash, self._receipt_timeout)
            return TransactionResult(
                hash=tx_hash,
                success=False,
                gas_price=estimate.gas_price,
                error=(
                    f"Transaction not confirmed within {self._receipt_timeout:g}s; "
                    "it may still be pending"
                ),
                error_kind=ErrorKind.TRANSIENT_NETWORK,
            )

        block_number = receipt.get("blockNumber")
        if receipt.get("status") == 0:
            raise ContractStateError(
                "Transaction reverted on-chain",
                revert_reason="status 0",
                details={"tx_hash": tx_hash, "block_number": block_number},
            )

        logger.info(
            "Transaction confirmed hash=%s block=%s gas_used=%s",
            tx_hash,
            block_number,
            receipt.get("gasUsed"),
        )
        return TransactionResult(
            hash=tx_hash,
            success=True,
            gas_used=receipt.get("gasUsed"),
            gas_price=receipt.get("effectiveGasPrice") or estimate.gas_price,
            block_number=block_number,
        )

    def _failure(self, exc: Exception, *, action: str) -> TransactionResult:
        kind = classify_error(exc)
        message = describe_error(exc)
        details = getattr(exc, "details", {}) or {}
        logger.error("%s failed (%s): %s", action, kind.value, message)
        return TransactionResult(
            hash=str(details.get("tx_hash") or ""),
            success=False,
            error=message,
            error_kind=kind,
            block_number=details.get("block_number"),
        )


def _describe_price(estimate: GasEstimate) -> str:
    if estimate.is_fee_market:
        return (
            f"max fee {format_gwei(estimate.max_fee_per_gas or 0)} gwei, "
            f"priority {format_gwei(estimate.max_priority_fee_per_gas or 0)} gwei"
        )
    return f"gas price {format_gwei(estimate.gas_price)} gwei"
