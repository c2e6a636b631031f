"""Checks executed immediately before a transfer is signed."""

from __future__ import annotations

import logging

from ..classification import classify_error
from ..constants import Operation
from ..exceptions import (
    AuthenticationError,
    InsufficientFundsError,
    ValidationError,
)
from ..rpc.pool import EndpointPool
from ..types import CustomGasConfig, ErrorKind, GasStrategy, PreflightResult, TokenInfo
from ..utils import format_units, is_valid_address, same_address, to_base_units
from .connections import SignerSession
from .gas import GasEstimator
from .metadata import TokenMetadataCache

logger = logging.getLogger(__name__)


class PreflightValidator:
    """Gate a transfer attempt on signer, address, amount and balance sanity.

    Checks run in order and stop at the first blocking error. Provider
    failures are not validation outcomes; they propagate so the submitter's
    retry policy can classify them.
    """

    def __init__(
        self,
        pool: EndpointPool,
        session: SignerSession,
        gas: GasEstimator,
        metadata: TokenMetadataCache,
        *,
        native_symbol: str,
    ) -> None:
        self._pool = pool
        self._session = session
        self._gas = gas
        self._metadata = metadata
        self._native_symbol = native_symbol

    async def check_native(
        self,
        to: str,
        amount: str,
        *,
        strategy: GasStrategy | str = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> PreflightResult:
        result = PreflightResult()

        if not self._session.is_active():
            return result.block(
                AuthenticationError("Wallet is not initialised; import a private key first")
            )
        sender = self._session.address

        if not is_valid_address(to):
            return result.block(ValidationError("Invalid destination address", field="to", value=to))

        try:
            value = to_base_units(amount)
        except ValidationError as exc:
            return result.block(exc)
        if value <= 0:
            return result.block(
                ValidationError("Transfer amount must be greater than 0", field="amount", value=amount)
            )
        result.value = value

        if same_address(to, sender):
            return result.block(
                ValidationError("Cannot transfer to the sending address", field="to", value=to)
            )

        code = await self._pool.execute(Operation.GET_CODE, (to,))
        is_contract = code not in ("0x", "")
        if is_contract:
            result.warnings.append(f"Destination is a contract address: {to}")
            if not await self._accepts_native(sender, to):
                result.warnings.append("Contract may not accept native transfers")

        estimate = await self._gas.estimate_native(
            sender, to, value, strategy=strategy, custom=custom, is_contract=is_contract
        )
        result.gas_estimate = estimate
        if is_contract and not (custom and custom.gas_limit):
            result.warnings.append("Added 20% gas limit headroom for contract destination")
        if estimate.used_fallback_limit:
            result.warnings.append(f"Gas estimation failed, using fallback limit {estimate.gas_limit}")

        balance = await self._fresh_balance(sender)
        required = value + estimate.total_cost
        if balance < required:
            return result.block(
                InsufficientFundsError(
                    f"Insufficient funds for gas: requires {format_units(required)} "
                    f"{self._native_symbol}, available {format_units(balance)} {self._native_symbol}",
                    required=format_units(required),
                    available=format_units(balance),
                    asset=self._native_symbol,
                )
            )

        await self._network_diagnostics(result, sender)
        return result

    async def check_token(
        self,
        token: str,
        to: str,
        amount: str,
        *,
        strategy: GasStrategy | str = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> PreflightResult:
        result = PreflightResult()

        if not self._session.is_active():
            return result.block(
                AuthenticationError("Wallet is not initialised; import a private key first")
            )
        sender = self._session.address

        try:
            token_address = self._metadata.resolve_address(token)
        except ValidationError as exc:
            return result.block(exc)
        if not is_valid_address(to):
            return result.block(ValidationError("Invalid destination address", field="to", value=to))
        if same_address(to, sender):
            return result.block(
                ValidationError("Cannot transfer to the sending address", field="to", value=to)
            )

        code = await self._pool.execute(Operation.GET_CODE, (token_address,))
        if code in ("0x", ""):
            return result.block(
                ValidationError(
                    "Token contract does not exist at this address",
                    field="token",
                    value=token_address,
                )
            )

        info = await self._token_interface(result, token_address)
        if info is None:
            return result
        result.token_info = info

        try:
            value = to_base_units(amount, info.decimals)
        except ValidationError as exc:
            return result.block(exc)
        if value <= 0:
            return result.block(
                ValidationError("Transfer amount must be greater than 0", field="amount", value=amount)
            )
        result.value = value

        token_balance = await self._metadata.get_token_balance(token_address, sender)
        if int(token_balance.balance) < value:
            return result.block(
                InsufficientFundsError(
                    f"Insufficient token balance: requires {amount} {info.symbol}, "
                    f"available {token_balance.formatted_balance} {info.symbol}",
                    required=str(amount),
                    available=token_balance.formatted_balance,
                    asset=info.symbol,
                    field="token_balance",
                )
            )

        estimate = await self._gas.estimate_token(
            sender, token_address, to, value, strategy=strategy, custom=custom
        )
        result.gas_estimate = estimate
        if estimate.used_fallback_limit:
            result.warnings.append(f"Gas estimation failed, using fallback limit {estimate.gas_limit}")

        native_balance = await self._fresh_balance(sender)
        if native_balance < estimate.total_cost:
            return result.block(
                InsufficientFundsError(
                    f"Insufficient funds for gas: requires {format_units(estimate.total_cost)} "
                    f"{self._native_symbol}, available {format_units(native_balance)} "
                    f"{self._native_symbol}",
                    required=format_units(estimate.total_cost),
                    available=format_units(native_balance),
                    asset=self._native_symbol,
                )
            )

        await self._network_diagnostics(result, sender)
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _fresh_balance(self, address: str) -> int:
        self._pool.invalidate(Operation.GET_BALANCE)
        return int(await self._pool.execute(Operation.GET_BALANCE, (address,), ttl=0))

    async def _accepts_native(self, sender: str, to: str) -> bool:
        try:
            await self._pool.execute(Operation.CALL, ({"from": sender, "to": to, "value": 1},))
        except Exception as exc:
            logger.debug("Zero-value receive probe failed for %s: %s", to, exc)
            return False
        return True

    async def _token_interface(self, result: PreflightResult, token: str) -> TokenInfo | None:
        try:
            return await self._metadata.get_token_info(token)
        except Exception as exc:
            if classify_error(exc) is not ErrorKind.EXECUTION_REVERTED:
                raise
            result.block(
                ValidationError(
                    "Contract does not implement the ERC-20 interface",
                    field="token",
                    value=token,
                    details={"error": str(exc)},
                )
            )
            return None

    async def _network_diagnostics(self, result: PreflightResult, sender: str) -> None:
        try:
            await self._pool.execute(Operation.GET_BLOCK_NUMBER)
            fee = await self._gas.fee_data()
            if not fee.gas_price:
                result.warnings.append("Network gas price looks abnormal")
        except Exception as exc:
            logger.debug("Network status check failed during preflight: %s", exc)
            result.warnings.append("Unable to fetch network status")

        try:
            result.nonce = int(await self._pool.execute(Operation.GET_NONCE, (sender,)))
            logger.debug("Current nonce for %s: %s", sender, result.nonce)
        except Exception as exc:
            logger.debug("Nonce lookup failed during preflight: %s", exc)
            result.warnings.append("Unable to fetch current nonce")
