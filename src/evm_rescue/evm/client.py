"""Resilient read/write client composed from the endpoint pool and transfer helpers."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from types import TracebackType
from typing import Any

from ..base import RescueProtocolBase, TransactionSigner
from ..classification import classify_error, describe_error, is_retryable_read
from ..constants import NATIVE_PROBE_AMOUNT, TOKEN_PROBE_AMOUNT, Operation
from ..exceptions import InsufficientFundsError, NetworkError, ValidationError
from ..rpc.cache import ResultCache
from ..rpc.endpoints import Endpoint
from ..rpc.pool import EndpointPool, Web3Factory
from ..rpc.retry import RetryController
from ..rpc.throttle import ConcurrencyThrottle
from ..types import (
    ConnectionStatus,
    ContractValidationResult,
    CustomGasConfig,
    DiagnosticResult,
    GasEstimate,
    GasStrategy,
    GasStrategyRecommendation,
    MaxTransferResult,
    NetworkStatus,
    TokenBalance,
    TokenInfo,
    TransactionResult,
    TransferRequest,
    TransferType,
    VerificationResult,
)
from ..utils import format_gwei, format_units, same_address, to_base_units, to_checksum
from .config import DEFAULT_MONITOR_INTERVAL, ClientConfig
from .connections import SignerSession
from .contracts import (
    ContractStore,
    ContractValidationCache,
    InMemoryContractStore,
    JsonFileContractStore,
)
from .diagnostics import NetworkDiagnostics
from .gas import GasEstimator
from .metadata import TokenMetadataCache
from .monitor import BalanceCallback, BalanceMonitor
from .preflight import PreflightValidator
from .transactions import TransactionSubmitter
from .verifier import ReceiptPoller, TransactionVerifier

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RescueClient(RescueProtocolBase):
    """Composition root owning the pool, cache, throttle and transfer helpers.

    Read operations raise typed errors; send operations always return a
    :class:`TransactionResult`.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        signer: TransactionSigner | None = None,
        contract_store: ContractStore | None = None,
        web3_factory: Web3Factory | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        config = config or ClientConfig()
        self._config = config

        self._cache = ResultCache(config.cache_max_entries)
        self._throttle = ConcurrencyThrottle(config.max_concurrency)
        self._pool = EndpointPool(
            config.endpoints,
            cache=self._cache,
            throttle=self._throttle,
            retry=RetryController(config.read_retry, is_retryable_read, name="read", sleep=sleep),
            request_timeout=config.request_timeout,
            probe_timeout=config.probe_timeout,
            health_check_interval=config.health_check_interval,
            web3_factory=web3_factory,
        )
        self._session = SignerSession(signer)
        self._metadata = TokenMetadataCache(self._pool, config.cache_ttl)
        self._gas = GasEstimator(self._pool, config.cache_ttl)
        self._preflight = PreflightValidator(
            self._pool,
            self._session,
            self._gas,
            self._metadata,
            native_symbol=config.native_symbol,
        )
        poller = ReceiptPoller(self._pool, poll_interval=config.poll_interval, sleep=sleep)
        self._submitter = TransactionSubmitter(
            self._pool,
            self._session,
            self._preflight,
            chain_id=config.chain_id,
            native_symbol=config.native_symbol,
            retry_policy=config.submission_retry,
            receipt_timeout=config.receipt_timeout,
            batch_spacing=config.batch_spacing,
            poller=poller,
            sleep=sleep,
        )
        self._verifier = TransactionVerifier(
            self._pool, timeout=config.verify_timeout, poller=poller
        )
        if contract_store is None:
            contract_store = (
                JsonFileContractStore(config.contract_store_path)
                if config.contract_store_path
                else InMemoryContractStore()
            )
        self._contracts = ContractValidationCache(
            self._pool,
            contract_store,
            network_id=config.chain_id,
            ttl=config.cache_ttl,
            freshness_hours=config.contract_freshness_hours,
        )
        self._diagnostics = NetworkDiagnostics(self._pool)
        self._monitors: list[BalanceMonitor] = []
        self._connected = False

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------
    async def connect(self) -> None:
        status = await self.check_connection()
        if not status.connected:
            raise NetworkError(
                f"Unable to reach chain {self._config.chain_id} through any configured endpoint",
                details={"chain_id": status.chain_id},
            )
        self._pool.start_health_checks()
        self._connected = True
        logger.info(
            "Connected to chain %s at block %s (%.0fms)",
            status.chain_id,
            status.block_number,
            status.latency_ms or 0.0,
        )

    async def disconnect(self) -> None:
        monitors, self._monitors = self._monitors, []
        for monitor in monitors:
            monitor.stop()
        for monitor in monitors:
            await monitor.wait_closed()
        await self._pool.close()
        self._session.clear()
        self._connected = False
        logger.info("Disconnected rescue client")

    def is_connected(self) -> bool:
        return self._connected

    async def __aenter__(self) -> RescueClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def pool(self) -> EndpointPool:
        return self._pool

    @property
    def wallet_address(self) -> str | None:
        return self._session.address if self._session.is_active() else None

    def import_private_key(self, private_key: str) -> str:
        return self._session.load_private_key(private_key)

    def attach_signer(self, signer: TransactionSigner) -> None:
        self._session.attach(signer)

    def get_endpoint_status(self) -> list[Endpoint]:
        return self._pool.get_endpoint_status()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_balance(self, address: str | None = None) -> str:
        owner = self._owner(address)
        self._pool.invalidate(Operation.GET_BALANCE)
        wei = await self._pool.execute(Operation.GET_BALANCE, (owner,), ttl=0)
        return format_units(int(wei))

    async def get_token_info(self, token: str) -> TokenInfo:
        return await self._metadata.get_token_info(token)

    async def get_token_balance(self, token: str, address: str | None = None) -> TokenBalance:
        return await self._metadata.get_token_balance(token, self._owner(address))

    async def get_gas_price(self) -> int:
        fee = await self._gas.fee_data()
        return fee.gas_price or 0

    async def estimate_gas(
        self,
        to: str,
        amount: str,
        strategy: GasStrategy = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> GasEstimate:
        return await self._gas.estimate_native(
            self._session.address, to, to_base_units(amount), strategy=strategy, custom=custom
        )

    async def estimate_token_gas(
        self,
        token: str,
        to: str,
        amount: str,
        strategy: GasStrategy = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> GasEstimate:
        sender = self._session.address
        info = await self._metadata.get_token_info(token)
        return await self._gas.estimate_token(
            sender,
            info.address,
            to,
            to_base_units(amount, info.decimals),
            strategy=strategy,
            custom=custom,
        )

    async def get_optimal_gas_strategy(self) -> GasStrategyRecommendation:
        return await self._gas.recommend_strategy()

    async def get_transaction_details(self, tx_hash: str) -> dict[str, Any]:
        transaction, receipt = await asyncio.gather(
            self._pool.execute(Operation.GET_TRANSACTION, (tx_hash,)),
            self._pool.execute(Operation.GET_TRANSACTION_RECEIPT, (tx_hash,)),
        )
        return {"transaction": transaction, "receipt": receipt}

    # ------------------------------------------------------------------
    # Sends
    # ------------------------------------------------------------------
    async def send_transaction(
        self,
        to: str,
        amount: str,
        strategy: GasStrategy = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> TransactionResult:
        return await self._submitter.send_native(to, amount, strategy=strategy, custom=custom)

    async def send_token_transaction(
        self,
        token: str,
        to: str,
        amount: str,
        strategy: GasStrategy = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> TransactionResult:
        return await self._submitter.send_token(token, to, amount, strategy=strategy, custom=custom)

    async def send_batch_transactions(
        self,
        transfers: Sequence[TransferRequest],
        strategy: GasStrategy = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> list[TransactionResult]:
        return await self._submitter.send_native_batch(transfers, strategy=strategy, custom=custom)

    async def send_batch_token_transactions(
        self,
        token: str,
        transfers: Sequence[TransferRequest],
        strategy: GasStrategy = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> list[TransactionResult]:
        return await self._submitter.send_token_batch(
            token, transfers, strategy=strategy, custom=custom
        )

    async def calculate_max_transfer_amount(
        self,
        to: str,
        transfer_type: TransferType = TransferType.NATIVE,
        token: str | None = None,
        strategy: GasStrategy = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> MaxTransferResult:
        """Largest amount that can be sent to ``to`` after paying for gas.

        The result always satisfies ``max_amount + total_cost <= balance`` for
        native transfers; token transfers pay gas from the native balance.
        """

        sender = self._session.address
        destination = to_checksum(to, field="to")
        if same_address(destination, sender):
            raise ValidationError("Cannot transfer to the sending address", field="to", value=to)

        await self._pool.execute(Operation.GET_BLOCK_NUMBER)

        if TransferType(transfer_type) is TransferType.TOKEN:
            if not token:
                raise ValidationError("Token address is required for token transfers", field="token")
            info = await self._metadata.get_token_info(token)
            token_balance, native_wei = await asyncio.gather(
                self._metadata.get_token_balance(info.address, sender),
                self._native_balance(sender),
            )
            estimate = await self._gas.estimate_token(
                sender,
                info.address,
                destination,
                to_base_units(TOKEN_PROBE_AMOUNT, info.decimals),
                strategy=strategy,
                custom=custom,
            )
            can_pay_gas = native_wei >= estimate.total_cost
            return MaxTransferResult(
                max_amount=token_balance.formatted_balance if can_pay_gas else "0",
                gas_estimate=estimate,
                available_balance=token_balance.formatted_balance,
                can_transfer=can_pay_gas and int(token_balance.balance) > 0,
            )

        balance_wei = await self._native_balance(sender)
        estimate = await self._gas.estimate_native(
            sender,
            destination,
            to_base_units(NATIVE_PROBE_AMOUNT),
            strategy=strategy,
            custom=custom,
        )
        max_wei = balance_wei - estimate.total_cost
        return MaxTransferResult(
            max_amount=format_units(max_wei) if max_wei > 0 else "0",
            gas_estimate=estimate,
            available_balance=format_units(balance_wei),
            can_transfer=max_wei > 0,
        )

    async def execute_max_transfer(
        self,
        to: str,
        transfer_type: TransferType = TransferType.NATIVE,
        token: str | None = None,
        strategy: GasStrategy = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> TransactionResult:
        try:
            plan = await self.calculate_max_transfer_amount(
                to, transfer_type, token, strategy, custom
            )
            if not plan.can_transfer:
                raise InsufficientFundsError(
                    "Balance cannot cover the transfer and gas fees",
                    required=format_units(plan.gas_estimate.total_cost),
                    available=plan.available_balance,
                    asset=self._config.native_symbol,
                )
        except Exception as exc:
            logger.error("Max transfer to %s aborted: %s", to, exc)
            return TransactionResult(
                hash="", success=False, error=describe_error(exc), error_kind=classify_error(exc)
            )

        logger.info(
            "Executing max transfer of %s to %s (estimated gas %s %s)",
            plan.max_amount,
            to,
            format_units(plan.gas_estimate.total_cost),
            self._config.native_symbol,
        )
        if TransferType(transfer_type) is TransferType.TOKEN and token:
            return await self.send_token_transaction(token, to, plan.max_amount, strategy, custom)
        return await self.send_transaction(to, plan.max_amount, strategy, custom)

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------
    async def monitor_balance(
        self,
        address: str,
        callback: BalanceCallback,
        interval: float = DEFAULT_MONITOR_INTERVAL,
    ) -> Callable[[], None]:
        owner = to_checksum(address)

        async def fetch() -> tuple[str, int]:
            balance, block_number = await asyncio.gather(
                self.get_balance(owner), self._pool.execute(Operation.GET_BLOCK_NUMBER)
            )
            return balance, int(block_number)

        return self._start_monitor(fetch, callback, interval, name=f"balance {owner}")

    async def monitor_token_balance(
        self,
        token: str,
        address: str,
        callback: BalanceCallback,
        interval: float = DEFAULT_MONITOR_INTERVAL,
    ) -> Callable[[], None]:
        owner = to_checksum(address)

        async def fetch() -> tuple[str, int]:
            balance, block_number = await asyncio.gather(
                self._metadata.get_token_balance(token, owner),
                self._pool.execute(Operation.GET_BLOCK_NUMBER),
            )
            return balance.balance, int(block_number)

        return self._start_monitor(fetch, callback, interval, name=f"token balance {owner}")

    def _start_monitor(
        self,
        fetch: Callable[[], Awaitable[tuple[str, int]]],
        callback: BalanceCallback,
        interval: float,
        *,
        name: str,
    ) -> Callable[[], None]:
        monitor = BalanceMonitor(fetch, callback, interval=interval, name=name)
        self._monitors = [existing for existing in self._monitors if existing.running]
        self._monitors.append(monitor)
        return monitor.start()

    # ------------------------------------------------------------------
    # Network status
    # ------------------------------------------------------------------
    async def check_connection(self) -> ConnectionStatus:
        started = time.perf_counter()
        chain_id, block_number = await asyncio.gather(
            self._pool.execute(Operation.GET_CHAIN_ID, ttl=self._config.cache_ttl.chain_id),
            self._pool.execute(Operation.GET_BLOCK_NUMBER),
            return_exceptions=True,
        )
        for outcome in (chain_id, block_number):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("Connection check failed: %s", outcome)
                return ConnectionStatus(
                    connected=False, latency_ms=(time.perf_counter() - started) * 1000
                )

        return ConnectionStatus(
            connected=int(chain_id) == self._config.chain_id,
            chain_id=int(chain_id),
            block_number=int(block_number),
            latency_ms=(time.perf_counter() - started) * 1000,
        )

    async def get_network_status(self) -> NetworkStatus:
        started = time.perf_counter()
        chain_id, block_number, fee = await asyncio.gather(
            self._pool.execute(Operation.GET_CHAIN_ID, ttl=self._config.cache_ttl.chain_id),
            self._pool.execute(Operation.GET_BLOCK_NUMBER),
            self._gas.fee_data(),
        )
        congestion = await self._gas.congestion()
        return NetworkStatus(
            chain_id=int(chain_id),
            block_number=int(block_number),
            gas_price_gwei=format_gwei(fee.gas_price or 0),
            congestion=congestion,
            latency_ms=(time.perf_counter() - started) * 1000,
        )

    async def run_diagnostics(self) -> DiagnosticResult:
        return await self._diagnostics.run()

    def diagnostic_report(self, result: DiagnosticResult) -> str:
        return self._diagnostics.report(result)

    # ------------------------------------------------------------------
    # Verification and contracts
    # ------------------------------------------------------------------
    async def verify_transaction(self, tx_hash: str) -> VerificationResult:
        return await self._verifier.verify(tx_hash)

    async def verify_transactions(self, tx_hashes: list[str]) -> dict[str, VerificationResult]:
        return await self._verifier.verify_batch(tx_hashes)

    async def is_transaction_visible(self, tx_hash: str) -> bool:
        return await self._verifier.is_transaction_visible(tx_hash)

    async def validate_contract_address(self, address: str) -> ContractValidationResult:
        return await self._contracts.validate(address, self._config.chain_id)

    def clear_expired_validations(self) -> int:
        return self._contracts.clear_expired()

    def clear_validations(self) -> None:
        self._contracts.clear()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _owner(self, address: str | None) -> str:
        if address:
            return to_checksum(address)
        return self._session.address

    async def _native_balance(self, address: str) -> int:
        self._pool.invalidate(Operation.GET_BALANCE)
        return int(await self._pool.execute(Operation.GET_BALANCE, (address,), ttl=0))
