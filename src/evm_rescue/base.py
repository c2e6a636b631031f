"""Rescue client base interfaces."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from .types import (
    ConnectionStatus,
    ContractValidationResult,
    CustomGasConfig,
    GasEstimate,
    GasStrategy,
    MaxTransferResult,
    TokenBalance,
    TransactionResult,
    TransferType,
    VerificationResult,
)


class TransactionSigner(ABC):
    """Opaque signing collaborator holding the key material."""

    @property
    @abstractmethod
    def address(self) -> str:
        pass

    @abstractmethod
    def sign_transaction(self, transaction: Mapping[str, Any]) -> str:
        """Return the signed raw transaction as a 0x-prefixed hex string."""


class RescueProtocolBase(ABC):
    """Resilient read/write client interface."""

    @abstractmethod
    async def get_balance(self, address: str | None = None) -> str:
        pass

    @abstractmethod
    async def get_token_balance(self, token: str, address: str | None = None) -> TokenBalance:
        pass

    @abstractmethod
    async def estimate_gas(
        self,
        to: str,
        amount: str,
        strategy: GasStrategy = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> GasEstimate:
        pass

    @abstractmethod
    async def send_transaction(
        self,
        to: str,
        amount: str,
        strategy: GasStrategy = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> TransactionResult:
        pass

    @abstractmethod
    async def send_token_transaction(
        self,
        token: str,
        to: str,
        amount: str,
        strategy: GasStrategy = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> TransactionResult:
        pass

    @abstractmethod
    async def calculate_max_transfer_amount(
        self,
        to: str,
        transfer_type: TransferType = TransferType.NATIVE,
        token: str | None = None,
        strategy: GasStrategy = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> MaxTransferResult:
        pass

    @abstractmethod
    async def check_connection(self) -> ConnectionStatus:
        pass

    @abstractmethod
    async def verify_transaction(self, tx_hash: str) -> VerificationResult:
        pass

    @abstractmethod
    async def verify_transactions(self, tx_hashes: list[str]) -> dict[str, VerificationResult]:
        pass

    @abstractmethod
    async def validate_contract_address(self, address: str) -> ContractValidationResult:
        pass

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        pass
