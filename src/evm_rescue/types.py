"""Type definitions and data models for the EVM rescue client."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from eth_typing import HexStr


class GasStrategy(str, Enum):
    """Gas price aggressiveness presets."""

    SAFE = "safe"
    STANDARD = "standard"
    FAST = "fast"
    CUSTOM = "custom"


class TransferType(str, Enum):
    """Asset kind moved by a transfer."""

    NATIVE = "native"
    TOKEN = "token"


class TxStatus(str, Enum):
    """Lifecycle state of a submitted transaction."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Structured tag produced by error classification."""

    RATE_LIMIT = "rate_limit"
    TRANSIENT_NETWORK = "transient_network"
    NONCE_EXPIRED = "nonce_expired"
    REPLACEMENT_UNDERPRICED = "replacement_underpriced"
    UNPREDICTABLE_GAS_LIMIT = "unpredictable_gas_limit"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INSUFFICIENT_TOKEN_BALANCE = "insufficient_token_balance"
    EXECUTION_REVERTED = "execution_reverted"
    VALIDATION = "validation"
    NO_SIGNER = "no_signer"
    NO_ENDPOINTS = "no_endpoints"
    EXHAUSTED = "exhausted"
    UNKNOWN = "unknown"


@dataclass
class CustomGasConfig:
    """Caller overrides applied on top of a gas strategy.

    ``aggressive`` is the maximum-aggression ("rescue") flag: when set the
    effective multiplier never drops below the rescue floor.
    """

    gas_multiplier: float = 1.0
    gas_limit: int | None = None
    aggressive: bool = False


@dataclass(frozen=True)
class FeeData:
    """Network fee snapshot; fee-market fields are ``None`` on legacy chains."""

    gas_price: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None

    @property
    def supports_fee_market(self) -> bool:
        return bool(self.max_fee_per_gas) and bool(self.max_priority_fee_per_gas)


@dataclass
class GasEstimate:
    """Pricing and limit plan for a single submission attempt."""

    gas_limit: int
    gas_price: int
    total_cost: int
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None
    multiplier: float = 1.0
    used_fallback_limit: bool = False

    @property
    def is_fee_market(self) -> bool:
        return self.max_fee_per_gas is not None and self.max_priority_fee_per_gas is not None


@dataclass
class PreflightResult:
    """Outcome of the checks run immediately before a submission.

    Warnings never block. ``failure`` keeps the typed exception behind the
    first blocking error so a submitter can raise it unchanged.
    """

    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    gas_estimate: GasEstimate | None = None
    nonce: int | None = None
    value: int | None = None
    token_info: "TokenInfo | None" = None
    failure: Exception | None = field(default=None, repr=False, compare=False)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def block(self, exc: Exception) -> "PreflightResult":
        self.errors.append(getattr(exc, "message", None) or str(exc))
        if self.failure is None:
            self.failure = exc
        return self


@dataclass
class TokenInfo:
    address: str
    name: str
    symbol: str
    decimals: int


@dataclass
class TokenBalance:
    address: str
    balance: str
    formatted_balance: str
    token_info: TokenInfo


@dataclass
class TransactionResult:
    """Outcome of a send operation; failures carry a human-readable error."""

    hash: HexStr
    success: bool
    gas_used: int | None = None
    gas_price: int | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    block_number: int | None = None


@dataclass
class TransactionRecord:
    """Externally owned history entry created by submission, updated by verification."""

    hash: HexStr
    status: TxStatus
    amount: str
    token: str | None = None
    error: str | None = None

    @classmethod
    def from_result(
        cls, result: TransactionResult, amount: str, token: str | None = None
    ) -> "TransactionRecord":
        if result.success:
            status = TxStatus.CONFIRMED
        elif result.hash and result.error_kind is ErrorKind.TRANSIENT_NETWORK:
            status = TxStatus.PENDING
        else:
            status = TxStatus.FAILED
        return cls(
            hash=result.hash,
            status=status,
            amount=amount,
            token=token,
            error=result.error,
        )


@dataclass
class VerificationResult:
    """Classified confirmation outcome for one transaction hash."""

    status: TxStatus
    block_number: int | None = None
    gas_used: int | None = None
    gas_price: int | None = None
    error: str | None = None

    @property
    def is_confirmed(self) -> bool:
        return self.status is TxStatus.CONFIRMED

    @property
    def is_failed(self) -> bool:
        return self.status is TxStatus.FAILED


@dataclass
class MaxTransferResult:
    max_amount: str
    gas_estimate: GasEstimate
    available_balance: str
    can_transfer: bool


@dataclass
class ConnectionStatus:
    connected: bool
    chain_id: int | None = None
    block_number: int | None = None
    latency_ms: float | None = None


@dataclass
class NetworkStatus:
    chain_id: int
    block_number: int
    gas_price_gwei: str
    congestion: float
    latency_ms: float


@dataclass
class GasStrategyRecommendation:
    recommended: GasStrategy
    estimates: dict[GasStrategy, GasEstimate]
    congestion: float


@dataclass
class ContractValidationResult:
    is_valid: bool
    contract_type: str | None = None
    name: str | None = None
    symbol: str | None = None
    decimals: int | None = None
    error: str | None = None


@dataclass
class ValidatedContract:
    """Persisted validation entry keyed by lowercase address and network id."""

    address: str
    network_id: int
    is_valid: bool
    contract_type: str
    validated_at: str
    name: str | None = None
    symbol: str | None = None
    decimals: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "networkId": self.network_id,
            "isValid": self.is_valid,
            "contractType": self.contract_type,
            "validatedAt": self.validated_at,
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ValidatedContract":
        return cls(
            address=str(data["address"]).lower(),
            network_id=int(data.get("networkId") or data.get("network_id") or 0),
            is_valid=bool(data.get("isValid", data.get("is_valid", False))),
            contract_type=str(data.get("contractType") or data.get("contract_type") or "unknown"),
            validated_at=str(data.get("validatedAt") or data.get("validated_at")),
            name=data.get("name"),
            symbol=data.get("symbol"),
            decimals=data.get("decimals"),
        )

    def as_result(self) -> ContractValidationResult:
        return ContractValidationResult(
            is_valid=self.is_valid,
            contract_type=self.contract_type,
            name=self.name,
            symbol=self.symbol,
            decimals=self.decimals,
        )


class DiagnosticStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class EndpointProbeResult:
    name: str
    url: str
    is_healthy: bool
    response_time_ms: float
    checked_at: str
    error: str | None = None


@dataclass
class DiagnosticResult:
    """Snapshot of every endpoint's reachability."""

    timestamp: str
    overall_status: DiagnosticStatus
    endpoints: list[EndpointProbeResult]
    latency_ms: float
    errors: list[str] = field(default_factory=list)


@dataclass
class TransferRequest:
    """One leg of a batch send."""

    to: str
    amount: str

