"""EVM Rescue - resilient read/write access to an EVM chain.

This library wraps a pool of interchangeable JSON-RPC endpoints with health
tracking, caching, throttling and retries, and layers gas planning, preflight
validation, submission and confirmation polling on top of it.
"""

from .base import RescueProtocolBase, TransactionSigner
from .classification import classify_error, describe_error
from .evm.client import RescueClient
from .evm.config import ClientConfig, load_config_from_env
from .evm.connections import LocalAccountSigner
from .evm.contracts import ContractStore, InMemoryContractStore, JsonFileContractStore
from .exceptions import (
    AllEndpointsFailedError,
    AuthenticationError,
    ContractStateError,
    ExhaustedRetriesError,
    InsufficientFundsError,
    NetworkError,
    RateLimitError,
    RescueError,
    TransientNetworkError,
    ValidationError,
)
from .rpc.config import CacheTTLConfig, EndpointConfig, RetryPolicy
from .types import (
    ConnectionStatus,
    ContractValidationResult,
    CustomGasConfig,
    ErrorKind,
    GasEstimate,
    GasStrategy,
    MaxTransferResult,
    PreflightResult,
    TokenBalance,
    TokenInfo,
    TransactionRecord,
    TransactionResult,
    TransferRequest,
    TransferType,
    TxStatus,
    VerificationResult,
)
from .utils import format_units, from_base_units, to_base_units

__version__ = "0.1.0"

__all__ = [
    # Client
    "RescueClient",
    "RescueProtocolBase",
    "TransactionSigner",
    "LocalAccountSigner",
    # Configuration
    "ClientConfig",
    "EndpointConfig",
    "RetryPolicy",
    "CacheTTLConfig",
    "load_config_from_env",
    # Contract validation storage
    "ContractStore",
    "InMemoryContractStore",
    "JsonFileContractStore",
    # Types and enums
    "GasStrategy",
    "TransferType",
    "TxStatus",
    "ErrorKind",
    "CustomGasConfig",
    "GasEstimate",
    "PreflightResult",
    "TokenInfo",
    "TokenBalance",
    "TransactionResult",
    "TransactionRecord",
    "TransferRequest",
    "VerificationResult",
    "MaxTransferResult",
    "ConnectionStatus",
    "ContractValidationResult",
    # Exceptions
    "RescueError",
    "NetworkError",
    "TransientNetworkError",
    "RateLimitError",
    "AllEndpointsFailedError",
    "ValidationError",
    "InsufficientFundsError",
    "AuthenticationError",
    "ContractStateError",
    "ExhaustedRetriesError",
    # Utility functions
    "classify_error",
    "describe_error",
    "to_base_units",
    "from_base_units",
    "format_units",
]
