"""Classification of provider, web3 and client failures into structured tags.

Every retry decision and every user-facing error message is derived from
:func:`classify_error`, so keyword and error-code matching lives here only.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

from web3.exceptions import ContractLogicError, TimeExhausted

from .exceptions import (
    AllEndpointsFailedError,
    AuthenticationError,
    ContractStateError,
    ExhaustedRetriesError,
    InsufficientFundsError,
    RateLimitError,
    RescueError,
    TransientNetworkError,
    ValidationError,
)
from .types import ErrorKind

RATE_LIMIT_CODES = frozenset({-32090, -32005, 429})
RATE_LIMIT_SIGNATURES = (
    "rate limit",
    "too many requests",
    "call rate limit exhausted",
    "retry in",
    "limit exceeded",
    "-32090",
)
INSUFFICIENT_FUNDS_SIGNATURES = ("insufficient funds", "insufficient_funds")
NONCE_EXPIRED_SIGNATURES = (
    "nonce too low",
    "nonce_expired",
    "nonce expired",
    "nonce has already been used",
)
REPLACEMENT_SIGNATURES = (
    "replacement transaction underpriced",
    "replacement_underpriced",
    "replacement fee too low",
)
UNPREDICTABLE_GAS_SIGNATURES = (
    "unpredictable_gas_limit",
    "cannot estimate gas",
    "gas required exceeds allowance",
)
REVERT_SIGNATURES = ("execution reverted", "call_exception", "reverted")
TRANSIENT_SIGNATURES = (
    "timeout",
    "timed out",
    "connection",
    "network",
    "temporar",
    "econnreset",
    "service unavailable",
    "bad gateway",
)

READ_RETRYABLE = frozenset({ErrorKind.RATE_LIMIT})
SUBMISSION_RETRYABLE = frozenset(
    {
        ErrorKind.NONCE_EXPIRED,
        ErrorKind.REPLACEMENT_UNDERPRICED,
        ErrorKind.UNPREDICTABLE_GAS_LIMIT,
        ErrorKind.TRANSIENT_NETWORK,
        ErrorKind.RATE_LIMIT,
    }
)

_KIND_DESCRIPTIONS = {
    ErrorKind.RATE_LIMIT: "RPC providers are rate limiting requests, please retry later",
    ErrorKind.TRANSIENT_NETWORK: "Network connection error, check connectivity and retry",
    ErrorKind.NONCE_EXPIRED: "Nonce conflict: a pending transaction may be using this nonce",
    ErrorKind.REPLACEMENT_UNDERPRICED: "Replacement transaction gas price is too low",
    ErrorKind.UNPREDICTABLE_GAS_LIMIT: "Unable to predict the gas limit, the call may revert",
    ErrorKind.INSUFFICIENT_FUNDS: "Insufficient funds for gas",
    ErrorKind.INSUFFICIENT_TOKEN_BALANCE: "Insufficient token balance",
    ErrorKind.EXECUTION_REVERTED: "Transaction reverted by the contract",
    ErrorKind.VALIDATION: "Invalid transfer parameters",
    ErrorKind.NO_SIGNER: "Wallet is not initialised, import a private key first",
    ErrorKind.NO_ENDPOINTS: "No healthy RPC endpoints are available, please retry later",
    ErrorKind.EXHAUSTED: "Operation failed after exhausting retries",
    ErrorKind.UNKNOWN: "Unknown error",
}

# Typed errors of these kinds already carry a complete message
_SELF_DESCRIBING = frozenset(
    {
        ErrorKind.UNKNOWN,
        ErrorKind.VALIDATION,
        ErrorKind.NO_SIGNER,
        ErrorKind.INSUFFICIENT_FUNDS,
        ErrorKind.INSUFFICIENT_TOKEN_BALANCE,
    }
)


def error_code_and_message(exc: BaseException) -> tuple[int | None, str]:
    """Extract a JSON-RPC error code and message from web3/provider errors."""

    code: Any = getattr(exc, "code", None)
    message = str(exc)
    explicit = getattr(exc, "message", None)
    if isinstance(explicit, str) and explicit:
        message = explicit

    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, Mapping):
        error = rpc_response.get("error")
        if isinstance(error, Mapping):
            code = error.get("code", code)
            message = str(error.get("message") or message)

    if exc.args and isinstance(exc.args[0], Mapping):
        payload = exc.args[0]
        code = payload.get("code", code)
        message = str(payload.get("message") or message)

    if isinstance(exc, RescueError):
        code = exc.details.get("code", code)

    status_code = getattr(exc, "status_code", None)
    if code is None and isinstance(status_code, int):
        code = status_code

    try:
        parsed_code = int(code) if code is not None else None
    except (TypeError, ValueError):
        parsed_code = None
    return parsed_code, message


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any failure to a single structured :class:`ErrorKind`."""

    if isinstance(exc, AllEndpointsFailedError):
        if exc.attempts == 0:
            return ErrorKind.NO_ENDPOINTS
        if exc.last_error is not None:
            return classify_error(exc.last_error)
        return ErrorKind.UNKNOWN
    if isinstance(exc, ExhaustedRetriesError):
        return ErrorKind.EXHAUSTED
    if isinstance(exc, RateLimitError):
        return ErrorKind.RATE_LIMIT
    if isinstance(exc, TransientNetworkError):
        return ErrorKind.TRANSIENT_NETWORK
    if isinstance(exc, InsufficientFundsError):
        if exc.field == "token_balance":
            return ErrorKind.INSUFFICIENT_TOKEN_BALANCE
        return ErrorKind.INSUFFICIENT_FUNDS
    if isinstance(exc, AuthenticationError):
        return ErrorKind.NO_SIGNER
    if isinstance(exc, ValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, ContractStateError | ContractLogicError):
        return ErrorKind.EXECUTION_REVERTED

    code, message = error_code_and_message(exc)
    lowered = message.lower()

    if code in RATE_LIMIT_CODES or _matches(lowered, RATE_LIMIT_SIGNATURES):
        return ErrorKind.RATE_LIMIT
    if _matches(lowered, INSUFFICIENT_FUNDS_SIGNATURES):
        return ErrorKind.INSUFFICIENT_FUNDS
    if _matches(lowered, NONCE_EXPIRED_SIGNATURES):
        return ErrorKind.NONCE_EXPIRED
    if _matches(lowered, REPLACEMENT_SIGNATURES):
        return ErrorKind.REPLACEMENT_UNDERPRICED
    if _matches(lowered, UNPREDICTABLE_GAS_SIGNATURES):
        return ErrorKind.UNPREDICTABLE_GAS_LIMIT
    if _matches(lowered, REVERT_SIGNATURES):
        return ErrorKind.EXECUTION_REVERTED

    if isinstance(exc, TimeExhausted | asyncio.TimeoutError | TimeoutError | ConnectionError):
        return ErrorKind.TRANSIENT_NETWORK
    if _matches(lowered, TRANSIENT_SIGNATURES):
        return ErrorKind.TRANSIENT_NETWORK

    return ErrorKind.UNKNOWN


def is_retryable_read(exc: BaseException) -> bool:
    return classify_error(exc) in READ_RETRYABLE


def is_retryable_submission(exc: BaseException) -> bool:
    return classify_error(exc) in SUBMISSION_RETRYABLE


def revert_reason(exc: BaseException) -> str:
    """Raw revert reason preserved for diagnostics."""
    if isinstance(exc, ContractStateError) and exc.revert_reason:
        return exc.revert_reason
    _, message = error_code_and_message(exc)
    return message


def describe_error(exc: BaseException) -> str:
    """Human-readable message distinguishing the failure classes."""

    if isinstance(exc, ExhaustedRetriesError) and exc.last_error is not None:
        return f"{exc.message}: {describe_error(exc.last_error)}"

    kind = classify_error(exc)
    if isinstance(exc, RescueError) and not isinstance(exc, AllEndpointsFailedError):
        if kind in _SELF_DESCRIBING:
            return exc.message
        return f"{_KIND_DESCRIPTIONS[kind]}: {exc.message}"

    if kind is ErrorKind.UNKNOWN:
        return str(exc) or _KIND_DESCRIPTIONS[kind]
    if kind is ErrorKind.EXECUTION_REVERTED:
        return f"{_KIND_DESCRIPTIONS[kind]}: {revert_reason(exc)}"
    return _KIND_DESCRIPTIONS[kind]


def _matches(message: str, signatures: tuple[str, ...]) -> bool:
    return any(signature in message for signature in signatures)
