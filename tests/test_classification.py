"""Tests for error classification and user-facing descriptions."""

import asyncio

import pytest
from web3.exceptions import ContractLogicError

from evm_rescue.classification import (
    classify_error,
    describe_error,
    error_code_and_message,
    is_retryable_read,
    is_retryable_submission,
)
from evm_rescue.exceptions import (
    AllEndpointsFailedError,
    AuthenticationError,
    ContractStateError,
    ExhaustedRetriesError,
    InsufficientFundsError,
    RateLimitError,
    ValidationError,
)
from evm_rescue.types import ErrorKind


class RpcError(Exception):
    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (RpcError("boom", code=-32090), ErrorKind.RATE_LIMIT),
        (RpcError("Too Many Requests"), ErrorKind.RATE_LIMIT),
        (ValueError({"code": -32005, "message": "daily request count exceeded"}), ErrorKind.RATE_LIMIT),
        (ValueError({"code": -32000, "message": "nonce too low"}), ErrorKind.NONCE_EXPIRED),
        (RpcError("replacement transaction underpriced"), ErrorKind.REPLACEMENT_UNDERPRICED),
        (RpcError("gas required exceeds allowance (30000000)"), ErrorKind.UNPREDICTABLE_GAS_LIMIT),
        (RpcError("insufficient funds for gas * price + value"), ErrorKind.INSUFFICIENT_FUNDS),
        (ContractLogicError("execution reverted: paused"), ErrorKind.EXECUTION_REVERTED),
        (asyncio.TimeoutError(), ErrorKind.TRANSIENT_NETWORK),
        (ConnectionResetError("peer reset"), ErrorKind.TRANSIENT_NETWORK),
        (RpcError("502 Bad Gateway"), ErrorKind.TRANSIENT_NETWORK),
        (RpcError("something odd"), ErrorKind.UNKNOWN),
    ],
)
def test_classify_provider_errors(error: Exception, kind: ErrorKind) -> None:
    assert classify_error(error) is kind


def test_classify_typed_errors() -> None:
    assert classify_error(AuthenticationError("no key")) is ErrorKind.NO_SIGNER
    assert classify_error(ValidationError("bad")) is ErrorKind.VALIDATION
    assert classify_error(ContractStateError("reverted")) is ErrorKind.EXECUTION_REVERTED
    assert classify_error(ExhaustedRetriesError("done", attempts=4)) is ErrorKind.EXHAUSTED
    token_shortfall = InsufficientFundsError(
        "short", required="2", available="1", asset="USDC", field="token_balance"
    )
    assert classify_error(token_shortfall) is ErrorKind.INSUFFICIENT_TOKEN_BALANCE


def test_all_endpoints_failed_classification() -> None:
    none_healthy = AllEndpointsFailedError("none", operation="get_balance", attempts=0)
    assert classify_error(none_healthy) is ErrorKind.NO_ENDPOINTS

    limited = AllEndpointsFailedError(
        "all failed", operation="get_balance", attempts=2, last_error=RateLimitError("slow down")
    )
    assert classify_error(limited) is ErrorKind.RATE_LIMIT
    assert is_retryable_read(limited)


def test_retry_sets_differ_for_reads_and_submissions() -> None:
    nonce = RpcError("nonce too low")
    timeout = TimeoutError("timed out")
    limited = RateLimitError("429")

    assert not is_retryable_read(nonce)
    assert not is_retryable_read(timeout)
    assert is_retryable_read(limited)

    assert is_retryable_submission(nonce)
    assert is_retryable_submission(timeout)
    assert is_retryable_submission(limited)
    assert not is_retryable_submission(ValidationError("bad"))
    assert not is_retryable_submission(ContractLogicError("execution reverted"))


def test_error_code_from_rpc_payload() -> None:
    code, message = error_code_and_message(ValueError({"code": -32000, "message": "nonce too low"}))
    assert code == -32000
    assert message == "nonce too low"


def test_describe_error_messages() -> None:
    assert describe_error(ValidationError("Invalid destination address")) == (
        "Invalid destination address"
    )
    assert describe_error(RateLimitError("429")).startswith("RPC providers are rate limiting")
    assert describe_error(
        AllEndpointsFailedError("none", operation="get_balance", attempts=0)
    ).startswith("No healthy RPC endpoints")

    reverted = describe_error(ContractLogicError("execution reverted: paused"))
    assert reverted == "Transaction reverted by the contract: execution reverted: paused"

    exhausted = ExhaustedRetriesError(
        "get_balance failed after 4 attempts", attempts=4, last_error=RateLimitError("429")
    )
    assert describe_error(exhausted).startswith("get_balance failed after 4 attempts: RPC providers")
