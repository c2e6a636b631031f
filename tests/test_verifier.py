"""Tests for confirmation polling and verification."""

import asyncio
import time
from types import SimpleNamespace
from typing import Any

import pytest
from hexbytes import HexBytes

from evm_rescue.constants import Operation
from evm_rescue.evm.verifier import ReceiptPoller, TransactionVerifier
from evm_rescue.rpc.pool import EndpointPool
from evm_rescue.types import TransactionRecord, TxStatus

from .fakes import FakeChain, FakeClock, endpoint_configs

MISSING_HASH = "0x" + "ee" * 32


def make_verifier(chain: FakeChain, clock: FakeClock, timeout: float = 30) -> TransactionVerifier:
    pool = EndpointPool(endpoint_configs("https://rpc.test"), web3_factory=chain.factory)
    poller = ReceiptPoller(pool, poll_interval=1, sleep=clock.sleep, clock=clock)
    return TransactionVerifier(pool, timeout=timeout, poller=poller)


def submit(chain: FakeChain, status: int = 1) -> str:
    chain.receipt_status = status
    return chain.send_raw_transaction(HexBytes("0x01")).to_0x_hex()


@pytest.mark.asyncio
async def test_confirmed_transaction(chain: FakeChain, clock: FakeClock) -> None:
    tx_hash = submit(chain)
    result = await make_verifier(chain, clock).verify(tx_hash)

    assert result.status is TxStatus.CONFIRMED
    assert result.is_confirmed
    assert result.block_number == 101
    assert result.gas_used == 21_000
    assert result.gas_price == chain.gas_price
    assert result.error is None


@pytest.mark.asyncio
async def test_reverted_transaction(chain: FakeChain, clock: FakeClock) -> None:
    tx_hash = submit(chain, status=0)
    result = await make_verifier(chain, clock).verify(tx_hash)

    assert result.is_failed
    assert result.error == "Transaction reverted on-chain"
    assert result.block_number == 101


@pytest.mark.asyncio
async def test_times_out_after_thirty_seconds(chain: FakeChain, clock: FakeClock) -> None:
    started = clock.now
    result = await make_verifier(chain, clock).verify(MISSING_HASH)

    assert result.status is TxStatus.FAILED
    assert result.error == "Transaction confirmation timed out after 30s"
    assert clock.now - started == 30
    assert sum(clock.sleeps) == 30


@pytest.mark.asyncio
async def test_lookup_errors_keep_polling(chain: FakeChain, clock: FakeClock) -> None:
    tx_hash = submit(chain)
    chain.fail_next("get_transaction_receipt", ConnectionError("reset"), ConnectionError("reset"))

    result = await make_verifier(chain, clock).verify(tx_hash)
    assert result.is_confirmed
    assert clock.sleeps == [1, 1]


@pytest.mark.asyncio
async def test_batch_results_are_isolated(chain: FakeChain, clock: FakeClock) -> None:
    good = submit(chain)
    reverted = submit(chain, status=0)

    results = await make_verifier(chain, clock, timeout=3).verify_batch(
        [good, reverted, MISSING_HASH, good]
    )

    assert list(results) == [good, reverted, MISSING_HASH]
    assert results[good].is_confirmed
    assert results[reverted].error == "Transaction reverted on-chain"
    assert results[MISSING_HASH].error == "Transaction confirmation timed out after 3s"


@pytest.mark.asyncio
async def test_refresh_record(chain: FakeChain, clock: FakeClock) -> None:
    tx_hash = submit(chain)
    record = TransactionRecord(hash=tx_hash, status=TxStatus.PENDING, amount="1")

    refreshed = await make_verifier(chain, clock).refresh_record(record)
    assert refreshed.status is TxStatus.CONFIRMED
    assert record.status is TxStatus.PENDING


@pytest.mark.asyncio
async def test_transaction_visibility(chain: FakeChain, clock: FakeClock) -> None:
    tx_hash = submit(chain)
    verifier = make_verifier(chain, clock)

    assert await verifier.is_transaction_visible(tx_hash)
    assert not await verifier.is_transaction_visible(MISSING_HASH)

    chain.down["https://rpc.test"] = ConnectionError("down")
    assert not await verifier.is_transaction_visible(tx_hash)


@pytest.mark.asyncio
async def test_slow_lookup_cannot_outlast_timeout() -> None:
    lookups: list[str] = []

    async def stalled_receipt(web3: Any, tx_hash: str) -> dict[str, Any]:
        lookups.append(tx_hash)
        await asyncio.sleep(5)
        return {"status": 1}

    pool = EndpointPool(
        endpoint_configs("https://rpc.test"),
        web3_factory=lambda url, timeout: SimpleNamespace(url=url),
        handlers={Operation.GET_TRANSACTION_RECEIPT.value: stalled_receipt},
    )
    verifier = TransactionVerifier(pool, timeout=0.2, poller=ReceiptPoller(pool, poll_interval=0.05))

    started = time.perf_counter()
    result = await verifier.verify(MISSING_HASH)

    assert time.perf_counter() - started < 1.0
    assert lookups == [MISSING_HASH]
    assert result.error == "Transaction confirmation timed out after 0.2s"
    assert pool.endpoints[0].in_flight == 0
