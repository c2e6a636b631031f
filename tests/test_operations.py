"""Tests for the JSON-RPC operation handlers."""

import pytest

from evm_rescue.constants import FALLBACK_PRIORITY_FEE_WEI
from evm_rescue.exceptions import ContractStateError
from evm_rescue.rpc import operations

from .fakes import CONTRACT, GWEI, SENDER, TOKEN, FakeChain, FakeWeb3


@pytest.mark.asyncio
async def test_fee_data_uses_fee_market_when_base_fee_present(chain: FakeChain) -> None:
    fee = await operations.get_fee_data(FakeWeb3(chain, "https://rpc.test"))
    assert fee.supports_fee_market
    assert fee.max_priority_fee_per_gas == 2 * GWEI
    assert fee.max_fee_per_gas == 2 * 10 * GWEI + 2 * GWEI
    assert fee.gas_price == 30 * GWEI


@pytest.mark.asyncio
async def test_fee_data_legacy_chain(chain: FakeChain) -> None:
    chain.base_fee = None
    fee = await operations.get_fee_data(FakeWeb3(chain, "https://rpc.test"))
    assert not fee.supports_fee_market
    assert fee.gas_price == 30 * GWEI


@pytest.mark.asyncio
async def test_priority_fee_falls_back_when_unsupported(chain: FakeChain) -> None:
    chain.fail_next("get_max_priority_fee", ValueError("method not found"))
    fee = await operations.get_fee_data(FakeWeb3(chain, "https://rpc.test"))
    assert fee.max_priority_fee_per_gas == FALLBACK_PRIORITY_FEE_WEI


@pytest.mark.asyncio
async def test_token_info_and_balance(chain: FakeChain) -> None:
    chain.add_token(TOKEN, "Rescue Token", "RSQ", 8, {SENDER: 250_000_000})
    web3 = FakeWeb3(chain, "https://rpc.test")

    info = await operations.get_token_info(web3, TOKEN)
    assert info == {"name": "Rescue Token", "symbol": "RSQ", "decimals": 8}
    assert await operations.get_token_balance(web3, TOKEN, SENDER) == 250_000_000


@pytest.mark.asyncio
async def test_undecodable_token_answer_is_contract_state_error(chain: FakeChain) -> None:
    chain.deploy(CONTRACT)

    async def empty_call(tx: dict) -> bytes:
        return b""

    web3 = FakeWeb3(chain, "https://rpc.test")
    web3.eth.call = empty_call  # type: ignore[method-assign]
    with pytest.raises(ContractStateError):
        await operations.get_token_balance(web3, CONTRACT, SENDER)


@pytest.mark.asyncio
async def test_missing_receipt_returns_none(chain: FakeChain) -> None:
    web3 = FakeWeb3(chain, "https://rpc.test")
    assert await operations.get_transaction_receipt(web3, "0x" + "ab" * 32) is None
    assert await operations.get_transaction(web3, "0x" + "ab" * 32) is None


@pytest.mark.asyncio
async def test_send_raw_transaction_returns_hex_hash(chain: FakeChain) -> None:
    web3 = FakeWeb3(chain, "https://rpc.test")
    tx_hash = await operations.send_raw_transaction(web3, "0x" + "01" * 16)
    assert tx_hash == "0x" + f"{1:064x}"

    receipt = await operations.get_transaction_receipt(web3, tx_hash)
    assert receipt is not None
    assert receipt["status"] == 1
    assert receipt["transactionHash"] == tx_hash


@pytest.mark.asyncio
async def test_code_is_hex_string(chain: FakeChain) -> None:
    chain.deploy(CONTRACT, b"\x60\x80")
    web3 = FakeWeb3(chain, "https://rpc.test")
    assert await operations.get_code(web3, CONTRACT) == "0x6080"
    assert await operations.get_code(web3, SENDER) == "0x"
