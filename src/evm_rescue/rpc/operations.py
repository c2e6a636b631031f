"""Concrete JSON-RPC calls dispatched by the endpoint pool.

Each handler receives the endpoint's ``AsyncWeb3`` instance followed by the
operation parameters and returns plain Python values so results can be cached
and compared independently of the transport.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound

from ..constants import (
    ERC20_BALANCE_OF_SIGNATURE,
    ERC20_DECIMALS_SIGNATURE,
    ERC20_NAME_SIGNATURE,
    ERC20_SYMBOL_SIGNATURE,
    FALLBACK_PRIORITY_FEE_WEI,
    Operation,
)
from ..exceptions import ContractStateError
from ..types import FeeData
from ..utils import encode_call, hex_hash, serialise_receipt, to_checksum

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Any]]


async def get_balance(web3: AsyncWeb3, address: str) -> int:
    return int(await web3.eth.get_balance(to_checksum(address)))


async def get_fee_data(web3: AsyncWeb3) -> FeeData:
    block = await web3.eth.get_block("latest")
    gas_price = int(await web3.eth.gas_price)
    base_fee = block.get("baseFeePerGas")
    if base_fee is None:
        return FeeData(gas_price=gas_price)

    try:
        priority_fee = int(await web3.eth.max_priority_fee)
    except Exception as exc:
        logger.debug("eth_maxPriorityFeePerGas unsupported, using fallback: %s", exc)
        priority_fee = FALLBACK_PRIORITY_FEE_WEI

    return FeeData(
        gas_price=gas_price,
        max_fee_per_gas=int(base_fee) * 2 + priority_fee,
        max_priority_fee_per_gas=priority_fee,
    )


async def get_token_info(web3: AsyncWeb3, token: str) -> dict[str, Any]:
    name, symbol, decimals = await asyncio.gather(
        _call_decode(web3, token, ERC20_NAME_SIGNATURE, "string"),
        _call_decode(web3, token, ERC20_SYMBOL_SIGNATURE, "string"),
        _call_decode(web3, token, ERC20_DECIMALS_SIGNATURE, "uint8"),
    )
    return {"name": name, "symbol": symbol, "decimals": int(decimals)}


async def get_token_balance(web3: AsyncWeb3, token: str, owner: str) -> int:
    balance = await _call_decode(
        web3,
        token,
        ERC20_BALANCE_OF_SIGNATURE,
        "uint256",
        arg_types=("address",),
        args=(to_checksum(owner),),
    )
    return int(balance)


async def get_code(web3: AsyncWeb3, address: str) -> str:
    code = await web3.eth.get_code(to_checksum(address))
    return HexBytes(code).to_0x_hex()


async def get_block_number(web3: AsyncWeb3) -> int:
    return int(await web3.eth.block_number)


async def get_latest_block(web3: AsyncWeb3) -> dict[str, Any]:
    block = await web3.eth.get_block("latest")
    return {
        "number": block.get("number"),
        "gasUsed": block.get("gasUsed"),
        "gasLimit": block.get("gasLimit"),
        "baseFeePerGas": block.get("baseFeePerGas"),
    }


async def get_chain_id(web3: AsyncWeb3) -> int:
    return int(await web3.eth.chain_id)


async def get_nonce(web3: AsyncWeb3, address: str) -> int:
    return int(await web3.eth.get_transaction_count(to_checksum(address), "pending"))


async def estimate_gas(web3: AsyncWeb3, tx: Mapping[str, Any]) -> int:
    return int(await web3.eth.estimate_gas(_normalise_tx(tx)))


async def call(web3: AsyncWeb3, tx: Mapping[str, Any]) -> str:
    result = await web3.eth.call(_normalise_tx(tx))
    return HexBytes(result).to_0x_hex()


async def send_raw_transaction(web3: AsyncWeb3, raw_transaction: str) -> str:
    tx_hash = await web3.eth.send_raw_transaction(HexBytes(raw_transaction))
    return hex_hash(tx_hash)


async def get_transaction_receipt(web3: AsyncWeb3, tx_hash: str) -> dict[str, Any] | None:
    try:
        receipt = await web3.eth.get_transaction_receipt(tx_hash)
    except TransactionNotFound:
        return None
    return serialise_receipt(dict(receipt)) if receipt else None


async def get_transaction(web3: AsyncWeb3, tx_hash: str) -> dict[str, Any] | None:
    try:
        tx = await web3.eth.get_transaction(tx_hash)
    except TransactionNotFound:
        return None
    return serialise_receipt(dict(tx)) if tx else None


OPERATION_HANDLERS: dict[str, Handler] = {
    Operation.GET_BALANCE.value: get_balance,
    Operation.GET_FEE_DATA.value: get_fee_data,
    Operation.GET_TOKEN_INFO.value: get_token_info,
    Operation.GET_TOKEN_BALANCE.value: get_token_balance,
    Operation.GET_CODE.value: get_code,
    Operation.GET_BLOCK_NUMBER.value: get_block_number,
    Operation.GET_LATEST_BLOCK.value: get_latest_block,
    Operation.GET_CHAIN_ID.value: get_chain_id,
    Operation.GET_NONCE.value: get_nonce,
    Operation.ESTIMATE_GAS.value: estimate_gas,
    Operation.CALL.value: call,
    Operation.SEND_RAW_TRANSACTION.value: send_raw_transaction,
    Operation.GET_TRANSACTION_RECEIPT.value: get_transaction_receipt,
    Operation.GET_TRANSACTION.value: get_transaction,
}


# ----------------------------------------------------------------------
# Internal helpers
# ----------------------------------------------------------------------
async def _call_decode(
    web3: AsyncWeb3,
    address: str,
    signature: str,
    output_type: str,
    *,
    arg_types: tuple[str, ...] = (),
    args: tuple[Any, ...] = (),
) -> Any:
    data = encode_call(signature, arg_types, args)
    result = await web3.eth.call({"to": to_checksum(address), "data": data})
    try:
        (decoded,) = abi_decode([output_type], bytes(result))
    except DecodingError as exc:
        raise ContractStateError(
            f"{signature} returned undecodable data",
            revert_reason=HexBytes(result).to_0x_hex(),
            details={"address": address, "error": str(exc)},
        ) from exc
    return decoded


def _normalise_tx(tx: Mapping[str, Any]) -> dict[str, Any]:
    normalised = dict(tx)
    for key in ("to", "from"):
        if normalised.get(key):
            normalised[key] = to_checksum(normalised[key], field=key)
    return normalised
