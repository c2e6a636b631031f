"""In-memory fakes standing in for JSON-RPC endpoints, signers and clocks.

``FakeChain`` holds the chain state and hands out one ``FakeWeb3`` per
endpoint URL through :meth:`FakeChain.factory`, so the real operation
handlers run against it without any network access.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from eth_abi import encode as abi_encode
from hexbytes import HexBytes
from web3.exceptions import ContractLogicError, TransactionNotFound

from evm_rescue.base import TransactionSigner
from evm_rescue.constants import (
    ERC20_BALANCE_OF_SIGNATURE,
    ERC20_DECIMALS_SIGNATURE,
    ERC20_NAME_SIGNATURE,
    ERC20_SYMBOL_SIGNATURE,
    GET_OWNER_SIGNATURE,
    OWNER_SIGNATURE,
)
from evm_rescue.evm.client import RescueClient
from evm_rescue.evm.config import ClientConfig
from evm_rescue.rpc.config import EndpointConfig
from evm_rescue.utils import function_selector

SENDER = "0x1000000000000000000000000000000000000001"
RECIPIENT = "0x2000000000000000000000000000000000000002"
CONTRACT = "0x3000000000000000000000000000000000000003"
TOKEN = "0x4000000000000000000000000000000000000004"
OWNER = "0x5000000000000000000000000000000000000005"
USDC = "0x2791bca1f2de4661ed88a30c99a7a9449aa84174"

GWEI = 10**9
ETHER = 10**18

_SELECTORS = {
    "0x" + function_selector(signature).hex(): signature
    for signature in (
        ERC20_NAME_SIGNATURE,
        ERC20_SYMBOL_SIGNATURE,
        ERC20_DECIMALS_SIGNATURE,
        ERC20_BALANCE_OF_SIGNATURE,
        OWNER_SIGNATURE,
        GET_OWNER_SIGNATURE,
    )
}


class FakeClock:
    """Manual clock whose ``sleep`` advances time instead of waiting."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


class FakeSigner(TransactionSigner):
    def __init__(self, address: str = SENDER) -> None:
        self._address = address
        self.signed: list[dict[str, Any]] = []

    @property
    def address(self) -> str:
        return self._address

    def sign_transaction(self, transaction: Mapping[str, Any]) -> str:
        self.signed.append(dict(transaction))
        return "0x" + f"{len(self.signed):02x}" * 16


class FakeChain:
    """In-memory chain state answering the subset of ``eth`` used by the client."""

    def __init__(self) -> None:
        self.chain_id = 137
        self.block_number = 100
        self.gas_price = 30 * GWEI
        self.base_fee: int | None = 10 * GWEI
        self.priority_fee = 2 * GWEI
        self.gas_estimate = 21_000
        self.block_gas_used = 15_000_000
        self.block_gas_limit = 30_000_000
        self.balances: dict[str, int] = {}
        self.codes: dict[str, bytes] = {}
        self.tokens: dict[str, tuple[str, str, int]] = {}
        self.token_balances: dict[tuple[str, str], int] = {}
        self.owners: dict[str, str] = {}
        self.payable: set[str] = set()
        self.receipt_status = 1
        self.confirm = True
        self.receipts: dict[str, dict[str, Any] | None] = {}
        self.sent: list[str] = []
        self.calls: list[tuple[str, str]] = []
        self.down: dict[str, Exception] = {}
        self.failures: dict[str, list[Exception]] = {}

    # ------------------------------------------------------------------
    # Setup helpers
    # ------------------------------------------------------------------
    def fund(self, address: str, wei: int) -> None:
        self.balances[address.lower()] = wei

    def deploy(self, address: str, code: bytes = b"\x60\x80\x60\x40") -> None:
        self.codes[address.lower()] = code

    def add_token(
        self, address: str, name: str, symbol: str, decimals: int, balances: dict[str, int]
    ) -> None:
        self.deploy(address)
        self.tokens[address.lower()] = (name, symbol, decimals)
        for owner, amount in balances.items():
            self.token_balances[(address.lower(), owner.lower())] = amount

    def fail_next(self, name: str, *errors: Exception) -> None:
        self.failures.setdefault(name, []).extend(errors)

    def factory(self, url: str, timeout: float) -> FakeWeb3:
        return FakeWeb3(self, url)

    def count(self, name: str) -> int:
        return sum(1 for _, called in self.calls if called == name)

    # ------------------------------------------------------------------
    # eth namespace
    # ------------------------------------------------------------------
    def get_balance(self, address: str) -> int:
        return self.balances.get(address.lower(), 0)

    def get_block(self, identifier: str) -> dict[str, Any]:
        block: dict[str, Any] = {
            "number": self.block_number,
            "gasUsed": self.block_gas_used,
            "gasLimit": self.block_gas_limit,
        }
        if self.base_fee is not None:
            block["baseFeePerGas"] = self.base_fee
        return block

    def get_gas_price(self) -> int:
        return self.gas_price

    def get_max_priority_fee(self) -> int:
        return self.priority_fee

    def get_chain_id(self) -> int:
        return self.chain_id

    def get_block_number(self) -> int:
        return self.block_number

    def get_code(self, address: str) -> bytes:
        return self.codes.get(address.lower(), b"")

    def get_transaction_count(self, address: str, block: str) -> int:
        return len(self.sent)

    def estimate_gas(self, tx: Mapping[str, Any]) -> int:
        return self.gas_estimate

    def call(self, tx: Mapping[str, Any]) -> bytes:
        to = str(tx["to"]).lower()
        data = str(tx.get("data") or "0x")
        signature = _SELECTORS.get(data[:10])

        if signature is None:
            if to in self.payable:
                return b""
            raise ContractLogicError("execution reverted")

        if to in self.tokens:
            name, symbol, decimals = self.tokens[to]
            if signature == ERC20_NAME_SIGNATURE:
                return abi_encode(["string"], [name])
            if signature == ERC20_SYMBOL_SIGNATURE:
                return abi_encode(["string"], [symbol])
            if signature == ERC20_DECIMALS_SIGNATURE:
                return abi_encode(["uint8"], [decimals])
            if signature == ERC20_BALANCE_OF_SIGNATURE:
                owner = "0x" + data[-40:]
                return abi_encode(["uint256"], [self.token_balances.get((to, owner.lower()), 0)])

        if to in self.owners and signature in (OWNER_SIGNATURE, GET_OWNER_SIGNATURE):
            return abi_encode(["address"], [self.owners[to]])

        raise ContractLogicError("execution reverted")

    def send_raw_transaction(self, raw: HexBytes) -> HexBytes:
        self.sent.append(raw.to_0x_hex())
        tx_hash = "0x" + f"{len(self.sent):064x}"
        self.receipts[tx_hash] = (
            {
                "transactionHash": HexBytes(tx_hash),
                "status": self.receipt_status,
                "blockNumber": self.block_number + 1,
                "gasUsed": 21_000,
                "effectiveGasPrice": self.gas_price,
            }
            if self.confirm
            else None
        )
        return HexBytes(tx_hash)

    def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any]:
        receipt = self.receipts.get(tx_hash)
        if receipt is None:
            raise TransactionNotFound(f"Transaction with hash {tx_hash} not found")
        return receipt

    def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        if tx_hash not in self.receipts:
            raise TransactionNotFound(f"Transaction with hash {tx_hash} not found")
        return {"hash": HexBytes(tx_hash), "from": SENDER, "value": 0}


class FakeEth:
    def __init__(self, chain: FakeChain, url: str) -> None:
        self._chain = chain
        self._url = url

    async def _run(self, name: str, *args: Any) -> Any:
        self._chain.calls.append((self._url, name))
        if self._url in self._chain.down:
            raise self._chain.down[self._url]
        queued = self._chain.failures.get(name)
        if queued:
            raise queued.pop(0)
        return getattr(self._chain, name)(*args)

    @property
    def gas_price(self) -> Any:
        return self._run("get_gas_price")

    @property
    def max_priority_fee(self) -> Any:
        return self._run("get_max_priority_fee")

    @property
    def chain_id(self) -> Any:
        return self._run("get_chain_id")

    @property
    def block_number(self) -> Any:
        return self._run("get_block_number")

    async def get_balance(self, address: str) -> int:
        return await self._run("get_balance", address)

    async def get_block(self, identifier: str) -> dict[str, Any]:
        return await self._run("get_block", identifier)

    async def get_code(self, address: str) -> bytes:
        return await self._run("get_code", address)

    async def get_transaction_count(self, address: str, block: str) -> int:
        return await self._run("get_transaction_count", address, block)

    async def estimate_gas(self, tx: Mapping[str, Any]) -> int:
        return await self._run("estimate_gas", tx)

    async def call(self, tx: Mapping[str, Any]) -> bytes:
        return await self._run("call", tx)

    async def send_raw_transaction(self, raw: HexBytes) -> HexBytes:
        return await self._run("send_raw_transaction", raw)

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any]:
        return await self._run("get_transaction_receipt", tx_hash)

    async def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        return await self._run("get_transaction", tx_hash)


class FakeWeb3:
    def __init__(self, chain: FakeChain, url: str) -> None:
        self.url = url
        self.eth = FakeEth(chain, url)


def endpoint_configs(*urls: str) -> tuple[EndpointConfig, ...]:
    total = len(urls)
    return tuple(
        EndpointConfig(url=url, name=f"rpc-{index + 1}", weight=total - index)
        for index, url in enumerate(urls)
    )


def build_client(
    chain: FakeChain,
    *,
    signer: TransactionSigner | None = None,
    urls: tuple[str, ...] = ("https://rpc-a.test",),
    clock: FakeClock | None = None,
    **overrides: Any,
) -> RescueClient:
    config = ClientConfig(endpoints=endpoint_configs(*urls), **overrides)
    return RescueClient(
        config,
        signer=signer,
        web3_factory=chain.factory,
        sleep=(clock or FakeClock()).sleep,
    )
