"""Utility functions for the EVM rescue client."""

import json
from collections.abc import Mapping, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

from eth_abi import encode as abi_encode
from eth_typing import ChecksumAddress, HexStr
from hexbytes import HexBytes
from web3 import Web3

from .exceptions import ValidationError


def to_base_units(amount: str | Decimal | int | float, decimals: int = 18) -> int:
    """Convert a human-readable amount into integer base units."""
    if isinstance(amount, float | int):
        amount = str(amount)

    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Amount is not a valid number", field="amount", value=amount)

    if not value.is_finite():
        raise ValidationError("Amount is not a valid number", field="amount", value=amount)

    if value < 0:
        raise ValidationError("Amount cannot be negative", field="amount", value=amount)

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValidationError(
            f"Amount has more than {decimals} decimal places", field="amount", value=amount
        )
    return int(scaled)


def from_base_units(units: int, decimals: int = 18) -> Decimal:
    """Convert integer base units to Decimal."""
    return Decimal(int(units)).scaleb(-decimals)


def format_units(units: int, decimals: int = 18) -> str:
    """Render base units as a plain decimal string without trailing zeros."""
    value = from_base_units(units, decimals)
    if value == 0:
        return "0"
    return format(value.normalize(), "f")


def format_gwei(wei: int) -> str:
    return format_units(wei, 9)


def scale_int(value: int, multiplier: float | Decimal) -> int:
    """Multiply an integer wei amount, rounding down."""
    return int(Decimal(int(value)) * Decimal(str(multiplier)))


def is_valid_address(address: Any) -> bool:
    return isinstance(address, str) and Web3.is_address(address)


def to_checksum(address: str, field: str = "address") -> ChecksumAddress:
    """Return the checksum form of ``address`` or raise ValidationError."""
    if not is_valid_address(address):
        raise ValidationError(f"Invalid address: {address}", field=field, value=address)
    return Web3.to_checksum_address(address)


def same_address(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return left.lower() == right.lower()


def function_selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


def encode_call(signature: str, arg_types: Sequence[str] = (), args: Sequence[Any] = ()) -> HexStr:
    """Build calldata for ``signature`` with ABI-encoded arguments."""
    payload = function_selector(signature)
    if arg_types:
        payload += abi_encode(list(arg_types), list(args))
    return HexStr("0x" + payload.hex())


def cache_key(operation: str, params: Sequence[Any]) -> str:
    """Deterministic cache key: operation name plus serialized parameters."""
    return f"{operation}:{json.dumps(list(params), sort_keys=True, default=str)}"


def serialise_receipt(receipt: Any) -> Any:
    """Serialise web3 receipt objects into JSON-friendly structures."""
    if receipt is None:
        return None
    if isinstance(receipt, Mapping):
        return {key: serialise_receipt(value) for key, value in receipt.items()}
    if isinstance(receipt, Sequence) and not isinstance(
        receipt, str | bytes | bytearray | HexBytes
    ):
        return [serialise_receipt(item) for item in receipt]
    if isinstance(receipt, bytes | bytearray | HexBytes):
        return HexBytes(receipt).to_0x_hex()
    return receipt


def hex_hash(value: Any) -> HexStr:
    """Normalise a transaction hash returned by web3 to a 0x-prefixed string."""
    if isinstance(value, bytes | bytearray | HexBytes):
        return HexStr(HexBytes(value).to_0x_hex())
    text = str(value)
    return HexStr(text if text.startswith("0x") else f"0x{text}")
