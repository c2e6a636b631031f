"""Token metadata resolution for the rescue client."""

from __future__ import annotations

import logging

from ..constants import KNOWN_TOKENS, SYMBOL_TO_TOKEN, Operation
from ..exceptions import ValidationError
from ..rpc.config import CacheTTLConfig
from ..rpc.pool import EndpointPool
from ..types import TokenBalance, TokenInfo
from ..utils import format_units, is_valid_address, to_checksum

logger = logging.getLogger(__name__)


class TokenMetadataCache:
    """Resolve ERC-20 metadata from the static registry or on-chain.

    On-chain lookups are memoised through the pool's result cache under the
    ``token_info`` TTL.
    """

    def __init__(self, pool: EndpointPool, ttl: CacheTTLConfig) -> None:
        self._pool = pool
        self._ttl = ttl

    def resolve_address(self, token: str) -> str:
        """Accept a token address or a registry symbol such as ``USDC``."""

        if is_valid_address(token):
            return to_checksum(token, field="token")
        address = SYMBOL_TO_TOKEN.get(token.upper())
        if address is None:
            raise ValidationError("Invalid token contract address", field="token", value=token)
        return to_checksum(address, field="token")

    @staticmethod
    def known(token: str) -> TokenInfo | None:
        entry = KNOWN_TOKENS.get(token.lower())
        if entry is None:
            return None
        name, symbol, decimals = entry
        return TokenInfo(address=to_checksum(token), name=name, symbol=symbol, decimals=decimals)

    async def get_token_info(self, token: str) -> TokenInfo:
        address = self.resolve_address(token)
        known = self.known(address)
        if known is not None:
            return known

        payload = await self._pool.execute(
            Operation.GET_TOKEN_INFO, (address,), ttl=self._ttl.token_info
        )
        logger.debug("Resolved token metadata for %s: %s", address, payload.get("symbol"))
        return TokenInfo(
            address=address,
            name=str(payload["name"]),
            symbol=str(payload["symbol"]),
            decimals=int(payload["decimals"]),
        )

    async def get_token_balance(self, token: str, owner: str) -> TokenBalance:
        info = await self.get_token_info(token)
        owner_address = to_checksum(owner, field="address")
        raw = await self._pool.execute(
            Operation.GET_TOKEN_BALANCE,
            (info.address, owner_address),
            ttl=self._ttl.token_balance,
        )
        return TokenBalance(
            address=owner_address,
            balance=str(int(raw)),
            formatted_balance=format_units(int(raw), info.decimals),
            token_info=info,
        )
