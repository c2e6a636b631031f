"""Gas pricing and limit planning per aggressiveness strategy."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from ..constants import (
    AGGRESSIVE_MULTIPLIER_FLOOR,
    CONTRACT_GAS_HEADROOM,
    ERC20_TRANSFER_SIGNATURE,
    FALLBACK_NATIVE_GAS_LIMIT,
    FALLBACK_TOKEN_GAS_LIMIT,
    GAS_STRATEGY_MULTIPLIERS,
    MAX_CUSTOM_MULTIPLIER,
    MIN_CUSTOM_MULTIPLIER,
    NATIVE_TRANSFER_GAS_LIMIT,
    Operation,
)
from ..exceptions import ValidationError
from ..rpc.config import CacheTTLConfig
from ..rpc.pool import EndpointPool
from ..types import (
    CustomGasConfig,
    FeeData,
    GasEstimate,
    GasStrategy,
    GasStrategyRecommendation,
)
from ..utils import encode_call, scale_int, to_checksum

logger = logging.getLogger(__name__)

DEFAULT_CONGESTION = 0.5
CONGESTION_GWEI_REFERENCE = 50
HIGH_CONGESTION = 0.8
LOW_CONGESTION = 0.3


def resolve_multiplier(
    strategy: GasStrategy | str, custom: CustomGasConfig | None = None
) -> float:
    """Effective price multiplier for ``strategy``.

    ``custom`` strategy takes the caller multiplier, bounded to 1-10. The
    aggressive flag lifts any strategy to at least the rescue floor.
    """

    strategy = GasStrategy(strategy)
    multiplier = GAS_STRATEGY_MULTIPLIERS[strategy]
    if custom is None:
        return multiplier

    if strategy is GasStrategy.CUSTOM:
        requested = float(custom.gas_multiplier)
        if not MIN_CUSTOM_MULTIPLIER <= requested <= MAX_CUSTOM_MULTIPLIER:
            raise ValidationError(
                f"Gas multiplier must be between {MIN_CUSTOM_MULTIPLIER:g} "
                f"and {MAX_CUSTOM_MULTIPLIER:g}",
                field="gas_multiplier",
                value=requested,
            )
        multiplier = requested

    if custom.aggressive:
        multiplier = max(multiplier, AGGRESSIVE_MULTIPLIER_FLOOR)
    return multiplier


def price_plan(
    gas_limit: int,
    fee: FeeData,
    multiplier: float,
    *,
    used_fallback_limit: bool = False,
) -> GasEstimate:
    """Apply ``multiplier`` to the fee fields and price ``gas_limit``."""

    if fee.supports_fee_market:
        max_fee = scale_int(fee.max_fee_per_gas or 0, multiplier)
        priority_fee = scale_int(fee.max_priority_fee_per_gas or 0, multiplier)
        return GasEstimate(
            gas_limit=gas_limit,
            gas_price=max_fee,
            total_cost=gas_limit * max_fee,
            max_fee_per_gas=max_fee,
            max_priority_fee_per_gas=priority_fee,
            multiplier=multiplier,
            used_fallback_limit=used_fallback_limit,
        )

    gas_price = scale_int(fee.gas_price or 0, multiplier)
    return GasEstimate(
        gas_limit=gas_limit,
        gas_price=gas_price,
        total_cost=gas_limit * gas_price,
        multiplier=multiplier,
        used_fallback_limit=used_fallback_limit,
    )


def recommend(congestion: float) -> GasStrategy:
    if congestion > HIGH_CONGESTION:
        return GasStrategy.FAST
    if congestion < LOW_CONGESTION:
        return GasStrategy.SAFE
    return GasStrategy.STANDARD


class GasEstimator:
    """Compute a pricing and limit plan for native and token transfers."""

    def __init__(self, pool: EndpointPool, ttl: CacheTTLConfig) -> None:
        self._pool = pool
        self._ttl = ttl

    async def fee_data(self) -> FeeData:
        return await self._pool.execute(Operation.GET_FEE_DATA, ttl=self._ttl.fee_data)

    async def estimate_native(
        self,
        sender: str,
        to: str,
        value: int,
        *,
        strategy: GasStrategy | str = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
        is_contract: bool | None = None,
    ) -> GasEstimate:
        destination = to_checksum(to, field="to")
        if is_contract is None:
            code = await self._pool.execute(Operation.GET_CODE, (destination,))
            is_contract = code not in ("0x", "")

        tx = {"from": to_checksum(sender, field="from"), "to": destination, "value": value}
        return await self._estimate(
            tx,
            strategy=strategy,
            custom=custom,
            fallback_limit=FALLBACK_NATIVE_GAS_LIMIT,
            headroom=is_contract,
        )

    async def estimate_token(
        self,
        sender: str,
        token: str,
        to: str,
        value: int,
        *,
        strategy: GasStrategy | str = GasStrategy.FAST,
        custom: CustomGasConfig | None = None,
    ) -> GasEstimate:
        tx = {
            "from": to_checksum(sender, field="from"),
            "to": to_checksum(token, field="token"),
            "data": encode_call(
                ERC20_TRANSFER_SIGNATURE,
                ("address", "uint256"),
                (to_checksum(to, field="to"), value),
            ),
        }
        return await self._estimate(
            tx,
            strategy=strategy,
            custom=custom,
            fallback_limit=FALLBACK_TOKEN_GAS_LIMIT,
            headroom=False,
        )

    async def _estimate(
        self,
        tx: Mapping[str, Any],
        *,
        strategy: GasStrategy | str,
        custom: CustomGasConfig | None,
        fallback_limit: int,
        headroom: bool,
    ) -> GasEstimate:
        multiplier = resolve_multiplier(strategy, custom)

        if custom is not None and custom.gas_limit:
            fee = await self.fee_data()
            return price_plan(int(custom.gas_limit), fee, multiplier)

        fee, (gas_limit, used_fallback) = await asyncio.gather(
            self.fee_data(), self._estimate_limit(tx, fallback_limit)
        )
        if headroom:
            gas_limit = scale_int(gas_limit, CONTRACT_GAS_HEADROOM)
        return price_plan(gas_limit, fee, multiplier, used_fallback_limit=used_fallback)

    async def _estimate_limit(self, tx: Mapping[str, Any], fallback_limit: int) -> tuple[int, bool]:
        try:
            return int(await self._pool.execute(Operation.ESTIMATE_GAS, (dict(tx),))), False
        except ValidationError:
            raise
        except Exception as exc:
            logger.warning(
                "Gas limit estimation failed, using fallback limit %s: %s", fallback_limit, exc
            )
            return fallback_limit, True

    # ------------------------------------------------------------------
    # Strategy recommendation
    # ------------------------------------------------------------------
    async def congestion(self) -> float:
        """Congestion score in [0, 1] from block fullness and gas price."""

        try:
            block, fee = await asyncio.gather(
                self._pool.execute(Operation.GET_LATEST_BLOCK), self.fee_data()
            )
        except Exception as exc:
            logger.warning("Unable to compute network congestion: %s", exc)
            return DEFAULT_CONGESTION

        gas_limit = block.get("gasLimit") or 0
        if not gas_limit or not fee.gas_price:
            return DEFAULT_CONGESTION

        used_ratio = (block.get("gasUsed") or 0) / gas_limit
        gas_price_gwei = fee.gas_price / 10**9
        return min(used_ratio * (gas_price_gwei / CONGESTION_GWEI_REFERENCE), 1.0)

    async def recommend_strategy(self) -> GasStrategyRecommendation:
        fee = await self.fee_data()
        legacy = FeeData(gas_price=fee.gas_price or 0)
        estimates = {
            strategy: price_plan(
                NATIVE_TRANSFER_GAS_LIMIT, legacy, GAS_STRATEGY_MULTIPLIERS[strategy]
            )
            for strategy in (GasStrategy.SAFE, GasStrategy.STANDARD, GasStrategy.FAST)
        }
        congestion = await self.congestion()
        return GasStrategyRecommendation(
            recommended=recommend(congestion),
            estimates=estimates,
            congestion=congestion,
        )
