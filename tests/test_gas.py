"""Tests for gas strategy resolution and planning."""

import pytest

from evm_rescue.constants import FALLBACK_NATIVE_GAS_LIMIT, FALLBACK_TOKEN_GAS_LIMIT
from evm_rescue.evm.gas import GasEstimator, price_plan, recommend, resolve_multiplier
from evm_rescue.exceptions import ValidationError
from evm_rescue.rpc.config import CacheTTLConfig
from evm_rescue.rpc.pool import EndpointPool
from evm_rescue.types import CustomGasConfig, FeeData, GasStrategy

from .fakes import CONTRACT, GWEI, RECIPIENT, SENDER, TOKEN, FakeChain, endpoint_configs


def make_estimator(chain: FakeChain) -> GasEstimator:
    pool = EndpointPool(endpoint_configs("https://rpc.test"), web3_factory=chain.factory)
    return GasEstimator(pool, CacheTTLConfig())


class TestResolveMultiplier:
    def test_presets(self) -> None:
        assert resolve_multiplier(GasStrategy.SAFE) == 1.0
        assert resolve_multiplier("standard") == 1.2
        assert resolve_multiplier(GasStrategy.FAST) == 1.5

    def test_custom_multiplier_bounds(self) -> None:
        assert resolve_multiplier(GasStrategy.CUSTOM, CustomGasConfig(gas_multiplier=3)) == 3
        with pytest.raises(ValidationError):
            resolve_multiplier(GasStrategy.CUSTOM, CustomGasConfig(gas_multiplier=0.5))
        with pytest.raises(ValidationError):
            resolve_multiplier(GasStrategy.CUSTOM, CustomGasConfig(gas_multiplier=11))

    def test_aggressive_floor_applies_to_any_strategy(self) -> None:
        aggressive = CustomGasConfig(aggressive=True)
        assert resolve_multiplier(GasStrategy.SAFE, aggressive) == 5
        assert resolve_multiplier(GasStrategy.FAST, aggressive) == 5
        assert (
            resolve_multiplier(GasStrategy.CUSTOM, CustomGasConfig(gas_multiplier=8, aggressive=True))
            == 8
        )

    def test_non_custom_strategy_ignores_multiplier(self) -> None:
        assert resolve_multiplier(GasStrategy.SAFE, CustomGasConfig(gas_multiplier=9)) == 1.0


def test_price_plan_fee_market() -> None:
    fee = FeeData(gas_price=30 * GWEI, max_fee_per_gas=22 * GWEI, max_priority_fee_per_gas=2 * GWEI)
    plan = price_plan(21_000, fee, 1.5)
    assert plan.is_fee_market
    assert plan.max_fee_per_gas == 33 * GWEI
    assert plan.max_priority_fee_per_gas == 3 * GWEI
    assert plan.total_cost == 21_000 * 33 * GWEI


def test_price_plan_legacy() -> None:
    plan = price_plan(21_000, FeeData(gas_price=30 * GWEI), 1.2)
    assert not plan.is_fee_market
    assert plan.gas_price == 36 * GWEI
    assert plan.total_cost == 21_000 * 36 * GWEI


@pytest.mark.parametrize(
    ("congestion", "strategy"),
    [(0.9, GasStrategy.FAST), (0.1, GasStrategy.SAFE), (0.5, GasStrategy.STANDARD)],
)
def test_recommend_by_congestion(congestion: float, strategy: GasStrategy) -> None:
    assert recommend(congestion) is strategy


@pytest.mark.asyncio
async def test_strategy_costs_are_ordered(chain: FakeChain) -> None:
    estimator = make_estimator(chain)
    costs = [
        (await estimator.estimate_native(SENDER, RECIPIENT, 1, strategy=strategy)).total_cost
        for strategy in (GasStrategy.SAFE, GasStrategy.STANDARD, GasStrategy.FAST)
    ]
    assert costs[0] <= costs[1] <= costs[2]
    assert costs[0] < costs[2]


@pytest.mark.asyncio
async def test_contract_destination_gets_headroom(chain: FakeChain) -> None:
    chain.deploy(CONTRACT)
    estimator = make_estimator(chain)

    plan = await estimator.estimate_native(SENDER, CONTRACT, 1, strategy=GasStrategy.SAFE)
    assert plan.gas_limit == 25_200


@pytest.mark.asyncio
async def test_gas_limit_override_skips_estimation(chain: FakeChain) -> None:
    chain.deploy(CONTRACT)
    estimator = make_estimator(chain)

    plan = await estimator.estimate_native(
        SENDER, CONTRACT, 1, strategy=GasStrategy.SAFE, custom=CustomGasConfig(gas_limit=50_000)
    )
    assert plan.gas_limit == 50_000
    assert chain.count("estimate_gas") == 0


@pytest.mark.asyncio
async def test_failed_estimation_uses_fallback_limits(chain: FakeChain) -> None:
    chain.fail_next("estimate_gas", RuntimeError("node hiccup"), RuntimeError("node hiccup"))
    estimator = make_estimator(chain)

    native = await estimator.estimate_native(SENDER, RECIPIENT, 1, is_contract=False)
    assert native.gas_limit == FALLBACK_NATIVE_GAS_LIMIT
    assert native.used_fallback_limit

    token = await estimator.estimate_token(SENDER, TOKEN, RECIPIENT, 1)
    assert token.gas_limit == FALLBACK_TOKEN_GAS_LIMIT
    assert token.used_fallback_limit


@pytest.mark.asyncio
async def test_aggressive_rescue_plan_is_five_times_network_price(chain: FakeChain) -> None:
    chain.base_fee = None
    estimator = make_estimator(chain)

    plan = await estimator.estimate_native(
        SENDER, RECIPIENT, 1, strategy=GasStrategy.FAST, custom=CustomGasConfig(aggressive=True)
    )
    assert plan.multiplier == 5
    assert plan.gas_price == 150 * GWEI


@pytest.mark.asyncio
async def test_recommend_strategy_reports_all_presets(chain: FakeChain) -> None:
    chain.gas_price = 200 * GWEI
    chain.block_gas_used = chain.block_gas_limit
    estimator = make_estimator(chain)

    recommendation = await estimator.recommend_strategy()
    assert recommendation.recommended is GasStrategy.FAST
    assert recommendation.congestion == 1.0
    assert set(recommendation.estimates) == {GasStrategy.SAFE, GasStrategy.STANDARD, GasStrategy.FAST}
    assert recommendation.estimates[GasStrategy.SAFE].gas_limit == 21_000


@pytest.mark.asyncio
async def test_congestion_defaults_when_block_unavailable(chain: FakeChain) -> None:
    chain.fail_next("get_block", ConnectionError("down"))
    estimator = make_estimator(chain)
    assert await estimator.congestion() == 0.5
