from __future__ import annotations

import pytest

from .fakes import ETHER, SENDER, FakeChain, FakeClock, FakeSigner


@pytest.fixture()
def chain() -> FakeChain:
    fake = FakeChain()
    fake.fund(SENDER, 10 * ETHER)
    return fake


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def signer() -> FakeSigner:
    return FakeSigner()
