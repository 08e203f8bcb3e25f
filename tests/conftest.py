"""
conftest.py - Shared pytest fixtures for rankpool tests

Provides common fixtures used across unit, functional and conformance tests:
- A 42-asset feed set and flat-priced oracle
- Engine factory (verbose off, in-memory custody)
- Small-game parameters that reach wind-down and closure in a few periods

Constants and settlement helpers live in tests/helpers.py.
"""

import pytest
from datetime import datetime
from typing import Optional

from rankpool import (
    GameParameters,
    InMemoryCustody,
    SettlementEngine,
    StaticPriceOracle,
    LedgerAccountant,
    settlement_asset,
)

from tests.helpers import START, make_feeds, flat_oracle, new_engine


@pytest.fixture
def feeds():
    return make_feeds()


@pytest.fixture
def oracle():
    return flat_oracle(START)


@pytest.fixture
def custody():
    return InMemoryCustody()


@pytest.fixture
def accountant():
    """Standalone bucket accountant."""
    return LedgerAccountant(settlement_asset(), START, verbose=False)


@pytest.fixture
def small_params():
    """
    Four-period game: periods 1-3 accumulate, period 4 winds down.
    Founding status after two periods; batches of two.
    """
    return GameParameters(
        total_periods=4,
        winddown_periods=1,
        founding_tenure_periods=2,
        max_enroll_periods=4,
        match_batch_size=2,
        payout_batch_size=2,
    )


@pytest.fixture
def make_engine():
    """Factory for engines with verbose output off."""
    def factory(
        params: Optional[GameParameters] = None,
        custody: Optional[InMemoryCustody] = None,
        oracle: Optional[StaticPriceOracle] = None,
        start: datetime = START,
    ) -> SettlementEngine:
        return new_engine(params, custody, oracle, start)
    return factory


@pytest.fixture
def engine(make_engine):
    """Engine with default parameters."""
    return make_engine()
