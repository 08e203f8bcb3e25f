"""
helpers.py - Shared constants and helpers for rankpool tests
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Sequence

from rankpool import (
    GameParameters,
    InMemoryCustody,
    PriceFeed,
    SettlementEngine,
    SettlementKeeper,
    StaticPriceOracle,
    UNIVERSE_SIZE,
)


START = datetime(2025, 1, 6)
WEEK = timedelta(days=7)
OPERATOR = "operator"
ENDPOINTS = tuple(f"A{i:02d}/USD" for i in range(UNIVERSE_SIZE))
BASE_PRICE = Decimal("100")


def make_feeds(staleness: timedelta = timedelta(hours=1)):
    """One feed per tracked asset."""
    return [PriceFeed(endpoint, staleness) for endpoint in ENDPOINTS]


def flat_oracle(at: datetime, price: Decimal = BASE_PRICE) -> StaticPriceOracle:
    """Oracle quoting every asset at the same price, updated at `at`."""
    oracle = StaticPriceOracle()
    oracle.update_prices({endpoint: price for endpoint in ENDPOINTS}, at)
    return oracle


def new_engine(
    params: Optional[GameParameters] = None,
    custody: Optional[InMemoryCustody] = None,
    oracle: Optional[StaticPriceOracle] = None,
    start: datetime = START,
) -> SettlementEngine:
    """Engine with verbose output off and a flat oracle by default."""
    return SettlementEngine(
        make_feeds(),
        oracle or flat_oracle(start),
        custody or InMemoryCustody(),
        OPERATOR,
        start,
        params=params,
        verbose=False,
    )


def publish_outcome(engine: SettlementEngine, winners: Sequence[int], now: datetime) -> None:
    """
    Publish end prices so that `winners` are the top assets, best first.

    Winners gain len(winners)..1 percent over their start price; every other
    asset is flat.
    """
    winners = list(winners)
    for index, feed in enumerate(engine.feeds):
        start = engine.start_prices[index] or BASE_PRICE
        bump = Decimal(len(winners) - winners.index(index)) / 100 if index in winners else Decimal("0")
        engine.oracle.update_price(feed.endpoint, start * (1 + bump), now)


def settle(engine: SettlementEngine, winners: Sequence[int], now: datetime):
    """Publish an outcome and run the period to completion. Returns the outcome."""
    period = engine.period
    publish_outcome(engine, winners, now)
    SettlementKeeper(engine).step(now)
    return engine.outcome(period)


def bucket_sum(engine: SettlementEngine) -> Decimal:
    b = engine.bucket_balances()
    return b['pot'] + b['treasury'] + b['jackpot'] + b['unclaimed'] + b['tier_pending'] + b['withdrawn']


def assert_conserved(engine: SettlementEngine) -> None:
    result = engine.verify_conservation()
    assert result['valid'], result
