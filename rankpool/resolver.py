"""
resolver.py - Outcome Resolver

Snapshots per-asset prices at period start, reads end prices at resolution,
scores each asset by relative performance and selects the top K.

Oracle trouble never fails a period: an asset whose read fails, is stale, or
is non-positive at either endpoint gets WORST_SCORE and cannot be selected
unless every asset is disqualified, in which case the lowest K indices win.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import Dict, List, Optional, Sequence, Tuple

from .oracle import PriceFeed, PriceOracle
from .params import (
    SELECTION_SIZE, PERFORMANCE_SCALE, WORST_SCORE,
    JACKPOT_TIER, LOWER_TIERS,
)
from .selection import mask_from_indices


# (participant_id, selection_index)
Winner = Tuple[str, int]


@dataclass(slots=True)
class PeriodOutcome:
    """
    Result of one period.

    ranking, mask and scores are fixed at resolution. winners is filled by the
    matching engine and consumed by distribution; afterwards the record is
    kept as history. voided marks a period abandoned by emergency unwind.
    """
    period: int
    resolved_at: datetime
    ranking: Tuple[int, ...]
    mask: int
    scores: Tuple[int, ...]
    start_prices: Tuple[Optional[Decimal], ...]
    end_prices: Tuple[Optional[Decimal], ...]
    voided: bool = False
    winners: Dict[int, List[Winner]] = field(
        default_factory=lambda: {tier: [] for tier in (JACKPOT_TIER,) + LOWER_TIERS}
    )

    @property
    def disqualified(self) -> Tuple[int, ...]:
        """Asset indices that received WORST_SCORE."""
        return tuple(i for i, score in enumerate(self.scores) if score == WORST_SCORE)

    def winner_count(self, tier: int) -> int:
        return len(self.winners.get(tier, ()))


def read_price(oracle: PriceOracle, feed: PriceFeed, now: datetime) -> Optional[Decimal]:
    """
    Read one asset price, returning None for any unusable answer.

    Unusable: failed read, update older than the feed's staleness bound,
    update time in the future, or a non-positive price.
    """
    result = oracle.latest_price(feed.endpoint, now)
    if not result.ok or result.price is None or result.updated_at is None:
        return None
    if result.updated_at > now or now - result.updated_at > feed.staleness:
        return None
    price = result.price if isinstance(result.price, Decimal) else Decimal(str(result.price))
    if not price.is_finite() or price <= 0:
        return None
    return price


def snapshot_prices(
    oracle: PriceOracle,
    feeds: Sequence[PriceFeed],
    now: datetime,
) -> Tuple[Optional[Decimal], ...]:
    """Read every tracked asset; unusable reads become None."""
    return tuple(read_price(oracle, feed, now) for feed in feeds)


def compute_performance(start: Optional[Decimal], end: Optional[Decimal]) -> int:
    """
    Relative performance as a scaled integer.

    (end - start) * PERFORMANCE_SCALE // start, or WORST_SCORE if either
    price is missing. The integer is floored toward negative infinity.
    """
    if start is None or end is None or start <= 0 or end <= 0:
        return WORST_SCORE
    scaled = (end - start) * PERFORMANCE_SCALE / start
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def rank_assets(scores: Sequence[int], k: int = SELECTION_SIZE) -> Tuple[int, ...]:
    """
    Top-k asset indices by score, best first.

    A full sort on (-score, index): ties go to the lower index and the result
    does not depend on iteration order. With every asset disqualified this
    yields indices 0..k-1.
    """
    if k > len(scores):
        raise ValueError(f"cannot select {k} assets from {len(scores)}")
    order = sorted(range(len(scores)), key=lambda i: (-scores[i], i))
    return tuple(order[:k])


def resolve_outcome(
    period: int,
    start_prices: Sequence[Optional[Decimal]],
    oracle: PriceOracle,
    feeds: Sequence[PriceFeed],
    now: datetime,
    k: int = SELECTION_SIZE,
) -> PeriodOutcome:
    """
    Read end prices and build the period outcome.

    Never raises for oracle trouble; see module docstring.
    """
    if len(start_prices) != len(feeds):
        raise ValueError(
            f"start snapshot has {len(start_prices)} prices for {len(feeds)} feeds"
        )
    end_prices = snapshot_prices(oracle, feeds, now)
    scores = tuple(
        compute_performance(start, end) for start, end in zip(start_prices, end_prices)
    )
    ranking = rank_assets(scores, k)
    return PeriodOutcome(
        period=period,
        resolved_at=now,
        ranking=ranking,
        mask=mask_from_indices(ranking),
        scores=scores,
        start_prices=tuple(start_prices),
        end_prices=end_prices,
    )
