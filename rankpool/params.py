"""
params.py - Game rules and tunable parameters

Fixed rules of the game are module constants. Everything an operator chooses
at deployment lives in GameParameters, an immutable term sheet passed to the
engine at construction and never changed afterward.

Split arithmetic is expressed in basis points (BPS, 1/10000).
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Dict


# ============================================================================
# FIXED RULES
# ============================================================================

UNIVERSE_SIZE = 42
SELECTION_SIZE = 6
MAX_SELECTIONS = 2

BPS = 10_000

# Tiers keyed by match count. The six-match tier is paid from the jackpot reserve.
JACKPOT_TIER = 6
LOWER_TIERS = (5, 4, 3)
MIN_WINNING_MATCHES = 3

# Period pool split. Whatever the pool does not allocate stays in pot as carry.
TIER_BPS: Dict[int, int] = {
    5: 3500,
    4: 2500,
    3: 2000,
}
JACKPOT_CONTRIBUTION_BPS = 2000

# Jackpot hit: winners share 90% of the reserve, 10% returns to pot as reseed,
# and 2% of the period pool is carved from pot into the lower tiers.
JACKPOT_PAYOUT_BPS = 9000
JACKPOT_BONUS_BPS = 200

# Jackpot miss: half of this period's contribution flows back to pot.
JACKPOT_MISS_RECYCLE_BPS = 5000

# Relative performance is (end - start) * PERFORMANCE_SCALE // start.
PERFORMANCE_SCALE = 10 ** 18

# Disqualified assets rank below every real score (a real score is > -SCALE).
WORST_SCORE = -(2 ** 255)

assert sum(TIER_BPS.values()) + JACKPOT_CONTRIBUTION_BPS == BPS


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass(frozen=True, slots=True)
class GameParameters:
    """
    Immutable deployment parameters.

    Periods:
        total_periods: Periods before the game closes
        winddown_periods: Final periods restricted to founding members
        period_duration: Minimum time between period start and resolution
        pick_lock: Window before the earliest resolution in which selections
            are frozen and new enrollments start next period
        founding_tenure_periods: Continuous tenure that earns founding status
        max_enroll_periods: Longest subscription bought in one payment

    Economics:
        entry_price: Price of one selection for one period
        treasury_bps: Treasury share of intake during accumulation
        base_payout_rate_bps: Share of pot allocated per period (accumulation)
        max_payout_rate_bps: Payout rate reached at the end of wind-down
        founder_closure_bps: Share of the remaining pot founders split at closure

    Batching and liveness:
        match_batch_size, payout_batch_size: Items per batch call
        stuck_timeout: Time without a batch call before emergency unwind
        dormancy_threshold: Time without settlement before dormancy drain
        abandonment_threshold: Idle time before abandoned funds can be rescued
        game_duration: Wall-clock deadline after start for closure

    Operator:
        treasury_window, treasury_window_cap_bps: Wind-down withdrawal cap
        feed_change_delay: Timelock on oracle feed changes

    Accounting:
        solvency_tolerance: Relative tolerance for custody vs. ledger checks
    """
    entry_price: Decimal = Decimal("10")
    total_periods: int = 520
    winddown_periods: int = 52
    period_duration: timedelta = timedelta(days=7)
    pick_lock: timedelta = timedelta(hours=1)
    founding_tenure_periods: int = 52
    max_enroll_periods: int = 52

    treasury_bps: int = 2000
    base_payout_rate_bps: int = 1000
    max_payout_rate_bps: int = 5000
    founder_closure_bps: int = 9000

    match_batch_size: int = 200
    payout_batch_size: int = 200
    stuck_timeout: timedelta = timedelta(days=2)
    dormancy_threshold: timedelta = timedelta(days=60)
    abandonment_threshold: timedelta = timedelta(days=180)
    game_duration: timedelta = timedelta(weeks=530)

    treasury_window: timedelta = timedelta(days=30)
    treasury_window_cap_bps: int = 1000
    feed_change_delay: timedelta = timedelta(days=2)

    solvency_tolerance: Decimal = Decimal("1e-9")

    def __post_init__(self):
        object.__setattr__(self, 'entry_price', _as_decimal(self.entry_price))
        object.__setattr__(self, 'solvency_tolerance', _as_decimal(self.solvency_tolerance))

        if self.entry_price <= 0:
            raise ValueError(f"entry_price must be positive, got {self.entry_price}")
        if self.total_periods < 1:
            raise ValueError("total_periods must be at least 1")
        if not 0 <= self.winddown_periods < self.total_periods:
            raise ValueError("winddown_periods must be in [0, total_periods)")
        if self.founding_tenure_periods < 1:
            raise ValueError("founding_tenure_periods must be at least 1")
        if self.max_enroll_periods < 1:
            raise ValueError("max_enroll_periods must be at least 1")
        if self.match_batch_size < 1 or self.payout_batch_size < 1:
            raise ValueError("batch sizes must be at least 1")
        if self.pick_lock >= self.period_duration:
            raise ValueError("pick_lock must be shorter than period_duration")
        for name in ('treasury_bps', 'base_payout_rate_bps', 'max_payout_rate_bps',
                     'founder_closure_bps', 'treasury_window_cap_bps'):
            value = getattr(self, name)
            if not 0 <= value <= BPS:
                raise ValueError(f"{name} must be within [0, {BPS}], got {value}")
        if self.max_payout_rate_bps < self.base_payout_rate_bps:
            raise ValueError("max_payout_rate_bps must be >= base_payout_rate_bps")
        if self.solvency_tolerance < 0:
            raise ValueError("solvency_tolerance cannot be negative")

    @property
    def accumulation_periods(self) -> int:
        """Number of periods before wind-down begins."""
        return self.total_periods - self.winddown_periods
