"""
distribution.py - Settlement / Distribution Engine

Pays the matched tiers of the period in flight, then finalises the period.

First call:
    jackpot hit  -> JACKPOT_PAYOUT_BPS of the reserve split among the six-match
                    winners (remainder to pot), the rest back to pot as reseed,
                    then a bonus of JACKPOT_BONUS_BPS of the period pool carved
                    from pot into the lower tiers by their TIER_BPS weights
    jackpot miss -> JACKPOT_MISS_RECYCLE_BPS of this period's contribution
                    back to pot
Then tiers 5, 4, 3 in order, payout_batch_size credits per call:
    no winners   -> the tier pool returns to pot
    winners      -> pool split evenly, remainder to pot, credits paid in batches

Credits land in the winners' unclaimed wallets; withdrawal is a separate
claim against custody.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from .core import (
    OriginType, POT_WALLET, JACKPOT_WALLET, TIER_WALLETS, unclaimed_wallet,
)
from .params import (
    JACKPOT_TIER, LOWER_TIERS, TIER_BPS,
    JACKPOT_PAYOUT_BPS, JACKPOT_BONUS_BPS, JACKPOT_MISS_RECYCLE_BPS,
)
from .phases import SettlementPhase
from .resolver import snapshot_prices

if TYPE_CHECKING:
    from .engine import SettlementEngine


@dataclass(frozen=True, slots=True)
class DistributionBatchResult:
    credits: int
    done: bool


def settle_jackpot(engine: 'SettlementEngine') -> None:
    """Jackpot hit or miss handling. Runs once per period."""
    progress = engine.progress
    if progress.jackpot_settled:
        return
    accountant = engine.accountant
    period = progress.period
    winners = progress.outcome.winners[JACKPOT_TIER]

    if winners:
        reserve = accountant.jackpot
        payout = accountant.bps_of(reserve, JACKPOT_PAYOUT_BPS)
        share, remainder = accountant.split_evenly(payout, len(winners))
        reseed = reserve - payout
        transfers = [
            (share, JACKPOT_WALLET, unclaimed_wallet(participant_id))
            for participant_id, _ in winners
        ]
        transfers.append((remainder + reseed, JACKPOT_WALLET, POT_WALLET))
        accountant.transfer(transfers, OriginType.SETTLEMENT, "distribution", "JACKPOT_HIT", period)

        bonus = min(
            accountant.bps_of(progress.allocation.period_pool, JACKPOT_BONUS_BPS),
            accountant.pot,
        )
        weight_total = sum(TIER_BPS[tier] for tier in LOWER_TIERS)
        accountant.transfer(
            [(accountant.asset.floor(bonus * TIER_BPS[tier] / weight_total), POT_WALLET, TIER_WALLETS[tier])
             for tier in LOWER_TIERS],
            OriginType.SETTLEMENT, "distribution", "JACKPOT_BONUS", period,
        )
        if engine.verbose:
            print(f"[period {period}] jackpot hit: {len(winners)} winners, {share} each, reseed {reseed}")
    else:
        recycle = min(
            accountant.bps_of(progress.allocation.jackpot_contribution, JACKPOT_MISS_RECYCLE_BPS),
            accountant.jackpot,
        )
        accountant.transfer([(recycle, JACKPOT_WALLET, POT_WALLET)],
                            OriginType.SETTLEMENT, "distribution", "JACKPOT_RECYCLE", period)

    progress.jackpot_settled = True


def process_distribution_batch(
    engine: 'SettlementEngine',
    now: datetime,
    limit: Optional[int] = None,
) -> DistributionBatchResult:
    """
    Pay up to `limit` (default payout_batch_size) tier credits.

    Finalises the period once every tier is exhausted.
    """
    progress = engine.progress
    accountant = engine.accountant
    period = progress.period
    budget = engine.params.payout_batch_size if limit is None else limit

    settle_jackpot(engine)

    credits = 0
    while progress.tier_index < len(LOWER_TIERS):
        tier = LOWER_TIERS[progress.tier_index]
        tier_wallet = TIER_WALLETS[tier]
        winners = progress.outcome.winners[tier]

        if progress.tier_share is None:
            pending = accountant.tier_pending(tier)
            share, remainder = accountant.split_evenly(pending, len(winners))
            if not winners or share == 0:
                accountant.transfer([(pending, tier_wallet, POT_WALLET)],
                                    OriginType.SETTLEMENT, "distribution", "TIER_ROLLOVER", period)
                _next_tier(progress)
                continue
            accountant.transfer([(remainder, tier_wallet, POT_WALLET)],
                                OriginType.SETTLEMENT, "distribution", "TIER_REMAINDER", period)
            progress.tier_share = share

        if credits >= budget:
            break

        batch = winners[progress.tier_cursor:progress.tier_cursor + (budget - credits)]
        accountant.transfer(
            [(progress.tier_share, tier_wallet, unclaimed_wallet(participant_id))
             for participant_id, _ in batch],
            OriginType.SETTLEMENT, "distribution", f"TIER_{tier}_PAYOUT", period,
        )
        credits += len(batch)
        progress.tier_cursor += len(batch)

        if progress.tier_cursor >= len(winners):
            _next_tier(progress)

    progress.last_batch_at = now
    done = progress.tier_index >= len(LOWER_TIERS)
    if done:
        finalize_period(engine, now)
    return DistributionBatchResult(credits=credits, done=done)


def _next_tier(progress) -> None:
    progress.tier_index += 1
    progress.tier_cursor = 0
    progress.tier_share = None


def finalize_period(engine: 'SettlementEngine', now: datetime) -> None:
    """Archive the outcome, advance the period and snapshot new start prices."""
    progress = engine.progress
    engine.history[progress.period] = progress.outcome
    engine.state.period += 1
    engine.progress = None
    engine.settlement = SettlementPhase.IDLE
    engine.period_started_at = now
    engine.last_settlement_at = now
    engine.last_activity_at = now
    engine.start_prices = snapshot_prices(engine.oracle, engine.feeds, now)
    if engine.verbose:
        print(f"[period {progress.period}] finalised; period {engine.state.period} opens at {now}")


def void_period(engine: 'SettlementEngine', now: datetime) -> Decimal:
    """
    Abandon the period in flight.

    Unpaid tier allocations return to pot; credits already paid stay with
    their winners. The outcome is archived as voided and the period advances.

    Returns:
        Amount returned to pot
    """
    progress = engine.progress
    accountant = engine.accountant
    returned = [(accountant.tier_pending(tier), TIER_WALLETS[tier], POT_WALLET) for tier in LOWER_TIERS]
    accountant.transfer(returned, OriginType.RECOVERY, "unwind", "UNWIND", progress.period)
    progress.outcome.voided = True
    if engine.verbose:
        print(f"[period {progress.period}] emergency unwind in {engine.settlement.value}")
    finalize_period(engine, now)
    return sum((amount for amount, _, _ in returned), Decimal("0"))
