"""
matching.py - Matching Engine

Batched scoring of the participant registry against a resolved outcome.

The first call for a period checks solvency, captures custody yield, and moves
the period allocation out of the pot (jackpot contribution and tier pools;
whatever is not allocated stays in pot as carry). Later calls walk the
registry from a persisted cursor, at most match_batch_size records per call:

    expired                -> swap-and-pop removal, cursor stays put
    starts after period    -> skipped (deferred-start join)
    tenure reached         -> founding status granted
    wind-down, not founder -> skipped
    otherwise              -> each selection scored; every selection with
                              at least MIN_WINNING_MATCHES is appended to the
                              tier list for its match count

Two selections of one participant are independent: both may win.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, TYPE_CHECKING

from .core import OriginType, POT_WALLET, JACKPOT_WALLET, TIER_WALLETS
from .params import (
    JACKPOT_CONTRIBUTION_BPS, TIER_BPS, LOWER_TIERS, MIN_WINNING_MATCHES,
)
from .phases import (
    Phase, SettlementPhase, current_phase, payout_rate_bps,
    qualifies_as_founder, grant_founder,
)
from .resolver import PeriodOutcome
from .selection import match_count

if TYPE_CHECKING:
    from .accountant import LedgerAccountant
    from .engine import SettlementEngine


@dataclass(frozen=True, slots=True)
class PeriodAllocation:
    """How the period pool was carved out of the pot."""
    period: int
    pot_before: Decimal
    payout_rate_bps: int
    period_pool: Decimal
    jackpot_contribution: Decimal
    tier_pools: Dict[int, Decimal]

    @property
    def carry(self) -> Decimal:
        """Pot left after allocation."""
        return self.pot_before - self.jackpot_contribution - sum(self.tier_pools.values(), Decimal("0"))


@dataclass(slots=True)
class SettlementProgress:
    """
    Persisted cursor state of the period in flight.

    Every batch call resumes from these fields, so re-invoking after an
    interruption continues exactly where the last call stopped.
    """
    period: int
    phase: Phase
    outcome: PeriodOutcome
    allocation: PeriodAllocation
    last_batch_at: datetime
    match_cursor: int = 0
    scored: int = 0
    deferred: int = 0
    skipped: int = 0
    removed: List[str] = field(default_factory=list)
    promoted: List[str] = field(default_factory=list)
    jackpot_settled: bool = False
    tier_index: int = 0
    tier_cursor: int = 0
    tier_share: Optional[Decimal] = None


@dataclass(frozen=True, slots=True)
class MatchingBatchResult:
    processed: int
    removed: int
    done: bool


def compute_allocation(
    accountant: 'LedgerAccountant',
    period: int,
    rate_bps: int,
) -> PeriodAllocation:
    """Split this period's pool from the current pot. Pure read."""
    pot = accountant.pot
    pool = accountant.bps_of(pot, rate_bps)
    return PeriodAllocation(
        period=period,
        pot_before=pot,
        payout_rate_bps=rate_bps,
        period_pool=pool,
        jackpot_contribution=accountant.bps_of(pool, JACKPOT_CONTRIBUTION_BPS),
        tier_pools={tier: accountant.bps_of(pool, TIER_BPS[tier]) for tier in LOWER_TIERS},
    )


def begin_matching(engine: 'SettlementEngine', now: datetime) -> SettlementProgress:
    """
    Open the period: solvency check, yield capture, allocation.

    Raises:
        SolvencyViolation: Before any mutation, if custody cannot cover the buckets
    """
    accountant = engine.accountant
    outcome = engine.pending_outcome
    period = engine.state.period

    custody_value = engine.custody.current_value()
    accountant.require_solvency(custody_value)
    accountant.advance_time(now)
    accountant.capture_yield(custody_value)

    allocation = compute_allocation(accountant, period, payout_rate_bps(engine.state, engine.params))
    transfers = [(allocation.jackpot_contribution, POT_WALLET, JACKPOT_WALLET)]
    for tier in LOWER_TIERS:
        transfers.append((allocation.tier_pools[tier], POT_WALLET, TIER_WALLETS[tier]))
    accountant.transfer(transfers, OriginType.SETTLEMENT, "matching", "ALLOCATE", period)

    progress = SettlementProgress(
        period=period,
        phase=current_phase(engine.state, engine.params, now),
        outcome=outcome,
        allocation=allocation,
        last_batch_at=now,
    )
    engine.progress = progress
    engine.pending_outcome = None
    engine.settlement = SettlementPhase.MATCHING
    return progress


def process_matching_batch(engine: 'SettlementEngine', now: datetime) -> MatchingBatchResult:
    """Score up to match_batch_size registry records from the persisted cursor."""
    progress = engine.progress
    registry = engine.registry
    state = engine.state
    outcome = progress.outcome
    period = progress.period

    processed = 0
    removed = 0
    while processed < engine.params.match_batch_size and progress.match_cursor < len(registry):
        record = registry.at(progress.match_cursor)
        processed += 1

        if record.is_expired(period):
            # The last record now occupies this slot; leave the cursor here.
            registry.remove(record.participant_id)
            progress.removed.append(record.participant_id)
            removed += 1
            continue

        progress.match_cursor += 1

        if record.start_period > period:
            progress.deferred += 1
            continue

        if qualifies_as_founder(record.tenure(period), engine.params):
            if grant_founder(state, record.participant_id):
                progress.promoted.append(record.participant_id)

        if progress.phase == Phase.WINDING_DOWN and record.participant_id not in state.founders:
            progress.skipped += 1
            continue

        for selection_index, mask in enumerate(record.selections):
            matches = match_count(mask, outcome.mask)
            if matches >= MIN_WINNING_MATCHES:
                outcome.winners[matches].append((record.participant_id, selection_index))
        progress.scored += 1

    progress.last_batch_at = now
    done = progress.match_cursor >= len(registry)
    if done:
        engine.settlement = SettlementPhase.DISTRIBUTING
    return MatchingBatchResult(processed=processed, removed=removed, done=done)
