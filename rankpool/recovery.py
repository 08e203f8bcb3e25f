"""
recovery.py - End-of-game drains

Three ways the game ends and its value is handed out:

    closure      period counter past total_periods or the wall-clock deadline:
                 pot plus jackpot reserve, founder_closure_bps of it split
                 evenly into closure shares for founding members, the rest to
                 treasury
    dormancy     no settlement for dormancy_threshold while participants
                 remain active: pot plus jackpot reserve split evenly over
                 every unexpired subscription as unclaimed credits, in batches
    abandonment  no participants, no founders and no activity for
                 abandonment_threshold: everything not owed to anyone is
                 swept to treasury

Unclaimed credits are never touched by any of these paths.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Tuple, TYPE_CHECKING

from .core import (
    OriginType, POT_WALLET, TREASURY_WALLET, JACKPOT_WALLET,
    CLOSURE_WALLET, DORMANCY_WALLET, TIER_WALLETS, unclaimed_wallet,
)
from .phases import SettlementPhase, founder_ids

if TYPE_CHECKING:
    from .engine import SettlementEngine


@dataclass(slots=True)
class DormancyProgress:
    """Persisted cursor over the participants owed a dormancy credit."""
    recipients: Tuple[str, ...]
    share: Decimal
    started_at: datetime
    cursor: int = 0


@dataclass(frozen=True, slots=True)
class ClosureSummary:
    founders: Tuple[str, ...]
    share: Decimal
    to_treasury: Decimal


def _fold_jackpot(engine: 'SettlementEngine', event_type: str) -> None:
    accountant = engine.accountant
    accountant.transfer([(accountant.jackpot, JACKPOT_WALLET, POT_WALLET)],
                        OriginType.RECOVERY, event_type.lower(), event_type, engine.state.period)


# ============================================================================
# CLOSURE
# ============================================================================

def close(engine: 'SettlementEngine', now: datetime) -> ClosureSummary:
    """Split the remaining pot between founding members and treasury."""
    accountant = engine.accountant
    period = engine.state.period
    _fold_jackpot(engine, "CLOSURE_FOLD")

    founders = tuple(sorted(founder_ids(engine.state)))
    founder_part = accountant.bps_of(accountant.pot, engine.params.founder_closure_bps) if founders else Decimal("0")
    share, _ = accountant.split_evenly(founder_part, len(founders))
    to_closure = share * len(founders)
    to_treasury = accountant.pot - to_closure
    accountant.transfer(
        [(to_closure, POT_WALLET, CLOSURE_WALLET),
         (to_treasury, POT_WALLET, TREASURY_WALLET)],
        OriginType.RECOVERY, "closure", "CLOSURE", period,
    )

    engine.state.closed = True
    engine.closed_at = now
    engine.closure_share = share
    if engine.verbose:
        print(f"[period {period}] game closed: {len(founders)} founders x {share}, treasury {to_treasury}")
    return ClosureSummary(founders=founders, share=share, to_treasury=to_treasury)


# ============================================================================
# DORMANCY
# ============================================================================

def begin_dormancy(engine: 'SettlementEngine', now: datetime) -> DormancyProgress:
    """Move the whole prize reserve into the dormancy pool and fix the shares."""
    accountant = engine.accountant
    period = engine.state.period
    _fold_jackpot(engine, "DORMANCY_FOLD")

    recipients = tuple(
        record.participant_id for record in engine.registry
        if not record.is_expired(period)
    )
    share, dust = accountant.split_evenly(accountant.pot, len(recipients))
    accountant.transfer(
        [(share * len(recipients), POT_WALLET, DORMANCY_WALLET),
         (dust, POT_WALLET, TREASURY_WALLET)],
        OriginType.RECOVERY, "dormancy", "DORMANCY", period,
    )
    for participant_id in recipients:
        accountant.ensure_participant_wallet(participant_id)

    progress = DormancyProgress(recipients=recipients, share=share, started_at=now)
    engine.dormancy = progress
    engine.pending_outcome = None
    engine.settlement = SettlementPhase.DORMANT
    if engine.verbose:
        print(f"[period {period}] dormancy: {len(recipients)} participants x {share}")
    return progress


def process_dormancy_batch(engine: 'SettlementEngine', now: datetime) -> int:
    """Credit up to payout_batch_size dormancy shares. Returns credits paid."""
    progress = engine.dormancy
    accountant = engine.accountant
    batch = progress.recipients[progress.cursor:progress.cursor + engine.params.payout_batch_size]
    accountant.transfer(
        [(progress.share, DORMANCY_WALLET, unclaimed_wallet(participant_id)) for participant_id in batch],
        OriginType.RECOVERY, "dormancy", "DORMANCY_CREDIT", engine.state.period,
    )
    progress.cursor += len(batch)

    if progress.cursor >= len(progress.recipients):
        leftover = accountant.balance(DORMANCY_WALLET)
        accountant.transfer([(leftover, DORMANCY_WALLET, TREASURY_WALLET)],
                            OriginType.RECOVERY, "dormancy", "DORMANCY_DUST", engine.state.period)
        engine.settlement = SettlementPhase.IDLE
        engine.state.closed = True
        engine.closed_at = now
        if engine.verbose:
            print(f"[period {engine.state.period}] dormancy drain complete; game closed")
    return len(batch)


# ============================================================================
# ABANDONMENT
# ============================================================================

def sweep_to_treasury(engine: 'SettlementEngine') -> Decimal:
    """Move every bucket not owed to a participant into treasury."""
    accountant = engine.accountant
    sources: List[str] = [POT_WALLET, JACKPOT_WALLET, DORMANCY_WALLET, CLOSURE_WALLET]
    sources.extend(TIER_WALLETS[tier] for tier in sorted(TIER_WALLETS))
    transfers = [(accountant.balance(wallet), wallet, TREASURY_WALLET) for wallet in sources]
    accountant.transfer(transfers, OriginType.RECOVERY, "rescue", "RESCUE", engine.state.period)
    return sum((amount for amount, _, _ in transfers), Decimal("0"))
