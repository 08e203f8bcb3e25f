"""
accountant.py - Ledger & Solvency Accountant

Owns the bucket ledger. Every value movement in the engine goes through
LedgerAccountant.transfer(), which builds a double-entry transaction and
executes it atomically, so the bucket sum always equals total intake:

    pot + treasury + jackpot + unclaimed + Σ tier_pending + withdrawn == total_intake

Intake and yield gains are issued from SYSTEM_WALLET; yield losses are
returned to it. total_intake is therefore minus the system wallet balance.

Yield policy:
    gain -> pot only
    loss -> pot first, then treasury, floored at zero (waterfall)
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .core import (
    Move, PendingTransaction, TransactionOrigin, OriginType, Unit,
    ExecuteResult, LedgerError, SolvencyViolation,
    SYSTEM_WALLET, POT_WALLET, TREASURY_WALLET, JACKPOT_WALLET,
    WITHDRAWN_WALLET, CLOSURE_WALLET, DORMANCY_WALLET, TIER_WALLETS,
    UNCLAIMED_PREFIX, unclaimed_wallet, build_transaction,
)
from .ledger import Ledger
from .params import BPS


# (quantity, source, dest)
Transfer = Tuple[Decimal, str, str]

BUCKET_WALLETS = (
    POT_WALLET, TREASURY_WALLET, JACKPOT_WALLET, WITHDRAWN_WALLET,
    CLOSURE_WALLET, DORMANCY_WALLET,
) + tuple(TIER_WALLETS.values())


class LedgerAccountant:
    """
    Bucket bookkeeping on top of a double-entry Ledger.

    Example:
        accountant = LedgerAccountant(settlement_asset(), start, verbose=False)
        accountant.intake(Decimal("20"), treasury_bps=2000, source_id="alice")
        accountant.pot          # Decimal("16")
        accountant.treasury     # Decimal("4")
    """

    def __init__(
        self,
        asset: Unit,
        initial_time: datetime,
        solvency_tolerance: Decimal = Decimal("1e-9"),
        name: str = "rankpool",
        verbose: bool = True,
    ):
        self.asset = asset
        self.symbol = asset.symbol
        self.solvency_tolerance = solvency_tolerance
        self.ledger = Ledger(name, initial_time=initial_time, verbose=verbose)
        self.ledger.register_unit(asset)
        for wallet in BUCKET_WALLETS:
            self.ledger.register_wallet(wallet)
        self._next_ref = 0

    # ========================================================================
    # BALANCES
    # ========================================================================

    def balance(self, wallet: str) -> Decimal:
        if not self.ledger.is_registered(wallet):
            return Decimal("0")
        return self.ledger.get_balance(wallet, self.symbol)

    @property
    def pot(self) -> Decimal:
        return self.balance(POT_WALLET)

    @property
    def treasury(self) -> Decimal:
        return self.balance(TREASURY_WALLET)

    @property
    def jackpot(self) -> Decimal:
        return self.balance(JACKPOT_WALLET)

    @property
    def withdrawn(self) -> Decimal:
        return self.balance(WITHDRAWN_WALLET)

    @property
    def closure_pool(self) -> Decimal:
        return self.balance(CLOSURE_WALLET)

    def tier_pending(self, tier: int) -> Decimal:
        return self.balance(TIER_WALLETS[tier])

    def unclaimed(self, participant_id: str) -> Decimal:
        return self.balance(unclaimed_wallet(participant_id))

    def unclaimed_total(self) -> Decimal:
        """Participant credits plus the closure pool."""
        positions = self.ledger.get_positions(self.symbol)
        credits = sum(
            (qty for wallet, qty in sorted(positions.items()) if wallet.startswith(UNCLAIMED_PREFIX)),
            Decimal("0"),
        )
        return credits + self.closure_pool

    def pending_total(self) -> Decimal:
        """Tier pending pools plus the dormancy pending pool."""
        tiers = sum((self.tier_pending(tier) for tier in sorted(TIER_WALLETS)), Decimal("0"))
        return tiers + self.balance(DORMANCY_WALLET)

    @property
    def total_intake(self) -> Decimal:
        """All value ever taken in, net of yield losses."""
        return -self.balance(SYSTEM_WALLET)

    def held_total(self) -> Decimal:
        """Value that should currently sit in custody."""
        return self.total_intake - self.withdrawn

    def bucket_balances(self) -> Dict[str, Decimal]:
        """Point-in-time view of every bucket."""
        return {
            'pot': self.pot,
            'treasury': self.treasury,
            'jackpot': self.jackpot,
            'unclaimed': self.unclaimed_total(),
            'tier_pending': self.pending_total(),
            'withdrawn': self.withdrawn,
            'total_intake': self.total_intake,
        }

    def tolerance(self, *amounts: Decimal) -> Decimal:
        """Rounding tolerance proportional to the largest amount involved."""
        scale = max((abs(a) for a in amounts), default=Decimal("0"))
        return scale * self.solvency_tolerance

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Check the bucket-sum invariant.

        Returns:
            Dict with 'valid', 'bucket_sum', 'total_intake', 'difference'
        """
        b = self.bucket_balances()
        bucket_sum = (
            b['pot'] + b['treasury'] + b['jackpot'] + b['unclaimed']
            + b['tier_pending'] + b['withdrawn']
        )
        difference = abs(bucket_sum - b['total_intake'])
        double_entry = self.ledger.verify_double_entry()
        return {
            'valid': difference <= self.tolerance(b['total_intake']) and double_entry['valid'],
            'bucket_sum': bucket_sum,
            'total_intake': b['total_intake'],
            'difference': difference,
        }

    # ========================================================================
    # MOVEMENTS
    # ========================================================================

    def advance_time(self, now: datetime) -> None:
        self.ledger.advance_time(now)

    def ensure_participant_wallet(self, participant_id: str) -> str:
        return self.ledger.ensure_wallet(unclaimed_wallet(participant_id))

    def _reference(self, event_type: str) -> str:
        return f"{event_type}:{self._next_ref + 1}"

    def build(
        self,
        transfers: Sequence[Transfer],
        origin_type: OriginType,
        source_id: str,
        event_type: str,
        period: Optional[int] = None,
    ) -> PendingTransaction:
        """Build a transaction from (quantity, source, dest) triples, dropping zeros."""
        ref = self._reference(event_type)
        moves: List[Move] = []
        for i, (quantity, source, dest) in enumerate(transfers):
            if quantity < 0:
                raise LedgerError(f"negative transfer {quantity} {source}->{dest}")
            if quantity == 0:
                continue
            moves.append(Move(quantity, self.symbol, source, dest, f"{ref}:{i}"))
        origin = TransactionOrigin(origin_type, source_id, period=period, event_type=event_type)
        return build_transaction(self.ledger, moves, origin)

    def commit(self, pending: PendingTransaction) -> None:
        """
        Execute a built transaction.

        Raises:
            LedgerError: If the ledger rejects it; internally built
                transactions must always apply
        """
        result = self.ledger.execute(pending)
        if result != ExecuteResult.APPLIED:
            raise LedgerError(f"transaction {pending!r} not applied: {result.value}")
        self._next_ref += 1

    def transfer(
        self,
        transfers: Sequence[Transfer],
        origin_type: OriginType,
        source_id: str,
        event_type: str,
        period: Optional[int] = None,
    ) -> None:
        """Build and execute in one step."""
        self.commit(self.build(transfers, origin_type, source_id, event_type, period))

    def bps_of(self, amount: Decimal, bps: int) -> Decimal:
        """amount * bps / 10000, floored to the asset precision."""
        return self.asset.floor(amount * bps / BPS)

    def split_evenly(self, amount: Decimal, count: int) -> Tuple[Decimal, Decimal]:
        """Return (per_share, remainder) with per_share floored."""
        if count <= 0:
            return Decimal("0"), amount
        share = self.asset.floor(amount / count)
        return share, amount - share * count

    # ========================================================================
    # INTAKE AND YIELD
    # ========================================================================

    def intake(self, amount: Decimal, treasury_bps: int, source_id: str,
               period: Optional[int] = None) -> Tuple[Decimal, Decimal]:
        """
        Record a participant payment, split between treasury and pot.

        Returns:
            (pot_share, treasury_share)
        """
        amount = self.asset.round(amount)
        treasury_share = self.bps_of(amount, treasury_bps)
        pot_share = amount - treasury_share
        self.transfer(
            [(pot_share, SYSTEM_WALLET, POT_WALLET),
             (treasury_share, SYSTEM_WALLET, TREASURY_WALLET)],
            OriginType.INTAKE, source_id, "INTAKE", period,
        )
        return pot_share, treasury_share

    def capture_yield(self, custody_value: Decimal) -> Decimal:
        """
        Reconcile buckets with custody value.

        A gain goes entirely to pot. A loss drains pot, then treasury, and
        stops at zero; any loss beyond that stays unreconciled and shows up in
        the solvency check.

        Returns:
            Signed amount applied to the buckets
        """
        delta = self.asset.round(custody_value - self.held_total())
        if delta > 0:
            self.transfer([(delta, SYSTEM_WALLET, POT_WALLET)],
                          OriginType.YIELD, "custody", "YIELD_GAIN")
            return delta
        if delta < 0:
            loss = -delta
            from_pot = min(self.pot, loss)
            from_treasury = min(self.treasury, loss - from_pot)
            self.transfer(
                [(from_pot, POT_WALLET, SYSTEM_WALLET),
                 (from_treasury, TREASURY_WALLET, SYSTEM_WALLET)],
                OriginType.YIELD, "custody", "YIELD_LOSS",
            )
            return -(from_pot + from_treasury)
        return Decimal("0")

    def solvency_report(self, custody_value: Decimal) -> Dict[str, Any]:
        """
        Compare custody value with the value the buckets claim is held.

        Returns:
            Dict with 'solvent', 'custody_value', 'held', 'difference',
            'tolerance' and 'absorbable' (loss pot and treasury could take)
        """
        held = self.held_total()
        difference = custody_value - held
        tolerance = self.tolerance(custody_value, held)
        return {
            'solvent': abs(difference) <= tolerance,
            'custody_value': custody_value,
            'held': held,
            'difference': difference,
            'tolerance': tolerance,
            'absorbable': self.pot + self.treasury,
        }

    def require_solvency(self, custody_value: Decimal) -> None:
        """
        Check that capture_yield() would leave the books solvent.

        Gains are always absorbable. A loss larger than pot plus treasury
        (beyond tolerance) is fatal. Nothing is mutated.

        Raises:
            SolvencyViolation: If custody cannot cover the buckets
        """
        report = self.solvency_report(custody_value)
        if report['difference'] >= 0:
            return
        shortfall = -report['difference'] - report['absorbable']
        if shortfall > report['tolerance']:
            raise SolvencyViolation(
                f"custody holds {custody_value}, buckets claim {report['held']} "
                f"(unabsorbable shortfall {shortfall})"
            )
