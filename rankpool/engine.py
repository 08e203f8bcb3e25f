"""
engine.py - Settlement Engine

The single owned aggregate behind every public operation. It holds the
participant registry, the bucket ledger, the phase state and the settlement
state machine, and wires them to the external oracle and custody.

Per-period flow (every step callable by anyone once its precondition holds):

    resolve_period        IDLE, period_duration elapsed   -> outcome pending
    advance_matching      first call allocates, later calls score batches
                          -> DISTRIBUTING when the registry is exhausted
    advance_distribution  jackpot, then tiers 5/4/3 in batches -> IDLE

Liveness and end-of-game:

    emergency_unwind            in flight, no batch for stuck_timeout
    force_complete_distribution DISTRIBUTING, no batch for stuck_timeout
    trigger_dormancy            no settlement for dormancy_threshold
    rescue_abandoned_funds      nobody left, idle for abandonment_threshold
    close_game                  period past total_periods or deadline

Every public operation checks all of its preconditions before mutating
anything, the ledger clock included, so a rejected call leaves no trace.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .accountant import LedgerAccountant
from .core import (
    OriginType, Unit, settlement_asset,
    PreconditionViolation, WrongPhase, TooEarly, StaleTimestamp, AlreadyDone, Unauthorized,
    InvalidSelection, WithdrawalFailed,
    CLOSURE_WALLET, TREASURY_WALLET, WITHDRAWN_WALLET, unclaimed_wallet,
)
from .custody import Custody
from .distribution import DistributionBatchResult, process_distribution_batch, void_period
from .matching import MatchingBatchResult, SettlementProgress, begin_matching, process_matching_batch
from .oracle import PriceFeed, PriceOracle
from .params import GameParameters, UNIVERSE_SIZE, MAX_SELECTIONS, LOWER_TIERS
from .phases import (
    Phase, PhaseState, SettlementPhase, current_phase,
    treasury_share_bps as _treasury_share_bps,
    payout_rate_bps as _payout_rate_bps,
)
from .recovery import (
    ClosureSummary, DormancyProgress, close, begin_dormancy,
    process_dormancy_batch, sweep_to_treasury,
)
from .registry import ParticipantRecord, ParticipantRegistry
from .resolver import PeriodOutcome, resolve_outcome, snapshot_prices
from .selection import encode_selection
from .timelock import FeedTimelock


@dataclass(slots=True)
class TreasuryWindow:
    """Rolling wind-down withdrawal window."""
    opened_at: datetime
    cap: Decimal
    used: Decimal = Decimal("0")


class SettlementEngine:
    """
    Recurring ranked-selection settlement engine.

    Example:
        engine = SettlementEngine(feeds, oracle, custody, "operator", start)
        engine.enroll("alice", [[0, 1, 2, 3, 4, 5]], periods=4, now=start)
        engine.resolve_period(start + timedelta(days=7))
        while engine.settlement != SettlementPhase.IDLE:
            ...
    """

    def __init__(
        self,
        feeds: Sequence[PriceFeed],
        oracle: PriceOracle,
        custody: Custody,
        operator: str,
        start_time: datetime,
        params: Optional[GameParameters] = None,
        asset: Optional[Unit] = None,
        verbose: bool = True,
    ):
        if len(feeds) != UNIVERSE_SIZE:
            raise ValueError(f"expected {UNIVERSE_SIZE} price feeds, got {len(feeds)}")
        if not operator:
            raise ValueError("operator cannot be empty")

        self.params = params or GameParameters()
        self.feeds: List[PriceFeed] = list(feeds)
        self.oracle = oracle
        self.custody = custody
        self.operator = operator
        self.verbose = verbose

        self.accountant = LedgerAccountant(
            asset or settlement_asset(),
            initial_time=start_time,
            solvency_tolerance=self.params.solvency_tolerance,
            verbose=verbose,
        )
        self.registry = ParticipantRegistry()
        self.state = PhaseState(period=1, started_at=start_time)
        self.timelock = FeedTimelock(self.params.feed_change_delay)

        self.settlement = SettlementPhase.IDLE
        self.pending_outcome: Optional[PeriodOutcome] = None
        self.progress: Optional[SettlementProgress] = None
        self.dormancy: Optional[DormancyProgress] = None
        self.history: Dict[int, PeriodOutcome] = {}

        self.period_started_at = start_time
        self.last_settlement_at = start_time
        self.last_activity_at = start_time
        self.closed_at: Optional[datetime] = None
        self.closure_share: Optional[Decimal] = None
        self.closure_claimed: Dict[str, Decimal] = {}
        self.rescued = False
        self.treasury_window: Optional[TreasuryWindow] = None
        self._sweep_cursor = 0

        self.start_prices = snapshot_prices(oracle, self.feeds, start_time)

    # ========================================================================
    # READ-ONLY VIEWS
    # ========================================================================

    @property
    def now(self) -> datetime:
        return self.accountant.ledger.current_time

    @property
    def period(self) -> int:
        return self.state.period

    def phase(self, now: Optional[datetime] = None) -> Phase:
        return current_phase(self.state, self.params, now or self.now)

    def outcome(self, period: int) -> Optional[PeriodOutcome]:
        """Outcome of a period: archived, in flight, or resolved and pending."""
        if period in self.history:
            return self.history[period]
        if self.progress is not None and self.progress.period == period:
            return self.progress.outcome
        if self.pending_outcome is not None and self.pending_outcome.period == period:
            return self.pending_outcome
        return None

    def unclaimed(self, participant_id: str) -> Decimal:
        return self.accountant.unclaimed(participant_id)

    def bucket_balances(self) -> Dict[str, Decimal]:
        return self.accountant.bucket_balances()

    def verify_conservation(self) -> Dict[str, Any]:
        return self.accountant.verify_conservation()

    def solvency_report(self) -> Dict[str, Any]:
        return self.accountant.solvency_report(self.custody.current_value())

    def treasury_share_bps(self) -> int:
        return _treasury_share_bps(self.state, self.params)

    def payout_rate_bps(self) -> int:
        return _payout_rate_bps(self.state, self.params)

    def earliest_resolve_at(self) -> datetime:
        return self.period_started_at + self.params.period_duration

    def in_pick_lock(self, now: datetime) -> bool:
        """True from pick_lock before the earliest resolve time until the period finalises."""
        if self.settlement != SettlementPhase.IDLE or self.pending_outcome is not None:
            return True
        return now >= self.earliest_resolve_at() - self.params.pick_lock

    def can_resolve(self, now: datetime) -> bool:
        return (
            self.settlement == SettlementPhase.IDLE
            and self.pending_outcome is None
            and self.phase(now) != Phase.CLOSED
            and now >= self.earliest_resolve_at()
        )

    def is_founder(self, participant_id: str) -> bool:
        return participant_id in self.state.founders

    # ========================================================================
    # PRECONDITIONS
    # ========================================================================

    def _check_clock(self, now: datetime) -> None:
        if now < self.now:
            raise StaleTimestamp(f"{now} is before the ledger clock {self.now}")

    def _tick(self, now: datetime) -> None:
        self.accountant.advance_time(now)

    def _require_idle(self) -> None:
        if self.settlement != SettlementPhase.IDLE:
            raise WrongPhase(f"settlement is {self.settlement.value}")

    def _require_open(self, now: datetime) -> Phase:
        phase = self.phase(now)
        if phase == Phase.CLOSED:
            raise WrongPhase("game is closed")
        return phase

    def _require_operator(self, caller: str) -> None:
        if caller != self.operator:
            raise Unauthorized(f"{caller} is not the operator")

    def _last_enroll_period(self, participant_id: str) -> int:
        if self.is_founder(participant_id):
            return self.params.total_periods
        return self.params.accumulation_periods

    def _encode_selections(self, selections: Sequence[Sequence[int]]) -> Tuple[int, ...]:
        if not 1 <= len(selections) <= MAX_SELECTIONS:
            raise InvalidSelection(
                f"between 1 and {MAX_SELECTIONS} selections required, got {len(selections)}"
            )
        return tuple(encode_selection(selection) for selection in selections)

    def _price(self, periods: int, selection_count: int) -> Decimal:
        return self.accountant.asset.round(self.params.entry_price * periods * selection_count)

    # ========================================================================
    # PARTICIPANT OPERATIONS
    # ========================================================================

    def enroll(
        self,
        participant_id: str,
        selections: Sequence[Sequence[int]],
        periods: int,
        now: datetime,
    ) -> ParticipantRecord:
        """
        Pay for `periods` periods of one or two selections.

        Enrolling inside the pick-lock window starts next period. A lapsed
        record still in the registry is replaced.

        Raises:
            WrongPhase: In flight, in wind-down for a non-founder, or closed
            InvalidSelection: Malformed selections
            PreconditionViolation: Already active, or bad period count
        """
        self._check_clock(now)
        self._require_idle()
        phase = self._require_open(now)
        if not participant_id:
            raise PreconditionViolation("participant_id cannot be empty")
        if phase == Phase.WINDING_DOWN and not self.is_founder(participant_id):
            raise WrongPhase("only founding members may enroll during wind-down")

        lapsed = None
        if participant_id in self.registry:
            lapsed = self.registry.get(participant_id)
            if not lapsed.is_expired(self.state.period):
                raise PreconditionViolation(f"participant {participant_id} is already enrolled")

        masks = self._encode_selections(selections)
        if not 1 <= periods <= self.params.max_enroll_periods:
            raise PreconditionViolation(
                f"periods must be within [1, {self.params.max_enroll_periods}], got {periods}"
            )
        start = self.state.period + 1 if self.in_pick_lock(now) else self.state.period
        end = start + periods - 1
        last = self._last_enroll_period(participant_id)
        if end > last:
            raise PreconditionViolation(f"subscription would end in period {end}, after {last}")

        price = self._price(periods, len(masks))
        self._tick(now)
        if lapsed is not None:
            self.registry.remove(participant_id)
        self.accountant.ensure_participant_wallet(participant_id)
        self.accountant.intake(price, self.treasury_share_bps(), participant_id, self.state.period)
        self.custody.deposit(price)

        record = ParticipantRecord(
            participant_id=participant_id,
            selections=masks,
            start_period=start,
            end_period=end,
            enrolled_at=now,
        )
        self.registry.enroll(record)
        self.last_activity_at = now
        if self.verbose:
            print(f"[period {self.state.period}] enrolled {participant_id}: "
                  f"periods {start}-{end}, {len(masks)} selection(s), paid {price}")
        return record

    def extend(self, participant_id: str, periods: int, now: datetime) -> ParticipantRecord:
        """
        Buy more periods for an active subscription.

        Raises:
            WrongPhase: In flight, pick-locked, non-founder in wind-down, or closed
            UnknownParticipant: Not enrolled
            PreconditionViolation: Lapsed subscription or bad period count
        """
        self._check_clock(now)
        self._require_idle()
        phase = self._require_open(now)
        record = self.registry.get(participant_id)
        if self.in_pick_lock(now):
            raise WrongPhase("subscriptions are locked until the period settles")
        if phase == Phase.WINDING_DOWN and not self.is_founder(participant_id):
            raise WrongPhase("only founding members may extend during wind-down")
        if record.is_expired(self.state.period):
            raise PreconditionViolation(f"subscription of {participant_id} lapsed; enroll again")
        if not 1 <= periods <= self.params.max_enroll_periods:
            raise PreconditionViolation(
                f"periods must be within [1, {self.params.max_enroll_periods}], got {periods}"
            )
        end = record.end_period + periods
        last = self._last_enroll_period(participant_id)
        if end > last:
            raise PreconditionViolation(f"subscription would end in period {end}, after {last}")

        price = self._price(periods, len(record.selections))
        self._tick(now)
        self.accountant.intake(price, self.treasury_share_bps(), participant_id, self.state.period)
        self.custody.deposit(price)
        record.end_period = end
        self.last_activity_at = now
        if self.verbose:
            print(f"[period {self.state.period}] extended {participant_id} to period {end}, paid {price}")
        return record

    def update_selections(
        self,
        participant_id: str,
        selections: Sequence[Sequence[int]],
        now: datetime,
    ) -> ParticipantRecord:
        """
        Replace a participant's selections, keeping their number.

        Raises:
            WrongPhase: In flight, pick-locked, or closed
            UnknownParticipant: Not enrolled
            InvalidSelection: Malformed selections or a different count
        """
        self._check_clock(now)
        self._require_idle()
        self._require_open(now)
        record = self.registry.get(participant_id)
        if self.in_pick_lock(now):
            raise WrongPhase("selections are locked until the period settles")
        masks = self._encode_selections(selections)
        if len(masks) != len(record.selections):
            raise InvalidSelection(
                f"{participant_id} paid for {len(record.selections)} selection(s), got {len(masks)}"
            )
        self._tick(now)
        record.selections = masks
        self.last_activity_at = now
        return record

    def sweep_expired(self, now: datetime, limit: Optional[int] = None) -> List[str]:
        """
        Remove lapsed subscriptions, scanning at most `limit` slots.

        The scan resumes where the previous sweep stopped and wraps around.

        Raises:
            WrongPhase: While a settlement is in flight
        """
        self._check_clock(now)
        self._require_idle()
        self._tick(now)
        budget = self.params.match_batch_size if limit is None else limit
        removed: List[str] = []
        scanned = 0
        if self._sweep_cursor >= len(self.registry):
            self._sweep_cursor = 0
        while scanned < budget and self._sweep_cursor < len(self.registry):
            record = self.registry.at(self._sweep_cursor)
            scanned += 1
            if record.is_expired(self.state.period):
                self.registry.remove(record.participant_id)
                removed.append(record.participant_id)
            else:
                self._sweep_cursor += 1
        if self._sweep_cursor >= len(self.registry):
            self._sweep_cursor = 0
        return removed

    # ========================================================================
    # SETTLEMENT (PERMISSIONLESS)
    # ========================================================================

    def resolve_period(self, now: datetime) -> PeriodOutcome:
        """
        Read end prices and fix this period's outcome.

        Raises:
            WrongPhase: In flight or closed
            AlreadyDone: Outcome already resolved and awaiting matching
            TooEarly: period_duration has not elapsed
        """
        self._check_clock(now)
        self._require_idle()
        self._require_open(now)
        if self.pending_outcome is not None:
            raise AlreadyDone(f"period {self.state.period} already resolved")
        if now < self.earliest_resolve_at():
            raise TooEarly(f"period {self.state.period} resolves at {self.earliest_resolve_at()}")

        self._tick(now)
        outcome = resolve_outcome(self.state.period, self.start_prices, self.oracle, self.feeds, now)
        self.pending_outcome = outcome
        self.last_activity_at = now
        if self.verbose:
            failed = len(outcome.disqualified)
            print(f"[period {self.state.period}] resolved: {list(outcome.ranking)}"
                  f"{f' ({failed} assets disqualified)' if failed else ''}")
        return outcome

    def advance_matching(self, now: datetime) -> MatchingBatchResult:
        """
        Open the period (first call) or score the next registry batch.

        Raises:
            WrongPhase: Nothing resolved, or matching already finished
            SolvencyViolation: Custody cannot cover the buckets (first call)
        """
        self._check_clock(now)
        if self.settlement == SettlementPhase.IDLE and self.pending_outcome is not None:
            progress = begin_matching(self, now)
            self.last_activity_at = now
            if self.verbose:
                allocation = progress.allocation
                print(f"[period {progress.period}] matching opened: pool {allocation.period_pool} "
                      f"at {allocation.payout_rate_bps} bps, jackpot +{allocation.jackpot_contribution}")
            return MatchingBatchResult(processed=0, removed=0, done=False)
        if self.settlement != SettlementPhase.MATCHING:
            raise WrongPhase(f"no matching to advance (settlement is {self.settlement.value})")

        self._tick(now)
        result = process_matching_batch(self, now)
        self.last_activity_at = now
        if self.verbose and result.done:
            outcome = self.progress.outcome
            counts = ", ".join(f"{tier}:{outcome.winner_count(tier)}" for tier in sorted(outcome.winners, reverse=True))
            print(f"[period {self.progress.period}] matching done: winners {counts}")
        return result

    def advance_distribution(self, now: datetime) -> DistributionBatchResult:
        """
        Pay the next batch of credits; finalises the period when done.

        Raises:
            WrongPhase: Not distributing
        """
        self._check_clock(now)
        if self.settlement != SettlementPhase.DISTRIBUTING:
            raise WrongPhase(f"no distribution to advance (settlement is {self.settlement.value})")
        self._tick(now)
        result = process_distribution_batch(self, now)
        self.last_activity_at = now
        return result

    # ========================================================================
    # LIVENESS RECOVERY (PERMISSIONLESS)
    # ========================================================================

    def _require_stuck(self, now: datetime) -> None:
        stuck_at = self.progress.last_batch_at + self.params.stuck_timeout
        if now < stuck_at:
            raise TooEarly(f"settlement can be forced from {stuck_at}")

    def emergency_unwind(self, now: datetime) -> Decimal:
        """
        Void a period stuck in flight, returning unpaid allocations to pot.

        Raises:
            WrongPhase: Nothing in flight
            TooEarly: A batch ran within stuck_timeout
        """
        self._check_clock(now)
        if self.settlement not in (SettlementPhase.MATCHING, SettlementPhase.DISTRIBUTING):
            raise WrongPhase(f"nothing to unwind (settlement is {self.settlement.value})")
        self._require_stuck(now)
        self._tick(now)
        return void_period(self, now)

    def force_complete_distribution(self, now: datetime) -> DistributionBatchResult:
        """
        Finish a stalled distribution in one call, ignoring the batch limit.

        Raises:
            WrongPhase: Not distributing
            TooEarly: A batch ran within stuck_timeout
        """
        self._check_clock(now)
        if self.settlement != SettlementPhase.DISTRIBUTING:
            raise WrongPhase(f"no distribution to complete (settlement is {self.settlement.value})")
        self._require_stuck(now)
        outcome = self.progress.outcome
        self._tick(now)
        remaining = sum(outcome.winner_count(tier) for tier in LOWER_TIERS)
        result = process_distribution_batch(self, now, limit=max(remaining, 1))
        self.last_activity_at = now
        return result

    def trigger_dormancy(self, now: datetime) -> int:
        """
        Drain the prize reserve to every active participant after long inactivity.

        The first call fixes the shares; each call credits one batch. The game
        closes when every share is credited.

        Returns:
            Credits paid by this call

        Raises:
            WrongPhase: Settlement in flight, or the game is closed
            TooEarly: A settlement finished within dormancy_threshold
            PreconditionViolation: Every remaining subscription has lapsed
        """
        self._check_clock(now)
        if self.settlement == SettlementPhase.DORMANT:
            self._tick(now)
            return process_dormancy_batch(self, now)
        self._require_idle()
        self._require_open(now)
        dormant_at = self.last_settlement_at + self.params.dormancy_threshold
        if now < dormant_at:
            raise TooEarly(f"dormancy can be triggered from {dormant_at}")
        if all(record.is_expired(self.state.period) for record in self.registry):
            raise PreconditionViolation("no active participants to credit")
        self._tick(now)
        begin_dormancy(self, now)
        return process_dormancy_batch(self, now)

    def rescue_abandoned_funds(self, now: datetime) -> Decimal:
        """
        Sweep every unowned bucket to treasury once nobody is left.

        Returns:
            Amount swept

        Raises:
            WrongPhase: Settlement in flight
            AlreadyDone: Already rescued
            PreconditionViolation: Participants or founders remain
            TooEarly: Activity within abandonment_threshold
        """
        self._check_clock(now)
        self._require_idle()
        if self.rescued:
            raise AlreadyDone("abandoned funds already rescued")
        if len(self.registry) > 0 or self.state.founders:
            raise PreconditionViolation(
                f"{len(self.registry)} participants and {len(self.state.founders)} founders remain"
            )
        abandoned_at = self.last_activity_at + self.params.abandonment_threshold
        if now < abandoned_at:
            raise TooEarly(f"funds can be rescued from {abandoned_at}")

        self._tick(now)
        amount = sweep_to_treasury(self)
        self.pending_outcome = None
        self.rescued = True
        self.state.closed = True
        self.closed_at = self.closed_at or now
        if self.verbose:
            print(f"[period {self.state.period}] rescued {amount} to treasury")
        return amount

    def close_game(self, now: datetime) -> ClosureSummary:
        """
        Split the remaining pot between founders and treasury.

        Raises:
            AlreadyDone: The game is already closed
            WrongPhase: Settlement in flight
            TooEarly: Neither total_periods nor the deadline has passed
        """
        self._check_clock(now)
        if self.state.closed:
            raise AlreadyDone("game is already closed")
        self._require_idle()
        if self.phase(now) != Phase.CLOSED:
            raise TooEarly(
                f"period {self.state.period} of {self.params.total_periods}; "
                f"deadline {self.state.started_at + self.params.game_duration}"
            )
        self._tick(now)
        self.pending_outcome = None
        return close(self, now)

    # ========================================================================
    # CLAIMS
    # ========================================================================

    def _withdraw(self, amount: Decimal, source: str, recipient: str,
                  origin_type: OriginType, event_type: str, now: datetime) -> Decimal:
        """
        Move value out to the recipient through custody.

        The ledger transaction is validated first and committed only once
        custody has paid, so a custody failure leaves the books unchanged.
        """
        pending = self.accountant.build(
            [(amount, source, WITHDRAWN_WALLET)], origin_type, recipient, event_type, self.state.period,
        )
        valid, reason = self.accountant.ledger.validate(pending)
        if not valid:
            raise PreconditionViolation(reason)
        result = self.custody.withdraw(amount, recipient)
        if not result.ok:
            if self.verbose:
                print(f"withdrawal of {amount} to {recipient} failed: {result.error}")
            raise WithdrawalFailed(result.error)
        self._tick(now)
        self.accountant.commit(pending)
        return amount

    def claim_prize(self, participant_id: str, now: datetime) -> Decimal:
        """
        Withdraw a participant's whole unclaimed balance.

        Raises:
            PreconditionViolation: Nothing to claim
            WithdrawalFailed: Custody refused; the credit is kept, retry later
        """
        self._check_clock(now)
        amount = self.unclaimed(participant_id)
        if amount <= 0:
            raise PreconditionViolation(f"{participant_id} has nothing to claim")
        return self._withdraw(amount, unclaimed_wallet(participant_id), participant_id,
                              OriginType.CLAIM, "CLAIM", now)

    def claim_closure_share(self, participant_id: str, now: datetime) -> Decimal:
        """
        Withdraw a founding member's closure share.

        Raises:
            WrongPhase: The game was not closed by closure
            Unauthorized: Not a founding member
            AlreadyDone: Share already claimed
            WithdrawalFailed: Custody refused; retry later
        """
        self._check_clock(now)
        if self.closure_share is None:
            raise WrongPhase("no closure shares to claim")
        if not self.is_founder(participant_id):
            raise Unauthorized(f"{participant_id} is not a founding member")
        if participant_id in self.closure_claimed:
            raise AlreadyDone(f"{participant_id} already claimed a closure share")
        amount = self.closure_share
        if amount > 0:
            self._withdraw(amount, CLOSURE_WALLET, participant_id, OriginType.CLAIM, "CLOSURE_CLAIM", now)
        else:
            self._tick(now)
        self.closure_claimed[participant_id] = amount
        return amount

    # ========================================================================
    # OPERATOR
    # ========================================================================

    def withdraw_treasury(self, caller: str, amount: Decimal, now: datetime,
                          recipient: Optional[str] = None) -> Decimal:
        """
        Pay treasury out to the operator (or a named recipient).

        During wind-down withdrawals are capped per rolling treasury_window
        at treasury_window_cap_bps of the treasury balance when the window
        opened.

        Raises:
            Unauthorized: Caller is not the operator
            PreconditionViolation: Bad amount, or over the window cap
            WithdrawalFailed: Custody refused
        """
        self._check_clock(now)
        self._require_operator(caller)
        amount = self.accountant.asset.round(Decimal(str(amount)))
        if amount <= 0:
            raise PreconditionViolation(f"withdrawal amount must be positive, got {amount}")
        if amount > self.accountant.treasury:
            raise PreconditionViolation(f"treasury holds {self.accountant.treasury}, asked {amount}")

        window = None
        if self.phase(now) == Phase.WINDING_DOWN:
            window = self.treasury_window
            if window is None or now >= window.opened_at + self.params.treasury_window:
                window = TreasuryWindow(
                    opened_at=now,
                    cap=self.accountant.bps_of(self.accountant.treasury, self.params.treasury_window_cap_bps),
                )
            if window.used + amount > window.cap:
                raise PreconditionViolation(
                    f"window cap {window.cap} allows {window.cap - window.used} more, asked {amount}"
                )

        self._withdraw(amount, TREASURY_WALLET, recipient or caller, OriginType.OPERATOR, "TREASURY_WITHDRAW", now)
        if window is not None:
            window.used += amount
            self.treasury_window = window
        return amount

    def renounce_treasury_take(self, caller: str, now: datetime) -> None:
        """
        Irreversibly set the treasury share of all future intake to zero.

        Raises:
            Unauthorized: Caller is not the operator
            AlreadyDone: Already renounced
        """
        self._check_clock(now)
        self._require_operator(caller)
        if self.state.treasury_renounced:
            raise AlreadyDone("treasury take already renounced")
        self._tick(now)
        self.state.treasury_renounced = True
        if self.verbose:
            print(f"[period {self.state.period}] treasury take renounced")

    def propose_feed_change(self, caller: str, asset_index: int, feed: PriceFeed, now: datetime) -> str:
        """
        Queue a price feed replacement behind the timelock.

        Raises:
            Unauthorized: Caller is not the operator
            PreconditionViolation: Asset index out of range
        """
        self._check_clock(now)
        self._require_operator(caller)
        if not 0 <= asset_index < UNIVERSE_SIZE:
            raise PreconditionViolation(f"asset index {asset_index} outside [0, {UNIVERSE_SIZE})")
        self._tick(now)
        return self.timelock.propose(asset_index, feed, now)

    def cancel_feed_change(self, caller: str, change_id: str, now: datetime) -> None:
        self._check_clock(now)
        self._require_operator(caller)
        self.timelock.cancel(change_id)
        self._tick(now)

    def execute_feed_change(self, change_id: str, now: datetime) -> PriceFeed:
        """
        Apply a due feed change. Callable by anyone.

        The asset's start price for the current period is dropped, so the
        asset sits out this period instead of being scored across two feeds.

        Raises:
            AlreadyDone: Not pending
            TooEarly: Delay not elapsed
        """
        self._check_clock(now)
        change = self.timelock.take(change_id, now)
        self._tick(now)
        previous = self.feeds[change.asset_index]
        self.feeds[change.asset_index] = change.feed
        prices = list(self.start_prices)
        prices[change.asset_index] = None
        self.start_prices = tuple(prices)
        if self.verbose:
            print(f"feed {change.asset_index}: {previous.endpoint} -> {change.feed.endpoint}")
        return previous

    def __repr__(self):
        return (f"SettlementEngine(period={self.state.period}, settlement={self.settlement.value}, "
                f"participants={len(self.registry)})")
