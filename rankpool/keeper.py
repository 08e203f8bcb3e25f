"""
keeper.py - Settlement Keeper

Drives the permissionless operations of a SettlementEngine to a stable state
for a timestamp. Any party can run a keeper; the engine accepts calls from
anyone, so several uncoordinated keepers converge on the same state.

Actions tried on each pass, first applicable wins:
1. Execute feed changes whose timelock has elapsed
2. Continue a dormancy drain already under way
3. Continue distribution, then matching
4. Open matching for a resolved outcome
5. Resolve the period once its duration has elapsed
6. Close the game once it has run its course

Stops when no action applies or after max_calls calls.
"""

from __future__ import annotations
from datetime import datetime
from typing import Iterable, List, Tuple

from .engine import SettlementEngine
from .phases import Phase, SettlementPhase


# (timestamp, action name)
KeeperAction = Tuple[datetime, str]


class SettlementKeeper:
    """
    Steps a SettlementEngine through time.

    Example:
        keeper = SettlementKeeper(engine)
        for week in range(1, 5):
            keeper.step(start + timedelta(weeks=week))
    """

    def __init__(self, engine: SettlementEngine, max_calls: int = 10_000):
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        self.engine = engine
        self.max_calls = max_calls
        self.verbose = engine.verbose
        self.actions: List[KeeperAction] = []

    def _next_action(self, now: datetime) -> str:
        engine = self.engine
        due = engine.timelock.get_due(now)
        if due:
            engine.execute_feed_change(due[0].change_id, now)
            return "execute_feed_change"
        if engine.settlement == SettlementPhase.DORMANT:
            engine.trigger_dormancy(now)
            return "trigger_dormancy"
        if engine.settlement == SettlementPhase.DISTRIBUTING:
            engine.advance_distribution(now)
            return "advance_distribution"
        if engine.settlement == SettlementPhase.MATCHING or engine.pending_outcome is not None:
            engine.advance_matching(now)
            return "advance_matching"
        if engine.can_resolve(now):
            engine.resolve_period(now)
            return "resolve_period"
        if not engine.state.closed and engine.phase(now) == Phase.CLOSED:
            engine.close_game(now)
            return "close_game"
        return ""

    def step(self, now: datetime) -> List[str]:
        """
        Run every applicable action at `now` until the engine is stable.

        Returns:
            Names of the actions taken, in order
        """
        taken: List[str] = []
        for _ in range(self.max_calls):
            action = self._next_action(now)
            if not action:
                break
            taken.append(action)
            self.actions.append((now, action))
        else:
            if self.verbose:
                print(f"[KEEPER] stopped after {self.max_calls} calls at {now}")
        return taken

    def run(self, timestamps: Iterable[datetime]) -> List[KeeperAction]:
        """Step through timestamps in order. Returns every action taken."""
        start = len(self.actions)
        for now in timestamps:
            self.step(now)
        return self.actions[start:]
