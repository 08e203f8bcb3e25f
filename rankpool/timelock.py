"""
timelock.py - Oracle feed change timelock

The operator proposes feed changes; each becomes executable by anyone once
its delay has elapsed, and the operator can cancel it before then.

Core concepts:
1. FeedChange: Immutable proposal (asset index, new feed, due time)
2. FeedTimelock: Heap-ordered queue of pending proposals
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional
import heapq

from .core import AlreadyDone, TooEarly, PreconditionViolation
from .oracle import PriceFeed


@dataclass(frozen=True, slots=True)
class FeedChange:
    """
    Immutable proposal to replace one asset's price feed.

    Sorting: by due time, then asset index, then proposal sequence.
    """
    due_at: datetime
    asset_index: int
    feed: PriceFeed
    sequence: int = 0

    def __lt__(self, other: 'FeedChange') -> bool:
        return (self.due_at, self.asset_index, self.sequence) < (
            other.due_at, other.asset_index, other.sequence
        )

    @property
    def change_id(self) -> str:
        """Deterministic ID for cancellation and execution."""
        return (
            f"feed:{self.asset_index}:{self.feed.endpoint}:"
            f"{self.due_at.isoformat()}:{self.sequence}"
        )


class FeedTimelock:
    """
    Priority queue of pending feed changes with a fixed delay.

    Example:
        timelock = FeedTimelock(timedelta(days=2))
        change_id = timelock.propose(3, PriceFeed("SOL/USD"), now)
        ...
        change = timelock.take(change_id, now + timedelta(days=2))
    """

    def __init__(self, delay: timedelta):
        self.delay = delay
        self._heap: List[FeedChange] = []
        self._pending: Dict[str, FeedChange] = {}
        self._sequence = 0

    def propose(self, asset_index: int, feed: PriceFeed, now: datetime) -> str:
        """Queue a change due at now + delay. Returns its change_id."""
        self._sequence += 1
        change = FeedChange(now + self.delay, asset_index, feed, self._sequence)
        heapq.heappush(self._heap, change)
        self._pending[change.change_id] = change
        return change.change_id

    def cancel(self, change_id: str) -> FeedChange:
        """
        Drop a pending change.

        Raises:
            PreconditionViolation: If no such change is pending
        """
        change = self._pending.pop(change_id, None)
        if change is None:
            raise PreconditionViolation(f"no pending feed change {change_id}")
        return change

    def take(self, change_id: str, now: datetime) -> FeedChange:
        """
        Remove and return a due change for execution.

        Raises:
            AlreadyDone: If the change is not pending (executed or cancelled)
            TooEarly: If the delay has not elapsed
        """
        change = self._pending.get(change_id)
        if change is None:
            raise AlreadyDone(f"feed change {change_id} is not pending")
        if now < change.due_at:
            raise TooEarly(f"feed change {change_id} due at {change.due_at}")
        del self._pending[change_id]
        return change

    def get_due(self, as_of: datetime) -> List[FeedChange]:
        """
        Pending changes due at or before as_of, in execution order.

        Cancelled and executed entries are dropped from the heap as they
        surface; live ones stay queued until taken.
        """
        due = []
        while self._heap and self._heap[0].due_at <= as_of:
            change = heapq.heappop(self._heap)
            if change.change_id in self._pending:
                due.append(change)
        for change in due:
            heapq.heappush(self._heap, change)
        return due

    def pending_count(self) -> int:
        return len(self._pending)

    def peek_next(self) -> Optional[FeedChange]:
        """Earliest pending change without removing it."""
        while self._heap and self._heap[0].change_id not in self._pending:
            heapq.heappop(self._heap)
        return self._heap[0] if self._heap else None
