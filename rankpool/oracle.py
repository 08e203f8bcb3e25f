"""
oracle.py - Price oracle collaborator interface

The price oracle network is external. The engine only needs a per-asset
"read latest price" call that returns either a price with its last update time
or a failure signal. Failures are values (OracleRead.failure), never
exceptions, so the resolver can degrade one asset without failing the period.

Classes:
- PriceFeed: Per-asset configuration (endpoint and staleness bound)
- OracleRead: Result of one read (success or failure variant)
- PriceOracle: Protocol for oracle implementations
- StaticPriceOracle: Latest-value oracle with failure injection
- TimeSeriesPriceOracle: Historical oracle answering as of a timestamp
"""

from __future__ import annotations
from bisect import bisect_right
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Protocol, Set, Tuple, runtime_checkable


@dataclass(frozen=True, slots=True)
class PriceFeed:
    """
    Oracle endpoint for one tracked asset.

    Attributes:
        endpoint: Identifier the oracle answers for (e.g., "BTC/USD")
        staleness: Maximum accepted age of the oracle's last update
    """
    endpoint: str
    staleness: timedelta = timedelta(hours=1)

    def __post_init__(self):
        if not self.endpoint or not self.endpoint.strip():
            raise ValueError("PriceFeed endpoint cannot be empty")
        if self.staleness <= timedelta(0):
            raise ValueError(f"staleness must be positive, got {self.staleness}")


@dataclass(frozen=True, slots=True)
class OracleRead:
    """Outcome of a single oracle read."""
    ok: bool
    price: Optional[Decimal] = None
    updated_at: Optional[datetime] = None
    error: str = ""

    @classmethod
    def success(cls, price: Decimal, updated_at: datetime) -> 'OracleRead':
        return cls(ok=True, price=price, updated_at=updated_at)

    @classmethod
    def failure(cls, error: str) -> 'OracleRead':
        return cls(ok=False, error=error)


@runtime_checkable
class PriceOracle(Protocol):
    """
    Protocol for price oracles.

    latest_price() must not raise for an unavailable endpoint; it returns
    OracleRead.failure() instead.
    """

    def latest_price(self, endpoint: str, as_of: datetime) -> OracleRead:
        """Read the latest price published at or before as_of."""
        ...


class StaticPriceOracle:
    """
    Oracle holding one (price, updated_at) pair per endpoint.

    Endpoints can be marked as failing to simulate reverted reads.
    """

    def __init__(self, prices: Optional[Dict[str, Tuple[Decimal, datetime]]] = None):
        self.prices: Dict[str, Tuple[Decimal, datetime]] = dict(prices or {})
        self.failing: Set[str] = set()

    def latest_price(self, endpoint: str, as_of: datetime) -> OracleRead:
        if endpoint in self.failing:
            return OracleRead.failure(f"{endpoint}: read reverted")
        entry = self.prices.get(endpoint)
        if entry is None:
            return OracleRead.failure(f"{endpoint}: no data")
        price, updated_at = entry
        return OracleRead.success(price, updated_at)

    def update_price(self, endpoint: str, price: Decimal, updated_at: datetime):
        """Publish a new price for an endpoint."""
        self.prices[endpoint] = (price, updated_at)

    def update_prices(self, prices: Dict[str, Decimal], updated_at: datetime):
        """Publish several prices with the same update time."""
        for endpoint, price in prices.items():
            self.update_price(endpoint, price, updated_at)

    def fail(self, *endpoints: str):
        """Make reads for these endpoints fail until restored."""
        self.failing.update(endpoints)

    def restore(self, *endpoints: str):
        """Stop failing reads for these endpoints (all if none given)."""
        if endpoints:
            self.failing.difference_update(endpoints)
        else:
            self.failing.clear()

    def __repr__(self):
        return f"StaticPriceOracle({len(self.prices)} endpoints, {len(self.failing)} failing)"


class TimeSeriesPriceOracle:
    """
    Oracle with historical observations per endpoint.

    Answers with the most recent observation at or before the requested time;
    updated_at is that observation's timestamp.

    Examples:
        oracle = TimeSeriesPriceOracle({
            'BTC/USD': [(t0, Decimal("60000")), (t1, Decimal("61000"))],
        })
        oracle.add_price('ETH/USD', t0, Decimal("3000"))
    """

    def __init__(self, price_paths: Optional[Dict[str, List[Tuple[datetime, Decimal]]]] = None):
        self.price_history: Dict[str, List[Tuple[datetime, Decimal]]] = {}
        if price_paths:
            for endpoint, path in price_paths.items():
                if not path:
                    continue
                self.price_history[endpoint] = sorted(path, key=lambda x: x[0])

    def add_price(self, endpoint: str, timestamp: datetime, price: Decimal):
        """Add an observation, keeping the history sorted by time."""
        history = self.price_history.setdefault(endpoint, [])
        history.append((timestamp, price))
        history.sort(key=lambda x: x[0])

    def add_prices(self, prices: Dict[str, Decimal], timestamp: datetime):
        """Add observations for several endpoints at the same time."""
        for endpoint, price in prices.items():
            self.add_price(endpoint, timestamp, price)

    def latest_price(self, endpoint: str, as_of: datetime) -> OracleRead:
        history = self.price_history.get(endpoint)
        if not history:
            return OracleRead.failure(f"{endpoint}: no data")

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, as_of)
        if idx == 0:
            return OracleRead.failure(f"{endpoint}: no observation at or before {as_of}")

        updated_at, price = history[idx - 1]
        return OracleRead.success(price, updated_at)

    def __repr__(self):
        total = sum(len(history) for history in self.price_history.values())
        return f"TimeSeriesPriceOracle({len(self.price_history)} endpoints, {total} observations)"
