"""
custody.py - Settlement-asset custody collaborator

Custody holds the real settlement asset (possibly parked in a yield-bearing
reserve). The engine deposits intake, withdraws claims and treasury payouts,
and queries the current value to capture yield and check solvency.

withdraw() reports failure as a WithdrawResult value; the engine turns a
failure into a retryable error for that caller only.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Protocol, Tuple, runtime_checkable


@dataclass(frozen=True, slots=True)
class WithdrawResult:
    """Outcome of a custody withdrawal."""
    ok: bool
    amount: Decimal = Decimal("0")
    error: str = ""

    @classmethod
    def success(cls, amount: Decimal) -> 'WithdrawResult':
        return cls(ok=True, amount=amount)

    @classmethod
    def failure(cls, error: str) -> 'WithdrawResult':
        return cls(ok=False, error=error)


@runtime_checkable
class Custody(Protocol):
    """Protocol for the custody collaborator."""

    def deposit(self, amount: Decimal) -> None:
        """Take an intake payment into custody."""
        ...

    def withdraw(self, amount: Decimal, recipient: str) -> WithdrawResult:
        """Send value out of custody to a recipient."""
        ...

    def current_value(self) -> Decimal:
        """Total value currently held, including accrued yield."""
        ...


class InMemoryCustody:
    """
    Custody simulation with a liquid buffer and a yield-bearing reserve.

    Withdrawals are served from liquid funds; anything beyond available
    liquidity fails. Yield and losses are applied to the reserve.

    Example:
        custody = InMemoryCustody()
        custody.deposit(Decimal("100"))
        custody.accrue(Decimal("1.5"))
        custody.current_value()   # Decimal("101.5")
    """

    def __init__(self, liquidity_cap: Optional[Decimal] = None):
        """
        Args:
            liquidity_cap: Maximum amount withdrawable in a single call
                (None = unlimited)
        """
        self.held = Decimal("0")
        self.liquidity_cap = liquidity_cap
        self.frozen = False
        self.payouts: List[Tuple[str, Decimal]] = []

    def deposit(self, amount: Decimal) -> None:
        if amount < 0:
            raise ValueError(f"deposit amount cannot be negative, got {amount}")
        self.held += amount

    def withdraw(self, amount: Decimal, recipient: str) -> WithdrawResult:
        if self.frozen:
            return WithdrawResult.failure("custody frozen")
        if amount > self.held:
            return WithdrawResult.failure(f"insufficient funds: {amount} > {self.held}")
        if self.liquidity_cap is not None and amount > self.liquidity_cap:
            return WithdrawResult.failure(
                f"insufficient liquidity: {amount} > {self.liquidity_cap}"
            )
        self.held -= amount
        self.payouts.append((recipient, amount))
        return WithdrawResult.success(amount)

    def current_value(self) -> Decimal:
        return self.held

    def accrue(self, amount: Decimal) -> None:
        """Apply reserve yield (positive) or loss (negative)."""
        self.held = max(Decimal("0"), self.held + amount)

    def __repr__(self):
        return f"InMemoryCustody(held={self.held}, payouts={len(self.payouts)})"
