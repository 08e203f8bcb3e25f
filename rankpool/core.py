"""
Core types and pure functions for the settlement ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only ledger access
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError and the settlement error taxonomy
4. Bucket wallet names shared by the accountant and the engine
5. Transfer rules: pure validation functions for moves
6. Unit factory for the settlement asset

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_DOWN, getcontext
from enum import Enum
import hashlib
from typing import (
    Dict, List, Set, Optional, Callable, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Settlement arithmetic must be deterministic. The global context is set once
# at import time.
#
# PRECONDITION: No other code should modify the global Decimal context.
#
#   - prec=50: enough headroom for BPS products on large pots
#   - rounding=ROUND_HALF_EVEN: banker's rounding for ledger rounding;
#     prize splits floor explicitly with ROUND_DOWN
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for intake and yield. Its balance is minus the total value
# ever taken in; it is exempt from balance validation.
SYSTEM_WALLET = "system"

UNIT_TYPE_SETTLEMENT = "SETTLEMENT"

# Bucket wallets. Participant credits live in "unclaimed:<participant_id>".
POT_WALLET = "pot"
TREASURY_WALLET = "treasury"
JACKPOT_WALLET = "jackpot"
WITHDRAWN_WALLET = "withdrawn"
CLOSURE_WALLET = "closure_pool"
DORMANCY_WALLET = "dormancy_pending"
UNCLAIMED_PREFIX = "unclaimed:"

# Tier pending wallets, keyed by match count.
TIER_WALLETS = {
    5: "tier_5",
    4: "tier_4",
    3: "tier_3",
}

# Quantities with absolute value below this threshold are treated as zero.
QUANTITY_EPSILON = Decimal("1e-12")

# Default decimal places of the settlement asset (a 6-decimal stablecoin).
SETTLEMENT_DECIMAL_PLACES = 6

DECIMAL_ROUNDING = {
    UNIT_TYPE_SETTLEMENT: ROUND_HALF_EVEN,
    'SPLIT': ROUND_DOWN,
}


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, Decimal]


def unclaimed_wallet(participant_id: str) -> str:
    """Return the credit wallet name for a participant."""
    return f"{UNCLAIMED_PREFIX}{participant_id}"


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Functions accepting a LedgerView parameter declare their read-only intent.
    The Ledger class implements this protocol but also provides mutation
    methods.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Return the balance of a specific unit in a wallet.

        Returns Decimal("0") if the wallet holds nothing of the unit.
        """
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across all wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    ALREADY_APPLIED: Transaction intent was previously processed (idempotent).
    REJECTED: Transaction failed validation (balance constraints, transfer
              rules, unregistered wallets).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """
    Classification of where a transaction originated.

    Used for audit trails and reconciliation.
    """
    INTAKE = "intake"                     # Participant payment
    SETTLEMENT = "settlement"             # Allocation, matching payouts, finalisation
    CLAIM = "claim"                       # Participant-initiated withdrawal
    OPERATOR = "operator"                 # Treasury withdrawal
    YIELD = "yield"                       # External reserve gain or loss
    RECOVERY = "recovery"                 # Unwind, dormancy, closure, rescue


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class TransferRuleViolation(LedgerError):
    """Raised when a move violates the unit's transfer rule."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when operating on a unit that has not been registered."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


class SettlementError(LedgerError):
    """Base exception for settlement engine errors."""
    pass


class PreconditionViolation(SettlementError):
    """An operation was called in a state that does not permit it. Nothing changed."""
    pass


class WrongPhase(PreconditionViolation):
    """The settlement or economic phase does not allow the operation."""
    pass


class TooEarly(PreconditionViolation):
    """A time precondition (cooldown, timeout, threshold) has not elapsed."""
    pass


class StaleTimestamp(PreconditionViolation):
    """The call is dated before the ledger clock."""
    pass


class AlreadyDone(PreconditionViolation):
    """A one-shot operation was already performed."""
    pass


class Unauthorized(PreconditionViolation):
    """Caller is not the operator for an operator-restricted operation."""
    pass


class InvalidSelection(PreconditionViolation):
    """A selection has the wrong size, an out-of-range index, or duplicates."""
    pass


class UnknownParticipant(PreconditionViolation):
    """No active participant with the given id."""
    pass


class SolvencyViolation(SettlementError):
    """
    Custody value and ledger buckets disagree beyond tolerance.

    Fatal: the operation is aborted before any mutation.
    """
    pass


class WithdrawalFailed(SettlementError):
    """Custody refused a withdrawal. The credit is intact; retry later."""
    pass


class RegistryInvariantError(SettlementError):
    """A registry record's position disagrees with its slot. Logic error."""
    pass


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin (INTAKE, SETTLEMENT, ...)
        source_id: Identifier of the specific source (participant, operation)
        period: Settlement period the transaction belongs to (if applicable)
        event_type: Specific event (e.g., "ALLOCATE", "TIER_PAYOUT", "RESEED")
    """
    origin_type: OriginType
    source_id: str
    period: Optional[int] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.period is not None:
            parts.append(f"period={self.period}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two bucket wallets.

    Attributes:
        quantity: The amount to transfer (must be finite and non-zero).
        unit_symbol: The settlement asset symbol (e.g., "USDC").
        source: The wallet ID debited.
        dest: The wallet ID credited.
        contract_id: Unique reference of the operation generating this move.
        metadata: Optional additional information about the move.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if self.quantity.is_infinite() or self.quantity.is_nan():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if abs(self.quantity) < QUANTITY_EPSILON:
            raise ValueError("Move quantity is effectively zero")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _normalize_decimal(d: Decimal) -> str:
    """
    Normalize a Decimal to a canonical string representation.

    Decimal("1.0") and Decimal("1.00") both become "1".
    """
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _compute_intent_id(moves: Tuple[Move, ...], origin: TransactionOrigin) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    Based solely on moves and origin, never on timestamps. Same inputs always
    produce the same intent_id, which the ledger uses to refuse double
    application.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (_normalize_decimal(m.quantity), m.unit_symbol, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.period is not None:
        content_parts.append(f"period:{origin.period}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for m in sorted_moves:
        qty = _normalize_decimal(m.quantity)
        content_parts.append(f"move:{qty}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction before execution - represents INTENT.

    Lifecycle:
    1. The accountant creates a PendingTransaction with moves, origin, timestamp
    2. intent_id is auto-computed from content (deterministic hash)
    3. Ledger.execute() validates and executes, creating a Transaction record
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            object.__setattr__(self, 'intent_id', _compute_intent_id(self.moves, self.origin))

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves."""
        return not self.moves

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves.

    Args:
        view: Read-only ledger view (provides current_time)
        moves: Moves to include in the transaction
        origin: Transaction origin (defaults to a SETTLEMENT origin)

    Returns:
        A PendingTransaction ready for execution
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.SETTLEMENT,
            source_id="engine",
        )
    return PendingTransaction(
        moves=tuple(moves),
        origin=origin,
        timestamp=view.current_time,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of bucket movements - represents FACT.

    Attributes:
        moves: Tuple of value transfers between wallets
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves:
            raise ValueError("Transaction must have moves")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        lines = [
            f"Transaction {self.exec_id} [{self.origin}]",
            f"  intent_id={self.intent_id} seq={self.sequence_number} at {self.execution_time}",
        ]
        for i, move in enumerate(self.moves):
            lines.append(f"  [{i}] {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}")
        return "\n".join(lines)


# Type alias for transfer rule functions.
# Transfer rules validate moves and raise TransferRuleViolation if invalid.
TransferRule = Callable[[LedgerView, Move], None]


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of the settlement asset held by the ledger.

    Attributes:
        symbol: Short identifier (e.g., "USDC").
        name: Human-readable name.
        unit_type: Category of the unit.
        min_balance: Minimum allowed balance in any non-system wallet.
        max_balance: Maximum allowed balance in any wallet.
        decimal_places: Number of decimal places for rounding (None = no rounding).
        transfer_rule: Optional function to validate moves involving this unit.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = None
    transfer_rule: Optional[TransferRule] = None

    @property
    def quantum(self) -> Decimal:
        """Smallest representable amount (Decimal("1") if unrounded)."""
        if self.decimal_places is None:
            return Decimal("1")
        return Decimal(10) ** -self.decimal_places

    def round(self, value: Decimal) -> Decimal:
        """
        Round a value to this unit's decimal precision using quantize.

        Returns the value unchanged if decimal_places is None.
        """
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        rounding_mode = DECIMAL_ROUNDING.get(self.unit_type, ROUND_HALF_EVEN)
        return value.quantize(self.quantum, rounding=rounding_mode)

    def floor(self, value: Decimal) -> Decimal:
        """Round a value down to this unit's precision (used for prize splits)."""
        if self.decimal_places is None:
            return value.to_integral_value(rounding=ROUND_DOWN)
        return value.quantize(self.quantum, rounding=DECIMAL_ROUNDING['SPLIT'])


# ============================================================================
# TRANSFER RULES
# ============================================================================

def withdrawn_is_terminal(view: LedgerView, move: Move) -> None:
    """
    Value that left custody never comes back into a bucket.

    The withdrawn bucket is a historical total; only intake from the system
    wallet may create value, and nothing may be debited from withdrawn.

    Raises:
        TransferRuleViolation: If the move debits the withdrawn bucket.
    """
    if move.source == WITHDRAWN_WALLET:
        raise TransferRuleViolation(
            f"{move.unit_symbol}: cannot move value out of {WITHDRAWN_WALLET}"
        )


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def settlement_asset(
    symbol: str = "USDC",
    name: str = "USD Coin",
    decimal_places: int = SETTLEMENT_DECIMAL_PLACES,
) -> Unit:
    """
    Create the settlement asset unit.

    Buckets can never go negative (min_balance 0); the system wallet is exempt
    and carries minus the total intake.

    Args:
        symbol: Asset code (default "USDC").
        name: Full name of the asset.
        decimal_places: Number of decimal places for amounts (default: 6).

    Returns:
        A Unit configured as the settlement asset.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_SETTLEMENT,
        decimal_places=decimal_places,
        min_balance=Decimal("0"),
        transfer_rule=withdrawn_is_terminal,
    )
