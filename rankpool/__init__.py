"""
rankpool - Recurring ranked-selection settlement ledger

Participants pick 6 of 42 tracked assets; each period the top performers by
oracle price change form the outcome, and a shared prize reserve is paid out
across match tiers and a rolling jackpot.

Usage:
    from rankpool import SettlementEngine, SettlementKeeper, PriceFeed
    from rankpool import StaticPriceOracle, InMemoryCustody

    engine = SettlementEngine(feeds, oracle, custody, "operator", start)
    engine.enroll("alice", [[0, 1, 2, 3, 4, 5]], periods=10, now=start)

    keeper = SettlementKeeper(engine)
    keeper.step(start + timedelta(days=7))   # resolve, match, distribute

    engine.unclaimed("alice")
    engine.claim_prize("alice", now)
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    ExecuteResult,
    LedgerError,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    SettlementError,
    PreconditionViolation,
    WrongPhase,
    TooEarly,
    StaleTimestamp,
    AlreadyDone,
    Unauthorized,
    InvalidSelection,
    UnknownParticipant,
    SolvencyViolation,
    WithdrawalFailed,
    RegistryInvariantError,
    settlement_asset,
    unclaimed_wallet,
    SYSTEM_WALLET,
    POT_WALLET,
    TREASURY_WALLET,
    JACKPOT_WALLET,
    WITHDRAWN_WALLET,
    CLOSURE_WALLET,
    DORMANCY_WALLET,
    TIER_WALLETS,
)

# Ledger
from .ledger import Ledger
from .accountant import LedgerAccountant

# Rules and parameters
from .params import (
    GameParameters,
    UNIVERSE_SIZE,
    SELECTION_SIZE,
    MAX_SELECTIONS,
    JACKPOT_TIER,
    LOWER_TIERS,
    TIER_BPS,
)

# Selections and registry
from .selection import (
    validate_selection,
    encode_selection,
    decode_selection,
    mask_from_indices,
    match_count,
)
from .registry import ParticipantRecord, ParticipantRegistry

# Collaborators
from .oracle import (
    PriceFeed,
    OracleRead,
    PriceOracle,
    StaticPriceOracle,
    TimeSeriesPriceOracle,
)
from .custody import Custody, WithdrawResult, InMemoryCustody

# Settlement
from .resolver import PeriodOutcome, compute_performance, rank_assets, resolve_outcome
from .phases import Phase, SettlementPhase, PhaseState
from .matching import PeriodAllocation, SettlementProgress, MatchingBatchResult
from .distribution import DistributionBatchResult
from .recovery import ClosureSummary, DormancyProgress
from .timelock import FeedChange, FeedTimelock
from .engine import SettlementEngine
from .keeper import SettlementKeeper

# Odds
from .odds import (
    match_distribution,
    tier_probability,
    tier_probabilities,
    expected_winners,
    expected_prize_per_winner,
)

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin',
    'OriginType', 'build_transaction', 'Unit', 'ExecuteResult', 'settlement_asset',
    'unclaimed_wallet', 'SYSTEM_WALLET', 'POT_WALLET', 'TREASURY_WALLET',
    'JACKPOT_WALLET', 'WITHDRAWN_WALLET', 'CLOSURE_WALLET', 'DORMANCY_WALLET',
    'TIER_WALLETS',
    # Errors
    'LedgerError', 'TransferRuleViolation', 'UnitNotRegistered', 'WalletNotRegistered',
    'SettlementError', 'PreconditionViolation', 'WrongPhase', 'TooEarly',
    'StaleTimestamp', 'AlreadyDone', 'Unauthorized', 'InvalidSelection', 'UnknownParticipant',
    'SolvencyViolation', 'WithdrawalFailed', 'RegistryInvariantError',
    # Ledger
    'Ledger', 'LedgerAccountant',
    # Parameters
    'GameParameters', 'UNIVERSE_SIZE', 'SELECTION_SIZE', 'MAX_SELECTIONS',
    'JACKPOT_TIER', 'LOWER_TIERS', 'TIER_BPS',
    # Selections and registry
    'validate_selection', 'encode_selection', 'decode_selection',
    'mask_from_indices', 'match_count', 'ParticipantRecord', 'ParticipantRegistry',
    # Collaborators
    'PriceFeed', 'OracleRead', 'PriceOracle', 'StaticPriceOracle',
    'TimeSeriesPriceOracle', 'Custody', 'WithdrawResult', 'InMemoryCustody',
    # Settlement
    'PeriodOutcome', 'compute_performance', 'rank_assets', 'resolve_outcome',
    'Phase', 'SettlementPhase', 'PhaseState', 'PeriodAllocation',
    'SettlementProgress', 'MatchingBatchResult', 'DistributionBatchResult',
    'ClosureSummary', 'DormancyProgress', 'FeedChange', 'FeedTimelock',
    'SettlementEngine', 'SettlementKeeper',
    # Odds
    'match_distribution', 'tier_probability', 'tier_probabilities',
    'expected_winners', 'expected_prize_per_winner',
]

__version__ = '1.0.0'
