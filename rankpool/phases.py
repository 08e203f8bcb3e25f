"""
phases.py - Phase & Lifecycle Controller

Long-horizon economic phases over a fixed number of periods:

    ACCUMULATING   periods 1 .. total - winddown
                   constant treasury share, constant payout rate
    WINDING_DOWN   the final `winddown` periods, founding members only
                   treasury share tapers linearly to zero,
                   payout rate rises linearly to the ceiling
    CLOSED         period > total, or the wall-clock deadline passed,
                   or the game was closed by closure / dormancy

Founding members are participants whose continuous tenure reached
founding_tenure_periods. Status is permanent once granted.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Set

from .params import GameParameters


class Phase(Enum):
    ACCUMULATING = "accumulating"
    WINDING_DOWN = "winding_down"
    CLOSED = "closed"


class SettlementPhase(Enum):
    """Per-period settlement state machine: IDLE -> MATCHING -> DISTRIBUTING -> IDLE."""
    IDLE = "idle"
    MATCHING = "matching"
    DISTRIBUTING = "distributing"
    DORMANT = "dormant"


@dataclass(slots=True)
class PhaseState:
    """
    Long-horizon state.

    Attributes:
        period: Current period counter (starts at 1)
        started_at: Game start time
        founders: Participant id -> period in which founding status was granted
        closed: Set once closure, dormancy or rescue ended the game
        treasury_renounced: Operator committed to zero future treasury take
    """
    period: int
    started_at: datetime
    founders: Dict[str, int] = field(default_factory=dict)
    closed: bool = False
    treasury_renounced: bool = False


def current_phase(state: PhaseState, params: GameParameters, now: datetime) -> Phase:
    """Derive the economic phase from the period counter and time."""
    if state.closed:
        return Phase.CLOSED
    if state.period > params.total_periods:
        return Phase.CLOSED
    if now >= state.started_at + params.game_duration:
        return Phase.CLOSED
    if state.period > params.accumulation_periods:
        return Phase.WINDING_DOWN
    return Phase.ACCUMULATING


def winddown_progress(state: PhaseState, params: GameParameters) -> int:
    """Wind-down periods reached so far (0 during accumulation)."""
    return max(0, min(state.period, params.total_periods) - params.accumulation_periods)


def treasury_share_bps(state: PhaseState, params: GameParameters) -> int:
    """Treasury share of intake for the current period."""
    if state.treasury_renounced:
        return 0
    if params.winddown_periods == 0:
        return params.treasury_bps
    k = winddown_progress(state, params)
    return params.treasury_bps * (params.winddown_periods - k) // params.winddown_periods


def payout_rate_bps(state: PhaseState, params: GameParameters) -> int:
    """Share of the pot allocated to the current period's pool."""
    if params.winddown_periods == 0:
        return params.base_payout_rate_bps
    k = winddown_progress(state, params)
    spread = params.max_payout_rate_bps - params.base_payout_rate_bps
    return params.base_payout_rate_bps + spread * k // params.winddown_periods


def qualifies_as_founder(tenure: int, params: GameParameters) -> bool:
    return tenure >= params.founding_tenure_periods


def grant_founder(state: PhaseState, participant_id: str) -> bool:
    """Record founding status. Returns True if newly granted."""
    if participant_id in state.founders:
        return False
    state.founders[participant_id] = state.period
    return True


def founder_ids(state: PhaseState) -> Set[str]:
    return set(state.founders)
