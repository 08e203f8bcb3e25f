"""
odds.py - Baseline tier odds

Reference odds for a selection made without skill: if the outcome were a
uniformly random K-subset of the N-asset universe, the match count of any
fixed selection is hypergeometric,

    P(m) = C(K, m) * C(N - K, K - m) / C(N, K)

With W entries per period, the number of winners in a tier is binomial with
the tier probability. These figures are what an operator compares observed
winner counts against, and what sets expectations for tier prizes.

Functions accept scalars or numpy arrays where noted.
"""

import numpy as np
from typing import Dict, Union
from scipy.stats import binom, hypergeom

from .params import UNIVERSE_SIZE, SELECTION_SIZE, JACKPOT_TIER, LOWER_TIERS


Numeric = Union[float, np.ndarray]

TIERS = (JACKPOT_TIER,) + LOWER_TIERS


def match_distribution(universe_size: int = UNIVERSE_SIZE,
                       selection_size: int = SELECTION_SIZE) -> np.ndarray:
    """P(m matches) for m = 0..selection_size."""
    if not 0 < selection_size <= universe_size:
        raise ValueError("selection_size must be within (0, universe_size]")
    return hypergeom(universe_size, selection_size, selection_size).pmf(np.arange(selection_size + 1))


def tier_probability(matches: int, universe_size: int = UNIVERSE_SIZE,
                     selection_size: int = SELECTION_SIZE) -> float:
    """Probability that one random selection hits exactly `matches`."""
    if not 0 <= matches <= selection_size:
        raise ValueError(f"matches must be within [0, {selection_size}]")
    return float(match_distribution(universe_size, selection_size)[matches])


def tier_probabilities() -> Dict[int, float]:
    """Probability per paying tier for the game's universe."""
    dist = match_distribution()
    return {tier: float(dist[tier]) for tier in TIERS}


def expected_winners(entries: Numeric) -> Dict[int, Numeric]:
    """Expected winner count per tier for a number of scored selections."""
    entries = np.asarray(entries, dtype=float)
    if np.any(entries < 0):
        raise ValueError("entries cannot be negative")
    return {tier: entries * p for tier, p in tier_probabilities().items()}


def no_winner_probability(tier: int, entries: Numeric) -> Numeric:
    """Probability that a tier has no winner (its pool rolls back to pot)."""
    return (1.0 - tier_probabilities()[tier]) ** np.asarray(entries, dtype=float)


def expected_jackpot_wait(entries: Numeric) -> Numeric:
    """Expected periods until the jackpot is hit, at a constant entry count."""
    hit = 1.0 - no_winner_probability(JACKPOT_TIER, entries)
    with np.errstate(divide='ignore'):
        return np.where(hit > 0, 1.0 / np.where(hit > 0, hit, 1.0), np.inf)


def expected_prize_per_winner(pool: float, tier: int, entries: int) -> float:
    """
    Expected prize of one winner of a tier.

    E[pool / W | W >= 1] with W ~ Binomial(entries, p_tier). Integer
    rounding of the split is ignored.
    """
    if entries < 1:
        raise ValueError("entries must be at least 1")
    if pool < 0:
        raise ValueError("pool cannot be negative")
    p = tier_probabilities()[tier]
    winners = np.arange(1, entries + 1)
    weights = binom.pmf(winners, entries, p)
    hit = weights.sum()
    if hit == 0:
        return 0.0
    return float(np.sum(pool / winners * weights) / hit)
