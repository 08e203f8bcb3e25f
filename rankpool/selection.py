"""
selection.py - Selection Codec

A selection is a fixed-size subset of asset indices from the tracked universe,
stored as a bitmask with bit i set for asset i. Overlap between a selection and
an outcome is the population count of their bitwise AND.

All functions are pure.
"""

from __future__ import annotations
from typing import Iterable, Sequence, Tuple

from .core import InvalidSelection
from .params import UNIVERSE_SIZE, SELECTION_SIZE


def validate_selection(
    indices: Sequence[int],
    universe_size: int = UNIVERSE_SIZE,
    selection_size: int = SELECTION_SIZE,
) -> Tuple[int, ...]:
    """
    Check a selection and return it sorted.

    Raises:
        InvalidSelection: wrong size, non-integer or out-of-range index, or a
            duplicate index
    """
    if len(indices) != selection_size:
        raise InvalidSelection(
            f"selection must contain {selection_size} assets, got {len(indices)}"
        )
    seen = set()
    for index in indices:
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidSelection(f"asset index must be an integer, got {index!r}")
        if not 0 <= index < universe_size:
            raise InvalidSelection(f"asset index {index} outside [0, {universe_size})")
        if index in seen:
            raise InvalidSelection(f"duplicate asset index {index}")
        seen.add(index)
    return tuple(sorted(indices))


def encode_selection(
    indices: Sequence[int],
    universe_size: int = UNIVERSE_SIZE,
    selection_size: int = SELECTION_SIZE,
) -> int:
    """Validate and encode a selection as a bitmask."""
    mask = 0
    for index in validate_selection(indices, universe_size, selection_size):
        mask |= 1 << index
    return mask


def decode_selection(mask: int) -> Tuple[int, ...]:
    """Return the sorted asset indices set in a mask."""
    if mask < 0:
        raise ValueError(f"mask cannot be negative, got {mask}")
    indices = []
    index = 0
    while mask:
        if mask & 1:
            indices.append(index)
        mask >>= 1
        index += 1
    return tuple(indices)


def mask_from_indices(indices: Iterable[int]) -> int:
    """Encode indices without size validation (used for outcomes)."""
    mask = 0
    for index in indices:
        mask |= 1 << index
    return mask


def match_count(selection_mask: int, outcome_mask: int) -> int:
    """Number of assets shared by a selection and the outcome."""
    return bin(selection_mask & outcome_mask).count("1")
