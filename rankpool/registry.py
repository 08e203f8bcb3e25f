"""
registry.py - Participant Registry

An index-stable arena of active participants: a list of live records plus a
map from participant id to slot. Removal swaps the last record into the freed
slot and updates that record's position, so removal is O(1).

Traversal contract: a pass that removes only the record at its cursor and does
not advance the cursor after a removal visits every record that was present
when the pass began exactly once. The record swapped into the cursor slot
always comes from ahead of the cursor.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from .core import RegistryInvariantError, UnknownParticipant


@dataclass(slots=True)
class ParticipantRecord:
    """
    A participant's subscription.

    Attributes:
        participant_id: Unique identifier (also the credit wallet suffix)
        selections: One or two selection bitmasks, each scored independently
        start_period: First period the participant is matched in
        end_period: Last period the participant is matched in
        enrolled_at: Time of the enrolling payment
        position: Slot in the registry while active, None otherwise
        active: False once removed from the registry
    """
    participant_id: str
    selections: Tuple[int, ...]
    start_period: int
    end_period: int
    enrolled_at: datetime
    position: Optional[int] = None
    active: bool = False

    def is_expired(self, period: int) -> bool:
        """True once the subscription no longer covers the given period."""
        return self.end_period < period

    def is_eligible(self, period: int) -> bool:
        """True if the subscription covers the given period."""
        return self.start_period <= period <= self.end_period

    def tenure(self, period: int) -> int:
        """Continuous periods enrolled up to and including the given period."""
        return max(0, min(period, self.end_period) - self.start_period + 1)


class ParticipantRegistry:
    """
    Ordered, mutable collection of active participants.

    Example:
        registry = ParticipantRegistry()
        registry.enroll(record)
        for record in registry.page(cursor, 100):
            ...
        registry.remove("alice")
    """

    def __init__(self):
        self._slots: List[ParticipantRecord] = []
        self._index: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, participant_id: str) -> bool:
        return participant_id in self._index

    def __iter__(self) -> Iterator[ParticipantRecord]:
        return iter(list(self._slots))

    def get(self, participant_id: str) -> ParticipantRecord:
        """
        Return the active record for a participant.

        Raises:
            UnknownParticipant: If the participant is not registered
        """
        slot = self._index.get(participant_id)
        if slot is None:
            raise UnknownParticipant(f"participant {participant_id} is not active")
        return self._slots[slot]

    def at(self, slot: int) -> ParticipantRecord:
        """Return the record stored in a slot."""
        return self._slots[slot]

    def ids(self) -> List[str]:
        """Participant ids in slot order."""
        return [record.participant_id for record in self._slots]

    def enroll(self, record: ParticipantRecord) -> int:
        """
        Append a record; its position is the previous length.

        Raises:
            ValueError: If the participant is already registered
        """
        if record.participant_id in self._index:
            raise ValueError(f"participant {record.participant_id} already registered")
        record.position = len(self._slots)
        record.active = True
        self._slots.append(record)
        self._index[record.participant_id] = record.position
        return record.position

    def remove(self, participant_id: str) -> ParticipantRecord:
        """
        Swap-and-pop removal.

        The last record moves into the removed record's slot and its position
        is updated. The removed record is deactivated.

        Raises:
            UnknownParticipant: If the participant is not registered
            RegistryInvariantError: If the record's position is inconsistent
        """
        slot = self._index.get(participant_id)
        if slot is None:
            raise UnknownParticipant(f"participant {participant_id} is not active")
        record = self._slots[slot]
        if record.position != slot or record.participant_id != participant_id:
            raise RegistryInvariantError(
                f"record {participant_id} at slot {slot} claims position {record.position}"
            )

        last_slot = len(self._slots) - 1
        if slot != last_slot:
            moved = self._slots[last_slot]
            self._slots[slot] = moved
            moved.position = slot
            self._index[moved.participant_id] = slot
        self._slots.pop()
        del self._index[participant_id]

        record.position = None
        record.active = False
        return record

    def page(self, cursor: int, limit: int) -> List[ParticipantRecord]:
        """Records from slot `cursor`, at most `limit` of them."""
        if cursor < 0 or limit < 0:
            raise ValueError("cursor and limit must be non-negative")
        return self._slots[cursor:cursor + limit]

    def check_positions(self) -> None:
        """
        Verify every record's position matches its slot.

        Raises:
            RegistryInvariantError: On the first inconsistency
        """
        if len(self._index) != len(self._slots):
            raise RegistryInvariantError(
                f"index holds {len(self._index)} ids for {len(self._slots)} slots"
            )
        for slot, record in enumerate(self._slots):
            if record.position != slot or not record.active:
                raise RegistryInvariantError(
                    f"record {record.participant_id} at slot {slot} claims position {record.position}"
                )
            if self._index.get(record.participant_id) != slot:
                raise RegistryInvariantError(
                    f"index maps {record.participant_id} to {self._index.get(record.participant_id)}, slot is {slot}"
                )
