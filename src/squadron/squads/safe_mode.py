"""SafeModeLedger — remembers rooms seen under an active safe mode.

A squad that meets safe mode flees immediately.  The ledger keeps the room
flagged for a while so other squads stop choosing it as a destination
without having to see it first.
"""

from __future__ import annotations


class SafeModeLedger:
    """room -> tick until which the room is avoided."""

    def __init__(self, memory_ticks: int = 1500) -> None:
        self._memory_ticks = memory_ticks
        self._until: dict[str, int] = {}

    def record(self, room: str, tick: int) -> None:
        self._until[room] = max(self._until.get(room, 0), tick + self._memory_ticks)

    def is_flagged(self, room: str | None, tick: int) -> bool:
        if room is None:
            return False
        until = self._until.get(room)
        if until is None:
            return False
        if until <= tick:
            del self._until[room]
            return False
        return True

    def remaining(self, room: str, tick: int) -> int:
        return max(0, self._until.get(room, 0) - tick)
