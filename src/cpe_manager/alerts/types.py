"""Notification priority levels.

Each member carries its rank and the emoji prefixed to chat messages.
Delivery methods compare against a minimum priority.
"""

from __future__ import annotations

import enum
import functools


@functools.total_ordering
class Priority(enum.Enum):
    """Notification priority, ordered LOW < MEDIUM < HIGH."""

    HIGH = ("high", 2, "\U0001f534")
    MEDIUM = ("medium", 1, "\U0001f7e1")
    LOW = ("low", 0, "\U0001f535")

    def __new__(cls, value: str, rank: int, emoji: str) -> Priority:
        member = object.__new__(cls)
        member._value_ = value
        member.rank = rank
        member.emoji = emoji
        return member

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Priority):
            return NotImplemented
        return self.rank < other.rank
