"""
Oplog timestamp value type.

A Timestamp identifies a position in the oplog stream. MongoDB stores it
as a BSON Timestamp: seconds since the epoch plus an increment that
orders operations within the same second.

Invariants:
    - Both components are non-negative integers
    - Ordering is by seconds, then increment
    - Instances are immutable and hashable
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True, order=True)
class Timestamp:
    """Position in the oplog.

    Attributes:
        seconds: Seconds since the Unix epoch
        increment: Ordinal of the operation within that second

    Example:
        >>> Timestamp(1000, 1) < Timestamp(1000, 2) < Timestamp(1001, 0)
        True
        >>> str(Timestamp(1000, 1))
        '1000:1'
    """

    seconds: int
    increment: int

    def __post_init__(self) -> None:
        if self.seconds < 0 or self.increment < 0:
            raise ValueError(
                f"Timestamp components must be non-negative, got {self.seconds}:{self.increment}"
            )

    def to_dict(self) -> Dict[str, int]:
        """Convert to dictionary for serialization."""
        return {"seconds": self.seconds, "increment": self.increment}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Timestamp:
        """Create from dictionary."""
        return cls(seconds=int(data["seconds"]), increment=int(data["increment"]))

    @classmethod
    def parse(cls, value: str) -> Timestamp:
        """Parse the ``seconds:increment`` form.

        Raises:
            ValueError: If the string is not two colon-separated integers
        """
        parts = value.strip().split(":")
        if len(parts) != 2:
            raise ValueError(f"Expected <seconds>:<increment>, got '{value}'")
        return cls(seconds=int(parts[0]), increment=int(parts[1]))

    @classmethod
    def from_bson(cls, ts: Any) -> Timestamp:
        """Create from a ``bson.timestamp.Timestamp``."""
        return cls(seconds=ts.time, increment=ts.inc)

    def to_bson(self) -> Any:
        """Convert to a ``bson.timestamp.Timestamp``."""
        from bson.timestamp import Timestamp as BsonTimestamp

        return BsonTimestamp(self.seconds, self.increment)

    def __str__(self) -> str:
        return f"{self.seconds}:{self.increment}"
