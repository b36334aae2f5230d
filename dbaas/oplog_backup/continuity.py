"""
Continuity checks for captured oplog segments.

A segment is captured with the query ``ts >= start_at``. When the oplog
still holds the entry at ``start_at``, that entry comes back first and the
new segment overlaps the previous one by exactly that boundary entry. Any
other first entry means the chain cannot be trusted.
"""

from __future__ import annotations

from typing import Sequence

from .errors import (
    ContinuityError,
    OplogGapDetected,
    OplogOrderingViolation,
    OplogQueryError,
)
from .timestamp import Timestamp


def timestamps_increasing(timestamps: Sequence[Timestamp]) -> bool:
    """Whether every timestamp is strictly greater than the one before it."""
    return all(a < b for a, b in zip(timestamps, timestamps[1:]))


def find_continuity_error(
    timestamps: Sequence[Timestamp],
    start_at: Timestamp,
) -> ContinuityError | None:
    """Classify a captured segment.

    Args:
        timestamps: Entry timestamps in dump order
        start_at: Position the segment must start at

    Returns:
        None if the segment continues the chain, else the error describing why not
    """
    if not timestamps_increasing(timestamps):
        return OplogOrderingViolation("Something went wrong - oplog is not ordered.")

    if not timestamps:
        return OplogGapDetected(
            f"Expected first oplog entry to be {start_at} but the oplog returned nothing.\n"
            "The oplog is probably too small.\n"
            "Increase the oplog size, then start with another full backup."
        )

    first = timestamps[0]
    if first.seconds < start_at.seconds:
        return OplogQueryError(
            f"Expected first oplog entry to be {start_at} but was {first}. "
            "Something went wrong in our query."
        )
    if first != start_at:
        return OplogGapDetected(
            f"Expected first oplog entry to be {start_at} but was {first}.\n"
            "The oplog is probably too small.\n"
            "Increase the oplog size, then start with another full backup."
        )
    return None


def validate_continuity(timestamps: Sequence[Timestamp], start_at: Timestamp) -> None:
    """Raise the matching ContinuityError if the segment does not continue the chain."""
    error = find_continuity_error(timestamps, start_at)
    if error is not None:
        raise error
