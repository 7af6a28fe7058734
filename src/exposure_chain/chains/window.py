"""Rolling look-back windows for chain traversal.

Each hop's window is anchored to that hop's own interaction date, so a chain
can extend beyond the reporter's incubation period as long as every link is
within its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from exposure_chain.models.base import utc_now


@dataclass(frozen=True)
class Window:
    """Closed interval ``[start, end]``; empty when ``start > end``."""

    start: datetime
    end: datetime

    @property
    def is_empty(self) -> bool:
        return self.start > self.end

    def contains(self, moment: datetime) -> bool:
        return not self.is_empty and self.start <= moment <= self.end


def retention_boundary(retention_days: int, now: datetime | None = None) -> datetime:
    """Oldest moment an interaction may have and still be considered."""
    return (now or utc_now()) - timedelta(days=retention_days)


def compute_window(
    hop_date: datetime,
    incubation_days: int,
    boundary: datetime,
    end: datetime | None = None,
    now: datetime | None = None,
) -> Window:
    """Compute the look-back window for one hop.

    Args:
        hop_date: Interaction date that exposed this hop (test date for the
            reporter).
        incubation_days: Longest incubation period among the reported types.
        boundary: Retention boundary; the window never starts before it.
        end: Upper bound for the first hop (the report's exposure window
            end). Later hops pass None and end at ``now``.
        now: Clock override for tests.

    Returns:
        The window. It may be empty; callers treat that as zero candidates.
    """
    current = now or utc_now()
    start = max(hop_date - timedelta(days=incubation_days), boundary)
    window_end = min(end, current) if end is not None else current
    return Window(start=start, end=window_end)
