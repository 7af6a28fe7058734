"""STI type parsing, matching and incubation lookup."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable

from exposure_chain.config import StiIncubationTable

logger = logging.getLogger(__name__)


def parse_sti_types(value: str | Iterable[str] | None) -> list[str]:
    """Parse STI types from a list or a JSON array string.

    A string that is not JSON is treated as a single type. Non-string array
    items are dropped.
    """
    if value is None:
        return []
    if isinstance(value, str):
        if not value.strip():
            return []
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return [value.strip()]
        if not isinstance(parsed, list):
            logger.warning("Expected STI type array, got %s", type(parsed).__name__)
            return []
        return [item.strip() for item in parsed if isinstance(item, str) and item.strip()]
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def normalize_sti_types(sti_types: Iterable[str]) -> list[str]:
    """Uppercase and de-duplicate, keeping first-seen order."""
    seen: dict[str, None] = {}
    for sti in sti_types:
        seen.setdefault(sti.strip().upper(), None)
    return [s for s in seen if s]


def sti_types_match(
    notification_types: Iterable[str] | None,
    reported_types: Iterable[str] | None,
) -> bool:
    """Whether a report concerns a notification.

    An empty side matches everything: a report without types updates every
    notification, and a notification that withheld its types is always
    included.
    """
    reported = set(normalize_sti_types(reported_types or []))
    if not reported:
        return True
    disclosed = set(normalize_sti_types(notification_types or []))
    if not disclosed:
        return True
    return bool(reported & disclosed)


def overlapping_sti_types(
    notification_types: Iterable[str] | None,
    reported_types: Iterable[str],
) -> list[str]:
    """Notification types that were also reported, in notification order.

    Empty when the notification withheld its types.
    """
    reported = set(normalize_sti_types(reported_types))
    return [sti for sti in normalize_sti_types(notification_types or []) if sti in reported]


def covers_all(existing: Iterable[str], new: Iterable[str]) -> bool:
    """True if every type in ``new`` already appears in ``existing``."""
    return set(normalize_sti_types(new)) <= set(normalize_sti_types(existing))


def max_incubation_days(
    sti_types: Iterable[str],
    table: StiIncubationTable,
    default: int,
) -> int:
    """Longest incubation period among the types; ``default`` if none known."""
    days = [table.days_for(sti) or default for sti in sti_types]
    return max(days) if days else default
