"""Building and updating displayed chains.

A recipient sees one node per person on the path, then themselves. Only the
immediate predecessor is named, with the username the recipient recorded for
them; everyone further upstream is masked.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from exposure_chain.chains.paths import normalize_path
from exposure_chain.models import (
    SOMEONE,
    YOU,
    ChainNode,
    NamedLabel,
    Notification,
    TestStatus,
)


@dataclass(frozen=True)
class UpstreamHop:
    """What is known about one person upstream of a recipient."""

    date: datetime
    test_status: TestStatus = TestStatus.UNKNOWN


def build_chain_nodes(
    upstream: Sequence[UpstreamHop],
    predecessor_name: str | None,
    exposure_date: datetime,
    disclose_date: bool,
) -> list[ChainNode]:
    """Build the displayed chain for one arrival.

    Args:
        upstream: Reporter first, direct predecessor last.
        predecessor_name: Username snapshot the recipient recorded for their
            direct predecessor. Blank names fall back to the masked marker.
        exposure_date: Date of the recipient's own interaction.
        disclose_date: Whether dates may be written at all.
    """
    nodes: list[ChainNode] = []
    last = len(upstream) - 1
    for index, hop in enumerate(upstream):
        name = (predecessor_name or "").strip() if index == last else ""
        nodes.append(
            ChainNode(
                label=NamedLabel(username=name) if name else SOMEONE,
                test_status=hop.test_status,
                date=hop.date if disclose_date else None,
            )
        )
    nodes.append(
        ChainNode(
            label=YOU,
            date=exposure_date if disclose_date else None,
            is_current_user=True,
        )
    )
    return nodes


def _set_status(
    node: ChainNode,
    status: TestStatus,
    tested_positive_for: Sequence[str] | None,
    only_if: TestStatus | None,
) -> bool:
    if only_if is not None and node.test_status != only_if:
        return False
    node.test_status = status
    if status == TestStatus.POSITIVE:
        node.tested_positive_for = list(tested_positive_for or [])
    else:
        node.tested_positive_for = []
    return True


def apply_member_status(
    notification: Notification,
    member: str,
    status: TestStatus,
    tested_positive_for: Sequence[str] | None = None,
    only_if: TestStatus | None = None,
) -> bool:
    """Set ``member``'s node status on the primary chain and every path.

    Node positions are looked up per path, since the member can sit at a
    different index on each. With ``only_if``, nodes currently in any other
    status are left untouched.

    Returns:
        True if at least one node changed.
    """
    target = normalize_path([member])[0]
    viz = notification.chain_visualization
    changed = False

    primary = normalize_path(notification.chain_path)
    if target in primary:
        node = viz.nodes[primary.index(target)]
        changed |= _set_status(node, status, tested_positive_for, only_if)

    for path, nodes in zip(notification.chain_paths, viz.paths, strict=True):
        normalized = normalize_path(path)
        if target in normalized:
            node = nodes[normalized.index(target)]
            changed |= _set_status(node, status, tested_positive_for, only_if)
    return changed


def apply_recipient_status(
    notification: Notification,
    status: TestStatus,
    tested_positive_for: Sequence[str] | None = None,
) -> bool:
    """Set the recipient's own node status on every displayed path."""
    changed = False
    for nodes in notification.chain_visualization.all_node_lists():
        for node in nodes:
            if node.is_current_user:
                changed |= _set_status(node, status, tested_positive_for, None)
    return changed


def member_index(path: Sequence[str], member: str) -> int | None:
    normalized = normalize_path(path)
    target = normalize_path([member])[0]
    return normalized.index(target) if target in normalized else None
