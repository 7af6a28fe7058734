"""Traversal path normalization and comparison."""

from __future__ import annotations

from collections.abc import Iterable, Sequence


def normalize_path(path: Sequence[str]) -> tuple[str, ...]:
    """Canonical form of a path of hex identities.

    Paths read back from storage may differ from freshly built ones in case
    or surrounding whitespace; neither changes which node is meant.
    """
    return tuple(node.strip().lower() for node in path)


def are_paths_equivalent(a: Sequence[str], b: Sequence[str]) -> bool:
    """True iff both paths visit the same nodes in the same order."""
    return normalize_path(a) == normalize_path(b)


def has_equivalent_path(known: Iterable[Sequence[str]], candidate: Sequence[str]) -> bool:
    target = normalize_path(candidate)
    return any(normalize_path(path) == target for path in known)
