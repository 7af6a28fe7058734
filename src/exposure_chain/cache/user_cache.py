"""Memoization of identity lookups within one propagation run.

Unlike a plain memo, confirmed absences are cached too: a deleted account
reachable through several paths is looked up once.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Literal

from exposure_chain.models import UserIdentity

from .base import BoundedCache, CacheStats


class _NotFound(Enum):
    NOT_FOUND = "not_found"


NOT_FOUND: Literal[_NotFound.NOT_FOUND] = _NotFound.NOT_FOUND
"""Sentinel stored for an identity that was looked up and does not exist."""

CachedIdentity = UserIdentity | Literal[_NotFound.NOT_FOUND]


class UserCacheStats(CacheStats):
    null_entries: int = 0


class UserLookupCache(BoundedCache[str, CachedIdentity]):
    """Identities keyed by interaction identity.

    ``get`` returns the identity, ``NOT_FOUND`` for a confirmed absence, or
    None when the id has not been resolved either way.
    """

    name = "UserLookupCache"

    def __init__(self, max_entries: int = 500) -> None:
        super().__init__(max_entries=max_entries)

    def set_not_found(self, interaction_identity: str) -> None:
        self.set(interaction_identity, NOT_FOUND)

    def set_many_not_found(self, interaction_identities: Iterable[str]) -> None:
        for identity in interaction_identities:
            self.set_not_found(identity)

    def populate(self, identities: Mapping[str, UserIdentity]) -> None:
        """Store the found half of a batch lookup."""
        for key, identity in identities.items():
            self.set(key, identity)

    def uncached(self, interaction_identities: Iterable[str]) -> list[str]:
        """Ids not yet resolved either way, de-duplicated, in input order."""
        pending: dict[str, None] = {}
        for identity in interaction_identities:
            if identity not in self and identity not in pending:
                pending[identity] = None
        return list(pending)

    def resolved(self, interaction_identity: str) -> UserIdentity | None:
        """Counted lookup collapsing both absence kinds to None."""
        cached = self.get(interaction_identity)
        return cached if isinstance(cached, UserIdentity) else None

    def stats(self) -> UserCacheStats:
        base = super().stats()
        nulls = sum(1 for value in self._entries.values() if value is NOT_FOUND)
        return UserCacheStats(**base.model_dump(), null_entries=nulls)
