"""Domain-separated pseudonymous hashing.

One account id yields four unrelated pseudonyms, one per record family, so a
leak of any single collection cannot be joined against another without the
original id:

    interaction   SHA256(ID)                 ownerId / partnerIdentity
    notification  SHA256("notification:" + ID)  recipientId
    chain         SHA256("chain:" + ID)         chainPath / chainPaths
    report        SHA256("report:" + ID)        reporterId

The interaction family carries no prefix because devices exchange that value
over the proximity channel. Ids are uppercased first so caller casing never
changes the result.
"""

from __future__ import annotations

import hashlib
from enum import Enum


class HashDomain(str, Enum):
    """Record family a pseudonym is derived for."""

    INTERACTION = "interaction"
    NOTIFICATION = "notification"
    CHAIN = "chain"
    REPORT = "report"

    @property
    def prefix(self) -> str:
        if self is HashDomain.INTERACTION:
            return ""
        return f"{self.value}:"


def hash_identity(account_id: str, domain: HashDomain) -> str:
    """Derive the lowercase hex SHA-256 pseudonym of an account for a domain."""
    normalized = account_id.strip().upper()
    return hashlib.sha256(f"{domain.prefix}{normalized}".encode()).hexdigest()


def interaction_identity(account_id: str) -> str:
    return hash_identity(account_id, HashDomain.INTERACTION)


def notification_identity(account_id: str) -> str:
    return hash_identity(account_id, HashDomain.NOTIFICATION)


def chain_identity(account_id: str) -> str:
    return hash_identity(account_id, HashDomain.CHAIN)


def report_identity(account_id: str) -> str:
    return hash_identity(account_id, HashDomain.REPORT)
