"""Interaction and identity documents.

Both are written by the account and proximity layers; propagation only
reads them (apart from clearing stale push tokens).
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id


class Interaction(BaseModel):
    """One proximity encounter, recorded by its owner.

    Directed: ``owner_id`` saw ``partner_identity``. The reverse record may
    not exist, and traversal never assumes it does.

    Attributes:
        owner_id: Interaction-family hash of the recording account.
        partner_identity: Interaction-family hash of the account encountered.
        partner_username_snapshot: Partner's display name at recording time,
            as the owner saw it.
        recorded_at: When the encounter happened.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("int"))
    owner_id: str
    partner_identity: str
    partner_username_snapshot: str = ""
    recorded_at: datetime


class UserIdentity(BaseModel):
    """Delivery metadata for one account, keyed by interaction identity."""

    model_config = ConfigDict(extra="forbid")

    interaction_identity: str
    notification_identity: str
    chain_identity: str
    push_token: str | None = None

    @property
    def has_push_token(self) -> bool:
        return bool(self.push_token and self.push_token.strip())
