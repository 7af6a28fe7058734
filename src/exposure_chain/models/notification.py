"""Exposure notification documents and their chain visualization."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .base import NotificationType, TestStatus, generate_id, utc_now

MaskedMarker = Literal["someone", "you"]


class NamedLabel(BaseModel):
    """Node shown with the username the recipient recorded for that contact."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["named"] = "named"
    username: str


class MaskedLabel(BaseModel):
    """Node shown with a localizable placeholder instead of a name."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["masked"] = "masked"
    marker: MaskedMarker


NodeLabel = Annotated[NamedLabel | MaskedLabel, Field(discriminator="kind")]

SOMEONE = MaskedLabel(marker="someone")
YOU = MaskedLabel(marker="you")


class ChainNode(BaseModel):
    """One person on a displayed chain."""

    model_config = ConfigDict(extra="forbid")

    label: NodeLabel
    test_status: TestStatus = TestStatus.UNKNOWN
    date: datetime | None = None
    is_current_user: bool = False
    tested_positive_for: list[str] = Field(default_factory=list)


class ChainVisualization(BaseModel):
    """Displayed chain of a notification.

    ``nodes`` is the primary (shortest) path; ``paths`` holds one node list per
    entry of the owning notification's ``chain_paths``, in the same order.
    """

    model_config = ConfigDict(extra="forbid")

    nodes: list[ChainNode]
    paths: list[list[ChainNode]] = Field(default_factory=list)

    def all_node_lists(self) -> list[list[ChainNode]]:
        return [self.nodes, *self.paths]


class Notification(BaseModel):
    """Exposure notification for one recipient of one report.

    Attributes:
        recipient_id: Notification-family hash of the recipient.
        sti_types: Disclosed STI types; None when the report's privacy level
            withholds them.
        exposure_date: Disclosed date of the recipient's own interaction.
        chain_path: Shortest known path, reporter first, recipient last,
            as chain-family hashes.
        chain_paths: Every distinct path discovered so far.
        hop_depth: Edges on the shortest path.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("ntf"))
    recipient_id: str
    report_id: str
    type: NotificationType = NotificationType.EXPOSURE
    sti_types: list[str] | None = None
    exposure_date: datetime | None = None
    chain_visualization: ChainVisualization
    chain_path: list[str]
    chain_paths: list[list[str]]
    hop_depth: int = Field(ge=1)
    is_read: bool = False
    received_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    deleted_at: datetime | None = None

    @model_validator(mode="after")
    def _check_chain_integrity(self) -> Notification:
        self.check_integrity()
        return self

    def check_integrity(self) -> None:
        """Raise ValueError unless path and visualization agree.

        Called on construction and after every in-place path merge or
        status flip.
        """
        viz = self.chain_visualization
        if len(self.chain_path) != len(viz.nodes):
            raise ValueError(
                f"chain_path has {len(self.chain_path)} entries "
                f"but visualization has {len(viz.nodes)} nodes"
            )
        if not self.chain_paths:
            raise ValueError("chain_paths is empty")
        if len(viz.paths) != len(self.chain_paths):
            raise ValueError(
                f"{len(self.chain_paths)} chain paths but {len(viz.paths)} visualization paths"
            )
        for path, nodes in zip(self.chain_paths, viz.paths, strict=True):
            if len(path) != len(nodes):
                raise ValueError("visualization path length does not match its chain path")
        shortest = min(len(p) for p in self.chain_paths) - 1
        if self.hop_depth != shortest or len(self.chain_path) - 1 != shortest:
            raise ValueError(
                f"hop_depth {self.hop_depth} does not match shortest path depth {shortest}"
            )

    @property
    def chain_members(self) -> list[str]:
        """Every chain identity appearing on any recorded path."""
        seen: dict[str, None] = {}
        for path in self.chain_paths:
            for member in path:
                seen.setdefault(member, None)
        return list(seen)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def touch(self) -> None:
        self.updated_at = utc_now()
