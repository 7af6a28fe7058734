"""Exposure chain propagation.

Starting from a positive reporter, walks the interaction graph outward one hop
at a time and creates one exposure notification per reachable person.

Traversal rules:
1. A contact of N is someone who themselves recorded an interaction with N.
   N's own records are never consulted, so N cannot name arbitrary victims.
2. Each hop's look-back window is anchored to that hop's own interaction date.
3. A person reached again through a different path gets that path merged into
   their existing notification instead of a second notification.
4. Hop depth is bounded, and so is the total number of expanded nodes.

All caches and batchers live on a per-run object, so concurrent runs for
different reports share nothing in memory.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from exposure_chain.batch import NotificationBatcher, PendingNotification, PendingPush
from exposure_chain.cache import (
    CacheStats,
    QueryCache,
    QueryType,
    UserCacheStats,
    UserLookupCache,
    query_key,
)
from exposure_chain.chains.paths import has_equivalent_path
from exposure_chain.chains.sti import covers_all, max_incubation_days, normalize_sti_types
from exposure_chain.chains.visualization import UpstreamHop, build_chain_nodes
from exposure_chain.chains.window import Window, compute_window, retention_boundary
from exposure_chain.config import (
    PUSH_MULTICAST_LIMIT,
    STORE_WRITE_LIMIT,
    Settings,
    StiIncubationTable,
)
from exposure_chain.exceptions import ExposureChainError, ValidationError
from exposure_chain.logging import bind_context, unbind_context
from exposure_chain.models import (
    ChainNode,
    ChainVisualization,
    Interaction,
    Notification,
    NotificationType,
    PrivacyLevel,
    TestStatus,
    UserIdentity,
    utc_now,
)
from exposure_chain.push.dispatch import PushDispatcher

if TYPE_CHECKING:
    from exposure_chain.push import PushTransport
    from exposure_chain.storage import ExposureStorage

logger = logging.getLogger(__name__)


DEFAULT_MAX_DEPTH = 10
DEFAULT_MAX_VISITS = 10000
DEFAULT_RETENTION_DAYS = 180
DEFAULT_INCUBATION_DAYS = 30
DEFAULT_REPORTER_NAME = "Someone"


@dataclass
class PropagationConfig:
    """Configuration for one engine instance.

    Attributes:
        max_depth: Maximum hop depth from the reporter.
        max_visits: Maximum node expansions per run.
        retention_days: Interactions older than this are never considered.
        batching_enabled: Queue writes and pushes until the end of the run.
        notification_batch_size: Documents per store write.
        push_multicast_size: Tokens per multicast.
        query_cache_max_entries: Bound of the per-run interaction cache.
        user_cache_max_entries: Bound of the per-run identity cache.
        sti_incubation: Per-STI incubation periods.
        default_incubation_days: Period for unknown STI types.
    """

    max_depth: int = DEFAULT_MAX_DEPTH
    max_visits: int = DEFAULT_MAX_VISITS
    retention_days: int = DEFAULT_RETENTION_DAYS
    batching_enabled: bool = True
    notification_batch_size: int = STORE_WRITE_LIMIT
    push_multicast_size: int = PUSH_MULTICAST_LIMIT
    query_cache_max_entries: int = 1000
    user_cache_max_entries: int = 500
    sti_incubation: StiIncubationTable = field(default_factory=StiIncubationTable)
    default_incubation_days: int = DEFAULT_INCUBATION_DAYS

    @classmethod
    def from_settings(cls, settings: Settings) -> PropagationConfig:
        return cls(
            max_depth=settings.max_chain_depth,
            max_visits=settings.max_traversal_visits,
            retention_days=settings.retention_days,
            batching_enabled=settings.batching_enabled,
            notification_batch_size=settings.effective_batch_size,
            push_multicast_size=settings.effective_multicast_size,
            query_cache_max_entries=settings.query_cache_max_entries,
            user_cache_max_entries=settings.user_cache_max_entries,
            sti_incubation=settings.sti_incubation,
            default_incubation_days=settings.default_incubation_days,
        )


class PropagationRequest(BaseModel):
    """Report fields a propagation run needs."""

    model_config = ConfigDict(extra="forbid")

    report_id: str = Field(min_length=1)
    reporter_interaction_identity: str = Field(min_length=1)
    reporter_display_name: str = DEFAULT_REPORTER_NAME
    sti_types: list[str] = Field(min_length=1)
    test_date: datetime
    privacy_level: PrivacyLevel
    incubation_days: int | None = Field(default=None, gt=0)
    linked_report_id: str | None = None
    exposure_window_end: datetime | None = None


class PropagationResult(BaseModel):
    """Outcome of one propagation run.

    Attributes:
        notification_count: Notifications stored for the report afterwards.
        created: Notifications written during this run.
        failed: Notifications that could not be written.
        merged_paths: Additional paths merged into existing notifications.
        duplicate_arrivals: Arrivals over an already-recorded path.
        linked_skipped: Distinct paths reaching recipients of the linked report.
        visits: Nodes expanded.
        depth_limited: Whether any branch stopped at the depth limit.
        truncated: Whether the run stopped at the visit limit.
    """

    model_config = ConfigDict(extra="forbid")

    report_id: str
    notification_count: int = Field(default=0, ge=0)
    created: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    merged_paths: int = Field(default=0, ge=0)
    merge_failures: int = Field(default=0, ge=0)
    duplicate_arrivals: int = Field(default=0, ge=0)
    linked_skipped: int = Field(default=0, ge=0)
    linked_preseeded: int = Field(default=0, ge=0)
    visits: int = Field(default=0, ge=0)
    expansion_failures: int = Field(default=0, ge=0)
    depth_limited: bool = False
    truncated: bool = False
    pushes_sent: int = Field(default=0, ge=0)
    push_failures: int = Field(default=0, ge=0)
    invalid_tokens: int = Field(default=0, ge=0)
    query_cache: CacheStats = Field(default_factory=CacheStats)
    user_cache: UserCacheStats = Field(default_factory=UserCacheStats)


@dataclass
class PathInfo:
    """What the run knows about one notified person.

    ``paths`` are interaction-identity paths, reporter first.
    """

    paths: list[tuple[str, ...]]
    shortest_hop_depth: int
    notification_id: str | None = None
    pending: bool = False
    linked: bool = False


@dataclass(frozen=True)
class _Frame:
    """A node waiting to be expanded, with the path it was reached by."""

    node: str
    depth: int
    hop_date: datetime
    path: tuple[str, ...]
    upstream: tuple[UpstreamHop, ...]


def merge_path(
    notification: Notification,
    chain_path: list[str],
    nodes: list[ChainNode],
) -> bool:
    """Add a newly discovered path to a notification.

    The path becomes primary when it is strictly shorter than the current one.

    Returns:
        False if an equivalent path is already recorded.
    """
    if has_equivalent_path(notification.chain_paths, chain_path):
        return False

    notification.chain_paths.append(list(chain_path))
    notification.chain_visualization.paths.append([n.model_copy(deep=True) for n in nodes])

    hop_depth = len(chain_path) - 1
    if hop_depth < notification.hop_depth:
        notification.chain_path = list(chain_path)
        notification.hop_depth = hop_depth
        notification.chain_visualization.nodes = [n.model_copy(deep=True) for n in nodes]
    return True


class _PropagationRun:
    """State for a single report's traversal."""

    def __init__(
        self,
        engine: PropagationEngine,
        request: PropagationRequest,
        reporter: UserIdentity,
        incubation_days: int,
        now: datetime,
    ) -> None:
        config = engine.config
        self.engine = engine
        self.storage = engine.storage
        self.request = request
        self.reporter = reporter
        self.incubation_days = incubation_days
        self.now = now
        self.boundary = retention_boundary(config.retention_days, now)

        self.sti_types = normalize_sti_types(request.sti_types)
        self.disclose_sti = request.privacy_level.discloses_sti
        self.disclose_date = request.privacy_level.discloses_date

        self.query_cache = QueryCache(max_entries=config.query_cache_max_entries)
        self.user_cache = UserLookupCache(max_entries=config.user_cache_max_entries)
        self.batching = config.batching_enabled
        self.notification_batcher = NotificationBatcher(
            self.storage, max_batch_size=config.notification_batch_size
        )

        # Keyed by interaction identity
        self.path_info: dict[str, PathInfo] = {
            reporter.interaction_identity: PathInfo(
                paths=[(reporter.interaction_identity,)], shortest_hop_depth=0
            )
        }
        self.identities: dict[str, UserIdentity] = {reporter.interaction_identity: reporter}
        self.pending: dict[str, Notification] = {}
        self.result = PropagationResult(report_id=request.report_id)

    # Chain linking

    async def preseed_linked(self) -> None:
        """Mark recipients of the linked report as already notified.

        Skipped when the new report discloses STI types the linked one did not,
        since those recipients have not been told about the new types.
        """
        linked_id = self.request.linked_report_id
        if not linked_id:
            return

        linked = await self.storage.get_report(linked_id)
        if linked is not None and not covers_all(linked.sti_types, self.sti_types):
            logger.info(
                "Linked report %s does not cover %s; creating fresh notifications",
                linked_id,
                self.sti_types,
            )
            return

        notifications = await self.storage.find_notifications_by_report(linked_id)
        by_recipient = {n.recipient_id: n for n in notifications if not n.is_deleted}
        identities = await self.storage.get_identities_by_notification_identity(
            list(by_recipient)
        )

        for recipient_id, identity in identities.items():
            key = identity.interaction_identity
            if key in self.path_info:
                continue
            notification = by_recipient[recipient_id]
            self.path_info[key] = PathInfo(
                paths=[],
                shortest_hop_depth=notification.hop_depth,
                notification_id=notification.id,
                linked=True,
            )
            self.identities[key] = identity
            self.user_cache.set(key, identity)
            self.result.linked_preseeded += 1

        logger.info(
            "Pre-seeded %d recipients from linked report %s",
            self.result.linked_preseeded,
            linked_id,
        )

    # Lookups

    async def contacts_of(self, node: str, window: Window) -> list[Interaction]:
        key = query_key(QueryType.INTERACTIONS, node, window.start, window.end)
        cached = self.query_cache.get(key)
        if cached is not None:
            return cached
        interactions = await self.storage.find_interactions_with_partner(
            node, window.start, window.end
        )
        self.query_cache.set(key, interactions)
        return interactions

    async def resolve(self, interaction_identities: Sequence[str]) -> None:
        """Batch-load identities not yet resolved either way."""
        missing = self.user_cache.uncached(interaction_identities)
        if not missing:
            return
        found = await self.storage.get_identities(missing)
        self.user_cache.populate(found)
        not_found = [i for i in missing if i not in found]
        self.user_cache.set_many_not_found(not_found)
        if not_found:
            logger.debug("Identity lookup: %d found, %d not found", len(found), len(not_found))

    async def identity(self, interaction_identity: str) -> UserIdentity | None:
        known = self.identities.get(interaction_identity)
        if known is not None:
            return known
        if not self.user_cache.has(interaction_identity):
            await self.resolve([interaction_identity])
        resolved = self.user_cache.resolved(interaction_identity)
        if resolved is not None:
            self.identities[interaction_identity] = resolved
        return resolved

    def chain_path(self, path: Sequence[str]) -> list[str]:
        return [self.identities[node].chain_identity for node in path]

    # Traversal

    def candidates(self, frame: _Frame, interactions: list[Interaction]) -> dict[str, Interaction]:
        """Most recent qualifying interaction per contact."""
        reporter = self.reporter.interaction_identity
        contacts: dict[str, Interaction] = {}
        for interaction in interactions:
            owner = interaction.owner_id
            if owner == reporter or owner in frame.path:
                continue
            if interaction.recorded_at < self.boundary:
                continue
            existing = contacts.get(owner)
            if existing is None or interaction.recorded_at > existing.recorded_at:
                contacts[owner] = interaction
        return contacts

    async def run(self) -> PropagationResult:
        reporter = self.reporter.interaction_identity
        worklist: deque[_Frame] = deque(
            [
                _Frame(
                    node=reporter,
                    depth=0,
                    hop_date=self.request.test_date,
                    path=(reporter,),
                    upstream=(UpstreamHop(self.request.test_date, TestStatus.POSITIVE),),
                )
            ]
        )

        while worklist:
            frame = worklist.popleft()
            if frame.depth >= self.engine.config.max_depth:
                self.result.depth_limited = True
                continue
            if self.result.visits >= self.engine.config.max_visits:
                self.result.truncated = True
                logger.warning(
                    "Stopping traversal after %d expansions (%d frames left)",
                    self.result.visits,
                    len(worklist) + 1,
                )
                break
            self.result.visits += 1
            try:
                worklist.extend(await self.expand(frame))
            except ExposureChainError as e:
                self.result.expansion_failures += 1
                logger.error("Failed to expand node at depth %d: %s", frame.depth, e)

        await self.finish()
        return self.result

    async def expand(self, frame: _Frame) -> list[_Frame]:
        window = compute_window(
            frame.hop_date,
            self.incubation_days,
            self.boundary,
            end=self.request.exposure_window_end if frame.depth == 0 else None,
            now=self.now,
        )
        if window.is_empty:
            return []

        contacts = self.candidates(frame, await self.contacts_of(frame.node, window))
        if not contacts:
            return []
        await self.resolve(list(contacts))

        next_frames: list[_Frame] = []
        for contact, interaction in contacts.items():
            identity = await self.identity(contact)
            if identity is None:
                logger.debug("Skipping contact without identity at depth %d", frame.depth + 1)
                continue

            new_path = (*frame.path, contact)
            next_frame = _Frame(
                node=contact,
                depth=frame.depth + 1,
                hop_date=interaction.recorded_at,
                path=new_path,
                upstream=(*frame.upstream, UpstreamHop(interaction.recorded_at)),
            )

            info = self.path_info.get(contact)
            if info is None:
                await self.notify(identity, frame, interaction, new_path)
                next_frames.append(next_frame)
            elif await self.merge(info, identity, frame, interaction, new_path):
                next_frames.append(next_frame)
        return next_frames

    def display_nodes(self, frame: _Frame, interaction: Interaction) -> list[ChainNode]:
        predecessor_name = interaction.partner_username_snapshot
        if frame.depth == 0 and not predecessor_name.strip():
            predecessor_name = self.request.reporter_display_name
        return build_chain_nodes(
            frame.upstream,
            predecessor_name,
            exposure_date=interaction.recorded_at,
            disclose_date=self.disclose_date,
        )

    async def notify(
        self,
        identity: UserIdentity,
        frame: _Frame,
        interaction: Interaction,
        new_path: tuple[str, ...],
    ) -> None:
        """Create the first notification for a newly reached person."""
        contact = identity.interaction_identity
        chain_path = self.chain_path(new_path)
        nodes = self.display_nodes(frame, interaction)
        notification = Notification(
            recipient_id=identity.notification_identity,
            report_id=self.request.report_id,
            type=NotificationType.EXPOSURE,
            sti_types=list(self.sti_types) if self.disclose_sti else None,
            exposure_date=interaction.recorded_at if self.disclose_date else None,
            chain_visualization=ChainVisualization(
                nodes=nodes,
                paths=[[n.model_copy(deep=True) for n in nodes]],
            ),
            chain_path=chain_path,
            chain_paths=[list(chain_path)],
            hop_depth=len(new_path) - 1,
        )
        info = PathInfo(paths=[new_path], shortest_hop_depth=len(new_path) - 1)
        self.path_info[contact] = info

        if self.batching:
            self.notification_batcher.add(PendingNotification(notification, contact))
            self.pending[contact] = notification
            info.pending = True
            return

        try:
            info.notification_id = await self.storage.create_notification(notification)
        except ExposureChainError as e:
            self.result.failed += 1
            logger.error("Failed to create notification at depth %d: %s", info.shortest_hop_depth, e)
            return
        self.result.created += 1
        await self.engine.send_pushes([self.push_for(identity)], self.result)

    async def merge(
        self,
        info: PathInfo,
        identity: UserIdentity,
        frame: _Frame,
        interaction: Interaction,
        new_path: tuple[str, ...],
    ) -> bool:
        """Record an additional path to an already-notified person.

        Returns:
            True if the path was new and the person should be expanded again
            so their own contacts inherit it. Recipients of the linked report
            are not written to but are still expanded.
        """
        if has_equivalent_path(info.paths, new_path):
            self.result.duplicate_arrivals += 1
            return False

        info.paths.append(new_path)
        if info.linked:
            self.result.linked_skipped += 1
            return True

        info.shortest_hop_depth = min(info.shortest_hop_depth, len(new_path) - 1)

        chain_path = self.chain_path(new_path)
        nodes = self.display_nodes(frame, interaction)

        def mutate(notification: Notification) -> bool:
            return merge_path(notification, chain_path, nodes)

        if info.pending:
            notification = self.pending[identity.interaction_identity]
            if mutate(notification):
                notification.check_integrity()
                self.result.merged_paths += 1
            return True

        if info.notification_id is None:
            return True

        try:
            await self.storage.merge_notification(info.notification_id, mutate)
        except ExposureChainError as e:
            self.result.merge_failures += 1
            logger.error("Failed to merge path into %s: %s", info.notification_id, e)
        else:
            self.result.merged_paths += 1
        return True

    def push_for(self, identity: UserIdentity) -> PendingPush:
        data = {"stiType": json.dumps(self.sti_types)} if self.disclose_sti else {}
        return PendingPush.for_type(
            identity.push_token or "", NotificationType.EXPOSURE, data
        )

    async def finish(self) -> None:
        """Flush writes, reconcile ids, send pushes and count the result."""
        if self.batching:
            commit = await self.notification_batcher.commit()
            self.result.created += commit.success_count
            self.result.failed += commit.failure_count
            pushes: list[PendingPush] = []
            for contact, created_id in self.notification_batcher.created_id_map(commit).items():
                info = self.path_info[contact]
                info.pending = False
                info.notification_id = created_id
                if created_id is not None:
                    pushes.append(self.push_for(self.identities[contact]))
            self.pending.clear()
            await self.engine.send_pushes(pushes, self.result)

        try:
            self.result.notification_count = await self.storage.count_notifications_by_report(
                self.request.report_id
            )
        except ExposureChainError as e:
            logger.error("Could not count notifications for report: %s", e)
            self.result.notification_count = self.result.created

        self.query_cache.log_stats()
        self.user_cache.log_stats()
        self.result.query_cache = self.query_cache.stats()
        self.result.user_cache = self.user_cache.stats()


class PropagationEngine:
    """Creates exposure notifications for one report at a time.

    Example:
        ```python
        engine = PropagationEngine(storage, transport, PropagationConfig())
        count = await engine.propagate(
            report_id="rpt_abc",
            reporter_interaction_identity=reporter_hash,
            reporter_display_name="Sam",
            sti_types=["CHLAMYDIA"],
            test_date=test_date,
            privacy_level=PrivacyLevel.FULL,
        )
        ```
    """

    def __init__(
        self,
        storage: ExposureStorage,
        transport: PushTransport | None = None,
        config: PropagationConfig | None = None,
    ) -> None:
        self.storage = storage
        self.transport = transport
        self.config = config or PropagationConfig()
        self.dispatcher = PushDispatcher(
            transport, storage, max_multicast_size=self.config.push_multicast_size
        )

    def incubation_days_for(self, sti_types: Sequence[str]) -> int:
        return max_incubation_days(
            sti_types, self.config.sti_incubation, self.config.default_incubation_days
        )

    async def propagate(
        self,
        report_id: str,
        reporter_interaction_identity: str,
        reporter_display_name: str,
        sti_types: list[str],
        test_date: datetime,
        privacy_level: PrivacyLevel,
        incubation_days: int | None = None,
        linked_report_id: str | None = None,
    ) -> int:
        """Run propagation and return the report's notification count.

        Raises:
            ValidationError: If a field is malformed or the reporter has no
                registered identity.
        """
        try:
            request = PropagationRequest(
                report_id=report_id,
                reporter_interaction_identity=reporter_interaction_identity,
                reporter_display_name=reporter_display_name or DEFAULT_REPORTER_NAME,
                sti_types=sti_types,
                test_date=test_date,
                privacy_level=privacy_level,
                incubation_days=incubation_days,
                linked_report_id=linked_report_id,
            )
        except pydantic.ValidationError as e:
            error = e.errors()[0]
            location = ".".join(str(part) for part in error["loc"]) or "request"
            raise ValidationError(location, error["msg"]) from e
        result = await self.run(request)
        return result.notification_count

    async def run(self, request: PropagationRequest, now: datetime | None = None) -> PropagationResult:
        """Run propagation for one report.

        Raises:
            ValidationError: If the reporter has no registered identity. Raised
                before anything is written.
        """
        reporter = await self.storage.get_identity(request.reporter_interaction_identity)
        if reporter is None:
            raise ValidationError(
                "reporter_interaction_identity", "no identity registered for reporter"
            )

        incubation_days = request.incubation_days or self.incubation_days_for(request.sti_types)
        state = _PropagationRun(self, request, reporter, incubation_days, now or utc_now())

        bind_context(report_id=request.report_id)
        try:
            logger.info(
                "Starting propagation: %d STI types, incubation %d days, privacy %s",
                len(state.sti_types),
                incubation_days,
                request.privacy_level.value,
            )
            await state.preseed_linked()
            result = await state.run()
            logger.info(
                "Propagation complete: %d notifications (%d created, %d failed, "
                "%d merged paths, %d visits)",
                result.notification_count,
                result.created,
                result.failed,
                result.merged_paths,
                result.visits,
            )
            return result
        finally:
            unbind_context("report_id")

    async def send_pushes(
        self,
        pushes: list[PendingPush],
        result: PropagationResult,
    ) -> None:
        """Send pushes and clear tokens the transport reports as invalid."""
        if not pushes:
            return
        sent = await self.dispatcher.send(pushes)
        result.pushes_sent += sent.success_count
        result.push_failures += sent.failure_count
        result.invalid_tokens += len(sent.invalid_token_indices)
