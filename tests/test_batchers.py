"""Tests for the notification and push batchers."""

from unittest.mock import AsyncMock

import pytest

from exposure_chain.batch import (
    NotificationBatcher,
    PendingNotification,
    PendingPush,
    PushBatcher,
)
from exposure_chain.exceptions import BatcherStateError, StorageError
from exposure_chain.models import (
    SOMEONE,
    YOU,
    ChainNode,
    ChainVisualization,
    Notification,
    NotificationType,
)
from fakes import FakePushTransport


def make_notification(index: int) -> Notification:
    nodes = [ChainNode(label=SOMEONE), ChainNode(label=YOU, is_current_user=True)]
    return Notification(
        recipient_id=f"recipient-{index}",
        report_id="rpt_test",
        chain_visualization=ChainVisualization(nodes=nodes, paths=[list(nodes)]),
        chain_path=["reporter", f"member-{index}"],
        chain_paths=[["reporter", f"member-{index}"]],
        hop_depth=1,
    )


def writer() -> AsyncMock:
    mock = AsyncMock()
    mock.create_notifications = AsyncMock(side_effect=lambda batch: [n.id for n in batch])
    return mock


def fill(batcher: NotificationBatcher, count: int) -> list[Notification]:
    notifications = [make_notification(i) for i in range(count)]
    for i, notification in enumerate(notifications):
        batcher.add(PendingNotification(notification, correlation_key=f"node-{i}"))
    return notifications


class TestNotificationBatcher:
    """Tests for NotificationBatcher."""

    @pytest.mark.asyncio
    async def test_600_items_make_two_groups(self):
        """600 queued notifications are written as 500 + 100."""
        store = writer()
        batcher = NotificationBatcher(store)
        fill(batcher, 600)

        result = await batcher.commit()

        assert result.group_count == 2
        assert result.success_count == 600
        sizes = [len(call.args[0]) for call in store.create_notifications.call_args_list]
        assert sizes == [500, 100]

    @pytest.mark.asyncio
    async def test_custom_batch_size(self):
        """250 items with max_batch_size=100 make three groups."""
        store = writer()
        batcher = NotificationBatcher(store, max_batch_size=100)
        fill(batcher, 250)

        result = await batcher.commit()

        sizes = [len(call.args[0]) for call in store.create_notifications.call_args_list]
        assert sizes == [100, 100, 50]
        assert result.group_count == 3

    def test_batch_size_clamped_to_store_limit(self):
        assert NotificationBatcher(writer(), max_batch_size=1000).max_batch_size == 500

    def test_rejects_zero_batch_size(self):
        with pytest.raises(ValueError):
            NotificationBatcher(writer(), max_batch_size=0)

    @pytest.mark.asyncio
    async def test_failed_group_is_isolated(self):
        """A failed group marks only its own items and later groups still run."""
        store = AsyncMock()
        calls = {"n": 0}

        async def create(batch):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StorageError("quota exceeded")
            return [n.id for n in batch]

        store.create_notifications = AsyncMock(side_effect=create)
        batcher = NotificationBatcher(store, max_batch_size=2)
        notifications = fill(batcher, 5)

        result = await batcher.commit()

        assert result.failure_count == 2
        assert result.success_count == 3
        assert result.created_ids[:2] == [None, None]
        assert result.created_ids[2:] == [n.id for n in notifications[2:]]
        assert result.errors[0] == "quota exceeded"

        ids = batcher.created_id_map(result)
        assert ids["node-0"] is None
        assert ids["node-4"] == notifications[4].id
        assert set(batcher.error_map(result)) == {"node-0", "node-1"}

    @pytest.mark.asyncio
    async def test_add_after_commit_raises(self):
        batcher = NotificationBatcher(writer())
        await batcher.commit()
        with pytest.raises(BatcherStateError):
            batcher.add(PendingNotification(make_notification(0), "node-0"))

    @pytest.mark.asyncio
    async def test_second_commit_is_empty(self):
        store = writer()
        batcher = NotificationBatcher(store)
        fill(batcher, 3)
        await batcher.commit()

        again = await batcher.commit()

        assert again.success_count == 0
        assert store.create_notifications.await_count == 1

    @pytest.mark.asyncio
    async def test_clear_allows_reuse(self):
        batcher = NotificationBatcher(writer())
        fill(batcher, 1)
        await batcher.commit()
        batcher.clear()

        fill(batcher, 2)
        result = await batcher.commit()
        assert result.success_count == 2

    @pytest.mark.asyncio
    async def test_empty_commit(self):
        store = writer()
        result = await NotificationBatcher(store).commit()
        assert result.group_count == 0
        store.create_notifications.assert_not_called()


def push(token: str, notification_type=NotificationType.EXPOSURE, data=None) -> PendingPush:
    return PendingPush.for_type(token, notification_type, data)


class TestPushBatcher:
    """Tests for PushBatcher."""

    @pytest.mark.asyncio
    async def test_groups_by_payload(self):
        """Pushes with equal payloads share a multicast."""
        transport = FakePushTransport()
        batcher = PushBatcher(transport)
        batcher.add(push("t1", data={"stiType": '["HIV"]'}))
        batcher.add(push("t2", NotificationType.UPDATE))
        batcher.add(push("t3", data={"stiType": '["HIV"]'}))

        result = await batcher.send()

        assert result.multicast_count == 2
        assert result.success_count == 3
        assert transport.messages[0].tokens == ["t1", "t3"]
        assert transport.messages[0].title_loc_key == "notification_exposure_title"
        assert transport.messages[1].type == NotificationType.UPDATE

    @pytest.mark.asyncio
    async def test_splits_large_groups(self):
        transport = FakePushTransport()
        batcher = PushBatcher(transport, max_multicast_size=2)
        for i in range(5):
            batcher.add(push(f"t{i}"))

        result = await batcher.send()

        assert result.multicast_count == 3
        assert [len(m.tokens) for m in transport.messages] == [2, 2, 1]

    def test_size_clamped_to_transport_limit(self):
        transport = FakePushTransport(max_tokens_per_request=100)
        assert PushBatcher(transport, max_multicast_size=500).max_multicast_size == 100

    def test_blank_tokens_dropped(self):
        batcher = PushBatcher(FakePushTransport())
        batcher.add(push(""))
        batcher.add(push("   "))
        batcher.add(push("t1"))
        assert len(batcher) == 1

    @pytest.mark.asyncio
    async def test_invalid_tokens_reported(self):
        transport = FakePushTransport()
        transport.invalid_tokens = {"bad"}
        batcher = PushBatcher(transport)
        batcher.add(push("good"))
        batcher.add(push("bad", NotificationType.UPDATE))
        batcher.add(push("bad2"))

        result = await batcher.send()

        assert result.invalid_token_indices == [1]
        assert batcher.invalid_tokens(result) == ["bad"]
        assert result.failure_count == 1

    @pytest.mark.asyncio
    async def test_failed_multicast_does_not_stop_others(self):
        transport = FakePushTransport()
        transport.fail_calls = 1
        batcher = PushBatcher(transport, max_multicast_size=1)
        batcher.add(push("t1"))
        batcher.add(push("t2"))

        result = await batcher.send()

        assert result.failure_count == 1
        assert result.success_count == 1
        assert len(transport.messages) == 2

    @pytest.mark.asyncio
    async def test_send_twice(self):
        transport = FakePushTransport()
        batcher = PushBatcher(transport)
        batcher.add(push("t1"))
        await batcher.send()

        again = await batcher.send()

        assert again.multicast_count == 0
        assert len(transport.messages) == 1
        with pytest.raises(BatcherStateError):
            batcher.add(push("t2"))
