"""Tests for push dispatch and stale-token pruning."""

import pytest

from exposure_chain.batch import PendingPush
from exposure_chain.exceptions import StorageError
from exposure_chain.hashing import interaction_identity, notification_identity
from exposure_chain.models import NotificationType
from exposure_chain.push.dispatch import PushDispatcher


@pytest.fixture
def dispatcher(storage, transport) -> PushDispatcher:
    for name in "ABC":
        storage.add_user(name)
    storage.add_user("D", push_token="")
    return PushDispatcher(transport, storage)


class TestSendToRecipients:
    @pytest.mark.asyncio
    async def test_one_multicast_per_payload(self, dispatcher, transport):
        result = await dispatcher.send_to_recipients(
            [notification_identity(n) for n in "ABA"], NotificationType.UPDATE
        )

        assert result.success_count == 2
        assert len(transport.messages) == 1
        assert transport.messages[0].tokens == ["token-A", "token-B"]
        assert transport.messages[0].title_loc_key == "notification_update_title"

    @pytest.mark.asyncio
    async def test_missing_tokens_and_unknown_recipients_skipped(self, dispatcher, transport):
        await dispatcher.send_to_recipients(
            [notification_identity("D"), "unknown"], NotificationType.UPDATE
        )
        assert transport.messages == []

    @pytest.mark.asyncio
    async def test_invalid_tokens_cleared(self, dispatcher, storage, transport):
        transport.invalid_tokens = {"token-B"}

        result = await dispatcher.send_to_recipients(
            [notification_identity(n) for n in "ABC"], NotificationType.REPORT_DELETED
        )

        assert result.failure_count == 1
        assert storage.cleared_tokens == ["token-B"]
        assert storage.identities[interaction_identity("B")].push_token is None

    @pytest.mark.asyncio
    async def test_token_cleanup_failure_logged(self, dispatcher, storage, transport):
        async def failing(tokens):
            raise StorageError("store unreachable")

        storage.clear_push_tokens = failing
        transport.invalid_tokens = {"token-A"}

        result = await dispatcher.send_to_recipients(
            [notification_identity("A")], NotificationType.UPDATE
        )

        assert result.failure_count == 1


class TestDisabled:
    @pytest.mark.asyncio
    async def test_no_transport_sends_nothing(self, storage):
        storage.add_user("A")
        dispatcher = PushDispatcher(None, storage)

        result = await dispatcher.send([PendingPush.for_type("token-A", NotificationType.UPDATE)])

        assert not dispatcher.enabled
        assert result.success_count == 0

    @pytest.mark.asyncio
    async def test_transport_failure_counted(self, dispatcher, transport):
        transport.fail_calls = 1

        result = await dispatcher.send_to_recipients(
            [notification_identity("A")], NotificationType.UPDATE
        )

        assert result.failure_count == 1
        assert result.multicast_count == 1
