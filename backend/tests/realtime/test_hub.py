"""
Castflow Studio - Realtime Hub Tests
====================================
"""

import json
from uuid import uuid4

import pytest

from castflow.core.realtime import (
    ChangeEvent,
    RealtimeHub,
    Table,
    WSMessage,
    WSMessageType,
)


class TestSubscriptions:

    async def test_sync_and_async_callbacks(self):
        hub = RealtimeHub()
        episode_id = uuid4()
        sync_seen, async_seen = [], []

        async def on_change(change):
            async_seen.append(change)

        hub.subscribe(Table.EPISODE_COMMENTS, episode_id, sync_seen.append)
        hub.subscribe(Table.EPISODE_COMMENTS, episode_id, on_change)

        record_id = uuid4()
        delivered = await hub.publish(Table.EPISODE_COMMENTS, episode_id, ChangeEvent.INSERT, record_id)

        assert delivered == 2
        assert sync_seen[0].event == ChangeEvent.INSERT
        assert sync_seen[0].record_id == str(record_id)
        assert async_seen[0].key == str(episode_id)

    async def test_key_and_table_isolation(self):
        hub = RealtimeHub()
        mine, other = uuid4(), uuid4()
        seen = []
        hub.subscribe(Table.EPISODES, mine, seen.append)

        assert await hub.publish(Table.EPISODES, other, ChangeEvent.UPDATE) == 0
        assert await hub.publish(Table.WORKFLOW_STATES, mine, ChangeEvent.INSERT) == 0
        assert seen == []

    async def test_unsubscribe(self):
        hub = RealtimeHub()
        key = uuid4()
        seen = []
        subscription_id = hub.subscribe(Table.USER_PRESENCE, key, seen.append)

        assert hub.unsubscribe(subscription_id) is True
        assert hub.unsubscribe(subscription_id) is False
        assert hub.subscriber_count(Table.USER_PRESENCE, key) == 0
        await hub.publish(Table.USER_PRESENCE, key, ChangeEvent.UPDATE)
        assert seen == []

    async def test_failing_callback_does_not_reach_publisher(self):
        hub = RealtimeHub()
        key = uuid4()
        seen = []

        def broken(change):
            raise RuntimeError("socket closed")

        hub.subscribe(Table.NOTIFICATIONS, key, broken)
        hub.subscribe(Table.NOTIFICATIONS, key, seen.append)

        delivered = await hub.publish(Table.NOTIFICATIONS, key, ChangeEvent.INSERT)

        assert delivered == 1
        assert len(seen) == 1


class TestMessages:

    def test_to_json(self):
        message = WSMessage(type=WSMessageType.PONG, payload={})
        parsed = json.loads(message.to_json())

        assert parsed["type"] == "pong"
        assert parsed["payload"] == {}
        assert "timestamp" in parsed
        assert "message_id" in parsed

    def test_from_json_defaults_payload(self):
        message = WSMessage.from_json('{"type": "ping"}')

        assert message.type == WSMessageType.PING
        assert message.payload == {}

    def test_from_json_rejects_non_object_message(self):
        with pytest.raises(ValueError):
            WSMessage.from_json("[1, 2]")

    def test_from_json_rejects_non_object_payload(self):
        with pytest.raises(ValueError):
            WSMessage.from_json('{"type": "subscribe", "payload": "x"}')
