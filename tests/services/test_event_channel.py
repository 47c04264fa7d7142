"""Tests for the in-process event channel."""

import asyncio

import pytest

from chatroom_stage.services.realtime import (
    CHAT_ROOMS_COLLECTION,
    MESSAGES_COLLECTION,
    RESYNC,
    EventChannel,
    get_event_channel,
)


@pytest.mark.asyncio
async def test_publish_fans_out_to_matching_scope():
    channel = EventChannel(queue_size=8)
    room_a = channel.subscribe(MESSAGES_COLLECTION, scope={"chat_room_id": "a"})
    room_b = channel.subscribe(MESSAGES_COLLECTION, scope={"chat_room_id": "b"})
    everything = channel.subscribe(MESSAGES_COLLECTION)
    rooms = channel.subscribe(CHAT_ROOMS_COLLECTION)

    channel.publish(MESSAGES_COLLECTION, "create", {"id": "m1", "chat_room_id": "a"})

    assert (await room_a.get()).payload["id"] == "m1"
    assert (await everything.get()).payload["id"] == "m1"
    assert room_b._queue.empty()
    assert rooms._queue.empty()
    channel.close()


@pytest.mark.asyncio
async def test_scope_matches_list_membership():
    channel = EventChannel()
    subscription = channel.subscribe(CHAT_ROOMS_COLLECTION, scope={"participants": "bob"})

    channel.publish(CHAT_ROOMS_COLLECTION, "update", {"id": "r1", "participants": ["alice", "carol"]})
    channel.publish(CHAT_ROOMS_COLLECTION, "update", {"id": "r2", "participants": ["alice", "bob"]})

    event = await subscription.get()
    assert event.payload["id"] == "r2"
    subscription.close()


@pytest.mark.asyncio
async def test_close_is_idempotent_and_ends_iteration():
    channel = EventChannel()
    subscription = channel.subscribe(MESSAGES_COLLECTION)
    received = []

    async def consume():
        async for event in subscription:
            received.append(event.payload["id"])

    task = asyncio.create_task(consume())
    channel.publish(MESSAGES_COLLECTION, "create", {"id": "m1"})
    await asyncio.sleep(0)
    subscription.close()
    subscription.close()
    await asyncio.wait_for(task, timeout=1)

    assert received == ["m1"]
    assert channel.subscriber_count() == 0
    channel.publish(MESSAGES_COLLECTION, "create", {"id": "m2"})
    assert received == ["m1"]


@pytest.mark.asyncio
async def test_overflow_collapses_backlog_into_resync():
    channel = EventChannel(queue_size=2)
    subscription = channel.subscribe(MESSAGES_COLLECTION)

    for index in range(3):
        channel.publish(MESSAGES_COLLECTION, "create", {"id": f"m{index}"})
    channel.publish(MESSAGES_COLLECTION, "update", {"id": "m3"})

    assert subscription.dropped == 3
    resync = await subscription.get()
    assert resync.kind == RESYNC
    assert resync.payload == {}
    assert (await subscription.get()).payload["id"] == "m3"

    channel.publish(MESSAGES_COLLECTION, "create", {"id": "m4"})
    channel.publish(MESSAGES_COLLECTION, "create", {"id": "m5"})
    channel.publish(MESSAGES_COLLECTION, "create", {"id": "m6"})

    assert subscription.dropped == 6
    assert (await subscription.get()).kind == RESYNC
    subscription.close()


def test_publish_rejects_unknown_kind():
    channel = EventChannel()

    with pytest.raises(ValueError):
        channel.publish(MESSAGES_COLLECTION, "upsert", {"id": "m1"})


def test_event_serializes_to_wire_form():
    channel = EventChannel()

    event = channel.publish(MESSAGES_COLLECTION, "delete", {"id": "m1"})

    wire = event.to_dict()
    assert wire["kind"] == "delete"
    assert wire["collection"] == MESSAGES_COLLECTION
    assert wire["payload"] == {"id": "m1"}
    assert "T" in wire["timestamp"]


def test_shared_channel_is_a_singleton():
    assert get_event_channel() is get_event_channel()
