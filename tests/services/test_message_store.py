"""Tests for the message store adapter."""

import pytest
from sqlalchemy.exc import OperationalError

from chatroom_stage.core.errors import AuthorizationError, NetworkError, NotFoundError, ValidationError
from chatroom_stage.services.realtime import MESSAGES_COLLECTION
from tests.conftest import ALICE, BOB, CAROL, seed_messages


@pytest.mark.asyncio
async def test_append_stores_and_publishes(rooms, messages, channel):
    room, _ = await rooms.resolve_room(ALICE, BOB)
    subscription = channel.subscribe(MESSAGES_COLLECTION, scope={"chat_room_id": room.id})

    record = await messages.append(room.id, ALICE, "  hello bob  ")

    assert record.text == "hello bob"
    assert record.is_read is False
    assert record.attachment_id is None
    event = await subscription.get()
    assert event.kind == "create"
    assert event.payload["id"] == record.id
    assert event.payload["chat_room_id"] == room.id
    subscription.close()


@pytest.mark.asyncio
async def test_append_rejects_empty_message(rooms, messages):
    room, _ = await rooms.resolve_room(ALICE, BOB)

    with pytest.raises(ValidationError, match="Message cannot be empty"):
        await messages.append(room.id, ALICE, "   ")


@pytest.mark.asyncio
async def test_append_allows_attachment_without_text(rooms, messages):
    room, _ = await rooms.resolve_room(ALICE, BOB)

    record = await messages.append(room.id, ALICE, "", attachment_id="abc123")

    assert record.text == ""
    assert record.attachment_id == "abc123"


@pytest.mark.asyncio
async def test_append_checks_room_and_membership(rooms, messages):
    room, _ = await rooms.resolve_room(ALICE, BOB)

    with pytest.raises(NotFoundError):
        await messages.append("missing-room", ALICE, "hi")
    with pytest.raises(AuthorizationError):
        await messages.append(room.id, CAROL, "let me in")


@pytest.mark.asyncio
async def test_page_oldest_anchor_walks_history_in_order(rooms, messages, db_session):
    room, _ = await rooms.resolve_room(ALICE, BOB)
    seed_messages(db_session, room.id, BOB, 5)

    first = await messages.page(room.id, limit=2, offset=0)
    second = await messages.page(room.id, limit=2, offset=2)
    third = await messages.page(room.id, limit=2, offset=4)

    texts = [m.text for page in (first, second, third) for m in page.messages]
    assert texts == [f"message {index}" for index in range(5)]
    assert first.total == 5
    assert (first.has_more, second.has_more, third.has_more) == (True, True, False)


@pytest.mark.asyncio
async def test_page_newest_anchor_returns_latest_slice_ascending(rooms, messages, db_session):
    room, _ = await rooms.resolve_room(ALICE, BOB)
    seed_messages(db_session, room.id, BOB, 5)

    newest = await messages.page(room.id, limit=2, offset=0, anchor="newest")
    older = await messages.page(room.id, limit=2, offset=2, anchor="newest")

    assert [m.text for m in newest.messages] == ["message 3", "message 4"]
    assert [m.text for m in older.messages] == ["message 1", "message 2"]
    assert newest.has_more is True


@pytest.mark.asyncio
async def test_page_filters_unread_and_sender(rooms, messages):
    room, _ = await rooms.resolve_room(ALICE, BOB)
    mine = await messages.append(room.id, ALICE, "from alice")
    theirs = await messages.append(room.id, BOB, "from bob")
    await messages.set_read(theirs.id)
    await messages.append(room.id, BOB, "unread from bob")

    page = await messages.page(room.id, unread_only=True, exclude_sender_id=ALICE)

    assert [m.text for m in page.messages] == ["unread from bob"]
    assert mine.id not in {m.id for m in page.messages}


@pytest.mark.asyncio
async def test_page_rejects_invalid_window(rooms, messages):
    room, _ = await rooms.resolve_room(ALICE, BOB)

    with pytest.raises(ValidationError):
        await messages.page(room.id, limit=0)
    with pytest.raises(ValidationError):
        await messages.page(room.id, offset=-1)


@pytest.mark.asyncio
async def test_remove_only_by_sender(rooms, messages, channel):
    room, _ = await rooms.resolve_room(ALICE, BOB)
    record = await messages.append(room.id, ALICE, "delete me")
    subscription = channel.subscribe(MESSAGES_COLLECTION)

    with pytest.raises(AuthorizationError, match="only delete your own"):
        await messages.remove(record.id, BOB)

    await messages.remove(record.id, ALICE)

    event = await subscription.get()
    assert event.kind == "delete"
    assert event.payload["id"] == record.id
    with pytest.raises(NotFoundError):
        await messages.get(record.id)
    with pytest.raises(NotFoundError):
        await messages.remove(record.id, ALICE)
    subscription.close()


@pytest.mark.asyncio
async def test_set_read_is_idempotent(rooms, messages, channel):
    room, _ = await rooms.resolve_room(ALICE, BOB)
    record = await messages.append(room.id, ALICE, "read me")
    subscription = channel.subscribe(MESSAGES_COLLECTION, scope={"id": record.id})

    first = await messages.set_read(record.id)
    second = await messages.set_read(record.id)

    assert first.is_read is True
    assert second.is_read is True
    event = await subscription.get()
    assert event.kind == "update"
    assert subscription._queue.empty()
    subscription.close()


@pytest.mark.asyncio
async def test_set_read_by_sender_is_rejected(rooms, messages):
    room, _ = await rooms.resolve_room(ALICE, BOB)
    record = await messages.append(room.id, ALICE, "mine")

    with pytest.raises(AuthorizationError):
        await messages.set_read(record.id, reader_id=ALICE)
    with pytest.raises(AuthorizationError):
        await messages.set_read(record.id, reader_id=CAROL)

    updated = await messages.set_read(record.id, reader_id=BOB)
    assert updated.is_read is True


@pytest.mark.asyncio
async def test_mark_all_read_only_touches_other_participant(rooms, messages):
    room, _ = await rooms.resolve_room(ALICE, BOB)
    await messages.append(room.id, ALICE, "from alice")
    await messages.append(room.id, BOB, "from bob 1")
    await messages.append(room.id, BOB, "from bob 2")

    assert await messages.unread_count(room.id, ALICE) == 2
    assert await messages.mark_all_read(room.id, ALICE) == 2
    assert await messages.unread_count(room.id, ALICE) == 0
    assert await messages.unread_count(room.id, BOB) == 1


@pytest.mark.asyncio
async def test_last_message_and_search(rooms, messages, db_session):
    room, _ = await rooms.resolve_room(ALICE, BOB)
    assert await messages.last_message(room.id) is None

    seed_messages(db_session, room.id, BOB, 3)
    await messages.append(room.id, ALICE, "Lunch at 100% noon?")

    last = await messages.last_message(room.id)
    assert last is not None
    assert last.text == "Lunch at 100% noon?"

    hits = await messages.search(room.id, "MESSAGE")
    assert [m.text for m in hits] == ["message 2", "message 1", "message 0"]
    assert [m.text for m in await messages.search(room.id, "100%")] == ["Lunch at 100% noon?"]
    assert await messages.search(room.id, "_") == []
    with pytest.raises(ValidationError):
        await messages.search(room.id, "  ")


@pytest.mark.asyncio
async def test_store_failures_become_network_errors(rooms, messages, mocker):
    room, _ = await rooms.resolve_room(ALICE, BOB)
    mocker.patch.object(
        messages.db,
        "commit",
        side_effect=OperationalError("INSERT", {}, Exception("database is locked")),
    )

    with pytest.raises(NetworkError, match="Failed to send message."):
        await messages.append(room.id, ALICE, "will not land")
