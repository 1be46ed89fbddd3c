"""Tests for the chat store: messaging, read receipts and trade completion."""

import uuid

import pytest
import pytest_asyncio

from swapseva.core.exceptions import Forbidden, InvalidArgument, InvalidState, Internal, NotFound
from swapseva.core.realtime import manager, NEW_MESSAGE, TRADE_COMPLETED
from swapseva.services import chat_service


@pytest.fixture
def trade_info(guitar_lessons, python_tutoring):
    return {
        "initiatorOffering": guitar_lessons,
        "responderOffering": python_tutoring,
        "status": "confirmed",
        "confirmedAt": "2026-10-01T10:00:00+00:00",
    }


@pytest_asyncio.fixture
async def chat(alice, bob, trade_info):
    return await chat_service.create_chat([alice["id"], bob["id"]], trade_info)


@pytest.mark.asyncio
async def test_create_chat_requires_two_distinct_participants(alice, trade_info):
    with pytest.raises(InvalidArgument):
        await chat_service.create_chat([alice["id"], alice["id"]], trade_info)
    with pytest.raises(InvalidArgument):
        await chat_service.create_chat([alice["id"]], trade_info)


@pytest.mark.asyncio
async def test_send_message(fake_db, chat, alice, bob):
    """Test that a message is appended and counted as unread for the other participant only."""
    message = await chat_service.send_message(alice, chat["id"], "Hi Bob, when works for you?")

    assert message["sender"] == alice["id"]
    assert message["read"] is False

    stored = fake_db.rows("chats", id=chat["id"])[0]
    assert stored["messages"][-1]["id"] == message["id"]
    assert stored["unread_count"] == {alice["id"]: 0, bob["id"]: 1}
    assert stored["version"] == 1

    notifications = fake_db.rows("notifications", type="message")
    assert len(notifications) == 1
    assert notifications[0]["recipient"] == bob["id"]
    assert notifications[0]["message"] == "Alice: Hi Bob, when works for you?"
    assert notifications[0]["data"] == {"chatId": chat["id"], "messageId": message["id"]}


@pytest.mark.asyncio
async def test_send_message_truncates_notification_preview(fake_db, chat, alice):
    await chat_service.send_message(alice, chat["id"], "x" * 80)

    preview = fake_db.rows("notifications", type="message")[0]["message"]
    assert preview == "Alice: " + "x" * 50 + "..."


@pytest.mark.asyncio
async def test_unread_count_accumulates(fake_db, chat, alice, bob):
    for text in ("one", "two", "three"):
        await chat_service.send_message(alice, chat["id"], text)
    await chat_service.send_message(bob, chat["id"], "reply")

    stored = fake_db.rows("chats", id=chat["id"])[0]
    assert stored["unread_count"] == {alice["id"]: 1, bob["id"]: 3}
    assert len(stored["messages"]) == 4


@pytest.mark.asyncio
async def test_send_message_rejects_blank_content(chat, alice):
    with pytest.raises(InvalidArgument):
        await chat_service.send_message(alice, chat["id"], "   ")


@pytest.mark.asyncio
async def test_send_message_by_outsider(fake_db, chat, seed_user):
    eve = seed_user("Eve")

    with pytest.raises(Forbidden):
        await chat_service.send_message(eve, chat["id"], "let me in")

    assert fake_db.rows("chats", id=chat["id"])[0]["messages"] == []


@pytest.mark.asyncio
async def test_send_message_survives_notification_failure(fake_db, chat, alice):
    """Test that the message is kept even when its notification cannot be stored."""
    fake_db.fail_on = ("notifications", "insert")

    message = await chat_service.send_message(alice, chat["id"], "still here")

    assert fake_db.rows("chats", id=chat["id"])[0]["messages"][-1]["id"] == message["id"]


@pytest.mark.asyncio
async def test_send_message_pushes_to_recipient(chat, alice, bob, recording_socket):
    bob_socket = recording_socket()
    alice_socket = recording_socket()
    await manager.connect(bob_socket, bob["id"])
    await manager.connect(alice_socket, alice["id"])

    message = await chat_service.send_message(alice, chat["id"], "ping")

    assert bob_socket.frames[-1] == {"event": NEW_MESSAGE, "data": {"chatId": chat["id"], "message": message}}
    # Only the connection frame reached the sender
    assert len(alice_socket.frames) == 1


@pytest.mark.asyncio
async def test_send_message_unknown_chat(alice):
    with pytest.raises(NotFound):
        await chat_service.send_message(alice, str(uuid.uuid4()), "hello?")
    with pytest.raises(InvalidArgument):
        await chat_service.send_message(alice, "chat-1", "hello?")


@pytest.mark.asyncio
async def test_mark_read(fake_db, chat, alice, bob):
    await chat_service.send_message(alice, chat["id"], "one")
    await chat_service.send_message(alice, chat["id"], "two")
    await chat_service.send_message(bob, chat["id"], "three")

    await chat_service.mark_read(bob["id"], chat["id"])

    stored = fake_db.rows("chats", id=chat["id"])[0]
    assert stored["unread_count"] == {alice["id"]: 1, bob["id"]: 0}
    assert [m["read"] for m in stored["messages"]] == [True, True, False]


@pytest.mark.asyncio
async def test_get_chat_marks_messages_read(fake_db, chat, alice, bob):
    await chat_service.send_message(alice, chat["id"], "hello")

    opened = await chat_service.get_chat(bob["id"], chat["id"])

    assert opened["unreadCount"][bob["id"]] == 0
    assert opened["messages"][0]["read"] is True


@pytest.mark.asyncio
async def test_get_chat_expands_participants(chat, alice, bob, recording_socket):
    """Test that an opened chat names its participants and uses the list's field names."""
    await manager.connect(recording_socket(), bob["id"])

    opened = await chat_service.get_chat(alice["id"], chat["id"])

    assert opened["participants"] == [
        {"id": alice["id"], "name": "Alice", "avatar": None, "isOnline": False},
        {"id": bob["id"], "name": "Bob", "avatar": None, "isOnline": True},
    ]
    assert opened["tradeInfo"]["status"] == "confirmed"
    assert set(opened) >= {"id", "messages", "unreadCount", "tradeInfo", "updatedAt"}
    assert "trade_info" not in opened


@pytest.mark.asyncio
async def test_get_chat_without_unread_does_not_write(fake_db, chat, alice):
    before = len(fake_db.calls)

    await chat_service.get_chat(alice["id"], chat["id"])

    assert ("chats", "update") not in fake_db.calls[before:]


@pytest.mark.asyncio
async def test_get_chat_by_outsider(chat, seed_user):
    with pytest.raises(Forbidden):
        await chat_service.get_chat(seed_user("Eve")["id"], chat["id"])


@pytest.mark.asyncio
async def test_complete_trade(fake_db, chat, alice, bob, recording_socket):
    """Test that completing marks the trade, notifies the partner and pushes an event."""
    bob_socket = recording_socket()
    await manager.connect(bob_socket, bob["id"])

    completed = await chat_service.complete_trade(alice, chat["id"])

    assert completed["trade_info"]["status"] == "completed"
    assert completed["trade_info"]["completedAt"]
    assert completed["trade_info"]["initiatorOffering"]["title"] == "Guitar Lessons"

    notification = fake_db.rows("notifications", type="barter_completed")[0]
    assert notification["recipient"] == bob["id"]
    assert bob_socket.frames[-1] == {
        "event": TRADE_COMPLETED,
        "data": {"chatId": chat["id"], "completedBy": alice["id"]}
    }


@pytest.mark.asyncio
async def test_complete_trade_twice(fake_db, chat, alice, bob):
    completed = await chat_service.complete_trade(alice, chat["id"])

    with pytest.raises(InvalidState):
        await chat_service.complete_trade(bob, chat["id"])

    stored = fake_db.rows("chats", id=chat["id"])[0]
    assert stored["trade_info"]["completedAt"] == completed["trade_info"]["completedAt"]
    assert len(fake_db.rows("notifications", type="barter_completed")) == 1


@pytest.mark.asyncio
async def test_complete_trade_survives_notification_failure(fake_db, chat, alice, bob, recording_socket):
    """Test that a stored completion is reported as done even if its notification fails."""
    bob_socket = recording_socket()
    await manager.connect(bob_socket, bob["id"])
    fake_db.fail_on = ("notifications", "insert")

    completed = await chat_service.complete_trade(alice, chat["id"])

    assert completed["trade_info"]["status"] == "completed"
    assert fake_db.rows("chats", id=chat["id"])[0]["trade_info"]["status"] == "completed"
    assert bob_socket.frames[-1]["event"] == TRADE_COMPLETED


@pytest.mark.asyncio
async def test_complete_trade_by_outsider(chat, seed_user):
    with pytest.raises(Forbidden):
        await chat_service.complete_trade(seed_user("Eve"), chat["id"])


@pytest.mark.asyncio
async def test_write_retries_after_concurrent_change(fake_db, chat):
    """Test that a version conflict re-reads the row and applies the change again."""
    seen_versions = []

    def mutate(row):
        seen_versions.append(row["version"])
        if len(seen_versions) == 1:
            # Another writer lands between our read and our write
            fake_db.rows("chats", id=chat["id"])[0]["version"] += 1
        return {"trade_info": {**row["trade_info"], "note": "retried"}}

    updated = await chat_service._write(chat["id"], mutate)

    assert seen_versions == [0, 1]
    assert updated["version"] == 2
    assert updated["trade_info"]["note"] == "retried"


@pytest.mark.asyncio
async def test_write_gives_up_when_always_conflicting(fake_db, chat):
    def mutate(row):
        fake_db.rows("chats", id=chat["id"])[0]["version"] += 1
        return {"messages": []}

    with pytest.raises(Internal):
        await chat_service._write(chat["id"], mutate)


@pytest.mark.asyncio
async def test_list_chats_keeps_latest_per_partner(fake_db, alice, bob, seed_user, trade_info):
    """Test that duplicate chats with one partner collapse to the most recently updated."""
    carol = seed_user("Carol")
    older = await chat_service.create_chat([alice["id"], bob["id"]], trade_info)
    newer = await chat_service.create_chat([bob["id"], alice["id"]], trade_info)
    with_carol = await chat_service.create_chat([alice["id"], carol["id"]], trade_info)

    fake_db.rows("chats", id=older["id"])[0]["updated_at"] = "2026-10-01T09:00:00+00:00"
    fake_db.rows("chats", id=newer["id"])[0]["updated_at"] = "2026-10-02T09:00:00+00:00"
    fake_db.rows("chats", id=with_carol["id"])[0]["updated_at"] = "2026-10-01T12:00:00+00:00"

    chats = await chat_service.list_chats_for_user(alice["id"])

    assert [c["id"] for c in chats] == [newer["id"], with_carol["id"]]
    assert chats[0]["otherUser"] == {"id": bob["id"], "name": "Bob", "avatar": None, "isOnline": False}
    assert chats[0]["lastMessage"] is None
    assert chats[0]["unreadCount"] == 0


@pytest.mark.asyncio
async def test_list_chats_shows_last_message_and_unread(chat, alice, bob):
    await chat_service.send_message(alice, chat["id"], "first")
    await chat_service.send_message(alice, chat["id"], "second")

    chats = await chat_service.list_chats_for_user(bob["id"])

    assert len(chats) == 1
    assert chats[0]["lastMessage"]["content"] == "second"
    assert chats[0]["unreadCount"] == 2
    assert chats[0]["otherUser"]["name"] == "Alice"


@pytest.mark.asyncio
async def test_list_chats_for_user_without_chats(seed_user):
    assert await chat_service.list_chats_for_user(seed_user("Loner")["id"]) == []
