"""Tests for sending, history and live subscription in a chat room."""

import pytest
from unittest.mock import patch
from uuid import uuid4

from sqlalchemy.exc import OperationalError

from app.core.errors import DeliveryError, NotFoundError
from app.models.chat_message import ChatMessage
from app.models.chat_room import ChatRoom
from app.models.notification import Notification
from app.realtime.bus import INSERT, RowChange
from app.schemas.notification import CHAT_MESSAGE
from app.services import connection_requests, message_channel
from tests.conftest import make_user


@pytest.fixture
def room(db_session, business, owner, requester):
    request_id = connection_requests.request_connection(db_session, requester, business.id)
    outcome = connection_requests.decide(db_session, owner, request_id, "accept")
    return db_session.get(ChatRoom, outcome.room_id)


def test_history_is_in_send_order(db_session, room, owner, requester):
    message_channel.send(db_session, requester, room.id, "Hello")
    message_channel.send(db_session, owner, room.id, "Hi")

    history = message_channel.history(db_session, requester, room.id)

    assert [m.content for m in history] == ["Hello", "Hi"]
    assert [m.sender_id for m in history] == [requester.id, owner.id]


def test_send_notifies_the_other_participant(db_session, room, owner, requester):
    message = message_channel.send(db_session, requester, room.id, "Are the cheese curds fresh today?")

    notification = (
        db_session.query(Notification)
        .filter(Notification.user_id == owner.id, Notification.type == CHAT_MESSAGE)
        .one()
    )
    assert notification.data["room_id"] == str(room.id)
    assert notification.data["sender_id"] == str(requester.id)
    assert notification.data["message_id"] == str(message.id)
    assert notification.message == "Are the cheese curds fresh today?"
    db_session.refresh(room)
    assert room.last_message_at is not None


def test_send_file_link(db_session, room, owner):
    message = message_channel.send(db_session, owner, room.id, "https://files.example.com/price-list.pdf", "file_link")

    assert message.type == "file_link"
    notification = db_session.query(Notification).filter(Notification.type == CHAT_MESSAGE).one()
    assert notification.message == "Sent you a file link."


@pytest.mark.parametrize(
    "content,message_type",
    [
        ("   ", "text"),
        ("not a url", "file_link"),
        ("hello", "voice_note"),
    ],
)
def test_send_rejects_invalid_content(db_session, room, owner, content, message_type):
    with pytest.raises(ValueError):
        message_channel.send(db_session, owner, room.id, content, message_type)
    assert db_session.query(ChatMessage).count() == 0


def test_non_participant_cannot_send_or_read(db_session, room):
    outsider = make_user(db_session, str(uuid4()), "outsider@example.com")

    with pytest.raises(NotFoundError):
        message_channel.send(db_session, outsider, room.id, "hi")
    with pytest.raises(NotFoundError):
        message_channel.history(db_session, outsider, room.id)


def test_send_failure_raises_delivery_error_and_writes_nothing(db_session, room, owner):
    with patch.object(db_session, "commit", side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error"))):
        with pytest.raises(DeliveryError):
            message_channel.send(db_session, owner, room.id, "Will this arrive?")

    assert db_session.query(ChatMessage).count() == 0
    assert db_session.query(Notification).filter(Notification.type == CHAT_MESSAGE).count() == 0


def test_history_retries_transient_failures(db_session, room, owner):
    message_channel.send(db_session, owner, room.id, "Hello")
    real_query = db_session.query
    failures = []

    def flaky_query(*entities):
        if entities == (ChatMessage,) and not failures:
            failures.append(1)
            raise OperationalError("SELECT", {}, Exception("server closed the connection"))
        return real_query(*entities)

    with patch("app.db.retry.time.sleep"), patch.object(db_session, "query", side_effect=flaky_query):
        history = message_channel.history(db_session, owner, room.id)

    assert failures == [1]
    assert [m.content for m in history] == ["Hello"]


def test_subscribe_delivers_new_messages_for_the_room_only(db_session, other_session, room, owner, requester, realtime_bus):
    received = []
    subscription = message_channel.subscribe(room.id, received.append)
    try:
        message_channel.send(other_session, requester, room.id, "Hello")
        # Rows for another room are filtered out
        realtime_bus.publish([RowChange("chat_messages", INSERT, {"id": uuid4(), "room_id": uuid4(), "content": "x"})])
    finally:
        subscription.close()

    assert [row["content"] for row in received] == ["Hello"]
    assert received[0]["room_id"] == room.id

    message_channel.send(db_session, owner, room.id, "after close")
    assert len(received) == 1


def test_list_rooms_for_participants(db_session, room, owner, requester):
    assert [r.id for r in message_channel.list_rooms(db_session, owner)] == [room.id]
    assert [r.id for r in message_channel.list_rooms(db_session, requester)] == [room.id]
    outsider = make_user(db_session, str(uuid4()), "nobody@example.com")
    assert message_channel.list_rooms(db_session, outsider) == []
