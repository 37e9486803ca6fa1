"""Tests for ConversationView: history baseline, live merge, unread/autoscroll, draft restore, teardown."""

import pytest
from unittest.mock import patch

from app.core.errors import DeliveryError
from app.models.chat_room import ChatRoom
from app.realtime.bus import INSERT, RowChange
from app.realtime.conversation import ConversationView
from app.services import connection_requests, message_channel


@pytest.fixture
def room(db_session, business, owner, requester):
    request_id = connection_requests.request_connection(db_session, requester, business.id)
    outcome = connection_requests.decide(db_session, owner, request_id, "accept")
    return db_session.get(ChatRoom, outcome.room_id)


def test_open_loads_history_in_order(db_session, room, owner, requester):
    message_channel.send(db_session, requester, room.id, "Hello")
    message_channel.send(db_session, owner, room.id, "Hi")

    with ConversationView(db_session, requester, room.id) as view:
        assert [m["content"] for m in view.messages] == ["Hello", "Hi"]
        assert view.unread_count == 0


def test_live_message_at_bottom_autoscrolls(db_session, other_session, room, owner, requester):
    with ConversationView(db_session, owner, room.id) as view:
        message_channel.send(other_session, requester, room.id, "Hello")

        assert [m["content"] for m in view.messages] == ["Hello"]
        assert view.unread_count == 0
        assert view.autoscrolls == 1


def test_live_message_while_scrolled_up_counts_unread(db_session, other_session, room, owner, requester):
    with ConversationView(db_session, owner, room.id) as view:
        view.set_at_bottom(False)
        message_channel.send(other_session, requester, room.id, "Hello")
        message_channel.send(other_session, requester, room.id, "Still there?")

        assert view.unread_count == 2
        assert view.autoscrolls == 0

        view.set_at_bottom(True)
        assert view.unread_count == 0


def test_own_messages_never_count_as_unread(db_session, room, owner):
    with ConversationView(db_session, owner, room.id) as view:
        view.set_at_bottom(False)
        view.draft = "Fresh batch tomorrow"
        view.submit()

        assert view.unread_count == 0
        assert view.at_bottom is True


def test_duplicate_delivery_is_merged_by_id(db_session, room, owner, requester, realtime_bus):
    with ConversationView(db_session, owner, room.id) as view:
        message = message_channel.send(db_session, requester, room.id, "Hello")
        row = {
            "id": message.id,
            "room_id": room.id,
            "sender_id": requester.id,
            "content": "Hello",
            "type": "text",
            "created_at": message.created_at,
        }
        realtime_bus.publish([RowChange("chat_messages", INSERT, row)])

        assert len(view.messages) == 1
        assert view.autoscrolls == 1


def test_submit_clears_draft_and_echo_is_not_duplicated(db_session, room, owner):
    with ConversationView(db_session, owner, room.id) as view:
        view.draft = "Hello from the farm"
        row = view.submit()

        assert view.draft == ""
        assert row["content"] == "Hello from the farm"
        assert [m["id"] for m in view.messages] == [row["id"]]
        assert view.autoscrolls == 1


def test_submit_failure_restores_draft(db_session, room, owner):
    with ConversationView(db_session, owner, room.id) as view:
        view.draft = "Please keep this text"
        with patch("app.services.message_channel.send", side_effect=DeliveryError("Message could not be sent")):
            with pytest.raises(DeliveryError):
                view.submit()

        assert view.draft == "Please keep this text"
        assert view.messages == []


def test_blank_draft_is_not_sent(db_session, room, owner):
    with ConversationView(db_session, owner, room.id) as view:
        view.draft = "   "
        with patch("app.services.message_channel.send") as mock_send:
            assert view.submit() is None
        mock_send.assert_not_called()


def test_close_unsubscribes_exactly_once(db_session, other_session, room, owner, requester, realtime_bus):
    view = ConversationView(db_session, owner, room.id).open()
    assert realtime_bus.active_count("chat_messages") == 1

    view.close()
    view.close()

    assert realtime_bus.active_count("chat_messages") == 0
    assert not view.is_open
    message_channel.send(other_session, requester, room.id, "anyone?")
    assert view.messages == []


def test_both_participants_see_each_other_live(db_session, other_session, room, owner, requester):
    owner_view = ConversationView(db_session, owner, room.id).open()
    requester_view = ConversationView(other_session, requester, room.id).open()
    try:
        requester_view.draft = "Hello"
        requester_view.submit()
        owner_view.draft = "Hi"
        owner_view.submit()

        assert [m["content"] for m in owner_view.messages] == ["Hello", "Hi"]
        assert [m["content"] for m in requester_view.messages] == ["Hello", "Hi"]
    finally:
        owner_view.close()
        requester_view.close()


def test_open_twice_is_an_error(db_session, room, owner):
    view = ConversationView(db_session, owner, room.id).open()
    try:
        with pytest.raises(RuntimeError):
            view.open()
    finally:
        view.close()
