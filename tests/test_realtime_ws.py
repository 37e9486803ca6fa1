"""Tests for the realtime WebSocket bridge."""

import pytest
from unittest.mock import patch
from fastapi import status
from starlette.websockets import WebSocketDisconnect

from app.services import connection_requests, message_channel


def _ws_url(create_test_token, user):
    token = create_test_token(sub=user.external_auth_uid, email=user.email)
    return f"/api/v1/realtime/ws?token={token}"


def test_root_and_health(client):
    assert client.get("/").json()["message"] == "Welcome to LocalSource Connect API"
    assert client.get("/health").json() == {"status": "healthy"}


def test_connect_sends_ready(client, owner, mock_jwks, create_test_token):
    with client.websocket_connect(_ws_url(create_test_token, owner)) as ws:
        assert ws.receive_json() == {"type": "ready", "user_id": str(owner.id)}


def test_invalid_token_closes_connection(client, mock_jwks):
    with client.websocket_connect("/api/v1/realtime/ws?token=not-a-jwt") as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION


def test_own_notifications_are_pushed(client, db_session, business, owner, requester, mock_jwks, create_test_token):
    request_id = connection_requests.request_connection(db_session, requester, business.id)

    with client.websocket_connect(_ws_url(create_test_token, requester)) as ws:
        ws.receive_json()
        outcome = connection_requests.decide(db_session, owner, request_id, "accept")

        room_event = ws.receive_json()
        event = ws.receive_json()

    # The new room reaches the requester's room list before the notification
    assert room_event["table"] == "chat_rooms"
    assert room_event["operation"] == "INSERT"
    assert room_event["row"]["id"] == str(outcome.room_id)
    assert event["type"] == "change"
    assert event["table"] == "notifications"
    assert event["operation"] == "INSERT"
    assert event["row"]["id"] == str(outcome.notification_id)
    assert event["row"]["type"] == "connection_request_accepted"


def test_joined_room_receives_messages(client, db_session, business, owner, requester, mock_jwks, create_test_token):
    request_id = connection_requests.request_connection(db_session, requester, business.id)
    room_id = connection_requests.decide(db_session, owner, request_id, "accept").room_id

    with client.websocket_connect(_ws_url(create_test_token, owner)) as ws:
        ws.receive_json()
        ws.send_json({"action": "join_room", "room_id": str(room_id)})
        assert ws.receive_json() == {"type": "joined", "room_id": str(room_id)}

        # The sender's own connection gets the message but no notification
        message_channel.send(db_session, owner, room_id, "Fresh curds today")
        event = ws.receive_json()
        room_update = ws.receive_json()

        ws.send_json({"action": "leave_room", "room_id": str(room_id)})
        assert ws.receive_json() == {"type": "left", "room_id": str(room_id)}

    assert event["table"] == "chat_messages"
    assert event["row"]["content"] == "Fresh curds today"
    assert event["row"]["room_id"] == str(room_id)
    assert room_update["table"] == "chat_rooms"
    assert room_update["operation"] == "UPDATE"
    assert room_update["row"]["last_message_at"] is not None


def test_join_room_requires_participation(client, db_session, business, owner, requester, admin, mock_jwks, create_test_token):
    request_id = connection_requests.request_connection(db_session, requester, business.id)
    room_id = connection_requests.decide(db_session, owner, request_id, "accept").room_id

    with client.websocket_connect(_ws_url(create_test_token, admin)) as ws:
        ws.receive_json()
        ws.send_json({"action": "join_room", "room_id": str(room_id)})
        reply = ws.receive_json()

    assert reply["type"] == "error"
    assert reply["error"] == "not_found"


@pytest.mark.parametrize(
    "payload",
    [
        {"action": "subscribe_everything"},
        {"action": "join_room", "room_id": "not-a-uuid"},
        ["join_room"],
    ],
)
def test_bad_client_messages_get_an_error(client, owner, mock_jwks, create_test_token, payload):
    with client.websocket_connect(_ws_url(create_test_token, owner)) as ws:
        ws.receive_json()
        ws.send_json(payload)
        assert ws.receive_json()["type"] == "error"


def test_disconnect_closes_subscriptions(client, owner, realtime_bus, mock_jwks, create_test_token):
    with client.websocket_connect(_ws_url(create_test_token, owner)) as ws:
        ws.receive_json()
        assert realtime_bus.active_count("notifications") == 1
        assert realtime_bus.active_count("chat_rooms") == 2

    assert realtime_bus.active_count() == 0


def test_send_failure_closes_connection_and_subscriptions(
    client, db_session, business, owner, requester, realtime_bus, mock_jwks, create_test_token
):
    request_id = connection_requests.request_connection(db_session, requester, business.id)
    room_id = connection_requests.decide(db_session, owner, request_id, "accept").room_id

    with patch("app.routers.realtime.jsonable_encoder", side_effect=TypeError("row is not serializable")):
        with client.websocket_connect(_ws_url(create_test_token, requester)) as ws:
            ws.receive_json()
            message_channel.send(db_session, owner, room_id, "Order ready")

            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

    assert exc_info.value.code == status.WS_1011_INTERNAL_ERROR
    assert realtime_bus.active_count() == 0
