"""WebSocket bridge from the realtime bus to connected clients.

Connect with ``/realtime/ws?token=<supabase access token>``. The connection is
subscribed to the user's own notifications and to changes of the rooms they take
part in (new rooms, last_message_at) immediately; room messages are joined on
demand:

    -> {"action": "join_room", "room_id": "..."}
    <- {"type": "joined", "room_id": "..."}
    <- {"type": "change", "table": "chat_messages", "operation": "INSERT", "row": {...}}
    -> {"action": "leave_room", "room_id": "..."}

Every subscription opened for a connection is closed when it disconnects. If
an event cannot be sent the connection is closed with 1011.
"""

import asyncio
import contextlib
import logging
import uuid
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.auth import authenticate_token
from app.core.errors import MarketplaceError
from app.db.session import get_db
from app.models.user import User
from app.realtime.bus import ALL_EVENTS, INSERT, UPDATE, RealtimeBus, RowChange, Subscription, bus as default_bus
from app.services import message_channel

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/realtime", tags=["realtime"])


class RealtimeBridge:
    """Subscriptions held by one WebSocket connection; events are handed to the event loop's queue."""

    def __init__(self, principal: User, loop: asyncio.AbstractEventLoop, realtime: Optional[RealtimeBus] = None):
        self.principal = principal
        self.connection_id = uuid.uuid4().hex
        self.queue: asyncio.Queue = asyncio.Queue()
        self._loop = loop
        self._realtime = realtime or default_bus
        self._notifications: Optional[Subscription] = None
        self._room_list: list[Subscription] = []
        self._rooms: dict[str, Subscription] = {}

    def _forward(self, change: RowChange) -> None:
        # Bus callbacks run on the committing thread
        self._loop.call_soon_threadsafe(self.queue.put_nowait, change)

    def open_notifications(self) -> None:
        self._notifications = self._realtime.subscribe(
            "notifications",
            self._forward,
            filters={"user_id": self.principal.id},
            events=ALL_EVENTS,
            channel=f"ws:{self.connection_id}:notifications",
        )

    def open_room_list(self) -> None:
        """Rooms the principal takes part in, as owner or member: created, or new activity."""
        self._room_list = [
            self._realtime.subscribe(
                "chat_rooms",
                self._forward,
                filters={column: self.principal.id},
                events=(INSERT, UPDATE),
                channel=f"ws:{self.connection_id}:rooms:{column}",
            )
            for column in ("owner_id", "member_id")
        ]

    def join_room(self, room_id: UUID) -> None:
        key = str(room_id)
        if key in self._rooms:
            return
        self._rooms[key] = message_channel.subscribe(
            room_id,
            lambda row: self._forward(RowChange("chat_messages", INSERT, row)),
            realtime=self._realtime,
            channel=f"ws:{self.connection_id}:room:{key}",
        )

    def leave_room(self, room_id: UUID) -> None:
        subscription = self._rooms.pop(str(room_id), None)
        if subscription is not None:
            subscription.close()

    @property
    def rooms(self) -> list[str]:
        return list(self._rooms)

    def close(self) -> None:
        for room_id in list(self._rooms):
            self._rooms.pop(room_id).close()
        for subscription in self._room_list:
            subscription.close()
        self._room_list = []
        if self._notifications is not None:
            self._notifications.close()
            self._notifications = None


async def _pump(websocket: WebSocket, bridge: RealtimeBridge) -> None:
    while True:
        change = await bridge.queue.get()
        await websocket.send_json(
            jsonable_encoder(
                {"type": "change", "table": change.table, "operation": change.operation, "row": change.row}
            )
        )


async def _handle(websocket: WebSocket, bridge: RealtimeBridge, db: Session, data: dict) -> None:
    action = data.get("action")
    if action not in ("join_room", "leave_room"):
        await websocket.send_json({"type": "error", "message": f"Unknown action: {action!r}"})
        return
    try:
        room_id = UUID(str(data.get("room_id")))
    except ValueError:
        await websocket.send_json({"type": "error", "message": "room_id must be a UUID"})
        return

    if action == "leave_room":
        bridge.leave_room(room_id)
        await websocket.send_json({"type": "left", "room_id": str(room_id)})
        return

    try:
        await run_in_threadpool(message_channel.get_room_for_participant, db, bridge.principal, room_id)
    except MarketplaceError as e:
        await websocket.send_json({"type": "error", "error": e.code, "message": e.message})
        return
    bridge.join_room(room_id)
    await websocket.send_json({"type": "joined", "room_id": str(room_id)})


async def _receive(websocket: WebSocket, bridge: RealtimeBridge, db: Session) -> None:
    while True:
        data = await websocket.receive_json()
        if not isinstance(data, dict):
            await websocket.send_json({"type": "error", "message": "Expected a JSON object"})
            continue
        await _handle(websocket, bridge, db, data)


@router.websocket("/ws")
async def realtime_ws(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    await websocket.accept()
    try:
        principal = await run_in_threadpool(authenticate_token, db, token)
    except HTTPException as e:
        logger.info("Realtime connection rejected: %s", e.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(e.detail))
        return

    bridge = RealtimeBridge(principal, asyncio.get_running_loop())
    bridge.open_notifications()
    bridge.open_room_list()
    logger.info("Realtime connected: user=%s connection=%s", principal.id, bridge.connection_id)
    try:
        await websocket.send_json({"type": "ready", "user_id": str(principal.id)})
        receiver = asyncio.create_task(_receive(websocket, bridge, db))
        pump = asyncio.create_task(_pump(websocket, bridge))
        done, pending = await asyncio.wait({receiver, pump}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        error = next((task.exception() for task in done if task.exception() is not None), None)
        if isinstance(error, WebSocketDisconnect):
            logger.info("Realtime disconnected: user=%s connection=%s", principal.id, bridge.connection_id)
        elif error is not None:
            logger.error(
                "Realtime connection failed: user=%s connection=%s error=%r",
                principal.id,
                bridge.connection_id,
                error,
            )
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        bridge.close()
