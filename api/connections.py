"""
WebSocket connection hub.
Tracks one socket per party and the rooms (session/chat ids) each party is in.
"""
import logging
from typing import Any, Dict, Iterable, Set

from fastapi import WebSocket, WebSocketDisconnect

from core.broadcaster import EventBroadcaster

logger = logging.getLogger(__name__)


class ConnectionManager(EventBroadcaster):
    """In-process EventBroadcaster over FastAPI WebSockets."""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}
        self.rooms: Dict[str, Set[str]] = {}

    def connect(self, party_id: str, websocket: WebSocket) -> None:
        self.active_connections[party_id] = websocket

    def disconnect(self, party_id: str) -> None:
        """Forget a party's socket and every room membership."""
        self.active_connections.pop(party_id, None)
        for room in list(self.rooms):
            members = self.rooms[room]
            members.discard(party_id)
            if not members:
                del self.rooms[room]

    def is_connected(self, party_id: str) -> bool:
        return party_id in self.active_connections

    def join_room(self, room: str, party_ids: Iterable[str]) -> None:
        self.rooms.setdefault(room, set()).update(party_ids)

    def leave_room(self, room: str, party_ids: Iterable[str]) -> None:
        members = self.rooms.get(room)
        if members is None:
            return
        members.difference_update(party_ids)
        if not members:
            del self.rooms[room]

    def close_room(self, room: str) -> None:
        self.rooms.pop(room, None)

    def room_members(self, room: str) -> Set[str]:
        return set(self.rooms.get(room, ()))

    async def emit(self, room: str, event: str, data: Dict[str, Any]) -> None:
        """Broadcast message to all parties in a room."""
        for party_id in self.room_members(room):
            await self.send(party_id, event, data)

    async def send(self, party_id: str, event: str, data: Dict[str, Any]) -> None:
        websocket = self.active_connections.get(party_id)
        if websocket is None:
            return
        try:
            await websocket.send_json({"event": event, "data": data})
        except (WebSocketDisconnect, RuntimeError) as e:
            # Connection closed, remove it
            logger.debug(f"Dropping dead socket of {party_id}: {e}")
            self.active_connections.pop(party_id, None)
