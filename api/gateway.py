"""
FastAPI gateway for roulette chat.
Real-time events over a WebSocket plus a couple of HTTP status endpoints.
"""
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError
from redis.exceptions import RedisError

from api.connections import ConnectionManager
from config.settings import settings
from core.lobby import RouletteLobby
from core.models import DeclineReason
from utils.validators import normalize_profile, validate_profile

logger = logging.getLogger(__name__)

app = FastAPI(title="Roulette Chat API", version="1.0.0")

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global lobby, set at startup
lobby: Optional[RouletteLobby] = None

# WebSocket connections and rooms
connection_manager = ConnectionManager()

DECLINE_MESSAGES = {
    DeclineReason.GENDER_REQUIRED: "Please select your gender to use roulette matching",
    DeclineReason.ALREADY_QUEUED: "You are already in the queue",
    DeclineReason.ALREADY_IN_SESSION: "Finish your current chat before joining the queue",
    DeclineReason.NOT_REGISTERED: "Please register first",
    DeclineReason.NOT_FOUND: "This chat has already ended",
    DeclineReason.NOT_PARTICIPANT: "Not authorized",
    DeclineReason.INVALID_MESSAGE: "Message cannot be empty or too long",
}


class ProfilePayload(BaseModel):
    """Profile fields a client may send on register/update_profile."""
    name: Optional[str] = None
    photo: Optional[str] = None
    city: Optional[str] = None
    bio: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None


class SessionPayload(BaseModel):
    session_id: str


class SessionMessagePayload(SessionPayload):
    message: str


class ChatPayload(BaseModel):
    chat_id: str


class ChatMessagePayload(ChatPayload):
    message: str


def set_lobby(instance: Optional[RouletteLobby]):
    """Set lobby instance."""
    global lobby
    lobby = instance


async def send_error(party_id: str, message: str, reason: Optional[DeclineReason] = None):
    data: Dict[str, Any] = {"message": message}
    if reason is not None:
        data["reason"] = reason.value
    await connection_manager.send(party_id, "error", data)


async def send_declined(party_id: str, reason: DeclineReason):
    await send_error(party_id, DECLINE_MESSAGES.get(reason, "Request declined"), reason)


# ---- Event handlers ----

async def handle_register(party_id: str, data: Dict[str, Any]):
    payload = ProfilePayload.model_validate(data)
    profile_data = normalize_profile(payload.model_dump(exclude_none=True))
    ok, error = validate_profile(profile_data, settings.MAX_NAME_LENGTH)
    if not ok:
        await connection_manager.send(party_id, "registered", {"success": False, "error": error})
        return

    profile = await lobby.register(party_id, profile_data)
    await connection_manager.send(party_id, "registered", {"success": True, "user": profile.model_dump()})


async def handle_update_profile(party_id: str, data: Dict[str, Any]):
    payload = ProfilePayload.model_validate(data)
    changes = normalize_profile(payload.model_dump(exclude_unset=True, exclude_none=True))
    ok, error = validate_profile(changes, settings.MAX_NAME_LENGTH)
    if not ok:
        await send_error(party_id, error)
        return

    profile = await lobby.update_profile(party_id, changes)
    if profile is None:
        await send_declined(party_id, DeclineReason.NOT_REGISTERED)
        return
    await connection_manager.send(party_id, "profile_updated", {"user": profile.model_dump()})


async def handle_join_queue(party_id: str, data: Dict[str, Any]):
    await connection_manager.send(party_id, "queue_status", {"status": "joining"})
    result = await lobby.join_queue(party_id)

    if result.status == "declined":
        await send_declined(party_id, result.reason)
    elif result.status == "waiting":
        await connection_manager.send(party_id, "queue_status", {
            "status": "waiting",
            "position": result.position,
        })
    # Matched parties already got match_found through the session room


async def handle_leave_queue(party_id: str, data: Dict[str, Any]):
    await lobby.leave_queue(party_id)
    await connection_manager.send(party_id, "queue_status", {"status": "left"})


async def handle_like(party_id: str, data: Dict[str, Any]):
    payload = SessionPayload.model_validate(data)
    result = await lobby.like(payload.session_id, party_id)
    if result.reason:
        await send_declined(party_id, result.reason)


async def handle_skip(party_id: str, data: Dict[str, Any]):
    payload = SessionPayload.model_validate(data)
    result = await lobby.skip(payload.session_id, party_id)
    if result.reason:
        await send_declined(party_id, result.reason)


async def handle_roulette_message(party_id: str, data: Dict[str, Any]):
    payload = SessionMessagePayload.model_validate(data)
    reason = await lobby.send_roulette_message(payload.session_id, party_id, payload.message)
    if reason:
        await send_declined(party_id, reason)


async def handle_extend(party_id: str, data: Dict[str, Any]):
    payload = ChatPayload.model_validate(data)
    result = await lobby.extend(payload.chat_id, party_id)
    if result.reason:
        await send_declined(party_id, result.reason)


async def handle_private_message(party_id: str, data: Dict[str, Any]):
    payload = ChatMessagePayload.model_validate(data)
    reason = await lobby.send_private_message(payload.chat_id, party_id, payload.message)
    if reason:
        await send_declined(party_id, reason)


async def handle_leave_private(party_id: str, data: Dict[str, Any]):
    payload = ChatPayload.model_validate(data)
    reason = await lobby.leave_private_chat(payload.chat_id, party_id)
    if reason:
        await send_declined(party_id, reason)


EVENT_HANDLERS: Dict[str, Callable[[str, Dict[str, Any]], Awaitable[None]]] = {
    "register": handle_register,
    "update_profile": handle_update_profile,
    "join_queue": handle_join_queue,
    "leave_queue": handle_leave_queue,
    "like": handle_like,
    "skip": handle_skip,
    "roulette_message": handle_roulette_message,
    "extend": handle_extend,
    "private_message": handle_private_message,
    "leave_private": handle_leave_private,
}


async def dispatch(party_id: str, frame: Any):
    """Route one inbound frame to its handler, reporting failures to the sender."""
    if not isinstance(frame, dict):
        await send_error(party_id, "Malformed message")
        return

    event = frame.get("event")
    handler = EVENT_HANDLERS.get(event)
    if handler is None:
        await send_error(party_id, f"Unknown event: {event}")
        return

    try:
        await handler(party_id, frame.get("data") or {})
    except ValidationError as e:
        logger.debug(f"Invalid {event} payload from {party_id}: {e}")
        await send_error(party_id, f"Invalid payload for {event}")
    except RedisError as e:
        logger.error(f"Store error while handling {event} for {party_id}: {e}", exc_info=True)
        await send_error(party_id, "Service temporarily unavailable, please try again")


# ---- HTTP endpoints ----

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    active_timers = lobby.roulette.registry.active_count if lobby else 0
    return {"status": "ok", "service": "roulette-chat", "active_timers": active_timers}


@app.get("/api/queue/status")
async def queue_status():
    """
    Get queue depth per gender.

    Returns:
        Counts for male, female and total
    """
    if not lobby:
        raise HTTPException(status_code=503, detail="Service not ready")
    return await lobby.queue_status()


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for roulette chat.

    Frames in both directions are {"event": name, "data": {...}}.
    """
    await websocket.accept()

    if lobby is None:
        await websocket.close(code=1011, reason="Server error")
        return

    party_id = uuid.uuid4().hex
    connection_manager.connect(party_id, websocket)
    logger.info(f"Party connected: {party_id}")
    await connection_manager.send(party_id, "connected", {"party_id": party_id})

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                await send_error(party_id, "Malformed message")
                continue
            await dispatch(party_id, frame)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error for {party_id}: {e}", exc_info=True)
    finally:
        connection_manager.disconnect(party_id)
        try:
            await lobby.handle_disconnect(party_id)
        except Exception as e:
            logger.error(f"Disconnect cleanup error for {party_id}: {e}", exc_info=True)
        logger.info(f"Party disconnected: {party_id}")
