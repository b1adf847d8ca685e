"""
Roulette lobby: ties the queue, the session managers and the broadcaster
together for the gateway's per-event handlers.
"""
import logging
import time
from typing import Any, Dict, Optional, Tuple

from config.settings import settings
from core.broadcaster import EventBroadcaster
from core.chat_manager import PrivateChatManager
from core.matchmaking import MatchmakingQueue
from core.models import (
    DeclineReason,
    EndReason,
    ExtendResult,
    JoinResult,
    LikeResult,
    MatchAttempt,
    PrivateChat,
    RouletteSession,
    SkipResult,
    UserProfile,
)
from core.roulette import RouletteSessionManager
from core.users import UserDirectory
from utils.validators import validate_message

logger = logging.getLogger(__name__)


class RouletteLobby:
    """Entry point for every roulette and private chat action of a party."""

    def __init__(
        self,
        users: UserDirectory,
        queue: MatchmakingQueue,
        roulette: RouletteSessionManager,
        private_chats: PrivateChatManager,
        broadcaster: EventBroadcaster,
    ):
        self.users = users
        self.queue = queue
        self.roulette = roulette
        self.private_chats = private_chats
        self.broadcaster = broadcaster

    async def _peers(self, party_ids: Tuple[str, str]) -> Dict[str, Optional[Dict[str, Any]]]:
        peers = {}
        for party_id in party_ids:
            profile = await self.users.get(party_id)
            peers[party_id] = profile.model_dump() if profile else None
        return peers

    # ---- Queue ----

    async def join_queue(self, party_id: str) -> JoinResult:
        """
        Queue a registered party and connect it if a partner is waiting.

        Returns:
            Matched result with the new session, waiting result with the
            combined queue depth, or a declined result
        """
        user = await self.users.get(party_id)
        if not user:
            return JoinResult(status="declined", reason=DeclineReason.NOT_REGISTERED)

        # A party is in at most one session or chat at a time
        if await self.is_busy(party_id):
            return JoinResult(status="declined", reason=DeclineReason.ALREADY_IN_SESSION)

        attempt = await self.queue.join(party_id, user.gender)
        if attempt.status == "declined":
            return JoinResult(status="declined", reason=attempt.reason)
        if not attempt.matched:
            return JoinResult(status="waiting", position=attempt.position or 1)

        session = await self.connect_pair(attempt.pair)
        return JoinResult(status="matched", session=session)

    async def is_busy(self, party_id: str) -> bool:
        """True if the party is in a live roulette session or private chat."""
        for manager in (self.roulette, self.private_chats):
            record_id = await manager.get_active_id(party_id)
            if record_id and await manager.get(record_id):
                return True
        return False

    async def leave_queue(self, party_id: str) -> None:
        await self.queue.leave(party_id)

    async def connect_pair(self, pair: Tuple[str, str]) -> RouletteSession:
        """Create a session for a popped pair and announce it to both parties."""
        session = await self.roulette.create_session(*pair)
        self.broadcaster.join_room(session.id, session.participants)
        await self.broadcaster.emit(session.id, "match_found", {
            "session_id": session.id,
            "duration": session.duration_seconds,
            "peers": await self._peers(session.participants),
        })
        return session

    async def handle_attempt(self, attempt: MatchAttempt) -> Optional[RouletteSession]:
        """Turn a matched attempt into a session; report waiting ones."""
        if attempt.matched:
            return await self.connect_pair(attempt.pair)
        return None

    async def queue_status(self) -> Dict[str, int]:
        counts = await self.queue.get_queue_count_by_gender()
        counts["total"] = sum(counts.values())
        return counts

    # ---- Roulette ----

    async def like(self, session_id: str, party_id: str) -> LikeResult:
        """
        Register a like and hand the pair to a private chat on mutual like.

        The roulette session is ended before the private chat is created so
        a party is never in both at once.
        """
        result = await self.roulette.register_like(session_id, party_id)
        if result.reason:
            return result

        await self.broadcaster.emit(session_id, "like_registered", {
            "session_id": session_id,
            "mutual": result.mutual,
        })

        if result.mutual:
            session = await self.roulette.end_session(session_id, EndReason.MUTUAL_LIKE)
            if session is not None:
                await self.start_private_chat(session)
        return result

    async def start_private_chat(self, session: RouletteSession) -> PrivateChat:
        chat = await self.private_chats.create_chat(session.user1, session.user2)
        self.broadcaster.join_room(chat.id, chat.participants)
        await self.broadcaster.emit(chat.id, "private_chat_started", {
            "chat_id": chat.id,
            "duration": chat.duration_seconds,
            "peers": await self._peers(chat.participants),
        })
        return chat

    async def skip(self, session_id: str, party_id: str) -> SkipResult:
        """End the session and re-queue both parties, connecting any new pairs."""
        result = await self.roulette.skip(session_id, party_id)
        if not result.skipped:
            return result

        rematched = set()
        for attempt in result.attempts:
            if attempt.matched:
                await self.connect_pair(attempt.pair)
                rematched.update(attempt.pair)

        for participant, attempt in zip(result.session.participants, result.attempts):
            if attempt.status == "waiting" and participant not in rematched:
                await self.broadcaster.send(participant, "queue_status", {
                    "status": "waiting",
                    "position": attempt.position or 1,
                })
        return result

    async def send_roulette_message(self, session_id: str, party_id: str, message: str) -> Optional[DeclineReason]:
        """Relay a chat line to the session room. Nothing is stored."""
        session = await self.roulette.get_session(session_id)
        return await self._relay(session, party_id, message, "roulette_message", "session_id")

    # ---- Private chat ----

    async def extend(self, chat_id: str, party_id: str) -> ExtendResult:
        result = await self.private_chats.vote_extend(chat_id, party_id)
        if not result.reason and not result.extended:
            await self.broadcaster.emit(chat_id, "extend_vote", {
                "chat_id": chat_id,
                "voter_id": party_id,
                "voted_count": result.voted_count,
            })
        return result

    async def leave_private_chat(self, chat_id: str, party_id: str) -> Optional[DeclineReason]:
        chat = await self.private_chats.get_chat(chat_id)
        if not chat:
            return DeclineReason.NOT_FOUND
        if not chat.has_participant(party_id):
            return DeclineReason.NOT_PARTICIPANT
        await self.private_chats.end_chat(chat_id, EndReason.USER_LEFT)
        return None

    async def send_private_message(self, chat_id: str, party_id: str, message: str) -> Optional[DeclineReason]:
        chat = await self.private_chats.get_chat(chat_id)
        return await self._relay(chat, party_id, message, "private_message", "chat_id")

    async def _relay(self, record, party_id: str, message: str, event: str, id_field: str) -> Optional[DeclineReason]:
        if record is None:
            return DeclineReason.NOT_FOUND
        if not record.has_participant(party_id):
            return DeclineReason.NOT_PARTICIPANT
        ok, _ = validate_message(message, settings.MAX_MESSAGE_LENGTH)
        if not ok:
            return DeclineReason.INVALID_MESSAGE

        user = await self.users.get(party_id)
        await self.broadcaster.emit(record.id, event, {
            id_field: record.id,
            "from": party_id,
            "from_name": user.name if user else "",
            "from_photo": user.photo if user else "",
            "message": message,
            "timestamp": time.time(),
        })
        return None

    # ---- Connection lifecycle ----

    async def register(self, party_id: str, data: Dict[str, Any]) -> UserProfile:
        return await self.users.register(party_id, data)

    async def update_profile(self, party_id: str, changes: Dict[str, Any]) -> Optional[UserProfile]:
        return await self.users.update(party_id, changes)

    async def handle_disconnect(self, party_id: str) -> None:
        """Drop the party from the queue and end whatever it was part of."""
        await self.queue.leave(party_id)

        session_id = await self.roulette.get_active_id(party_id)
        if session_id:
            await self.roulette.end_session(session_id, EndReason.USER_LEFT)

        chat_id = await self.private_chats.get_active_id(party_id)
        if chat_id:
            await self.private_chats.end_chat(chat_id, EndReason.USER_LEFT)

        await self.users.remove(party_id)
        logger.info(f"Cleaned up after {party_id}")
