"""
Private chats formed from mutual likes.
Timed like roulette sessions, but extendable by a unanimous vote.
"""
import logging
import time
from typing import Optional

import redis.asyncio as redis

from core.broadcaster import EventBroadcaster
from core.models import DeclineReason, EndReason, ExtendResult, PrivateChat
from core.sessions import TimedPairManager
from core.timers import SessionRegistry

logger = logging.getLogger(__name__)


class PrivateChatManager(TimedPairManager[PrivateChat]):
    """Creates, extends and ends private chats."""

    record_cls = PrivateChat
    kind = "private"
    record_prefix = "private"
    votes_prefix = "extend"

    def __init__(
        self,
        redis_client: redis.Redis,
        registry: SessionRegistry,
        broadcaster: EventBroadcaster,
        duration_seconds: int = 300,
        extend_duration_seconds: int = 300,
        ttl_buffer_seconds: int = 60,
    ):
        super().__init__(redis_client, registry, broadcaster, ttl_buffer_seconds)
        self.duration_seconds = duration_seconds
        self.extend_duration_seconds = extend_duration_seconds

    async def create_chat(
        self,
        party_a: str,
        party_b: str,
        duration_seconds: Optional[int] = None,
    ) -> PrivateChat:
        """
        Create a private chat and start its countdown.

        Args:
            party_a: First party
            party_b: Second party
            duration_seconds: Initial length, defaults to the configured one

        Returns:
            Created chat; its id names the broadcast room
        """
        duration = self.duration_seconds if duration_seconds is None else duration_seconds
        chat = await self._open(party_a, party_b, duration)
        logger.info(f"Private chat {chat.id} started: {party_a} <-> {party_b} ({duration}s)")
        return chat

    async def get_chat(self, chat_id: str) -> Optional[PrivateChat]:
        return await self.get(chat_id)

    async def vote_extend(self, chat_id: str, party_id: str) -> ExtendResult:
        """
        Record an extend vote and extend once both parties have voted.

        Votes only count for the current round: a successful extension
        clears them.

        Args:
            chat_id: Private chat id
            party_id: Voting party

        Returns:
            Whether the chat was extended, else the current vote count
        """
        chat = await self.get_chat(chat_id)
        if not chat:
            return ExtendResult(reason=DeclineReason.NOT_FOUND)
        if not chat.has_participant(party_id):
            return ExtendResult(reason=DeclineReason.NOT_PARTICIPANT)

        votes = await self._add_vote(chat_id, party_id)
        if votes is None:
            return ExtendResult(reason=DeclineReason.NOT_FOUND)

        if not chat.both_in(votes):
            return ExtendResult(extended=False, voted_count=len(votes))

        # Whoever clears the round performs the extension
        if not await self.redis.delete(self._get_votes_key(chat_id)):
            return ExtendResult(extended=False, voted_count=0)

        extended = await self._extend(chat)
        if not extended:
            return ExtendResult(reason=DeclineReason.NOT_FOUND)
        return ExtendResult(extended=True, voted_count=len(votes), new_duration=self.extend_duration_seconds)

    async def _extend(self, chat: PrivateChat) -> bool:
        self.registry.cancel(chat.id)

        # Re-read so a chat ended mid-vote is not resurrected
        current = await self.get_chat(chat.id)
        if current is None:
            return False

        duration = self.extend_duration_seconds
        current.expires_at = time.time() + duration
        # A teardown may have deleted the chat since the read above
        if not await self._store(current, duration, existing_only=True):
            logger.debug(f"Private chat {current.id} ended before its extension was stored")
            return False
        self._start_countdown(current.id, duration)

        await self.broadcaster.emit(current.id, "chat_extended", {
            "chat_id": current.id,
            "new_duration": duration,
        })
        logger.info(f"Private chat {current.id} extended by {duration}s")
        return True

    async def end_chat(self, chat_id: str, reason: EndReason) -> Optional[PrivateChat]:
        """
        Tear down a chat. No-op if it no longer exists.

        Args:
            chat_id: Private chat id
            reason: timeout or user_left

        Returns:
            The ended chat if this call performed the teardown, else None
        """
        ended = await self._teardown(chat_id)
        if ended is None:
            return None
        chat, _ = ended

        await self.broadcaster.emit(chat_id, "private_chat_ended", {
            "chat_id": chat_id,
            "reason": EndReason(reason).value,
        })
        self.broadcaster.close_room(chat_id)
        logger.info(f"Private chat {chat_id} ended: {EndReason(reason).value}")
        return chat

    async def _expire(self, chat_id: str) -> None:
        await self.end_chat(chat_id, EndReason.TIMEOUT)
