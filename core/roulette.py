"""
Roulette sessions: timed random pairings with like votes.

A session moves created -> active (ticking) -> timeout | skipped | mutual_like
| user_left -> destroyed. Mutual-like hand-off to a private chat is done by
the caller after reading register_like's result.
"""
import logging
from typing import Optional

import redis.asyncio as redis

from core.broadcaster import EventBroadcaster
from core.matchmaking import MatchmakingQueue
from core.models import (
    DeclineReason,
    EndReason,
    LikeResult,
    RouletteSession,
    SkipResult,
)
from core.sessions import TimedPairManager
from core.timers import SessionRegistry
from core.users import UserDirectory

logger = logging.getLogger(__name__)


class RouletteSessionManager(TimedPairManager[RouletteSession]):
    """Creates, votes on and tears down roulette sessions."""

    record_cls = RouletteSession
    kind = "roulette"
    record_prefix = "session"
    votes_prefix = "likes"

    def __init__(
        self,
        redis_client: redis.Redis,
        registry: SessionRegistry,
        broadcaster: EventBroadcaster,
        queue: MatchmakingQueue,
        users: UserDirectory,
        duration_seconds: int = 180,
        ttl_buffer_seconds: int = 60,
    ):
        super().__init__(redis_client, registry, broadcaster, ttl_buffer_seconds)
        self.queue = queue
        self.users = users
        self.duration_seconds = duration_seconds

    async def create_session(
        self,
        party_a: str,
        party_b: str,
        duration_seconds: Optional[int] = None,
    ) -> RouletteSession:
        """
        Create a session for a matched pair and start its countdown.

        Joining both parties to the session room is left to the caller.

        Args:
            party_a: First party (male queue)
            party_b: Second party (female queue)
            duration_seconds: Session length, defaults to the configured one

        Returns:
            Created session; its id names the broadcast room
        """
        duration = self.duration_seconds if duration_seconds is None else duration_seconds
        session = await self._open(party_a, party_b, duration)
        logger.info(f"Roulette session {session.id} created: {party_a} <-> {party_b} ({duration}s)")
        return session

    async def get_session(self, session_id: str) -> Optional[RouletteSession]:
        return await self.get(session_id)

    async def register_like(self, session_id: str, party_id: str) -> LikeResult:
        """
        Record a like. Liking twice has no further effect.

        Args:
            session_id: Roulette session id
            party_id: Party who liked

        Returns:
            Mutual status and current like set, or a declined result
        """
        session = await self.get_session(session_id)
        if not session:
            return LikeResult(reason=DeclineReason.NOT_FOUND)
        if not session.has_participant(party_id):
            return LikeResult(reason=DeclineReason.NOT_PARTICIPANT)

        likes = await self._add_vote(session_id, party_id)
        if likes is None:
            return LikeResult(reason=DeclineReason.NOT_FOUND)
        mutual = session.both_in(likes)
        if mutual:
            logger.info(f"Mutual like in roulette session {session_id}")
        return LikeResult(mutual=mutual, likes=likes)

    async def end_session(self, session_id: str, reason: EndReason) -> Optional[RouletteSession]:
        """
        Tear down a session. No-op if it no longer exists.

        Args:
            session_id: Roulette session id
            reason: timeout, skipped, mutual_like or user_left

        Returns:
            The ended session if this call performed the teardown, else None
        """
        ended = await self._teardown(session_id)
        if ended is None:
            return None
        session, likes = ended
        mutual = session.both_in(likes)

        await self.broadcaster.emit(session_id, "roulette_ended", {
            "session_id": session_id,
            "reason": EndReason(reason).value,
            "mutual": mutual,
        })
        self.broadcaster.close_room(session_id)
        logger.info(f"Roulette session {session_id} ended: {EndReason(reason).value} (mutual={mutual})")
        return session

    async def skip(self, session_id: str, party_id: str) -> SkipResult:
        """
        End the session and put both parties back in the queue.

        Args:
            session_id: Roulette session id
            party_id: Party asking to skip

        Returns:
            Skip outcome with the queue attempt of each re-queued party
        """
        session = await self.get_session(session_id)
        if not session:
            return SkipResult(reason=DeclineReason.NOT_FOUND)
        if not session.has_participant(party_id):
            return SkipResult(reason=DeclineReason.NOT_PARTICIPANT)

        if await self.end_session(session_id, EndReason.SKIPPED) is None:
            # Lost the race against a timeout or another skip
            return SkipResult(reason=DeclineReason.NOT_FOUND)

        result = SkipResult(skipped=True, session=session)
        for participant in session.participants:
            user = await self.users.get(participant)
            gender = user.gender if user else None
            attempt = await self.queue.join(participant, gender)
            if attempt.status == "declined":
                logger.debug(f"Could not re-queue {participant} after skip: {attempt.reason.value}")
            result.attempts.append(attempt)
        return result

    async def _expire(self, session_id: str) -> None:
        await self.end_session(session_id, EndReason.TIMEOUT)
