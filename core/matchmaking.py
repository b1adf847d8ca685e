"""
Redis-based matchmaking queue for roulette chat.
Keeps one FIFO list per gender and pairs one male with one female per attempt.
"""
import logging
from typing import Dict, Optional

import redis.asyncio as redis

from core.models import GENDERS, DeclineReason, MatchAttempt

logger = logging.getLogger(__name__)


class MatchmakingQueue:
    """Gender-partitioned FIFO queues stored as Redis lists."""

    def __init__(self, redis_client: redis.Redis):
        """
        Initialize matchmaking queue with Redis client.

        Args:
            redis_client: Redis async client instance
        """
        self.redis = redis_client
        self.queue_prefix = "queue"

    def _get_queue_key(self, gender: str) -> str:
        """Get Redis key for a gender queue."""
        return f"{self.queue_prefix}:{gender}"

    async def join(self, party_id: str, gender: Optional[str]) -> MatchAttempt:
        """
        Add a party to its gender queue and immediately try to pair.

        Args:
            party_id: Party identifier
            gender: "male" or "female"

        Returns:
            Declined attempt (gender_required / already_in_queue), or the
            result of the pairing attempt that follows the join
        """
        if gender not in GENDERS:
            return MatchAttempt.declined(DeclineReason.GENDER_REQUIRED)

        if await self.is_queued(party_id):
            logger.debug(f"Party {party_id} is already queued")
            return MatchAttempt.declined(DeclineReason.ALREADY_QUEUED)

        await self.redis.rpush(self._get_queue_key(gender), party_id)
        logger.debug(f"Party {party_id} joined {gender} queue")

        return await self.try_match()

    async def leave(self, party_id: str) -> None:
        """Remove a party from both queues. Never fails if absent."""
        for gender in GENDERS:
            await self.redis.lrem(self._get_queue_key(gender), 0, party_id)

    async def try_match(self) -> MatchAttempt:
        """
        Pop the earliest party from each queue.

        Returns:
            Matched attempt with (male, female) pair, or waiting attempt whose
            position is the combined depth of both queues
        """
        male_key = self._get_queue_key("male")
        female_key = self._get_queue_key("female")

        male_count = await self.redis.llen(male_key)
        female_count = await self.redis.llen(female_key)
        if male_count < 1 or female_count < 1:
            return MatchAttempt.waiting(position=male_count + female_count)

        male_id = await self.redis.lpop(male_key)
        female_id = await self.redis.lpop(female_key)

        if male_id is None or female_id is None:
            # A concurrent leave emptied one queue between the length check and the pop
            if male_id is not None:
                await self.redis.lpush(male_key, male_id)
            if female_id is not None:
                await self.redis.lpush(female_key, female_id)
            logger.warning("Partial pop while matching, pushed back and waiting")
            return MatchAttempt.waiting(position=await self.get_queue_count())

        logger.info(f"Paired {male_id} with {female_id}")
        return MatchAttempt(status="matched", pair=(male_id, female_id))

    async def is_queued(self, party_id: str) -> bool:
        """
        Check both queues for a party.

        Args:
            party_id: Party identifier

        Returns:
            True if the party waits in either queue
        """
        for gender in GENDERS:
            members = await self.redis.lrange(self._get_queue_key(gender), 0, -1)
            if party_id in members:
                return True
        return False

    async def get_queue_count(self, gender: Optional[str] = None) -> int:
        """
        Get number of waiting parties.

        Args:
            gender: Only count this gender's queue; both queues if None

        Returns:
            Queue depth
        """
        if gender is not None:
            return await self.redis.llen(self._get_queue_key(gender))
        total = 0
        for g in GENDERS:
            total += await self.redis.llen(self._get_queue_key(g))
        return total

    async def get_queue_count_by_gender(self) -> Dict[str, int]:
        """
        Get count of waiting parties by gender.

        Returns:
            Dictionary with gender counts: {'male': 5, 'female': 3}
        """
        return {gender: await self.get_queue_count(gender) for gender in GENDERS}
