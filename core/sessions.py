"""
Shared plumbing for timed two-party sessions.

Roulette sessions and private chats have the same shape in Redis: a JSON
record with a TTL, a per-session vote set, and a party -> session index used
by the disconnect hook. Each runs its own countdown in the SessionRegistry.
"""
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Generic, List, Optional, Tuple, Type, TypeVar

import redis.asyncio as redis

from core.broadcaster import EventBroadcaster
from core.models import PairRecord
from core.timers import SessionRegistry

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=PairRecord)


class TimedPairManager(ABC, Generic[RecordT]):
    """Base class for roulette session and private chat managers."""

    record_cls: Type[RecordT]
    kind: str = ""
    record_prefix: str = ""
    votes_prefix: str = ""

    def __init__(
        self,
        redis_client: redis.Redis,
        registry: SessionRegistry,
        broadcaster: EventBroadcaster,
        ttl_buffer_seconds: int = 60,
    ):
        """
        Args:
            redis_client: Redis async client instance
            registry: Countdown registry shared by all managers
            broadcaster: Room fan-out for lifecycle events
            ttl_buffer_seconds: Extra TTL beyond the nominal duration
        """
        self.redis = redis_client
        self.registry = registry
        self.broadcaster = broadcaster
        self.ttl_buffer_seconds = ttl_buffer_seconds

    def _get_record_key(self, record_id: str) -> str:
        return f"{self.record_prefix}:{record_id}"

    def _get_votes_key(self, record_id: str) -> str:
        return f"{self.votes_prefix}:{record_id}"

    def _get_party_key(self, party_id: str) -> str:
        """Get Redis key mapping a party to its active session of this kind."""
        return f"party:{party_id}:{self.kind}"

    def _new_id(self) -> str:
        return f"{self.kind}_{uuid.uuid4().hex}"

    async def get(self, record_id: str) -> Optional[RecordT]:
        raw = await self.redis.get(self._get_record_key(record_id))
        return self.record_cls.from_redis(raw)

    async def get_active_id(self, party_id: str) -> Optional[str]:
        """Id of the session of this kind the party is in, if any."""
        return await self.redis.get(self._get_party_key(party_id))

    async def get_votes(self, record_id: str) -> List[str]:
        return sorted(await self.redis.smembers(self._get_votes_key(record_id)))

    async def _store(self, record: RecordT, duration_seconds: int, existing_only: bool = False) -> bool:
        """
        Write the record, its party index and the vote set TTL.

        Args:
            record: Record to write
            duration_seconds: Nominal length; keys live this long plus the buffer
            existing_only: Only overwrite a record that is still there (SET XX)

        Returns:
            False if existing_only was set and the record was already gone
        """
        ttl = duration_seconds + self.ttl_buffer_seconds
        stored = await self.redis.set(
            self._get_record_key(record.id), record.to_redis(), ex=ttl, xx=existing_only
        )
        if not stored:
            return False
        for party_id in record.participants:
            await self.redis.set(self._get_party_key(party_id), record.id, ex=ttl)
        await self.redis.expire(self._get_votes_key(record.id), ttl)
        return True

    async def _add_vote(self, record_id: str, party_id: str) -> Optional[List[str]]:
        """
        Add a vote and give the vote set the record's remaining TTL.

        Returns:
            Current votes, or None if the record vanished meanwhile
        """
        votes_key = self._get_votes_key(record_id)
        await self.redis.sadd(votes_key, party_id)

        ttl = await self.redis.ttl(self._get_record_key(record_id))
        if ttl < 0:
            # Torn down between the read and the vote; drop the orphan set
            await self.redis.delete(votes_key)
            return None
        await self.redis.expire(votes_key, ttl)
        return await self.get_votes(record_id)

    async def _open(self, party_a: str, party_b: str, duration_seconds: int) -> RecordT:
        """Write a fresh record, reset its vote set and start its countdown."""
        if party_a == party_b:
            raise ValueError(f"Cannot pair party {party_a} with itself")

        now = time.time()
        record = self.record_cls(
            id=self._new_id(),
            user1=party_a,
            user2=party_b,
            started_at=now,
            expires_at=now + duration_seconds,
        )
        await self._store(record, duration_seconds)
        await self.redis.delete(self._get_votes_key(record.id))
        self._start_countdown(record.id, duration_seconds)
        return record

    def _start_countdown(self, record_id: str, duration_seconds: int) -> None:
        async def on_tick(remaining: int) -> bool:
            return await self._tick(record_id, remaining)

        async def on_expire() -> None:
            await self._expire(record_id)

        self.registry.start(record_id, duration_seconds, on_tick, on_expire)

    async def _tick(self, record_id: str, remaining: int) -> bool:
        if not await self.redis.exists(self._get_record_key(record_id)):
            logger.debug(f"{self.kind} {record_id} vanished, stopping countdown")
            return False
        await self.broadcaster.emit(record_id, "timer_update", {
            "id": record_id,
            "remaining": remaining,
            "kind": self.kind,
        })
        return True

    @abstractmethod
    async def _expire(self, record_id: str) -> None:
        """End the record once its countdown reaches zero."""

    async def _teardown(self, record_id: str) -> Optional[Tuple[RecordT, List[str]]]:
        """
        Cancel the countdown and delete the session's keys.

        Only the caller whose DEL actually removed the record gets it back;
        concurrent or repeated calls get None.

        Returns:
            (record, votes) for the winning caller, None otherwise
        """
        self.registry.cancel(record_id)

        record = await self.get(record_id)
        if record is None:
            return None
        votes = await self.get_votes(record_id)

        if not await self.redis.delete(self._get_record_key(record_id)):
            logger.debug(f"{self.kind} {record_id} already torn down")
            return None
        await self.redis.delete(self._get_votes_key(record_id))

        for party_id in record.participants:
            party_key = self._get_party_key(party_id)
            if await self.redis.get(party_key) == record_id:
                await self.redis.delete(party_key)

        return record, votes
