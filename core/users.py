"""
Registered party lookup.
Stores the profile a connection registered with, keyed by party id.
"""
import logging
from typing import Any, Dict, Optional

import redis.asyncio as redis

from core.models import UserProfile

logger = logging.getLogger(__name__)


class UserDirectory:
    """Short-lived profile records for connected parties."""

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int = 3600):
        self.redis = redis_client
        self.user_prefix = "user"
        self.ttl_seconds = ttl_seconds

    def _get_user_key(self, party_id: str) -> str:
        """Get Redis key for a user record."""
        return f"{self.user_prefix}:{party_id}"

    async def register(self, party_id: str, data: Dict[str, Any]) -> UserProfile:
        """
        Store (or replace) the profile of a party.

        Args:
            party_id: Party identifier
            data: Profile fields sent by the client

        Returns:
            Stored profile
        """
        existing = await self.get(party_id)
        profile = UserProfile(
            id=party_id,
            name=data.get("name") or f"User_{party_id[:6]}",
            photo=data.get("photo") or "",
            city=data.get("city") or "",
            bio=data.get("bio") or "",
            age=data.get("age"),
            gender=data.get("gender"),
        )
        if existing:
            profile.registered_at = existing.registered_at

        await self.redis.set(self._get_user_key(party_id), profile.to_redis(), ex=self.ttl_seconds)
        logger.info(f"Registered {profile.name} ({profile.gender}) as {party_id}")
        return profile

    async def update(self, party_id: str, changes: Dict[str, Any]) -> Optional[UserProfile]:
        """
        Apply profile changes.

        Returns:
            Updated profile, or None if the party is not registered
        """
        profile = await self.get(party_id)
        if not profile:
            return None

        allowed = {"name", "photo", "city", "bio", "age", "gender"}
        updated = profile.model_copy(update={k: v for k, v in changes.items() if k in allowed})
        await self.redis.set(self._get_user_key(party_id), updated.to_redis(), ex=self.ttl_seconds)
        return updated

    async def get(self, party_id: str) -> Optional[UserProfile]:
        raw = await self.redis.get(self._get_user_key(party_id))
        return UserProfile.from_redis(raw)

    async def remove(self, party_id: str) -> None:
        await self.redis.delete(self._get_user_key(party_id))
