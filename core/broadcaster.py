"""
Room-scoped event fan-out used by the core to notify participants.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable


class EventBroadcaster(ABC):
    """Delivers an event payload to every member of a logical room."""

    @abstractmethod
    async def emit(self, room: str, event: str, data: Dict[str, Any]) -> None:
        """Send event to all members of room."""

    @abstractmethod
    async def send(self, party_id: str, event: str, data: Dict[str, Any]) -> None:
        """Send event to a single party."""

    @abstractmethod
    def join_room(self, room: str, party_ids: Iterable[str]) -> None:
        """Add parties to a room."""

    @abstractmethod
    def leave_room(self, room: str, party_ids: Iterable[str]) -> None:
        """Remove parties from a room."""

    @abstractmethod
    def close_room(self, room: str) -> None:
        """Forget a room and all of its memberships."""
