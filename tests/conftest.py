"""
Shared fixtures: an in-process Redis, a recording broadcaster and the
matchmaking core wired with a millisecond countdown tick.
"""
import asyncio
from typing import Any, Dict, Iterable, List, Set, Tuple

import fakeredis
import pytest
import pytest_asyncio

from core.broadcaster import EventBroadcaster
from core.chat_manager import PrivateChatManager
from core.lobby import RouletteLobby
from core.matchmaking import MatchmakingQueue
from core.roulette import RouletteSessionManager
from core.timers import SessionRegistry
from core.users import UserDirectory

TICK = 0.001

# Countdowns tick once a second unless a test speeds them up with
# `registry.tick_seconds = TICK`, so sessions never expire mid-test by accident.
SLOW_TICK = 1.0


class RecordingBroadcaster(EventBroadcaster):
    """Keeps every emitted event instead of sending it anywhere."""

    def __init__(self):
        self.room_events: List[Tuple[str, str, Dict[str, Any]]] = []
        self.direct_events: List[Tuple[str, str, Dict[str, Any]]] = []
        self.rooms: Dict[str, Set[str]] = {}

    async def emit(self, room, event, data):
        self.room_events.append((room, event, data))

    async def send(self, party_id, event, data):
        self.direct_events.append((party_id, event, data))

    def join_room(self, room: str, party_ids: Iterable[str]) -> None:
        self.rooms.setdefault(room, set()).update(party_ids)

    def leave_room(self, room: str, party_ids: Iterable[str]) -> None:
        self.rooms.get(room, set()).difference_update(party_ids)

    def close_room(self, room: str) -> None:
        self.rooms.pop(room, None)

    def events(self, name: str, room: str = None) -> List[Dict[str, Any]]:
        return [
            data for r, event, data in self.room_events
            if event == name and (room is None or r == room)
        ]

    def names(self, room: str) -> List[str]:
        return [event for r, event, _ in self.room_events if r == room]

    async def wait_for(self, name: str, room: str = None, timeout: float = 2.0) -> Dict[str, Any]:
        """Wait until an event shows up and return its payload."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            found = self.events(name, room)
            if found:
                return found[-1]
            await asyncio.sleep(TICK)
        raise AssertionError(f"{name} was never emitted to {room}")


@pytest.fixture
def redis_client():
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest_asyncio.fixture
async def registry():
    registry = SessionRegistry(tick_seconds=SLOW_TICK)
    yield registry
    await registry.shutdown()


@pytest.fixture
def users(redis_client):
    return UserDirectory(redis_client)


@pytest.fixture
def queue(redis_client):
    return MatchmakingQueue(redis_client)


@pytest.fixture
def roulette(redis_client, registry, broadcaster, queue, users):
    return RouletteSessionManager(
        redis_client, registry, broadcaster, queue, users,
        duration_seconds=180, ttl_buffer_seconds=60,
    )


@pytest.fixture
def private_chats(redis_client, registry, broadcaster):
    return PrivateChatManager(
        redis_client, registry, broadcaster,
        duration_seconds=300, extend_duration_seconds=300, ttl_buffer_seconds=60,
    )


@pytest.fixture
def lobby(users, queue, roulette, private_chats, broadcaster):
    return RouletteLobby(users, queue, roulette, private_chats, broadcaster)
