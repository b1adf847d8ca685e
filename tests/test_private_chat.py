"""
Tests for private chats: unanimous extension rounds, teardown and timeout.
"""
import asyncio
import time
from unittest.mock import AsyncMock, patch

import pytest

from core.models import DeclineReason, EndReason

TICK = 0.001


class TestPrivateChats:

    @pytest.mark.asyncio
    async def test_create_chat(self, private_chats, redis_client):
        chat = await private_chats.create_chat("m1", "f1")

        assert chat.id.startswith("private_")
        assert chat.duration_seconds == 300
        assert await redis_client.exists(f"private:{chat.id}")
        assert await private_chats.get_active_id("f1") == chat.id
        assert private_chats.registry.is_running(chat.id)

    @pytest.mark.asyncio
    async def test_single_vote_does_not_extend(self, private_chats, broadcaster):
        chat = await private_chats.create_chat("m1", "f1")

        first = await private_chats.vote_extend(chat.id, "m1")
        repeat = await private_chats.vote_extend(chat.id, "m1")

        assert not first.extended
        assert first.voted_count == 1
        assert repeat.voted_count == 1
        assert broadcaster.events("chat_extended") == []

    @pytest.mark.asyncio
    async def test_unanimous_vote_extends_same_chat(self, private_chats, broadcaster, redis_client):
        chat = await private_chats.create_chat("m1", "f1")
        before = time.time()

        await private_chats.vote_extend(chat.id, "m1")
        result = await private_chats.vote_extend(chat.id, "f1")

        assert result.extended
        assert result.new_duration == 300
        assert broadcaster.events("chat_extended", chat.id) == [{"chat_id": chat.id, "new_duration": 300}]

        extended = await private_chats.get_chat(chat.id)
        assert extended.id == chat.id
        assert extended.started_at == chat.started_at
        assert extended.expires_at >= before + 300
        assert await private_chats.get_votes(chat.id) == []
        assert private_chats.registry.is_running(chat.id)

    @pytest.mark.asyncio
    async def test_votes_do_not_carry_over_rounds(self, private_chats, broadcaster):
        chat = await private_chats.create_chat("m1", "f1")
        await private_chats.vote_extend(chat.id, "m1")
        await private_chats.vote_extend(chat.id, "f1")

        next_round = await private_chats.vote_extend(chat.id, "m1")

        assert not next_round.extended
        assert next_round.voted_count == 1
        assert len(broadcaster.events("chat_extended")) == 1

        again = await private_chats.vote_extend(chat.id, "f1")
        assert again.extended
        assert len(broadcaster.events("chat_extended")) == 2

    @pytest.mark.asyncio
    async def test_concurrent_final_votes_extend_once(self, private_chats, broadcaster):
        chat = await private_chats.create_chat("m1", "f1")
        await private_chats.vote_extend(chat.id, "m1")

        await asyncio.gather(
            private_chats.vote_extend(chat.id, "f1"),
            private_chats.vote_extend(chat.id, "f1"),
        )

        assert len(broadcaster.events("chat_extended", chat.id)) == 1

    @pytest.mark.asyncio
    async def test_extension_restarts_countdown(self, private_chats, registry, broadcaster):
        registry.tick_seconds = TICK
        chat = await private_chats.create_chat("m1", "f1", duration_seconds=1000)
        await broadcaster.wait_for("timer_update", chat.id)

        await private_chats.vote_extend(chat.id, "m1")
        await private_chats.vote_extend(chat.id, "f1")
        marker = len(broadcaster.events("timer_update", chat.id))
        await asyncio.sleep(TICK * 20)

        after = [e["remaining"] for e in broadcaster.events("timer_update", chat.id)[marker:]]
        assert after
        assert after[0] == 299
        assert after == sorted(after, reverse=True)

    @pytest.mark.asyncio
    async def test_vote_declined(self, private_chats):
        chat = await private_chats.create_chat("m1", "f1")

        outsider = await private_chats.vote_extend(chat.id, "x9")
        missing = await private_chats.vote_extend("private_missing", "m1")

        assert outsider.reason == DeclineReason.NOT_PARTICIPANT
        assert missing.reason == DeclineReason.NOT_FOUND

    @pytest.mark.asyncio
    async def test_end_chat_is_idempotent(self, private_chats, broadcaster, redis_client):
        chat = await private_chats.create_chat("m1", "f1")
        await private_chats.vote_extend(chat.id, "m1")

        first = await private_chats.end_chat(chat.id, EndReason.USER_LEFT)
        second = await private_chats.end_chat(chat.id, EndReason.TIMEOUT)

        assert first is not None
        assert second is None
        assert broadcaster.events("private_chat_ended", chat.id) == [
            {"chat_id": chat.id, "reason": "user_left"}
        ]
        assert not await redis_client.exists(f"private:{chat.id}", f"extend:{chat.id}")
        assert not private_chats.registry.is_running(chat.id)

    @pytest.mark.asyncio
    async def test_vote_after_end_does_not_resurrect(self, private_chats, redis_client):
        chat = await private_chats.create_chat("m1", "f1")
        await private_chats.end_chat(chat.id, EndReason.USER_LEFT)

        result = await private_chats.vote_extend(chat.id, "m1")

        assert result.reason == DeclineReason.NOT_FOUND
        assert not await redis_client.exists(f"private:{chat.id}")

    @pytest.mark.asyncio
    async def test_timeout_ends_chat(self, private_chats, registry, broadcaster):
        registry.tick_seconds = TICK
        chat = await private_chats.create_chat("m1", "f1", duration_seconds=2)

        ended = await broadcaster.wait_for("private_chat_ended", chat.id)

        assert ended["reason"] == "timeout"
        assert await private_chats.get_chat(chat.id) is None
        assert await private_chats.get_active_id("m1") is None

    @pytest.mark.asyncio
    async def test_extend_votes_expire_with_chat(self, private_chats, redis_client):
        chat = await private_chats.create_chat("m1", "f1")

        await private_chats.vote_extend(chat.id, "m1")

        votes_ttl = await redis_client.ttl(f"extend:{chat.id}")
        assert 0 < votes_ttl <= await redis_client.ttl(f"private:{chat.id}")

    @pytest.mark.asyncio
    async def test_late_vote_leaves_no_orphan_set(self, private_chats, redis_client):
        chat = await private_chats.create_chat("m1", "f1")
        await private_chats.end_chat(chat.id, EndReason.TIMEOUT)

        with patch.object(private_chats, "get_chat", AsyncMock(return_value=chat)):
            result = await private_chats.vote_extend(chat.id, "m1")

        assert result.reason == DeclineReason.NOT_FOUND
        assert not await redis_client.exists(f"extend:{chat.id}")

    @pytest.mark.asyncio
    async def test_extension_racing_teardown_does_not_resurrect(self, private_chats, broadcaster, redis_client):
        chat = await private_chats.create_chat("m1", "f1")
        await private_chats.end_chat(chat.id, EndReason.TIMEOUT)

        # The extension read the chat just before the teardown deleted it
        with patch.object(private_chats, "get_chat", AsyncMock(return_value=chat)):
            extended = await private_chats._extend(chat)

        assert extended is False
        assert not await redis_client.exists(f"private:{chat.id}")
        assert await private_chats.get_active_id("m1") is None
        assert not private_chats.registry.is_running(chat.id)
        assert broadcaster.events("chat_extended") == []
        assert len(broadcaster.events("private_chat_ended", chat.id)) == 1

    @pytest.mark.asyncio
    async def test_zero_duration_is_not_replaced_by_default(self, private_chats, broadcaster):
        chat = await private_chats.create_chat("m1", "f1", duration_seconds=0)

        assert chat.duration_seconds == 0
        ended = await broadcaster.wait_for("private_chat_ended", chat.id)
        assert ended["reason"] == "timeout"
