"""
Tests for the background matchmaking sweep.
"""
import asyncio
from unittest.mock import patch

import pytest

from core.matchmaking_worker import check_and_match_users, run_matchmaking_worker


class TestMatchmakingWorker:
    """Test the periodic queue sweep."""

    @pytest.mark.asyncio
    async def test_sweep_pairs_everyone_it_can(self, lobby, redis_client, broadcaster):
        """Parties that slipped past event-driven matching get paired."""
        await redis_client.rpush("queue:male", "m1", "m2", "m3")
        await redis_client.rpush("queue:female", "f1", "f2")

        created = await check_and_match_users(lobby)

        assert created == 2
        assert len(broadcaster.events("match_found")) == 2
        assert await lobby.queue.get_queue_count_by_gender() == {"male": 1, "female": 0}

    @pytest.mark.asyncio
    async def test_sweep_respects_batch_size(self, lobby, redis_client):
        await redis_client.rpush("queue:male", *[f"m{i}" for i in range(5)])
        await redis_client.rpush("queue:female", *[f"f{i}" for i in range(5)])

        with patch("core.matchmaking_worker.settings") as mock_settings:
            mock_settings.MATCHMAKING_WORKER_BATCH_SIZE = 3
            created = await check_and_match_users(lobby)

        assert created == 3
        assert await lobby.queue.get_queue_count() == 4

    @pytest.mark.asyncio
    async def test_sweep_with_empty_queues(self, lobby):
        assert await check_and_match_users(lobby) == 0

    @pytest.mark.asyncio
    async def test_worker_survives_errors(self, lobby):
        """A failing cycle is logged and the loop keeps going."""
        calls = []

        async def flaky(_lobby):
            calls.append(True)
            if len(calls) == 1:
                raise RuntimeError("store unreachable")
            return 0

        with patch("core.matchmaking_worker.check_and_match_users", side_effect=flaky):
            task = asyncio.create_task(run_matchmaking_worker(lobby, interval=0.001))
            for _ in range(500):
                if len(calls) >= 3:
                    break
                await asyncio.sleep(0.001)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert len(calls) >= 3
