"""
Background worker for matchmaking.
Periodically sweeps the queues and connects pairs that event-driven
matching missed (e.g. two joins that interleaved without seeing each other).
"""
import asyncio
import logging

from config.settings import settings
from core.lobby import RouletteLobby

logger = logging.getLogger(__name__)


async def check_and_match_users(lobby: RouletteLobby) -> int:
    """
    Pair waiting parties until a queue runs dry or the batch is full.

    Args:
        lobby: Lobby whose queue is swept

    Returns:
        Number of sessions created in this cycle
    """
    created = 0
    batch_size = settings.MATCHMAKING_WORKER_BATCH_SIZE

    while created < batch_size:
        attempt = await lobby.queue.try_match()
        if not attempt.matched:
            break
        session = await lobby.handle_attempt(attempt)
        logger.info(f"Sweep matched {attempt.pair[0]} <-> {attempt.pair[1]} in {session.id}")
        created += 1

    if created:
        logger.info(f"Processed {created} matches in this cycle")
    return created


async def run_matchmaking_worker(lobby: RouletteLobby, interval: float = None):
    """Run matchmaking sweep in background until cancelled."""
    interval = interval or settings.MATCHMAKING_WORKER_INTERVAL
    logger.info(
        f"Matchmaking worker started with interval: {interval} seconds, "
        f"batch size: {settings.MATCHMAKING_WORKER_BATCH_SIZE}"
    )

    while True:
        try:
            await check_and_match_users(lobby)
        except Exception as e:
            logger.error(f"Matchmaking worker error: {e}", exc_info=True)

        await asyncio.sleep(interval)
