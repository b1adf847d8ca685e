"""
Main entry point for the roulette chat service.
Initializes Redis, the matchmaking core and the FastAPI server.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis
import uvicorn
from fastapi import FastAPI

from api.gateway import app as fastapi_app, connection_manager, set_lobby
from config.settings import settings
from core.chat_manager import PrivateChatManager
from core.lobby import RouletteLobby
from core.matchmaking import MatchmakingQueue
from core.matchmaking_worker import run_matchmaking_worker
from core.roulette import RouletteSessionManager
from core.timers import SessionRegistry
from core.users import UserDirectory

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Global instances
redis_client = None
registry = None


async def setup_redis():
    """Setup Redis connection with connection pooling."""
    global redis_client

    try:
        redis_client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD if settings.REDIS_PASSWORD else None,
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

        # Test connection
        await redis_client.ping()
        logger.info("Redis connected successfully with connection pooling")

        return redis_client
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise


def build_lobby(client: redis.Redis, timer_registry: SessionRegistry) -> RouletteLobby:
    """Wire the matchmaking core around a Redis client and a timer registry."""
    users = UserDirectory(client, ttl_seconds=settings.USER_TTL_SECONDS)
    queue = MatchmakingQueue(client)
    roulette = RouletteSessionManager(
        client,
        timer_registry,
        connection_manager,
        queue,
        users,
        duration_seconds=settings.ROULETTE_DURATION_SECONDS,
        ttl_buffer_seconds=settings.SESSION_TTL_BUFFER_SECONDS,
    )
    private_chats = PrivateChatManager(
        client,
        timer_registry,
        connection_manager,
        duration_seconds=settings.PRIVATE_CHAT_DURATION_SECONDS,
        extend_duration_seconds=settings.EXTEND_DURATION_SECONDS,
        ttl_buffer_seconds=settings.SESSION_TTL_BUFFER_SECONDS,
    )
    return RouletteLobby(users, queue, roulette, private_chats, connection_manager)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app."""
    global registry

    # Startup
    logger.info("Starting application...")
    client = await setup_redis()
    registry = SessionRegistry(tick_seconds=settings.TIMER_TICK_SECONDS)
    lobby = build_lobby(client, registry)
    set_lobby(lobby)

    # Start matchmaking sweep in background
    worker = asyncio.create_task(run_matchmaking_worker(lobby))
    logger.info("Matchmaking core initialized")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    worker.cancel()
    try:
        await worker
    except asyncio.CancelledError:
        pass

    await registry.shutdown()
    set_lobby(None)

    if redis_client:
        await redis_client.aclose()
        logger.info("Redis closed")


async def run_fastapi():
    """Run FastAPI server."""
    fastapi_app.router.lifespan_context = lifespan

    config = uvicorn.Config(
        fastapi_app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
    server = uvicorn.Server(config)
    await server.serve()


if __name__ == "__main__":
    try:
        asyncio.run(run_fastapi())
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
    except Exception as e:
        logger.error(f"Application error: {e}")
