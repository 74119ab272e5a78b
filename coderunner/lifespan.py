"""Application startup and shutdown.

Builds the shared resources (Redis, the runtime manager and its invoker, the
active test store) and publishes them on ``coderunner.state``.
"""

import logging
from dataclasses import dataclass

import redis.asyncio as redis
from redis.asyncio import BlockingConnectionPool as RedisConnectionPool

from coderunner import state
from coderunner.config import get_settings
from coderunner.errors import InitializationError
from coderunner.harness.store import ActiveTestStore, MemoryActiveTestStore, RedisActiveTestStore
from coderunner.runtime import Invoker, RuntimeManager

logger = logging.getLogger(__name__)


@dataclass
class LifespanResources:
    """Container for resources initialized during lifespan."""

    redis_client: redis.Redis | None = None
    runtime_manager: RuntimeManager | None = None
    invoker: Invoker | None = None
    test_store: ActiveTestStore | None = None


async def init_redis() -> redis.Redis:
    """Initialize Redis connection with connection pool.

    Returns:
        Configured Redis client.
    """
    settings = get_settings()

    redis_pool = RedisConnectionPool(
        host=settings.redis.host,
        port=settings.redis.port,
        password=settings.redis.password if settings.redis.password else None,
        max_connections=settings.redis.max_connections,
        timeout=settings.redis.pool_timeout_sec,
        socket_timeout=settings.redis.socket_timeout,
        decode_responses=True,
    )
    return redis.Redis(connection_pool=redis_pool)


def init_test_store(redis_client: redis.Redis | None) -> ActiveTestStore:
    """Pick the active test store: Redis when connected, in-memory otherwise."""
    if redis_client is not None:
        return RedisActiveTestStore(redis_client)
    logger.warning("Redis disabled - active tests are kept in memory only")
    return MemoryActiveTestStore()


async def init_runtime() -> tuple[RuntimeManager, Invoker]:
    """Bootstrap the runtime. A failed bootstrap is logged, not fatal.

    The manager keeps ``last_error`` and a later ``ensure_ready()`` may retry.
    """
    manager = RuntimeManager()
    try:
        await manager.ensure_ready()
    except InitializationError as e:
        logger.warning("Runtime unavailable at startup: %s", e.detail)
    return manager, Invoker(manager)


async def setup_resources() -> LifespanResources:
    """Set up all shared resources.

    Returns:
        LifespanResources containing all initialized resources.
    """
    settings = get_settings()
    resources = LifespanResources()

    if settings.redis.enabled:
        resources.redis_client = await init_redis()
    resources.test_store = init_test_store(resources.redis_client)
    resources.runtime_manager, resources.invoker = await init_runtime()

    state.redis_client = resources.redis_client
    state.runtime_manager = resources.runtime_manager
    state.invoker = resources.invoker
    state.test_store = resources.test_store

    return resources


async def cleanup_resources(resources: LifespanResources) -> None:
    """Clean up all resources on shutdown.

    Args:
        resources: The resources to clean up.
    """
    if resources.runtime_manager:
        await resources.runtime_manager.shutdown()

    if resources.redis_client:
        await resources.redis_client.aclose()

    state.redis_client = None
    state.runtime_manager = None
    state.invoker = None
    state.test_store = None
