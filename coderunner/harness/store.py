"""Persistence of active test collections, keyed by owner identity."""

import logging
from typing import Protocol

import redis.asyncio as redis
from pydantic import TypeAdapter, ValidationError

from coderunner.config import HarnessSettings, get_settings
from coderunner.models import ActiveTest

_logger = logging.getLogger("coderunner.harness.store")

_tests_adapter = TypeAdapter(list[ActiveTest])


def storage_key(owner: str | None, settings: HarnessSettings | None = None) -> str:
    settings = settings or get_settings().harness
    return f"{settings.storage_key}:{owner or settings.anonymous_owner}"


class ActiveTestStore(Protocol):
    async def load(self, owner: str | None) -> list[ActiveTest] | None: ...

    async def save(self, owner: str | None, tests: list[ActiveTest]) -> None: ...


class RedisActiveTestStore:
    """Stores each owner's collection as one JSON list."""

    def __init__(self, redis_client: redis.Redis, settings: HarnessSettings | None = None) -> None:
        self.redis_client = redis_client
        self.settings = settings or get_settings().harness

    async def load(self, owner: str | None) -> list[ActiveTest] | None:
        raw = await self.redis_client.get(storage_key(owner, self.settings))
        if raw is None:
            return None
        try:
            return _tests_adapter.validate_json(raw)
        except ValidationError as e:
            _logger.warning("Discarding unreadable active tests for owner=%s: %s", owner, e)
            return None

    async def save(self, owner: str | None, tests: list[ActiveTest]) -> None:
        await self.redis_client.set(storage_key(owner, self.settings), _tests_adapter.dump_json(tests))


class MemoryActiveTestStore:
    def __init__(self, settings: HarnessSettings | None = None) -> None:
        self.settings = settings or get_settings().harness
        self._data: dict[str, list[ActiveTest]] = {}

    async def load(self, owner: str | None) -> list[ActiveTest] | None:
        tests = self._data.get(storage_key(owner, self.settings))
        if tests is None:
            return None
        return [t.model_copy() for t in tests]

    async def save(self, owner: str | None, tests: list[ActiveTest]) -> None:
        self._data[storage_key(owner, self.settings)] = [t.model_copy() for t in tests]
