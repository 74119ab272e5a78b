import os
import sys
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

import fakeredis.aioredis as fakeredis
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from coderunner.config import RuntimeSettings, clear_settings_cache
from coderunner.runtime import Invoker, RuntimeManager


@pytest.fixture(autouse=True)
def fresh_settings():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def runtime_settings():
    return RuntimeSettings(execution_timeout_sec=0.5)


@pytest_asyncio.fixture
async def manager(runtime_settings):
    manager = RuntimeManager(settings=runtime_settings)
    await manager.ensure_ready()
    yield manager
    await manager.shutdown()


@pytest.fixture
def invoker(manager):
    return Invoker(manager)


@pytest.fixture
def client(monkeypatch):
    import coderunner.lifespan as lifespan
    import coderunner.main as main

    def fake_redis_constructor(*_args, **_kwargs):
        return fakeredis.FakeRedis(decode_responses=True)

    monkeypatch.setattr(lifespan.redis, "Redis", fake_redis_constructor)

    with TestClient(main.app) as c:
        yield c
