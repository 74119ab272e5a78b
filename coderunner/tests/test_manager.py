"""Tests for the runtime manager lifecycle."""

import asyncio
import sys
from unittest.mock import patch

import pytest


def _counting_factory(created, fail_first=0):
    from coderunner.runtime import Interpreter

    def factory(**kwargs):
        created.append(kwargs)
        if len(created) <= fail_first:
            raise RuntimeError("boom")
        return Interpreter(**kwargs)

    return factory


class TestEnsureReady:
    """Test runtime bootstrap."""

    @pytest.mark.asyncio
    async def test_ready_after_bootstrap(self, manager):
        assert manager.is_ready
        assert manager.is_loading is False
        assert manager.is_initializing is False
        assert manager.instance is not None
        assert manager.last_error is None

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_instance(self, runtime_settings):
        """Overlapping ensure_ready() calls create exactly one interpreter."""
        from coderunner.runtime import RuntimeManager

        created = []
        manager = RuntimeManager(settings=runtime_settings, interpreter_factory=_counting_factory(created))
        try:
            instances = await asyncio.gather(*(manager.ensure_ready() for _ in range(5)))
            assert len(created) == 1
            assert all(i is instances[0] for i in instances)

            assert await manager.ensure_ready() is instances[0]
            assert len(created) == 1
        finally:
            await manager.shutdown()

    @pytest.mark.asyncio
    async def test_failed_bootstrap_can_be_retried(self, runtime_settings):
        from coderunner.errors import InitializationError
        from coderunner.runtime import RuntimeManager

        created = []
        manager = RuntimeManager(
            settings=runtime_settings,
            interpreter_factory=_counting_factory(created, fail_first=1),
        )
        try:
            with pytest.raises(InitializationError) as exc_info:
                await manager.ensure_ready()
            assert exc_info.value.detail == "Python environment failed to initialize: boom"
            assert manager.is_ready is False
            assert manager.instance is None
            assert str(manager.last_error) == "boom"
            assert manager.status()["error"] == "boom"

            await manager.ensure_ready()
            assert manager.is_ready
            assert manager.last_error is None
            assert len(created) == 2
        finally:
            await manager.shutdown()

    @pytest.mark.asyncio
    async def test_invoke_after_failed_bootstrap(self, runtime_settings):
        from coderunner.errors import InitializationError
        from coderunner.runtime import Invoker, RuntimeManager

        manager = RuntimeManager(
            settings=runtime_settings,
            interpreter_factory=_counting_factory([], fail_first=1),
        )
        with pytest.raises(InitializationError):
            await manager.ensure_ready()

        result = await Invoker(manager).invoke("print('hi')")
        assert result.success is False
        assert result.error.kind == "EnvironmentNotReady"
        assert result.error.message == "Python environment is not ready. Please wait."


class TestInterruptAllocation:
    """Test that a missing interrupt buffer never blocks readiness."""

    @pytest.mark.asyncio
    async def test_interrupts_enabled_by_default(self, manager):
        assert manager.interrupt_buffer is not None
        assert manager.instance.interrupt_buffer is manager.interrupt_buffer
        assert manager.status()["interrupts"] is True

    @pytest.mark.asyncio
    async def test_interrupts_disabled_by_configuration(self):
        from coderunner.config import RuntimeSettings
        from coderunner.runtime import RuntimeManager

        manager = RuntimeManager(settings=RuntimeSettings(interrupts_enabled=False))
        try:
            await manager.ensure_ready()
            assert manager.is_ready
            assert manager.interrupt_buffer is None
            assert manager.status()["interrupts"] is False
        finally:
            await manager.shutdown()

    @pytest.mark.asyncio
    async def test_interrupts_unsupported_by_host(self, runtime_settings):
        from coderunner.runtime import RuntimeManager

        manager = RuntimeManager(settings=runtime_settings)
        try:
            with patch("coderunner.runtime.interrupt._PY_SET_ASYNC_EXC", None):
                await manager.ensure_ready()
            assert manager.is_ready
            assert manager.interrupt_buffer is None
        finally:
            await manager.shutdown()


class TestLoadPackages:
    """Test importing extra packages into the runtime."""

    @pytest.mark.asyncio
    async def test_load_packages_requires_ready_runtime(self, runtime_settings):
        from coderunner.errors import EnvironmentNotReady
        from coderunner.runtime import RuntimeManager

        manager = RuntimeManager(settings=runtime_settings)
        with pytest.raises(EnvironmentNotReady) as exc_info:
            await manager.load_packages(["json"])
        assert exc_info.value.detail == "Python environment is not ready. Cannot load packages."

    @pytest.mark.asyncio
    async def test_load_packages(self, manager):
        await manager.load_packages(["json", "statistics"])
        assert "statistics" in sys.modules

    @pytest.mark.asyncio
    async def test_load_no_packages_is_noop(self, manager):
        await manager.load_packages([])
        assert manager.is_ready

    @pytest.mark.asyncio
    async def test_load_unknown_package_raises(self, manager):
        with pytest.raises(ModuleNotFoundError):
            await manager.load_packages(["definitely_not_a_real_package_xyz"])
        assert manager.is_ready


class TestShutdown:
    """Test tearing the runtime down."""

    @pytest.mark.asyncio
    async def test_shutdown_clears_instance(self, runtime_settings):
        from coderunner.runtime import RuntimeManager

        manager = RuntimeManager(settings=runtime_settings)
        await manager.ensure_ready()
        await manager.shutdown()

        assert manager.instance is None
        assert manager.is_ready is False
        assert manager.status()["ready"] is False
