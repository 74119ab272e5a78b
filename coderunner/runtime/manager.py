"""Lifecycle of the single embedded runtime instance."""

import asyncio
import importlib
import logging
import sys
from typing import Any, Callable

from coderunner.config import RuntimeSettings, get_settings
from coderunner.errors import EnvironmentNotReady, InitializationError
from coderunner.runtime.interpreter import Interpreter, LogOutputHandler
from coderunner.runtime.interrupt import InterruptBuffer, InterruptUnsupportedError

_logger = logging.getLogger("coderunner.runtime.manager")

# Stdlib modules the generated tracer and harness scripts import inside the runtime.
BOOTSTRAP_MODULES = ("io", "json", "traceback", "types", "typing")


def _import_modules(names: list[str]) -> None:
    for name in names:
        if name not in sys.modules:
            importlib.import_module(name)


class RuntimeManager:
    """Owns exactly one live interpreter per session.

    ``ensure_ready()`` is idempotent: callers arriving while a bootstrap is in
    flight await the same task instead of starting another one. A failed
    bootstrap leaves ``instance`` empty and records ``last_error``; the next
    ``ensure_ready()`` starts over.
    """

    def __init__(
        self,
        settings: RuntimeSettings | None = None,
        interpreter_factory: Callable[..., Interpreter] = Interpreter,
    ) -> None:
        self.settings = settings or get_settings().runtime
        self._interpreter_factory = interpreter_factory
        self.instance: Interpreter | None = None
        self.interrupt_buffer: InterruptBuffer | None = None
        self.is_loading = True
        self.is_initializing = False
        self.last_error: Exception | None = None
        self._init_task: asyncio.Task | None = None

    @property
    def is_ready(self) -> bool:
        return self.instance is not None and not self.is_initializing

    def not_ready_message(self, suffix: str = "Please wait.") -> str:
        state = "initializing" if self.is_initializing else "not ready"
        return f"Python environment is {state}. {suffix}"

    def status(self) -> dict[str, Any]:
        return {
            "ready": self.is_ready,
            "loading": self.is_loading,
            "initializing": self.is_initializing,
            "interrupts": self.interrupt_buffer is not None,
            "error": str(self.last_error) if self.last_error else None,
        }

    async def ensure_ready(self) -> Interpreter:
        if self.instance is not None:
            return self.instance
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._bootstrap())
        # Shielded so one cancelled caller does not abort the shared bootstrap.
        return await asyncio.shield(self._init_task)

    async def _bootstrap(self) -> Interpreter:
        self.is_loading = True
        self.is_initializing = True
        self.last_error = None
        interpreter: Interpreter | None = None
        _logger.info("Starting runtime initialization sequence...")
        try:
            _import_modules(list(BOOTSTRAP_MODULES))
            interpreter = self._interpreter_factory(thread_name=self.settings.thread_name)
            await interpreter.start()
            interpreter.set_stdout(LogOutputHandler(logging.getLogger("coderunner.runtime.stdout"), logging.INFO))
            interpreter.set_stderr(LogOutputHandler(logging.getLogger("coderunner.runtime.stderr"), logging.WARNING))
            if self.settings.preload_list:
                await interpreter.call(_import_modules, self.settings.preload_list)
            self.interrupt_buffer = self._allocate_interrupt_buffer()
            interpreter.set_interrupt_buffer(self.interrupt_buffer)
            self.instance = interpreter
            _logger.info("Runtime ready (interrupts=%s)", self.interrupt_buffer is not None)
            return interpreter
        except Exception as e:
            _logger.error("Runtime initialization failed: %s", e)
            self.last_error = e
            self.instance = None
            self.interrupt_buffer = None
            if interpreter is not None:
                interpreter.close()
            raise InitializationError(detail=f"Python environment failed to initialize: {e}") from e
        finally:
            self.is_loading = False
            self.is_initializing = False
            self._init_task = None

    def _allocate_interrupt_buffer(self) -> InterruptBuffer | None:
        if not self.settings.interrupts_enabled:
            _logger.warning("Interrupt buffer disabled by configuration - timeout interruption unavailable.")
            return None
        try:
            return InterruptBuffer.allocate()
        except InterruptUnsupportedError as e:
            _logger.warning(
                "Interrupt buffer not available - timeout interruption disabled. "
                "Infinite loops will block the runtime until the process restarts. (%s)",
                e,
            )
            return None

    async def load_packages(self, packages: list[str]) -> None:
        """Import ``packages`` inside the runtime so student code can use them."""
        if not self.is_ready:
            message = self.not_ready_message("Cannot load packages.")
            _logger.warning(message)
            raise EnvironmentNotReady(detail=message)
        if not packages:
            return
        _logger.info("Loading packages: %s...", ", ".join(packages))
        try:
            await self.instance.call(_import_modules, list(packages))
        except Exception as e:
            _logger.error("Error loading packages [%s]: %s", ", ".join(packages), e)
            raise
        _logger.info("Packages [%s] loaded successfully.", ", ".join(packages))

    async def shutdown(self) -> None:
        if self._init_task is not None:
            self._init_task.cancel()
            try:
                await self._init_task
            except (asyncio.CancelledError, InitializationError):
                pass
        if self.instance is not None:
            self.instance.close()
        self.instance = None
        self.interrupt_buffer = None
        self.is_loading = True
        self.is_initializing = False
        self._init_task = None
