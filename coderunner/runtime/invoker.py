"""Runs one script to completion against the shared runtime."""

import asyncio
import hashlib
import logging
import time
import traceback
from typing import Awaitable, TypeVar

from coderunner.config import RuntimeSettings
from coderunner.errors import KIND_ENVIRONMENT_NOT_READY, KIND_TIMEOUT
from coderunner.models import ExecutionError, ExecutionResult
from coderunner.runtime.interpreter import Interpreter, RunOutcome
from coderunner.runtime.interrupt import InterruptBuffer
from coderunner.runtime.manager import RuntimeManager

_logger = logging.getLogger("coderunner.runtime.invoker")

T = TypeVar("T")

TIMEOUT_MESSAGE = (
    "Code execution timed out after {seconds:g} seconds. This usually happens when "
    "your code has an infinite loop or takes too long to complete."
)


def _code_hash(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()[:16]


async def _until_done(call: Awaitable[T]) -> T:
    """Await a runtime call, riding out cancellation of the caller.

    The runtime thread cannot be stopped from the host, so a cancelled caller
    keeps waiting (holding the lock, the output handlers and the budget) until
    the script finishes, then re-raises ``CancelledError``.
    """
    future = asyncio.ensure_future(call)
    cancelled = False
    while True:
        try:
            result = await asyncio.shield(future)
            break
        except asyncio.CancelledError:
            if future.cancelled():
                raise
            if not cancelled:
                _logger.warning("Caller cancelled while the runtime is busy; waiting for the script to finish")
            cancelled = True
    if cancelled:
        raise asyncio.CancelledError()
    return result


class Invoker:
    """Executes source against the runtime owned by ``manager``.

    Each call gets its own stdout/stderr buffers and a clean virtual library
    module. Calls are serialized on an internal lock so that overlapping
    callers never share output buffers.
    """

    def __init__(self, manager: RuntimeManager, settings: RuntimeSettings | None = None) -> None:
        self.manager = manager
        self.settings = settings or manager.settings
        self._lock = asyncio.Lock()

    async def invoke(self, source: str, library_code: str | None = None) -> ExecutionResult:
        if not self.manager.is_ready:
            message = self.manager.not_ready_message()
            _logger.warning(message)
            return ExecutionResult(
                success=False,
                error=ExecutionError(kind=KIND_ENVIRONMENT_NOT_READY, message=message),
            )

        async with self._lock:
            interpreter = self.manager.instance
            stdout: list[str] = []
            stderr: list[str] = []
            start_time = time.monotonic()
            if interpreter.interrupt_buffer is not None:
                interpreter.interrupt_buffer.reset()
            with interpreter.redirect(stdout.append, stderr.append):
                try:
                    outcome = await self._prepare_library(interpreter, library_code)
                    if outcome.ok:
                        outcome = await self._run_with_budget(interpreter, source)
                except (Exception, KeyboardInterrupt) as exc:
                    _logger.exception("Runtime call failed")
                    outcome = RunOutcome(exception=exc, traceback=traceback.format_exc())
            result = self._to_result(outcome, "".join(stdout), "".join(stderr), interpreter.interrupt_buffer)

        duration_ms = int((time.monotonic() - start_time) * 1000)
        _logger.info(
            "Runtime execution: success=%s kind=%s duration=%dms code_hash=%s",
            result.success,
            result.error.kind if result.error else "-",
            duration_ms,
            _code_hash(source),
        )
        return result

    async def _prepare_library(self, interpreter: Interpreter, library_code: str | None) -> RunOutcome:
        name = self.settings.library_module
        await _until_done(interpreter.remove_module(name))
        if library_code:
            return await _until_done(interpreter.install_module(name, library_code))
        return RunOutcome()

    async def _run_with_budget(self, interpreter: Interpreter, source: str) -> RunOutcome:
        budget = self.settings.execution_timeout_sec
        buffer = interpreter.interrupt_buffer
        handle = None
        if budget and budget > 0 and buffer is not None:
            handle = asyncio.get_running_loop().call_later(budget, self._budget_exceeded, buffer)
        try:
            return await _until_done(interpreter.run(source))
        finally:
            if handle is not None:
                handle.cancel()

    def _budget_exceeded(self, buffer: InterruptBuffer) -> None:
        _logger.warning(
            "Code execution exceeded %ss timeout. Interrupting...",
            self.settings.execution_timeout_sec,
        )
        buffer.trigger()

    def _to_result(
        self,
        outcome: RunOutcome,
        stdout: str,
        stderr: str,
        buffer: InterruptBuffer | None,
    ) -> ExecutionResult:
        if outcome.ok:
            return ExecutionResult(success=True, stdout=stdout, stderr=stderr, return_value=outcome.value)

        exc = outcome.exception
        if isinstance(exc, KeyboardInterrupt) and buffer is not None and buffer.triggered:
            kind = KIND_TIMEOUT
            message = TIMEOUT_MESSAGE.format(seconds=self.settings.execution_timeout_sec)
        else:
            kind = type(exc).__name__
            message = str(exc)
        return ExecutionResult(
            success=False,
            stdout=stdout,
            stderr=stderr,
            error=ExecutionError(
                kind=kind,
                message=message,
                raw_trace=outcome.traceback or stderr or f"{kind}: {message}",
            ),
        )
