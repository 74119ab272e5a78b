"""The embedded interpreter runtime.

All student code runs on one dedicated runtime thread. While a run is in
progress ``sys.stdout``/``sys.stderr`` are replaced by routed streams: writes
coming from the runtime thread go to the currently installed output handlers,
writes from any other thread fall through to the host's original streams.
"""

import ast
import asyncio
import builtins
import functools
import io
import linecache
import logging
import sys
import threading
import traceback
import types
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, TextIO

from coderunner.runtime.interrupt import InterruptBuffer

_logger = logging.getLogger("coderunner.runtime")

OutputHandler = Callable[[str], None]

EXEC_FILENAME = "<exec>"


def _discard(_text: str) -> None:
    return None


class LogOutputHandler:
    """Batches runtime output into lines and forwards them to a logger."""

    def __init__(self, logger: logging.Logger, level: int) -> None:
        self._logger = logger
        self._level = level
        self._pending = ""

    def __call__(self, text: str) -> None:
        self._pending += text
        *lines, self._pending = self._pending.split("\n")
        for line in lines:
            self._logger.log(self._level, "%s", line)


@dataclass
class RunOutcome:
    value: Any = None
    exception: BaseException | None = None
    traceback: str = ""

    @property
    def ok(self) -> bool:
        return self.exception is None


class _RoutedStream(io.TextIOBase):
    def __init__(self, interpreter: "Interpreter", name: str, fallback: TextIO | None) -> None:
        self._interpreter = interpreter
        self._name = name
        self._fallback = fallback

    @property
    def encoding(self) -> str:
        return "utf-8"

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        if threading.get_ident() == self._interpreter.thread_id:
            self._interpreter.handler_for(self._name)(text)
        elif self._fallback is not None:
            self._fallback.write(text)
        return len(text)

    def flush(self) -> None:
        if threading.get_ident() != self._interpreter.thread_id and self._fallback is not None:
            self._fallback.flush()


def format_user_traceback(exc: BaseException, filename: str) -> str:
    """Format ``exc`` starting at the first frame that belongs to ``filename``."""
    tb = exc.__traceback__
    while tb is not None and tb.tb_frame.f_code.co_filename != filename:
        tb = tb.tb_next
    return "".join(traceback.format_exception(type(exc), exc, tb))


def _execute(source: str, filename: str, namespace: dict[str, Any]) -> str | None:
    """Run ``source``; a trailing expression's value is returned rendered with ``str``."""
    _remember_source(filename, source)
    tree = ast.parse(source, filename=filename, mode="exec")
    last_expr = None
    if tree.body and isinstance(tree.body[-1], ast.Expr):
        last_expr = ast.Expression(body=tree.body.pop().value)
    exec(compile(tree, filename, "exec"), namespace)
    if last_expr is None:
        return None
    value = eval(compile(last_expr, filename, "eval"), namespace)
    return None if value is None else str(value)


class Interpreter:
    """Single runtime instance; owns the runtime thread and its handlers."""

    def __init__(self, thread_name: str = "coderunner-runtime") -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=thread_name)
        self._stdout: OutputHandler = _discard
        self._stderr: OutputHandler = _discard
        self.interrupt_buffer: InterruptBuffer | None = None
        self.thread_id: int | None = None
        # Virtual module table shared by every run.
        self.modules = sys.modules

    async def start(self) -> None:
        self.thread_id = await self.call(threading.get_ident)
        _logger.debug("Runtime thread started (ident=%s)", self.thread_id)

    async def call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run ``fn`` on the runtime thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.thread_id = None

    def set_stdout(self, handler: OutputHandler) -> None:
        self._stdout = handler

    def set_stderr(self, handler: OutputHandler) -> None:
        self._stderr = handler

    def set_interrupt_buffer(self, buffer: InterruptBuffer | None) -> None:
        self.interrupt_buffer = buffer

    def handler_for(self, name: str) -> OutputHandler:
        return self._stdout if name == "stdout" else self._stderr

    @contextmanager
    def redirect(self, stdout: OutputHandler, stderr: OutputHandler) -> Iterator[None]:
        """Install call-scoped output handlers, restoring the previous ones on exit."""
        saved = self._stdout, self._stderr
        self._stdout, self._stderr = stdout, stderr
        try:
            yield
        finally:
            self._stdout, self._stderr = saved

    async def run(self, source: str, filename: str = EXEC_FILENAME) -> RunOutcome:
        """Execute ``source`` in a fresh ``__main__`` namespace."""
        return await self.call(self._guarded, filename, _execute, source, filename, self._fresh_namespace())

    async def install_module(self, name: str, source: str) -> RunOutcome:
        """Build a virtual module from ``source`` and register it as ``name``."""
        return await self.call(self._guarded, f"<{name}>", self._build_module, name, source)

    async def remove_module(self, name: str) -> bool:
        return await self.call(self._drop_module, name)

    def _fresh_namespace(self) -> dict[str, Any]:
        return {"__name__": "__main__", "__builtins__": builtins}

    def _drop_module(self, name: str) -> bool:
        return self.modules.pop(name, None) is not None

    def _build_module(self, name: str, source: str) -> None:
        self._drop_module(name)
        module = types.ModuleType(name)
        filename = f"<{name}>"
        _remember_source(filename, source)
        exec(compile(source, filename, "exec"), module.__dict__)
        self.modules[name] = module

    def _guarded(self, filename: str, fn: Callable[..., Any], *args: Any) -> RunOutcome:
        """Run ``fn`` with routed streams and an armed interrupt buffer.

        Runs on the runtime thread. Every exception raised by student code,
        ``KeyboardInterrupt`` and ``SystemExit`` included, is returned as part
        of the outcome.
        """
        buffer = self.interrupt_buffer
        saved = sys.stdout, sys.stderr
        interrupted = False
        try:
            sys.stdout = _RoutedStream(self, "stdout", saved[0])
            sys.stderr = _RoutedStream(self, "stderr", saved[1])
            if buffer is not None:
                buffer.arm(threading.get_ident())
            return RunOutcome(value=fn(*args))
        except BaseException as exc:
            interrupted = isinstance(exc, KeyboardInterrupt)
            return RunOutcome(exception=exc, traceback=format_user_traceback(exc, filename))
        finally:
            try:
                sys.stdout, sys.stderr = saved
            finally:
                if buffer is not None:
                    buffer.disarm(delivered=interrupted)


def _remember_source(filename: str, source: str) -> None:
    # Lets tracebacks show the offending source line for synthetic filenames.
    linecache.cache[filename] = (len(source), None, source.splitlines(True), filename)
