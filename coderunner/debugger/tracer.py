"""Replay-style step tracing of student code."""

import logging
from functools import lru_cache
from importlib import resources

from pydantic import ValidationError

from coderunner.config import DebuggerSettings, get_settings
from coderunner.errors import KIND_PROTOCOL, ProtocolError
from coderunner.models import Trace
from coderunner.protocol import TRACE_MARKERS, decode_block
from coderunner.runtime.invoker import Invoker

_logger = logging.getLogger("coderunner.debugger")


@lru_cache(maxsize=1)
def _script_source() -> str:
    return resources.files("coderunner.debugger").joinpath("trace_script.py").read_text(encoding="utf-8")


def build_trace_script(user_code: str, settings: DebuggerSettings) -> str:
    """Return the instrumented script that traces ``user_code`` inside the runtime."""
    call = (
        f"emit_trace({user_code!r}, {settings.user_filename!r}, {settings.max_steps!r}, "
        f"{TRACE_MARKERS.start!r}, {TRACE_MARKERS.end!r})"
    )
    return f"{_script_source()}\n\n{call}\n"


def decode_trace(stdout: str) -> Trace:
    """Decode the trace block printed by the tracer script.

    Raises:
        ProtocolError: markers are missing or the payload is not a valid trace.
    """
    payload = decode_block(stdout, TRACE_MARKERS)
    try:
        return Trace.model_validate({
            "success": payload.get("success", False),
            "steps": payload.get("steps", []),
            "combined_output": payload.get("output", ""),
            "error": payload.get("error"),
            "error_kind": payload.get("error_type"),
        })
    except ValidationError as e:
        raise ProtocolError(detail=f"Error parsing trace from runtime output: {e}", error_code="invalid_payload") from e


class Tracer:
    """Runs code through the invoker and keeps the most recent trace.

    Every call to ``trace()`` replaces ``trace_result`` and ``error``; results
    are never merged across calls.
    """

    def __init__(self, invoker: Invoker, settings: DebuggerSettings | None = None) -> None:
        self.invoker = invoker
        self.settings = settings or get_settings().debugger
        self.trace_result: Trace | None = None
        self.error: str | None = None
        self.is_tracing = False

    @property
    def is_loading(self) -> bool:
        return self.is_tracing or self.invoker.manager.is_loading

    async def trace(self, source: str, library_code: str | None = None) -> Trace | None:
        """Trace ``source``; returns None only when the invoker itself failed."""
        self.is_tracing = True
        self.trace_result = None
        self.error = None
        try:
            result = await self.invoker.invoke(build_trace_script(source, self.settings), library_code)
            if not result.success:
                self.error = f"Error during Python execution: {result.error.message}"
                return None

            try:
                trace = decode_trace(result.stdout)
            except ProtocolError as e:
                _logger.warning("Trace decoding failed: %s", e.detail)
                self.error = e.detail
                trace = Trace(success=False, combined_output=result.stdout, error=e.detail, error_kind=KIND_PROTOCOL)
            else:
                if not trace.success:
                    self.error = f"Execution Error: {trace.error_kind} - {trace.error}"
            self.trace_result = trace
            return trace
        finally:
            self.is_tracing = False
