"""Step tracer executed inside the runtime.

The host never imports this module. Its source is read as text, followed by a
single ``emit_trace(...)`` call, and the whole script is run by the invoker.
It must therefore only depend on the standard library.
"""

import io
import json
import sys
import types
import typing

SKIP_NAMES = {
    "__name__", "__doc__", "__package__", "__loader__", "__spec__",
    "__builtins__", "__file__", "__cached__", "__annotations__",
}
DEFINITION_PREFIXES = ("def ", "async def ", "class ", "@")
PROGRAM_END_LINE = -1
UNDISPLAYABLE = "<unable to display>"


def safe_repr(value: typing.Any, max_len: int = 50) -> str:
    """Render ``value`` as a short display string. Never raises."""
    try:
        if value is None:
            return "None"
        if isinstance(value, bool):
            return str(value)
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str):
            text = repr(value)
            return text[: max_len - 3] + "..." if len(text) > max_len else text
        if isinstance(value, (list, tuple)):
            open_, close = ("[", "]") if isinstance(value, list) else ("(", ")")
            if len(value) > 3:
                return f"{open_}{len(value)} items{close}"
            return open_ + ", ".join(safe_repr(item, 20) for item in value) + close
        if isinstance(value, dict):
            if len(value) > 2:
                return f"{{{len(value)} items}}"
            return "{" + ", ".join(f"{safe_repr(k, 15)}: {safe_repr(v, 15)}" for k, v in value.items()) + "}"
        return f"<{type(value).__name__} object>"
    except Exception:
        return UNDISPLAYABLE


class StepTracer:
    def __init__(self, filename: str, max_steps: int) -> None:
        self.filename = filename
        self.max_steps = max_steps
        self.steps: list[dict] = []
        self.source_lines: list[str] = []
        self.previous_variables: dict[str, str] = {}
        self.call_depth = 0
        self.output = io.StringIO()

    def student_variables(self, frame_locals: dict) -> dict[str, str]:
        rendered = {}
        for name, value in list(frame_locals.items()):
            if name.startswith("_") or name in SKIP_NAMES:
                continue
            if isinstance(value, types.ModuleType) or callable(value):
                continue
            rendered[name] = safe_repr(value)
        return rendered

    def changed_names(self, current: dict[str, str]) -> list[str]:
        return [name for name, text in current.items() if self.previous_variables.get(name) != text]

    def record(self, line: int, depth: int, variables: dict[str, str], changed: list[str], stdout: str) -> None:
        self.steps.append({
            "index": len(self.steps) + 1,
            "source_line": line,
            "call_depth": depth,
            "variables": variables,
            "changed_names": changed,
            "stdout_so_far": stdout,
        })

    def trace_function(self, frame: types.FrameType, event: str, arg: typing.Any):
        if len(self.steps) >= self.max_steps:
            return None
        if frame.f_code.co_filename != self.filename:
            return None

        if event == "call":
            self.call_depth += 1
        elif event == "return":
            self.call_depth -= 1
        if event != "line":
            return self.trace_function

        line_no = frame.f_lineno
        source = self.source_lines[line_no - 1].strip() if 1 <= line_no <= len(self.source_lines) else ""
        if source.startswith(DEFINITION_PREFIXES):
            return self.trace_function

        variables = self.student_variables(frame.f_locals)
        self.record(line_no, self.call_depth, variables, self.changed_names(variables), self.output.getvalue())
        self.previous_variables = dict(variables)
        return self.trace_function

    def error_line(self, exc: BaseException) -> int:
        line = getattr(exc, "lineno", None) if isinstance(exc, SyntaxError) else None
        tb = exc.__traceback__
        while tb is not None:
            if tb.tb_frame.f_code.co_filename == self.filename:
                line = tb.tb_lineno
            tb = tb.tb_next
        return line or 0

    def run(self, user_code: str) -> dict:
        self.source_lines = user_code.split("\n")
        saved_stdout = sys.stdout
        sys.stdout = self.output
        namespace = {"__name__": "__main__"}
        try:
            compiled = compile(user_code, self.filename, "exec")
            sys.settrace(self.trace_function)
            exec(compiled, namespace)
        except (Exception, SystemExit) as e:
            sys.settrace(None)
            output = self.output.getvalue() + f"{type(e).__name__}: {e}\n"
            self.record(self.error_line(e), self.call_depth, dict(self.previous_variables), [], output)
            return {
                "success": False,
                "steps": self.steps,
                "output": output,
                "error": str(e),
                "error_type": type(e).__name__,
            }
        finally:
            sys.settrace(None)
            sys.stdout = saved_stdout

        output = self.output.getvalue()
        final_variables = self.student_variables(namespace)
        self.record(PROGRAM_END_LINE, 0, final_variables, self.changed_names(final_variables), output)
        return {"success": True, "steps": self.steps, "output": output}


def emit_trace(user_code: str, filename: str, max_steps: int, start_marker: str, end_marker: str) -> None:
    result = StepTracer(filename, max_steps).run(user_code)
    print(start_marker)
    print(json.dumps(result))
    print(end_marker)
