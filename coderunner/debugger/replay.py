from coderunner.models import ExecutionStep, Trace


class TraceReplay:
    """Forward/back navigation over a recorded trace. Never re-executes code."""

    def __init__(self, trace: Trace) -> None:
        self.trace = trace
        self.position = 0

    @property
    def steps(self) -> list[ExecutionStep]:
        return self.trace.steps

    @property
    def current(self) -> ExecutionStep | None:
        if not self.steps:
            return None
        return self.steps[self.position]

    @property
    def at_start(self) -> bool:
        return self.position == 0

    @property
    def at_end(self) -> bool:
        return self.position >= len(self.steps) - 1

    def step_forward(self) -> ExecutionStep | None:
        if not self.at_end:
            self.position += 1
        return self.current

    def step_back(self) -> ExecutionStep | None:
        if not self.at_start:
            self.position -= 1
        return self.current

    def jump_to(self, position: int) -> ExecutionStep:
        if not 0 <= position < len(self.steps):
            raise IndexError(f"step {position} out of range (trace has {len(self.steps)} steps)")
        self.position = position
        return self.steps[position]

    def reset(self) -> ExecutionStep | None:
        self.position = 0
        return self.current
