from pydantic import BaseModel, Field

# Sentinel line number of the terminal "program end" step.
PROGRAM_END_LINE = -1


class ExecutionStep(BaseModel):
    index: int
    source_line: int
    call_depth: int = 0
    variables: dict[str, str] = {}
    changed_names: list[str] = []
    stdout_so_far: str = ""

    @property
    def is_program_end(self) -> bool:
        return self.source_line == PROGRAM_END_LINE


class Trace(BaseModel):
    success: bool
    steps: list[ExecutionStep] = Field(default_factory=list)
    combined_output: str = ""
    error: str | None = None
    error_kind: str | None = None
