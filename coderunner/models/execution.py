from pydantic import BaseModel


class ExecutionError(BaseModel):
    kind: str
    message: str
    raw_trace: str = ""


class ExecutionResult(BaseModel):
    success: bool
    stdout: str = ""
    stderr: str = ""
    return_value: str | None = None
    error: ExecutionError | None = None
