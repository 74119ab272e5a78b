from fastapi import APIRouter
from pydantic import BaseModel

from coderunner.debugger import Tracer
from coderunner.dependencies import ReadyInvoker
from coderunner.errors import ExecutionFailed
from coderunner.models import ExecutionResult, Trace


class CodeRequest(BaseModel):
    code: str
    library_code: str | None = None


router = APIRouter()


@router.post("/run", response_model=ExecutionResult)
async def run_code(body: CodeRequest, invoker: ReadyInvoker) -> ExecutionResult:
    return await invoker.invoke(body.code, body.library_code)


@router.post("/trace", response_model=Trace)
async def trace_code(body: CodeRequest, invoker: ReadyInvoker) -> Trace:
    tracer = Tracer(invoker)
    trace = await tracer.trace(body.code, body.library_code)
    if trace is None:
        raise ExecutionFailed(detail=tracer.error)
    return trace
