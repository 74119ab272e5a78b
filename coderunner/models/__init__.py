from coderunner.models.debugger import PROGRAM_END_LINE, ExecutionStep, Trace
from coderunner.models.execution import ExecutionError, ExecutionResult
from coderunner.models.testing import ActiveTest, ActiveTestStatus, SingleTestResult

__all__ = [
    "PROGRAM_END_LINE",
    "ActiveTest",
    "ActiveTestStatus",
    "ExecutionError",
    "ExecutionResult",
    "ExecutionStep",
    "SingleTestResult",
    "Trace",
]
