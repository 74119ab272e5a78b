from coderunner.runtime.interpreter import Interpreter, RunOutcome
from coderunner.runtime.interrupt import InterruptBuffer, InterruptUnsupportedError
from coderunner.runtime.invoker import TIMEOUT_MESSAGE, Invoker
from coderunner.runtime.manager import RuntimeManager

__all__ = [
    "TIMEOUT_MESSAGE",
    "Interpreter",
    "InterruptBuffer",
    "InterruptUnsupportedError",
    "Invoker",
    "RunOutcome",
    "RuntimeManager",
]
