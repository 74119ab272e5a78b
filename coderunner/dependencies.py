"""Dependency injection for FastAPI endpoints.

Usage in controllers:
    from coderunner.dependencies import ReadyInvoker

    @router.post("/run")
    async def run(body: RunRequest, invoker: ReadyInvoker):
        return await invoker.invoke(body.code)
"""

from typing import Annotated

from fastapi import Depends

from coderunner import state
from coderunner.errors import EnvironmentNotReady
from coderunner.harness.store import ActiveTestStore
from coderunner.runtime import Invoker


def get_invoker() -> Invoker:
    """Get the invoker, whether or not the runtime is ready."""
    if state.invoker is None:
        raise EnvironmentNotReady(detail="Runtime manager not initialized")
    return state.invoker


def get_ready_invoker(invoker: Annotated[Invoker, Depends(get_invoker)]) -> Invoker:
    """Get the invoker, short-circuiting when the runtime is not ready.

    Raises:
        EnvironmentNotReady: If the runtime is missing, initializing or failed.
    """
    manager = invoker.manager
    if not manager.is_ready:
        raise EnvironmentNotReady(detail=manager.not_ready_message())
    return invoker


def get_test_store() -> ActiveTestStore:
    if state.test_store is None:
        raise EnvironmentNotReady(detail="Test store not initialized")
    return state.test_store


AnyInvoker = Annotated[Invoker, Depends(get_invoker)]
ReadyInvoker = Annotated[Invoker, Depends(get_ready_invoker)]
Store = Annotated[ActiveTestStore, Depends(get_test_store)]
