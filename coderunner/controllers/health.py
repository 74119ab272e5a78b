from typing import Any

from fastapi import APIRouter

from coderunner import state

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, Any]:
    redis_status = "disabled"
    if state.redis_client:
        try:
            await state.redis_client.ping()
            redis_status = "healthy"
        except Exception:
            redis_status = "unhealthy"

    runtime = state.runtime_manager.status() if state.runtime_manager else {"ready": False}
    return {"status": "ok" if runtime["ready"] else "degraded", "runtime": runtime, "redis": redis_status}
