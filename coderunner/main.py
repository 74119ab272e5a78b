import logging

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coderunner.config import get_settings
from coderunner.controllers.active_tests import router as active_tests_router
from coderunner.controllers.execution import router as execution_router
from coderunner.controllers.health import router as health_router
from coderunner.errors import register_exception_handlers
from coderunner.lifespan import cleanup_resources, setup_resources

settings = get_settings()

app = FastAPI(title="Coderunner Execution API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.debug.runtime:
    logging.getLogger("coderunner.runtime").setLevel(logging.DEBUG)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    resources = await setup_resources()
    try:
        yield
    finally:
        await cleanup_resources(resources)

app.router.lifespan_context = lifespan

register_exception_handlers(app)

app.include_router(health_router)
app.include_router(execution_router)
app.include_router(active_tests_router)
