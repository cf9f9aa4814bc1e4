from contextlib import asynccontextmanager, suppress
import asyncio
from typing import Optional

from fastapi import FastAPI, Request
import structlog

from context_planner.application.api.route.context import router as context_router
from context_planner.domain.context.context_manager import ContextManager
from context_planner.infrastructure.config import Settings, load_settings
from context_planner.infrastructure.observability.logging import setup_logging

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None, manager: Optional[ContextManager] = None) -> FastAPI:
    """Build the API app; tests pass a prepared manager"""

    settings = settings or (manager.settings if manager else load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context_manager = manager or ContextManager(settings)
        app.state.context_manager = context_manager
        maintenance = asyncio.create_task(context_manager.run_cache_maintenance(), name="cache-maintenance")
        logger.info("Context planner API started", memory_service=settings.memory_service.enabled)
        yield
        maintenance.cancel()
        with suppress(asyncio.CancelledError):
            await maintenance
        await context_manager.shutdown()
        logger.info("Context planner API stopped")

    app = FastAPI(title="Context Planner", lifespan=lifespan)
    app.include_router(context_router)

    @app.get("/health")
    async def health(request: Request):
        context_manager: ContextManager = request.app.state.context_manager
        memory_ok = None
        if settings.memory_service.enabled:
            memory_ok = await context_manager.client.health()
        return {
            "status": "ok",
            "memory_service": memory_ok,
            **await context_manager.get_stats(),
        }

    return app


def build_app() -> FastAPI:
    """Entry point for ``uvicorn --factory``"""

    settings = load_settings()
    setup_logging(
        log_level=settings.logging.level,
        log_format=settings.logging.format,
        service_name=settings.logging.service_name,
    )
    return create_app(settings)
