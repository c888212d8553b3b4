"""Money Weather service: collector trigger, market API and static frontend."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from src.api.debug_routes import debug_router
from src.api.error_handlers import register_exception_handlers
from src.api.routes import router
from src.database.db import SessionLocal, init_db
from src.services.collection_pipeline import CollectionPipeline
from src.services.scheduler_service import CollectorScheduler
from src.utils.config import config
from src.utils.event_store import EventStore
from src.utils.fx_rate_cell import FxRateCell
from src.utils.logger import StructuredLogger

logger = StructuredLogger("App")

FRONTEND_DIST = Path(__file__).parent / "frontend" / "dist"


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        config.validate()
    except ValueError as e:
        logger.critical(f"Configuration error: {e}", exception=e)
        raise

    init_db()

    if config.collector.scheduler_enabled:
        app.state.scheduler = CollectorScheduler(app.state.pipeline, SessionLocal)
        app.state.scheduler.start()

    logger.info(
        "Service started",
        context={"scheduler_enabled": config.collector.scheduler_enabled},
    )
    yield

    if app.state.scheduler is not None:
        app.state.scheduler.stop()
        app.state.scheduler = None


def create_app() -> FastAPI:
    """
    Build the application.

    One FX cell and one event store live for the whole process, shared by
    the scheduler and the HTTP collector trigger.
    """
    application = FastAPI(
        title="Money Weather",
        description="Financial indicators as a daily weather report",
        version="1.0.0",
        lifespan=lifespan,
    )

    state = application.state
    state.started_at = datetime.now(timezone.utc)
    state.event_store = EventStore()
    state.fx_cell = FxRateCell()
    state.pipeline = CollectionPipeline(fx_cell=state.fx_cell, event_store=state.event_store)
    state.scheduler = None

    register_exception_handlers(application)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    application.include_router(router, prefix="/api", tags=["market"])
    application.include_router(debug_router, prefix="/api", tags=["debug"])

    @application.get("/health")
    async def health_check():
        return {"status": "healthy"}

    # Mounted last so it never shadows the API
    if FRONTEND_DIST.exists():
        application.mount(
            "/", StaticFiles(directory=str(FRONTEND_DIST), html=True), name="static"
        )

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
