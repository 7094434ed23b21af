# main.py
"""Main application with background execution cleanup"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI

from config import settings
from services.logger_config import setup_logging
from database.session import create_tables
from api.auth import get_optional_user, router as auth_router
from api.endpoints import router
from api.integrations import router as integrations_router, slack_router
from api.orchestrator import router as orchestrator_router
from services.async_processor import async_processor
from services.entity_extractor import NerModelManager

setup_logging()
logger = logging.getLogger(settings.LOGGER_NAME)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting application...")

    await create_tables()
    logger.info("Database initialized")

    if settings.NER_ENABLED:
        # Load once up front so the first analysis does not block the loop
        await asyncio.to_thread(NerModelManager.get_pipeline)

    logger.info("Services initialized")
    yield

    # Drain background executions on shutdown
    logger.info("Shutting down background processor...")
    await async_processor.shutdown()

    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.APP_TITLE,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

# REQUIRE_AUTHENTICATION is enforced on every router except auth and the Slack webhook
require_caller = [Depends(get_optional_user)]
app.include_router(auth_router)
app.include_router(router, dependencies=require_caller)
app.include_router(integrations_router, dependencies=require_caller)
app.include_router(orchestrator_router, dependencies=require_caller)
app.include_router(slack_router)


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "background_tasks": async_processor.pending,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
    )
