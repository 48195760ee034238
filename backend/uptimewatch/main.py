"""Main FastAPI application hosting the monitor execution engine."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings
from .database import init_db, close_db
from .routers import endpoints_router
from .services.events import event_bus
from .services.scheduler import scheduler_service

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info(f"Starting uptimewatch ({settings.app_env})")

    await init_db()
    logger.info("Database initialized")

    scheduler_service.start()

    yield

    scheduler_service.stop()
    await event_bus.close()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="uptimewatch",
        description="Health checks for HTTP, SQL, key-value, messaging and TCP services",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(endpoints_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "scheduler_running": scheduler_service.running,
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
