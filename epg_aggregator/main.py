from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from epg_aggregator.config import CustomSettings, settings as default_settings, setup_logging
from epg_aggregator.dependencies import ServiceContainer, build_container

from epg_aggregator.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)

EXPOSED_HEADERS = [
    "X-Cache",
    "X-Cache-Age",
    "X-Build-Type",
    "X-Channel-Count",
    "X-Programme-Count",
    "X-Generation-Time",
    "X-Warning",
    "X-Error",
]


def create_app(
    app_settings: CustomSettings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        app_settings: Configuration (defaults to environment settings)
        container: Pre-built service container, mainly for tests

    Returns:
        FastAPI application
    """
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events"""
        logger.info("Starting EPG Aggregator...")

        try:
            app.state.container = container or build_container(app_settings)
            app.state.container.scheduler.start()
            logger.info(
                "EPG Aggregator started successfully (%s channels with listings source)",
                app.state.container.registry.fetchable_count(),
            )
        except Exception as e:
            logger.error(f"Failed to start EPG Aggregator: {e}", exc_info=True)
            raise

        yield

        logger.info("Shutting down EPG Aggregator...")

        try:
            app.state.container.scheduler.shutdown()
            await app.state.container.close()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)

        logger.info("EPG Aggregator stopped")

    app = FastAPI(
        title="EPG Aggregator",
        version="0.1.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
        expose_headers=EXPOSED_HEADERS,
    )

    @app.middleware("http")
    async def allow_any_origin(request: Request, call_next):
        """Players rarely send Origin, so the header is set on every response"""
        response = await call_next(request)
        response.headers["Access-Control-Allow-Origin"] = "*"
        return response

    app.include_router(main_router)

    return app


app = create_app()
