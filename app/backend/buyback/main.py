"""
Main FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse

import structlog

from buyback.api.middleware import add_middleware
from buyback.api.routes import activity, countdown, cycles, holders, stats, trigger
from buyback.api.schemas.common import HealthCheckResponse
from buyback.container import ServiceContainer, build_container
from buyback.core.config import Settings, settings as default_settings
from buyback.core.logging import setup_logging


logger = structlog.get_logger(__name__)


def create_app(
    container: Optional[ServiceContainer] = None,
    config: Optional[Settings] = None
) -> FastAPI:
    """
    Build the application. With no container given, the lifespan builds
    one from settings, creates tables and starts the scheduler.
    """
    config = container.settings if container else (config or default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = container is None
        services = container or build_container(config)
        app.state.container = services

        logger.info("Starting buyback service", version=config.app_version)
        try:
            await services.database.create_tables()
            if owned:
                await services.scheduler.start()
        except Exception as e:
            logger.error("Startup failed", error=str(e))
            raise

        logger.info("Application startup complete")

        yield

        logger.info("Shutting down application")
        if owned:
            await services.aclose()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        description="Creator-fee buyback and proportional holder distribution.",
        docs_url="/docs" if config.debug else None,
        redoc_url="/redoc" if config.debug else None,
        lifespan=lifespan
    )

    add_middleware(app, config)

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        tags=["System"],
        summary="Health Check"
    )
    async def health_check():
        services = app.state.container
        database_ok = await services.database.health_check()
        scheduler_health = await services.scheduler.health_check()
        payload = HealthCheckResponse(
            status="healthy" if database_ok else "unhealthy",
            version=config.app_version,
            services={
                "database": "healthy" if database_ok else "unhealthy",
                "scheduler": scheduler_health["status"],
                "api": "healthy",
            }
        )
        if not database_ok:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content=payload.model_dump(mode="json")
            )
        return payload

    prefix = config.api_v1_prefix
    app.include_router(holders.router, prefix=f"{prefix}/holders", tags=["Holders"])
    app.include_router(activity.router, prefix=f"{prefix}/activity", tags=["Activity"])
    app.include_router(stats.router, prefix=f"{prefix}/stats", tags=["Statistics"])
    app.include_router(countdown.router, prefix=f"{prefix}/countdown", tags=["Schedule"])
    app.include_router(cycles.router, prefix=f"{prefix}/cycles", tags=["Cycles"])
    app.include_router(trigger.router, prefix=prefix, tags=["Trigger"])

    return app


def run() -> None:
    """Console entry point: configure logging and serve with uvicorn."""
    import uvicorn

    setup_logging(default_settings)
    uvicorn.run(
        create_app(),
        host=default_settings.host,
        port=default_settings.port,
        log_level=default_settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
