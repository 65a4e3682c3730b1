"""FastAPI application exposing the SkyUp update engine."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
import uvicorn

from skyup.api.routes import router
from skyup.config import SkyupConfig
from skyup.services.orchestrator import UpdateOrchestrator
from skyup.utils.logging import setup_logging_from_config

VERSION = "1.0.0"


def create_app(config: Optional[SkyupConfig] = None) -> FastAPI:
    """Build the application.

    Args:
        config: Settings to use; read from SKYUP_* env at startup when None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup: logging and the orchestrator. Shutdown: log only."""
        settings = config or SkyupConfig.from_env()
        logger = setup_logging_from_config(settings)
        logger.info("SkyUp updater starting up...")
        logger.info(f"Essentials archive: {settings.essentials_url}")
        logger.info(f"System archive: {settings.system_url}")

        app.state.config = settings
        app.state.orchestrator = UpdateOrchestrator(config=settings)

        logger.info(f"SkyUp updater ready on port {settings.port}")
        yield
        logger.info("SkyUp updater shutting down...")

    app = FastAPI(
        title="SkyUp Updater",
        description="Installs Skytraxx 5mini essentials and system archives onto a mounted device",
        version=VERSION,
        lifespan=lifespan,
    )
    app.include_router(router)

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "ok", "service": "skyup", "version": VERSION}

    return app


app = create_app()


def main():
    """Console entry point: serve the API with uvicorn."""
    config = SkyupConfig.from_env()
    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    main()
