"""Shutterlink - FastAPI entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .app_logging import configure_logging
from .container import AppContainer, build_container
from .database import connect, init_db
from .infrastructure.services.scheduler import SweepScheduler

# Import routers
from .routes.admin import router as admin_router
from .routes.auth import router as auth_router
from .routes.catalog import router as catalog_router
from .routes.public import router as public_router
from .routes.sharing import router as sharing_router

logger = logging.getLogger(__name__)


def create_app(container: AppContainer | None = None, scheduler_enabled: bool = True) -> FastAPI:
    """Build the application around a dependency container."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        configure_logging()
        conn = connect()
        try:
            init_db(conn)
        finally:
            conn.close()

        app.state.container = container or build_container()
        app.state.scheduler = SweepScheduler(app.state.container, connect)
        app.state.container.broadcaster.start()
        if scheduler_enabled:
            app.state.scheduler.start()
        logger.info("Shutterlink started")
        yield
        app.state.scheduler.stop()
        app.state.container.broadcaster.stop()

    app = FastAPI(title="Shutterlink", lifespan=lifespan)

    app.include_router(auth_router)
    app.include_router(catalog_router)
    app.include_router(sharing_router)
    app.include_router(admin_router)
    app.include_router(public_router)
    return app


app = create_app()
