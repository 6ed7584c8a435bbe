from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Mapping

import structlog
from fastapi import FastAPI

from patchroute import __version__
from patchroute.api import router as api_router
from patchroute.api.routes.stores import registry
from patchroute.core.config.settings import settings
from patchroute.core.logging.setup import configure_logging
from patchroute.core.store.store import ObservableStore

log = structlog.get_logger()


def create_app(*, stores: Mapping[str, ObservableStore] | None = None) -> FastAPI:
    """
    Application factory.

    This function is the single place where the FastAPI app is created and
    configured. `stores` are registered under their names before serving.
    """
    # Initialize structured logging
    configure_logging(level=settings.log_level, json=settings.log_json)

    for name, store in (stores or {}).items():
        registry.register(name, store)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info(
            "app.startup",
            environment=settings.env,
            stores=[h.name for h in registry.list()],
        )
        yield
        log.info("app.shutdown")

    app = FastAPI(
        title=settings.service_title,
        version=__version__,
        lifespan=lifespan,
    )

    # Mount API
    app.include_router(api_router, prefix="/api")

    return app


# ASGI entrypoint
app = create_app()
