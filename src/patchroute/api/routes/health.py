from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from patchroute import __version__
from patchroute.api.routes.stores import registry
from patchroute.core.config.settings import settings

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """
    Liveness plus the names of the stores served by this process.
    """

    status: str
    service: str
    version: str
    environment: str
    stores: int
    store_names: list[str]


@router.get("/health", response_model=HealthResponse, summary="Service health check")
def health() -> HealthResponse:
    names = [handle.name for handle in registry.list()]
    return HealthResponse(
        status="ok",
        service=settings.service_title,
        version=__version__,
        environment=settings.env,
        stores=len(names),
        store_names=names,
    )
