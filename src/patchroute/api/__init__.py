from __future__ import annotations

from fastapi import APIRouter

from patchroute.api.routes.health import router as health_router
from patchroute.api.routes.stores import router as stores_router

# Mounted under /api by create_app
router = APIRouter()
for _sub in (health_router, stores_router):
    router.include_router(_sub)
