"""API v1 router."""

from fastapi import APIRouter

from media_lifecycle.api.v1.endpoints import assets, health, maintenance

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(maintenance.router, prefix="/assets", tags=["maintenance"])
api_router.include_router(assets.router, prefix="/assets", tags=["assets"])
