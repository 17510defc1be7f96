from fastapi import APIRouter

from vestengine.api.v1.routers import health, vesting

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(vesting.router)

__all__ = ["api_router"]
