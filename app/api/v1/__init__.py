from fastapi import APIRouter

from app.api.v1.routers import health, staff_applications

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(staff_applications.router)

__all__ = ["api_router"]
