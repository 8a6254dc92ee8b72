"""API v1 routers."""

from fastapi import APIRouter

from .tenants import router as tenants_router

router = APIRouter(prefix="/api/v1")

router.include_router(tenants_router)

__all__ = ["router", "tenants_router"]
