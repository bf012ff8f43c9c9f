"""API route registration for Vivero."""

from fastapi import APIRouter

from . import auth, control, data, system, zones

api_router = APIRouter(prefix="/api")
api_router.include_router(data.router, tags=["data"])
api_router.include_router(control.router, tags=["control"])
api_router.include_router(zones.router, tags=["zones"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(system.router, tags=["system"])


__all__ = [
    "api_router",
    "auth",
    "control",
    "data",
    "system",
    "zones",
]
