"""Routes API / API routes."""

from fastapi import APIRouter

from device_association.api import admin, associations

api_router = APIRouter(prefix="/api")

api_router.include_router(associations.router, prefix="/associations", tags=["associations"])
api_router.include_router(admin.router, prefix="/admin/associations", tags=["admin"])
