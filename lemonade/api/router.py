from fastapi import APIRouter

from lemonade.routers import admin, auth, organizations

api_router = APIRouter()
api_router.include_router(auth.router, prefix="/auth", tags=["Auth"])
api_router.include_router(organizations.router, prefix="/organizations", tags=["Organizations"])

admin_router = APIRouter()
admin_router.include_router(admin.router, tags=["Admin"])
