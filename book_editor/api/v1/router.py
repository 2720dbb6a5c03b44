"""
API router assembly. Everything is mounted under ``/api``.

Auth routes are public; the rest authenticate per endpoint through the
dependencies in ``helpers/authentication.py``.
"""

from fastapi import APIRouter

from book_editor.api.v1.endpoints import admin, auth, editing, health, usage

api_router = APIRouter(prefix="/api")
api_router.include_router(auth.router)
api_router.include_router(usage.router)
api_router.include_router(admin.router)
api_router.include_router(editing.router)
api_router.include_router(health.router)
