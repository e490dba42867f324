"""Consulting Routers Package"""
from .sessions import router as sessions_router
from .admin import router as admin_router

__all__ = [
    "sessions_router",
    "admin_router",
]
