"""API router package."""

from app.routers import auth, elections

__all__ = [
    "auth",
    "elections",
]
