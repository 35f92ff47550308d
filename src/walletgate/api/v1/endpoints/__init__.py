# src/walletgate/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .auth import router as auth_router
from .downloads import router as downloads_router

__all__ = [
    "auth_router",
    "downloads_router",
]
