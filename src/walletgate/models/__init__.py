# src/walletgate/models/__init__.py
"""SQLAlchemy models for the walletgate service."""

from .asset import EditionPurchase, Post, PostAsset
from .download import DownloadNonce, DownloadToken
from .user import User, UserWallet

__all__ = [
    "Post", "PostAsset", "EditionPurchase",
    "DownloadNonce", "DownloadToken",
    "User", "UserWallet",
]
