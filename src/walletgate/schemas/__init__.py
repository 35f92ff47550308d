# src/walletgate/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

Field names are snake_case in Python and camelCase on the wire.
"""

from .auth import (
    SessionResponse,
    SiwsChallengeRequest,
    SiwsChallengeResponse,
    SiwsVerifyRequest,
    SiwsVerifyResponse,
    WalletUserResponse,
)
from .common import ApiResponse, ErrorBody, ErrorResponse
from .download import (
    AssetGatingResponse,
    DownloadAssetResponse,
    DownloadNonceRequest,
    DownloadNonceResponse,
    DownloadTokenResponse,
    DownloadValidateRequest,
    DownloadVerifyRequest,
)

__all__ = [
    "ApiResponse", "ErrorBody", "ErrorResponse",
    "SessionResponse", "SiwsChallengeRequest", "SiwsChallengeResponse",
    "SiwsVerifyRequest", "SiwsVerifyResponse", "WalletUserResponse",
    "AssetGatingResponse", "DownloadAssetResponse", "DownloadNonceRequest",
    "DownloadNonceResponse", "DownloadTokenResponse", "DownloadValidateRequest",
    "DownloadVerifyRequest",
]
