# src/walletgate/api/v1/endpoints/downloads.py
"""Gated-download authorization endpoints."""

from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy.orm import Session

from walletgate.api.v1.dependencies import CurrentUserDep, DownloadServiceDep, SessionDep
from walletgate.core.security import is_valid_wallet_address
from walletgate.models import User
from walletgate.schemas import (
    ApiResponse,
    AssetGatingResponse,
    DownloadAssetResponse,
    DownloadNonceRequest,
    DownloadNonceResponse,
    DownloadTokenResponse,
    DownloadValidateRequest,
    DownloadVerifyRequest,
)
from walletgate.services.errors import AuthError, AuthErrorCode
from walletgate.services.siws import user_has_wallet

router = APIRouter(prefix="/downloads", tags=["downloads"])


def _require_own_wallet(db: Session, user: User, wallet: str) -> None:
    # Malformed addresses are left to the service's VALIDATION_ERROR.
    if is_valid_wallet_address(wallet) and not user_has_wallet(db, user, wallet):
        raise AuthError(
            AuthErrorCode.UNAUTHORIZED, "Wallet is not linked to the signed-in account"
        )


@router.post("/nonce", response_model=ApiResponse[DownloadNonceResponse])
async def request_download_nonce(
    payload: DownloadNonceRequest,
    user: CurrentUserDep,
    db: SessionDep,
    service: DownloadServiceDep,
) -> ApiResponse[DownloadNonceResponse]:
    """Issue a download challenge for a gated asset."""
    _require_own_wallet(db, user, payload.wallet)
    challenge = service.request_nonce(payload.asset_id, payload.wallet)
    return ApiResponse(
        data=DownloadNonceResponse(
            nonce=challenge.nonce,
            expires_at=challenge.expires_at,
            message=challenge.message,
        )
    )


@router.post("/verify", response_model=ApiResponse[DownloadTokenResponse])
async def verify_download(
    payload: DownloadVerifyRequest,
    user: CurrentUserDep,
    db: SessionDep,
    service: DownloadServiceDep,
) -> ApiResponse[DownloadTokenResponse]:
    """Exchange a signed download challenge for a short-lived download token."""
    _require_own_wallet(db, user, payload.wallet)
    issued = await service.verify_and_issue_token(
        payload.asset_id, payload.wallet, payload.signature, payload.message
    )
    return ApiResponse(
        data=DownloadTokenResponse(token=issued.token, expires_at=issued.expires_at)
    )


@router.get("/{asset_id}/gating", response_model=ApiResponse[AssetGatingResponse])
async def asset_gating(
    asset_id: str,
    service: DownloadServiceDep,
) -> ApiResponse[AssetGatingResponse]:
    """Report whether downloading an asset requires a token."""
    asset = service.check_asset_gating(asset_id)
    return ApiResponse(
        data=AssetGatingResponse(asset_id=asset.id, post_id=asset.post_id, is_gated=asset.is_gated)
    )


@router.post("/validate", response_model=ApiResponse[DownloadAssetResponse])
async def validate_download(
    payload: DownloadValidateRequest,
    service: DownloadServiceDep,
) -> ApiResponse[DownloadAssetResponse]:
    """Check a download token and return the asset it unlocks."""
    asset = service.validate_download_token(payload.asset_id, payload.token)
    return ApiResponse(data=DownloadAssetResponse.from_asset(asset))
