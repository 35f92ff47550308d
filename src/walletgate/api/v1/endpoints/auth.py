# src/walletgate/api/v1/endpoints/auth.py
"""Sign-In-With-Solana endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from walletgate.api.v1.dependencies import (
    CurrentUserDep,
    SessionCodecDep,
    SiwsServiceDep,
    WalletUserServiceDep,
)
from walletgate.schemas import (
    ApiResponse,
    SessionResponse,
    SiwsChallengeRequest,
    SiwsChallengeResponse,
    SiwsVerifyRequest,
    SiwsVerifyResponse,
    WalletUserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/siws-challenge", response_model=ApiResponse[SiwsChallengeResponse])
async def siws_challenge(
    payload: SiwsChallengeRequest,
    siws: SiwsServiceDep,
) -> ApiResponse[SiwsChallengeResponse]:
    """Issue a sign-in challenge for a wallet."""
    challenge = siws.generate_challenge(payload.wallet_address)
    return ApiResponse(
        data=SiwsChallengeResponse(message=challenge.message, nonce=challenge.nonce)
    )


@router.post("/siws-verify", response_model=ApiResponse[SiwsVerifyResponse])
async def siws_verify(
    payload: SiwsVerifyRequest,
    siws: SiwsServiceDep,
    users: WalletUserServiceDep,
    codec: SessionCodecDep,
) -> ApiResponse[SiwsVerifyResponse]:
    """Verify a signed challenge, then find or create the user and open a session."""
    siws.verify_signature(payload.wallet_address, payload.signature, payload.message)
    result = await users.find_or_create_user(payload.wallet_address, payload.wallet_name)
    issued = codec.issue(result.user.id, payload.wallet_address)
    logger.info("Sign-in succeeded: user=%s new=%s", result.user.id, result.is_new)
    return ApiResponse(
        data=SiwsVerifyResponse(
            token=issued.token,
            expires_at=issued.expires_at_ms,
            user=WalletUserResponse.from_user(result.user),
            is_new_user=result.is_new,
        )
    )


@router.get("/session", response_model=ApiResponse[SessionResponse])
async def current_session(user: CurrentUserDep) -> ApiResponse[SessionResponse]:
    """Return the user behind the presented session token."""
    return ApiResponse(data=SessionResponse(user=WalletUserResponse.from_user(user)))
