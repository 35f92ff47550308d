"""Gated-download authorization.

Two-step flow:

1. :meth:`DownloadAuthService.request_nonce` issues a single-use nonce and the
   message the wallet must sign.
2. :meth:`DownloadAuthService.verify_and_issue_token` checks the signed
   message, consumes the nonce, consults the ownership oracle and issues a
   short-lived download token.

A request moves through ``NONCE_REQUESTED -> SIGNATURE_PENDING ->
SIGNATURE_VERIFIED -> OWNERSHIP_VERIFIED -> TOKEN_ISSUED``; any failed check
rejects it with an :class:`AuthError`. Inserting the token row is the only
commit point that grants access.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from walletgate.core.security import is_valid_wallet_address, verify_wallet_signature
from walletgate.core.settings import settings
from walletgate.db.time import ensure_utc, utcnow
from walletgate.models import DownloadToken, PostAsset
from walletgate.services.challenge import (
    DownloadChallenge,
    build_download_message,
    parse_download_message,
    truncate_to_millis,
)
from walletgate.services.errors import AuthError, AuthErrorCode, OracleUnavailableError
from walletgate.services.nonce_store import Clock, DownloadNonceStore
from walletgate.services.ownership import OwnershipOracle

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


class DownloadAuthState(Enum):
    """Progress of a single download authorization attempt."""

    NONCE_REQUESTED = "nonce_requested"
    SIGNATURE_PENDING = "signature_pending"
    SIGNATURE_VERIFIED = "signature_verified"
    OWNERSHIP_VERIFIED = "ownership_verified"
    TOKEN_ISSUED = "token_issued"
    REJECTED = "rejected"


@dataclass(frozen=True)
class DownloadNonceChallenge:
    """Nonce plus the exact message the wallet must sign."""

    nonce: str
    expires_at: datetime
    message: str


@dataclass(frozen=True)
class IssuedDownloadToken:
    token: str
    expires_at: datetime


def _validate_asset_id(asset_id: str) -> None:
    try:
        uuid.UUID(str(asset_id))
    except ValueError as err:
        raise AuthError(AuthErrorCode.VALIDATION_ERROR, "assetId must be a UUID") from err


def _validate_wallet(wallet: str) -> None:
    if not is_valid_wallet_address(wallet):
        raise AuthError(
            AuthErrorCode.VALIDATION_ERROR,
            "Invalid wallet address. Must be a valid Solana address (32-44 characters).",
        )


class DownloadAuthService:
    """Orchestrates nonce issuance, signature and ownership checks, and tokens."""

    def __init__(
        self,
        db: Session,
        oracle: OwnershipOracle,
        *,
        nonce_ttl_seconds: int | None = None,
        token_ttl_seconds: int | None = None,
        oracle_timeout_seconds: float | None = None,
        domain: str | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._db = db
        self._oracle = oracle
        self._clock = clock
        self._domain = domain or settings.challenge_domain
        self._nonce_ttl = timedelta(
            seconds=settings.download_nonce_ttl_seconds
            if nonce_ttl_seconds is None
            else nonce_ttl_seconds
        )
        self._token_ttl = timedelta(
            seconds=settings.download_token_ttl_seconds
            if token_ttl_seconds is None
            else token_ttl_seconds
        )
        self._oracle_timeout = (
            settings.ownership_check_timeout_seconds
            if oracle_timeout_seconds is None
            else oracle_timeout_seconds
        )
        self._nonces = DownloadNonceStore(db, clock=clock)

    def _get_asset(self, asset_id: str) -> PostAsset | None:
        return self._db.get(PostAsset, asset_id, populate_existing=True)

    def request_nonce(self, asset_id: str, wallet: str) -> DownloadNonceChallenge:
        """Issue a nonce for downloading ``asset_id`` with ``wallet``."""
        _validate_asset_id(asset_id)
        _validate_wallet(wallet)

        asset = self._get_asset(asset_id)
        if asset is None:
            raise AuthError(AuthErrorCode.ASSET_NOT_FOUND, "Asset not found")
        if not asset.is_gated:
            raise AuthError(AuthErrorCode.ASSET_NOT_GATED, "Asset is not gated")

        expires_at = truncate_to_millis(self._clock() + self._nonce_ttl)
        issued = self._nonces.issue(asset_id, wallet, expires_at=expires_at)
        message = build_download_message(
            DownloadChallenge(
                asset_id=asset_id,
                wallet=wallet,
                nonce=issued.nonce,
                expires_at=expires_at,
            ),
            domain=self._domain,
        )
        logger.debug("Issued download nonce for asset %s wallet %s...", asset_id, wallet[:8])
        return DownloadNonceChallenge(nonce=issued.nonce, expires_at=expires_at, message=message)

    def _reject(
        self, state: DownloadAuthState, code: AuthErrorCode, message: str
    ) -> AuthError:
        logger.info(
            "Download authorization rejected after %s: %s", state.value, code.value
        )
        return AuthError(code, message)

    async def _is_authorized(self, wallet: str, post_id: str) -> bool:
        # Creator lookup is local; check it before the slower on-chain query.
        if await asyncio.wait_for(
            self._oracle.is_resource_creator(wallet, post_id), timeout=self._oracle_timeout
        ):
            return True
        result = await asyncio.wait_for(
            self._oracle.verify_ownership(wallet, post_id), timeout=self._oracle_timeout
        )
        return result.is_owner

    async def verify_and_issue_token(
        self, asset_id: str, wallet: str, signature: str, message: str
    ) -> IssuedDownloadToken:
        """Verify a signed download challenge and issue a download token."""
        _validate_asset_id(asset_id)
        _validate_wallet(wallet)
        state = DownloadAuthState.SIGNATURE_PENDING

        parsed = parse_download_message(message, domain=self._domain)
        if parsed is None:
            raise self._reject(state, AuthErrorCode.MESSAGE_MALFORMED, "Invalid message format")
        if parsed.asset_id != asset_id or parsed.wallet != wallet:
            raise self._reject(
                state, AuthErrorCode.MESSAGE_MISMATCH, "Message fields do not match request"
            )
        if parsed.expires_at <= self._clock():
            raise self._reject(state, AuthErrorCode.MESSAGE_EXPIRED, "Message has expired")

        if not verify_wallet_signature(wallet, message, signature):
            raise self._reject(state, AuthErrorCode.INVALID_SIGNATURE, "Invalid signature")
        state = DownloadAuthState.SIGNATURE_VERIFIED

        if self._nonces.consume(parsed.nonce, asset_id, wallet) is None:
            raise self._reject(
                state, AuthErrorCode.NONCE_INVALID, "Nonce not found, expired or already used"
            )

        asset = self._get_asset(asset_id)
        if asset is None:
            raise self._reject(state, AuthErrorCode.ASSET_NOT_FOUND, "Asset not found")

        if asset.is_gated:
            try:
                authorized = await self._is_authorized(wallet, asset.post_id)
            except (OracleUnavailableError, TimeoutError) as err:
                logger.warning(
                    "Ownership oracle unavailable for asset %s: %s", asset_id, str(err) or "timeout"
                )
                raise self._reject(
                    state,
                    AuthErrorCode.ORACLE_UNAVAILABLE,
                    "Ownership could not be verified right now. Please try again.",
                ) from err
            if not authorized:
                raise self._reject(
                    state,
                    AuthErrorCode.NOT_OWNER,
                    "You do not own this NFT. Ownership is verified on-chain.",
                )
        state = DownloadAuthState.OWNERSHIP_VERIFIED

        issued = self._issue_token(asset_id, wallet)
        state = DownloadAuthState.TOKEN_ISSUED
        logger.info(
            "Download token issued for asset %s wallet %s... (%s)",
            asset_id,
            wallet[:8],
            state.value,
        )
        return issued

    def _issue_token(self, asset_id: str, wallet: str) -> IssuedDownloadToken:
        now = self._clock()
        record = DownloadToken(
            token=secrets.token_hex(TOKEN_BYTES),
            asset_id=asset_id,
            wallet=wallet,
            created_at=now,
            expires_at=truncate_to_millis(now + self._token_ttl),
        )
        self._db.add(record)
        self._db.commit()
        return IssuedDownloadToken(token=record.token, expires_at=ensure_utc(record.expires_at))

    def validate_download_token(self, asset_id: str, token: str) -> PostAsset:
        """Return the asset a live token grants access to.

        Tokens are not single-use: any number of downloads may happen before
        the token expires.
        """
        _validate_asset_id(asset_id)
        record = self._db.execute(
            select(DownloadToken).where(
                DownloadToken.token == token,
                DownloadToken.asset_id == asset_id,
            )
        ).scalar_one_or_none()
        if record is None or ensure_utc(record.expires_at) <= self._clock():
            raise AuthError(AuthErrorCode.TOKEN_INVALID, "Download token is invalid or expired")

        asset = self._get_asset(asset_id)
        if asset is None:
            raise AuthError(AuthErrorCode.ASSET_NOT_FOUND, "Asset not found")
        return asset

    def check_asset_gating(self, asset_id: str) -> PostAsset:
        """Return the asset so callers can tell whether a download needs a token."""
        _validate_asset_id(asset_id)
        asset = self._get_asset(asset_id)
        if asset is None:
            raise AuthError(AuthErrorCode.ASSET_NOT_FOUND, "Asset not found")
        return asset
