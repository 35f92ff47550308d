"""Stateless HMAC-signed session tokens issued after wallet sign-in.

Format: ``siws_<base64url(json payload)>.<hex hmac-sha256(payload)>``. The
payload carries ``userId``, ``walletAddress`` and ``exp`` (epoch
milliseconds). Nothing is stored server side, so a token stays valid until
``exp`` and cannot be revoked earlier.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from walletgate.core.settings import settings
from walletgate.db.time import to_epoch_ms, utcnow

TOKEN_PREFIX = "siws_"


@dataclass(frozen=True)
class SessionClaims:
    """Identity proven by a valid session token."""

    user_id: str
    wallet_address: str


@dataclass(frozen=True)
class IssuedSessionToken:
    token: str
    expires_at_ms: int


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


class SessionTokenCodec:
    """Issue and validate session tokens with a server secret."""

    def __init__(
        self,
        secret: str | None = None,
        *,
        ttl_seconds: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        secret = settings.siws_session_secret if secret is None else secret
        if not secret:
            raise ValueError("A session signing secret is required")
        self._secret = secret.encode()
        ttl = settings.session_token_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._ttl = timedelta(seconds=ttl)
        self._clock = clock

    def _sign(self, payload: bytes) -> str:
        return hmac.new(self._secret, payload, hashlib.sha256).hexdigest()

    def issue(self, user_id: str, wallet_address: str) -> IssuedSessionToken:
        """Return a signed token for ``user_id`` that expires after the TTL."""
        expires_at_ms = to_epoch_ms(self._clock() + self._ttl)
        payload = json.dumps(
            {"userId": user_id, "walletAddress": wallet_address, "exp": expires_at_ms},
            separators=(",", ":"),
        ).encode()
        token = f"{TOKEN_PREFIX}{_b64url_encode(payload)}.{self._sign(payload)}"
        return IssuedSessionToken(token=token, expires_at_ms=expires_at_ms)

    def validate(self, token: str) -> SessionClaims | None:
        """Return the claims of a valid token, or None.

        Tampering, malformed structure and expiry are deliberately not
        distinguished.
        """
        if not isinstance(token, str):
            return None
        stripped = token[len(TOKEN_PREFIX):] if token.startswith(TOKEN_PREFIX) else token
        encoded, sep, signature = stripped.rpartition(".")
        if not sep or not encoded or not signature:
            return None

        try:
            payload = _b64url_decode(encoded)
        except (binascii.Error, ValueError):
            return None
        # Only the canonical encoding of the payload is accepted.
        if _b64url_encode(payload) != encoded:
            return None

        expected = self._sign(payload)
        provided = signature.encode("utf-8", "surrogatepass")
        if not hmac.compare_digest(provided, expected.encode()):
            return None

        try:
            data = json.loads(payload)
        except (UnicodeDecodeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None

        user_id = data.get("userId")
        wallet_address = data.get("walletAddress")
        exp = data.get("exp")
        if not user_id or not wallet_address or not isinstance(exp, int | float):
            return None
        if exp <= to_epoch_ms(self._clock()):
            return None
        return SessionClaims(user_id=str(user_id), wallet_address=str(wallet_address))
