"""Error taxonomy shared by the download and sign-in protocols."""

from __future__ import annotations

from enum import StrEnum

from fastapi import status


class AuthErrorCode(StrEnum):
    """Stable machine-readable rejection codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    MESSAGE_MALFORMED = "MESSAGE_MALFORMED"
    MESSAGE_MISMATCH = "MESSAGE_MISMATCH"
    MESSAGE_EXPIRED = "MESSAGE_EXPIRED"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    NONCE_INVALID = "NONCE_INVALID"
    NO_PENDING_CHALLENGE = "NO_PENDING_CHALLENGE"
    NONCE_MISMATCH = "NONCE_MISMATCH"
    CHALLENGE_EXPIRED = "CHALLENGE_EXPIRED"
    NOT_OWNER = "NOT_OWNER"
    ASSET_NOT_FOUND = "ASSET_NOT_FOUND"
    ASSET_NOT_GATED = "ASSET_NOT_GATED"
    ORACLE_UNAVAILABLE = "ORACLE_UNAVAILABLE"
    TOKEN_INVALID = "TOKEN_INVALID"
    UNAUTHORIZED = "UNAUTHORIZED"
    USER_CREATION_FAILED = "USER_CREATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


HTTP_STATUS_BY_CODE: dict[AuthErrorCode, int] = {
    AuthErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.MESSAGE_MALFORMED: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.MESSAGE_MISMATCH: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.MESSAGE_EXPIRED: status.HTTP_400_BAD_REQUEST,
    AuthErrorCode.INVALID_SIGNATURE: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.NONCE_INVALID: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.NO_PENDING_CHALLENGE: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.NONCE_MISMATCH: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.CHALLENGE_EXPIRED: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.NOT_OWNER: status.HTTP_403_FORBIDDEN,
    AuthErrorCode.ASSET_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AuthErrorCode.ASSET_NOT_GATED: status.HTTP_409_CONFLICT,
    AuthErrorCode.ORACLE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    AuthErrorCode.TOKEN_INVALID: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    AuthErrorCode.USER_CREATION_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    AuthErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AuthError(Exception):
    """Rejection raised by a protocol step.

    Carries a stable ``code`` plus a human-readable ``message`` safe to show
    to the caller.
    """

    def __init__(self, code: AuthErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_CODE.get(self.code, status.HTTP_400_BAD_REQUEST)

    def __repr__(self) -> str:
        return f"AuthError(code={self.code.value!r}, message={self.message!r})"


class OracleUnavailableError(RuntimeError):
    """Raised when the on-chain ownership oracle cannot answer.

    Distinct from a negative ownership answer: callers must never treat it as
    ``NOT_OWNER``.
    """


class IdentityProviderError(RuntimeError):
    """Raised when the identity provider call fails."""
