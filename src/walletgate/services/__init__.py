# src/walletgate/services/__init__.py
"""Business logic services for wallet-authenticated downloads and sign-in."""

from .background import BackgroundTaskRunner, NonceSweeper
from .download_auth import DownloadAuthService
from .errors import AuthError, AuthErrorCode, IdentityProviderError, OracleUnavailableError
from .identity import IdentityProvider, PrivyClient
from .nonce_store import ChallengeStore, DownloadNonceStore
from .ownership import DasOwnershipOracle, OwnershipOracle, OwnershipResult
from .session_token import SessionClaims, SessionTokenCodec
from .siws import SiwsService, WalletUserService, authenticate_session

__all__ = [
    "AuthError", "AuthErrorCode", "IdentityProviderError", "OracleUnavailableError",
    "BackgroundTaskRunner", "NonceSweeper",
    "ChallengeStore", "DownloadNonceStore",
    "DownloadAuthService",
    "DasOwnershipOracle", "OwnershipOracle", "OwnershipResult",
    "IdentityProvider", "PrivyClient",
    "SessionClaims", "SessionTokenCodec",
    "SiwsService", "WalletUserService", "authenticate_session",
]
