"""Shared API dependencies: database, collaborators and authentication."""

from typing import Annotated

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from walletgate.core.settings import settings
from walletgate.db.session import get_db
from walletgate.models import User
from walletgate.services.background import BackgroundTaskRunner, SessionFactory
from walletgate.services.download_auth import DownloadAuthService
from walletgate.services.errors import AuthError, AuthErrorCode
from walletgate.services.identity import IdentityProvider, PrivyClient
from walletgate.services.nonce_store import ChallengeStore
from walletgate.services.ownership import DasOwnershipOracle, OwnershipOracle
from walletgate.services.session_token import SessionTokenCodec
from walletgate.services.siws import SiwsService, WalletUserService, authenticate_session

# Missing credentials are reported through AuthError rather than FastAPI's 403.
bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_challenge_store(request: Request) -> ChallengeStore:
    return request.app.state.challenge_store


def get_task_runner(request: Request) -> BackgroundTaskRunner:
    return request.app.state.task_runner


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_session_factory(request: Request) -> SessionFactory:
    return request.app.state.session_factory


def get_session_codec() -> SessionTokenCodec:
    return SessionTokenCodec()


HttpClientDep = Annotated[httpx.AsyncClient, Depends(get_http_client)]
SessionCodecDep = Annotated[SessionTokenCodec, Depends(get_session_codec)]


def get_ownership_oracle(
    request: Request, db: SessionDep, client: HttpClientDep
) -> OwnershipOracle:
    return DasOwnershipOracle(
        db, client, circuit_breaker=request.app.state.das_circuit_breaker
    )


def get_identity_provider(request: Request, client: HttpClientDep) -> IdentityProvider | None:
    """Return the identity provider, or None when it is not configured."""
    if not settings.privy_enabled:
        return None
    return PrivyClient(client, circuit_breaker=request.app.state.identity_circuit_breaker)


def get_download_service(
    db: SessionDep,
    oracle: Annotated[OwnershipOracle, Depends(get_ownership_oracle)],
) -> DownloadAuthService:
    return DownloadAuthService(db, oracle)


def get_siws_service(
    store: Annotated[ChallengeStore, Depends(get_challenge_store)],
) -> SiwsService:
    return SiwsService(store)


def get_wallet_user_service(
    db: SessionDep,
    identity: Annotated[IdentityProvider | None, Depends(get_identity_provider)],
    tasks: Annotated[BackgroundTaskRunner, Depends(get_task_runner)],
    session_factory: Annotated[SessionFactory, Depends(get_session_factory)],
) -> WalletUserService:
    return WalletUserService(db, identity, tasks, session_factory)


DownloadServiceDep = Annotated[DownloadAuthService, Depends(get_download_service)]
SiwsServiceDep = Annotated[SiwsService, Depends(get_siws_service)]
WalletUserServiceDep = Annotated[WalletUserService, Depends(get_wallet_user_service)]


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: SessionDep,
    codec: SessionCodecDep,
) -> User:
    """Resolve the user behind the bearer session token.

    Raises:
        AuthError: ``UNAUTHORIZED`` if the token is missing, invalid,
            expired or belongs to no user.
    """
    if credentials is None:
        raise AuthError(AuthErrorCode.UNAUTHORIZED, "Missing bearer token")
    user = authenticate_session(db, codec, credentials.credentials)
    if user is None:
        raise AuthError(AuthErrorCode.UNAUTHORIZED, "Could not validate credentials")
    return user


# Type alias for current user dependency
CurrentUserDep = Annotated[User, Depends(get_current_user)]
