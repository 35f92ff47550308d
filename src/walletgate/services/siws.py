"""Sign-In-With-Solana: challenge, verification and wallet user provisioning."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from walletgate.core.security import is_valid_wallet_address, verify_wallet_signature
from walletgate.core.settings import settings
from walletgate.db.time import ensure_utc, utcnow
from walletgate.models import User, UserWallet
from walletgate.models.user import (
    SYNTHETIC_IDENTITY_PREFIX,
    WALLET_TYPE_EMBEDDED,
    WALLET_TYPE_EXTERNAL,
)
from walletgate.services.background import BackgroundTaskRunner, SessionFactory
from walletgate.services.challenge import (
    SiwsChallenge,
    build_siws_message,
    parse_siws_message,
    truncate_to_millis,
)
from walletgate.services.errors import AuthError, AuthErrorCode, IdentityProviderError
from walletgate.services.identity import IdentityProvider, ProviderUser
from walletgate.services.nonce_store import ChallengeStore, Clock
from walletgate.services.session_token import SessionTokenCodec
from walletgate.services.slug import generate_unique_slug

logger = logging.getLogger(__name__)

CONNECTOR_MWA = "mwa"
CONNECTOR_PRIVY = "privy"
DEFAULT_EXTERNAL_WALLET_LABEL = "External Wallet"
EMBEDDED_WALLET_LABEL = "Walletgate Wallet"


@dataclass(frozen=True)
class SiwsChallengeMessage:
    message: str
    nonce: str


@dataclass(frozen=True)
class WalletUserResult:
    user: User
    is_new: bool


class SiwsService:
    """Issues sign-in challenges and verifies the signed responses."""

    def __init__(
        self,
        challenge_store: ChallengeStore,
        *,
        app_name: str | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = challenge_store
        self._app_name = app_name or settings.siws_app_name
        self._clock = clock

    def generate_challenge(self, wallet_address: str) -> SiwsChallengeMessage:
        """Issue a challenge for ``wallet_address``, replacing any pending one."""
        if not is_valid_wallet_address(wallet_address):
            raise AuthError(AuthErrorCode.VALIDATION_ERROR, "Invalid wallet address")

        pending = self._store.issue(wallet_address)
        message = build_siws_message(
            SiwsChallenge(
                wallet_address=wallet_address,
                nonce=pending.nonce,
                issued_at=truncate_to_millis(self._clock()),
            ),
            app_name=self._app_name,
        )
        return SiwsChallengeMessage(message=message, nonce=pending.nonce)

    def verify_signature(self, wallet_address: str, signature: str, message: str) -> None:
        """Verify a signed challenge and consume it.

        Raises :class:`AuthError` on any failure. The pending challenge is
        deleted only once the signature has verified.
        """
        if not is_valid_wallet_address(wallet_address):
            raise AuthError(AuthErrorCode.VALIDATION_ERROR, "Invalid wallet address")

        parsed = parse_siws_message(message, app_name=self._app_name)
        if parsed is None:
            raise AuthError(
                AuthErrorCode.MESSAGE_MALFORMED, "Could not extract nonce from message"
            )
        if parsed.wallet_address != wallet_address:
            raise AuthError(
                AuthErrorCode.MESSAGE_MISMATCH, "Message was issued for a different wallet"
            )

        pending = self._store.lookup(wallet_address)
        if pending is None:
            raise AuthError(
                AuthErrorCode.NO_PENDING_CHALLENGE,
                "No pending challenge for this wallet. Request a new challenge.",
            )
        if pending.nonce != parsed.nonce:
            raise AuthError(
                AuthErrorCode.NONCE_MISMATCH, "Nonce mismatch. Request a new challenge."
            )
        if ensure_utc(pending.expires_at) <= self._clock():
            self._store.discard(wallet_address, pending.nonce)
            raise AuthError(
                AuthErrorCode.CHALLENGE_EXPIRED, "Challenge expired. Request a new challenge."
            )

        if not verify_wallet_signature(wallet_address, message, signature):
            raise AuthError(AuthErrorCode.INVALID_SIGNATURE, "Invalid signature")

        if not self._store.consume(wallet_address, parsed.nonce):
            # Consumed concurrently, superseded or expired since the lookup.
            raise AuthError(
                AuthErrorCode.NO_PENDING_CHALLENGE,
                "No pending challenge for this wallet. Request a new challenge.",
            )
        logger.debug("Sign-in challenge verified for wallet %s...", wallet_address[:8])


def _abbreviate(wallet_address: str) -> str:
    return f"{wallet_address[:4]}...{wallet_address[-4:]}"


def _has_wallet(db: Session, user_id: str, address: str) -> bool:
    return (
        db.execute(
            select(UserWallet.id)
            .where(UserWallet.user_id == user_id, UserWallet.address == address)
            .limit(1)
        ).first()
        is not None
    )


def user_has_wallet(db: Session, user: User, address: str) -> bool:
    """Return whether ``address`` is the user's sign-in wallet or a linked one."""
    return user.wallet_address == address or _has_wallet(db, user.id, address)


def register_wallet(
    db: Session,
    user_id: str,
    address: str,
    *,
    wallet_type: str,
    connector: str,
    label: str,
    is_primary: bool = False,
) -> bool:
    """Attach ``address`` to a user; return False if it was already attached."""
    if _has_wallet(db, user_id, address):
        return False
    db.add(
        UserWallet(
            user_id=user_id,
            address=address,
            type=wallet_type,
            connector=connector,
            label=label,
            is_primary=is_primary,
        )
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.debug("Wallet %s... already registered for user %s", address[:8], user_id)
        return False
    return True


def _register_embedded_wallet(db: Session, user_id: str, address: str) -> None:
    if register_wallet(
        db,
        user_id,
        address,
        wallet_type=WALLET_TYPE_EMBEDDED,
        connector=CONNECTOR_PRIVY,
        label=EMBEDDED_WALLET_LABEL,
    ):
        logger.info("Registered embedded wallet %s... for user %s", address[:8], user_id)


class WalletUserService:
    """Finds or provisions the account behind a verified wallet."""

    def __init__(
        self,
        db: Session,
        identity: IdentityProvider | None = None,
        tasks: BackgroundTaskRunner | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._db = db
        self._identity = identity
        self._tasks = tasks
        self._session_factory = session_factory

    async def _ensure_provider_user(self, wallet_address: str) -> ProviderUser | None:
        """Look up or import the provider user; None if the provider is unavailable."""
        if self._identity is None:
            return None
        try:
            existing = await self._identity.find_user_by_wallet(wallet_address)
            if existing is not None:
                return existing
            return await self._identity.import_user(wallet_address, create_embedded_wallet=True)
        except IdentityProviderError as e:
            logger.warning("Identity provider unavailable (non-blocking): %s", e)
            return None
        except AuthError:
            raise
        except Exception as e:
            logger.warning(
                "Identity provider call failed unexpectedly (non-blocking): %s", e, exc_info=True
            )
            return None

    def _schedule_reconcile(self, user_id: str, wallet_address: str) -> None:
        if self._identity is None or self._tasks is None or self._session_factory is None:
            return
        self._tasks.spawn(
            self.reconcile_identity(user_id, wallet_address),
            name=f"reconcile-identity-{user_id}",
        )

    async def find_or_create_user(
        self, wallet_address: str, wallet_name: str | None = None
    ) -> WalletUserResult:
        """Resolve the user for a verified wallet, creating one on first sign-in."""
        db = self._db

        wallet = db.execute(
            select(UserWallet).where(UserWallet.address == wallet_address).limit(1)
        ).scalar_one_or_none()
        if wallet is not None:
            if wallet_name and not wallet.label:
                wallet.label = wallet_name
                try:
                    db.commit()
                except SQLAlchemyError as e:
                    db.rollback()
                    logger.warning("Failed to update wallet label: %s", e)
            user = db.get(User, wallet.user_id)
            if user is not None:
                self._schedule_reconcile(user.id, wallet_address)
                return WalletUserResult(user=user, is_new=False)

        legacy_user = db.execute(
            select(User).where(User.wallet_address == wallet_address)
        ).scalar_one_or_none()
        if legacy_user is not None:
            register_wallet(
                db,
                legacy_user.id,
                wallet_address,
                wallet_type=WALLET_TYPE_EXTERNAL,
                connector=CONNECTOR_MWA,
                label=wallet_name or DEFAULT_EXTERNAL_WALLET_LABEL,
            )
            self._schedule_reconcile(legacy_user.id, wallet_address)
            return WalletUserResult(user=legacy_user, is_new=False)

        return await self._create_user(wallet_address, wallet_name)

    async def _create_user(self, wallet_address: str, wallet_name: str | None) -> WalletUserResult:
        db = self._db
        slug = generate_unique_slug(db, f"{wallet_address[:4]}-{wallet_address[-4:]}".lower())
        provider_user = await self._ensure_provider_user(wallet_address)
        privy_id = (
            provider_user.id
            if provider_user is not None
            else f"{SYNTHETIC_IDENTITY_PREFIX}{wallet_address}"
        )

        user = User(
            wallet_address=wallet_address,
            privy_id=privy_id,
            username_slug=slug,
            display_name=_abbreviate(wallet_address),
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.error("Failed to create user for wallet %s...: %s", wallet_address[:8], e)
            raise AuthError(AuthErrorCode.USER_CREATION_FAILED, "Failed to create user") from e
        db.refresh(user)

        register_wallet(
            db,
            user.id,
            wallet_address,
            wallet_type=WALLET_TYPE_EXTERNAL,
            connector=CONNECTOR_MWA,
            label=wallet_name or DEFAULT_EXTERNAL_WALLET_LABEL,
            is_primary=True,
        )
        if provider_user is not None and provider_user.embedded_wallet_address:
            _register_embedded_wallet(db, user.id, provider_user.embedded_wallet_address)

        logger.info(
            "Created wallet user %s (%s) identity=%s",
            user.id,
            slug,
            "synthetic" if user.has_synthetic_identity else "provider",
        )
        return WalletUserResult(user=user, is_new=True)

    async def reconcile_identity(self, user_id: str, wallet_address: str) -> None:
        """Upgrade a synthetic identity and backfill the embedded wallet.

        Runs detached from the sign-in request in its own session. Provider
        failures are logged and end the attempt; it is retried on next login.
        """
        if self._identity is None or self._session_factory is None:
            return

        with self._session_factory() as db:
            user = db.get(User, user_id)
            if user is None:
                return

            if user.has_synthetic_identity:
                provider_user = await self._ensure_provider_user(wallet_address)
                if provider_user is None:
                    return
                user.privy_id = provider_user.id
                db.commit()
                logger.info("Upgraded user %s to provider identity %s", user_id, provider_user.id)
                if provider_user.embedded_wallet_address:
                    _register_embedded_wallet(db, user_id, provider_user.embedded_wallet_address)
                return

            has_embedded = db.execute(
                select(UserWallet.id)
                .where(
                    UserWallet.user_id == user_id,
                    UserWallet.type == WALLET_TYPE_EMBEDDED,
                )
                .limit(1)
            ).first()
            if has_embedded is not None:
                return

            try:
                provider_user = await self._identity.find_user_by_wallet(wallet_address)
            except IdentityProviderError as e:
                logger.warning("Embedded wallet lookup failed (non-blocking): %s", e)
                return
            if provider_user is not None and provider_user.embedded_wallet_address:
                _register_embedded_wallet(db, user_id, provider_user.embedded_wallet_address)


def authenticate_session(db: Session, codec: SessionTokenCodec, token: str) -> User | None:
    """Return the user behind a valid session token, or None."""
    claims = codec.validate(token)
    if claims is None:
        return None
    return db.get(User, claims.user_id)
