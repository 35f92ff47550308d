# tests/conftest.py
from __future__ import annotations

import asyncio
import base64
import os
from collections.abc import Generator, Iterator
from datetime import UTC, datetime, timedelta

import base58
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from nacl.signing import SigningKey
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("SIWS_SESSION_SECRET", "test-session-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from walletgate.api.v1.dependencies import get_identity_provider, get_ownership_oracle
from walletgate.db.session import Base
from walletgate.db.session import get_db as app_get_session
from walletgate.main import create_app
from walletgate.models import EditionPurchase, Post, PostAsset
from walletgate.models.asset import PURCHASE_STATUS_CONFIRMED
from walletgate.services.identity import ProviderUser
from walletgate.services.ownership import OwnershipResult

TEST_DB_URL = "sqlite://"


class FakeClock:
    """Settable UTC clock for expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class WalletKeypair:
    """Ed25519 keypair presenting itself as a Solana wallet."""

    def __init__(self) -> None:
        self.signing_key = SigningKey.generate()
        self.address = base58.b58encode(self.signing_key.verify_key.encode()).decode()

    def sign(self, message: str) -> str:
        """Return a base58 signature, as browser wallets produce."""
        signature = self.signing_key.sign(message.encode("utf-8")).signature
        return base58.b58encode(signature).decode()

    def sign_base64(self, message: str) -> str:
        """Return a base64 signature, as mobile wallet adapters produce."""
        signature = self.signing_key.sign(message.encode("utf-8")).signature
        return base64.b64encode(signature).decode()


class FakeOwnershipOracle:
    """In-memory oracle recording its calls."""

    def __init__(self) -> None:
        self.owners: set[str] = set()
        self.creators: set[str] = set()
        self.error: Exception | None = None
        self.delay = 0.0
        self.calls: list[tuple[str, str, str]] = []

    async def verify_ownership(self, wallet: str, post_id: str) -> OwnershipResult:
        self.calls.append(("verify_ownership", wallet, post_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if wallet in self.owners:
            return OwnershipResult(is_owner=True, proof_mint="mint-1")
        return OwnershipResult(is_owner=False)

    async def is_resource_creator(self, wallet: str, post_id: str) -> bool:
        self.calls.append(("is_resource_creator", wallet, post_id))
        return wallet in self.creators


class FakeIdentityProvider:
    """Identity provider double; setting ``fail`` makes every call raise it."""

    def __init__(self) -> None:
        self.fail: Exception | None = None
        self.embedded: str | None = None
        self.users: dict[str, ProviderUser] = {}
        self.imports: list[str] = []

    async def find_user_by_wallet(self, address: str) -> ProviderUser | None:
        if self.fail is not None:
            raise self.fail
        return self.users.get(address)

    async def import_user(
        self, linked_wallet: str, *, create_embedded_wallet: bool = True
    ) -> ProviderUser:
        if self.fail is not None:
            raise self.fail
        self.imports.append(linked_wallet)
        user = ProviderUser(
            id=f"did:privy:{len(self.imports)}",
            embedded_wallet_address=self.embedded if create_embedded_wallet else None,
        )
        self.users[linked_wallet] = user
        return user


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture()
def db_session(engine: Engine, session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()

        # Services commit, so clear every table for the next test.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def wallet() -> WalletKeypair:
    return WalletKeypair()


@pytest.fixture()
def other_wallet() -> WalletKeypair:
    return WalletKeypair()


@pytest.fixture()
def creator_wallet() -> WalletKeypair:
    return WalletKeypair()


@pytest.fixture()
def post(db_session: Session, creator_wallet: WalletKeypair) -> Post:
    post = Post(creator_wallet=creator_wallet.address)
    db_session.add(post)
    db_session.commit()
    return post


@pytest.fixture()
def gated_asset(db_session: Session, post: Post) -> PostAsset:
    asset = PostAsset(
        post_id=post.id,
        storage_provider="s3",
        storage_key="posts/edition.zip",
        mime_type="application/zip",
        file_size=2048,
        download_name="edition.zip",
        is_gated=True,
    )
    db_session.add(asset)
    db_session.commit()
    return asset


@pytest.fixture()
def open_asset(db_session: Session, post: Post) -> PostAsset:
    asset = PostAsset(
        post_id=post.id,
        storage_provider="s3",
        storage_key="posts/preview.png",
        mime_type="image/png",
        is_gated=False,
    )
    db_session.add(asset)
    db_session.commit()
    return asset


@pytest.fixture()
def confirmed_purchase(db_session: Session, post: Post) -> EditionPurchase:
    purchase = EditionPurchase(
        post_id=post.id,
        nft_mint="Mint1111111111111111111111111111111111111111",
        status=PURCHASE_STATUS_CONFIRMED,
    )
    db_session.add(purchase)
    db_session.commit()
    return purchase


@pytest.fixture()
def oracle() -> FakeOwnershipOracle:
    return FakeOwnershipOracle()


@pytest.fixture()
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture()
def app(
    session_factory: sessionmaker[Session],
    db_session: Session,
    oracle: FakeOwnershipOracle,
) -> Iterator[FastAPI]:
    application = create_app()
    application.state.session_factory = session_factory

    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    application.dependency_overrides[app_get_session] = _get_session_override
    application.dependency_overrides[get_ownership_oracle] = lambda: oracle
    application.dependency_overrides[get_identity_provider] = lambda: None
    try:
        yield application
    finally:
        application.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
