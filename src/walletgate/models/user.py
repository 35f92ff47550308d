# src/walletgate/models/user.py
"""SQLAlchemy models for wallet-authenticated users."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from walletgate.db.session import Base
from walletgate.db.time import utcnow

# privy_id prefix for identities minted locally because the provider was unreachable.
SYNTHETIC_IDENTITY_PREFIX = "siws:"

WALLET_TYPE_EXTERNAL = "external"
WALLET_TYPE_EMBEDDED = "embedded"


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Account created on first wallet sign-in."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    wallet_address: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)
    privy_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    username_slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    wallets: Mapped[list[UserWallet]] = relationship(
        "UserWallet",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def has_synthetic_identity(self) -> bool:
        """Return True if the identity is not yet backed by the provider."""
        return self.privy_id.startswith(SYNTHETIC_IDENTITY_PREFIX)


class UserWallet(Base):
    """Wallet address registered to a user."""

    __tablename__ = "user_wallets"
    __table_args__ = (
        UniqueConstraint("user_id", "address", name="user_wallets_user_address_unique"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    address: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    connector: Mapped[str | None] = mapped_column(Text, nullable=True)
    label: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    user: Mapped[User] = relationship("User", back_populates="wallets")
