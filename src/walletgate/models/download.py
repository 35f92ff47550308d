# src/walletgate/models/download.py
"""Models backing the gated-download challenge and token lifecycle."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from walletgate.db.session import Base
from walletgate.db.time import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class DownloadNonce(Base):
    """Single-use challenge bound to one (asset, wallet) pair."""

    __tablename__ = "download_nonces"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    nonce: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    asset_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("post_assets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    wallet: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    # Set exactly once, by the conditional update that consumes the nonce.
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class DownloadToken(Base):
    """Short-lived authorization to fetch one asset with one wallet."""

    __tablename__ = "download_tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    token: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    asset_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("post_assets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    wallet: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
