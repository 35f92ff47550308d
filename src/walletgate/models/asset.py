# src/walletgate/models/asset.py
"""Posts, their downloadable assets, and confirmed edition purchases.

Only the columns the access-control pipeline reads are mapped here; the rest
of the content schema is owned by the main application.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from walletgate.db.session import Base

PURCHASE_STATUS_CONFIRMED = "confirmed"


def _new_id() -> str:
    return str(uuid.uuid4())


class Post(Base):
    """Post owning one or more gated assets."""

    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    creator_wallet: Mapped[str] = mapped_column(Text, nullable=False, index=True)


class PostAsset(Base):
    """Stored media file attached to a post."""

    __tablename__ = "post_assets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    post_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    storage_provider: Mapped[str] = mapped_column(Text, nullable=False)
    storage_key: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    download_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Whether a download requires proof of on-chain ownership.
    is_gated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class EditionPurchase(Base):
    """Mint produced by a purchase of a post's edition."""

    __tablename__ = "edition_purchases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    post_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    nft_mint: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
