"""wallet auth tables

Revision ID: 5b1e2c7d9a40
Revises:
Create Date: 2026-10-19 09:12:44.318204

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5b1e2c7d9a40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, assets and the download challenge/token tables."""
    op.create_table(
        "posts",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("creator_wallet", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_posts_creator_wallet", "posts", ["creator_wallet"])

    op.create_table(
        "post_assets",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("post_id", sa.String(length=36), nullable=False),
        sa.Column("storage_provider", sa.Text(), nullable=False),
        sa.Column("storage_key", sa.Text(), nullable=False),
        sa.Column("mime_type", sa.Text(), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("download_name", sa.Text(), nullable=True),
        sa.Column("is_gated", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_post_assets_post_id", "post_assets", ["post_id"])

    op.create_table(
        "edition_purchases",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("post_id", sa.String(length=36), nullable=False),
        sa.Column("nft_mint", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.ForeignKeyConstraint(["post_id"], ["posts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_edition_purchases_post_id", "edition_purchases", ["post_id"])

    op.create_table(
        "download_nonces",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("nonce", sa.Text(), nullable=False),
        sa.Column("asset_id", sa.String(length=36), nullable=False),
        sa.Column("wallet", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["asset_id"], ["post_assets.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("nonce"),
    )
    op.create_index("ix_download_nonces_asset_id", "download_nonces", ["asset_id"])
    op.create_index("ix_download_nonces_expires_at", "download_nonces", ["expires_at"])

    op.create_table(
        "download_tokens",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("asset_id", sa.String(length=36), nullable=False),
        sa.Column("wallet", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["asset_id"], ["post_assets.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token"),
    )
    op.create_index("ix_download_tokens_asset_id", "download_tokens", ["asset_id"])
    op.create_index("ix_download_tokens_expires_at", "download_tokens", ["expires_at"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("wallet_address", sa.Text(), nullable=False),
        sa.Column("privy_id", sa.Text(), nullable=False),
        sa.Column("username_slug", sa.Text(), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("privy_id"),
    )
    op.create_index("ix_users_wallet_address", "users", ["wallet_address"], unique=True)
    op.create_index("ix_users_username_slug", "users", ["username_slug"], unique=True)

    op.create_table(
        "user_wallets",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("connector", sa.Text(), nullable=True),
        sa.Column("label", sa.Text(), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "address", name="user_wallets_user_address_unique"),
    )
    op.create_index("ix_user_wallets_user_id", "user_wallets", ["user_id"])
    op.create_index("ix_user_wallets_address", "user_wallets", ["address"])


def downgrade() -> None:
    """Drop every table created by this revision."""
    op.drop_index("ix_user_wallets_address", table_name="user_wallets")
    op.drop_index("ix_user_wallets_user_id", table_name="user_wallets")
    op.drop_table("user_wallets")
    op.drop_index("ix_users_username_slug", table_name="users")
    op.drop_index("ix_users_wallet_address", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_download_tokens_expires_at", table_name="download_tokens")
    op.drop_index("ix_download_tokens_asset_id", table_name="download_tokens")
    op.drop_table("download_tokens")
    op.drop_index("ix_download_nonces_expires_at", table_name="download_nonces")
    op.drop_index("ix_download_nonces_asset_id", table_name="download_nonces")
    op.drop_table("download_nonces")
    op.drop_index("ix_edition_purchases_post_id", table_name="edition_purchases")
    op.drop_table("edition_purchases")
    op.drop_index("ix_post_assets_post_id", table_name="post_assets")
    op.drop_table("post_assets")
    op.drop_index("ix_posts_creator_wallet", table_name="posts")
    op.drop_table("posts")
