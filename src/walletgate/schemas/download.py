"""Gated-download request/response schemas."""

from datetime import datetime

from pydantic import Field, field_validator

from walletgate.models import PostAsset

from .common import CamelModel, strip_string


class DownloadNonceRequest(CamelModel):
    """Request for a download challenge."""

    asset_id: str = Field(..., min_length=1, description="Asset identifier (UUID)")
    wallet: str = Field(..., min_length=1, description="Base58 Solana address")

    @field_validator("asset_id", "wallet", mode="before")
    @classmethod
    def strip_whitespace(cls, v: object) -> object:
        return strip_string(v)


class DownloadNonceResponse(CamelModel):
    nonce: str
    expires_at: datetime
    message: str = Field(..., description="Message the wallet must sign")


class DownloadVerifyRequest(CamelModel):
    """Signed download challenge."""

    asset_id: str = Field(..., min_length=1)
    wallet: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1, description="Signature in base58 or base64")
    message: str = Field(..., min_length=1, description="The exact challenge message signed")

    @field_validator("asset_id", "wallet", "signature", mode="before")
    @classmethod
    def strip_whitespace(cls, v: object) -> object:
        return strip_string(v)


class DownloadTokenResponse(CamelModel):
    token: str
    expires_at: datetime


class DownloadValidateRequest(CamelModel):
    asset_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)

    @field_validator("asset_id", "token", mode="before")
    @classmethod
    def strip_whitespace(cls, v: object) -> object:
        return strip_string(v)


class AssetGatingResponse(CamelModel):
    asset_id: str
    post_id: str
    is_gated: bool


class DownloadAssetResponse(CamelModel):
    """Metadata needed to stream a gated asset once a token checks out."""

    asset_id: str
    storage_provider: str
    storage_key: str
    mime_type: str | None
    file_size: int | None
    download_name: str | None

    @classmethod
    def from_asset(cls, asset: PostAsset) -> "DownloadAssetResponse":
        return cls(
            asset_id=asset.id,
            storage_provider=asset.storage_provider,
            storage_key=asset.storage_key,
            mime_type=asset.mime_type,
            file_size=asset.file_size,
            download_name=asset.download_name,
        )
