"""Sign-In-With-Solana request/response schemas."""

from pydantic import Field, field_validator

from walletgate.models import User

from .common import CamelModel, strip_string


class SiwsChallengeRequest(CamelModel):
    """Request for a sign-in challenge."""

    wallet_address: str = Field(..., min_length=1, description="Base58 Solana address")

    @field_validator("wallet_address", mode="before")
    @classmethod
    def strip_whitespace(cls, v: object) -> object:
        return strip_string(v)


class SiwsChallengeResponse(CamelModel):
    message: str = Field(..., description="Message the wallet must sign")
    nonce: str = Field(..., description="Single-use challenge nonce")


class SiwsVerifyRequest(CamelModel):
    """Signed sign-in challenge."""

    wallet_address: str = Field(..., min_length=1, description="Base58 Solana address")
    signature: str = Field(..., min_length=1, description="Signature in base58 or base64")
    message: str = Field(..., min_length=1, description="The exact challenge message signed")
    wallet_name: str | None = Field(None, description="Wallet app name used as a label")

    @field_validator("wallet_address", "signature", "wallet_name", mode="before")
    @classmethod
    def strip_whitespace(cls, v: object) -> object:
        return strip_string(v)


class WalletUserResponse(CamelModel):
    """Public profile of a wallet-authenticated user."""

    id: str
    display_name: str | None
    slug: str
    avatar_url: str | None
    wallet_address: str

    @classmethod
    def from_user(cls, user: User) -> "WalletUserResponse":
        return cls(
            id=user.id,
            display_name=user.display_name,
            slug=user.username_slug,
            avatar_url=user.avatar_url,
            wallet_address=user.wallet_address,
        )


class SiwsVerifyResponse(CamelModel):
    token: str = Field(..., description="Bearer session token")
    expires_at: int = Field(..., description="Session expiry in epoch milliseconds")
    user: WalletUserResponse
    is_new_user: bool


class SessionResponse(CamelModel):
    user: WalletUserResponse
