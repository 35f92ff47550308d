"""Human-readable challenge messages that wallets display before signing.

Both message kinds are a fixed preamble line followed by ``Label: value``
lines in a strict order, so the server can parse back exactly what the user
saw and signed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from walletgate.core.settings import settings

DOWNLOAD_PREAMBLE_SUFFIX = " wants you to download:"
SIWS_PREAMBLE_SUFFIX = " wants you to sign in with your Solana account:"

_ASSET_LABEL = "Asset: "
_WALLET_LABEL = "Wallet: "
_NONCE_LABEL = "Nonce: "
_EXPIRES_LABEL = "Expires: "
_ISSUED_AT_LABEL = "Issued At: "

DOWNLOAD_MESSAGE_LINES = 5
SIWS_MESSAGE_LINES = 5


@dataclass(frozen=True)
class DownloadChallenge:
    """Fields embedded in a download challenge message."""

    asset_id: str
    wallet: str
    nonce: str
    expires_at: datetime


@dataclass(frozen=True)
class SiwsChallenge:
    """Fields embedded in a sign-in challenge message."""

    wallet_address: str
    nonce: str
    issued_at: datetime


def format_timestamp(value: datetime) -> str:
    """Render a UTC timestamp as ISO-8601 with millisecond precision and ``Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    rendered = value.astimezone(UTC).isoformat(timespec="milliseconds")
    return rendered.replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime | None:
    """Parse a timestamp produced by :func:`format_timestamp`."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed.astimezone(UTC)


def truncate_to_millis(value: datetime) -> datetime:
    """Drop sub-millisecond precision so a timestamp survives a message round trip."""
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def _strip_label(line: str, label: str) -> str | None:
    if not line.startswith(label):
        return None
    value = line[len(label):].strip()
    return value or None


def build_download_message(challenge: DownloadChallenge, *, domain: str | None = None) -> str:
    """Build the text a wallet signs to unlock a gated download."""
    domain = domain or settings.challenge_domain
    return "\n".join(
        (
            f"{domain}{DOWNLOAD_PREAMBLE_SUFFIX}",
            f"{_ASSET_LABEL}{challenge.asset_id}",
            f"{_WALLET_LABEL}{challenge.wallet}",
            f"{_NONCE_LABEL}{challenge.nonce}",
            f"{_EXPIRES_LABEL}{format_timestamp(challenge.expires_at)}",
        )
    )


def parse_download_message(
    message: str, *, domain: str | None = None
) -> DownloadChallenge | None:
    """Parse a download challenge message, returning None if it is malformed."""
    domain = domain or settings.challenge_domain
    lines = message.splitlines()
    if len(lines) < DOWNLOAD_MESSAGE_LINES:
        return None
    if lines[0].strip() != f"{domain}{DOWNLOAD_PREAMBLE_SUFFIX}":
        return None

    asset_id = _strip_label(lines[1], _ASSET_LABEL)
    wallet = _strip_label(lines[2], _WALLET_LABEL)
    nonce = _strip_label(lines[3], _NONCE_LABEL)
    expires_raw = _strip_label(lines[4], _EXPIRES_LABEL)
    if not asset_id or not wallet or not nonce or not expires_raw:
        return None

    expires_at = parse_timestamp(expires_raw)
    if expires_at is None:
        return None
    return DownloadChallenge(asset_id=asset_id, wallet=wallet, nonce=nonce, expires_at=expires_at)


def build_siws_message(challenge: SiwsChallenge, *, app_name: str | None = None) -> str:
    """Build a Sign-In-With-Solana message."""
    app_name = app_name or settings.siws_app_name
    return "\n".join(
        (
            f"{app_name}{SIWS_PREAMBLE_SUFFIX}",
            challenge.wallet_address,
            "",
            f"{_NONCE_LABEL}{challenge.nonce}",
            f"{_ISSUED_AT_LABEL}{format_timestamp(challenge.issued_at)}",
        )
    )


def parse_siws_message(message: str, *, app_name: str | None = None) -> SiwsChallenge | None:
    """Parse a Sign-In-With-Solana message, returning None if it is malformed."""
    app_name = app_name or settings.siws_app_name
    lines = message.splitlines()
    if len(lines) < SIWS_MESSAGE_LINES:
        return None
    if lines[0].strip() != f"{app_name}{SIWS_PREAMBLE_SUFFIX}":
        return None

    wallet_address = lines[1].strip()
    nonce = _strip_label(lines[3], _NONCE_LABEL)
    issued_raw = _strip_label(lines[4], _ISSUED_AT_LABEL)
    if not wallet_address or not nonce or not issued_raw:
        return None

    issued_at = parse_timestamp(issued_raw)
    if issued_at is None:
        return None
    return SiwsChallenge(wallet_address=wallet_address, nonce=nonce, issued_at=issued_at)
