"""Signature utilities built on Ed25519 primitives.

Wallet addresses are base58-encoded 32-byte Ed25519 public keys. Wallets sign
the UTF-8 bytes of a challenge message and return the 64-byte signature either
base58-encoded (browser wallets) or base64-encoded (mobile wallet adapters).
"""
from __future__ import annotations

import base64
import binascii
import re

import base58
from nacl.exceptions import CryptoError
from nacl.signing import VerifyKey

PUBKEY_LENGTH_BYTES = 32
SIGNATURE_LENGTH_BYTES = 64
WALLET_ADDRESS_MIN_LENGTH = 32
WALLET_ADDRESS_MAX_LENGTH = 44

_BASE58_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]+$")
# None of these characters belong to the base58 alphabet.
_BASE64_MARKERS = re.compile(r"[+/=]")


def decode_wallet_address(address: str) -> bytes:
    """Decode a base58 wallet address into raw public key bytes.

    Raises:
        ValueError: If the address is not base58 or does not decode to 32 bytes.
    """
    if not _BASE58_PATTERN.match(address or ""):
        raise ValueError("Wallet address contains non-base58 characters")
    pubkey = base58.b58decode(address)
    if len(pubkey) != PUBKEY_LENGTH_BYTES:
        raise ValueError("Ed25519 public keys must be 32 bytes")
    return pubkey


def is_valid_wallet_address(address: str) -> bool:
    """Return True for a plausible Solana address (length, alphabet and key size)."""
    if not isinstance(address, str):
        return False
    if not WALLET_ADDRESS_MIN_LENGTH <= len(address) <= WALLET_ADDRESS_MAX_LENGTH:
        return False
    try:
        decode_wallet_address(address)
    except ValueError:
        return False
    return True


def decode_signature(signature: str) -> bytes:
    """Decode a wallet signature, auto-detecting base64 versus base58.

    A signature containing ``+``, ``/`` or ``=`` is treated as base64,
    anything else as base58.

    Raises:
        ValueError: If the signature cannot be decoded.
    """
    cleaned = signature.strip()
    if _BASE64_MARKERS.search(cleaned):
        try:
            return base64.b64decode(cleaned, validate=True)
        except binascii.Error as err:
            raise ValueError(f"Invalid base64 signature: {err}") from err
    return base58.b58decode(cleaned)


def verify_wallet_signature(wallet_address: str, message: str, signature: str) -> bool:
    """Verify an Ed25519 wallet signature over a text message.

    Args:
        wallet_address: Base58-encoded 32-byte public key.
        message: Exact text that was signed; encoded as UTF-8.
        signature: Base58 or base64 encoded 64-byte signature.

    Returns:
        True if the signature is valid for ``message`` under ``wallet_address``;
        False on any decoding or verification failure.
    """
    try:
        pubkey_bytes = decode_wallet_address(wallet_address)
        signature_bytes = decode_signature(signature)
        if len(signature_bytes) != SIGNATURE_LENGTH_BYTES:
            return False
        pubkey = VerifyKey(pubkey_bytes)
        pubkey.verify(message.encode("utf-8"), signature_bytes)
        return True
    except (CryptoError, ValueError, TypeError, AttributeError):
        return False
