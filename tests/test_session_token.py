# tests/test_session_token.py
"""Tests for the HMAC-signed session token codec."""

import base64
import json

import pytest

from walletgate.services.session_token import TOKEN_PREFIX, SessionClaims, SessionTokenCodec

SECRET = "unit-test-secret"
WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"


@pytest.fixture()
def codec(clock) -> SessionTokenCodec:
    return SessionTokenCodec(SECRET, ttl_seconds=7 * 24 * 3600, clock=clock)


def test_issued_token_validates(codec) -> None:
    issued = codec.issue("user-1", WALLET)
    assert issued.token.startswith(TOKEN_PREFIX)
    assert codec.validate(issued.token) == SessionClaims(user_id="user-1", wallet_address=WALLET)


def test_expiry_is_seven_days_in_milliseconds(codec, clock) -> None:
    issued = codec.issue("user-1", WALLET)
    expected = int(clock().timestamp() * 1000) + 7 * 24 * 3600 * 1000
    assert issued.expires_at_ms == expected


def test_token_expires(codec, clock) -> None:
    token = codec.issue("user-1", WALLET).token
    clock.advance(7 * 24 * 3600 - 1)
    assert codec.validate(token) is not None
    clock.advance(1)
    assert codec.validate(token) is None


def test_every_single_character_change_is_rejected(codec) -> None:
    token = codec.issue("user-1", WALLET).token
    for index in range(len(TOKEN_PREFIX), len(token)):
        if token[index] == ".":
            continue
        replacement = "A" if token[index] != "A" else "B"
        tampered = token[:index] + replacement + token[index + 1:]
        assert codec.validate(tampered) is None, f"tampered position {index} accepted"


def test_token_signed_with_other_secret_is_rejected(codec, clock) -> None:
    other = SessionTokenCodec("another-secret", clock=clock)
    assert codec.validate(other.issue("user-1", WALLET).token) is None


def test_forged_payload_is_rejected(codec) -> None:
    token = codec.issue("user-1", WALLET).token
    _, signature = token[len(TOKEN_PREFIX):].rsplit(".", 1)
    forged = json.dumps({"userId": "admin", "walletAddress": WALLET, "exp": 10**15}).encode()
    encoded = base64.urlsafe_b64encode(forged).decode().rstrip("=")
    assert codec.validate(f"{TOKEN_PREFIX}{encoded}.{signature}") is None


@pytest.mark.parametrize(
    "token",
    ["", "siws_", "siws_abc", "siws_.abc", "siws_abc.", "siws_!!!.deadbeef", "siws_é.é"],
)
def test_malformed_tokens_are_rejected(codec, token: str) -> None:
    assert codec.validate(token) is None


def test_missing_claims_are_rejected(codec) -> None:
    payload = json.dumps({"userId": "user-1", "exp": 10**15}, separators=(",", ":")).encode()
    token = f"{TOKEN_PREFIX}{base64.urlsafe_b64encode(payload).decode().rstrip('=')}.{codec._sign(payload)}"
    assert codec.validate(token) is None


def test_empty_secret_is_refused() -> None:
    with pytest.raises(ValueError):
        SessionTokenCodec("")
