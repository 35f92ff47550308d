# tests/test_download_auth.py
"""Tests for the gated-download authorization flow."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import select

from walletgate.models import DownloadNonce, DownloadToken
from walletgate.services.challenge import (
    DownloadChallenge,
    build_download_message,
    parse_download_message,
)
from walletgate.services.download_auth import DownloadAuthService
from walletgate.services.errors import AuthError, AuthErrorCode, OracleUnavailableError

DOMAIN = "walletgate.app"


@pytest.fixture()
def service(db_session, oracle, clock) -> DownloadAuthService:
    return DownloadAuthService(db_session, oracle, clock=clock, domain=DOMAIN, oracle_timeout_seconds=0.5)


def _signed(service, asset, wallet):
    challenge = service.request_nonce(asset.id, wallet.address)
    return challenge, wallet.sign(challenge.message)


async def test_owner_receives_download_token(service, oracle, gated_asset, wallet, db_session, clock) -> None:
    oracle.owners.add(wallet.address)
    challenge, signature = _signed(service, gated_asset, wallet)

    issued = await service.verify_and_issue_token(
        gated_asset.id, wallet.address, signature, challenge.message
    )

    assert len(issued.token) == 64
    assert (issued.expires_at - clock()).total_seconds() == pytest.approx(120, abs=0.001)
    row = db_session.execute(
        select(DownloadToken).where(DownloadToken.token == issued.token)
    ).scalar_one()
    assert row.asset_id == gated_asset.id
    assert row.wallet == wallet.address


async def test_creator_is_authorized_without_ownership_lookup(
    service, oracle, gated_asset, creator_wallet
) -> None:
    oracle.creators.add(creator_wallet.address)
    challenge, signature = _signed(service, gated_asset, creator_wallet)

    await service.verify_and_issue_token(
        gated_asset.id, creator_wallet.address, signature, challenge.message
    )

    assert [call[0] for call in oracle.calls] == ["is_resource_creator"]


async def test_base64_signature_is_accepted(service, oracle, gated_asset, wallet) -> None:
    oracle.owners.add(wallet.address)
    challenge = service.request_nonce(gated_asset.id, wallet.address)
    issued = await service.verify_and_issue_token(
        gated_asset.id, wallet.address, wallet.sign_base64(challenge.message), challenge.message
    )
    assert issued.token


def test_request_nonce_builds_parseable_message(service, gated_asset, wallet, clock) -> None:
    challenge = service.request_nonce(gated_asset.id, wallet.address)
    parsed = parse_download_message(challenge.message, domain=DOMAIN)
    assert parsed == DownloadChallenge(
        asset_id=gated_asset.id,
        wallet=wallet.address,
        nonce=challenge.nonce,
        expires_at=challenge.expires_at,
    )
    assert (challenge.expires_at - clock()).total_seconds() == pytest.approx(300, abs=0.001)


@pytest.mark.parametrize(
    ("asset_id", "wallet_address"),
    [
        ("not-a-uuid", None),
        (None, "short"),
        (None, "0OIl" * 10),
    ],
)
def test_request_nonce_validates_input(service, gated_asset, wallet, asset_id, wallet_address) -> None:
    with pytest.raises(AuthError) as exc_info:
        service.request_nonce(asset_id or gated_asset.id, wallet_address or wallet.address)
    assert exc_info.value.code is AuthErrorCode.VALIDATION_ERROR


def test_request_nonce_for_unknown_asset(service, wallet, db_session) -> None:
    with pytest.raises(AuthError) as exc_info:
        service.request_nonce(str(uuid.uuid4()), wallet.address)
    assert exc_info.value.code is AuthErrorCode.ASSET_NOT_FOUND


def test_request_nonce_for_ungated_asset(service, open_asset, wallet) -> None:
    with pytest.raises(AuthError) as exc_info:
        service.request_nonce(open_asset.id, wallet.address)
    assert exc_info.value.code is AuthErrorCode.ASSET_NOT_GATED


async def test_non_owner_is_rejected_and_nonce_stays_used(
    service, oracle, gated_asset, wallet, db_session
) -> None:
    challenge, signature = _signed(service, gated_asset, wallet)

    with pytest.raises(AuthError) as exc_info:
        await service.verify_and_issue_token(gated_asset.id, wallet.address, signature, challenge.message)
    assert exc_info.value.code is AuthErrorCode.NOT_OWNER
    assert exc_info.value.http_status == 403

    nonce = db_session.execute(
        select(DownloadNonce).where(DownloadNonce.nonce == challenge.nonce)
    ).scalar_one()
    assert nonce.used_at is not None
    assert db_session.execute(select(DownloadToken)).first() is None

    # The wallet acquiring the edition later still needs a fresh challenge.
    oracle.owners.add(wallet.address)
    with pytest.raises(AuthError) as replay:
        await service.verify_and_issue_token(gated_asset.id, wallet.address, signature, challenge.message)
    assert replay.value.code is AuthErrorCode.NONCE_INVALID


async def test_replayed_signature_is_rejected(service, oracle, gated_asset, wallet) -> None:
    oracle.owners.add(wallet.address)
    challenge, signature = _signed(service, gated_asset, wallet)
    await service.verify_and_issue_token(gated_asset.id, wallet.address, signature, challenge.message)

    with pytest.raises(AuthError) as exc_info:
        await service.verify_and_issue_token(gated_asset.id, wallet.address, signature, challenge.message)
    assert exc_info.value.code is AuthErrorCode.NONCE_INVALID


async def test_message_for_other_asset_is_rejected(
    service, oracle, gated_asset, open_asset, wallet
) -> None:
    oracle.owners.add(wallet.address)
    challenge, signature = _signed(service, gated_asset, wallet)

    with pytest.raises(AuthError) as exc_info:
        await service.verify_and_issue_token(open_asset.id, wallet.address, signature, challenge.message)
    assert exc_info.value.code is AuthErrorCode.MESSAGE_MISMATCH


async def test_message_signed_by_other_wallet_is_rejected(
    service, oracle, gated_asset, wallet, other_wallet
) -> None:
    challenge = service.request_nonce(gated_asset.id, wallet.address)

    with pytest.raises(AuthError) as mismatch:
        await service.verify_and_issue_token(
            gated_asset.id, other_wallet.address, other_wallet.sign(challenge.message), challenge.message
        )
    assert mismatch.value.code is AuthErrorCode.MESSAGE_MISMATCH

    with pytest.raises(AuthError) as forged:
        await service.verify_and_issue_token(
            gated_asset.id, wallet.address, other_wallet.sign(challenge.message), challenge.message
        )
    assert forged.value.code is AuthErrorCode.INVALID_SIGNATURE


async def test_malformed_message_is_rejected(service, gated_asset, wallet) -> None:
    message = "please let me download"
    with pytest.raises(AuthError) as exc_info:
        await service.verify_and_issue_token(gated_asset.id, wallet.address, wallet.sign(message), message)
    assert exc_info.value.code is AuthErrorCode.MESSAGE_MALFORMED


async def test_expired_challenge_is_rejected(service, oracle, gated_asset, wallet, clock) -> None:
    oracle.owners.add(wallet.address)
    challenge, signature = _signed(service, gated_asset, wallet)
    clock.advance(301)

    with pytest.raises(AuthError) as exc_info:
        await service.verify_and_issue_token(gated_asset.id, wallet.address, signature, challenge.message)
    assert exc_info.value.code is AuthErrorCode.MESSAGE_EXPIRED


async def test_extended_expiry_in_message_does_not_outlive_nonce(
    service, oracle, gated_asset, wallet, clock
) -> None:
    oracle.owners.add(wallet.address)
    challenge = service.request_nonce(gated_asset.id, wallet.address)
    forged_message = build_download_message(
        DownloadChallenge(
            asset_id=gated_asset.id,
            wallet=wallet.address,
            nonce=challenge.nonce,
            expires_at=challenge.expires_at.replace(year=challenge.expires_at.year + 1),
        ),
        domain=DOMAIN,
    )
    clock.advance(301)

    with pytest.raises(AuthError) as exc_info:
        await service.verify_and_issue_token(
            gated_asset.id, wallet.address, wallet.sign(forged_message), forged_message
        )
    assert exc_info.value.code is AuthErrorCode.NONCE_INVALID


async def test_oracle_failure_is_not_reported_as_not_owner(service, oracle, gated_asset, wallet) -> None:
    oracle.error = OracleUnavailableError("DAS responded with 502")
    challenge, signature = _signed(service, gated_asset, wallet)

    with pytest.raises(AuthError) as exc_info:
        await service.verify_and_issue_token(gated_asset.id, wallet.address, signature, challenge.message)
    assert exc_info.value.code is AuthErrorCode.ORACLE_UNAVAILABLE
    assert exc_info.value.http_status == 503


async def test_oracle_timeout_is_reported_as_unavailable(service, oracle, gated_asset, wallet, db_session) -> None:
    oracle.owners.add(wallet.address)
    oracle.delay = 5.0
    challenge, signature = _signed(service, gated_asset, wallet)

    with pytest.raises(AuthError) as exc_info:
        await service.verify_and_issue_token(gated_asset.id, wallet.address, signature, challenge.message)
    assert exc_info.value.code is AuthErrorCode.ORACLE_UNAVAILABLE
    assert db_session.execute(select(DownloadToken)).first() is None


async def test_asset_ungated_after_challenge_skips_oracle(
    service, oracle, gated_asset, wallet, db_session
) -> None:
    challenge, signature = _signed(service, gated_asset, wallet)
    gated_asset.is_gated = False
    db_session.commit()

    issued = await service.verify_and_issue_token(gated_asset.id, wallet.address, signature, challenge.message)
    assert issued.token
    assert oracle.calls == []


async def test_download_token_is_reusable_until_expiry(service, oracle, gated_asset, wallet, clock) -> None:
    oracle.owners.add(wallet.address)
    challenge, signature = _signed(service, gated_asset, wallet)
    issued = await service.verify_and_issue_token(gated_asset.id, wallet.address, signature, challenge.message)

    assert service.validate_download_token(gated_asset.id, issued.token).id == gated_asset.id
    assert service.validate_download_token(gated_asset.id, issued.token).id == gated_asset.id

    clock.advance(120)
    with pytest.raises(AuthError) as exc_info:
        service.validate_download_token(gated_asset.id, issued.token)
    assert exc_info.value.code is AuthErrorCode.TOKEN_INVALID


async def test_download_token_is_bound_to_asset(
    service, oracle, gated_asset, open_asset, wallet
) -> None:
    oracle.owners.add(wallet.address)
    challenge, signature = _signed(service, gated_asset, wallet)
    issued = await service.verify_and_issue_token(gated_asset.id, wallet.address, signature, challenge.message)

    with pytest.raises(AuthError) as exc_info:
        service.validate_download_token(open_asset.id, issued.token)
    assert exc_info.value.code is AuthErrorCode.TOKEN_INVALID


def test_check_asset_gating(service, gated_asset, open_asset) -> None:
    assert service.check_asset_gating(gated_asset.id).is_gated is True
    assert service.check_asset_gating(open_asset.id).is_gated is False
    with pytest.raises(AuthError) as exc_info:
        service.check_asset_gating(str(uuid.uuid4()))
    assert exc_info.value.code is AuthErrorCode.ASSET_NOT_FOUND
