# tests/services/test_ownership.py
import json
from collections.abc import Callable

import httpx
import pytest

from walletgate.services.errors import OracleUnavailableError
from walletgate.services.ownership import DasConfig, DasOwnershipOracle
from walletgate.services.resilience import CircuitBreaker, CircuitState

RPC_URL = "https://das.test/rpc"


def das_client(handler: Callable[[dict], httpx.Response], seen: list[dict]) -> httpx.AsyncClient:
    def _transport(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append({"params": dict(request.url.params), "body": body})
        return handler(body)

    return httpx.AsyncClient(transport=httpx.MockTransport(_transport))


def asset_result(owner: str, *, burnt: bool = False) -> httpx.Response:
    return httpx.Response(
        200,
        json={"jsonrpc": "2.0", "id": "ownership-check", "result": {"burnt": burnt, "ownership": {"owner": owner}}},
    )


@pytest.fixture
def config() -> DasConfig:
    return DasConfig(rpc_url=RPC_URL, api_key="key-123", timeout_seconds=1.0)


async def test_holder_of_confirmed_mint_is_owner(db_session, post, confirmed_purchase, wallet, config):
    seen: list[dict] = []
    async with das_client(lambda body: asset_result(wallet.address), seen) as client:
        oracle = DasOwnershipOracle(db_session, client, config)
        result = await oracle.verify_ownership(wallet.address, post.id)

    assert result.is_owner is True
    assert result.proof_mint == confirmed_purchase.nft_mint
    assert seen[0]["params"] == {"api-key": "key-123"}
    assert seen[0]["body"]["method"] == "getAsset"
    assert seen[0]["body"]["params"] == {"id": confirmed_purchase.nft_mint}


async def test_other_holder_is_not_owner(db_session, post, confirmed_purchase, wallet, other_wallet, config):
    async with das_client(lambda body: asset_result(other_wallet.address), []) as client:
        result = await DasOwnershipOracle(db_session, client, config).verify_ownership(wallet.address, post.id)
    assert result.is_owner is False
    assert result.proof_mint is None


async def test_burnt_edition_does_not_count(db_session, post, confirmed_purchase, wallet, config):
    async with das_client(lambda body: asset_result(wallet.address, burnt=True), []) as client:
        result = await DasOwnershipOracle(db_session, client, config).verify_ownership(wallet.address, post.id)
    assert result.is_owner is False


async def test_unknown_mint_is_skipped(db_session, post, confirmed_purchase, wallet, config):
    def handler(body: dict) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "error": {"code": -32000, "message": "Asset Not Found"}})

    async with das_client(handler, []) as client:
        result = await DasOwnershipOracle(db_session, client, config).verify_ownership(wallet.address, post.id)
    assert result.is_owner is False


async def test_post_without_sales_skips_lookup(db_session, post, wallet, config):
    seen: list[dict] = []
    async with das_client(lambda body: asset_result(wallet.address), seen) as client:
        result = await DasOwnershipOracle(db_session, client, config).verify_ownership(wallet.address, post.id)
    assert result.is_owner is False
    assert seen == []


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(502, text="bad gateway"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"jsonrpc": "2.0", "error": {"code": -32603, "message": "internal"}}),
    ],
)
async def test_upstream_failures_raise_unavailable(db_session, post, confirmed_purchase, wallet, config, response):
    async with das_client(lambda body: response, []) as client:
        oracle = DasOwnershipOracle(db_session, client, config)
        with pytest.raises(OracleUnavailableError):
            await oracle.verify_ownership(wallet.address, post.id)


async def test_transport_error_raises_unavailable(db_session, post, confirmed_purchase, wallet, config):
    def handler(body: dict) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    async with das_client(handler, []) as client:
        with pytest.raises(OracleUnavailableError):
            await DasOwnershipOracle(db_session, client, config).verify_ownership(wallet.address, post.id)


async def test_missing_api_key_raises_unavailable(db_session, post, confirmed_purchase, wallet):
    config = DasConfig(rpc_url=RPC_URL, api_key=None, timeout_seconds=1.0)
    async with das_client(lambda body: asset_result(wallet.address), []) as client:
        with pytest.raises(OracleUnavailableError):
            await DasOwnershipOracle(db_session, client, config).verify_ownership(wallet.address, post.id)


async def test_open_circuit_short_circuits_requests(db_session, post, confirmed_purchase, wallet, config):
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60.0)
    seen: list[dict] = []
    async with das_client(lambda body: httpx.Response(500), seen) as client:
        oracle = DasOwnershipOracle(db_session, client, config, circuit_breaker=breaker)
        for _ in range(3):
            with pytest.raises(OracleUnavailableError):
                await oracle.verify_ownership(wallet.address, post.id)

    assert breaker.state is CircuitState.OPEN
    assert len(seen) == 2


async def test_creator_check_reads_post(db_session, post, creator_wallet, wallet, config):
    async with das_client(lambda body: asset_result(wallet.address), []) as client:
        oracle = DasOwnershipOracle(db_session, client, config)
        assert await oracle.is_resource_creator(creator_wallet.address, post.id) is True
        assert await oracle.is_resource_creator(wallet.address, post.id) is False
        assert await oracle.is_resource_creator(creator_wallet.address, "missing-post") is False
