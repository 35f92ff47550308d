"""On-chain ownership oracle for gated downloads.

A wallet may download a gated asset if it holds one of the edition mints sold
for the asset's post, or if it created the post. Holdings are checked against
the Helius DAS ``getAsset`` JSON-RPC method because on-chain state, not the
purchase table, is authoritative once editions are traded.

Transport failures, RPC errors and missing configuration raise
:class:`OracleUnavailableError`; only a successful lookup can produce
``is_owner=False``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session

from walletgate.core.settings import settings
from walletgate.models import EditionPurchase, Post
from walletgate.models.asset import PURCHASE_STATUS_CONFIRMED
from walletgate.services.errors import OracleUnavailableError
from walletgate.services.resilience import CircuitBreaker

logger = logging.getLogger(__name__)

HTTP_OK = 200
# DAS reports unknown asset ids with this JSON-RPC error code.
DAS_ASSET_NOT_FOUND_CODE = -32000


@dataclass(frozen=True)
class OwnershipResult:
    """Outcome of an ownership lookup."""

    is_owner: bool
    proof_mint: str | None = None


class OwnershipOracle(Protocol):
    """Answers whether a wallet may access a post's gated content."""

    async def verify_ownership(self, wallet: str, post_id: str) -> OwnershipResult: ...

    async def is_resource_creator(self, wallet: str, post_id: str) -> bool: ...


@dataclass(frozen=True)
class DasConfig:
    """Immutable configuration for DAS lookups."""

    rpc_url: str
    api_key: str | None
    timeout_seconds: float


def load_das_config() -> DasConfig:
    """Build configuration object from global settings."""
    return DasConfig(
        rpc_url=settings.helius_rpc_url,
        api_key=settings.helius_api_key,
        timeout_seconds=float(settings.ownership_check_timeout_seconds),
    )


class DasOwnershipOracle:
    """Ownership oracle backed by the purchase table and Helius DAS."""

    def __init__(
        self,
        db: Session,
        client: httpx.AsyncClient,
        config: DasConfig | None = None,
        circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        self._db = db
        self._client = client
        self.config = config or load_das_config()
        self._circuit_breaker = circuit_breaker or CircuitBreaker(name="das")

    def _confirmed_mints(self, post_id: str) -> list[str]:
        rows = self._db.execute(
            select(EditionPurchase.nft_mint).where(
                EditionPurchase.post_id == post_id,
                EditionPurchase.status == PURCHASE_STATUS_CONFIRMED,
                EditionPurchase.nft_mint.is_not(None),
            )
        ).scalars()
        # Preserve order while dropping duplicate mints.
        return list(dict.fromkeys(rows))

    async def _get_asset(self, asset_address: str) -> dict[str, Any] | None:
        if not self.config.api_key:
            raise OracleUnavailableError("Helius API key not configured")
        if not self._circuit_breaker.allow_request():
            raise OracleUnavailableError("Ownership oracle circuit breaker is open")

        try:
            response = await self._client.post(
                self.config.rpc_url,
                params={"api-key": self.config.api_key},
                json={
                    "jsonrpc": "2.0",
                    "id": "ownership-check",
                    "method": "getAsset",
                    "params": {"id": asset_address},
                },
                timeout=self.config.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            self._circuit_breaker.record_failure()
            raise OracleUnavailableError(f"DAS request failed: {exc}") from exc

        if response.status_code != HTTP_OK:
            self._circuit_breaker.record_failure()
            raise OracleUnavailableError(f"DAS responded with {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            self._circuit_breaker.record_failure()
            raise OracleUnavailableError("DAS returned invalid JSON") from exc
        self._circuit_breaker.record_success()
        if not isinstance(payload, dict):
            raise OracleUnavailableError("DAS returned an unexpected payload")

        error = payload.get("error")
        if isinstance(error, dict):
            message = str(error.get("message", ""))
            if error.get("code") == DAS_ASSET_NOT_FOUND_CODE or "not found" in message.lower():
                return None
            raise OracleUnavailableError(f"DAS RPC error: {message or error}")
        if error:
            raise OracleUnavailableError(f"DAS RPC error: {error}")
        result = payload.get("result")
        return result if isinstance(result, dict) else None

    async def verify_ownership(self, wallet: str, post_id: str) -> OwnershipResult:
        """Return whether ``wallet`` currently holds any confirmed edition of the post."""
        mints = self._confirmed_mints(post_id)
        if not mints:
            logger.debug("No confirmed mints for post %s", post_id)
            return OwnershipResult(is_owner=False)

        for mint in mints:
            asset = await self._get_asset(mint)
            if asset is None:
                continue
            ownership = asset.get("ownership") or {}
            if asset.get("burnt"):
                continue
            if ownership.get("owner") == wallet:
                return OwnershipResult(is_owner=True, proof_mint=mint)
        return OwnershipResult(is_owner=False)

    async def is_resource_creator(self, wallet: str, post_id: str) -> bool:
        """Return whether ``wallet`` created the post."""
        creator = self._db.execute(
            select(Post.creator_wallet).where(Post.id == post_id)
        ).scalar_one_or_none()
        return creator is not None and creator == wallet
