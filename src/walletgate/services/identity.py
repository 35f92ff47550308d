"""Identity-provider client used when provisioning wallet sign-in accounts.

The provider (Privy) owns user identities and can create a custodial
"embedded" Solana wallet for each user. Every call here is best-effort from
the sign-in flow's point of view: failures raise
:class:`IdentityProviderError` and callers degrade to a locally synthesized
identity rather than blocking login.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from walletgate.core.settings import settings
from walletgate.services.errors import IdentityProviderError
from walletgate.services.resilience import CircuitBreaker

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_CREATED = 201
HTTP_NOT_FOUND = 404


@dataclass(frozen=True)
class ProviderUser:
    """User record as known by the identity provider."""

    id: str
    embedded_wallet_address: str | None = None


class IdentityProvider(Protocol):
    """User directory consulted during wallet sign-in."""

    async def find_user_by_wallet(self, address: str) -> ProviderUser | None: ...

    async def import_user(
        self, linked_wallet: str, *, create_embedded_wallet: bool = True
    ) -> ProviderUser: ...


def extract_embedded_solana_wallet(linked_accounts: list[dict[str, Any]]) -> str | None:
    """Return the provider-managed Solana wallet among a user's linked accounts."""
    for account in linked_accounts:
        if (
            account.get("type") == "wallet"
            and account.get("wallet_client_type") == "privy"
            and account.get("chain_type") == "solana"
            and account.get("address")
        ):
            return str(account["address"])
    return None


def _response_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise IdentityProviderError("Identity provider returned invalid JSON") from exc


def _to_provider_user(payload: Any) -> ProviderUser:
    if not isinstance(payload, dict) or not payload.get("id"):
        raise IdentityProviderError("Identity provider returned an unexpected user payload")
    linked = payload.get("linked_accounts") or []
    if not isinstance(linked, list):
        raise IdentityProviderError("Identity provider returned malformed linked accounts")
    return ProviderUser(
        id=str(payload["id"]),
        embedded_wallet_address=extract_embedded_solana_wallet(
            [item for item in linked if isinstance(item, dict)]
        ),
    )


@dataclass(frozen=True)
class PrivyConfig:
    """Immutable configuration for the Privy server API."""

    app_id: str | None
    app_secret: str | None
    api_url: str
    timeout_seconds: float

    @property
    def enabled(self) -> bool:
        return bool(self.app_id and self.app_secret)


def load_privy_config() -> PrivyConfig:
    """Build configuration object from global settings."""
    return PrivyConfig(
        app_id=settings.privy_app_id,
        app_secret=settings.privy_app_secret,
        api_url=settings.privy_api_url.rstrip("/"),
        timeout_seconds=float(settings.identity_timeout_seconds),
    )


class PrivyClient:
    """HTTP client wrapper for the Privy server API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: PrivyConfig | None = None,
        circuit_breaker: CircuitBreaker | None = None,
    ) -> None:
        self._client = client
        self.config = config or load_privy_config()
        self._circuit_breaker = circuit_breaker or CircuitBreaker(name="privy")

    async def _request(self, method: str, path: str, json_data: Any) -> httpx.Response:
        if not self.config.enabled:
            raise IdentityProviderError("Identity provider is not configured")
        if not self._circuit_breaker.allow_request():
            raise IdentityProviderError("Identity provider circuit breaker is open")

        try:
            response = await self._client.request(
                method,
                f"{self.config.api_url}{path}",
                json=json_data,
                auth=(self.config.app_id or "", self.config.app_secret or ""),
                headers={"privy-app-id": self.config.app_id or ""},
                timeout=self.config.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            self._circuit_breaker.record_failure()
            raise IdentityProviderError(f"Identity provider request failed: {exc}") from exc

        if response.status_code >= httpx.codes.INTERNAL_SERVER_ERROR:
            self._circuit_breaker.record_failure()
        else:
            self._circuit_breaker.record_success()
        return response

    async def find_user_by_wallet(self, address: str) -> ProviderUser | None:
        """Return the provider user linked to ``address``, if any."""
        response = await self._request("POST", "/users/wallet/address", {"address": address})
        if response.status_code == HTTP_NOT_FOUND:
            return None
        if response.status_code != HTTP_OK:
            raise IdentityProviderError(
                f"Unexpected identity provider response ({response.status_code}) for user lookup"
            )
        return _to_provider_user(_response_json(response))

    async def import_user(
        self, linked_wallet: str, *, create_embedded_wallet: bool = True
    ) -> ProviderUser:
        """Create a provider user with ``linked_wallet`` attached."""
        response = await self._request(
            "POST",
            "/users",
            {
                "linked_accounts": [
                    {"type": "wallet", "address": linked_wallet, "chain_type": "solana"},
                ],
                "create_solana_wallet": create_embedded_wallet,
                "create_ethereum_wallet": False,
                "create_ethereum_smart_wallet": False,
            },
        )
        if response.status_code not in (HTTP_OK, HTTP_CREATED):
            raise IdentityProviderError(
                f"Unexpected identity provider response ({response.status_code}) for user import"
            )
        user = _to_provider_user(_response_json(response))
        logger.info(
            "Imported provider user %s for wallet %s...", user.id, linked_wallet[:8]
        )
        return user
