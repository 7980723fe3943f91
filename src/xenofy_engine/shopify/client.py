"""Async client for the Shopify Admin REST API.

Wraps the handful of read-only resources the ingestion pipeline needs. List
calls follow the ``Link: <...>; rel="next"`` cursor until exhausted and return
the concatenated records.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from xenofy_engine.common.exceptions import (
    UnsupportedResourceError,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2023-10"
DEFAULT_PAGE_SIZE = 250
MIN_CREDENTIAL_LENGTH = 20
MAX_THROTTLE_RETRIES = 3


def shop_name_from_domain(domain: str) -> str:
    """``mystore.myshopify.com`` -> ``mystore``."""
    name = domain.strip().lower()
    for prefix in ("https://", "http://"):
        if name.startswith(prefix):
            name = name[len(prefix):]
    name = name.split("/", 1)[0].split(".", 1)[0]
    if not name:
        raise ValidationError("Shop domain is required")
    return name


class ShopifyClient:
    """Credentialed client bound to a single shop."""

    def __init__(
        self,
        shop_domain: str,
        access_token: Optional[str],
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = 30.0,
        page_size: int = DEFAULT_PAGE_SIZE,
        min_credential_length: int = MIN_CREDENTIAL_LENGTH,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        token = (access_token or "").strip()
        if not token:
            raise ValidationError("Shopify access token is required")
        if len(token) < min_credential_length:
            raise ValidationError(
                f"Shopify access token is too short (minimum {min_credential_length} characters)"
            )

        self.shop_name = shop_name_from_domain(shop_domain)
        self.api_version = api_version
        self.page_size = page_size
        self.base_url = f"https://{self.shop_name}.myshopify.com/admin/api/{api_version}"
        self._access_token = token
        self._timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    def _get_http_client(self) -> httpx.AsyncClient:
        """Lazy-init httpx.AsyncClient."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "X-Shopify-Access-Token": self._access_token,
                    "Accept": "application/json",
                },
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "ShopifyClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Transport ──

    async def _request(self, url: str, params: Optional[dict] = None) -> httpx.Response:
        client = self._get_http_client()
        for attempt in range(MAX_THROTTLE_RETRIES + 1):
            try:
                response = await client.get(url, params=params)
            except httpx.RequestError as e:
                raise UpstreamError(f"Failed to reach Shopify: {e}") from e

            if response.status_code == 429 and attempt < MAX_THROTTLE_RETRIES:
                retry_after = float(response.headers.get("Retry-After", 2))
                logger.warning(
                    "Shopify throttled %s, retrying in %.1fs (attempt %d/%d)",
                    url, retry_after, attempt + 1, MAX_THROTTLE_RETRIES,
                )
                await asyncio.sleep(retry_after)
                continue
            break

        if response.status_code >= 400:
            message = _error_message(response)
            raise UpstreamError(
                f"Shopify returned {response.status_code}: {message}",
                http_status=response.status_code,
            )
        return response

    async def _get(self, resource: str, params: Optional[dict] = None) -> dict[str, Any]:
        response = await self._request(f"/{resource}.json", params=params)
        return response.json()

    async def _list(
        self, resource: str, key: str, params: Optional[dict] = None
    ) -> list[dict[str, Any]]:
        """Fetch every page of a list resource."""
        query = {"limit": self.page_size}
        query.update(params or {})
        url: str = f"/{resource}.json"
        records: list[dict[str, Any]] = []

        while True:
            response = await self._request(url, params=query)
            records.extend(response.json().get(key, []))
            next_link = response.links.get("next", {}).get("url")
            if not next_link:
                break
            # The cursor URL already carries limit and page_info.
            url, query = next_link, None
        return records

    # ── Resources ──

    async def get_shop(self) -> dict[str, Any]:
        data = await self._get("shop")
        return data.get("shop", {})

    async def list_customers(self) -> list[dict[str, Any]]:
        return await self._list("customers", "customers")

    async def list_products(self) -> list[dict[str, Any]]:
        return await self._list("products", "products")

    async def list_orders(self) -> list[dict[str, Any]]:
        return await self._list("orders", "orders", {"status": "any"})

    async def list_locations(self) -> list[dict[str, Any]]:
        return await self._list("locations", "locations")

    async def list_inventory_levels(self) -> list[dict[str, Any]]:
        locations = await self.list_locations()
        if not locations:
            return []
        location_ids = ",".join(str(loc["id"]) for loc in locations)
        return await self._list(
            "inventory_levels", "inventory_levels", {"location_ids": location_ids}
        )

    async def list_abandoned_checkouts(self) -> list[dict[str, Any]]:
        return await self._list("checkouts", "checkouts")

    async def list_events(self) -> list[dict[str, Any]]:
        return await self._list("events", "events")

    async def list_reports(self) -> list[dict[str, Any]]:
        """Analytics reports; many plans and scopes do not expose them."""
        try:
            return await self._list("reports", "reports")
        except UpstreamError as e:
            if e.http_status in (403, 404):
                raise UnsupportedResourceError(
                    "Shopify analytics reports are not available for this store",
                    http_status=e.http_status,
                ) from e
            raise


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    errors = body.get("errors") if isinstance(body, dict) else None
    if isinstance(errors, dict):
        return "; ".join(f"{k}: {v}" for k, v in errors.items())
    if errors:
        return str(errors)
    return response.reason_phrase


def make_client_factory(settings):
    """Return a ``(shop_domain, access_token) -> ShopifyClient`` callable bound to settings."""

    def factory(shop_domain: str, access_token: Optional[str]) -> ShopifyClient:
        return ShopifyClient(
            shop_domain,
            access_token,
            api_version=settings.shopify_api_version,
            timeout=settings.shopify_timeout,
            page_size=settings.shopify_page_size,
            min_credential_length=settings.min_credential_length,
        )

    return factory
