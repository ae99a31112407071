from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

import httpx


class DownstreamError(Exception):
    """
    Raised when catalog or authorization cannot be reached or answers with
    something unusable.
    """
    pass


@dataclass
class ProductInfo:
    id: str
    name: str
    price: float

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ProductInfo":
        try:
            return cls(id=str(data["id"]), name=str(data["name"]), price=float(data["price"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise DownstreamError(f"Malformed product payload: {data!r}") from exc


class DownstreamClients:
    """
    Thin async wrappers around the catalog + authorization endpoints.

    The shared httpx client is expected to be instrumented by the caller, so
    each call is a client span carrying the inbound trace context.
    """

    def __init__(self, client: httpx.AsyncClient, catalog_url: str, authorization_url: str):
        self._client = client
        self.catalog_url = catalog_url.rstrip("/")
        self.authorization_url = authorization_url.rstrip("/")

    async def get_product(self, product_id: str) -> ProductInfo:
        url = f"{self.catalog_url}/get_product"
        try:
            resp = await self._client.get(url, params={"product_id": product_id})
        except httpx.HTTPError as exc:
            raise DownstreamError(f"Catalog unreachable: {exc}") from exc

        if resp.status_code >= 400:
            raise DownstreamError(f"Catalog HTTP {resp.status_code}: {resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise DownstreamError(f"Invalid JSON from catalog: {exc}") from exc

        return ProductInfo.from_json(data)

    async def authorize(self, payment_token: str, amount: float) -> bool:
        """
        True only for HTTP 200. Token and amount are not forwarded: the
        authorization endpoint takes no input.
        """
        url = f"{self.authorization_url}/authorize"
        try:
            resp = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise DownstreamError(f"Authorization unreachable: {exc}") from exc

        return resp.status_code == 200
