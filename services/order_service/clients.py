"""
HTTP clients for the sibling services the order service depends on.

The inventory client is fail-fast: no retries, every transport or status
error surfaces as CollaboratorError and the caller decides on compensation.
The media client is display-only and never raises.
"""
from typing import Iterable

import httpx
import structlog
from pydantic import AliasChoices, BaseModel, Field

from shared.config import settings
from shared.security import internal_headers
from .exceptions import CollaboratorError
from .models import OrderItem

logger = structlog.get_logger(__name__)


class ProductDetail(BaseModel):
    product_id: str = Field(validation_alias=AliasChoices("productId", "product_id", "id"))
    name: str | None = None
    price: float | None = None
    quantity: int | None = None # units currently in stock
    seller_id: str | None = Field(default=None, validation_alias=AliasChoices("sellerId", "sellerID", "seller_id"))

    class Config:
        populate_by_name = True


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body.get("error") or body)
    return str(body)


def _stock_payload(items: Iterable[OrderItem]) -> list[dict]:
    return [{"productId": item.product_id, "quantity": item.quantity} for item in items]


class InventoryClient:
    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(
            base_url=settings.PRODUCT_URL,
            headers=internal_headers(),
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    async def aclose(self):
        await self._client.aclose()

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("product_service_unreachable", method=method, url=url, error=str(e))
            raise CollaboratorError("Product service is unavailable", code="product_service_unavailable") from e

        if resp.is_error:
            detail = _error_message(resp)
            logger.warning("product_service_error", method=method, url=url, status=resp.status_code, detail=detail)
            raise CollaboratorError(detail, code="product_service_error")
        return resp

    async def decrease_stock(self, items: Iterable[OrderItem]) -> None:
        """Batched and all-or-nothing: an error means nothing was adjusted."""
        payload = _stock_payload(items)
        if not payload:
            return
        await self._send("POST", "/adjust-stock", json=payload)

    async def increase_stock(self, items: Iterable[OrderItem]) -> None:
        payload = _stock_payload(items)
        if not payload:
            return
        await self._send("POST", "/restock", json=payload)

    async def get_product_detail(self, product_id: str) -> ProductDetail:
        resp = await self._send("GET", f"/simple/{product_id}")
        try:
            return ProductDetail.model_validate(resp.json())
        except ValueError as e:
            raise CollaboratorError(
                f"Malformed product detail for {product_id}", code="product_service_error"
            ) from e


class MediaClient:
    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(
            base_url=settings.MEDIA_URL,
            headers=internal_headers(),
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    async def aclose(self):
        await self._client.aclose()

    async def get_first_image_url(self, product_id: str, limit: int = 1) -> str | None:
        # Images are optional: log and fall back to None on any failure
        try:
            resp = await self._client.get(f"/product/{product_id}/urls", params={"limit": limit})
            resp.raise_for_status()
            urls = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("media_lookup_failed", product_id=product_id, error=str(e))
            return None

        if isinstance(urls, list) and urls:
            return urls[0]
        return None
