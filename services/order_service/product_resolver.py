"""
Product detail lookups for ownership and pricing resolution.

Historical order items may lack a captured seller id. The seller view and the
statistics resolve those through a ProductDetailResolver. The default
implementation caches every successful lookup for the lifetime of the
process (no eviction, no TTL), so catalog changes to ownership or price are
not observed until restart. Concurrent misses for the same product may fetch
twice; the last write wins.
"""
from abc import ABC, abstractmethod

import structlog

from shared.observability import ecomm_product_cache_total
from .clients import InventoryClient, ProductDetail
from .exceptions import CollaboratorError
from .models import OrderItem

logger = structlog.get_logger(__name__)


class ProductDetailResolver(ABC):
    @abstractmethod
    async def resolve(self, product_id: str) -> ProductDetail | None:
        """Returns the product detail, or None when it cannot be resolved."""


class CachingProductResolver(ProductDetailResolver):
    def __init__(self, inventory: InventoryClient):
        self._inventory = inventory
        self._cache: dict[str, ProductDetail] = {}

    async def resolve(self, product_id: str) -> ProductDetail | None:
        cached = self._cache.get(product_id)
        if cached is not None:
            ecomm_product_cache_total.labels(result="hit").inc()
            return cached

        try:
            detail = await self._inventory.get_product_detail(product_id)
        except CollaboratorError as e:
            # Failures are not cached; the next request retries the lookup
            ecomm_product_cache_total.labels(result="error").inc()
            logger.warning("product_detail_unresolved", product_id=product_id, error=e.message)
            return None

        ecomm_product_cache_total.labels(result="miss").inc()
        self._cache[product_id] = detail
        return detail


async def resolve_item_seller(item: OrderItem, resolver: ProductDetailResolver) -> str | None:
    """Captured seller id first; the catalog only for items that lack one."""
    if item.seller_id:
        return item.seller_id
    detail = await resolver.resolve(item.product_id)
    return detail.seller_id if detail else None


async def verify_item_seller(item: OrderItem, resolver: ProductDetailResolver) -> str | None:
    """Catalog first (source of truth), captured seller id as fallback."""
    detail = await resolver.resolve(item.product_id)
    if detail is not None and detail.seller_id:
        return detail.seller_id
    return item.seller_id or None
