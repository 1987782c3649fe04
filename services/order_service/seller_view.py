"""
Seller-scoped projection of orders.

A seller only ever sees the line items they own. Ownership comes from the
captured seller id, or from the product catalog (through the resolver) for
legacy items that lack one. Items whose owner cannot be resolved belong to
nobody, so they are excluded from every seller's view.
"""
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from .clients import MediaClient
from .exceptions import AccessDeniedError, NotFoundError
from .models import Order, OrderItem, OrderStatus
from .product_resolver import ProductDetailResolver, resolve_item_seller
from .repository import OrderRepository
from .search import OrderSearchCriteria, Page, paginate, validate_paging

logger = structlog.get_logger(__name__)


@dataclass
class SellerOrderView:
    id: str
    user_id: str
    status: OrderStatus
    order_date: datetime
    created_at: datetime
    updated_at: datetime
    items: list[OrderItem] = field(default_factory=list)
    image_url: str | None = None

    @property
    def subtotal(self) -> float:
        return sum(item.subtotal for item in self.items)


class SellerOrderService:
    def __init__(self, resolver: ProductDetailResolver, media: MediaClient | None = None):
        self.resolver = resolver
        self.media = media

    async def project(self, order: Order, seller_id: str) -> SellerOrderView | None:
        """The order restricted to seller_id's items, or None if the seller owns none."""
        owned = []
        for item in order.items:
            if await resolve_item_seller(item, self.resolver) == seller_id:
                owned.append(item)
        if not owned:
            return None
        return SellerOrderView(
            id=order.id,
            user_id=order.user_id,
            status=order.status,
            order_date=order.order_date,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=owned,
        )

    async def search_seller_orders(
        self,
        db: AsyncSession,
        seller_id: str,
        criteria: OrderSearchCriteria,
        page: int,
        size: int,
    ) -> Page[SellerOrderView]:
        validate_paging(page, size)
        candidates = await OrderRepository.search_seller_candidates(db, criteria)

        views = []
        for order in candidates:
            view = await self.project(order, seller_id)
            # Price bounds apply to the seller's subtotal, never the order total
            if view is not None and criteria.matches_price(view.subtotal):
                views.append(view)

        result = paginate(views, page, size)
        await self._attach_images(result.content)
        logger.info(
            "seller_orders_searched",
            seller_id=seller_id,
            candidates=len(candidates),
            matched=result.total_elements,
        )
        return result

    async def get_seller_orders(
        self, db: AsyncSession, seller_id: str, page: int, size: int
    ) -> Page[SellerOrderView]:
        return await self.search_seller_orders(db, seller_id, OrderSearchCriteria(), page, size)

    async def get_seller_order_detail(self, db: AsyncSession, order_id: str, seller_id: str) -> SellerOrderView:
        order = await OrderRepository.get_order(db, order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", code="order_not_found")

        view = await self.project(order, seller_id)
        if view is None:
            raise AccessDeniedError(
                f"Seller {seller_id} has no items in order {order_id}", code="not_order_seller"
            )
        await self._attach_images([view])
        return view

    async def _attach_images(self, views: list[SellerOrderView]) -> None:
        if self.media is None:
            return
        for view in views:
            if view.items:
                view.image_url = await self.media.get_first_image_url(view.items[0].product_id)
