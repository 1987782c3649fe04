from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from .models import OrderItem, OrderStatus
from .product_resolver import ProductDetailResolver, verify_item_seller
from .repository import OrderRepository

logger = structlog.get_logger(__name__)

UNKNOWN_PRODUCT = "Unknown Product"


@dataclass
class BuyerStats:
    total_orders: int = 0
    total_spent: float = 0.0
    last_order_date: datetime | None = None
    most_purchased_product_id: str | None = None
    most_purchased_product_name: str | None = None
    most_purchased_product_count: int = 0
    total_quantity_bought: int = 0


@dataclass
class SellerStats:
    total_revenue: float = 0.0
    total_items_sold: int = 0
    total_delivered_orders: int = 0
    total_cancelled_orders: int = 0
    total_unique_customers: int = 0
    last_delivered_date: datetime | None = None
    delivery_rating: float = 0.0
    cancellation_rate: float = 0.0


def _later(current: datetime | None, candidate: datetime | None) -> datetime | None:
    if candidate is None:
        return current
    if current is None or candidate > current:
        return candidate
    return current


class OrderStatsService:
    """Single-pass reducers over the order store for buyer and seller dashboards."""

    def __init__(self, resolver: ProductDetailResolver):
        self.resolver = resolver

    async def _item_price(self, item: OrderItem) -> float:
        if item.price is not None:
            return item.price
        detail = await self.resolver.resolve(item.product_id)
        return detail.price if detail and detail.price is not None else 0.0

    async def _item_name(self, item: OrderItem) -> str:
        if item.product_name:
            return item.product_name
        detail = await self.resolver.resolve(item.product_id)
        return detail.name if detail and detail.name else UNKNOWN_PRODUCT

    async def buyer_stats(self, db: AsyncSession, user_id: str) -> BuyerStats:
        orders = await OrderRepository.list_by_user_and_status(db, user_id, OrderStatus.DELIVERED)
        stats = BuyerStats()
        if not orders:
            return stats

        quantities: dict[str, int] = {}
        names: dict[str, str] = {}
        for order in orders:
            stats.total_orders += 1
            stats.last_order_date = _later(stats.last_order_date, order.order_date)
            for item in order.items:
                stats.total_spent += await self._item_price(item) * item.quantity
                stats.total_quantity_bought += item.quantity
                count = quantities.get(item.product_id, 0) + item.quantity
                quantities[item.product_id] = count
                if item.product_id not in names:
                    names[item.product_id] = await self._item_name(item)
                # Strictly greater: the first product to reach the maximum keeps it
                if count > stats.most_purchased_product_count:
                    stats.most_purchased_product_id = item.product_id
                    stats.most_purchased_product_count = count

        if stats.most_purchased_product_id is not None:
            stats.most_purchased_product_name = names[stats.most_purchased_product_id]
        stats.total_spent = round(stats.total_spent, 2)
        return stats

    async def seller_stats(self, db: AsyncSession, seller_id: str) -> SellerStats:
        orders = await OrderRepository.list_all(db)
        stats = SellerStats()
        delivered: set[str] = set()
        cancelled: set[str] = set()
        customers: set[str] = set()

        for order in orders:
            if order.status not in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
                continue
            owned = [item for item in order.items if await verify_item_seller(item, self.resolver) == seller_id]
            if not owned:
                continue

            if order.status == OrderStatus.CANCELLED:
                cancelled.add(order.id)
                continue

            delivered.add(order.id)
            customers.add(order.user_id)
            stats.last_delivered_date = _later(stats.last_delivered_date, order.order_date)
            for item in owned:
                stats.total_revenue += await self._item_price(item) * item.quantity
                stats.total_items_sold += item.quantity

        finished = len(delivered) + len(cancelled)
        if finished == 0:
            return SellerStats()

        stats.total_delivered_orders = len(delivered)
        stats.total_cancelled_orders = len(cancelled)
        stats.total_unique_customers = len(customers)
        stats.total_revenue = round(stats.total_revenue, 2)
        stats.delivery_rating = max(1.0, 5.0 * len(delivered) / finished)
        stats.cancellation_rate = len(cancelled) * 100 / finished
        logger.info("seller_stats_computed", seller_id=seller_id, orders=finished)
        return stats
