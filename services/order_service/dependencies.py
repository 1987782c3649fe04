"""Process-wide collaborators and their FastAPI providers."""
import structlog

from shared.config.database import AsyncSessionLocal
from .clients import InventoryClient, MediaClient
from .product_resolver import CachingProductResolver
from .scheduler import OrderStatusScheduler
from .seller_view import SellerOrderService
from .service import OrderService
from .stats import OrderStatsService

logger = structlog.get_logger(__name__)

inventory_client = InventoryClient()
media_client = MediaClient()
# Shared by the seller view and the stats so both warm the same cache
product_resolver = CachingProductResolver(inventory_client)
status_scheduler = OrderStatusScheduler(AsyncSessionLocal)

order_service = OrderService(inventory_client, status_scheduler)
seller_order_service = SellerOrderService(product_resolver, media_client)
order_stats_service = OrderStatsService(product_resolver)


def get_order_service() -> OrderService:
    return order_service


def get_seller_order_service() -> SellerOrderService:
    return seller_order_service


def get_order_stats_service() -> OrderStatsService:
    return order_stats_service


async def shutdown_collaborators() -> None:
    await status_scheduler.shutdown()
    await inventory_client.aclose()
    await media_client.aclose()
    logger.info("order_service_collaborators_closed")
