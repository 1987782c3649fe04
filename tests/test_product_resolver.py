from services.order_service.models import OrderItem
from services.order_service.product_resolver import (
    CachingProductResolver,
    resolve_item_seller,
    verify_item_seller,
)


async def test_successful_lookups_are_cached(inventory):
    inventory.add_product("p-1", seller_id="seller-1")
    resolver = CachingProductResolver(inventory)

    first = await resolver.resolve("p-1")
    second = await resolver.resolve("p-1")

    assert first is second
    assert inventory.detail_calls == ["p-1"]


async def test_failures_are_not_cached(inventory):
    resolver = CachingProductResolver(inventory)

    assert await resolver.resolve("p-1") is None
    inventory.add_product("p-1")
    assert (await resolver.resolve("p-1")).product_id == "p-1"
    assert inventory.detail_calls == ["p-1", "p-1"]


async def test_captured_seller_skips_lookup(inventory):
    resolver = CachingProductResolver(inventory)
    item = OrderItem(product_id="p-1", quantity=1, seller_id="seller-1")

    assert await resolve_item_seller(item, resolver) == "seller-1"
    assert inventory.detail_calls == []


async def test_verification_prefers_catalog(inventory):
    inventory.add_product("p-1", seller_id="seller-2")
    resolver = CachingProductResolver(inventory)

    moved = OrderItem(product_id="p-1", quantity=1, seller_id="seller-1")
    delisted = OrderItem(product_id="p-gone", quantity=1, seller_id="seller-1")

    assert await verify_item_seller(moved, resolver) == "seller-2"
    assert await verify_item_seller(delisted, resolver) == "seller-1"
