import pytest

from services.order_service.exceptions import (
    CollaboratorError,
    NotFoundError,
    StateConflictError,
)
from services.order_service.models import OrderStatus
from services.order_service.schemas import (
    OrderCreate,
    OrderItemCreate,
    OrderItemUpdate,
    PaymentEvent,
)

SHIPPED_ITEMS = [{"product_id": "p-1", "product_name": "Mug", "quantity": 2, "price": 8.0, "seller_id": "seller-1"}]


async def test_create_order_merges_duplicate_products(db, service):
    order = await service.create_order(
        db,
        OrderCreate(
            user_id="user-1",
            items=[
                OrderItemCreate(product_id="p-1", quantity=1, price=3.0),
                OrderItemCreate(product_id="p-1", quantity=2, price=3.0),
            ],
        ),
    )

    assert order.status == OrderStatus.PENDING
    assert len(order.items) == 1
    assert order.items[0].quantity == 3
    assert order.total_price == 9.0


async def test_get_unknown_order(db, service):
    with pytest.raises(NotFoundError) as exc:
        await service.get_order(db, "missing")
    assert exc.value.code == "order_not_found"


async def test_add_item_enriches_from_catalog(db, service, inventory, make_order):
    inventory.add_product("p-7", name="Kettle", price=30.0, seller_id="seller-9")
    cart = await make_order()

    order = await service.add_item(db, cart.id, OrderItemCreate(product_id="p-7", quantity=2))

    item = order.items[0]
    assert (item.product_name, item.price, item.seller_id) == ("Kettle", 30.0, "seller-9")


async def test_add_item_falls_back_when_lookup_fails(db, service, make_order):
    cart = await make_order()

    order = await service.add_item(db, cart.id, OrderItemCreate(product_id="ghost", quantity=1))

    item = order.items[0]
    assert item.price == 0.0
    assert item.product_name == "Unknown Product"
    assert item.seller_id is None


async def test_add_item_merges_existing_line(db, service, inventory, make_order):
    cart = await make_order(items=[{"product_id": "p-1", "quantity": 2, "price": 8.0, "product_name": "Mug", "seller_id": "s"}])

    order = await service.add_item(
        db, cart.id, OrderItemCreate(product_id="p-1", quantity=3, price=8.0, product_name="Mug", seller_id="s")
    )

    assert [(i.product_id, i.quantity) for i in order.items] == [("p-1", 5)]
    assert inventory.detail_calls == []


async def test_add_item_to_removed_order(db, service, make_order):
    order = await make_order(status=OrderStatus.DELIVERED, is_removed=True)

    with pytest.raises(StateConflictError) as exc:
        await service.add_item(db, order.id, OrderItemCreate(product_id="p-1", quantity=1, price=1.0))
    assert exc.value.code == "order_removed"


async def test_update_and_remove_unknown_item(db, service, make_order):
    cart = await make_order(items=SHIPPED_ITEMS)

    with pytest.raises(NotFoundError) as exc:
        await service.update_item(db, cart.id, "p-404", OrderItemUpdate(quantity=1))
    assert exc.value.code == "item_not_found"

    with pytest.raises(NotFoundError):
        await service.remove_item(db, cart.id, "p-404")


async def test_update_remove_and_clear_items(db, service, make_order):
    cart = await make_order(items=SHIPPED_ITEMS + [{"product_id": "p-2", "quantity": 1, "price": 4.0}])

    order = await service.update_item(db, cart.id, "p-1", OrderItemUpdate(quantity=5))
    assert order.items[0].quantity == 5

    order = await service.remove_item(db, cart.id, "p-2")
    assert [i.product_id for i in order.items] == ["p-1"]

    order = await service.clear_items(db, cart.id)
    assert order.items == []


async def test_items_frozen_after_checkout(db, service, make_order):
    order = await make_order(status=OrderStatus.SHIPPING, items=SHIPPED_ITEMS)

    with pytest.raises(StateConflictError) as exc:
        await service.update_item(db, order.id, "p-1", OrderItemUpdate(quantity=9))
    assert exc.value.code == "order_not_pending"


async def test_cancel_pending_order_skips_inventory(db, service, inventory, make_order):
    cart = await make_order(items=SHIPPED_ITEMS)

    order = await service.cancel_order(db, cart.id)

    assert order.status == OrderStatus.CANCELLED
    assert inventory.increase_calls == []


async def test_cancel_shipping_order_restores_stock(db, service, inventory, make_order):
    order = await make_order(status=OrderStatus.SHIPPING, items=SHIPPED_ITEMS)

    order = await service.cancel_order(db, order.id)

    assert order.status == OrderStatus.CANCELLED
    assert inventory.increase_calls == [[("p-1", 2)]]


async def test_cancel_keeps_order_when_restock_fails(db, service, inventory, make_order):
    order = await make_order(status=OrderStatus.SHIPPED, items=SHIPPED_ITEMS)
    inventory.fail_increase = True

    with pytest.raises(CollaboratorError) as exc:
        await service.cancel_order(db, order.id)

    assert exc.value.code == "stock_restore_failed"
    await db.refresh(order)
    assert order.status == OrderStatus.SHIPPED


@pytest.mark.parametrize("status", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
async def test_terminal_orders_cannot_be_cancelled(db, service, make_order, status):
    order = await make_order(status=status, items=SHIPPED_ITEMS)

    with pytest.raises(StateConflictError) as exc:
        await service.cancel_order(db, order.id)
    assert exc.value.code == "order_not_cancellable"


async def test_remove_order_soft_deletes(db, service, make_order):
    order = await make_order(status=OrderStatus.DELIVERED, items=SHIPPED_ITEMS)

    removed = await service.remove_order(db, order.id)

    assert removed.is_removed is True
    page = await service.get_orders_by_user(db, "user-1", 0, 10)
    assert page.total_elements == 0


async def test_remove_active_order_is_rejected(db, service, make_order):
    order = await make_order(status=OrderStatus.SHIPPING, items=SHIPPED_ITEMS)

    with pytest.raises(StateConflictError) as exc:
        await service.remove_order(db, order.id)
    assert exc.value.code == "order_not_removable"


async def test_update_status_follows_transition_graph(db, service, make_order):
    order = await make_order(status=OrderStatus.SHIPPING, items=SHIPPED_ITEMS)

    order = await service.update_status(db, order.id, OrderStatus.SHIPPED)
    assert order.status == OrderStatus.SHIPPED

    with pytest.raises(StateConflictError) as exc:
        await service.update_status(db, order.id, OrderStatus.PENDING)
    assert exc.value.code == "illegal_transition"


async def test_update_status_to_cancelled_restores_stock(db, service, inventory, make_order):
    order = await make_order(status=OrderStatus.SHIPPING, items=SHIPPED_ITEMS)

    order = await service.update_status(db, order.id, OrderStatus.CANCELLED)

    assert order.status == OrderStatus.CANCELLED
    assert len(inventory.increase_calls) == 1


async def test_payment_success_moves_pending_to_processing(db, service, make_order):
    cart = await make_order(items=SHIPPED_ITEMS)

    order = await service.handle_payment_event(db, PaymentEvent(order_id=cart.id, status="SUCCESS"))

    assert order.status == OrderStatus.PROCESSING


async def test_payment_failure_and_unknown_order_are_ignored(db, service, make_order):
    cart = await make_order(items=SHIPPED_ITEMS)

    order = await service.handle_payment_event(db, PaymentEvent(order_id=cart.id, status="FAILED"))
    assert order.status == OrderStatus.PENDING

    assert await service.handle_payment_event(db, PaymentEvent(order_id="nope", status="SUCCESS")) is None


async def test_orders_by_user_paged_most_recent_first(db, service, make_order):
    first = await make_order(status=OrderStatus.DELIVERED, items=SHIPPED_ITEMS)
    second = await make_order(status=OrderStatus.DELIVERED, items=SHIPPED_ITEMS)
    await make_order(user_id="someone-else")
    await service.remove_order(db, first.id)
    await service.remove_order(db, second.id)
    third = await make_order(items=SHIPPED_ITEMS)
    fourth = await make_order(items=SHIPPED_ITEMS)

    page = await service.get_orders_by_user(db, "user-1", 0, 1)

    assert page.total_elements == 2
    assert page.total_pages == 2
    assert [o.id for o in page.content] == [fourth.id]

    page = await service.get_orders_by_user(db, "user-1", 1, 1)
    assert [o.id for o in page.content] == [third.id]


@pytest.mark.parametrize("status", [OrderStatus.PENDING, OrderStatus.PROCESSING])
async def test_update_status_cannot_bypass_checkout(db, service, inventory, scheduler, make_order, status):
    order = await make_order(status=status, items=[{"product_id": "p-1", "quantity": 3, "price": 2.0}])

    with pytest.raises(StateConflictError) as exc:
        await service.update_status(db, order.id, OrderStatus.SHIPPING)
    assert exc.value.code == "illegal_transition"

    await db.refresh(order)
    assert order.status == status
    assert scheduler.scheduled_task(order.id) is None

    # Cancelling afterwards must not return stock that was never taken
    await service.cancel_order(db, order.id)
    assert inventory.decrease_calls == []
    assert inventory.increase_calls == []
