"""
Legal status transitions and the invariants of the Order aggregate.

A PENDING order doubles as the user's cart: its items may change freely.
Once it leaves PENDING the line items are a frozen snapshot (price, seller,
quantity) used for statistics and redisplay.

    PENDING -> PROCESSING -> SHIPPING -> SHIPPED -> DELIVERED
       |                        |                     ^
       +-------(checkout)-------+---------------------+
    any non-terminal state -> CANCELLED
"""
from .exceptions import StateConflictError
from .models import Order, OrderItem, OrderStatus

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.SHIPPING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPING, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPING: frozenset({OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Stock for these orders has already been decremented by checkout
STOCK_RESERVED_STATUSES = frozenset({OrderStatus.SHIPPING, OrderStatus.SHIPPED})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS[current]


def ensure_transition(order: Order, target: OrderStatus) -> None:
    if not can_transition(order.status, target):
        raise StateConflictError(
            f"Cannot move order from {order.status.value} to {target.value}",
            code="illegal_transition",
        )


def ensure_not_removed(order: Order) -> None:
    if order.is_removed:
        raise StateConflictError("Order has been removed", code="order_removed")


def ensure_mutable(order: Order) -> None:
    """Item mutations are only legal while the order is still a cart."""
    ensure_not_removed(order)
    if order.status != OrderStatus.PENDING:
        raise StateConflictError(
            f"Cannot modify order in status: {order.status.value}",
            code="order_not_pending",
        )


def ensure_checkout_allowed(order: Order) -> None:
    ensure_not_removed(order)
    if order.status != OrderStatus.PENDING:
        raise StateConflictError("Only pending orders can be checked out", code="order_not_pending")
    if not order.items:
        raise StateConflictError("Cannot checkout an empty order", code="empty_cart")


def ensure_cancellable(order: Order) -> None:
    ensure_not_removed(order)
    if order.status in TERMINAL_STATUSES:
        raise StateConflictError(
            f"Order cannot be cancelled in status: {order.status.value}",
            code="order_not_cancellable",
        )


def ensure_removable(order: Order) -> None:
    if order.status not in TERMINAL_STATUSES:
        raise StateConflictError(
            f"Order can only be removed when DELIVERED or CANCELLED. Current status: {order.status.value}",
            code="order_not_removable",
        )


def transition(order: Order, target: OrderStatus) -> None:
    ensure_transition(order, target)
    order.status = target


# --- Cart (PENDING) item mutations ---

def find_item(order: Order, product_id: str) -> OrderItem | None:
    return next((item for item in order.items if item.product_id == product_id), None)


def merge_item(order: Order, item: OrderItem) -> OrderItem:
    """Adds the line, summing quantities when the product is already in the cart."""
    existing = find_item(order, item.product_id)
    if existing is None:
        order.items.append(item)
        return item
    existing.quantity += item.quantity
    return existing


def add_item(order: Order, item: OrderItem) -> OrderItem:
    ensure_mutable(order)
    return merge_item(order, item)


def update_item(
    order: Order,
    product_id: str,
    quantity: int,
    price: float | None = None,
    product_name: str | None = None,
) -> OrderItem | None:
    ensure_mutable(order)
    item = find_item(order, product_id)
    if item is None:
        return None
    item.quantity = quantity
    if price is not None:
        item.price = price
    if product_name is not None:
        item.product_name = product_name
    return item


def remove_item(order: Order, product_id: str) -> bool:
    ensure_mutable(order)
    item = find_item(order, product_id)
    if item is None:
        return False
    order.items.remove(item)
    return True


def clear_items(order: Order) -> None:
    ensure_mutable(order)
    del order.items[:]
