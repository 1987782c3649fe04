import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.observability import (
    ecomm_checkout_duration_seconds,
    ecomm_checkout_total,
    ecomm_stock_compensation_total,
)
from .clients import InventoryClient
from .exceptions import CollaboratorError, NotFoundError, StateConflictError
from .models import Order, OrderItem, OrderStatus, utcnow
from .redo import RedoOrderResult, plan_redo
from .repository import OrderRepository
from .scheduler import OrderStatusScheduler
from .schemas import CheckoutRequest, OrderCreate, OrderItemCreate, OrderItemUpdate, PaymentEvent
from .search import OrderSearchCriteria, Page, validate_paging
from . import state_machine

logger = structlog.get_logger(__name__)

UNKNOWN_PRODUCT = "Unknown Product"


def _new_cart(user_id: str, shipping_address: str = "", payment_method=None) -> Order:
    return Order(
        user_id=user_id,
        shipping_address=shipping_address or "",
        payment_method=payment_method,
        status=OrderStatus.PENDING,
        order_date=utcnow(),
        is_removed=False,
        items=[],
    )


class OrderService:
    def __init__(self, inventory: InventoryClient, scheduler: OrderStatusScheduler):
        self.inventory = inventory
        self.scheduler = scheduler

    async def get_order(self, db: AsyncSession, order_id: str) -> Order:
        order = await OrderRepository.get_order(db, order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", code="order_not_found")
        return order

    async def create_order(self, db: AsyncSession, data: OrderCreate) -> Order:
        order = _new_cart(data.user_id, data.shipping_address, data.payment_method)
        for item in data.items:
            state_machine.merge_item(order, OrderItem(**item.model_dump()))
        return await OrderRepository.save(db, order)

    async def get_orders_by_user(self, db: AsyncSession, user_id: str, page: int, size: int) -> Page[Order]:
        validate_paging(page, size)
        return await OrderRepository.list_by_user(db, user_id, page, size)

    async def search_user_orders(
        self, db: AsyncSession, user_id: str, criteria: OrderSearchCriteria, page: int, size: int
    ) -> Page[Order]:
        validate_paging(page, size)
        return await OrderRepository.search_user_orders(db, user_id, criteria, page, size)

    async def get_active_cart(self, db: AsyncSession, user_id: str) -> Order | None:
        return await OrderRepository.find_latest_pending(db, user_id)

    # --- Status changes ---

    async def update_status(self, db: AsyncSession, order_id: str, status: OrderStatus) -> Order:
        if status == OrderStatus.CANCELLED:
            return await self.cancel_order(db, order_id)

        order = await self.get_order(db, order_id)
        state_machine.ensure_not_removed(order)
        if status == OrderStatus.SHIPPING:
            # Only checkout reserves stock and schedules delivery
            raise StateConflictError(
                f"Cannot move order from {order.status.value} to SHIPPING outside checkout",
                code="illegal_transition",
            )
        state_machine.transition(order, status)
        logger.info("order_status_updated", order_id=order_id, status=status.value)
        return await OrderRepository.save(db, order)

    async def cancel_order(self, db: AsyncSession, order_id: str) -> Order:
        order = await self.get_order(db, order_id)
        state_machine.ensure_cancellable(order)

        if order.status in state_machine.STOCK_RESERVED_STATUSES:
            # Compensate the checkout reservation before committing the cancel
            try:
                await self.inventory.increase_stock(order.items)
            except CollaboratorError as e:
                ecomm_stock_compensation_total.labels(outcome="failed").inc()
                logger.error("stock_restore_failed", order_id=order_id, error=e.message)
                raise CollaboratorError(
                    "Failed to restore stock for order cancellation", code="stock_restore_failed"
                ) from e
            ecomm_stock_compensation_total.labels(outcome="success").inc()
            logger.info("stock_restored", order_id=order_id)

        state_machine.transition(order, OrderStatus.CANCELLED)
        await OrderRepository.save(db, order)
        logger.info("order_cancelled", order_id=order_id)
        return order

    async def remove_order(self, db: AsyncSession, order_id: str) -> Order:
        order = await self.get_order(db, order_id)
        state_machine.ensure_removable(order)
        order.is_removed = True
        await OrderRepository.save(db, order)
        logger.info("order_removed", order_id=order_id)
        return order

    async def handle_payment_event(self, db: AsyncSession, event: PaymentEvent) -> Order | None:
        order = await OrderRepository.get_order(db, event.order_id)
        if order is None:
            logger.warning("payment_event_unknown_order", order_id=event.order_id)
            return None

        if event.status.upper() != "SUCCESS":
            logger.warning("payment_failed", order_id=order.id, status=order.status.value)
            return order

        if order.status != OrderStatus.PENDING:
            logger.info("payment_event_ignored", order_id=order.id, status=order.status.value)
            return order

        state_machine.transition(order, OrderStatus.PROCESSING)
        logger.info("order_processing", order_id=order.id)
        return await OrderRepository.save(db, order)

    # --- Cart items ---

    async def add_item(self, db: AsyncSession, order_id: str, data: OrderItemCreate) -> Order:
        order = await self.get_order(db, order_id)
        state_machine.ensure_mutable(order)

        item = OrderItem(**data.model_dump())
        if item.price is None or item.seller_id is None or item.product_name is None:
            await self._populate_product_details(item)

        state_machine.add_item(order, item)
        logger.info("item_added", order_id=order_id, product_id=item.product_id, quantity=data.quantity)
        return await OrderRepository.save(db, order)

    async def _populate_product_details(self, item: OrderItem) -> None:
        try:
            detail = await self.inventory.get_product_detail(item.product_id)
        except CollaboratorError as e:
            logger.warning("product_details_unavailable", product_id=item.product_id, error=e.message)
            detail = None

        if detail is not None:
            if item.price is None:
                item.price = detail.price
            if item.seller_id is None:
                item.seller_id = detail.seller_id
            if item.product_name is None:
                item.product_name = detail.name

        if item.price is None:
            item.price = 0.0
        if item.product_name is None:
            item.product_name = UNKNOWN_PRODUCT

    async def update_item(
        self, db: AsyncSession, order_id: str, product_id: str, data: OrderItemUpdate
    ) -> Order:
        order = await self.get_order(db, order_id)
        updated = state_machine.update_item(
            order, product_id, data.quantity, price=data.price, product_name=data.product_name
        )
        if updated is None:
            raise NotFoundError(f"Product not found in order: {product_id}", code="item_not_found")
        return await OrderRepository.save(db, order)

    async def remove_item(self, db: AsyncSession, order_id: str, product_id: str) -> Order:
        order = await self.get_order(db, order_id)
        if not state_machine.remove_item(order, product_id):
            raise NotFoundError(f"Product not found in order: {product_id}", code="item_not_found")
        return await OrderRepository.save(db, order)

    async def clear_items(self, db: AsyncSession, order_id: str) -> Order:
        order = await self.get_order(db, order_id)
        state_machine.clear_items(order)
        return await OrderRepository.save(db, order)

    # --- Checkout ---

    async def checkout(self, db: AsyncSession, order_id: str, data: CheckoutRequest) -> Order:
        """
        Reserves stock in the product service and turns the cart into a shipment.

        validate -> decrease stock (one batched call) -> SHIPPING + persist
        -> schedule delivery -> make sure the user has a fresh cart.
        A retry against an order that already left PENDING fails validation,
        so stock is decremented at most once per order.
        """
        with ecomm_checkout_duration_seconds.time():
            order = await self.get_order(db, order_id)
            try:
                state_machine.ensure_checkout_allowed(order)
            except StateConflictError:
                ecomm_checkout_total.labels(status="rejected").inc()
                raise

            reserved = [item.copy() for item in order.items]
            try:
                await self.inventory.decrease_stock(reserved)
            except CollaboratorError as e:
                # Nothing committed yet: abort without compensation
                ecomm_checkout_total.labels(status="failed").inc()
                logger.error("checkout_stock_reservation_failed", order_id=order_id, error=e.message)
                raise CollaboratorError("Could not complete checkout", code="checkout_failed") from e

            order.shipping_address = data.shipping_address
            order.payment_method = data.payment_method
            state_machine.transition(order, OrderStatus.SHIPPING)
            order.order_date = utcnow()
            try:
                await OrderRepository.save(db, order)
            except SQLAlchemyError as e:
                await db.rollback()
                ecomm_checkout_total.labels(status="failed").inc()
                logger.error("checkout_persist_failed", order_id=order_id, error=str(e))
                await self._release_stock(order_id, reserved)
                raise

            ecomm_checkout_total.labels(status="success").inc()
            logger.info("order_checked_out", order_id=order_id, user_id=order.user_id, items=len(reserved))

            try:
                self.scheduler.schedule(order.id)
            except Exception:
                # The order stays SHIPPING until an operator reconciles it
                logger.exception("status_update_schedule_failed", order_id=order_id)

            await self._ensure_cart(db, order)
            return order

    async def _release_stock(self, order_id: str, items: list[OrderItem]) -> None:
        try:
            await self.inventory.increase_stock(items)
            ecomm_stock_compensation_total.labels(outcome="success").inc()
        except CollaboratorError as e:
            ecomm_stock_compensation_total.labels(outcome="failed").inc()
            logger.critical("stock_release_failed_manual_intervention", order_id=order_id, error=e.message)

    async def _ensure_cart(self, db: AsyncSession, order: Order) -> None:
        cart = await OrderRepository.find_latest_pending(db, order.user_id)
        if cart is not None:
            logger.info("cart_reused", user_id=order.user_id, cart_id=cart.id)
            return

        try:
            cart = await OrderRepository.save(db, _new_cart(order.user_id))
        except SQLAlchemyError as e:
            # The checkout is already durable; the next add-to-cart creates the cart
            await db.rollback()
            await db.refresh(order)
            logger.error("cart_creation_failed", user_id=order.user_id, error=str(e))
            return
        logger.info("cart_created", user_id=order.user_id, cart_id=cart.id, after_order=order.id)

    # --- Redo ---

    async def redo_order(self, db: AsyncSession, order_id: str) -> RedoOrderResult:
        existing = await self.get_order(db, order_id)
        state_machine.ensure_not_removed(existing)

        plan = await plan_redo(list(existing.items), self.inventory)

        cart = None
        if plan.items:
            cart = await OrderRepository.find_latest_pending(db, existing.user_id)
            if cart is None:
                cart = _new_cart(existing.user_id, existing.shipping_address, existing.payment_method)
            for item in plan.items:
                state_machine.add_item(cart, item)
            cart.order_date = utcnow()
            cart = await OrderRepository.save(db, cart)

        logger.info(
            "order_redone",
            order_id=order_id,
            cart_id=cart.id if cart else None,
            out_of_stock=len(plan.out_of_stock_products),
            partial=len(plan.partially_filled_products),
        )
        return RedoOrderResult(
            order=cart,
            message=plan.message,
            out_of_stock_products=plan.out_of_stock_products,
            partially_filled_products=plan.partially_filled_products,
        )
