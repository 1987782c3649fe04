from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.config.database import get_db
from shared.security import Caller, get_current_caller, limiter, verify_internal_api_key
from .dependencies import get_order_service, get_order_stats_service, get_seller_order_service
from .exceptions import AccessDeniedError
from .models import Order, OrderStatus
from .schemas import (
    BuyerStatsResponse,
    CheckoutRequest,
    OrderCreate,
    OrderItemCreate,
    OrderItemUpdate,
    OrderResponse,
    PageResponse,
    PaymentEvent,
    RedoOrderResponse,
    SellerOrderResponse,
    SellerStatsResponse,
    UpdateStatusRequest,
)
from .search import OrderSearchCriteria, Page
from .seller_view import SellerOrderService
from .service import OrderService
from .stats import OrderStatsService

# THIS PROTECTS THE ENTIRE SERVICE
router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()


@public_router.get("/health")
async def health_check():
    return {"service": "order", "status": "running"}


# --- Access helpers ---

def _ensure_user_access(caller: Caller, user_id: str) -> None:
    if caller.is_admin or caller.user_id == user_id:
        return
    raise AccessDeniedError("Not allowed to access another user's orders", code="forbidden")


def _ensure_seller_access(caller: Caller, seller_id: str) -> None:
    if caller.is_admin or (caller.is_seller and caller.user_id == seller_id):
        return
    raise AccessDeniedError("Not allowed to access this seller's orders", code="forbidden")


def _ensure_admin(caller: Caller) -> None:
    if not caller.is_admin:
        raise AccessDeniedError("Admin role required", code="forbidden")


async def _owned_order(service: OrderService, db: AsyncSession, order_id: str, caller: Caller) -> Order:
    order = await service.get_order(db, order_id)
    _ensure_user_access(caller, order.user_id)
    return order


def _order_page(page: Page) -> PageResponse[OrderResponse]:
    return PageResponse[OrderResponse](
        content=[OrderResponse.model_validate(o) for o in page.content],
        total_elements=page.total_elements,
        total_pages=page.total_pages,
        page=page.page,
        size=page.size,
    )


def _seller_page(page: Page) -> PageResponse[SellerOrderResponse]:
    return PageResponse[SellerOrderResponse](
        content=[SellerOrderResponse.model_validate(v) for v in page.content],
        total_elements=page.total_elements,
        total_pages=page.total_pages,
        page=page.page,
        size=page.size,
    )


# --- Buyer endpoints ---

@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    _ensure_user_access(caller, payload.user_id)
    order = await service.create_order(db, payload)
    return OrderResponse.model_validate(order)


@router.get("/user/{user_id}", response_model=PageResponse[OrderResponse])
async def get_orders_by_user(
    user_id: str,
    page: int = Query(default=0),
    size: int = Query(default=10),
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    _ensure_user_access(caller, user_id)
    return _order_page(await service.get_orders_by_user(db, user_id, page, size))


@router.get("/user/{user_id}/cart", response_model=OrderResponse)
async def get_active_cart(
    user_id: str,
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    _ensure_user_access(caller, user_id)
    cart = await service.get_active_cart(db, user_id)
    if cart is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return OrderResponse.model_validate(cart)


@router.get("/user/{user_id}/search", response_model=PageResponse[OrderResponse])
async def search_user_orders(
    user_id: str,
    keyword: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    min_update_date: Optional[str] = None,
    max_update_date: Optional[str] = None,
    statuses: Optional[List[OrderStatus]] = Query(default=None, alias="status"),
    page: int = Query(default=0),
    size: int = Query(default=10),
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    _ensure_user_access(caller, user_id)
    criteria = OrderSearchCriteria.build(keyword, min_price, max_price, min_update_date, max_update_date, statuses)
    return _order_page(await service.search_user_orders(db, user_id, criteria, page, size))


@router.get("/user/{user_id}/stats", response_model=BuyerStatsResponse)
async def get_buyer_stats(
    user_id: str,
    caller: Caller = Depends(get_current_caller),
    stats_service: OrderStatsService = Depends(get_order_stats_service),
    db: AsyncSession = Depends(get_db),
):
    _ensure_user_access(caller, user_id)
    return BuyerStatsResponse.model_validate(await stats_service.buyer_stats(db, user_id))


# --- Seller endpoints ---

@router.get("/seller/{seller_id}", response_model=PageResponse[SellerOrderResponse])
async def get_seller_orders(
    seller_id: str,
    page: int = Query(default=0),
    size: int = Query(default=10),
    caller: Caller = Depends(get_current_caller),
    seller_service: SellerOrderService = Depends(get_seller_order_service),
    db: AsyncSession = Depends(get_db),
):
    _ensure_seller_access(caller, seller_id)
    return _seller_page(await seller_service.get_seller_orders(db, seller_id, page, size))


@router.get("/seller/{seller_id}/search", response_model=PageResponse[SellerOrderResponse])
async def search_seller_orders(
    seller_id: str,
    keyword: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    min_update_date: Optional[str] = None,
    max_update_date: Optional[str] = None,
    statuses: Optional[List[OrderStatus]] = Query(default=None, alias="status"),
    page: int = Query(default=0),
    size: int = Query(default=10),
    caller: Caller = Depends(get_current_caller),
    seller_service: SellerOrderService = Depends(get_seller_order_service),
    db: AsyncSession = Depends(get_db),
):
    _ensure_seller_access(caller, seller_id)
    criteria = OrderSearchCriteria.build(keyword, min_price, max_price, min_update_date, max_update_date, statuses)
    return _seller_page(await seller_service.search_seller_orders(db, seller_id, criteria, page, size))


@router.get("/seller/{seller_id}/stats", response_model=SellerStatsResponse)
async def get_seller_stats(
    seller_id: str,
    caller: Caller = Depends(get_current_caller),
    stats_service: OrderStatsService = Depends(get_order_stats_service),
    db: AsyncSession = Depends(get_db),
):
    _ensure_seller_access(caller, seller_id)
    return SellerStatsResponse.model_validate(await stats_service.seller_stats(db, seller_id))


# --- Internal events ---

@router.post("/payment-events", status_code=status.HTTP_202_ACCEPTED)
async def payment_event(
    event: PaymentEvent,
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    order = await service.handle_payment_event(db, event)
    return {
        "order_id": event.order_id,
        "handled": order is not None,
        "status": order.status.value if order is not None else None,
    }


# --- Single order ---

@router.get("/{order_id}")
async def get_order(
    order_id: str,
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    seller_service: SellerOrderService = Depends(get_seller_order_service),
    db: AsyncSession = Depends(get_db),
):
    order = await service.get_order(db, order_id)
    # Sellers get the full view of their own purchases, the seller projection otherwise
    if caller.is_seller and not caller.is_admin and order.user_id != caller.user_id:
        view = await seller_service.get_seller_order_detail(db, order_id, caller.user_id)
        return SellerOrderResponse.model_validate(view)
    _ensure_user_access(caller, order.user_id)
    return OrderResponse.model_validate(order)


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_status(
    order_id: str,
    payload: UpdateStatusRequest,
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    _ensure_admin(caller)
    order = await service.update_status(db, order_id, payload.status)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str,
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    await _owned_order(service, db, order_id, caller)
    order = await service.cancel_order(db, order_id)
    return OrderResponse.model_validate(order)


@router.delete("/{order_id}", response_model=OrderResponse)
async def remove_order(
    order_id: str,
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    await _owned_order(service, db, order_id, caller)
    order = await service.remove_order(db, order_id)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/checkout", response_model=OrderResponse)
@limiter.limit(settings.CHECKOUT_RATE_LIMIT)
async def checkout(
    request: Request,  # slowapi reads the caller key from the request
    order_id: str,
    payload: CheckoutRequest,
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    await _owned_order(service, db, order_id, caller)
    order = await service.checkout(db, order_id, payload)
    return OrderResponse.model_validate(order)


@router.post("/{order_id}/redo", response_model=RedoOrderResponse)
@limiter.limit(settings.CHECKOUT_RATE_LIMIT)
async def redo_order(
    request: Request,
    order_id: str,
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    await _owned_order(service, db, order_id, caller)
    result = await service.redo_order(db, order_id)
    return RedoOrderResponse(
        order=OrderResponse.model_validate(result.order) if result.order is not None else None,
        message=result.message,
        out_of_stock_products=result.out_of_stock_products,
        partially_filled_products=result.partially_filled_products,
    )


# --- Cart items ---

@router.post("/{order_id}/items", response_model=OrderResponse)
async def add_item(
    order_id: str,
    payload: OrderItemCreate,
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    await _owned_order(service, db, order_id, caller)
    return OrderResponse.model_validate(await service.add_item(db, order_id, payload))


@router.put("/{order_id}/items/{product_id}", response_model=OrderResponse)
async def update_item(
    order_id: str,
    product_id: str,
    payload: OrderItemUpdate,
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    await _owned_order(service, db, order_id, caller)
    return OrderResponse.model_validate(await service.update_item(db, order_id, product_id, payload))


@router.delete("/{order_id}/items/{product_id}", response_model=OrderResponse)
async def remove_item(
    order_id: str,
    product_id: str,
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    await _owned_order(service, db, order_id, caller)
    return OrderResponse.model_validate(await service.remove_item(db, order_id, product_id))


@router.delete("/{order_id}/items", response_model=OrderResponse)
async def clear_items(
    order_id: str,
    caller: Caller = Depends(get_current_caller),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db),
):
    await _owned_order(service, db, order_id, caller)
    return OrderResponse.model_validate(await service.clear_items(db, order_id))
