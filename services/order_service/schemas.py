from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

from .models import OrderStatus, PaymentMethod

T = TypeVar("T")


# --- Requests ---

class OrderItemCreate(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(ge=1)
    # Normally filled from the product service; callers may pass them through
    price: Optional[float] = Field(default=None, ge=0)
    seller_id: Optional[str] = None
    product_name: Optional[str] = None


class OrderItemUpdate(BaseModel):
    quantity: int = Field(ge=1)
    price: Optional[float] = Field(default=None, ge=0)
    product_name: Optional[str] = None


class OrderCreate(BaseModel):
    user_id: str = Field(min_length=1)
    shipping_address: str = ""
    items: List[OrderItemCreate] = []
    payment_method: Optional[PaymentMethod] = None


class CheckoutRequest(BaseModel):
    shipping_address: str = Field(min_length=1)
    payment_method: PaymentMethod


class UpdateStatusRequest(BaseModel):
    status: OrderStatus


class PaymentEvent(BaseModel):
    order_id: str
    status: str # SUCCESS | FAILED


# --- Responses ---

class OrderItemResponse(BaseModel):
    product_id: str
    product_name: Optional[str]
    seller_id: Optional[str]
    quantity: int
    price: Optional[float]

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: str
    user_id: str
    shipping_address: str
    status: OrderStatus
    payment_method: Optional[PaymentMethod]
    items: List[OrderItemResponse]
    total_price: float
    order_date: datetime
    created_at: datetime
    updated_at: datetime
    is_removed: bool

    class Config:
        from_attributes = True


class SellerOrderResponse(BaseModel):
    id: str
    user_id: str
    status: OrderStatus
    items: List[OrderItemResponse]
    subtotal: float
    order_date: datetime
    created_at: datetime
    updated_at: datetime
    image_url: Optional[str] = None

    class Config:
        from_attributes = True


class PageResponse(BaseModel, Generic[T]):
    content: List[T]
    total_elements: int
    total_pages: int
    page: int
    size: int

    class Config:
        from_attributes = True


class RedoOrderResponse(BaseModel):
    order: Optional[OrderResponse]
    message: str
    out_of_stock_products: List[str]
    partially_filled_products: List[str]

    class Config:
        from_attributes = True


class BuyerStatsResponse(BaseModel):
    total_orders: int
    total_spent: float
    last_order_date: Optional[datetime]
    most_purchased_product_id: Optional[str]
    most_purchased_product_name: Optional[str]
    most_purchased_product_count: int
    total_quantity_bought: int

    class Config:
        from_attributes = True


class SellerStatsResponse(BaseModel):
    total_revenue: float
    total_items_sold: int
    total_delivered_orders: int
    total_cancelled_orders: int
    total_unique_customers: int
    last_delivered_date: Optional[datetime]
    delivery_rating: float
    cancellation_rate: float

    class Config:
        from_attributes = True
