import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, Enum, Float, ForeignKey, Index, Integer, String, TypeDecorator,
)
from sqlalchemy.orm import relationship

from shared.config.database import Base
from shared.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamps, also on backends that drop tzinfo (SQLite)."""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPING = "SHIPPING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    CARD = "CARD"
    PAY_ON_DELIVERY = "PAY_ON_DELIVERY"


class Order(Base):
    __tablename__ = "orders"
    # We use a separate schema to simulate microservice isolation
    __table_args__ = (
        Index("ix_orders_user_status", "user_id", "status"),
        Index("ix_orders_user_updated", "user_id", "updated_at"),
        Index("ix_orders_status_updated", "status", "updated_at"),
        {"schema": settings.ORDER_SCHEMA},
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False)
    shipping_address = Column(String, nullable=False, default="")
    status = Column(Enum(OrderStatus, native_enum=False, length=20), nullable=False, default=OrderStatus.PENDING)
    payment_method = Column(Enum(PaymentMethod, native_enum=False, length=20), nullable=True)
    order_date = Column(UTCDateTime, nullable=False, default=utcnow) # business timestamp
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
    is_removed = Column(Boolean, nullable=False, default=False)

    items = relationship(
        "OrderItem",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )

    @property
    def total_price(self) -> float:
        return sum(item.subtotal for item in self.items)

    def __repr__(self) -> str:
        return f"<Order {self.id} user={self.user_id} status={self.status}>"


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = {"schema": settings.ORDER_SCHEMA}

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        String(36),
        ForeignKey(f"{settings.ORDER_SCHEMA}.orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(String, nullable=False)
    product_name = Column(String, nullable=True)
    # Captured at purchase time; legacy rows may not have it
    seller_id = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=True) # unit price at purchase time, never recomputed

    @property
    def subtotal(self) -> float:
        return (self.price or 0.0) * (self.quantity or 0)

    def copy(self, quantity: int | None = None) -> "OrderItem":
        return OrderItem(
            product_id=self.product_id,
            product_name=self.product_name,
            seller_id=self.seller_id,
            quantity=self.quantity if quantity is None else quantity,
            price=self.price,
        )
