from dataclasses import dataclass, field
from typing import Iterable

import structlog

from shared.observability import ecomm_redo_items_total
from .clients import InventoryClient
from .exceptions import CollaboratorError
from .models import Order, OrderItem

logger = structlog.get_logger(__name__)

ALL_ADDED_MESSAGE = "All items successfully added to cart"
NONE_ADDED_MESSAGE = "No items could be added to cart. All products are out of stock."
SOME_ADDED_MESSAGE = "Some items could not be fully added to cart"


@dataclass
class RedoPlan:
    items: list[OrderItem] = field(default_factory=list)
    out_of_stock_products: list[str] = field(default_factory=list)
    partially_filled_products: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.items:
            return NONE_ADDED_MESSAGE
        if not self.out_of_stock_products and not self.partially_filled_products:
            return ALL_ADDED_MESSAGE
        return SOME_ADDED_MESSAGE


@dataclass
class RedoOrderResult:
    order: Order | None
    message: str
    out_of_stock_products: list[str]
    partially_filled_products: list[str]


async def plan_redo(items: Iterable[OrderItem], inventory: InventoryClient) -> RedoPlan:
    """
    Checks live stock for every line of a past order, one lookup per item.

    available >= ordered   -> line copied unchanged
    0 < available < ordered -> line reduced to what is available, noted as partial
    available == 0 or lookup failure -> nothing added, noted as out of stock
    """
    plan = RedoPlan()
    for original in items:
        try:
            detail = await inventory.get_product_detail(original.product_id)
        except CollaboratorError as e:
            logger.warning("redo_stock_check_failed", product_id=original.product_id, error=e.message)
            ecomm_redo_items_total.labels(outcome="unavailable").inc()
            label = original.product_name or original.product_id
            plan.out_of_stock_products.append(f"'{label}' could not be verified (may be unavailable)")
            continue

        available = detail.quantity or 0
        name = detail.name or original.product_name

        if available <= 0:
            ecomm_redo_items_total.labels(outcome="unavailable").inc()
            plan.out_of_stock_products.append(f"'{name}' is out of stock")
            continue

        item = original.copy(quantity=min(original.quantity, available))
        # Price and seller stay as captured on the past order
        item.product_name = name

        if available < original.quantity:
            ecomm_redo_items_total.labels(outcome="partial").inc()
            plan.partially_filled_products.append(
                f"'{name}' has only {available} available instead of {original.quantity}"
            )
        else:
            ecomm_redo_items_total.labels(outcome="full").inc()
        plan.items.append(item)

    return plan
