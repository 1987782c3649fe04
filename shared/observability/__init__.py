from .setup import setup_observability
from .metrics import (
    ecomm_checkout_total,
    ecomm_checkout_duration_seconds,
    ecomm_stock_compensation_total,
    ecomm_scheduled_transitions_total,
    ecomm_redo_items_total,
    ecomm_product_cache_total,
)
