from prometheus_client import Counter, Histogram

# Business Metrics
ecomm_checkout_total = Counter(
    "ecomm_checkout_total", 
    "Total checkouts processed", 
    ["status"] # Labels: 'success', 'rejected', 'failed'
)

ecomm_checkout_duration_seconds = Histogram(
    "ecomm_checkout_duration_seconds", 
    "Checkout duration in seconds"
)

ecomm_stock_compensation_total = Counter(
    "ecomm_stock_compensation_total",
    "Stock restorations issued for cancelled orders",
    ["outcome"] # Labels: 'success', 'failed'
)

ecomm_scheduled_transitions_total = Counter(
    "ecomm_scheduled_transitions_total",
    "Fired post-checkout status updates",
    ["outcome"] # Labels: 'delivered', 'skipped', 'missing', 'failed'
)

ecomm_redo_items_total = Counter(
    "ecomm_redo_items_total",
    "Line items processed by redo-order",
    ["outcome"] # Labels: 'full', 'partial', 'unavailable'
)

ecomm_product_cache_total = Counter(
    "ecomm_product_cache_total",
    "Product detail cache lookups",
    ["result"] # Labels: 'hit', 'miss', 'error'
)
