from prometheus_client import Counter, Histogram

# Basic metrics with proper buckets for latency
REQUEST_COUNT = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, float("inf"))
)

PAYMENT_OUTCOMES = Counter(
    "storefront_payment_outcomes_total",
    "Gateway outcomes of payment initiations and verifications",
    ["stage", "method", "status"],
)
ORDERS_CREATED = Counter("storefront_orders_created_total", "Orders created")
