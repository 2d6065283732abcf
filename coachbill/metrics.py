from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path", "status"],
)
REQUEST_ERRORS = Counter(
    "http_request_errors_total",
    "Total HTTP requests that ended in a server error",
    ["method", "path", "status"],
)

# outcome: succeeded | failed | conflict | rejected
SETTLEMENTS = Counter(
    "billing_settlements_total",
    "Settlement attempts against invoices",
    ["outcome"],
)
SETTLED_AMOUNT = Counter(
    "billing_settled_amount_minor_total",
    "Sum of settled payment amounts in minor units",
    ["currency"],
)
