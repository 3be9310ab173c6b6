from prometheus_client import Counter, Histogram

DELIVERIES_TOTAL = Counter(
    "webhook_deliveries_total",
    "Total payment webhook deliveries received",
    ["result"],
)

HANDLER_DURATION = Histogram(
    "webhook_handler_duration_seconds",
    "Event handler duration in seconds",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
)

HANDLER_FAILURES_TOTAL = Counter(
    "webhook_handler_failures_total",
    "Total number of event handler failures",
    ["event_type"],
)
