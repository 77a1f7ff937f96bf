"""
Prometheus metrics for the filtering pipeline

Exposed by the API at /metrics.
"""
from prometheus_client import Counter, Histogram

ITEMS_CLASSIFIED = Counter(
    "basket_items_classified_total",
    "Basket items classified, by resolving stage and outcome",
    ["source", "eligible"],
)

AI_CALLS = Counter(
    "ai_classification_calls_total",
    "Attempts against the external AI classifier",
    ["outcome"],
)

BASKET_PROCESSING_SECONDS = Histogram(
    "basket_processing_seconds",
    "End-to-end basket filtering latency",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)
