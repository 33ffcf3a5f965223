"""Prometheus metrics for rate freshness, conversions and validation outcomes"""

from prometheus_client import Counter, Histogram

# Exchange rate metrics
rate_refresh_counter = Counter(
    "ledgerflow_rate_refresh_total",
    "Exchange rate refresh attempts",
    ["outcome"],  # api | database | retained
)

rate_fetch_latency_histogram = Histogram(
    "ledgerflow_rate_fetch_seconds",
    "External rate source response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

conversion_counter = Counter(
    "ledgerflow_conversion_total",
    "Currency conversions by rate source",
    ["rate_source"],  # historical | custom | market | default
)

historical_lookup_counter = Counter(
    "ledgerflow_historical_rate_lookup_total",
    "Historical rate lookups sent to the store",
    ["found"],
)

# Calculation metrics
minimum_rate_search_counter = Counter(
    "ledgerflow_minimum_rate_search_total",
    "Minimum profitable rate searches",
)

cash_validation_counter = Counter(
    "ledgerflow_cash_validation_total",
    "Cash denomination validations",
    ["outcome"],  # valid | invalid
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_cash_validation(is_valid: bool) -> None:
    cash_validation_counter.labels(outcome="valid" if is_valid else "invalid").inc()
