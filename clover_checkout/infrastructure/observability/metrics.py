"""Prometheus metrics for payment outcomes, tender settlement, refunds and Clover API health"""

from prometheus_client import Counter, Histogram

# Payment metrics
payment_outcome_counter = Counter(
    "clover_checkout_payment_total",
    "Checkout payment attempts by outcome",
    ["outcome"],  # paid | declined | cancelled | failed | skipped
)

tender_settlement_counter = Counter(
    "clover_checkout_tender_settlement_total",
    "Custom tender settlements by remote status",
    ["status"],  # success | failed | error
)

refund_counter = Counter(
    "clover_checkout_refund_total",
    "Refund attempts by kind and outcome",
    ["kind", "outcome"],  # kind: order | card | tender
)

# Clover API metrics
clover_request_latency_histogram = Histogram(
    "clover_api_latency_seconds",
    "WeeConnectPay API response time",
    ["operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

clover_request_failures_counter = Counter(
    "clover_api_failures_total",
    "Failed WeeConnectPay API calls",
    ["operation"],
)

recaptcha_failures_counter = Counter(
    "recaptcha_verification_failures_total",
    "Failed Google reCAPTCHA verification calls",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_payment(outcome: str) -> None:
    payment_outcome_counter.labels(outcome=outcome).inc()


def record_tender_settlement(status: str) -> None:
    tender_settlement_counter.labels(status=status).inc()


def record_refund(kind: str, succeeded: bool) -> None:
    refund_counter.labels(kind=kind, outcome="succeeded" if succeeded else "rejected").inc()
