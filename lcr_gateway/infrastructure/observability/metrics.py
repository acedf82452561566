"""Prometheus metrics for payment outcomes, routing choices, risk and card network latency"""

from typing import Optional

from prometheus_client import Counter, Histogram

# Payment metrics
payment_operation_counter = Counter(
    "lcr_payment_operations_total",
    "Payment operations by outcome",
    ["operation", "outcome"],  # authorize|capture|cancel|refund|modify, success|failed|rejected
)

routing_selection_counter = Counter(
    "lcr_routing_selections_total",
    "Networks chosen by least-cost routing",
    ["network", "representation"],
)

risk_band_counter = Counter(
    "lcr_risk_band_total",
    "Risk assessments by band",
    ["band"],
)

# Token metrics
token_operation_counter = Counter(
    "lcr_token_operations_total",
    "Token vault operations",
    ["operation"],
)

# Card network metrics
card_network_latency_histogram = Histogram(
    "card_network_latency_seconds",
    "Card network call latency",
    ["operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

card_network_failures_counter = Counter(
    "card_network_failures_total",
    "Card network calls that raised",
    ["operation"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_authorization(
    success: bool,
    has_payment: bool,
    network: Optional[str],
    representation: Optional[str],
    risk_band: Optional[str],
) -> None:
    """Record authorization outcome, and routing/risk details when the request got that far"""
    if success:
        outcome = "success"
    elif has_payment:
        outcome = "failed"
    else:
        outcome = "rejected"
    payment_operation_counter.labels(operation="authorize", outcome=outcome).inc()

    if network and representation:
        routing_selection_counter.labels(network=network, representation=representation).inc()
    if risk_band:
        risk_band_counter.labels(band=risk_band).inc()


def record_payment_operation(operation: str, success: bool) -> None:
    payment_operation_counter.labels(operation=operation, outcome="success" if success else "failed").inc()
