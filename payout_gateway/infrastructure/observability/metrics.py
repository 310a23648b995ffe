"""Prometheus metrics for monitoring settlements, payout amounts, and ledger integrity"""

from prometheus_client import Counter, Histogram

# Settlement metrics
settlement_counter = Counter(
    "payout_settlement_total",
    "Settlement attempts by outcome",
    ["outcome"],  # settled | below_threshold | not_yet_eligible | missing_bank_account | already_settled | settlement_failed
)

final_amount_bucket_counter = Counter(
    "payout_final_amount_bucket",
    "Settled payouts by final amount bucket",
    ["bucket"],  # <10k, 10k-50k, 50k-100k, 100k+
)

settled_amount_counter = Counter(
    "payout_settled_amount_total",
    "Total final payable committed to the ledger (minor units)",
)

# Aggregation metrics
reconciliation_warning_counter = Counter(
    "payout_reconciliation_warnings_total",
    "Contracts excluded or flagged during aggregation",
    ["kind"],
)

aggregation_duration_histogram = Histogram(
    "payout_aggregation_duration_seconds",
    "Time spent building settlement batches",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "webhook_latency_seconds",
    "Payout webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "webhook_failures_total",
    "Failed webhook deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_settlement(outcome: str, final_payable: int) -> None:
    """Record settlement metrics for monitoring payout volume and failure modes"""
    settlement_counter.labels(outcome=outcome).inc()

    if outcome != "settled":
        return

    settled_amount_counter.inc(final_payable)

    # Bucket payouts for distribution analysis
    if final_payable < 10_000:
        bucket = "<10k"
    elif final_payable < 50_000:
        bucket = "10k-50k"
    elif final_payable < 100_000:
        bucket = "50k-100k"
    else:
        bucket = "100k+"

    final_amount_bucket_counter.labels(bucket=bucket).inc()
