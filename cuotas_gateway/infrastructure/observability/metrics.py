"""Prometheus metrics for monitoring enrollments, collections, migrations and webhook performance"""

from prometheus_client import Counter, Histogram

# Enrollment metrics
enrollment_counter = Counter(
    "cuotas_enrollments_total",
    "Enrollments created",
    ["plan_code"],
)

payment_counter = Counter(
    "cuotas_payments_total",
    "Installments settled",
    ["channel"],  # gateway | manual | regularization
)

migration_counter = Counter(
    "cuotas_migrations_total",
    "Enrollments migrated to their contingency plan",
    ["reason"],  # insufficient_payments | arrears_exceeded | manual
)

withdrawal_counter = Counter(
    "cuotas_withdrawals_total",
    "Withdrawal requests by refund tier",
    ["tier"],  # 100 | 50 | 0
)

reevaluation_failures_counter = Counter(
    "cuotas_reevaluation_failures_total",
    "Enrollments that failed during a re-evaluation pass",
)

# Payment gateway metrics
payment_gateway_failures_counter = Counter(
    "payment_gateway_failures_total",
    "Failed payment gateway calls",
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "webhook_latency_seconds",
    "Disbursement webhook response time",
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


def record_payment(channel: str) -> None:
    payment_counter.labels(channel=channel).inc()


def record_migration(reason: str | None) -> None:
    migration_counter.labels(reason=reason or "manual").inc()


def record_withdrawal(percentage: int) -> None:
    """Record withdrawals by refund tier to watch late-season dropouts"""
    withdrawal_counter.labels(tier=str(percentage)).inc()
