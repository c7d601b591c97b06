"""Prometheus metrics for ledger writes, fixed-account instances and job runs"""

from prometheus_client import Counter, Histogram, Gauge

# Payment ledger
payment_counter = Counter(
    "ledger_payments_total",
    "Payments appended to financing ledgers",
    ["payment_type"],  # installment | partial | early_payoff
)

payment_rejection_counter = Counter(
    "ledger_payment_rejections_total",
    "Payments rejected by ledger rules",
    ["reason"],
)

financing_paid_counter = Counter(
    "ledger_financings_paid_total",
    "Financings whose balance reached zero",
)

# Fixed accounts
instance_created_counter = Counter(
    "fixed_account_instances_created_total",
    "Fixed account instances materialized",
)

instance_overdue_counter = Counter(
    "fixed_account_instances_overdue_total",
    "Fixed account instances moved to overdue",
)

# Notifications
notification_counter = Counter(
    "notifications_emitted_total",
    "Notifications requested by jobs",
    ["action"],  # created | updated
)

# Jobs
job_execution_counter = Counter(
    "job_executions_total",
    "Tracked job executions",
    ["job_name", "status"],
)

job_duration_histogram = Histogram(
    "job_duration_seconds",
    "Tracked job duration",
    ["job_name"],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)

job_consecutive_failures_gauge = Gauge(
    "job_consecutive_failures",
    "Failed runs among the most recent executions of a job",
    ["job_name"],
)


def record_payment(payment_type: str, closes_balance: bool) -> None:
    """Record a ledger append and, when it settles the financing, the payoff"""
    payment_counter.labels(payment_type=payment_type).inc()
    if closes_balance:
        financing_paid_counter.inc()


def record_rejection(error: Exception) -> None:
    payment_rejection_counter.labels(reason=type(error).__name__).inc()


def record_job(job_name: str, status: str, duration_ms: int) -> None:
    """Record job run outcome and duration"""
    job_execution_counter.labels(job_name=job_name, status=status).inc()
    job_duration_histogram.labels(job_name=job_name).observe(duration_ms / 1000)
