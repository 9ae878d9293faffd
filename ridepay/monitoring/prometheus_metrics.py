"""
Prometheus metrics module for the ride payment service.

Service timings come from the @measure_operation decorator; domain counters
track payment transitions, reconciliation outcomes, payout retries and
provider calls.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Own registry so /metrics only carries ridepay series.
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "ridepay_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.005, 0.025, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

service_operations_total = Counter(
    "ridepay_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "ridepay_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

payment_status_transitions_total = Counter(
    "ridepay_payment_status_transitions_total",
    "Payment status transitions applied by the orchestrator",
    ["from_status", "to_status", "source"],
    registry=REGISTRY,
)

reconciliation_records_total = Counter(
    "ridepay_reconciliation_records_total",
    "Records examined by the reconciliation sweep",
    ["kind", "outcome"],  # kind: payment|payout|refund, outcome: changed|unchanged|skipped|error
    registry=REGISTRY,
)

payout_retries_total = Counter(
    "ridepay_payout_retries_total",
    "Automatic payout retry attempts",
    ["outcome"],  # success | failed | exhausted
    registry=REGISTRY,
)

provider_requests_total = Counter(
    "ridepay_provider_requests_total",
    "Outbound mobile-money provider calls",
    ["provider", "operation", "outcome"],
    registry=REGISTRY,
)

booking_lock_total = Counter(
    "ridepay_booking_lock_total",
    "Booking mutex acquisitions and releases",
    ["action", "outcome"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Thin recording facade over the module-level collectors."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """Called by ``BaseService.measure_operation`` after every measured call."""
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_payment_transition(from_status: str, to_status: str, source: str) -> None:
        payment_status_transitions_total.labels(
            from_status=from_status, to_status=to_status, source=source
        ).inc()

    @staticmethod
    def record_reconciliation(kind: str, outcome: str) -> None:
        reconciliation_records_total.labels(kind=kind, outcome=outcome).inc()

    @staticmethod
    def record_payout_retry(outcome: str) -> None:
        payout_retries_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_provider_request(provider: str, operation: str, outcome: str) -> None:
        provider_requests_total.labels(provider=provider, operation=operation, outcome=outcome).inc()

    @staticmethod
    def record_booking_lock(action: str, outcome: str) -> None:
        booking_lock_total.labels(action=action, outcome=outcome).inc()

    @staticmethod
    def get_metrics() -> bytes:
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)


prometheus_metrics = PrometheusMetrics()
