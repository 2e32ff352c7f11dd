"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from coinbroker.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    TRANSACTION_TYPE = "transaction_type"
    ERROR_TYPE = "error_type"


class MarketplaceMetrics:
    """
    Centralized metrics for the coin broker.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Contact unlocks (rate, kind, outcome)
    - Deal closures
    - Refunds (path, outcome, coins returned)
    - Ledger movements (by transaction type)
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        self.service_info = Info(
            "coinbroker_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "coinbroker_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "coinbroker_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "coinbroker_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Unlock Metrics
        # ====================================================================
        self.unlocks_total = Counter(
            "coinbroker_unlocks_total",
            "Total contact unlock attempts",
            ["exclusive", "success", MetricLabels.ERROR_TYPE],
        )

        self.unlock_cost_coins = Histogram(
            "coinbroker_unlock_cost_coins",
            "Coins spent per successful unlock",
            buckets=(5, 10, 15, 20, 30, 50, 75, 100, 250, 500, 1000),
        )

        # ====================================================================
        # Deal / Refund Metrics
        # ====================================================================
        self.deals_closed_total = Counter(
            "coinbroker_deals_closed_total",
            "Total deal closure attempts",
            ["success", MetricLabels.ERROR_TYPE],
        )

        self.refunds_total = Counter(
            "coinbroker_refunds_total",
            "Total refund operations",
            ["path", "status", MetricLabels.ERROR_TYPE],
        )

        self.refund_amount_coins = Histogram(
            "coinbroker_refund_amount_coins",
            "Coins returned per approved refund",
            buckets=(1, 5, 10, 15, 20, 30, 50, 100, 250, 500, 1000),
        )

        # ====================================================================
        # Ledger Metrics
        # ====================================================================
        self.ledger_movements_total = Counter(
            "coinbroker_ledger_movements_total",
            "Total ledger movements",
            [MetricLabels.TRANSACTION_TYPE],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "coinbroker_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_unlock(
        self, exclusive: bool, success: bool, cost: int = 0, error_type: str | None = None
    ) -> None:
        """Record contact unlock metrics."""
        self.unlocks_total.labels(
            exclusive=str(exclusive), success=str(success), error_type=error_type or "none"
        ).inc()
        if success:
            self.unlock_cost_coins.observe(cost)
            self.ledger_movements_total.labels(transaction_type="usage_debit").inc()

    def record_deal_closed(self, success: bool, error_type: str | None = None) -> None:
        """Record deal closure metrics."""
        self.deals_closed_total.labels(
            success=str(success), error_type=error_type or "none"
        ).inc()

    def record_refund(
        self, path: str, status: str, amount: int = 0, error_type: str | None = None
    ) -> None:
        """Record refund metrics. ``status`` is the resulting refund status or ``failed``."""
        self.refunds_total.labels(
            path=path, status=status, error_type=error_type or "none"
        ).inc()
        if status == "approved" and amount > 0:
            self.refund_amount_coins.observe(amount)
            self.ledger_movements_total.labels(transaction_type="refund_credit").inc()

    def record_ledger_credit(self, transaction_type: str) -> None:
        """Record a ledger credit outside the refund flow."""
        self.ledger_movements_total.labels(transaction_type=transaction_type).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = MarketplaceMetrics()
