"""
Observability module - Logging, Metrics, and Tracing.
"""

from coinbroker.observability.logging import get_logger, log_context, setup_logging
from coinbroker.observability.metrics import metrics
from coinbroker.observability.tracing import setup_tracing, trace_operation

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
    "trace_operation",
]
