"""
Monitoring and metrics infrastructure for StarLedger.

This package provides:
- Application metrics collection (counters, gauges, histograms)
- Structured logging with JSON output
- Request timing middleware

Usage:
    from monitoring import metrics, get_logger

    metrics.increment("blocks_appended_total")
    logger = get_logger(__name__)
    logger.info("Block appended", extra={"height": 3})
"""

from monitoring.logging import configure_logging, get_logger
from monitoring.metrics import MetricsCollector, metrics
from monitoring.middleware import setup_request_logging, timed

__all__ = [
    "MetricsCollector",
    "metrics",
    "get_logger",
    "configure_logging",
    "setup_request_logging",
    "timed",
]
