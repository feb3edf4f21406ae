"""
Monitoring and metrics API endpoints.

This blueprint provides:
- /metrics: Prometheus-compatible metrics endpoint
- /metrics/json: JSON format metrics
- /health: Basic health check
- /health/live: Liveness probe
- /health/ready: Readiness probe
"""

import time
from importlib.metadata import PackageNotFoundError, version

from flask import Blueprint, Response, jsonify

from monitoring import metrics
from storage import StorageError

from . import state

# Create the blueprint
monitoring_bp = Blueprint("monitoring", __name__)

# Track startup time
_startup_time = time.time()


@monitoring_bp.route("/metrics", methods=["GET"])
def prometheus_metrics():
    """
    Prometheus-compatible metrics endpoint.

    Returns metrics in Prometheus text exposition format.
    """
    _update_dynamic_metrics()
    return Response(metrics.to_prometheus(), mimetype="text/plain; charset=utf-8")


@monitoring_bp.route("/metrics/json", methods=["GET"])
def json_metrics():
    """All collected metrics as JSON."""
    _update_dynamic_metrics()
    return jsonify(metrics.get_all())


@monitoring_bp.route("/health", methods=["GET"])
def health():
    """
    Basic health check endpoint.

    Returns service status and key statistics.
    """
    storage = _check_storage()
    return jsonify({
        "status": "healthy" if storage["available"] else "degraded",
        "service": "StarLedger API",
        "version": _get_version(),
        "uptime_seconds": time.time() - _startup_time,
        "checks": {
            "blockchain": {
                "status": "ok",
                "height": state.blockchain.get_block_height(),
            },
            "mempool": state.mempool.get_stats(),
            "storage": storage,
        },
    })


@monitoring_bp.route("/health/live", methods=["GET"])
def liveness():
    """Returns 200 while the application is running."""
    return jsonify({"status": "alive"})


@monitoring_bp.route("/health/ready", methods=["GET"])
def readiness():
    """
    Readiness probe.

    Returns 503 if the storage backend cannot serve the ledger.
    """
    storage = _check_storage()
    if not storage["available"]:
        return jsonify({
            "status": "not_ready",
            "issues": [f"storage: {storage.get('error', 'not available')}"],
        }), 503

    return jsonify({"status": "ready"})


def _get_version() -> str:
    """Get application version."""
    try:
        return version("starledger")
    except PackageNotFoundError:
        return "0.1.0"


def _check_storage() -> dict:
    """Check storage backend status."""
    storage = state.blockchain.storage
    try:
        available = storage.is_available()
    except StorageError as e:
        return {
            "status": "error",
            "available": False,
            "backend": storage.__class__.__name__,
            "error": str(e),
        }
    return {
        "status": "ok" if available else "degraded",
        "available": available,
        "backend": storage.__class__.__name__,
    }


def _update_dynamic_metrics():
    """Update dynamic metrics (gauges) before export."""
    metrics.set_gauge("blockchain_height", state.blockchain.get_block_height())
    metrics.set_gauge("mempool_pending", state.mempool.get_stats()["pending"])
    metrics.set_gauge("storage_available", 1 if _check_storage()["available"] else 0)
