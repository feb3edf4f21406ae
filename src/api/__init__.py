"""
StarLedger API Package.

This package contains the modular Flask blueprints for the StarLedger API.

Blueprints:
- stars: Validation requests, signature confirmation, star registration and lookup
- chain: Block retrieval, chain height and validation
- monitoring: Health checks and metrics
"""

import logging

from flask import Flask, jsonify

from config import StarLedgerConfig
from errors import StarLedgerError
from monitoring import setup_request_logging
from storage import StorageError

from api import state
from api.chain import chain_bp
from api.monitoring import monitoring_bp
from api.stars import stars_bp
from api.utils import error_response

logger = logging.getLogger(__name__)

# List of all blueprints for registration
# Tuple format: (blueprint, url_prefix)
ALL_BLUEPRINTS = [
    (stars_bp, ""),
    (chain_bp, ""),
    (monitoring_bp, ""),
]


def register_blueprints(app: Flask) -> None:
    """Register all blueprints with the Flask app."""
    for blueprint, url_prefix in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=url_prefix)


def register_error_handlers(app: Flask) -> None:
    """Map domain and storage exceptions to JSON responses."""

    @app.errorhandler(StarLedgerError)
    def handle_domain_error(error: StarLedgerError):
        return error_response(error)

    @app.errorhandler(StorageError)
    def handle_storage_error(error: StorageError):
        logger.error("Storage failure: %s", error, exc_info=error)
        return jsonify({"error": "Storage unavailable", "error_type": type(error).__name__}), 500

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Endpoint not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({"error": "Internal server error"}), 500


def create_app(config=None, blockchain=None, mempool=None) -> Flask:
    """
    Build the StarLedger Flask application.

    Args:
        config: StarLedgerConfig (defaults to the environment)
        blockchain: Ledger to serve (built from config if omitted)
        mempool: Validation pool to use (built from config if omitted)

    Returns:
        Configured Flask app
    """
    config = config or StarLedgerConfig.from_env()

    app = Flask(__name__)
    # Block fields must keep their persisted order
    app.json.sort_keys = False

    state.init_state(config, blockchain, mempool)
    register_blueprints(app)
    register_error_handlers(app)
    setup_request_logging(app)

    return app
