"""
Ledger blueprint.

This blueprint exposes read access to the ledger:
- Block retrieval by height
- Chain height and summary
- Full chain validation
"""

from flask import Blueprint

from monitoring import timed
from star_registry import with_decoded_story

from . import state
from .utils import json_response

# Create the blueprint
chain_bp = Blueprint("chain", __name__)


@chain_bp.route("/block/<int:height>", methods=["GET"])
def get_block(height: int):
    """
    Get a block by height.

    Returns:
        Block with the decoded story added
    """
    block = state.blockchain.get_block(height)
    return json_response(with_decoded_story(block.to_dict()))


@chain_bp.route("/chain/height", methods=["GET"])
def get_height():
    """Current height of the ledger."""
    return json_response({"height": state.blockchain.get_block_height()})


@chain_bp.route("/chain/info", methods=["GET"])
def get_info():
    """Ledger and validation pool summary."""
    info = state.blockchain.get_info()
    info["mempool"] = state.mempool.get_stats()
    return json_response(info)


@chain_bp.route("/chain/validate", methods=["GET"])
@timed("chain_validation_duration_ms")
def validate_chain():
    """
    Validate every block hash and link.

    Returns:
        {"valid": bool, "errors": [discrepancies]}
    """
    errors = state.blockchain.validate_chain()
    return json_response(
        {
            "valid": not errors,
            "errors": [error.to_dict() for error in errors],
        }
    )
