"""
Star registry blueprint.

This blueprint handles the identity validation flow and star registration:
- Validation requests and signature confirmation
- Star registration (appending a block)
- Star lookup by hash and by wallet address
"""

from flask import Blueprint

from errors import RequestNotFoundError
from star_registry import validate_star_payload, with_decoded_story

from . import state
from .utils import error_response, get_json_body, json_response, validate_json_schema

# Create the blueprint
stars_bp = Blueprint("stars", __name__)

# Wallet addresses are base64 Ed25519 public keys
MAX_ADDRESS_LENGTH = 128
MAX_SIGNATURE_LENGTH = 256


@stars_bp.route("/requestValidation", methods=["POST"])
def request_validation():
    """
    Submit a validation request for a wallet address.

    Request body:
    {
        "address": "wallet address"
    }

    Returns:
        The pending request with the message to sign and the seconds left
    """
    data = get_json_body()

    is_valid, error_msg = validate_json_schema(
        data,
        required_fields={"address": str},
        max_lengths={"address": MAX_ADDRESS_LENGTH},
    )
    if not is_valid:
        return error_response(error_msg)

    pending = state.mempool.add_request_validation(data["address"])
    return json_response(pending.to_dict())


@stars_bp.route("/message-signature/validate", methods=["POST"])
def validate_signature():
    """
    Confirm a validation request with a signature over its message.

    Request body:
    {
        "address": "wallet address",
        "signature": "base64 signature of the request message"
    }

    Returns:
        The confirmed request status
    """
    data = get_json_body()

    is_valid, error_msg = validate_json_schema(
        data,
        required_fields={"address": str, "signature": str},
        max_lengths={"address": MAX_ADDRESS_LENGTH, "signature": MAX_SIGNATURE_LENGTH},
    )
    if not is_valid:
        return error_response(error_msg)

    try:
        confirmed = state.mempool.validate_request_by_wallet(data["address"], data["signature"])
    except RequestNotFoundError as e:
        # Expired and unknown requests are a client error on this route
        return error_response(e, 400)

    return json_response(confirmed.to_dict())


@stars_bp.route("/block", methods=["POST"])
def register_star():
    """
    Register a star for a confirmed wallet address.

    Request body:
    {
        "address": "wallet address",
        "star": {
            "ra": "16h 29m 1.0s",
            "dec": "-26° 29' 24.9",
            "story": "ASCII text, at most 250 characters",
            "mag": "optional",
            "cen": "optional"
        }
    }

    Returns:
        The appended block (story hex-encoded)
    """
    body = validate_star_payload(get_json_body(), state.config.max_story_length)

    # One registration per confirmed request; a failed append keeps it usable
    with state.mempool.consume_confirmation(body["address"]):
        block = state.blockchain.add_block(body)

    return json_response(block.to_dict())


@stars_bp.route("/stars/hash:<block_hash>", methods=["GET"])
def get_star_by_hash(block_hash: str):
    """
    Get a block by its hash.

    Returns:
        Block with the decoded story added
    """
    block = state.blockchain.get_block_by_hash(block_hash)
    return json_response(with_decoded_story(block.to_dict()))


@stars_bp.route("/stars/address:<path:address>", methods=["GET"])
def get_stars_by_address(address: str):
    """
    Get every block registered by a wallet address.

    Returns:
        List of blocks with decoded stories (empty if none)
    """
    blocks = state.blockchain.get_blocks_by_address(address)
    return json_response([with_decoded_story(block.to_dict()) for block in blocks])
