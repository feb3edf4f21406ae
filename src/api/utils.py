"""
Shared utilities for the StarLedger API.

This module contains request validation and error response helpers
used across all API blueprints.
"""

from typing import Any

from flask import jsonify, request

from errors import StarLedgerError

# Headers sent with every ledger read and write
NO_CACHE_HEADERS = {"Cache-Control": "no-cache"}


# ============================================================
# Validation Utilities
# ============================================================

def get_json_body() -> Any:
    """Parsed JSON request body, or None if missing or malformed."""
    return request.get_json(silent=True)


def validate_json_schema(
    data: dict[str, Any],
    required_fields: dict[str, type],
    optional_fields: dict[str, type] | None = None,
    max_lengths: dict[str, int] | None = None
) -> tuple:
    """
    Validate JSON payload against a simple schema.

    Args:
        data: The JSON data to validate
        required_fields: Dict mapping field names to expected types
        optional_fields: Dict mapping optional field names to expected types
        max_lengths: Dict mapping field names to maximum string lengths

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    for field_name, expected_type in required_fields.items():
        if field_name not in data:
            return False, f"Missing required field: {field_name}"
        if not isinstance(data[field_name], expected_type):
            return False, f"Field '{field_name}' must be of type {expected_type.__name__}"
        if expected_type is str and not data[field_name].strip():
            return False, f"Field '{field_name}' must not be empty"

    if optional_fields:
        for field_name, expected_type in optional_fields.items():
            if field_name in data and data[field_name] is not None:
                if not isinstance(data[field_name], expected_type):
                    return False, f"Field '{field_name}' must be of type {expected_type.__name__}"

    if max_lengths:
        for field_name, max_len in max_lengths.items():
            if field_name in data and isinstance(data[field_name], str):
                if len(data[field_name]) > max_len:
                    return False, f"Field '{field_name}' exceeds maximum length of {max_len}"

    return True, None


# ============================================================
# Responses
# ============================================================

def error_response(error: StarLedgerError | str, status_code: int | None = None):
    """
    Build a JSON error response.

    Args:
        error: Domain exception or plain message
        status_code: Overrides the exception's own status code

    Returns:
        Flask (response, status) tuple
    """
    if isinstance(error, StarLedgerError):
        payload = {"error": error.message, "error_type": type(error).__name__}
        if error.details:
            payload["details"] = error.details
        return jsonify(payload), status_code or error.status_code

    return jsonify({"error": error}), status_code or 400


def json_response(payload: Any, status_code: int = 200):
    """JSON response with the no-cache headers."""
    return jsonify(payload), status_code, NO_CACHE_HEADERS
