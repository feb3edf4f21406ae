"""
StarLedger - Star Registry Payloads

Rules for the block bodies accepted by the star registry API and the
presentation of stored stars.

A body is exactly {"address": ..., "star": {...}}. The star story is kept
on the ledger hex-encoded; reads add a decoded copy as "storyDecoded".
"""

import copy
import logging
from typing import Any

from config import DEFAULT_MAX_STORY_LENGTH
from errors import PayloadError

logger = logging.getLogger(__name__)

REQUIRED_STAR_FIELDS = ("ra", "dec", "story")
OPTIONAL_STAR_FIELDS = ("mag", "cen", "constellation")


def encode_story(story: str) -> str:
    """Hex-encode an ASCII story."""
    return story.encode("ascii").hex()


def decode_story(encoded: str) -> str:
    """
    Decode a hex-encoded story.

    Raises:
        ValueError: If encoded is not valid hex
    """
    return bytes.fromhex(encoded).decode("ascii", errors="replace")


def validate_star_payload(
    payload: Any, max_story_length: int = DEFAULT_MAX_STORY_LENGTH
) -> dict[str, Any]:
    """
    Check a star registration payload and build the block body.

    Args:
        payload: Parsed JSON request body
        max_story_length: Maximum number of characters in the story

    Returns:
        A new body with the story hex-encoded

    Raises:
        PayloadError: If the payload breaks any registry rule
    """
    if not isinstance(payload, dict) or not payload:
        raise PayloadError("An attempt has been made to add a block without specifying payload")

    if len(payload) != 2:
        raise PayloadError("The payload format is not correct - there must be two properties and only two")

    if set(payload) != {"address", "star"}:
        raise PayloadError(
            "The payload format is not correct - there must be a wallet address and a star data only"
        )

    address = payload["address"]
    if not isinstance(address, str) or not address:
        raise PayloadError("Field 'address' must be a non-empty string")

    star = payload["star"]
    if not isinstance(star, dict):
        raise PayloadError("Field 'star' must be an object")

    for name in REQUIRED_STAR_FIELDS:
        if name not in star:
            raise PayloadError(f"Missing required star field: {name}", {"field": name})
        if not isinstance(star[name], str):
            raise PayloadError(f"Star field '{name}' must be a string", {"field": name})

    unknown = sorted(set(star) - set(REQUIRED_STAR_FIELDS) - set(OPTIONAL_STAR_FIELDS))
    if unknown:
        raise PayloadError(f"Unknown star fields: {', '.join(unknown)}", {"fields": unknown})

    for name in OPTIONAL_STAR_FIELDS:
        if name in star and not isinstance(star[name], str):
            raise PayloadError(f"Star field '{name}' must be a string", {"field": name})

    story = star["story"]
    if len(story) > max_story_length:
        raise PayloadError(
            f"The length of the star story is greater than {max_story_length}",
            {"max_length": max_story_length, "length": len(story)},
        )
    if not story.isascii():
        raise PayloadError("The star story must contain ASCII characters only")

    encoded_star = dict(star)
    encoded_star["story"] = encode_story(story)
    return {"address": address, "star": encoded_star}


def with_decoded_story(block_data: dict[str, Any]) -> dict[str, Any]:
    """
    Copy a block dictionary and add body.star.storyDecoded.

    Blocks that do not carry a star are returned unchanged.
    """
    result = copy.deepcopy(block_data)
    body = result.get("body")
    if not isinstance(body, dict):
        return result
    star = body.get("star")
    if not isinstance(star, dict) or not isinstance(star.get("story"), str):
        return result

    try:
        star["storyDecoded"] = decode_story(star["story"])
    except ValueError:
        logger.warning(
            "Stored star story is not valid hex",
            extra={"height": result.get("height")},
        )
    return result
