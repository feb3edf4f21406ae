"""
StarLedger - Domain Exception Hierarchy

Provides the exceptions raised by the ledger and the validation pool.
Every exception carries structured context so the API layer can turn it
into a response and the logs can record it without string parsing.

Storage failures live in storage.base (StorageError and subclasses).
Chain integrity findings are returned as data, never raised.
"""

from typing import Any


class StarLedgerError(Exception):
    """Base exception for all StarLedger domain errors."""

    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        result = {
            "error_type": type(self).__name__,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Lookup Errors
# =============================================================================

class NotFoundError(StarLedgerError):
    """Raised when a requested height, hash or identity does not exist."""

    status_code = 404


class BlockNotFoundError(NotFoundError):
    """Raised when no block exists at a height or with a hash."""

    def __init__(self, height: int | None = None, block_hash: str | None = None):
        if block_hash is not None:
            message = f"Block has not been found by hash: {block_hash}"
            details = {"hash": block_hash}
        else:
            message = f"Block has not been found at height: {height}"
            details = {"height": height}
        super().__init__(message, details)
        self.height = height
        self.block_hash = block_hash


class RequestNotFoundError(NotFoundError):
    """Raised when no pending validation request exists for an address."""

    def __init__(self, address: str):
        super().__init__(
            f"Request not found on mempool: {address}",
            {"address": address},
        )
        self.address = address


# =============================================================================
# Caller Input Errors
# =============================================================================

class ValidationError(StarLedgerError):
    """Base class for errors caused by caller input."""

    status_code = 400


class InvalidSignatureError(ValidationError):
    """Raised when a well-formed signature does not match the challenge."""

    def __init__(self, address: str):
        super().__init__(
            f"Signature is not valid: {address}",
            {"address": address},
        )
        self.address = address


class ConfirmationRequiredError(ValidationError):
    """Raised when an address has no unused confirmation to register with."""

    def __init__(self, address: str):
        super().__init__(
            "The request for the wallet address is not valid, does not exist, "
            "or has already been used",
            {"address": address},
        )
        self.address = address


class VerificationError(ValidationError):
    """
    Raised when the signature verifier cannot process its input.

    Examples:
    - Signature is not valid base64
    - Address does not decode to an Ed25519 public key
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause
        if cause:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.cause:
            result["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return result


class PayloadError(ValidationError):
    """Raised when a block payload does not follow the star registry format."""
