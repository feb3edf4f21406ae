"""
StarLedger - Wallet Identity and Message Signatures

Provides Ed25519 keypair generation, message signing, and signature
verification for the validation pool's challenge messages.

A wallet address is the base64-encoded raw Ed25519 public key (32 bytes).
A signature is the base64-encoded Ed25519 signature (64 bytes) over the
UTF-8 bytes of the challenge message.

Usage:
    # Generate a new wallet
    wallet = WalletIdentity.generate()
    signature = wallet.sign_message("addr:1700000000:starRegistry")

    # Verify a signature
    ok = verify_message(message, wallet.address, signature)
"""

import base64
import binascii
import hashlib
import logging
import os

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)

from errors import VerificationError

logger = logging.getLogger(__name__)

PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64


def _b64decode_strict(value: str, what: str) -> bytes:
    """Decode base64, raising VerificationError on malformed input."""
    if not isinstance(value, str) or not value:
        raise VerificationError(f"{what} must be a non-empty base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise VerificationError(f"{what} is not valid base64", cause=e) from e


def verify_message(message: str, address: str, signature: str) -> bool:
    """
    Verify a signature over a message for a wallet address.

    Args:
        message: The signed message text
        address: Base64-encoded Ed25519 public key
        signature: Base64-encoded Ed25519 signature

    Returns:
        True if the signature is valid, False if it is well-formed but wrong

    Raises:
        VerificationError: If the address or signature cannot be decoded
    """
    public_key_bytes = _b64decode_strict(address, "Address")
    if len(public_key_bytes) != PUBLIC_KEY_LENGTH:
        raise VerificationError(
            f"Address must decode to {PUBLIC_KEY_LENGTH} bytes, got {len(public_key_bytes)}"
        )

    signature_bytes = _b64decode_strict(signature, "Signature")
    if len(signature_bytes) != SIGNATURE_LENGTH:
        raise VerificationError(
            f"Signature must decode to {SIGNATURE_LENGTH} bytes, got {len(signature_bytes)}"
        )

    try:
        public_key = Ed25519PublicKey.from_public_bytes(public_key_bytes)
    except ValueError as e:
        raise VerificationError("Address is not a valid Ed25519 public key", cause=e) from e

    try:
        public_key.verify(signature_bytes, message.encode("utf-8"))
        return True
    except InvalidSignature:
        return False


class WalletIdentity:
    """
    An Ed25519 wallet able to sign validation challenges.

    Used by clients, tests and the CLI; the server only ever verifies.
    """

    def __init__(self, private_key: Ed25519PrivateKey):
        self._private_key = private_key
        self._public_key = private_key.public_key()

    @classmethod
    def generate(cls) -> "WalletIdentity":
        """Generate a new Ed25519 keypair."""
        identity = cls(Ed25519PrivateKey.generate())
        logger.info("Generated new wallet %s", identity.fingerprint)
        return identity

    @property
    def public_key_bytes(self) -> bytes:
        """Get the raw public key bytes (32 bytes)."""
        return self._public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)

    @property
    def address(self) -> str:
        """Get the wallet address (base64 public key)."""
        return base64.b64encode(self.public_key_bytes).decode("ascii")

    @property
    def fingerprint(self) -> str:
        """First 16 hex chars of the SHA-256 of the public key."""
        return hashlib.sha256(self.public_key_bytes).hexdigest()[:16]

    def sign_message(self, message: str) -> str:
        """
        Sign a message.

        Returns:
            Base64-encoded Ed25519 signature
        """
        signature = self._private_key.sign(message.encode("utf-8"))
        return base64.b64encode(signature).decode("ascii")

    def save(self, path: str, passphrase: str | None = None) -> None:
        """
        Save the private key as PEM, encrypted when a passphrase is given.
        """
        if passphrase:
            encryption = BestAvailableEncryption(passphrase.encode("utf-8"))
        else:
            encryption = NoEncryption()

        private_bytes = self._private_key.private_bytes(
            Encoding.PEM, PrivateFormat.PKCS8, encryption
        )

        # Owner read/write only
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        try:
            os.write(fd, private_bytes)
        finally:
            os.close(fd)

        logger.info("Saved wallet %s to %s", self.fingerprint, path)

    @classmethod
    def load(cls, path: str, passphrase: str | None = None) -> "WalletIdentity":
        """Load a wallet saved with save()."""
        with open(path, "rb") as f:
            private_bytes = f.read()

        pw = passphrase.encode("utf-8") if passphrase else None
        private_key = load_pem_private_key(private_bytes, password=pw)
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError(f"{path} does not hold an Ed25519 private key")

        identity = cls(private_key)
        logger.info("Loaded wallet %s from %s", identity.fingerprint, path)
        return identity
