"""
StarLedger - Validation Pool

Time-bounded, in-memory registry of identity validation requests.

A wallet first asks for a challenge message (add_request_validation),
signs it, and proves ownership (validate_request_by_wallet). A confirmed
address may register exactly one star, after which the request is consumed
(consume_confirmation). Unconfirmed and unconsumed requests are
evicted once the validation window has elapsed.

State machine per address:
    absent -> pending -> confirmed -> absent
    pending -> absent (window elapsed)
"""

import logging
import threading
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from config import DEFAULT_PROTOCOL_TAG, DEFAULT_VALIDATION_WINDOW_SECONDS
from errors import (
    ConfirmationRequiredError,
    InvalidSignatureError,
    RequestNotFoundError,
    VerificationError,
)
from identity import verify_message
from monitoring.metrics import metrics
from scheduler import EvictionScheduler, TimerScheduler

logger = logging.getLogger(__name__)


@dataclass
class PendingRequest:
    """An outstanding validation request for one wallet address."""

    wallet_address: str
    request_timestamp: int
    message: str
    validation_window: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "walletAddress": self.wallet_address,
            "requestTimeStamp": self.request_timestamp,
            "message": self.message,
            "validationWindow": self.validation_window,
        }


@dataclass
class ConfirmedRequest:
    """Proof that a wallet signed its challenge message."""

    address: str
    request_timestamp: int
    message: str
    validation_window: int
    confirmed: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "registerStar": self.confirmed,
            "status": {
                "address": self.address,
                "requestTimeStamp": self.request_timestamp,
                "message": self.message,
                "validationWindow": self.validation_window,
                "messageSignature": self.confirmed,
            },
        }


class Mempool:
    """
    The validation pool.

    Pending and confirmed maps are guarded by one re-entrant lock. Eviction
    runs through an EvictionScheduler owned by the pool; the scheduler's
    clock is the pool's clock unless one is given explicitly.
    """

    def __init__(
        self,
        window_seconds: int = DEFAULT_VALIDATION_WINDOW_SECONDS,
        protocol_tag: str = DEFAULT_PROTOCOL_TAG,
        verifier: Callable[[str, str, str], bool] = verify_message,
        scheduler: EvictionScheduler | None = None,
        clock: Callable[[], float] | None = None,
    ):
        """
        Initialize the pool.

        Args:
            window_seconds: Lifetime of a request, counted from its request timestamp
            protocol_tag: Suffix of every challenge message
            verifier: verify(message, address, signature) -> bool
            scheduler: Eviction scheduler (defaults to TimerScheduler)
            clock: Seconds since epoch (defaults to the scheduler's clock)
        """
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.window_seconds = window_seconds
        self.protocol_tag = protocol_tag
        self._verifier = verifier
        self._scheduler = scheduler if scheduler is not None else TimerScheduler()
        self._clock = clock if clock is not None else self._scheduler.now

        self._pending: dict[str, PendingRequest] = {}
        self._valid: dict[str, ConfirmedRequest] = {}
        self._claims: dict[str, ConfirmedRequest] = {}
        self._lock = threading.RLock()

    def _now(self) -> int:
        return int(self._clock())

    def _update_pending_gauge(self) -> None:
        metrics.set_gauge("mempool_pending", len(self._pending))

    def build_message(self, address: str, request_timestamp: int) -> str:
        """Challenge message a wallet must sign."""
        return f"{address}:{request_timestamp}:{self.protocol_tag}"

    def verify_window_time(self, request_timestamp: int) -> int:
        """
        Seconds left before a request made at request_timestamp expires.

        May be zero or negative once the window has elapsed.
        """
        return self.window_seconds - (self._now() - int(request_timestamp))

    def add_request_validation(
        self, address: str, request_timestamp: int | None = None
    ) -> PendingRequest:
        """
        Register a validation request, or return the one already pending.

        A repeated request keeps its original message and timestamp; only
        the remaining window is refreshed, and the eviction timer is not
        reset.

        Args:
            address: Wallet address
            request_timestamp: Seconds since epoch (defaults to now)

        Returns:
            The pending request
        """
        if not address:
            raise ValueError("address must not be empty")

        with self._lock:
            existing = self._pending.get(address)
            if existing is not None:
                existing.validation_window = self.verify_window_time(existing.request_timestamp)
                logger.info(
                    "Validation request already exists",
                    extra={"address": address, "validation_window": existing.validation_window},
                )
                return existing

            if request_timestamp is None:
                request_timestamp = self._now()
            request_timestamp = int(request_timestamp)

            request = PendingRequest(
                wallet_address=address,
                request_timestamp=request_timestamp,
                message=self.build_message(address, request_timestamp),
                validation_window=self.verify_window_time(request_timestamp),
            )
            self._pending[address] = request
            self._schedule_eviction(request)
            self._update_pending_gauge()

        metrics.increment("validation_requests_total")
        logger.info("Validation request added", extra={"address": address})
        return request

    def _schedule_eviction(self, request: PendingRequest) -> None:
        """Schedule removal at request_timestamp + window. Caller holds the lock."""
        delay = self.verify_window_time(request.request_timestamp)

        def _evict():
            with self._lock:
                # A request replaced after consumption must not be evicted early
                if self._pending.get(request.wallet_address) is not request:
                    return
                self._remove(request.wallet_address)
            metrics.increment("validation_evictions_total")
            logger.info(
                "Validation request expired",
                extra={"address": request.wallet_address},
            )

        self._scheduler.schedule(request.wallet_address, delay, _evict)

    def validate_request_by_wallet(self, address: str, signature: str) -> ConfirmedRequest:
        """
        Confirm a pending request with a signature over its challenge.

        Confirming an already confirmed address returns the same status
        with a fresh window.

        Raises:
            RequestNotFoundError: If the address has no pending request
            VerificationError: If the verifier cannot process the input
            InvalidSignatureError: If the signature does not match
        """
        with self._lock:
            request = self._pending.get(address)
            if request is None:
                self._record_failure("not_found")
                raise RequestNotFoundError(address)

            try:
                is_valid = self._verifier(request.message, address, signature)
            except VerificationError:
                self._record_failure("verification_error")
                raise
            except Exception as e:
                self._record_failure("verification_error")
                raise VerificationError(
                    f"An error has occurred while validating signature: {e}", cause=e
                ) from e

            if not is_valid:
                self._record_failure("invalid_signature")
                raise InvalidSignatureError(address)

            window = self.verify_window_time(request.request_timestamp)
            confirmed = self._valid.get(address)
            if confirmed is None:
                confirmed = ConfirmedRequest(
                    address=address,
                    request_timestamp=request.request_timestamp,
                    message=request.message,
                    validation_window=window,
                )
                self._valid[address] = confirmed
                metrics.increment("validation_confirmed_total")
                logger.info("Validation request confirmed", extra={"address": address})
            else:
                confirmed.validation_window = window

            return confirmed

    def _record_failure(self, reason: str) -> None:
        metrics.increment("validation_failures_total", labels={"reason": reason})

    def verify_address_request(self, address: str) -> bool:
        """True if the address is confirmed and not yet consumed, claimed or expired."""
        with self._lock:
            return address in self._valid and address not in self._claims

    @contextmanager
    def consume_confirmation(self, address: str):
        """
        Hold the confirmation of an address for exactly one registration.

        The confirmation is claimed under the pool lock before the body
        runs, so concurrent callers for one address cannot both get past
        this point. If the body completes, the request is consumed; if it
        raises, the claim is released and the confirmation stays usable.

        Usage:
            with mempool.consume_confirmation(address):
                blockchain.add_block(body)

        Raises:
            ConfirmationRequiredError: If the address has no unused confirmation
        """
        with self._lock:
            confirmed = self._valid.get(address)
            if confirmed is None or address in self._claims:
                logger.info("Registration refused", extra={"address": address})
                raise ConfirmationRequiredError(address)
            self._claims[address] = confirmed

        try:
            yield confirmed
        except Exception:
            with self._lock:
                self._release_claim(address, confirmed)
            logger.info("Confirmation released", extra={"address": address})
            raise

        with self._lock:
            self._release_claim(address, confirmed)
            # Expired or replaced while held: the newer state is not ours to clear
            if self._valid.get(address) is confirmed:
                self._remove(address)
        metrics.increment("validation_consumed_total")
        logger.info("Validation request consumed", extra={"address": address})

    def _release_claim(self, address: str, confirmed: ConfirmedRequest) -> None:
        """Drop a claim if it is still the one taken. Caller holds the lock."""
        if self._claims.get(address) is confirmed:
            del self._claims[address]

    def get_request(self, address: str) -> PendingRequest | None:
        """Pending request for an address with its window refreshed, if any."""
        with self._lock:
            request = self._pending.get(address)
            if request is not None:
                request.validation_window = self.verify_window_time(request.request_timestamp)
            return request

    def remove_validation_request(self, address: str) -> None:
        """
        Drop every trace of an address: pending, confirmed and its timer.

        Removing an unknown address is a no-op.
        """
        with self._lock:
            removed = self._remove(address)
        if removed:
            logger.info("Validation request removed", extra={"address": address})

    def _remove(self, address: str) -> bool:
        """Clear state for an address. Caller holds the lock."""
        pending = self._pending.pop(address, None)
        confirmed = self._valid.pop(address, None)
        self._claims.pop(address, None)
        self._scheduler.cancel(address)
        self._update_pending_gauge()
        return pending is not None or confirmed is not None

    def get_stats(self) -> dict[str, Any]:
        """Get pool statistics."""
        with self._lock:
            return {
                "pending": len(self._pending),
                "confirmed": len(self._valid),
                "window_seconds": self.window_seconds,
                "protocol_tag": self.protocol_tag,
            }

    def shutdown(self) -> None:
        """Cancel every scheduled eviction and forget all requests."""
        with self._lock:
            self._scheduler.shutdown()
            self._pending.clear()
            self._valid.clear()
            self._claims.clear()
            self._update_pending_gauge()
        logger.info("Validation pool shut down")
