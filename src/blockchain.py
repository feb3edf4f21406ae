"""
StarLedger - Append-only Hash-linked Ledger
Core block data structure and ledger manager
"""

import copy
import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from errors import BlockNotFoundError, PayloadError
from monitoring.metrics import metrics
from storage.base import KeyNotFoundError, KeyValueStore, StorageReadError
from storage.memory import MemoryStorage

logger = logging.getLogger(__name__)

# Payload of the well-known first block (height 0)
GENESIS_BLOCK_BODY = {
    "address": "1JsrVe7pHZGUrJB4NnjfXwDckAMmiXsDHN",
    "star": {
        "ra": "17h 22m 13.1s",
        "dec": "-27° 14' 8.2",
        "story": "466f756e642073746172207573696e672068747470733a2f2f7777772e676f6f676c652e636f6d2f736b792f",
    },
}

# Discrepancy kinds reported by validate_chain
DISCREPANCY_BLOCK_HASH = "block_hash"
DISCREPANCY_PREVIOUS_HASH = "previous_block_hash"
DISCREPANCY_MISSING_BLOCK = "missing_block"

# Persisted field order; the digest depends on it
BLOCK_FIELDS = ("hash", "height", "body", "time", "previousBlockHash")


def _canonical_json(data: Any) -> str:
    """Compact JSON with insertion order kept and non-ASCII left as is."""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def compute_block_hash(block_data: dict[str, Any]) -> str:
    """
    Compute the SHA-256 digest of a block.

    The digest covers every persisted field in BLOCK_FIELDS order with
    "hash" set to the empty string.

    Args:
        block_data: Block dictionary (the "hash" value is ignored)

    Returns:
        Lowercase hex digest
    """
    payload = {name: block_data.get(name) for name in BLOCK_FIELDS}
    payload["hash"] = ""
    return hashlib.sha256(_canonical_json(payload).encode("utf-8")).hexdigest()


class Block:
    """
    A block in the ledger.

    Holds an opaque body; height, time and the hash links are assigned by
    Blockchain when the block is appended.
    """

    def __init__(
        self,
        body: Any,
        height: int = 0,
        time: str = "",
        previous_block_hash: str = "",
        hash: str = "",
    ):
        self.hash = hash
        self.height = height
        self.body = body
        self.time = time
        self.previous_block_hash = previous_block_hash

    @property
    def timestamp(self) -> int:
        """Block time as integer seconds since epoch."""
        return int(self.time) if self.time else 0

    def calculate_hash(self) -> str:
        """Calculate the digest of this block with its own hash cleared."""
        return compute_block_hash(self.to_dict())

    def to_dict(self) -> dict[str, Any]:
        """Convert block to dictionary for serialization."""
        return {
            "hash": self.hash,
            "height": self.height,
            "body": self.body,
            "time": self.time,
            "previousBlockHash": self.previous_block_hash,
        }

    def to_bytes(self) -> bytes:
        """Serialize the block for the key-value store."""
        return _canonical_json(self.to_dict()).encode("utf-8")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Block":
        """Create block from dictionary."""
        missing = [name for name in BLOCK_FIELDS if name not in data]
        if missing:
            raise ValueError(f"Block is missing fields: {', '.join(missing)}")
        return cls(
            body=data["body"],
            height=data["height"],
            time=data["time"],
            previous_block_hash=data["previousBlockHash"],
            hash=data["hash"],
        )

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Block":
        """
        Deserialize a stored block.

        Raises:
            StorageReadError: If the stored value is not a valid block
        """
        try:
            data = json.loads(raw.decode("utf-8"))
            if not isinstance(data, dict):
                raise ValueError("stored value is not a JSON object")
            return cls.from_dict(data)
        except (UnicodeDecodeError, ValueError) as e:
            raise StorageReadError(f"Corrupted block record: {e}") from e

    def __repr__(self) -> str:
        return f"Block(height={self.height}, hash={self.hash[:12]!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Block):
            return NotImplemented
        return self.to_dict() == other.to_dict()


@dataclass(frozen=True)
class ChainDiscrepancy:
    """One integrity finding reported by Blockchain.validate_chain."""

    kind: str
    height: int

    @property
    def message(self) -> str:
        if self.kind == DISCREPANCY_BLOCK_HASH:
            return f"block hash invalid for block {self.height}"
        if self.kind == DISCREPANCY_PREVIOUS_HASH:
            return f"previous block hash invalid for block {self.height}"
        return f"block missing at height {self.height}"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "height": self.height, "message": self.message}

    def __str__(self) -> str:
        return self.message


class Blockchain:
    """
    The ledger manager.

    Owns genesis creation, height bookkeeping, appends and integrity
    validation over a KeyValueStore keyed by block height. All writes are
    serialized by a single lock; reads take no ledger lock.
    """

    def __init__(
        self,
        storage: KeyValueStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the ledger and bootstrap the genesis block.

        Args:
            storage: Backing key-value store (defaults to in-memory)
            clock: Returns seconds since epoch; used for block time
        """
        self.storage = storage if storage is not None else MemoryStorage()
        self._clock = clock
        self._write_lock = threading.Lock()

        self.generate_genesis_block()

    def _timestamp(self) -> str:
        return str(int(self._clock()))

    def _write_genesis_block(self) -> Block:
        """Build and persist the genesis block. Caller holds the write lock."""
        genesis = Block(
            body=copy.deepcopy(GENESIS_BLOCK_BODY),
            height=0,
            time=self._timestamp(),
            previous_block_hash="",
        )
        genesis.hash = genesis.calculate_hash()
        self.storage.put(0, genesis.to_bytes())
        return genesis

    def generate_genesis_block(self) -> Block | None:
        """
        Create the genesis block if the ledger is empty.

        Returns:
            The new genesis block, or None if one already existed
        """
        with self._write_lock:
            height = self.get_block_height()
            if height >= 0:
                logger.info("Genesis block already exists. Current height is %d", height)
                return None

            genesis = self._write_genesis_block()

        logger.info("Genesis block inserted", extra={"block_hash": genesis.hash})
        return genesis

    def get_block_height(self) -> int:
        """
        Get the height of the tip of the ledger.

        Returns:
            Number of stored blocks minus one; -1 for an empty ledger
        """
        return self.storage.count() - 1

    def get_block(self, height: int) -> Block:
        """
        Get the block at a height.

        Raises:
            BlockNotFoundError: If no block is stored at that height
        """
        if isinstance(height, bool) or not isinstance(height, int) or height < 0:
            raise BlockNotFoundError(height=height)
        try:
            raw = self.storage.get(height)
        except KeyNotFoundError:
            raise BlockNotFoundError(height=height) from None
        return Block.from_bytes(raw)

    def get_block_by_hash(self, block_hash: str) -> Block:
        """
        Find a block by its hash (linear scan).

        Raises:
            BlockNotFoundError: If no block has that hash
        """
        for _, raw in self.storage.scan():
            block = Block.from_bytes(raw)
            if block.hash == block_hash:
                return block
        raise BlockNotFoundError(block_hash=block_hash)

    def get_blocks_by_address(self, address: str) -> list[Block]:
        """
        Collect every block whose body belongs to an address (linear scan).

        Returns:
            Matching blocks in height order; empty if none match
        """
        blocks = []
        for _, raw in self.storage.scan():
            block = Block.from_bytes(raw)
            if isinstance(block.body, dict) and block.body.get("address") == address:
                blocks.append(block)
        return blocks

    def add_block(self, body: Any) -> Block:
        """
        Append a new block carrying body.

        The read of the tip and the write of the new block happen under the
        write lock, so concurrent callers get distinct consecutive heights.

        Args:
            body: JSON-serializable payload, stored as given

        Returns:
            The fully populated block

        Raises:
            PayloadError: If body cannot be serialized
            StorageError: If reading the tip or writing the block fails
        """
        try:
            body = json.loads(_canonical_json(body))
        except (TypeError, ValueError) as e:
            raise PayloadError(f"Block body must be JSON serializable: {e}") from e

        with self._write_lock, metrics.timer("block_append_duration_ms"):
            height = self.get_block_height()

            if height < 0:
                genesis = self._write_genesis_block()
                logger.warning("Ledger was empty on append; genesis block re-created")
                previous_hash = genesis.hash
                new_height = 1
            else:
                previous_hash = self.get_block(height).hash
                new_height = height + 1

            block = Block(
                body=body,
                height=new_height,
                time=self._timestamp(),
                previous_block_hash=previous_hash,
            )
            block.hash = block.calculate_hash()
            self.storage.put(new_height, block.to_bytes())

        metrics.increment("blocks_appended_total")
        logger.info(
            "Block %d appended",
            block.height,
            extra={"block_hash": block.hash},
        )
        return block

    def validate_block(self, height: int) -> bool:
        """
        Check that the block at height still matches its stored hash.

        Raises:
            BlockNotFoundError: If no block is stored at that height
        """
        block = self.get_block(height)
        return block.hash == block.calculate_hash()

    def validate_block_link(self, height: int) -> bool:
        """
        Check that the block at height points to its predecessor.

        The genesis block is linked iff its previous hash is empty.

        Raises:
            BlockNotFoundError: If the block or its predecessor is missing
        """
        block = self.get_block(height)
        if height == 0:
            return block.previous_block_hash == ""
        previous = self.get_block(height - 1)
        return block.previous_block_hash == previous.hash

    def validate_chain(self) -> list[ChainDiscrepancy]:
        """
        Validate every block up to the current tip.

        The tip is read once before the scan; blocks appended during the
        scan are not examined.

        Returns:
            Hash findings followed by link findings; empty if the chain is valid
        """
        chain_height = self.get_block_height()
        hash_errors = []
        link_errors = []

        for height in range(chain_height + 1):
            try:
                if not self.validate_block(height):
                    hash_errors.append(ChainDiscrepancy(DISCREPANCY_BLOCK_HASH, height))
            except BlockNotFoundError:
                hash_errors.append(ChainDiscrepancy(DISCREPANCY_MISSING_BLOCK, height))
                continue

            try:
                if not self.validate_block_link(height):
                    link_errors.append(ChainDiscrepancy(DISCREPANCY_PREVIOUS_HASH, height))
            except BlockNotFoundError:
                # Predecessor missing; reported under its own height
                link_errors.append(ChainDiscrepancy(DISCREPANCY_PREVIOUS_HASH, height))

        errors = hash_errors + link_errors
        if errors:
            logger.warning(
                "Chain validation found %d discrepancies",
                len(errors),
                extra={"chain_height": chain_height},
            )
        return errors

    def modify_block(self, height: int, block: Block | dict[str, Any]) -> None:
        """
        Overwrite the stored block at height, bypassing every chain rule.

        Intended for tamper simulation in tests and tooling.
        """
        if isinstance(block, dict):
            block = Block.from_dict(block)
        with self._write_lock:
            self.storage.put(height, block.to_bytes())
        logger.warning("Block %d overwritten outside the append path", height)

    def get_info(self) -> dict[str, Any]:
        """Summary of the ledger and its storage backend."""
        return {
            "height": self.get_block_height(),
            "storage": self.storage.get_info(),
        }
