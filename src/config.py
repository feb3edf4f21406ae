"""
StarLedger configuration.

All settings come from environment variables (optionally loaded from a
.env file by the entry points via python-dotenv).

Environment Variables:
    STORAGE_BACKEND=json
    CHAIN_DATA_FILE=chaindata.json
    VALIDATION_WINDOW_SECONDS=300
    PROTOCOL_TAG=starRegistry
    MAX_STORY_LENGTH=250
    HOST=0.0.0.0
    PORT=8000
    LOG_LEVEL=INFO
    LOG_FORMAT=json
"""

import os
from dataclasses import dataclass

DEFAULT_VALIDATION_WINDOW_SECONDS = 5 * 60
DEFAULT_PROTOCOL_TAG = "starRegistry"
DEFAULT_MAX_STORY_LENGTH = 250


@dataclass
class StarLedgerConfig:
    """Runtime configuration for the ledger, the mempool and the API."""

    # Storage
    storage_backend: str = "json"
    chain_data_file: str = "chaindata.json"

    # Validation pool
    validation_window_seconds: int = DEFAULT_VALIDATION_WINDOW_SECONDS
    protocol_tag: str = DEFAULT_PROTOCOL_TAG

    # Star payloads
    max_story_length: int = DEFAULT_MAX_STORY_LENGTH

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    def __post_init__(self):
        if self.validation_window_seconds <= 0:
            raise ValueError("validation_window_seconds must be positive")
        if self.max_story_length <= 0:
            raise ValueError("max_story_length must be positive")
        if not self.protocol_tag:
            raise ValueError("protocol_tag must not be empty")

    @classmethod
    def from_env(cls) -> "StarLedgerConfig":
        """Create configuration from environment variables."""
        return cls(
            storage_backend=os.getenv("STORAGE_BACKEND", "json").lower(),
            chain_data_file=os.getenv("CHAIN_DATA_FILE", "chaindata.json"),
            validation_window_seconds=int(
                os.getenv("VALIDATION_WINDOW_SECONDS", str(DEFAULT_VALIDATION_WINDOW_SECONDS))
            ),
            protocol_tag=os.getenv("PROTOCOL_TAG", DEFAULT_PROTOCOL_TAG),
            max_story_length=int(os.getenv("MAX_STORY_LENGTH", str(DEFAULT_MAX_STORY_LENGTH))),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            json_logs=os.getenv("LOG_FORMAT", "").lower() == "json",
        )
