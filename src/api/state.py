"""
Shared state for the StarLedger API.

This module holds the shared instances used across all blueprints.
They are set up by create_app() through init_state() and read by the
blueprints at request time (state.blockchain, state.mempool).
"""

import logging

from blockchain import Blockchain
from config import StarLedgerConfig
from mempool import Mempool
from storage import get_storage_backend

logger = logging.getLogger(__name__)

# ============================================================
# Shared State
# ============================================================

config: StarLedgerConfig = StarLedgerConfig()
blockchain: Blockchain | None = None
mempool: Mempool | None = None


def init_state(
    app_config: StarLedgerConfig,
    chain: Blockchain | None = None,
    pool: Mempool | None = None,
) -> None:
    """
    Initialize the shared ledger and validation pool.

    Instances passed in are used as given; missing ones are built from
    the configuration.
    """
    global config, blockchain, mempool

    if mempool is not None and mempool is not pool:
        mempool.shutdown()

    config = app_config

    if chain is None:
        storage = get_storage_backend(config.storage_backend, config.chain_data_file)
        chain = Blockchain(storage)
    if pool is None:
        pool = Mempool(
            window_seconds=config.validation_window_seconds,
            protocol_tag=config.protocol_tag,
        )

    blockchain = chain
    mempool = pool

    logger.info(
        "API state initialized",
        extra={
            "storage_backend": type(chain.storage).__name__,
            "height": chain.get_block_height(),
            "validation_window": pool.window_seconds,
        },
    )
