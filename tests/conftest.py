"""
Pytest configuration and shared fixtures for StarLedger tests.

This module provides shared fixtures and test configuration including:
- In-memory ledgers with a fixed clock
- Validation pools driven by a manual scheduler
- Wallet identities for signing challenges
- Flask app and client wired to the fixtures above
- Metrics reset between tests
"""

import os
import sys

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from api import create_app
from blockchain import Blockchain
from config import StarLedgerConfig
from identity import WalletIdentity
from mempool import Mempool
from monitoring.metrics import metrics
from scheduler import ManualScheduler
from storage.memory import MemoryStorage

# Fixed "now" used by every clock-driven fixture
START_TIME = 1_700_000_000


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty metrics."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def memory_storage():
    """Empty in-memory key-value store."""
    return MemoryStorage()


@pytest.fixture
def blockchain(memory_storage):
    """Fresh ledger (genesis only) over in-memory storage."""
    return Blockchain(memory_storage, clock=lambda: START_TIME)


@pytest.fixture
def manual_scheduler():
    """Deterministic scheduler starting at START_TIME."""
    return ManualScheduler(start=START_TIME)


@pytest.fixture
def mempool(manual_scheduler):
    """Validation pool with the default window on the manual clock."""
    pool = Mempool(window_seconds=300, scheduler=manual_scheduler)
    yield pool
    pool.shutdown()


@pytest.fixture
def wallet():
    """A fresh Ed25519 wallet."""
    return WalletIdentity.generate()


@pytest.fixture
def other_wallet():
    """A second, unrelated wallet."""
    return WalletIdentity.generate()


@pytest.fixture
def flask_app(blockchain, mempool):
    """Flask test app serving the fixture ledger and pool."""
    config = StarLedgerConfig(storage_backend="memory")
    app = create_app(config, blockchain=blockchain, mempool=mempool)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def flask_client(flask_app):
    """Create Flask test client."""
    return flask_app.test_client()


@pytest.fixture
def star_payload():
    """Factory for star registration payloads."""

    def _make(address, story="Found star using https://www.google.com/sky/", **extra):
        star = {"ra": "16h 29m 1.0s", "dec": "-26° 29' 24.9", "story": story}
        star.update(extra)
        return {"address": address, "star": star}

    return _make
