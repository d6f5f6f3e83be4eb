"""
Rent Reclaimer Test Configuration
=================================
Shared fixtures and pytest markers for the test suite.
"""

import pytest
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )
    config.addinivalue_line(
        "markers", "integration: marks integration tests"
    )


# ============================================================================
# SHARED FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def quiet_logger():
    """Keep console output out of test runs (file log still written)."""
    from src.shared.system.logging import Logger

    Logger.set_silent(True)
    yield
    Logger.set_silent(False)


@pytest.fixture
def store(tmp_path):
    """RentStore on an ephemeral sqlite file."""
    from src.modules.rent_reclaimer.store import RentStore

    return RentStore(str(tmp_path / "rent.db"), whitelist_path=str(tmp_path / "whitelist.json"))


@pytest.fixture
def ledger():
    from tests.mocks.mock_ledger import MockLedgerClient

    return MockLedgerClient()


@pytest.fixture
def operator_keypair():
    from solders.keypair import Keypair

    return Keypair()


@pytest.fixture
def operator(operator_keypair):
    return str(operator_keypair.pubkey())


@pytest.fixture
def config():
    """Live-mode config with no pacing delays."""
    from src.modules.rent_reclaimer.config import RentReclaimerConfig

    return RentReclaimerConfig(PAGE_DELAY_SECONDS=0, DRY_RUN=False)


@pytest.fixture
def registry():
    from src.modules.rent_reclaimer.registry import InFlightRegistry

    return InFlightRegistry()
