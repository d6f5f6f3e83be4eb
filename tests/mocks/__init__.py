"""
Rent Reclaimer Test Mocks
=========================
Reusable mock classes for isolated testing.
"""

from tests.mocks.mock_ledger import (
    MockLedgerClient,
    filler_tx,
    new_address,
    sponsorship_tx,
    token_account_state,
)

__all__ = [
    "MockLedgerClient",
    "filler_tx",
    "new_address",
    "sponsorship_tx",
    "token_account_state",
]
