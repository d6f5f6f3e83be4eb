"""
Unit Test Configuration
=======================
Fixtures for pure logic tests - NO NETWORK ALLOWED.

All unit tests should be completely isolated from:
- Network (RPC, HTTP)
- File system (except tmp_path, where the sqlite store lives)
"""

import pytest


# ============================================================================
# AUTOUSE: ENFORCE I/O ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def isolate_unit_tests(monkeypatch):
    """
    Automatically disable all network I/O for unit tests.
    Any test that accidentally tries to make a network call will fail.
    """
    def block_network(*args, **kwargs):
        raise RuntimeError(
            "Network I/O detected in unit test! "
            "Unit tests must use MockLedgerClient. "
            "Use integration tests for HTTP-level code."
        )

    monkeypatch.setattr("httpx.AsyncClient.get", block_network)
    monkeypatch.setattr("httpx.AsyncClient.post", block_network)
    monkeypatch.setattr("httpx.AsyncClient.request", block_network)


# ============================================================================
# SCENARIO FIXTURES
# ============================================================================


@pytest.fixture
def sponsored(operator, ledger):
    """
    One sponsored ATA: operator paid the deposit, user owns it,
    operator holds close authority, balance already emptied.
    Returns (account, user, mint, tx).
    """
    from tests.mocks.mock_ledger import new_address, sponsorship_tx, token_account_state

    account, user, mint = new_address(), new_address(), new_address()
    tx = sponsorship_tx(operator, account, user, mint, signature="sig-create", slot=100)
    ledger.set_history(operator, [tx])
    ledger.set_account(token_account_state(account, owner=user, mint=mint, close_authority=operator))
    return account, user, mint, tx
