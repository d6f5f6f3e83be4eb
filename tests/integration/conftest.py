"""
Integration Test Configuration
==============================
Fixtures for HTTP-level tests: real httpx clients over a mock transport.
"""

import json

import httpx
import pytest


# ============================================================================
# MOCKED EXTERNAL SERVICES
# ============================================================================


@pytest.fixture
def http_script():
    """
    Scripted HTTP backend.

    Usage:
        http_script.responses.append(httpx.Response(429))
        client = http_script.client()
        ...
        assert len(http_script.requests) == 2
    """

    class Script:
        def __init__(self):
            self.responses = []
            self.requests = []
            self.handler = None  # optional callable(request) -> Response

        def _handle(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if self.handler is not None:
                return self.handler(request)
            if not self.responses:
                return httpx.Response(500, json={"error": "no scripted response"})
            return self.responses.pop(0)

        def client(self) -> httpx.AsyncClient:
            return httpx.AsyncClient(transport=httpx.MockTransport(self._handle))

        def json_bodies(self):
            return [json.loads(r.content) for r in self.requests]

    return Script()


@pytest.fixture
def helius_client(http_script):
    from src.shared.infrastructure.helius_client import HeliusLedgerClient

    return HeliusLedgerClient(
        api_key="test-key",
        rpc_url="http://rpc.test",
        api_url="http://helius.test/v0",
        base_delay=0,
        rate_limit_delay=0,
        http_client=http_script.client(),
    )


@pytest.fixture
def rpc_client(http_script):
    from src.shared.infrastructure.solana_rpc_client import SolanaRpcLedgerClient

    return SolanaRpcLedgerClient(
        rpc_url="http://rpc.test",
        base_delay=0,
        rate_limit_delay=0,
        http_client=http_script.client(),
    )
