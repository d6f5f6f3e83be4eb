"""
Ledger Client
=============
Uniform access to Solana history, account snapshots and transaction submission.

One implementation per history provider; the provider is picked once at
startup by `create_ledger_client()` from the available credentials.

Read policy:
- 429 responses are retried with exponential backoff (1s, 2s, 4s...)
- transport errors are retried with a lighter 0.5s base
- 404 on a history read is an empty page, not an error
- exhausted retries raise LedgerError (RateLimitError if still throttled)
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.models import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from config.settings import Settings
from src.shared.models.ledger import AccountState, LedgerTransaction
from src.shared.system.logging import Logger


class LedgerError(Exception):
    """Read or transport failure after retries."""


class RateLimitError(LedgerError):
    """Provider kept answering 429."""


class SubmissionError(LedgerError):
    """A mutation was rejected, failed on-chain or could not be confirmed."""


TRANSIENT_ERRORS = (httpx.HTTPError, SolanaRpcException, LedgerError, asyncio.TimeoutError)


def _is_rate_limited(error: BaseException) -> bool:
    if isinstance(error, RateLimitError):
        return True
    cause = error if isinstance(error, httpx.HTTPStatusError) else error.__cause__
    if isinstance(cause, httpx.HTTPStatusError):
        return cause.response.status_code == 429
    return False


class LedgerClient:
    """
    Base client: account reads, rent lookups and submission over JSON-RPC
    (solana-py AsyncClient). Subclasses provide `fetch_history`.
    """

    name = "RPC"
    ACCOUNT_BATCH_SIZE = 100

    def __init__(
        self,
        rpc_url: str,
        max_retries: int = 3,
        base_delay: float = 0.5,
        rate_limit_delay: float = 1.0,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.rate_limit_delay = rate_limit_delay
        self.client = AsyncClient(rpc_url, commitment=Confirmed, timeout=timeout)
        self.http = http_client or httpx.AsyncClient(timeout=timeout)

    # =========================================================================
    # RETRY
    # =========================================================================

    async def _with_retry(self, label: str, call: Callable[[], Awaitable[Any]]) -> Any:
        last_error: Optional[BaseException] = None
        for attempt in range(self.max_retries):
            try:
                return await call()
            except TRANSIENT_ERRORS as e:
                last_error = e
                if _is_rate_limited(e):
                    wait = self.rate_limit_delay * (2 ** attempt)
                    Logger.warning(f"⏳ [LEDGER] {self.name} rate limited on {label} - backoff {wait:.1f}s")
                else:
                    wait = self.base_delay * (2 ** attempt)
                    Logger.debug(f"[LEDGER] {self.name} {label} failed ({e}) - retry in {wait:.1f}s")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(wait)

        if last_error is not None and _is_rate_limited(last_error):
            raise RateLimitError(f"{label}: still rate limited after {self.max_retries} attempts") from last_error
        raise LedgerError(f"{label} failed after {self.max_retries} attempts: {last_error}") from last_error

    async def _request_json(
        self,
        method: str,
        url: str,
        label: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Any] = None,
        not_found: Any = None,
    ) -> Any:
        """HTTP call with the read policy applied. 404 returns `not_found`."""

        async def call():
            response = await self.http.request(method, url, params=params, json=payload)
            if response.status_code == 429:
                raise RateLimitError(f"{label}: HTTP 429")
            if response.status_code == 404:
                return not_found
            response.raise_for_status()
            return response.json()

        return await self._with_retry(label, call)

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        """Raw JSON-RPC call returning `result`."""

        async def call():
            response = await self.http.post(
                self.rpc_url,
                json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
            )
            if response.status_code == 429:
                raise RateLimitError(f"{method}: HTTP 429")
            response.raise_for_status()
            body = response.json()
            error = body.get("error")
            if error:
                if error.get("code") == 429:
                    raise RateLimitError(f"{method}: {error.get('message')}")
                raise LedgerError(f"{method}: {error.get('message', error)}")
            return body.get("result")

        return await self._with_retry(method, call)

    # =========================================================================
    # HISTORY
    # =========================================================================

    async def fetch_history(
        self,
        address: str,
        before: Optional[str] = None,
        limit: int = 100,
        type_hint: Optional[str] = None,
    ) -> List[LedgerTransaction]:
        """Transactions touching `address`, newest first, strictly older than `before`."""
        raise NotImplementedError

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def fetch_account_state(self, address: str) -> Optional[AccountState]:
        states = await self.fetch_account_states([address])
        return states[0]

    async def fetch_account_states(self, addresses: Sequence[str]) -> List[Optional[AccountState]]:
        """Batched snapshot read. Missing accounts come back as None, order preserved."""
        states: List[Optional[AccountState]] = []
        for i in range(0, len(addresses), self.ACCOUNT_BATCH_SIZE):
            chunk = list(addresses[i:i + self.ACCOUNT_BATCH_SIZE])
            pubkeys = [Pubkey.from_string(a) for a in chunk]
            resp = await self._with_retry(
                "getMultipleAccounts",
                lambda: self.client.get_multiple_accounts(pubkeys, commitment=Confirmed, encoding="base64"),
            )
            for address, account in zip(chunk, resp.value):
                if account is None:
                    states.append(None)
                    continue
                states.append(AccountState(
                    address=address,
                    lamports=account.lamports,
                    owner=str(account.owner),
                    data=bytes(account.data),
                    executable=account.executable,
                ))
        return states

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        resp = await self._with_retry(
            "getMinimumBalanceForRentExemption",
            lambda: self.client.get_minimum_balance_for_rent_exemption(size),
        )
        return resp.value

    async def get_balance(self, address: str) -> int:
        pubkey = Pubkey.from_string(address)
        resp = await self._with_retry("getBalance", lambda: self.client.get_balance(pubkey))
        return resp.value

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def submit_mutation(self, instructions: List[Instruction], signer: Keypair) -> str:
        """
        Sign, send and confirm one atomic transaction.

        Returns the signature. Raises SubmissionError on any failure.
        """
        try:
            blockhash = (await self._with_retry(
                "getLatestBlockhash",
                lambda: self.client.get_latest_blockhash(commitment=Confirmed),
            )).value

            msg = MessageV0.try_compile(
                payer=signer.pubkey(),
                instructions=instructions,
                address_lookup_table_accounts=[],
                recent_blockhash=blockhash.blockhash,
            )
            tx = VersionedTransaction(msg, [signer])

            signature = (await self.client.send_transaction(
                tx, opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed)
            )).value

            confirmation = await self.client.confirm_transaction(
                signature,
                commitment=Confirmed,
                last_valid_block_height=blockhash.last_valid_block_height,
            )
        except SubmissionError:
            raise
        except Exception as e:
            raise SubmissionError(f"{type(e).__name__}: {e}") from e

        status = confirmation.value[0] if confirmation.value else None
        if status is None:
            raise SubmissionError(f"{signature}: not confirmed")
        if status.err is not None:
            raise SubmissionError(f"{signature}: failed on-chain ({status.err})")
        return str(signature)

    async def close(self) -> None:
        await self.client.close()
        await self.http.aclose()


def create_ledger_client() -> LedgerClient:
    """Pick the history provider from configured credentials."""
    from src.shared.infrastructure.helius_client import HeliusLedgerClient
    from src.shared.infrastructure.solana_rpc_client import SolanaRpcLedgerClient

    rpc_url = Settings.resolve_rpc_url()
    if Settings.HELIUS_API_KEY:
        Logger.info("[LEDGER] Using Helius enhanced history")
        return HeliusLedgerClient(
            api_key=Settings.HELIUS_API_KEY,
            rpc_url=rpc_url,
            api_url=Settings.HELIUS_API_URL,
        )

    if rpc_url == Settings.PUBLIC_RPC_URL:
        Logger.warning("⚠️ [LEDGER] No provider credentials - falling back to public RPC (heavily rate limited)")
    else:
        Logger.info("[LEDGER] Using standard JSON-RPC history")
    return SolanaRpcLedgerClient(rpc_url=rpc_url)
