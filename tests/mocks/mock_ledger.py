"""
Mock Ledger Client
==================
In-memory stand-in for LedgerClient: scripted history pages, account
snapshots, rent values and recorded mutations. No network.
"""

from typing import Dict, List, Optional, Sequence, Set

from solders.pubkey import Pubkey

from src.modules.rent_reclaimer.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)
from src.modules.rent_reclaimer.token_layout import TokenAccount, encode_token_account
from src.shared.infrastructure.ledger_client import LedgerError, SubmissionError
from src.shared.models.ledger import AccountState, BalanceChange, LedgerInstruction, LedgerTransaction

TOKEN_RENT = 2_039_280
TOKEN_2022_RENT = 2_074_080
TX_FEE = 5_000


def new_address() -> str:
    return str(Pubkey.new_unique())


def token_account_state(
    address: str,
    owner: str,
    mint: Optional[str] = None,
    amount: int = 0,
    close_authority: Optional[str] = None,
    lamports: int = TOKEN_RENT,
    program: str = TOKEN_PROGRAM_ID,
    frozen: bool = False,
) -> AccountState:
    """Snapshot of an initialized SPL token account."""
    data = encode_token_account(TokenAccount(
        mint=mint or new_address(),
        owner=owner,
        amount=amount,
        delegate=None,
        state=2 if frozen else 1,
        is_native=None,
        delegated_amount=0,
        close_authority=close_authority,
    ))
    return AccountState(address=address, lamports=lamports, owner=program, data=data)


def sponsorship_tx(
    operator: str,
    account: str,
    owner: str,
    mint: str,
    signature: str,
    slot: int,
    rent: int = TOKEN_RENT,
    token_program: str = TOKEN_PROGRAM_ID,
    timestamp: int = 1_700_000_000,
) -> LedgerTransaction:
    """Operator pays for an ATA created for `owner` (raw ATA create layout)."""
    return LedgerTransaction(
        signature=signature,
        slot=slot,
        timestamp=timestamp,
        fee=TX_FEE,
        fee_payer=operator,
        type="CREATE_ACCOUNT",
        balance_changes=[
            BalanceChange(account=operator, native_change=-(rent + TX_FEE)),
            BalanceChange(account=account, native_change=rent),
        ],
        instructions=[
            LedgerInstruction(
                program_id=ASSOCIATED_TOKEN_PROGRAM_ID,
                accounts=[operator, account, owner, mint, SYSTEM_PROGRAM_ID, token_program],
                data="",
            ),
        ],
    )


def filler_tx(operator: str, signature: str, slot: int) -> LedgerTransaction:
    """Fee-only operator transaction with no sponsorship."""
    return LedgerTransaction(
        signature=signature,
        slot=slot,
        timestamp=1_700_000_000,
        fee=TX_FEE,
        fee_payer=operator,
        balance_changes=[BalanceChange(account=operator, native_change=-TX_FEE)],
    )


class MockLedgerClient:
    """
    Mock LedgerClient.

    Usage:
        ledger = MockLedgerClient()
        ledger.set_history(operator, txs)          # newest first
        ledger.set_account(token_account_state(...))
        await ledger.fetch_history(operator, before=sig)
    """

    name = "MOCK"

    def __init__(self, rent: int = TOKEN_RENT, rent_2022: int = TOKEN_2022_RENT):
        self.rent_by_size = {165: rent, 170: rent_2022}
        self.history: Dict[str, List[LedgerTransaction]] = {}
        self.accounts: Dict[str, AccountState] = {}
        self.balances: Dict[str, int] = {}

        # Failure scripting
        self.fail_history_after: Optional[int] = None  # successful page fetches before failing
        self.fail_account_reads = False
        self.fail_rent = False
        self.fail_batches = False  # any multi-account close fails
        self.failing_accounts: Set[str] = set()  # closes touching these fail

        # Recording
        self.history_calls = 0
        self.history_requests: List[tuple] = []  # (address, before)
        self.account_reads = 0
        self.submissions: List[List] = []
        self.closed_batches: List[List[str]] = []
        self._sig_counter = 0

    # --- scripting ---
    def set_history(self, address: str, transactions: List[LedgerTransaction]) -> None:
        self.history[address] = list(transactions)

    def prepend_history(self, address: str, transactions: List[LedgerTransaction]) -> None:
        """Add newer transactions on top of existing history."""
        self.history[address] = list(transactions) + self.history.get(address, [])

    def set_account(self, state: AccountState) -> None:
        self.accounts[state.address] = state

    def remove_account(self, address: str) -> None:
        self.accounts.pop(address, None)

    # --- LedgerClient API ---
    async def fetch_history(self, address: str, before: Optional[str] = None,
                            limit: int = 100, type_hint: Optional[str] = None) -> List[LedgerTransaction]:
        if self.fail_history_after is not None and self.history_calls >= self.fail_history_after:
            raise LedgerError("history provider unavailable")
        self.history_calls += 1
        self.history_requests.append((address, before))

        txs = self.history.get(address, [])
        start = 0
        if before:
            signatures = [tx.signature for tx in txs]
            if before not in signatures:
                return []
            start = signatures.index(before) + 1
        return txs[start:start + limit]

    async def fetch_account_states(self, addresses: Sequence[str]) -> List[Optional[AccountState]]:
        if self.fail_account_reads:
            raise LedgerError("getMultipleAccounts failed after 3 attempts")
        self.account_reads += 1
        return [self.accounts.get(a) for a in addresses]

    async def fetch_account_state(self, address: str) -> Optional[AccountState]:
        return (await self.fetch_account_states([address]))[0]

    async def get_minimum_balance_for_rent_exemption(self, size: int) -> int:
        if self.fail_rent:
            raise LedgerError("getMinimumBalanceForRentExemption failed after 3 attempts")
        return self.rent_by_size.get(size, TOKEN_RENT)

    async def get_balance(self, address: str) -> int:
        return self.balances.get(address, 0)

    async def submit_mutation(self, instructions, signer) -> str:
        closed = [
            str(ix.accounts[0].pubkey)
            for ix in instructions
            if str(ix.program_id) in (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID)
        ]
        self.submissions.append(list(instructions))

        if self.fail_batches and len(closed) > 1:
            raise SubmissionError("transaction too large")
        if any(a in self.failing_accounts for a in closed):
            raise SubmissionError("custom program error: 0xb")

        self._sig_counter += 1
        signature = f"mock-sig-{self._sig_counter}"
        self.closed_batches.append(closed)
        for address in closed:
            self.accounts.pop(address, None)
        return signature

    async def close(self) -> None:
        pass

    @property
    def closed_accounts(self) -> List[str]:
        return [a for batch in self.closed_batches for a in batch]

    @property
    def submitted_accounts(self) -> List[str]:
        """Every account named by a close instruction in any submission, successful or not."""
        names = []
        for instructions in self.submissions:
            for ix in instructions:
                if str(ix.program_id) in (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID):
                    names.append(str(ix.accounts[0].pubkey))
        return names
