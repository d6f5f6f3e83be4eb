"""
Candidate Extraction
====================
Turns raw operator transactions into candidate sponsored accounts.

A candidate is an account whose native balance rose by the rent-exempt
deposit of a known resource kind in a transaction the operator paid for.
Owner and mint are resolved by an ordered set of instruction matchers;
when no matcher names the owner, the first other non-infrastructure
account touched by the transaction is presumed to be it. Candidates whose
kind cannot be resolved are dropped.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

import base58

from src.modules.rent_reclaimer.config import RentReclaimerConfig
from src.modules.rent_reclaimer.constants import (
    ACCOUNT_SIZE_BY_KIND,
    ASSOCIATED_TOKEN_PROGRAM_ID,
    INFRASTRUCTURE_ADDRESSES,
    KIND_BY_PROGRAM,
    TOKEN_2022_PROGRAM_ID,
)
from src.shared.infrastructure.ledger_client import LedgerError
from src.shared.models.ledger import LedgerInstruction, LedgerTransaction
from src.shared.models.sponsored_account import AccountStatus, ResourceKind, SponsoredAccount
from src.shared.system.logging import Logger

# SPL Token instruction discriminators
IX_INITIALIZE_ACCOUNT = 1
IX_INITIALIZE_ACCOUNT_2 = 16
IX_INITIALIZE_ACCOUNT_3 = 18


@dataclass
class InstructionMatch:
    owner: Optional[str]
    mint: Optional[str]
    kind: Optional[ResourceKind]


Matcher = Callable[[LedgerInstruction, str], Optional[InstructionMatch]]


# =============================================================================
# MATCHERS (pure, ordered from most to least specific)
# =============================================================================

def match_parsed_ata_create(ix: LedgerInstruction, account: str) -> Optional[InstructionMatch]:
    """jsonParsed associated token account create / createIdempotent."""
    if not ix.parsed or ix.program_id != ASSOCIATED_TOKEN_PROGRAM_ID:
        return None
    if ix.parsed.get("type") not in ("create", "createIdempotent"):
        return None
    info = ix.parsed.get("info") or {}
    if info.get("account") != account:
        return None
    kind = KIND_BY_PROGRAM.get(info.get("tokenProgram"), ResourceKind.TOKEN)
    return InstructionMatch(owner=info.get("wallet"), mint=info.get("mint"), kind=kind)


def match_parsed_initialize_account(ix: LedgerInstruction, account: str) -> Optional[InstructionMatch]:
    """jsonParsed initializeAccount / initializeAccount2 / initializeAccount3."""
    if not ix.parsed or ix.program_id not in KIND_BY_PROGRAM:
        return None
    if ix.parsed.get("type") not in ("initializeAccount", "initializeAccount2", "initializeAccount3"):
        return None
    info = ix.parsed.get("info") or {}
    if info.get("account") != account:
        return None
    return InstructionMatch(owner=info.get("owner"), mint=info.get("mint"), kind=KIND_BY_PROGRAM[ix.program_id])


def match_raw_ata_create(ix: LedgerInstruction, account: str) -> Optional[InstructionMatch]:
    """Raw ATA create: [payer, ata, wallet, mint, system, token_program]."""
    if ix.parsed or ix.program_id != ASSOCIATED_TOKEN_PROGRAM_ID:
        return None
    accounts = ix.accounts
    if len(accounts) < 4 or accounts[1] != account:
        return None
    kind = ResourceKind.TOKEN
    if len(accounts) > 5 and accounts[5] == TOKEN_2022_PROGRAM_ID:
        kind = ResourceKind.TOKEN_2022
    return InstructionMatch(owner=accounts[2], mint=accounts[3], kind=kind)


def match_raw_initialize_account(ix: LedgerInstruction, account: str) -> Optional[InstructionMatch]:
    """
    Raw token InitializeAccount variants.

    InitializeAccount:  [account, mint, owner, rent]
    InitializeAccount2: [account, mint, rent], owner in data[1:33]
    InitializeAccount3: [account, mint],       owner in data[1:33]
    """
    if ix.parsed or ix.program_id not in KIND_BY_PROGRAM:
        return None
    if len(ix.accounts) < 2 or ix.accounts[0] != account or not ix.data:
        return None
    try:
        data = base58.b58decode(ix.data)
    except ValueError:
        return None
    if not data:
        return None

    kind = KIND_BY_PROGRAM[ix.program_id]
    discriminator = data[0]
    if discriminator == IX_INITIALIZE_ACCOUNT and len(ix.accounts) >= 3:
        return InstructionMatch(owner=ix.accounts[2], mint=ix.accounts[1], kind=kind)
    if discriminator in (IX_INITIALIZE_ACCOUNT_2, IX_INITIALIZE_ACCOUNT_3) and len(data) >= 33:
        owner = base58.b58encode(data[1:33]).decode()
        return InstructionMatch(owner=owner, mint=ix.accounts[1], kind=kind)
    return None


def match_token_program_reference(ix: LedgerInstruction, account: str) -> Optional[InstructionMatch]:
    """Any token program instruction naming the account: kind only."""
    if ix.program_id in KIND_BY_PROGRAM and account in ix.accounts:
        return InstructionMatch(owner=None, mint=None, kind=KIND_BY_PROGRAM[ix.program_id])
    return None


MATCHERS: List[Matcher] = [
    match_parsed_ata_create,
    match_parsed_initialize_account,
    match_raw_ata_create,
    match_raw_initialize_account,
    match_token_program_reference,
]


def resolve_account(instructions: Iterable[LedgerInstruction], account: str,
                    matchers: Iterable[Matcher] = MATCHERS) -> Optional[InstructionMatch]:
    """
    First full match (owner + kind) wins. A kind-only match is kept as a
    fallback in case no instruction names the owner.
    """
    instructions = list(instructions)
    partial: Optional[InstructionMatch] = None
    for matcher in matchers:
        for ix in instructions:
            found = matcher(ix, account)
            if found is None:
                continue
            if found.owner and found.kind:
                return found
            if partial is None and found.kind:
                partial = found
    return partial


# =============================================================================
# DEPOSIT SIZES
# =============================================================================

class DepositSizes:
    """Rent-exempt deposit per resource kind, fetched once per size and cached."""

    def __init__(self, config: RentReclaimerConfig):
        self.config = config
        self._by_kind: Dict[ResourceKind, int] = {}

    @property
    def loaded(self) -> bool:
        return len(self._by_kind) == len(ACCOUNT_SIZE_BY_KIND)

    async def load(self, ledger) -> Dict[ResourceKind, int]:
        for kind, size in ACCOUNT_SIZE_BY_KIND.items():
            if kind in self._by_kind:
                continue
            try:
                self._by_kind[kind] = await ledger.get_minimum_balance_for_rent_exemption(size)
            except LedgerError as e:
                Logger.warning(
                    f"⚠️ [DISCOVERY] Rent lookup for {size} bytes failed ({e}). "
                    f"Using fallback {self.config.FALLBACK_RENT_LAMPORTS}"
                )
                self._by_kind[kind] = self.config.FALLBACK_RENT_LAMPORTS
        return dict(self._by_kind)

    def set(self, kind: ResourceKind, lamports: int) -> None:
        self._by_kind[kind] = lamports

    def matches(self, delta: int) -> bool:
        """True if `delta` is a known deposit within tolerance."""
        sizes = self._by_kind.values() or [self.config.FALLBACK_RENT_LAMPORTS]
        return any(abs(delta - size) < self.config.RENT_TOLERANCE_LAMPORTS for size in sizes)


# =============================================================================
# EXTRACTOR
# =============================================================================

class CandidateExtractor:
    """Extracts candidate accounts for one operator."""

    def __init__(self, operator: str, deposits: DepositSizes):
        self.operator = operator
        self.deposits = deposits

    def _is_excluded(self, address: str) -> bool:
        return address == self.operator or address in INFRASTRUCTURE_ADDRESSES

    def _fallback_owner(self, tx: LedgerTransaction, account: str) -> Optional[str]:
        for key in tx.account_keys:
            if key != account and not self._is_excluded(key):
                return key
        return None

    def extract(self, tx: LedgerTransaction, source: str = "history") -> List[SponsoredAccount]:
        if tx.fee_payer != self.operator:
            return []

        found: Dict[str, SponsoredAccount] = {}
        for change in tx.balance_changes:
            account = change.account
            if account in found or change.native_change <= 0 or self._is_excluded(account):
                continue
            if not self.deposits.matches(change.native_change):
                continue

            match = resolve_account(tx.instructions, account)
            if match is None or match.kind is None:
                Logger.debug(f"[DISCOVERY] Dropped {account[:8]}... in {tx.signature[:8]}: kind unresolved")
                continue

            owner = match.owner or self._fallback_owner(tx, account)
            found[account] = SponsoredAccount(
                address=account,
                operator=self.operator,
                user_wallet=owner,
                mint=match.mint,
                kind=match.kind,
                signature=tx.signature,
                slot=tx.slot,
                first_seen_at=float(tx.timestamp) if tx.timestamp else time.time(),
                source=source,
                rent_paid=change.native_change,
                status=AccountStatus.ACTIVE,
            )
        return list(found.values())
