"""
Ledger Models
=============
Provider-neutral shapes for transaction history and account snapshots.

Every LedgerClient implementation converts its wire format into these,
so the discovery and reclaim code never branches on the provider.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class BalanceChange:
    """Native balance delta of one account within a transaction."""

    account: str
    native_change: int


@dataclass
class LedgerInstruction:
    """
    Decoded instruction.

    `parsed` carries the provider's jsonParsed form when available
    ({"type": ..., "info": {...}}); raw instructions only have accounts
    and base58 `data`.
    """

    program_id: str
    accounts: List[str] = field(default_factory=list)
    data: str = ""
    parsed: Optional[Dict[str, Any]] = None


@dataclass
class LedgerTransaction:
    signature: str
    slot: int
    timestamp: Optional[int] = None
    fee: int = 0
    fee_payer: Optional[str] = None
    type: str = "UNKNOWN"
    balance_changes: List[BalanceChange] = field(default_factory=list)
    instructions: List[LedgerInstruction] = field(default_factory=list)

    @property
    def account_keys(self) -> List[str]:
        """All accounts touched, in first-seen order."""
        seen: List[str] = []
        for change in self.balance_changes:
            if change.account not in seen:
                seen.append(change.account)
        for ix in self.instructions:
            for acc in ix.accounts:
                if acc not in seen:
                    seen.append(acc)
        return seen


@dataclass
class AccountState:
    """Snapshot of an on-chain account."""

    address: str
    lamports: int
    owner: str  # Owning program
    data: bytes = b""
    executable: bool = False
