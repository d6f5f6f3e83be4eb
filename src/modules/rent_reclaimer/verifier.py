"""
Verifier
========
Classifies candidate accounts from their current on-chain state.

Rules, in order:
1. account missing                         -> closed
2. token account, amount 0, operator can close -> reclaimable
   token account, amount 0, otherwise       -> locked
3. token account, amount > 0                -> active
4. anything else                            -> unsupported (never reclaimable)

Stateless and safe to call repeatedly.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from src.modules.rent_reclaimer.constants import KIND_BY_PROGRAM
from src.modules.rent_reclaimer.token_layout import decode_token_account
from src.shared.models.ledger import AccountState
from src.shared.models.sponsored_account import AccountStatus, ResourceKind
from src.shared.system.logging import Logger


@dataclass
class VerifiedResult:
    address: str
    status: AccountStatus
    lamports: int = 0
    kind: Optional[ResourceKind] = None
    owner: Optional[str] = None
    mint: Optional[str] = None
    amount: Optional[int] = None
    close_authority: Optional[str] = None
    reason: Optional[str] = None

    @property
    def can_reclaim(self) -> bool:
        return self.status == AccountStatus.RECLAIMABLE

    @property
    def exists(self) -> bool:
        return self.status != AccountStatus.CLOSED


def classify(address: str, state: Optional[AccountState], operator: str) -> VerifiedResult:
    """Pure classification of one account snapshot."""
    if state is None:
        return VerifiedResult(address=address, status=AccountStatus.CLOSED, reason="account not found")

    kind = KIND_BY_PROGRAM.get(state.owner)
    token = decode_token_account(state.data) if kind else None
    if token is None:
        return VerifiedResult(
            address=address,
            status=AccountStatus.UNSUPPORTED,
            lamports=state.lamports,
            reason=f"not a token account (program {state.owner})",
        )

    result = VerifiedResult(
        address=address,
        status=AccountStatus.ACTIVE,
        lamports=state.lamports,
        kind=kind,
        owner=token.owner,
        mint=token.mint,
        amount=token.amount,
        close_authority=token.close_authority,
    )

    if token.amount > 0:
        result.reason = "holds tokens"
    elif token.closing_authority != operator:
        result.status = AccountStatus.LOCKED
        result.reason = "operator is not the closing authority"
    elif token.is_frozen:
        result.status = AccountStatus.LOCKED
        result.reason = "account is frozen"
    else:
        result.status = AccountStatus.RECLAIMABLE
    return result


class Verifier:
    """Batched on-chain verification for one ledger client."""

    def __init__(self, ledger, batch_size: int = 100):
        self.ledger = ledger
        self.batch_size = batch_size

    async def verify(self, addresses: Sequence[str], operator: str) -> List[VerifiedResult]:
        """
        Classify each address. Order of results matches `addresses`.

        Raises LedgerError if the state fetch fails after retries.
        """
        results: List[VerifiedResult] = []
        for i in range(0, len(addresses), self.batch_size):
            chunk = list(addresses[i:i + self.batch_size])
            states = await self.ledger.fetch_account_states(chunk)
            results.extend(classify(address, state, operator) for address, state in zip(chunk, states))

        reclaimable = sum(1 for r in results if r.can_reclaim)
        Logger.debug(f"[VERIFIER] {len(results)} verified, {reclaimable} reclaimable")
        return results
