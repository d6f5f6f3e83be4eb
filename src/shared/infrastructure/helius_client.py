"""
Helius Ledger Client
====================
History via the Helius enhanced transactions API.

Enhanced payloads already carry per-account native balance deltas and
decoded instructions, so one request yields a whole page. The same
payload shape arrives through Helius webhooks (`parse_enhanced_transaction`).
"""

from typing import Any, Dict, List, Optional

from src.shared.infrastructure.ledger_client import LedgerClient
from src.shared.models.ledger import BalanceChange, LedgerInstruction, LedgerTransaction
from src.shared.system.logging import Logger


def _parse_instruction(raw: Dict[str, Any]) -> LedgerInstruction:
    return LedgerInstruction(
        program_id=raw.get("programId", ""),
        accounts=list(raw.get("accounts") or []),
        data=raw.get("data") or "",
    )


def parse_enhanced_transaction(raw: Dict[str, Any]) -> LedgerTransaction:
    """Convert one Helius enhanced transaction into a LedgerTransaction."""
    instructions: List[LedgerInstruction] = []
    for ix in raw.get("instructions") or []:
        instructions.append(_parse_instruction(ix))
        # Inner (CPI) instructions follow their parent
        for inner in ix.get("innerInstructions") or []:
            instructions.append(_parse_instruction(inner))

    changes = [
        BalanceChange(account=entry["account"], native_change=int(entry.get("nativeBalanceChange") or 0))
        for entry in raw.get("accountData") or []
        if entry.get("account")
    ]

    return LedgerTransaction(
        signature=raw["signature"],
        slot=int(raw.get("slot") or 0),
        timestamp=raw.get("timestamp"),
        fee=int(raw.get("fee") or 0),
        fee_payer=raw.get("feePayer"),
        type=raw.get("type") or "UNKNOWN",
        balance_changes=changes,
        instructions=instructions,
    )


class HeliusLedgerClient(LedgerClient):
    """LedgerClient backed by Helius `/addresses/{address}/transactions`."""

    name = "HELIUS"

    def __init__(self, api_key: str, rpc_url: str, api_url: str = "https://api.helius.xyz/v0", **kwargs):
        super().__init__(rpc_url, **kwargs)
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        if not self.api_key:
            Logger.warning("⚠️ [LEDGER] Helius client created without API key - history calls will fail")

    async def fetch_history(
        self,
        address: str,
        before: Optional[str] = None,
        limit: int = 100,
        type_hint: Optional[str] = None,
    ) -> List[LedgerTransaction]:
        params: Dict[str, Any] = {"api-key": self.api_key, "limit": limit}
        if before:
            params["before"] = before
        if type_hint:
            params["type"] = type_hint

        data = await self._request_json(
            "GET",
            f"{self.api_url}/addresses/{address}/transactions",
            label="history",
            params=params,
            not_found=[],
        )
        return [parse_enhanced_transaction(tx) for tx in data or []]
