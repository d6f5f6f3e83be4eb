"""
Standard RPC Ledger Client
==========================
History over plain JSON-RPC for operators without an enhanced-history provider.

A page is `getSignaturesForAddress` followed by one jsonParsed
`getTransaction` per signature. Balance deltas come from pre/post balances.
There is no server-side type filter, so the type hint is only used to
label transactions (SET_AUTHORITY / CREATE_ACCOUNT / UNKNOWN).
"""

from typing import Any, Dict, List, Optional

from src.shared.infrastructure.ledger_client import LedgerClient
from src.shared.models.ledger import BalanceChange, LedgerInstruction, LedgerTransaction

CREATE_TYPES = {
    "create",
    "createIdempotent",
    "createAccount",
    "initializeAccount",
    "initializeAccount2",
    "initializeAccount3",
}


def _parse_instruction(raw: Dict[str, Any]) -> LedgerInstruction:
    parsed = raw.get("parsed")
    if isinstance(parsed, dict):
        info = parsed.get("info") or {}
        accounts = [v for v in info.values() if isinstance(v, str)]
        return LedgerInstruction(program_id=raw.get("programId", ""), accounts=accounts, parsed=parsed)
    return LedgerInstruction(
        program_id=raw.get("programId", ""),
        accounts=list(raw.get("accounts") or []),
        data=raw.get("data") or "",
    )


def detect_type(instructions: List[LedgerInstruction]) -> str:
    kinds = {ix.parsed.get("type") for ix in instructions if ix.parsed}
    if "setAuthority" in kinds:
        return "SET_AUTHORITY"
    if kinds & CREATE_TYPES:
        return "CREATE_ACCOUNT"
    return "UNKNOWN"


def parse_rpc_transaction(signature: str, raw: Optional[Dict[str, Any]],
                          slot: int = 0, block_time: Optional[int] = None) -> LedgerTransaction:
    """
    Convert a jsonParsed getTransaction result.

    A missing result still yields a bare transaction so the page cursor
    can advance past it.
    """
    if not raw:
        return LedgerTransaction(signature=signature, slot=slot, timestamp=block_time)

    meta = raw.get("meta") or {}
    message = (raw.get("transaction") or {}).get("message") or {}
    keys = [k["pubkey"] if isinstance(k, dict) else k for k in message.get("accountKeys") or []]

    pre = meta.get("preBalances") or []
    post = meta.get("postBalances") or []
    changes = []
    for i, key in enumerate(keys):
        if i < len(pre) and i < len(post) and post[i] != pre[i]:
            changes.append(BalanceChange(account=key, native_change=post[i] - pre[i]))

    instructions = [_parse_instruction(ix) for ix in message.get("instructions") or []]
    for group in meta.get("innerInstructions") or []:
        instructions.extend(_parse_instruction(ix) for ix in group.get("instructions") or [])

    return LedgerTransaction(
        signature=signature,
        slot=int(raw.get("slot") or slot),
        timestamp=raw.get("blockTime", block_time),
        fee=int(meta.get("fee") or 0),
        fee_payer=keys[0] if keys else None,
        type=detect_type(instructions),
        balance_changes=changes,
        instructions=instructions,
    )


class SolanaRpcLedgerClient(LedgerClient):
    """LedgerClient for any standard Solana JSON-RPC endpoint."""

    name = "RPC"

    async def fetch_history(
        self,
        address: str,
        before: Optional[str] = None,
        limit: int = 100,
        type_hint: Optional[str] = None,
    ) -> List[LedgerTransaction]:
        options: Dict[str, Any] = {"limit": limit}
        if before:
            options["before"] = before
        entries = await self._rpc("getSignaturesForAddress", [address, options]) or []

        page: List[LedgerTransaction] = []
        for entry in entries:
            signature = entry["signature"]
            raw = await self._rpc("getTransaction", [
                signature,
                {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0, "commitment": "confirmed"},
            ])
            page.append(parse_rpc_transaction(
                signature, raw, slot=entry.get("slot") or 0, block_time=entry.get("blockTime")
            ))
        return page
