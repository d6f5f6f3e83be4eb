"""
Sponsored Account Models
========================
Records persisted by the rent reclaimer.

A SponsoredAccount is a resource account whose creation deposit was paid
by an operator on behalf of a user. A ScanCheckpoint bounds the slice of
the operator's history that has already been crawled.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional


class AccountStatus(Enum):
    """Lifecycle status of a sponsored account."""

    ACTIVE = "active"  # Holds user value (or not yet checked)
    RECLAIMABLE = "reclaimable"  # Empty and the operator can close it
    LOCKED = "locked"  # Empty but the closing right belongs to someone else
    CLOSED = "closed"  # No longer exists on-chain
    RECLAIMED = "reclaimed"  # Closed by us, deposit recovered
    ERROR = "error"  # Reclaim aborted or failed
    UNSUPPORTED = "unsupported"  # Exists but is not a known resource kind


# error_message prefix for circuit-breaker aborts; those rows are never retried automatically
CIRCUIT_BREAKER_REASON = "Circuit breaker"


class ResourceKind(Enum):
    """Closed set of resource kinds the pipeline can reclaim."""

    TOKEN = "token"
    TOKEN_2022 = "token-2022"


class ScanStatus(Enum):
    PENDING = "pending"
    SCANNING = "scanning"
    COMPLETE = "complete"


@dataclass
class SponsoredAccount:
    """A candidate or confirmed sponsored account."""

    # Identity
    address: str
    operator: str
    user_wallet: Optional[str] = None
    mint: Optional[str] = None
    kind: ResourceKind = ResourceKind.TOKEN

    # Provenance
    signature: Optional[str] = None
    slot: Optional[int] = None
    first_seen_at: Optional[float] = None
    source: Optional[str] = None
    memo: Optional[str] = None

    # Value
    rent_paid: int = 0  # Deposit observed at creation (lamports)
    lamports: Optional[int] = None  # Last known on-chain balance

    # Lifecycle
    status: AccountStatus = AccountStatus.ACTIVE
    last_verified_at: Optional[float] = None
    reclaimable_since: Optional[float] = None
    reclaimed_at: Optional[float] = None
    reclaim_signature: Optional[str] = None
    reclaimed_amount: Optional[int] = None
    error_message: Optional[str] = None

    @property
    def deposit(self) -> int:
        """Best known recoverable value (on-chain balance if verified)."""
        if self.lamports is not None:
            return self.lamports
        return self.rent_paid

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        row["kind"] = self.kind.value
        row["status"] = self.status.value
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SponsoredAccount":
        return cls(
            address=row["address"],
            operator=row["operator"],
            user_wallet=row.get("user_wallet"),
            mint=row.get("mint"),
            kind=ResourceKind(row.get("kind") or ResourceKind.TOKEN.value),
            signature=row.get("signature"),
            slot=row.get("slot"),
            first_seen_at=row.get("first_seen_at"),
            source=row.get("source"),
            memo=row.get("memo"),
            rent_paid=row.get("rent_paid") or 0,
            lamports=row.get("lamports"),
            status=AccountStatus(row.get("status") or AccountStatus.ACTIVE.value),
            last_verified_at=row.get("last_verified_at"),
            reclaimable_since=row.get("reclaimable_since"),
            reclaimed_at=row.get("reclaimed_at"),
            reclaim_signature=row.get("reclaim_signature"),
            reclaimed_amount=row.get("reclaimed_amount"),
            error_message=row.get("error_message"),
        )


@dataclass
class ScanCheckpoint:
    """Per-operator crawl progress. Unset fields mean "keep what is stored"."""

    operator: str
    oldest_signature: Optional[str] = None
    oldest_slot: Optional[int] = None
    newest_signature: Optional[str] = None
    newest_slot: Optional[int] = None
    scan_status: Optional[ScanStatus] = None
    first_scan_complete: Optional[bool] = None
    last_scan_at: Optional[float] = None
    total_accounts: Optional[int] = None
    reclaimable_count: Optional[int] = None
    reclaimable_lamports: Optional[int] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ScanCheckpoint":
        return cls(
            operator=row["operator"],
            oldest_signature=row.get("oldest_signature"),
            oldest_slot=row.get("oldest_slot"),
            newest_signature=row.get("newest_signature"),
            newest_slot=row.get("newest_slot"),
            scan_status=ScanStatus(row["scan_status"]) if row.get("scan_status") else None,
            first_scan_complete=bool(row.get("first_scan_complete")),
            last_scan_at=row.get("last_scan_at"),
            total_accounts=row.get("total_accounts"),
            reclaimable_count=row.get("reclaimable_count"),
            reclaimable_lamports=row.get("reclaimable_lamports"),
        )
