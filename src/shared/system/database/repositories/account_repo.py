"""
Sponsored Account Repository
============================
Durable records of operator-sponsored accounts, keyed by address.

Write rules:
- Upsert is idempotent: the same record applied twice yields the same row.
- A `reclaimed` row is never regressed by a later upsert.
- An unverified record (no last_verified_at) never overrides a stored status.
- Provenance (signature, slot, source...) is only filled where unknown.
- `reclaimable_since` is stamped on entering `reclaimable` and cleared on leaving.
"""

import time
from typing import Dict, Iterable, List, Optional

from src.shared.models.sponsored_account import CIRCUIT_BREAKER_REASON, AccountStatus, SponsoredAccount
from src.shared.system.database.repositories.base import BaseRepository
from src.shared.system.logging import Logger


_UPSERT_SQL = """
INSERT INTO sponsored_accounts (
    address, operator, user_wallet, mint, kind,
    signature, slot, first_seen_at, source, memo,
    rent_paid, lamports, status, last_verified_at, reclaimable_since,
    reclaimed_at, reclaim_signature, reclaimed_amount, error_message
) VALUES (
    :address, :operator, :user_wallet, :mint, :kind,
    :signature, :slot, :first_seen_at, :source, :memo,
    :rent_paid, :lamports, :status, :last_verified_at, :reclaimable_since,
    :reclaimed_at, :reclaim_signature, :reclaimed_amount, :error_message
)
ON CONFLICT(address) DO UPDATE SET
    user_wallet = COALESCE(excluded.user_wallet, sponsored_accounts.user_wallet),
    mint = COALESCE(excluded.mint, sponsored_accounts.mint),
    kind = excluded.kind,
    signature = COALESCE(sponsored_accounts.signature, excluded.signature),
    slot = COALESCE(sponsored_accounts.slot, excluded.slot),
    first_seen_at = COALESCE(sponsored_accounts.first_seen_at, excluded.first_seen_at),
    source = COALESCE(sponsored_accounts.source, excluded.source),
    memo = COALESCE(sponsored_accounts.memo, excluded.memo),
    rent_paid = CASE WHEN sponsored_accounts.rent_paid > 0
                     THEN sponsored_accounts.rent_paid ELSE excluded.rent_paid END,
    lamports = CASE WHEN sponsored_accounts.status = 'reclaimed'
                           OR excluded.last_verified_at IS NULL
                    THEN sponsored_accounts.lamports
                    ELSE COALESCE(excluded.lamports, sponsored_accounts.lamports) END,
    status = CASE WHEN sponsored_accounts.status = 'reclaimed' THEN 'reclaimed'
                  WHEN excluded.last_verified_at IS NULL THEN sponsored_accounts.status
                  ELSE excluded.status END,
    last_verified_at = COALESCE(excluded.last_verified_at, sponsored_accounts.last_verified_at),
    reclaimable_since = CASE
        WHEN sponsored_accounts.status = 'reclaimed' THEN sponsored_accounts.reclaimable_since
        WHEN excluded.last_verified_at IS NULL THEN sponsored_accounts.reclaimable_since
        WHEN excluded.status = 'reclaimable'
             THEN COALESCE(sponsored_accounts.reclaimable_since, excluded.reclaimable_since)
        ELSE NULL END,
    reclaimed_at = COALESCE(sponsored_accounts.reclaimed_at, excluded.reclaimed_at),
    reclaim_signature = COALESCE(sponsored_accounts.reclaim_signature, excluded.reclaim_signature),
    reclaimed_amount = COALESCE(sponsored_accounts.reclaimed_amount, excluded.reclaimed_amount),
    error_message = CASE WHEN sponsored_accounts.status = 'reclaimed'
                           OR excluded.last_verified_at IS NULL
                         THEN sponsored_accounts.error_message ELSE excluded.error_message END
"""

# Columns update_account_status() may touch besides status
_EXTRA_FIELDS = (
    "lamports",
    "last_verified_at",
    "reclaimed_at",
    "reclaim_signature",
    "reclaimed_amount",
    "error_message",
    "user_wallet",
    "mint",
)


class SponsoredAccountRepository(BaseRepository):
    """Repository for sponsored account records and status transitions."""

    def init_table(self):
        with self.db.cursor(commit=True) as c:
            c.execute("""
            CREATE TABLE IF NOT EXISTS sponsored_accounts (
                address TEXT PRIMARY KEY,
                operator TEXT NOT NULL,
                user_wallet TEXT,
                mint TEXT,
                kind TEXT NOT NULL DEFAULT 'token',
                signature TEXT,
                slot INTEGER,
                first_seen_at REAL,
                source TEXT,
                memo TEXT,
                rent_paid INTEGER DEFAULT 0,
                lamports INTEGER,
                status TEXT NOT NULL DEFAULT 'active',
                last_verified_at REAL,
                reclaimable_since REAL,
                reclaimed_at REAL,
                reclaim_signature TEXT,
                reclaimed_amount INTEGER,
                error_message TEXT
            )
            """)
            c.execute("""
            CREATE INDEX IF NOT EXISTS idx_sponsored_operator_status
            ON sponsored_accounts(operator, status)
            """)
            c.execute("""
            CREATE INDEX IF NOT EXISTS idx_sponsored_user_wallet
            ON sponsored_accounts(user_wallet)
            """)
            Logger.debug("[STORE] sponsored_accounts table initialized")

    # =========================================================================
    # WRITES
    # =========================================================================

    def upsert_accounts(self, accounts: Iterable[SponsoredAccount]) -> int:
        """Insert or merge records by address. Returns number of records written."""
        rows = []
        for account in accounts:
            row = account.to_row()
            if account.status == AccountStatus.RECLAIMABLE and row["reclaimable_since"] is None:
                row["reclaimable_since"] = account.last_verified_at or time.time()
            if account.status != AccountStatus.RECLAIMABLE:
                row["reclaimable_since"] = None
            rows.append(row)

        if not rows:
            return 0
        self._executemany(_UPSERT_SQL, rows)
        return len(rows)

    def update_account_status(self, address: str, status: AccountStatus, **extra) -> bool:
        """
        Set status (and optional extra columns) for one account.

        Returns False when the address is unknown.
        """
        unknown = set(extra) - set(_EXTRA_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported account fields: {sorted(unknown)}")

        assignments = ["status = :status"]
        params = {"address": address, "status": status.value, "now": time.time()}

        if status == AccountStatus.RECLAIMABLE:
            assignments.append("reclaimable_since = COALESCE(reclaimable_since, :now)")
        else:
            assignments.append("reclaimable_since = NULL")

        for key, value in extra.items():
            assignments.append(f"{key} = :{key}")
            params[key] = value

        query = f"UPDATE sponsored_accounts SET {', '.join(assignments)} WHERE address = :address"
        return self._execute(query, params, commit=True) > 0

    def mark_reclaimed(self, address: str, signature: str, amount: int,
                       reclaimed_at: Optional[float] = None) -> bool:
        """Record a confirmed reclaim. Signature and timestamp are always set together."""
        if not signature:
            raise ValueError("reclaim signature is required")
        return self.update_account_status(
            address,
            AccountStatus.RECLAIMED,
            reclaimed_at=reclaimed_at or time.time(),
            reclaim_signature=signature,
            reclaimed_amount=amount,
            lamports=0,
            error_message=None,
        )

    # =========================================================================
    # READS
    # =========================================================================

    def get_account(self, address: str) -> Optional[SponsoredAccount]:
        row = self._fetchone("SELECT * FROM sponsored_accounts WHERE address = ?", (address,))
        return SponsoredAccount.from_row(row) if row else None

    def get_accounts_for_operator(self, operator: str) -> List[SponsoredAccount]:
        rows = self._fetchall(
            "SELECT * FROM sponsored_accounts WHERE operator = ? ORDER BY slot DESC",
            (operator,),
        )
        return [SponsoredAccount.from_row(r) for r in rows]

    def get_by_status(self, status: AccountStatus, operator: Optional[str] = None) -> List[SponsoredAccount]:
        if operator:
            rows = self._fetchall(
                "SELECT * FROM sponsored_accounts WHERE status = ? AND operator = ? ORDER BY address",
                (status.value, operator),
            )
        else:
            rows = self._fetchall(
                "SELECT * FROM sponsored_accounts WHERE status = ? ORDER BY address",
                (status.value,),
            )
        return [SponsoredAccount.from_row(r) for r in rows]

    def get_due_for_refresh(self, operator: str, verified_before: float,
                            limit: int) -> List[SponsoredAccount]:
        """
        Accounts to re-verify: active ones, plus errors left by failed closes.

        Circuit-breaker errors are excluded. Only rows not verified since
        `verified_before` qualify, oldest check first.
        """
        rows = self._fetchall("""
        SELECT * FROM sponsored_accounts
        WHERE operator = ?
          AND (status = 'active'
               OR (status = 'error' AND COALESCE(error_message, '') NOT LIKE ? || '%'))
          AND (last_verified_at IS NULL OR last_verified_at < ?)
        ORDER BY last_verified_at IS NOT NULL, last_verified_at ASC
        LIMIT ?
        """, (operator, CIRCUIT_BREAKER_REASON, verified_before, limit))
        return [SponsoredAccount.from_row(r) for r in rows]

    def get_operator_stats(self, operator: str) -> Dict[str, int]:
        row = self._fetchone("""
        SELECT
            COUNT(*) AS total_accounts,
            SUM(CASE WHEN status = 'active' THEN 1 ELSE 0 END) AS active_accounts,
            SUM(CASE WHEN status = 'closed' THEN 1 ELSE 0 END) AS closed_accounts,
            SUM(CASE WHEN status = 'reclaimable' THEN 1 ELSE 0 END) AS reclaimable_accounts,
            SUM(CASE WHEN status = 'reclaimable' THEN COALESCE(lamports, rent_paid) ELSE 0 END)
                AS reclaimable_lamports,
            SUM(CASE WHEN status = 'locked' THEN 1 ELSE 0 END) AS locked_accounts,
            SUM(CASE WHEN status = 'reclaimed' THEN 1 ELSE 0 END) AS reclaimed_accounts,
            SUM(CASE WHEN status = 'reclaimed' THEN COALESCE(reclaimed_amount, 0) ELSE 0 END)
                AS reclaimed_lamports,
            SUM(CASE WHEN status = 'error' THEN 1 ELSE 0 END) AS error_accounts
        FROM sponsored_accounts
        WHERE operator = ?
        """, (operator,))
        return {key: int(value or 0) for key, value in (row or {}).items()}

    def get_global_stats(self) -> Dict[str, int]:
        row = self._fetchone("""
        SELECT
            COUNT(DISTINCT operator) AS operators,
            COUNT(*) AS total_accounts,
            SUM(CASE WHEN status = 'reclaimable' THEN 1 ELSE 0 END) AS reclaimable_accounts,
            SUM(CASE WHEN status = 'reclaimable' THEN COALESCE(lamports, rent_paid) ELSE 0 END)
                AS reclaimable_lamports,
            SUM(CASE WHEN status = 'reclaimed' THEN COALESCE(reclaimed_amount, 0) ELSE 0 END)
                AS reclaimed_lamports
        FROM sponsored_accounts
        """)
        return {key: int(value or 0) for key, value in (row or {}).items()}

    def get_accounts_grouped_by_wallet(self, operator: str) -> Dict[str, List[SponsoredAccount]]:
        """Accounts per user wallet. Unknown owners are grouped under 'unknown'."""
        grouped: Dict[str, List[SponsoredAccount]] = {}
        for account in self.get_accounts_for_operator(operator):
            grouped.setdefault(account.user_wallet or "unknown", []).append(account)
        return grouped
