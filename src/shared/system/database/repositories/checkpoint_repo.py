"""
Scan Checkpoint Repository
==========================
One progress row per operator. Rows are created on first use and never deleted.

Merge rules on update:
- oldest cursor only moves to an equal-or-lower slot
- newest cursor only moves to an equal-or-higher slot
- first_scan_complete is sticky once true
- any field left as None keeps its stored value
"""

from typing import Optional

from src.shared.models.sponsored_account import ScanCheckpoint
from src.shared.system.database.repositories.base import BaseRepository
from src.shared.system.logging import Logger


_MERGE_SQL = """
UPDATE scan_checkpoints SET
    oldest_signature = CASE
        WHEN :oldest_signature IS NOT NULL
             AND (oldest_signature IS NULL OR oldest_slot IS NULL OR :oldest_slot <= oldest_slot)
        THEN :oldest_signature ELSE oldest_signature END,
    oldest_slot = CASE
        WHEN :oldest_signature IS NOT NULL
             AND (oldest_signature IS NULL OR oldest_slot IS NULL OR :oldest_slot <= oldest_slot)
        THEN :oldest_slot ELSE oldest_slot END,
    newest_signature = CASE
        WHEN :newest_signature IS NOT NULL
             AND (newest_signature IS NULL OR newest_slot IS NULL OR :newest_slot >= newest_slot)
        THEN :newest_signature ELSE newest_signature END,
    newest_slot = CASE
        WHEN :newest_signature IS NOT NULL
             AND (newest_signature IS NULL OR newest_slot IS NULL OR :newest_slot >= newest_slot)
        THEN :newest_slot ELSE newest_slot END,
    scan_status = COALESCE(:scan_status, scan_status),
    first_scan_complete = MAX(first_scan_complete, COALESCE(:first_scan_complete, 0)),
    last_scan_at = COALESCE(:last_scan_at, last_scan_at),
    total_accounts = COALESCE(:total_accounts, total_accounts),
    reclaimable_count = COALESCE(:reclaimable_count, reclaimable_count),
    reclaimable_lamports = COALESCE(:reclaimable_lamports, reclaimable_lamports)
WHERE operator = :operator
"""


class ScanCheckpointRepository(BaseRepository):
    """Repository for per-operator crawl checkpoints."""

    def init_table(self):
        with self.db.cursor(commit=True) as c:
            c.execute("""
            CREATE TABLE IF NOT EXISTS scan_checkpoints (
                operator TEXT PRIMARY KEY,
                oldest_signature TEXT,
                oldest_slot INTEGER,
                newest_signature TEXT,
                newest_slot INTEGER,
                scan_status TEXT CHECK(scan_status IN ('pending', 'scanning', 'complete'))
                    DEFAULT 'pending',
                first_scan_complete INTEGER DEFAULT 0,
                last_scan_at REAL,
                total_accounts INTEGER DEFAULT 0,
                reclaimable_count INTEGER DEFAULT 0,
                reclaimable_lamports INTEGER DEFAULT 0,
                created_at REAL DEFAULT (strftime('%s', 'now'))
            )
            """)
            Logger.debug("[STORE] scan_checkpoints table initialized")

    def get_checkpoint(self, operator: str) -> Optional[ScanCheckpoint]:
        row = self._fetchone("SELECT * FROM scan_checkpoints WHERE operator = ?", (operator,))
        return ScanCheckpoint.from_row(row) if row else None

    def update_checkpoint(self, partial: ScanCheckpoint) -> None:
        """Create the row if needed, then merge `partial` into it atomically."""
        params = {
            "operator": partial.operator,
            "oldest_signature": partial.oldest_signature,
            "oldest_slot": partial.oldest_slot,
            "newest_signature": partial.newest_signature,
            "newest_slot": partial.newest_slot,
            "scan_status": partial.scan_status.value if partial.scan_status else None,
            "first_scan_complete": (
                int(partial.first_scan_complete) if partial.first_scan_complete is not None else None
            ),
            "last_scan_at": partial.last_scan_at,
            "total_accounts": partial.total_accounts,
            "reclaimable_count": partial.reclaimable_count,
            "reclaimable_lamports": partial.reclaimable_lamports,
        }
        with self.db.cursor(commit=True) as c:
            c.execute("INSERT OR IGNORE INTO scan_checkpoints (operator) VALUES (?)", (partial.operator,))
            c.execute(_MERGE_SQL, params)
