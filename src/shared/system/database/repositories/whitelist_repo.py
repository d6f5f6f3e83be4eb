"""
Whitelist Repository
====================
Addresses that must never be reclaimed. Entries never expire.
"""

from typing import List, Optional

from src.shared.system.database.repositories.base import BaseRepository
from src.shared.system.logging import Logger


class WhitelistRepository(BaseRepository):

    def init_table(self):
        with self.db.cursor(commit=True) as c:
            c.execute("""
            CREATE TABLE IF NOT EXISTS whitelist (
                address TEXT PRIMARY KEY,
                note TEXT,
                added_at REAL DEFAULT (strftime('%s', 'now'))
            )
            """)

    def add(self, address: str, note: Optional[str] = None) -> None:
        self._execute(
            "INSERT OR REPLACE INTO whitelist (address, note) VALUES (?, ?)",
            (address, note),
            commit=True,
        )
        Logger.info(f"🛡️ [STORE] Whitelisted {address[:8]}...")

    def remove(self, address: str) -> bool:
        return self._execute("DELETE FROM whitelist WHERE address = ?", (address,), commit=True) > 0

    def get_whitelist(self) -> List[str]:
        return [row["address"] for row in self._fetchall("SELECT address FROM whitelist ORDER BY address")]
