"""
Operator Fee Repository
=======================
Append-only ledger of transaction fees paid by each operator.
"""

from typing import Dict, Optional

from src.shared.system.database.repositories.base import BaseRepository


class OperatorFeeRepository(BaseRepository):

    def init_table(self):
        with self.db.cursor(commit=True) as c:
            c.execute("""
            CREATE TABLE IF NOT EXISTS operator_fee_history (
                signature TEXT PRIMARY KEY,
                operator TEXT NOT NULL,
                fee INTEGER NOT NULL,
                timestamp INTEGER,
                tx_type TEXT,
                slot INTEGER
            )
            """)
            c.execute("""
            CREATE INDEX IF NOT EXISTS idx_fee_operator
            ON operator_fee_history(operator)
            """)

    def add_fee(self, signature: str, operator: str, fee: int,
                timestamp: Optional[int] = None, tx_type: Optional[str] = None,
                slot: Optional[int] = None) -> None:
        """Record one fee. Re-recording the same signature is a no-op."""
        self._execute("""
        INSERT OR IGNORE INTO operator_fee_history (signature, operator, fee, timestamp, tx_type, slot)
        VALUES (?, ?, ?, ?, ?, ?)
        """, (signature, operator, fee, timestamp, tx_type, slot), commit=True)

    def get_fee_totals(self, operator: str) -> Dict[str, int]:
        row = self._fetchone("""
        SELECT COUNT(*) AS transactions, COALESCE(SUM(fee), 0) AS total_fees
        FROM operator_fee_history WHERE operator = ?
        """, (operator,))
        return {"transactions": int(row["transactions"]), "total_fees": int(row["total_fees"])}
