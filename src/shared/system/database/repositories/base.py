from typing import Any, Iterable, List, Optional, Sequence, Union
from src.shared.system.database.core import DatabaseCore

Params = Union[Sequence[Any], dict]


class BaseRepository:
    """
    Base class for the store repositories.
    Provides access to the DB Core cursor and common helpers.
    """
    def __init__(self, db: DatabaseCore):
        self.db = db

    def _execute(self, query: str, params: Params = (), commit: bool = False) -> int:
        """Run a single statement. Returns affected row count."""
        with self.db.cursor(commit=commit) as c:
            c.execute(query, params)
            return c.rowcount

    def _executemany(self, query: str, rows: Iterable[Params]) -> None:
        """Run one statement for many rows inside a single transaction."""
        with self.db.cursor(commit=True) as c:
            c.executemany(query, rows)

    def _fetchone(self, query: str, params: Params = ()) -> Optional[dict]:
        """Helper to fetch a single row as a dict."""
        with self.db.cursor() as c:
            c.execute(query, params)
            row = c.fetchone()
            return dict(row) if row else None

    def _fetchall(self, query: str, params: Params = ()) -> List[dict]:
        """Helper to fetch multiple rows."""
        with self.db.cursor() as c:
            c.execute(query, params)
            return [dict(row) for row in c.fetchall()]

    def init_table(self):
        """Override this to create tables."""
        raise NotImplementedError
