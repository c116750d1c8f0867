"""SQLite connection for the Atlas ledger file."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

logger = logging.getLogger(__name__)

MEMORY = ":memory:"

# Applied to every connection; WAL only makes sense for a file.
_PRAGMAS = ("foreign_keys = ON", "busy_timeout = 5000")
_FILE_PRAGMAS = ("journal_mode = WAL",)


class Database:
    """One lazily opened SQLite connection, file-backed or in-memory.

    Reads return plain dicts. :meth:`write` commits each statement on its
    own, which is what gives snapshot sync its per-row durability.

    The connection is opened with ``check_same_thread=False`` so a
    :class:`~atlas.portfolio.ledger.Ledger` can be shared between
    threads; the ledger serializes writes itself.
    """

    def __init__(self, path: str | Path):
        self.path: Path | str = (
            MEMORY if str(path) == MEMORY else Path(path).expanduser().resolve()
        )
        self._conn: sqlite3.Connection | None = None

    @property
    def is_memory(self) -> bool:
        return self.path == MEMORY

    def connect(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn

        pragmas = _PRAGMAS
        if self.is_memory:
            target = MEMORY
        else:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            target = str(self.path)
            pragmas = _FILE_PRAGMAS + _PRAGMAS

        conn = sqlite3.connect(target, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        for pragma in pragmas:
            conn.execute(f"PRAGMA {pragma}")
        self._conn = conn
        logger.debug("Opened ledger database %s", self.path)
        return conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self.connect()

    def close(self) -> None:
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        logger.debug("Closed ledger database %s", self.path)

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """Group several statements: commit on success, roll back on error."""
        conn = self.connect()
        cursor = conn.cursor()
        try:
            yield cursor
        except Exception:
            conn.rollback()
            raise
        conn.commit()

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Run a statement without committing."""
        return self.conn.execute(sql, params)

    def write(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Run one statement and commit it immediately."""
        cursor = self.conn.execute(sql, params)
        self.conn.commit()
        return cursor

    def executescript(self, sql: str) -> None:
        self.conn.executescript(sql)

    def fetchone(self, sql: str, params: tuple = ()) -> dict[str, Any] | None:
        row = self.conn.execute(sql, params).fetchone()
        return dict(row) if row is not None else None

    def fetchall(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        return [dict(r) for r in self.conn.execute(sql, params).fetchall()]

    def schema_version(self) -> int:
        """Highest applied migration, or 0 for a fresh file."""
        try:
            row = self.fetchone("SELECT MAX(version) AS v FROM _schema_version")
        except sqlite3.OperationalError:
            return 0
        return row["v"] if row and row["v"] is not None else 0

    def __enter__(self) -> "Database":
        self.connect()
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Database({self.path})"
