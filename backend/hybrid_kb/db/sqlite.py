"""SQLite management utilities."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Sequence

from hybrid_kb.core.errors import StorageError

DEFAULT_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA temp_store=MEMORY;",
)
MEMORY = ":memory:"


@contextmanager
def translate_errors(action: str) -> Iterator[None]:
    """Re-raise sqlite3 errors as StorageError."""
    try:
        yield
    except sqlite3.IntegrityError as exc:
        raise StorageError(f"{action}: {exc}", kind=StorageError.CONSTRAINT_VIOLATION) from exc
    except sqlite3.Error as exc:
        raise StorageError(f"{action}: {exc}", kind=StorageError.BACKEND_UNAVAILABLE) from exc


class SQLiteDatabase:
    """Thin wrapper around sqlite3 providing pragmatic defaults."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path if str(db_path) == MEMORY else Path(db_path).expanduser()
        self._connection: sqlite3.Connection | None = None

    @classmethod
    def in_memory(cls) -> "SQLiteDatabase":
        return cls(MEMORY)

    def connect(self) -> sqlite3.Connection:
        if self._connection is None:
            with translate_errors(f"Failed to open SQLite database {self.db_path}"):
                if isinstance(self.db_path, Path):
                    self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._connection = sqlite3.connect(self.db_path)
                self._connection.row_factory = sqlite3.Row
                for pragma in DEFAULT_PRAGMAS:
                    self._connection.execute(pragma)
        return self._connection

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def commit(self) -> None:
        if self._connection is not None:
            self._connection.commit()

    def executescript(self, script: str) -> None:
        conn = self.connect()
        conn.executescript(script)

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
        conn = self.connect()
        return conn.execute(sql, params or [])

    def query(self, sql: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
        cursor = self.execute(sql, params)
        return cursor.fetchall()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        conn = self.connect()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def ensure_schema(self, name: str) -> None:
        """Apply ``<name>_schema.sql`` shipped next to this module."""
        schema_path = Path(__file__).with_name(f"{name}_schema.sql")
        with translate_errors(f"Failed to apply {name} schema"):
            self.executescript(schema_path.read_text(encoding="utf-8"))


__all__ = ["SQLiteDatabase", "translate_errors"]
