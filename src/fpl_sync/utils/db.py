from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Sequence

import psycopg2
import psycopg2.extras
from psycopg2.pool import ThreadedConnectionPool

from fpl_sync.utils.config import Settings
from fpl_sync.utils.logging import get_logger


logger = get_logger(component="db")


class StorageError(Exception):
    pass


def _ok_ident(s: str) -> bool:
    return bool(s) and s.replace("_", "").replace(".", "").isalnum()


class Store:
    """
    Pooled psycopg2 access to the shared FPL data store.

    The pool is opened eagerly so bad credentials fail at construction time
    instead of on the first write.
    """

    def __init__(
        self,
        dsn: str,
        *,
        password: str | None = None,
        minconn: int = 1,
        maxconn: int = 5,
        connect_timeout: int = 10,
        statement_timeout_ms: int | None = 30_000,
    ) -> None:
        kwargs: dict[str, Any] = {"connect_timeout": connect_timeout}
        if statement_timeout_ms:
            kwargs["options"] = f"-c statement_timeout={int(statement_timeout_ms)}"
        if password:
            kwargs["password"] = password
        try:
            self._pool = ThreadedConnectionPool(minconn=minconn, maxconn=maxconn, dsn=dsn, **kwargs)
        except psycopg2.Error as e:
            raise StorageError(f"Store connection failed: {e}") from e

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> Store:
        dsn, key = settings.require_store()
        return cls(dsn, password=key, **kwargs)

    def close(self) -> None:
        self._pool.closeall()

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """
        Usage:
          with store.connection() as conn:
              ...
        """
        try:
            conn = self._pool.getconn()
        except psycopg2.Error as e:
            raise StorageError(f"Store connection unavailable: {e}") from e
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Commits on success, rolls back on exception. psycopg2 errors surface as StorageError."""
        with self.connection() as conn:
            conn.autocommit = False
            try:
                yield conn
                conn.commit()
            except psycopg2.Error as e:
                self._rollback(conn)
                raise StorageError(str(e).strip()) from e
            except BaseException:
                self._rollback(conn)
                raise

    @staticmethod
    def _rollback(conn: Any) -> None:
        try:
            conn.rollback()
        except Exception as e:
            logger.warning("db_rollback_failed", err=str(e))

    def fetch_one(self, query: str, params: tuple[Any, ...] | None = None) -> tuple[Any, ...] | None:
        with self.transaction() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params or ())
                return cur.fetchone()

    def ping(self) -> bool:
        row = self.fetch_one("SELECT 1;")
        return bool(row and row[0] == 1)

    def upsert_rows(
        self,
        *,
        table: str,
        rows: Sequence[dict[str, Any]],
        conflict_cols: Sequence[str],
        update_cols: Sequence[str] | None = None,
        conn: Any = None,
    ) -> int:
        """
        Bulk INSERT ... ON CONFLICT (conflict_cols) DO UPDATE in one statement.

        - update_cols defaults to every non-key column (full overwrite)
        - rows sharing a conflict key are collapsed to the last one
        - with `conn`, runs inside the caller's transaction
        Returns the number of rows sent.
        """
        if not rows:
            return 0

        cols = list(rows[0].keys())
        for r in rows:
            if set(r.keys()) != set(cols):
                raise ValueError("All rows must have the same columns")
        if not _ok_ident(table):
            raise ValueError(f"Unsafe table name: {table}")
        for c in list(cols) + list(conflict_cols):
            if not _ok_ident(c):
                raise ValueError(f"Unsafe column name: {c}")
        missing_keys = [c for c in conflict_cols if c not in cols]
        if missing_keys:
            raise ValueError(f"Conflict columns not present in rows: {missing_keys}")

        updates = list(update_cols) if update_cols is not None else [c for c in cols if c not in conflict_cols]
        for c in updates:
            if c not in cols:
                raise ValueError(f"Update column not present in rows: {c}")

        unique: dict[tuple[Any, ...], dict[str, Any]] = {}
        for r in rows:
            unique[tuple(r[c] for c in conflict_cols)] = r
        if len(unique) != len(rows):
            logger.warning("upsert_duplicate_keys_collapsed", table=table, rows=len(rows), unique=len(unique))

        action = (
            "DO UPDATE SET " + ", ".join(f"{c} = EXCLUDED.{c}" for c in updates)
            if updates
            else "DO NOTHING"
        )
        stmt = f"INSERT INTO {table} ({', '.join(cols)}) VALUES %s ON CONFLICT ({', '.join(conflict_cols)}) {action}"
        values = [tuple(r[c] for c in cols) for r in unique.values()]

        if conn is None:
            with self.transaction() as conn2:
                with conn2.cursor() as cur:
                    psycopg2.extras.execute_values(cur, stmt, values)
        else:
            try:
                with conn.cursor() as cur:
                    psycopg2.extras.execute_values(cur, stmt, values)
            except psycopg2.Error as e:
                raise StorageError(str(e).strip()) from e

        logger.info("db_upserted", table=table, rows=len(values))
        return len(values)
