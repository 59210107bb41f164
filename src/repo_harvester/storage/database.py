"""SQLite handle shared by the checkpoint and dedup stores."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Union

import structlog

from repo_harvester.storage.migrations import LATEST_VERSION, MIGRATIONS
from repo_harvester.utils.exceptions import StoreError

logger = structlog.get_logger()


class Database:
    """
    Own one SQLite connection and the schema it runs against.

    The handle is passed explicitly to every store; nothing holds it globally.
    All mutation happens from the single harvest task, so no locking beyond
    SQLite's own is needed.
    """

    def __init__(self, path: Union[str, Path]):
        """
        Initialize database handle (does not connect).

        Args:
            path: SQLite file path, or ":memory:"
        """
        self.path = str(path)
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Database is not open")
        return self._conn

    def open(self) -> "Database":
        """
        Connect and bring the schema to the latest version.

        Returns:
            self, for chaining

        Raises:
            StoreError: If the file cannot be opened or migrated
        """
        if self._conn is not None:
            return self

        try:
            if self.path != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode; transaction() issues BEGIN/COMMIT itself
            conn = sqlite3.connect(self.path, isolation_level=None)
            conn.row_factory = sqlite3.Row
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Cannot open store at {self.path}: {e}") from e

        self._conn = conn
        self.migrate()
        logger.info("store_opened", path=self.path, schema_version=self.schema_version)
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("store_closed", path=self.path)

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def schema_version(self) -> int:
        row = self.connection.execute("PRAGMA user_version").fetchone()
        return int(row[0])

    def migrate(self) -> int:
        """
        Apply pending migrations in order.

        Returns:
            Number of migrations applied
        """
        current = self.schema_version
        applied = 0

        for version, statements in MIGRATIONS:
            if version <= current:
                continue
            try:
                with self.transaction() as conn:
                    for statement in statements:
                        conn.execute(statement)
                    # PRAGMA does not accept bound parameters
                    conn.execute(f"PRAGMA user_version = {int(version)}")
            except StoreError:
                logger.error("store_migration_failed", version=version)
                raise
            applied += 1
            logger.info("store_migrated", version=version)

        if current > LATEST_VERSION:
            logger.warning(
                "store_schema_newer_than_code",
                schema_version=current,
                latest_known=LATEST_VERSION,
            )
        return applied

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block atomically; commit on success, roll back on error.

        Raises:
            StoreError: Wrapping any sqlite3.Error raised inside the block
        """
        conn = self.connection
        try:
            conn.execute("BEGIN")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            raise StoreError(str(e)) from e
        except BaseException:
            self._rollback(conn)
            raise

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Run one autocommitted statement."""
        try:
            with self.transaction() as conn:
                return conn.execute(sql, params)
        except StoreError:
            logger.error("store_write_failed", sql=sql.split()[0])
            raise

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        try:
            return self.connection.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        try:
            return self.connection.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
