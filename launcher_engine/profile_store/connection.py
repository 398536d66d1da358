"""
Connection management for the profile store.

Threading
---------
One sqlite3 connection is shared by every repository and worker thread. It is
opened with ``check_same_thread=False`` and guarded by a single re-entrant
lock: ``read()`` and ``transaction()`` both hold the lock for their whole
duration, so a read can never observe a half-applied ``set_active`` and two
writers can never interleave.

The connection runs in autocommit mode (``isolation_level=None``); transactions
are explicit ``BEGIN IMMEDIATE`` ... ``COMMIT`` blocks.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import TracebackType

from ..errors import ConstraintViolationError, LauncherError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT_MS = 5000


class ProfileStoreConnection:
    """
    Owner of the single handle to the on-disk store.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. The parent directory is created on
        first connect.
    busy_timeout_ms:
        How long SQLite waits on a locked database before failing.
    """

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f"ProfileStoreConnection(db_path={str(self.db_path)!r})"

    def __enter__(self) -> ProfileStoreConnection:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def connect(self) -> sqlite3.Connection:
        """
        Open the store if it is not already open.

        Returns
        -------
        sqlite3.Connection
            The live handle.

        Raises
        ------
        StorageError
            If the containing directory cannot be created or the file cannot
            be opened and configured.
        """
        with self._lock:
            if self._conn is not None and _is_open(self._conn):
                return self._conn
            self._conn = None

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StorageError(
                    f"Cannot create store directory {self.db_path.parent}: {exc}"
                ) from exc

            conn: sqlite3.Connection | None = None
            try:
                conn = sqlite3.connect(
                    str(self.db_path),
                    isolation_level=None,
                    check_same_thread=False,
                    timeout=self.busy_timeout_ms / 1000.0,
                )
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("PRAGMA synchronous = NORMAL")
                conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            except sqlite3.Error as exc:
                if conn is not None:
                    conn.close()
                raise StorageError(f"Cannot open store {self.db_path}: {exc}") from exc

            self._conn = conn
            logger.debug("Opened profile store at %s", self.db_path)
            return conn

    def get_handle(self) -> sqlite3.Connection:
        """Return the live handle, reconnecting if it was closed elsewhere."""
        return self.connect()

    def close(self) -> None:
        """Release the handle. Safe to call more than once."""
        with self._lock:
            conn, self._conn = self._conn, None
            if conn is None:
                return
            try:
                conn.close()
            except sqlite3.Error:
                logger.exception("Error while closing profile store %s", self.db_path)
                return
            logger.info("Closed profile store %s", self.db_path)

    def test_connection(self) -> bool:
        """
        Run a trivial round-trip query.

        Returns
        -------
        bool
            True when the store answered ``SELECT 1``. Never raises.
        """
        try:
            with self.read() as conn:
                row = conn.execute("SELECT 1").fetchone()
        except LauncherError:
            logger.exception("Profile store health check failed")
            return False
        return row is not None and row[0] == 1

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        """
        Yield the handle for read-only queries, holding the store lock.

        Raises
        ------
        StorageError
            On any sqlite3 failure (the handle is discarded for lazy reconnect).
        """
        with self._lock:
            conn = self.connect()
            try:
                yield conn
            except sqlite3.Error as exc:
                raise self._translate(exc) from exc

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Yield the handle inside ``BEGIN IMMEDIATE`` ... ``COMMIT``.

        Any exception raised in the block rolls the transaction back before it
        propagates. A nested call on the same thread joins the outer
        transaction.

        Raises
        ------
        ConstraintViolationError
            If SQLite reports an integrity violation.
        StorageError
            On any other sqlite3 failure.
        """
        with self._lock:
            conn = self.connect()
            if conn.in_transaction:
                yield conn
                return

            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise self._translate(exc) from exc

            try:
                yield conn
            except sqlite3.Error as exc:
                self._rollback(conn)
                raise self._translate(exc) from exc
            except BaseException:
                self._rollback(conn)
                raise

            try:
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                self._rollback(conn)
                raise self._translate(exc) from exc

    def _rollback(self, conn: sqlite3.Connection) -> None:
        if not conn.in_transaction:
            return
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.exception("Rollback failed on %s", self.db_path)

    def _translate(self, exc: sqlite3.Error) -> LauncherError:
        if isinstance(exc, sqlite3.IntegrityError):
            return ConstraintViolationError(str(exc))
        logger.warning("Discarding profile store handle after error: %s", exc)
        self.close()
        return StorageError(f"Profile store failure: {exc}")


def _is_open(conn: sqlite3.Connection) -> bool:
    try:
        conn.total_changes
    except sqlite3.ProgrammingError:
        return False
    return True
