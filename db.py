import logging
import os
import sqlite3
import time
from pathlib import Path
from typing import Callable, Generator, Optional, TypeVar, Union

from fastapi import HTTPException

from errors import InvalidInput, StoreUnavailable, TransactionConflict

logger = logging.getLogger(__name__)

APP_DIR = Path(__file__).resolve().parent
DB_DIR = Path(os.environ.get("DB_DIR", str(APP_DIR / "data")))
DB_PATH = Path(os.environ.get("DB_PATH", str(DB_DIR / "results.sql3")))
DB_BUSY_TIMEOUT_MS = int(os.environ.get("DB_BUSY_TIMEOUT_MS", "30000"))
TX_MAX_RETRIES = int(os.environ.get("TX_MAX_RETRIES", "3"))
TX_RETRY_BACKOFF_S = float(os.environ.get("TX_RETRY_BACKOFF_S", "0.05"))

T = TypeVar("T")

_CONFLICT_MARKERS = ("database is locked", "database is busy", "database table is locked")
_KEY_COLLISION_MARKERS = ("unique constraint", "primary key")


def connect_db(path: Optional[Union[str, Path]] = None) -> sqlite3.Connection:
    db_path = Path(path) if path is not None else DB_PATH
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(db_path), timeout=DB_BUSY_TIMEOUT_MS / 1000.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute(f"PRAGMA busy_timeout={DB_BUSY_TIMEOUT_MS};")
    except (OSError, sqlite3.Error) as exc:
        raise StoreUnavailable(f"Cannot open result store at {db_path}: {exc}") from exc
    return conn


def get_db() -> Generator[sqlite3.Connection, None, None]:
    """FastAPI dependency that yields a DB connection and closes it after the request."""
    try:
        conn = connect_db()
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    try:
        yield conn
    finally:
        conn.close()


def classify_store_error(exc: sqlite3.Error) -> Exception:
    """Map a sqlite3 error onto the retryable/fatal split of the error taxonomy.

    Only key collisions (UNIQUE / PRIMARY KEY) are conflicts worth retrying.
    FOREIGN KEY, NOT NULL and CHECK failures repeat identically on every
    attempt and are reported as InvalidInput.
    """
    if isinstance(exc, sqlite3.IntegrityError):
        msg = str(exc).lower()
        if any(marker in msg for marker in _KEY_COLLISION_MARKERS):
            return TransactionConflict(f"Concurrent write conflict: {exc}")
        return InvalidInput(f"Rejected by store constraint: {exc}")
    if isinstance(exc, sqlite3.OperationalError):
        msg = str(exc).lower()
        if any(marker in msg for marker in _CONFLICT_MARKERS):
            return TransactionConflict(f"Store busy: {exc}")
    return StoreUnavailable(f"Result store error: {exc}")


def run_in_write_transaction(
    conn: sqlite3.Connection,
    work: Callable[[sqlite3.Connection], T],
    max_retries: Optional[int] = None,
) -> T:
    """Run ``work`` inside ``BEGIN IMMEDIATE`` ... ``COMMIT``.

    The immediate lock serializes writers on the same store, so the
    read-then-insert inside ``work`` is atomic with respect to other callers.
    Any exception rolls the transaction back. Conflicts are retried (the whole
    of ``work`` is re-run) up to ``max_retries`` times and then surface as
    StoreUnavailable.

    Precondition: the caller has no pending writes on ``conn``. A transaction
    already open on entry (Python's implicit one after a DML statement, or
    one left by apply_migrations) is committed before ``BEGIN IMMEDIATE``,
    so its writes are not rolled back if ``work`` fails.
    """
    retries = TX_MAX_RETRIES if max_retries is None else max_retries
    if conn.in_transaction:
        logger.debug("Committing transaction left open by the caller")
        conn.commit()

    attempt = 0
    while True:
        try:
            conn.execute("BEGIN IMMEDIATE")
            result = work(conn)
            conn.commit()
            return result
        except sqlite3.Error as exc:
            _rollback_quietly(conn)
            mapped = classify_store_error(exc)
            if not isinstance(mapped, TransactionConflict):
                if isinstance(mapped, StoreUnavailable):
                    logger.exception("Result store failure during write transaction")
                raise mapped from exc
            attempt += 1
            if attempt > retries:
                logger.error("Giving up after %d conflicting attempts: %s", attempt, exc)
                raise StoreUnavailable(f"Result store is busy; gave up after {attempt} attempts") from exc
            logger.warning("Transaction conflict (attempt %d/%d): %s", attempt, retries, exc)
            time.sleep(TX_RETRY_BACKOFF_S * attempt)
        except BaseException:
            _rollback_quietly(conn)
            raise


def _rollback_quietly(conn: sqlite3.Connection) -> None:
    if not conn.in_transaction:
        return
    try:
        conn.rollback()
    except sqlite3.Error:
        logger.exception("Rollback failed")
