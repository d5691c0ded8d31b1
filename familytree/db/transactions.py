"""Bounded write transactions and batched execution.

Every write goes through :func:`transaction`.  Writers in one process are
serialised with an in-process lock (the CLI and sync workers share one
connection); a SQLite progress handler interrupts statements once the
deadline has passed.

Usage::

    from familytree.db.transactions import run_batches, transaction

    with transaction(conn, timeout=5.0):
        conn.execute("UPDATE trees SET name = ? WHERE id = ?", (name, tree_id))

    run_batches(conn, operations, batch_size=5, timeout=5.0, label="nodes")
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Sequence

from familytree.errors import StorageFailure, TransactionTimeout

logger = logging.getLogger(__name__)

Operation = Callable[[sqlite3.Connection], Any]

_WRITE_LOCK = threading.RLock()

# Number of SQLite VM instructions between deadline checks.
_PROGRESS_INTERVAL = 1000


@contextmanager
def transaction(
    conn: sqlite3.Connection,
    timeout: Optional[float] = None,
) -> Iterator[sqlite3.Connection]:
    """Run the enclosed block in one ``BEGIN IMMEDIATE`` transaction.

    Commits on success and rolls back on any exception.  Driver errors are
    re-raised as :class:`~familytree.errors.StorageFailure`; running past
    *timeout* seconds raises :class:`~familytree.errors.TransactionTimeout`.
    Transactions do not nest.  Time spent waiting for another writer counts
    against *timeout*.
    """
    deadline = None if timeout is None else time.monotonic() + timeout

    def expired() -> bool:
        return deadline is not None and time.monotonic() >= deadline

    if not _WRITE_LOCK.acquire(timeout=-1 if timeout is None else max(timeout, 0)):
        logger.warning("Gave up waiting %.1fs for the write lock", timeout)
        raise TransactionTimeout()
    try:
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            if expired():
                raise TransactionTimeout() from exc
            raise StorageFailure() from exc

        if deadline is not None:
            conn.set_progress_handler(lambda: 1 if expired() else 0, _PROGRESS_INTERVAL)
        try:
            yield conn
            if expired():
                raise TransactionTimeout()
        except sqlite3.Error as exc:
            conn.rollback()
            if expired():
                raise TransactionTimeout() from exc
            raise StorageFailure() from exc
        except BaseException:
            conn.rollback()
            raise
        else:
            try:
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                raise StorageFailure() from exc
        finally:
            if deadline is not None:
                conn.set_progress_handler(None, 0)
    finally:
        _WRITE_LOCK.release()


def chunked(items: Sequence[Any], size: int) -> list[Sequence[Any]]:
    """Split *items* into consecutive slices of at most *size* elements."""
    if size < 1:
        raise ValueError(f"Batch size must be positive, got {size}")
    return [items[i : i + size] for i in range(0, len(items), size)]


def run_batches(
    conn: sqlite3.Connection,
    operations: Sequence[Operation],
    *,
    batch_size: int,
    timeout: float,
    label: str,
) -> int:
    """Apply *operations* in fixed-size batches, one transaction per batch.

    Batches run sequentially.  The operations inside a batch run concurrently
    on a thread pool (sequentially when the SQLite build is not serialized).
    A failing batch is rolled back and the error propagates; batches that
    already committed stay committed.

    Args:
        conn: Shared DB connection.
        operations: Callables taking the connection; they must not commit.
        batch_size: Maximum operations per transaction.
        timeout: Seconds each batch transaction may run.
        label: Phase name used in log messages.

    Returns:
        The number of batches committed.
    """
    batches = chunked(operations, batch_size)
    if not batches:
        return 0

    workers = batch_size if sqlite3.threadsafety == 3 else 1
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tree-sync") as pool:
        for index, batch in enumerate(batches, start=1):
            try:
                with transaction(conn, timeout=timeout):
                    futures = [pool.submit(op, conn) for op in batch]
                    wait(futures)
                    for future in futures:
                        exc = future.exception()
                        if exc is not None:
                            raise exc
            except StorageFailure:
                logger.exception(
                    "%s: batch %d/%d failed (%d operation(s))",
                    label, index, len(batches), len(batch),
                )
                raise
            logger.debug("%s: committed batch %d/%d", label, index, len(batches))

    return len(batches)
