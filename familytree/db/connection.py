"""Opening the family-tree database.

The API opens one connection per request and a CLI command opens one for its
run.  Sync batch workers share the connection of the call that started them.

Usage::

    from familytree.db.connection import get_connection

    conn = get_connection()
    tree = conn.execute("SELECT * FROM trees WHERE id = ?", (tree_id,)).fetchone()
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

from familytree.config import settings

MEMORY = ":memory:"


def get_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """Return a configured connection to *db_path* (``settings.db_path`` by default).

    * ``check_same_thread`` is off: batch workers write on the caller's
      connection, serialised by :func:`familytree.db.transactions.transaction`.
    * Rows come back as :class:`sqlite3.Row`.
    * Foreign keys are enforced, so deleting a tree or node cascades to its
      relations.
    * WAL journaling lets readers proceed while a sync batch is open; other
      processes wait up to one batch timeout for the write lock.
    """
    target = str(db_path or settings.db_path)
    if target != MEMORY:
        settings.ensure_workspace()

    conn = sqlite3.connect(target, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    for pragma in (
        "PRAGMA foreign_keys = ON",
        "PRAGMA journal_mode = WAL",
        f"PRAGMA busy_timeout = {int(settings.sync_batch_timeout * 1000)}",
    ):
        conn.execute(pragma)
    return conn
