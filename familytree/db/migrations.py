"""Schema setup for the family-tree database.

``init_db`` runs ``schema.sql`` (every statement is ``IF NOT EXISTS``) and
then applies the numbered steps in :data:`MIGRATIONS` that the database has
not seen yet.  Applied steps are recorded in ``schema_version``.
"""

from __future__ import annotations

import logging
import sqlite3

from familytree.config import settings

logger = logging.getLogger(__name__)

# (version, statement) pairs in ascending order.  Append only.
MIGRATIONS: list[tuple[int, str]] = [
    (1, "CREATE INDEX IF NOT EXISTS idx_trees_created_by ON trees(created_by_id)"),
]


def init_db(conn: sqlite3.Connection) -> None:
    """Create missing tables and indexes, then bring the schema up to date.

    Safe to call on every start-up.
    """
    # executescript() commits any open transaction first; the script is DDL only.
    conn.executescript(settings.schema_path.read_text(encoding="utf-8"))
    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version    INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            )
            """
        )
    migrate(conn)


def current_version(conn: sqlite3.Connection) -> int:
    """Highest recorded migration step, or 0 on a database that has none."""
    (version,) = conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_version").fetchone()
    return version


def migrate(conn: sqlite3.Connection) -> int:
    """Apply pending :data:`MIGRATIONS` one by one; return the resulting version."""
    version = current_version(conn)
    for step, statement in MIGRATIONS:
        if step <= version:
            continue
        logger.info("Applying schema migration %d", step)
        with conn:
            conn.execute(statement)
            conn.execute(
                "INSERT INTO schema_version (version, applied_at) "
                "VALUES (?, CAST(strftime('%s', 'now') AS INTEGER))",
                (step,),
            )
        version = step
    return version
