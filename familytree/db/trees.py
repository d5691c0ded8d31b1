"""Operations on the ``trees`` table."""

from __future__ import annotations

import sqlite3
import uuid
from time import time
from typing import Optional

from familytree.db.models import MemberRole, MemberStatus, Tree, TreeGraph, TreeSummary
from familytree.db.nodes import list_tree_nodes
from familytree.db.relations import list_tree_relations
from familytree.db.transactions import transaction


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _row_to_tree(row: sqlite3.Row) -> Tree:
    return Tree(
        id=row["id"],
        family_id=row["family_id"],
        name=row["name"],
        description=row["description"],
        created_by_id=row["created_by_id"],
        created_at=row["created_at"],
        version=row["version"],
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def create_tree(
    conn: sqlite3.Connection,
    family_id: str,
    name: str,
    created_by_id: str,
    description: Optional[str] = None,
    tree_id: Optional[str] = None,
) -> Tree:
    """Insert a new, empty tree and return it.

    Args:
        conn: Open DB connection.
        family_id: Identifier of the owning family.
        name: Display name.
        created_by_id: Internal user id of the creator.
        description: Optional free text.
        tree_id: Explicit id override (auto-generated when omitted).
    """
    tid = tree_id or str(uuid.uuid4())
    with transaction(conn):
        conn.execute(
            """
            INSERT INTO trees (id, family_id, name, description, created_by_id, created_at, version)
            VALUES (?, ?, ?, ?, ?, ?, 0)
            """,
            (tid, family_id, name, description, created_by_id, int(time())),
        )
    return get_tree(conn, tid)  # type: ignore[return-value]


def get_tree(conn: sqlite3.Connection, tree_id: str) -> Optional[Tree]:
    """Fetch a tree by id.  Returns ``None`` if not found."""
    row = conn.execute("SELECT * FROM trees WHERE id = ?", (tree_id,)).fetchone()
    return _row_to_tree(row) if row else None


def family_has_tree(conn: sqlite3.Connection, family_id: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM trees WHERE family_id = ? LIMIT 1", (family_id,)
    ).fetchone()
    return row is not None


def get_tree_graph(conn: sqlite3.Connection, tree_id: str) -> Optional[TreeGraph]:
    """Return the tree with every node and relation, or ``None`` if missing."""
    tree = get_tree(conn, tree_id)
    if tree is None:
        return None
    return TreeGraph(
        tree=tree,
        nodes=list_tree_nodes(conn, tree_id),
        relations=list_tree_relations(conn, tree_id),
    )


def list_trees(conn: sqlite3.Connection, family_id: Optional[str] = None) -> list[Tree]:
    """Return all trees, optionally only those of ``family_id``, newest first."""
    if family_id:
        rows = conn.execute(
            "SELECT * FROM trees WHERE family_id = ? ORDER BY created_at DESC, rowid DESC",
            (family_id,),
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM trees ORDER BY created_at DESC, rowid DESC"
        ).fetchall()
    return [_row_to_tree(r) for r in rows]


def list_trees_for_user(conn: sqlite3.Connection, user_id: str) -> list[TreeSummary]:
    """Trees of every family *user_id* is an approved member of, plus trees they created.

    Newest first.  ``caller_is_admin`` reflects an approved ADMIN membership
    in the tree's family.
    """
    rows = conn.execute(
        """
        SELECT t.*,
               (SELECT COUNT(*) FROM tree_nodes n WHERE n.tree_id = t.id)     AS node_count,
               (SELECT COUNT(*) FROM tree_relations r WHERE r.tree_id = t.id) AS relation_count,
               m.role AS member_role,
               m.status AS member_status
        FROM   trees t
        LEFT JOIN family_members m
               ON m.family_id = t.family_id AND m.user_id = ?
        WHERE  (m.status = ?) OR t.created_by_id = ?
        ORDER BY t.created_at DESC, t.rowid DESC
        """,
        (user_id, MemberStatus.APPROVED.value, user_id),
    ).fetchall()
    return [
        TreeSummary(
            tree=_row_to_tree(r),
            node_count=r["node_count"],
            relation_count=r["relation_count"],
            caller_is_admin=(
                r["member_status"] == MemberStatus.APPROVED.value
                and r["member_role"] == MemberRole.ADMIN.value
            ),
        )
        for r in rows
    ]


def claim_version(
    conn: sqlite3.Connection,
    tree_id: str,
    expected_version: Optional[int] = None,
) -> Optional[int]:
    """Increment the tree's version and return the new value.

    When *expected_version* is given the increment only happens if the stored
    version still equals it (compare-and-swap); ``None`` is returned when it
    does not.  Must run inside a transaction.
    """
    if expected_version is None:
        row = conn.execute(
            "UPDATE trees SET version = version + 1 WHERE id = ? RETURNING version",
            (tree_id,),
        ).fetchone()
    else:
        row = conn.execute(
            "UPDATE trees SET version = version + 1 WHERE id = ? AND version = ? RETURNING version",
            (tree_id, expected_version),
        ).fetchone()
    return row["version"] if row else None
