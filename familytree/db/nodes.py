"""Operations on the ``tree_nodes`` table.

Write helpers in this module do not commit: run them inside
:func:`familytree.db.transactions.transaction` (directly or through
:func:`~familytree.db.transactions.run_batches`).
"""

from __future__ import annotations

import json
import sqlite3
from datetime import date
from time import time
from typing import Iterable, Optional

from familytree.db.models import Gender, TreeNode

# SQLite's default limit on bound parameters is 999 on older builds.
_IN_CLAUSE_CHUNK = 500


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _row_to_node(row: sqlite3.Row) -> TreeNode:
    return TreeNode(
        id=row["id"],
        tree_id=row["tree_id"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        date_of_birth=date.fromisoformat(row["date_of_birth"]),
        date_of_death=_parse_date(row["date_of_death"]),
        gender=Gender(row["gender"]),
        is_alive=bool(row["is_alive"]),
        birth_place=row["birth_place"],
        current_place=row["current_place"],
        profile_image=row["profile_image"],
        biography=row["biography"],
        custom_fields=json.loads(row["custom_fields"]) if row["custom_fields"] else None,
        linked_member_id=row["linked_member_id"],
        position_x=row["position_x"],
        position_y=row["position_y"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _node_values(node: TreeNode) -> tuple:
    return (
        node.first_name,
        node.last_name,
        node.date_of_birth.isoformat(),
        _format_date(node.date_of_death),
        node.gender.value,
        int(node.is_alive),
        node.birth_place,
        node.current_place,
        node.profile_image,
        node.biography,
        node.custom_fields_json(),
        node.linked_member_id,
        node.position_x,
        node.position_y,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def insert_node(conn: sqlite3.Connection, node: TreeNode) -> None:
    """Insert *node* with its client-supplied id."""
    now = int(time())
    conn.execute(
        """
        INSERT INTO tree_nodes (
            first_name, last_name, date_of_birth, date_of_death, gender, is_alive,
            birth_place, current_place, profile_image, biography, custom_fields,
            linked_member_id, position_x, position_y,
            id, tree_id, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        _node_values(node) + (node.id, node.tree_id, now, now),
    )


def update_node(conn: sqlite3.Connection, node: TreeNode) -> None:
    """Overwrite every editable field of an existing node.

    Raises:
        ValueError: If the node does not exist in ``node.tree_id``.
    """
    # rowcount is per connection and batch workers share this one.
    updated = conn.execute(
        """
        UPDATE tree_nodes
        SET    first_name = ?, last_name = ?, date_of_birth = ?, date_of_death = ?,
               gender = ?, is_alive = ?, birth_place = ?, current_place = ?,
               profile_image = ?, biography = ?, custom_fields = ?,
               linked_member_id = ?, position_x = ?, position_y = ?,
               updated_at = ?
        WHERE  id = ? AND tree_id = ?
        RETURNING id
        """,
        _node_values(node) + (int(time()), node.id, node.tree_id),
    ).fetchone()
    if updated is None:
        raise ValueError(f"Node not found: {node.id!r}")


def delete_node(conn: sqlite3.Connection, tree_id: str, node_id: str) -> None:
    """Delete a node (and its relations via CASCADE).

    This is a no-op if the node does not exist.
    """
    conn.execute(
        "DELETE FROM tree_nodes WHERE id = ? AND tree_id = ?", (node_id, tree_id)
    )


def get_node(conn: sqlite3.Connection, tree_id: str, node_id: str) -> Optional[TreeNode]:
    """Fetch a single node of *tree_id*.  Returns ``None`` if not found."""
    row = conn.execute(
        "SELECT * FROM tree_nodes WHERE id = ? AND tree_id = ?", (node_id, tree_id)
    ).fetchone()
    return _row_to_node(row) if row else None


def list_tree_nodes(conn: sqlite3.Connection, tree_id: str) -> list[TreeNode]:
    """Return every node of a tree in insertion order."""
    rows = conn.execute(
        "SELECT * FROM tree_nodes WHERE tree_id = ? ORDER BY created_at, rowid",
        (tree_id,),
    ).fetchall()
    return [_row_to_node(r) for r in rows]


def list_node_ids(conn: sqlite3.Connection, tree_id: str) -> list[str]:
    rows = conn.execute(
        "SELECT id FROM tree_nodes WHERE tree_id = ? ORDER BY created_at, rowid",
        (tree_id,),
    ).fetchall()
    return [r["id"] for r in rows]


def find_foreign_node_ids(
    conn: sqlite3.Connection,
    tree_id: str,
    node_ids: Iterable[str],
) -> set[str]:
    """Return the subset of *node_ids* already used by nodes of another tree."""
    ids = list(dict.fromkeys(node_ids))
    foreign: set[str] = set()
    for i in range(0, len(ids), _IN_CLAUSE_CHUNK):
        chunk = ids[i : i + _IN_CLAUSE_CHUNK]
        placeholders = ", ".join("?" for _ in chunk)
        rows = conn.execute(
            f"SELECT id FROM tree_nodes WHERE tree_id != ? AND id IN ({placeholders})",  # noqa: S608
            [tree_id, *chunk],
        ).fetchall()
        foreign.update(r["id"] for r in rows)
    return foreign
