"""Operations on the ``tree_relations`` table.

Like :mod:`familytree.db.nodes`, write helpers here never commit.
"""

from __future__ import annotations

import sqlite3
from time import time
from typing import Iterable

from familytree.db.models import Relation, RelationType
from familytree.db.nodes import _IN_CLAUSE_CHUNK, _format_date, _parse_date


def _row_to_relation(row: sqlite3.Row) -> Relation:
    return Relation(
        id=row["id"],
        tree_id=row["tree_id"],
        from_node_id=row["from_node_id"],
        to_node_id=row["to_node_id"],
        relation_type=RelationType(row["relation_type"]),
        marriage_date=_parse_date(row["marriage_date"]),
        divorce_date=_parse_date(row["divorce_date"]),
        is_active=bool(row["is_active"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _relation_values(relation: Relation) -> tuple:
    return (
        relation.from_node_id,
        relation.to_node_id,
        RelationType(relation.relation_type).value,
        _format_date(relation.marriage_date),
        _format_date(relation.divorce_date),
        int(relation.is_active),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def insert_relation(conn: sqlite3.Connection, relation: Relation) -> None:
    """Insert *relation* with its client-supplied id."""
    now = int(time())
    conn.execute(
        """
        INSERT INTO tree_relations (
            from_node_id, to_node_id, relation_type, marriage_date, divorce_date,
            is_active, id, tree_id, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        _relation_values(relation) + (relation.id, relation.tree_id, now, now),
    )


def update_relation(conn: sqlite3.Connection, relation: Relation) -> None:
    """Overwrite endpoints, type, dates and flag of an existing relation.

    Raises:
        ValueError: If the relation does not exist in ``relation.tree_id``.
    """
    updated = conn.execute(
        """
        UPDATE tree_relations
        SET    from_node_id = ?, to_node_id = ?, relation_type = ?,
               marriage_date = ?, divorce_date = ?, is_active = ?, updated_at = ?
        WHERE  id = ? AND tree_id = ?
        RETURNING id
        """,
        _relation_values(relation) + (int(time()), relation.id, relation.tree_id),
    ).fetchone()
    if updated is None:
        raise ValueError(f"Relation not found: {relation.id!r}")


def delete_relation(conn: sqlite3.Connection, tree_id: str, relation_id: str) -> None:
    """Delete one relation.  No-op if it does not exist."""
    conn.execute(
        "DELETE FROM tree_relations WHERE id = ? AND tree_id = ?",
        (relation_id, tree_id),
    )


def list_tree_relations(conn: sqlite3.Connection, tree_id: str) -> list[Relation]:
    """Return every relation of a tree in insertion order."""
    rows = conn.execute(
        "SELECT * FROM tree_relations WHERE tree_id = ? ORDER BY created_at, rowid",
        (tree_id,),
    ).fetchall()
    return [_row_to_relation(r) for r in rows]


def list_relation_ids(conn: sqlite3.Connection, tree_id: str) -> list[str]:
    rows = conn.execute(
        "SELECT id FROM tree_relations WHERE tree_id = ? ORDER BY created_at, rowid",
        (tree_id,),
    ).fetchall()
    return [r["id"] for r in rows]


def get_node_relations(conn: sqlite3.Connection, tree_id: str, node_id: str) -> list[Relation]:
    """Return all relations where *node_id* is the source **or** the target."""
    rows = conn.execute(
        """
        SELECT *
        FROM   tree_relations
        WHERE  tree_id = ? AND (from_node_id = ? OR to_node_id = ?)
        ORDER BY created_at, rowid
        """,
        (tree_id, node_id, node_id),
    ).fetchall()
    return [_row_to_relation(r) for r in rows]


def find_foreign_relation_ids(
    conn: sqlite3.Connection,
    tree_id: str,
    relation_ids: Iterable[str],
) -> set[str]:
    """Return the subset of *relation_ids* already used by another tree."""
    ids = list(dict.fromkeys(relation_ids))
    foreign: set[str] = set()
    for i in range(0, len(ids), _IN_CLAUSE_CHUNK):
        chunk = ids[i : i + _IN_CLAUSE_CHUNK]
        placeholders = ", ".join("?" for _ in chunk)
        rows = conn.execute(
            f"SELECT id FROM tree_relations WHERE tree_id != ? AND id IN ({placeholders})",  # noqa: S608
            [tree_id, *chunk],
        ).fetchall()
        foreign.update(r["id"] for r in rows)
    return foreign
