"""Read access to users and family memberships.

Both tables belong to the surrounding product.  The tree service only needs
to resolve a caller and look up their membership; the ``add_*`` helpers exist
for local setup and tests.
"""

from __future__ import annotations

import sqlite3
import uuid
from time import time
from typing import Optional

from familytree.db.models import MemberRole, MemberStatus, Membership, User
from familytree.db.transactions import transaction


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        external_id=row["external_id"],
        full_name=row["full_name"],
        image_url=row["image_url"],
    )


def add_user(
    conn: sqlite3.Connection,
    external_id: str,
    full_name: str = "",
    image_url: Optional[str] = None,
    user_id: Optional[str] = None,
) -> User:
    uid = user_id or str(uuid.uuid4())
    with transaction(conn):
        conn.execute(
            """
            INSERT INTO users (id, external_id, full_name, image_url, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (uid, external_id, full_name, image_url, int(time())),
        )
    return get_user(conn, uid)  # type: ignore[return-value]


def get_user(conn: sqlite3.Connection, user_id: str) -> Optional[User]:
    row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    return _row_to_user(row) if row else None


def get_user_by_external_id(conn: sqlite3.Connection, external_id: str) -> Optional[User]:
    """Resolve an external identity (e.g. an auth-provider subject) to a user."""
    row = conn.execute(
        "SELECT * FROM users WHERE external_id = ?", (external_id,)
    ).fetchone()
    return _row_to_user(row) if row else None


def add_membership(
    conn: sqlite3.Connection,
    user_id: str,
    family_id: str,
    status: MemberStatus = MemberStatus.APPROVED,
    role: MemberRole = MemberRole.MEMBER,
) -> Membership:
    """Insert or replace a membership row."""
    with transaction(conn):
        conn.execute(
            """
            INSERT INTO family_members (user_id, family_id, status, role, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (user_id, family_id)
            DO UPDATE SET status = excluded.status, role = excluded.role
            """,
            (user_id, family_id, status.value, role.value, int(time())),
        )
    return Membership(user_id=user_id, family_id=family_id, status=status, role=role)


class SqliteMembershipDirectory:
    """:class:`~familytree.services.authorization.MembershipDirectory` backed by ``family_members``."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def get_membership(self, user_id: str, family_id: str) -> Optional[Membership]:
        row = self.conn.execute(
            """
            SELECT user_id, family_id, status, role
            FROM   family_members
            WHERE  user_id = ? AND family_id = ?
            """,
            (user_id, family_id),
        ).fetchone()
        if row is None:
            return None
        return Membership(
            user_id=row["user_id"],
            family_id=row["family_id"],
            status=MemberStatus(row["status"]),
            role=MemberRole(row["role"]),
        )
