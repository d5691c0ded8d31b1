"""Who may read or edit a tree.

Membership is owned by the surrounding product and consumed through the
narrow :class:`MembershipDirectory` protocol:

* read: approved member of the tree's family;
* write: approved member holding the ADMIN role.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Optional, Protocol

from familytree.db.members import SqliteMembershipDirectory
from familytree.db.models import Membership, Tree
from familytree.db.trees import get_tree
from familytree.errors import AuthorizationDenied, TreeNotFound


class MembershipDirectory(Protocol):
    def get_membership(self, user_id: str, family_id: str) -> Optional[Membership]: ...


@dataclass(frozen=True)
class Capabilities:
    can_read: bool
    can_write: bool


NO_ACCESS = Capabilities(can_read=False, can_write=False)


def capabilities_for(membership: Optional[Membership]) -> Capabilities:
    if membership is None or not membership.is_approved:
        return NO_ACCESS
    return Capabilities(can_read=True, can_write=membership.is_admin)


class AuthorizationGate:
    def __init__(
        self,
        conn: sqlite3.Connection,
        directory: Optional[MembershipDirectory] = None,
    ) -> None:
        self.conn = conn
        self.directory = directory or SqliteMembershipDirectory(conn)

    def authorize(self, caller_id: str, tree_id: str) -> Capabilities:
        """Return what *caller_id* may do with *tree_id*.

        Raises:
            TreeNotFound: The tree does not exist.
        """
        return self._authorize(caller_id, tree_id)[1]

    def require_read(self, caller_id: str, tree_id: str) -> tuple[Tree, Capabilities]:
        tree, caps = self._authorize(caller_id, tree_id)
        if not caps.can_read:
            raise AuthorizationDenied()
        return tree, caps

    def require_write(self, caller_id: str, tree_id: str) -> tuple[Tree, Capabilities]:
        tree, caps = self._authorize(caller_id, tree_id)
        if not caps.can_write:
            raise AuthorizationDenied("Only admins can update family trees")
        return tree, caps

    def family_membership(self, caller_id: str, family_id: str) -> Optional[Membership]:
        return self.directory.get_membership(caller_id, family_id)

    def _authorize(self, caller_id: str, tree_id: str) -> tuple[Tree, Capabilities]:
        tree = get_tree(self.conn, tree_id)
        if tree is None:
            raise TreeNotFound()
        membership = self.directory.get_membership(caller_id, tree.family_id)
        return tree, capabilities_for(membership)
