"""Read side: assemble a tree for display."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Optional

from familytree.db.members import get_user
from familytree.db.models import Relation, Tree, TreeGraph, TreeNode, User
from familytree.db.trees import get_tree_graph
from familytree.errors import TreeNotFound
from familytree.services.authorization import AuthorizationGate


@dataclass
class TreeView:
    tree: Tree
    creator: Optional[User]
    nodes: list[TreeNode]
    relations: list[Relation]
    caller_is_admin: bool


class TreeQueryService:
    def __init__(self, conn: sqlite3.Connection, gate: Optional[AuthorizationGate] = None) -> None:
        self.conn = conn
        self.gate = gate or AuthorizationGate(conn)

    def fetch(self, tree_id: str, caller_id: str) -> TreeView:
        """Return the whole tree plus the caller's admin flag.

        Raises:
            TreeNotFound: No such tree.
            AuthorizationDenied: Caller is not an approved member of its family.
        """
        _, caps = self.gate.require_read(caller_id, tree_id)
        graph = get_tree_graph(self.conn, tree_id)
        if graph is None:
            raise TreeNotFound()
        return self.view(graph, caller_is_admin=caps.can_write)

    def view(self, graph: TreeGraph, caller_is_admin: bool) -> TreeView:
        return TreeView(
            tree=graph.tree,
            creator=get_user(self.conn, graph.tree.created_by_id),
            nodes=graph.nodes,
            relations=graph.relations,
            caller_is_admin=caller_is_admin,
        )
