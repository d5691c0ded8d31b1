"""Tree lifecycle operations around the sync protocol.

Creating a tree, listing the trees a user can see, and removing a single
node outside of a whole-tree sync.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Optional

from familytree.config import settings
from familytree.db.models import Tree, TreeSummary, User
from familytree.db.nodes import delete_node, get_node
from familytree.db.relations import get_node_relations
from familytree.db.transactions import transaction
from familytree.db.trees import create_tree, family_has_tree, list_trees_for_user
from familytree.errors import (
    AuthorizationDenied,
    NodeHasRelations,
    NodeNotFound,
    TreeAlreadyExists,
)
from familytree.services.authorization import AuthorizationGate

logger = logging.getLogger(__name__)


@dataclass
class NodeDeleteStatus:
    can_delete: bool
    relationships_count: int

    @property
    def has_relationships(self) -> bool:
        return self.relationships_count > 0


def create_family_tree(
    conn: sqlite3.Connection,
    caller: User,
    family_id: str,
    name: str,
    description: Optional[str] = None,
    gate: Optional[AuthorizationGate] = None,
) -> Tree:
    """Create an empty tree for *family_id* on behalf of *caller*.

    Raises:
        AuthorizationDenied: Caller is not an approved member of the family.
        TreeAlreadyExists: The family already has a tree and multiple trees
            per family are disabled.
    """
    gate = gate or AuthorizationGate(conn)
    membership = gate.family_membership(caller.id, family_id)
    if membership is None or not membership.is_approved:
        raise AuthorizationDenied("You are not a member of this family.")

    if not settings.allow_multiple_trees_per_family and family_has_tree(conn, family_id):
        raise TreeAlreadyExists(f'A family tree named "{name}" already exists in this family.')

    tree = create_tree(conn, family_id=family_id, name=name, created_by_id=caller.id, description=description)
    logger.info("User %s created tree %s for family %s", caller.id, tree.id, family_id)
    return tree


def list_visible_trees(conn: sqlite3.Connection, caller: User) -> list[TreeSummary]:
    return list_trees_for_user(conn, caller.id)


def node_delete_status(
    conn: sqlite3.Connection,
    caller: User,
    tree_id: str,
    node_id: str,
    gate: Optional[AuthorizationGate] = None,
) -> NodeDeleteStatus:
    """Report whether a node could be deleted on its own (it has no relations)."""
    gate = gate or AuthorizationGate(conn)
    gate.require_read(caller.id, tree_id)
    if get_node(conn, tree_id, node_id) is None:
        raise NodeNotFound()
    count = len(get_node_relations(conn, tree_id, node_id))
    return NodeDeleteStatus(can_delete=count == 0, relationships_count=count)


def remove_node(
    conn: sqlite3.Connection,
    caller: User,
    tree_id: str,
    node_id: str,
    gate: Optional[AuthorizationGate] = None,
) -> None:
    """Delete one node.  Refused while the node still takes part in a relation."""
    gate = gate or AuthorizationGate(conn)
    gate.require_write(caller.id, tree_id)
    with transaction(conn, timeout=settings.sync_batch_timeout):
        if get_node(conn, tree_id, node_id) is None:
            raise NodeNotFound()
        if get_node_relations(conn, tree_id, node_id):
            raise NodeHasRelations()
        delete_node(conn, tree_id, node_id)
    logger.info("User %s deleted node %s from tree %s", caller.id, node_id, tree_id)
