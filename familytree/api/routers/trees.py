"""Family-tree endpoints.

Routes
------
GET    /trees                          Trees visible to the caller
POST   /trees                          Create an empty tree for a family
GET    /trees/{tree_id}                Whole tree + caller's admin flag
PUT    /trees/{tree_id}                Replace the tree with a full submitted state
GET    /trees/{tree_id}/nodes/{node_id}  Can this node be deleted on its own?
DELETE /trees/{tree_id}/nodes/{node_id}  Delete a node without relations

Every response uses the ``{success, data}`` envelope; failures are turned
into ``{success: false, message}`` by the handlers in :mod:`familytree.api.app`.
"""

from __future__ import annotations

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends

from familytree.api.dependencies import get_caller, get_db
from familytree.api.schemas import (
    TreeCreate,
    TreeSummaryView,
    TreeSyncRequest,
    TreeViewModel,
    dump,
    success,
)
from familytree.db.models import User
from familytree.graph.reconciler import TreeReconciler
from familytree.services.authorization import AuthorizationGate
from familytree.services.query import TreeQueryService
from familytree.services.trees import (
    create_family_tree,
    list_visible_trees,
    node_delete_status,
    remove_node,
)

router = APIRouter()


@router.get("")
def list_trees(
    conn: sqlite3.Connection = Depends(get_db),
    caller: User = Depends(get_caller),
) -> dict[str, Any]:
    """Return every tree the caller can see, newest first."""
    summaries = list_visible_trees(conn, caller)
    return success([dump(TreeSummaryView.from_summary(s)) for s in summaries])


@router.post("", status_code=201)
def create(
    body: TreeCreate,
    conn: sqlite3.Connection = Depends(get_db),
    caller: User = Depends(get_caller),
) -> dict[str, Any]:
    """Create an empty tree for a family the caller belongs to."""
    tree = create_family_tree(
        conn,
        caller,
        family_id=body.family_id,
        name=body.name,
        description=body.description,
    )
    view = TreeQueryService(conn).fetch(tree.id, caller.id)
    return success(dump(TreeViewModel.from_view(view)))


@router.get("/{tree_id}")
def get_one(
    tree_id: str,
    conn: sqlite3.Connection = Depends(get_db),
    caller: User = Depends(get_caller),
) -> dict[str, Any]:
    """Fetch a whole tree.  Requires approved membership of its family."""
    view = TreeQueryService(conn).fetch(tree_id, caller.id)
    return success(dump(TreeViewModel.from_view(view)))


@router.put("/{tree_id}")
def sync(
    tree_id: str,
    body: TreeSyncRequest,
    conn: sqlite3.Connection = Depends(get_db),
    caller: User = Depends(get_caller),
) -> dict[str, Any]:
    """Replace the tree's nodes and relations with the submitted state.

    Requires the ADMIN role in the tree's family.
    """
    gate = AuthorizationGate(conn)
    _, caps = gate.require_write(caller.id, tree_id)

    nodes, relations = body.to_domain(tree_id)
    graph = TreeReconciler(conn).reconcile(
        tree_id,
        caller_is_admin=caps.can_write,
        nodes=nodes,
        relations=relations,
        expected_version=body.version,
    )
    view = TreeQueryService(conn, gate).view(graph, caller_is_admin=caps.can_write)
    return success(dump(TreeViewModel.from_view(view)))


@router.get("/{tree_id}/nodes/{node_id}")
def node_status(
    tree_id: str,
    node_id: str,
    conn: sqlite3.Connection = Depends(get_db),
    caller: User = Depends(get_caller),
) -> dict[str, Any]:
    status = node_delete_status(conn, caller, tree_id, node_id)
    return success(
        {
            "canDelete": status.can_delete,
            "hasRelationships": status.has_relationships,
            "relationshipsCount": status.relationships_count,
        }
    )


@router.delete("/{tree_id}/nodes/{node_id}")
def delete(
    tree_id: str,
    node_id: str,
    conn: sqlite3.Connection = Depends(get_db),
    caller: User = Depends(get_caller),
) -> dict[str, Any]:
    """Delete a node that no longer takes part in any relation."""
    remove_node(conn, caller, tree_id, node_id)
    return {"success": True, "message": "Node deleted successfully", "canDelete": True}
