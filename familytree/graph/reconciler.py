"""Whole-tree synchronisation.

:class:`TreeReconciler` replaces the stored contents of a tree with a
client-submitted full state.  The work is split into phases, each applied in
small bounded transactions:

1. node upserts;
2. relation validation against the tree as it now stands;
3. relation deletes, then relation upserts;
4. deletes of nodes the client dropped;
5. the version bump.

There is no transaction spanning the phases.  If relation validation fails,
the node upserts from phase 1 remain committed; a retry with the same payload
is safe because upserts are keyed on client-supplied ids.  The version is
checked up front but only incremented once every phase has committed, so a
failed call leaves it unchanged and the retry may send the same version.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from functools import partial
from typing import Optional, Sequence

from familytree.config import settings
from familytree.db.models import Relation, TreeGraph, TreeNode
from familytree.db.nodes import (
    delete_node,
    find_foreign_node_ids,
    insert_node,
    list_node_ids,
    update_node,
)
from familytree.db.relations import (
    delete_relation,
    find_foreign_relation_ids,
    insert_relation,
    list_relation_ids,
    update_relation,
)
from familytree.db.transactions import Operation, run_batches, transaction
from familytree.db.trees import claim_version, get_tree, get_tree_graph
from familytree.errors import (
    AuthorizationDenied,
    RelationshipInvalid,
    StaleTreeVersion,
    TreeNotFound,
    ValidationFailed,
)
from familytree.graph.diff import SyncPlan, find_duplicate_ids, plan_sync
from familytree.graph.validator import GraphSnapshot, validate_graph

logger = logging.getLogger(__name__)


class TreeReconciler:
    """Apply full-state tree submissions to the graph store."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        batch_size: Optional[int] = None,
        batch_timeout: Optional[float] = None,
    ) -> None:
        self.conn = conn
        self.batch_size = batch_size or settings.sync_batch_size
        self.batch_timeout = (
            settings.sync_batch_timeout if batch_timeout is None else batch_timeout
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def reconcile(
        self,
        tree_id: str,
        caller_is_admin: bool,
        nodes: Sequence[TreeNode],
        relations: Sequence[Relation],
        expected_version: Optional[int] = None,
    ) -> TreeGraph:
        """Make the stored tree equal to *nodes* and *relations*.

        Args:
            tree_id: Tree to update.
            caller_is_admin: Result of the authorization gate; checked again here.
            nodes: Every node the tree should contain after the call.
            relations: Every relation the tree should contain after the call.
            expected_version: Version the client last read.  When given, the
                call fails with :class:`StaleTreeVersion` if another write
                landed in between.

        Returns:
            The persisted tree, re-read after all phases committed.

        Raises:
            AuthorizationDenied: *caller_is_admin* is false.
            TreeNotFound: No tree with *tree_id*.
            ValidationFailed: Duplicate ids or ids owned by another tree.
            StaleTreeVersion: *expected_version* is out of date, either on
                entry or because another sync finished while this one ran.
            RelationshipInvalid: A relation failed validation.  Node upserts
                were already committed.
            StorageFailure: A batch failed or timed out.  Earlier batches
                stay committed.
        """
        if not caller_is_admin:
            raise AuthorizationDenied("Only admins can update family trees")

        tree = get_tree(self.conn, tree_id)
        if tree is None:
            raise TreeNotFound()

        nodes = [replace(n, tree_id=tree_id) for n in nodes]
        relations = [replace(r, tree_id=tree_id) for r in relations]
        self._check_identifiers(tree_id, nodes, relations)

        if expected_version is not None and expected_version != tree.version:
            self._reject_stale(tree_id, expected_version)

        plan = plan_sync(
            list_node_ids(self.conn, tree_id),
            list_relation_ids(self.conn, tree_id),
            nodes,
            relations,
        )
        logger.info("Syncing tree %s (from version %d): %s", tree_id, tree.version, plan.summary())

        self._apply_node_upserts(tree_id, plan)
        self._validate_relations(tree_id, plan, relations)
        self._apply_relation_changes(tree_id, plan)
        self._apply_node_deletes(tree_id, plan)
        self._claim_version(tree_id, expected_version)

        graph = get_tree_graph(self.conn, tree_id)
        if graph is None:
            raise TreeNotFound()
        return graph

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _check_identifiers(
        self,
        tree_id: str,
        nodes: Sequence[TreeNode],
        relations: Sequence[Relation],
    ) -> None:
        errors: list[str] = []
        for node_id in find_duplicate_ids(n.id for n in nodes):
            errors.append(f"Duplicate node id: {node_id}")
        for rel_id in find_duplicate_ids(r.id for r in relations):
            errors.append(f"Duplicate relation id: {rel_id}")
        for node_id in sorted(find_foreign_node_ids(self.conn, tree_id, (n.id for n in nodes))):
            errors.append(f"Node id {node_id} belongs to another tree")
        for rel_id in sorted(find_foreign_relation_ids(self.conn, tree_id, (r.id for r in relations))):
            errors.append(f"Relation id {rel_id} belongs to another tree")
        if errors:
            raise ValidationFailed("Invalid tree data", errors=errors)

    def _claim_version(self, tree_id: str, expected_version: Optional[int]) -> None:
        with transaction(self.conn, timeout=self.batch_timeout):
            version = claim_version(self.conn, tree_id, expected_version)
        if version is None:
            self._reject_stale(tree_id, expected_version)

    def _reject_stale(self, tree_id: str, expected_version: Optional[int]) -> None:
        logger.warning(
            "Rejected stale write to tree %s (client version %s)", tree_id, expected_version
        )
        raise StaleTreeVersion()

    def _apply_node_upserts(self, tree_id: str, plan: SyncPlan) -> None:
        ops: list[Operation] = [
            partial(insert_node if node.id in plan.new_node_ids else update_node, node=node)
            for node in plan.node_upserts
        ]
        self._run(ops, f"tree {tree_id} node upserts")

    def _validate_relations(
        self,
        tree_id: str,
        plan: SyncPlan,
        relations: Sequence[Relation],
    ) -> None:
        dropped = set(plan.node_deletes)
        live_nodes = [nid for nid in list_node_ids(self.conn, tree_id) if nid not in dropped]
        result = validate_graph(GraphSnapshot.build(live_nodes, relations))
        if not result.is_valid:
            logger.warning("Rejected relations for tree %s: %s", tree_id, result.reason)
            raise RelationshipInvalid(result.reason)

    def _apply_relation_changes(self, tree_id: str, plan: SyncPlan) -> None:
        deletes: list[Operation] = [
            partial(delete_relation, tree_id=tree_id, relation_id=rel_id)
            for rel_id in plan.relation_deletes
        ]
        self._run(deletes, f"tree {tree_id} relation deletes")

        upserts: list[Operation] = [
            partial(insert_relation if rel.id in plan.new_relation_ids else update_relation, relation=rel)
            for rel in plan.relation_upserts
        ]
        self._run(upserts, f"tree {tree_id} relation upserts")

    def _apply_node_deletes(self, tree_id: str, plan: SyncPlan) -> None:
        ops: list[Operation] = [
            partial(delete_node, tree_id=tree_id, node_id=node_id)
            for node_id in plan.node_deletes
        ]
        self._run(ops, f"tree {tree_id} node deletes")

    def _run(self, ops: Sequence[Operation], label: str) -> None:
        run_batches(
            self.conn,
            ops,
            batch_size=self.batch_size,
            timeout=self.batch_timeout,
            label=label,
        )
