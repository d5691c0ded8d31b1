"""Full-state diff between stored and desired tree contents.

The client always submits the whole tree.  :func:`plan_sync` turns that
submission plus the stored identifiers into an explicit :class:`SyncPlan`.
Matching is purely on identifiers: a re-submitted relation with new field
values is an update, never a delete followed by a create.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from familytree.db.models import Relation, TreeNode


@dataclass
class SyncPlan:
    node_upserts: list[TreeNode] = field(default_factory=list)
    new_node_ids: frozenset[str] = frozenset()
    node_deletes: list[str] = field(default_factory=list)
    relation_upserts: list[Relation] = field(default_factory=list)
    new_relation_ids: frozenset[str] = frozenset()
    relation_deletes: list[str] = field(default_factory=list)

    @property
    def nodes_to_create(self) -> list[TreeNode]:
        return [n for n in self.node_upserts if n.id in self.new_node_ids]

    @property
    def nodes_to_update(self) -> list[TreeNode]:
        return [n for n in self.node_upserts if n.id not in self.new_node_ids]

    @property
    def relations_to_create(self) -> list[Relation]:
        return [r for r in self.relation_upserts if r.id in self.new_relation_ids]

    @property
    def relations_to_update(self) -> list[Relation]:
        return [r for r in self.relation_upserts if r.id not in self.new_relation_ids]

    def summary(self) -> dict[str, int]:
        return {
            "nodes_created": len(self.new_node_ids),
            "nodes_updated": len(self.node_upserts) - len(self.new_node_ids),
            "nodes_deleted": len(self.node_deletes),
            "relations_created": len(self.new_relation_ids),
            "relations_updated": len(self.relation_upserts) - len(self.new_relation_ids),
            "relations_deleted": len(self.relation_deletes),
        }


def find_duplicate_ids(ids: Iterable[str]) -> list[str]:
    """Return ids that occur more than once, in first-seen order."""
    seen: set[str] = set()
    duplicates: dict[str, None] = {}
    for item in ids:
        if item in seen:
            duplicates[item] = None
        seen.add(item)
    return list(duplicates)


def plan_sync(
    existing_node_ids: Iterable[str],
    existing_relation_ids: Iterable[str],
    desired_nodes: Sequence[TreeNode],
    desired_relations: Sequence[Relation],
) -> SyncPlan:
    """Compute the upserts and deletes that turn stored state into desired state.

    Upserts keep submission order; deletes keep stored order.  Desired ids are
    assumed unique (see :func:`find_duplicate_ids`).
    """
    stored_nodes = list(existing_node_ids)
    stored_relations = list(existing_relation_ids)
    stored_node_set = set(stored_nodes)
    stored_relation_set = set(stored_relations)

    wanted_nodes = {n.id for n in desired_nodes}
    wanted_relations = {r.id for r in desired_relations}

    return SyncPlan(
        node_upserts=list(desired_nodes),
        new_node_ids=frozenset(wanted_nodes - stored_node_set),
        node_deletes=[nid for nid in stored_nodes if nid not in wanted_nodes],
        relation_upserts=list(desired_relations),
        new_relation_ids=frozenset(wanted_relations - stored_relation_set),
        relation_deletes=[rid for rid in stored_relations if rid not in wanted_relations],
    )
