"""Structural and semantic checks for proposed relations.

Everything here is pure: a relation is judged against a :class:`GraphSnapshot`
of the prospective tree and nothing is read from or written to storage.

Checks run in a fixed order and stop at the first failure:

1. the relation type is PARENT or SPOUSE;
2. both endpoints exist in the snapshot;
3. the endpoints differ;
4. a PARENT edge does not make a node its own ancestor;
5. an active SPOUSE edge does not give either partner a second active spouse.
"""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, field
from functools import cached_property
from typing import Iterable, Optional, Union

from familytree.db.models import Relation, RelationType


@dataclass(frozen=True)
class Valid:
    is_valid: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Invalid:
    reason: str
    is_valid: bool = field(default=False, init=False)


ValidationResult = Union[Valid, Invalid]

VALID = Valid()


@dataclass(frozen=True)
class GraphSnapshot:
    """The node ids and relations a proposed relation is checked against."""

    node_ids: frozenset[str]
    relations: tuple[Relation, ...] = ()

    @classmethod
    def build(cls, node_ids: Iterable[str], relations: Iterable[Relation]) -> GraphSnapshot:
        return cls(node_ids=frozenset(node_ids), relations=tuple(relations))

    @cached_property
    def _parents(self) -> dict[str, list[tuple[str, str]]]:
        # child id -> [(parent id, relation id)]
        index: dict[str, list[tuple[str, str]]] = defaultdict(list)
        for rel in self.relations:
            if rel.relation_type == RelationType.PARENT:
                index[rel.to_node_id].append((rel.from_node_id, rel.id))
        return index

    @cached_property
    def _active_spouses(self) -> dict[str, list[Relation]]:
        index: dict[str, list[Relation]] = defaultdict(list)
        for rel in self.relations:
            if rel.relation_type == RelationType.SPOUSE and rel.is_active:
                index[rel.from_node_id].append(rel)
                index[rel.to_node_id].append(rel)
        return index

    def is_ancestor(self, candidate: str, node_id: str, ignore_relation: Optional[str] = None) -> bool:
        """True if *candidate* is a transitive parent of *node_id*.

        Walks PARENT edges upward breadth-first.  The walk visits each node at
        most once, so its depth never exceeds the number of nodes.
        """
        seen = {node_id}
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            for parent, rel_id in self._parents.get(current, ()):
                if rel_id == ignore_relation:
                    continue
                if parent == candidate:
                    return True
                if parent not in seen:
                    seen.add(parent)
                    queue.append(parent)
        return False

    def active_spouse_relations(self, node_id: str, ignore_relation: Optional[str] = None) -> list[Relation]:
        return [r for r in self._active_spouses.get(node_id, ()) if r.id != ignore_relation]


def _relation_type(value: object) -> Optional[RelationType]:
    if isinstance(value, RelationType):
        return value
    try:
        return RelationType(value)
    except ValueError:
        return None


def validate_relation(relation: Relation, snapshot: GraphSnapshot) -> ValidationResult:
    """Judge *relation* against *snapshot*.

    The relation itself may be part of ``snapshot.relations``; it is ignored
    (matched by id) when looking for cycles and competing spouses.
    """
    raw_type = relation.relation_type
    if not raw_type:
        return Invalid("Relationship type is required. Only PARENT and SPOUSE are allowed.")
    rel_type = _relation_type(raw_type)
    if rel_type is None:
        return Invalid(
            f"Invalid relationship type: {raw_type}. Only PARENT and SPOUSE are allowed."
        )

    if not relation.from_node_id or not relation.to_node_id:
        return Invalid(f"Relation {relation.id}: missing fromNodeId or toNodeId")
    for endpoint in (relation.from_node_id, relation.to_node_id):
        if endpoint not in snapshot.node_ids:
            return Invalid(
                f"Relation {relation.id}: node {endpoint} does not exist in this tree"
            )

    if relation.from_node_id == relation.to_node_id:
        return Invalid(f"Relation {relation.id}: a person cannot be related to themselves")

    if rel_type is RelationType.PARENT:
        if snapshot.is_ancestor(relation.to_node_id, relation.from_node_id, ignore_relation=relation.id):
            return Invalid(
                f"Relation {relation.id}: would create a cycle, "
                f"{relation.to_node_id} is already an ancestor of {relation.from_node_id}"
            )

    if rel_type is RelationType.SPOUSE and relation.is_active:
        for endpoint in (relation.from_node_id, relation.to_node_id):
            existing = snapshot.active_spouse_relations(endpoint, ignore_relation=relation.id)
            if existing:
                return Invalid(
                    f"Relation {relation.id}: {endpoint} already has an active spouse "
                    f"(relation {existing[0].id}); mark it inactive first"
                )

    return VALID


def validate_graph(snapshot: GraphSnapshot) -> ValidationResult:
    """Validate every relation of *snapshot* in order; return the first failure."""
    for relation in snapshot.relations:
        result = validate_relation(relation, snapshot)
        if not result.is_valid:
            return result
    return VALID
