"""Builders shared by the test modules."""

from __future__ import annotations

from datetime import date
from typing import Any

from familytree.db.models import Gender, Relation, RelationType, TreeNode


def make_node(node_id: str, tree_id: str = "", **overrides: Any) -> TreeNode:
    fields: dict[str, Any] = dict(
        id=node_id,
        tree_id=tree_id,
        first_name=node_id.upper(),
        last_name="Doe",
        date_of_birth=date(1950, 1, 1),
        gender=Gender.OTHER,
        is_alive=True,
        birth_place="Springfield",
        current_place="Springfield",
    )
    fields.update(overrides)
    return TreeNode(**fields)


def parent(rel_id: str, parent_id: str, child_id: str, tree_id: str = "") -> Relation:
    return Relation(
        id=rel_id,
        tree_id=tree_id,
        from_node_id=parent_id,
        to_node_id=child_id,
        relation_type=RelationType.PARENT,
    )


def spouse(rel_id: str, a: str, b: str, active: bool = True, tree_id: str = "") -> Relation:
    return Relation(
        id=rel_id,
        tree_id=tree_id,
        from_node_id=a,
        to_node_id=b,
        relation_type=RelationType.SPOUSE,
        is_active=active,
    )


def node_payload(node_id: str, **overrides: Any) -> dict[str, Any]:
    """A ``NodeInput`` body as a client would send it."""
    body: dict[str, Any] = {
        "id": node_id,
        "firstName": node_id.upper(),
        "lastName": "Doe",
        "dateOfBirth": "1950-01-01",
        "dateOfDeath": None,
        "gender": "OTHER",
        "isAlive": True,
        "birthPlace": "Springfield",
        "currentPlace": "Springfield",
        "profileImage": None,
        "biography": None,
        "customFields": None,
        "linkedMemberId": None,
        "positionX": None,
        "positionY": None,
    }
    body.update(overrides)
    return body


def relation_payload(
    rel_id: str,
    from_id: str,
    to_id: str,
    relation_type: str = "PARENT",
    **overrides: Any,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "id": rel_id,
        "fromNodeId": from_id,
        "toNodeId": to_id,
        "relationType": relation_type,
        "marriageDate": None,
        "divorceDate": None,
        "isActive": True,
    }
    body.update(overrides)
    return body
