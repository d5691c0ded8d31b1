"""Dataclass models representing DB rows.

These are plain Python objects – not ORM models.  The DB layer serialises /
deserialises to and from these types.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional


class Gender(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class RelationType(str, Enum):
    PARENT = "PARENT"
    SPOUSE = "SPOUSE"


class MemberStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class MemberRole(str, Enum):
    MEMBER = "MEMBER"
    ADMIN = "ADMIN"


@dataclass
class User:
    id: str
    external_id: str
    full_name: str
    image_url: Optional[str] = None


@dataclass
class Membership:
    user_id: str
    family_id: str
    status: MemberStatus
    role: MemberRole

    @property
    def is_approved(self) -> bool:
        return self.status is MemberStatus.APPROVED

    @property
    def is_admin(self) -> bool:
        return self.is_approved and self.role is MemberRole.ADMIN


@dataclass
class Tree:
    id: str
    family_id: str
    name: str
    description: Optional[str]
    created_by_id: str
    created_at: int
    version: int = 0


@dataclass
class TreeNode:
    """One person entry in a tree."""

    id: str
    tree_id: str
    first_name: str
    last_name: str
    date_of_birth: date
    gender: Gender
    is_alive: bool
    birth_place: str
    current_place: str
    date_of_death: Optional[date] = None
    profile_image: Optional[str] = None
    biography: Optional[str] = None
    custom_fields: Optional[dict[str, Any]] = None
    linked_member_id: Optional[str] = None
    position_x: Optional[float] = None
    position_y: Optional[float] = None
    created_at: int = 0
    updated_at: int = 0

    def custom_fields_json(self) -> Optional[str]:
        """Serialise custom fields to a JSON string for storage (``None`` stays NULL)."""
        if self.custom_fields is None:
            return None
        return json.dumps(self.custom_fields)


@dataclass
class Relation:
    """A PARENT (from = parent, to = child) or SPOUSE edge between two nodes."""

    id: str
    tree_id: str
    from_node_id: str
    to_node_id: str
    relation_type: RelationType
    marriage_date: Optional[date] = None
    divorce_date: Optional[date] = None
    is_active: bool = True
    created_at: int = 0
    updated_at: int = 0


@dataclass
class TreeGraph:
    tree: Tree
    nodes: list[TreeNode] = field(default_factory=list)
    relations: list[Relation] = field(default_factory=list)


@dataclass
class TreeSummary:
    """A tree plus counts, for listings."""

    tree: Tree
    node_count: int
    relation_count: int
    caller_is_admin: bool = False
