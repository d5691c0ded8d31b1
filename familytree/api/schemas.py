"""Wire format for the tree endpoints.

Request and response bodies use camelCase field names; the Python side uses
snake_case.  Input models convert to the dataclasses in
:mod:`familytree.db.models`; view models are built from them.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from familytree.db.models import Gender, Relation, RelationType, TreeNode, TreeSummary
from familytree.services.query import TreeView


# ---------------------------------------------------------------------------
# Date helpers
# ---------------------------------------------------------------------------

def parse_date(value: Any) -> Optional[date]:
    """Parse a date or ISO-8601 date/datetime string.  Empty values give ``None``.

    Raises:
        ValueError: The value is not a recognisable date.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid date: {value!r}")
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise ValueError(f"Invalid date: {value!r}") from None


def parse_birth_date(value: Any) -> date:
    """Birth dates that are missing or unparseable fall back to today."""
    try:
        parsed = parse_date(value)
    except ValueError:
        parsed = None
    return parsed or date.today()


# ---------------------------------------------------------------------------
# Input models
# ---------------------------------------------------------------------------

class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NodeInput(WireModel):
    id: str = Field(min_length=1)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    date_of_birth: date = Field(default_factory=date.today)
    date_of_death: Optional[date] = None
    gender: Gender
    is_alive: bool
    birth_place: str = Field(min_length=1)
    current_place: str = Field(min_length=1)
    profile_image: Optional[str] = None
    biography: Optional[str] = None
    custom_fields: Optional[dict[str, Any]] = None
    linked_member_id: Optional[str] = None
    position_x: Optional[float] = None
    position_y: Optional[float] = None

    @field_validator("date_of_birth", mode="before")
    @classmethod
    def _parse_birth(cls, value: Any) -> date:
        return parse_birth_date(value)

    @field_validator("date_of_death", mode="before")
    @classmethod
    def _parse_death(cls, value: Any) -> Optional[date]:
        return parse_date(value)

    @model_validator(mode="after")
    def _check_lifespan(self) -> NodeInput:
        if self.date_of_death is not None:
            if self.is_alive:
                raise ValueError("A living person cannot have a date of death")
            if self.date_of_death < self.date_of_birth:
                raise ValueError("Date of death cannot be before date of birth")
        return self

    def to_node(self, tree_id: str) -> TreeNode:
        return TreeNode(
            id=self.id,
            tree_id=tree_id,
            first_name=self.first_name,
            last_name=self.last_name,
            date_of_birth=self.date_of_birth,
            date_of_death=self.date_of_death,
            gender=self.gender,
            is_alive=self.is_alive,
            birth_place=self.birth_place,
            current_place=self.current_place,
            profile_image=self.profile_image,
            biography=self.biography,
            custom_fields=self.custom_fields,
            linked_member_id=self.linked_member_id,
            position_x=self.position_x,
            position_y=self.position_y,
        )


class RelationInput(WireModel):
    id: str = Field(min_length=1)
    from_node_id: str = Field(min_length=1)
    to_node_id: str = Field(min_length=1)
    relation_type: RelationType
    marriage_date: Optional[date] = None
    divorce_date: Optional[date] = None
    is_active: bool = True

    @field_validator("marriage_date", "divorce_date", mode="before")
    @classmethod
    def _parse_dates(cls, value: Any) -> Optional[date]:
        return parse_date(value)

    @field_validator("is_active", mode="before")
    @classmethod
    def _default_active(cls, value: Any) -> Any:
        return True if value is None else value

    @model_validator(mode="after")
    def _check_dates(self) -> RelationInput:
        if self.marriage_date and self.divorce_date and self.divorce_date < self.marriage_date:
            raise ValueError("Divorce date cannot be before marriage date")
        return self

    def to_relation(self, tree_id: str) -> Relation:
        return Relation(
            id=self.id,
            tree_id=tree_id,
            from_node_id=self.from_node_id,
            to_node_id=self.to_node_id,
            relation_type=self.relation_type,
            marriage_date=self.marriage_date,
            divorce_date=self.divorce_date,
            is_active=self.is_active,
        )


class TreeSyncRequest(WireModel):
    nodes: list[NodeInput]
    relations: list[RelationInput]
    version: Optional[int] = None

    def to_domain(self, tree_id: str) -> tuple[list[TreeNode], list[Relation]]:
        return (
            [n.to_node(tree_id) for n in self.nodes],
            [r.to_relation(tree_id) for r in self.relations],
        )


class TreeCreate(WireModel):
    family_id: str = Field(min_length=1)
    name: str = Field(min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


# ---------------------------------------------------------------------------
# View models
# ---------------------------------------------------------------------------

class NodeView(WireModel):
    id: str
    first_name: str
    last_name: str
    date_of_birth: date
    date_of_death: Optional[date]
    gender: Gender
    is_alive: bool
    birth_place: str
    current_place: str
    profile_image: Optional[str]
    biography: Optional[str]
    custom_fields: Optional[dict[str, Any]]
    linked_member_id: Optional[str]
    position_x: Optional[float]
    position_y: Optional[float]

    @classmethod
    def from_node(cls, node: TreeNode) -> NodeView:
        return cls(
            id=node.id,
            first_name=node.first_name,
            last_name=node.last_name,
            date_of_birth=node.date_of_birth,
            date_of_death=node.date_of_death,
            gender=node.gender,
            is_alive=node.is_alive,
            birth_place=node.birth_place,
            current_place=node.current_place,
            profile_image=node.profile_image,
            biography=node.biography,
            custom_fields=node.custom_fields,
            linked_member_id=node.linked_member_id,
            position_x=node.position_x,
            position_y=node.position_y,
        )


class RelationView(WireModel):
    id: str
    from_node_id: str
    to_node_id: str
    relation_type: RelationType
    marriage_date: Optional[date]
    divorce_date: Optional[date]
    is_active: bool

    @classmethod
    def from_relation(cls, relation: Relation) -> RelationView:
        return cls(
            id=relation.id,
            from_node_id=relation.from_node_id,
            to_node_id=relation.to_node_id,
            relation_type=relation.relation_type,
            marriage_date=relation.marriage_date,
            divorce_date=relation.divorce_date,
            is_active=relation.is_active,
        )


class CreatorView(WireModel):
    id: str
    full_name: str
    image_url: Optional[str]


class TreeViewModel(WireModel):
    id: str
    family_id: str
    name: str
    description: Optional[str]
    created_by_id: str
    created_at: int
    version: int
    created_by: Optional[CreatorView]
    nodes: list[NodeView]
    relations: list[RelationView]
    is_admin: bool

    @classmethod
    def from_view(cls, view: TreeView) -> TreeViewModel:
        tree = view.tree
        creator = view.creator
        return cls(
            id=tree.id,
            family_id=tree.family_id,
            name=tree.name,
            description=tree.description,
            created_by_id=tree.created_by_id,
            created_at=tree.created_at,
            version=tree.version,
            created_by=(
                CreatorView(id=creator.id, full_name=creator.full_name, image_url=creator.image_url)
                if creator
                else None
            ),
            nodes=[NodeView.from_node(n) for n in view.nodes],
            relations=[RelationView.from_relation(r) for r in view.relations],
            is_admin=view.caller_is_admin,
        )


class TreeSummaryView(WireModel):
    id: str
    family_id: str
    name: str
    description: Optional[str]
    created_by_id: str
    created_at: int
    version: int
    node_count: int
    relation_count: int
    is_admin: bool

    @classmethod
    def from_summary(cls, summary: TreeSummary) -> TreeSummaryView:
        tree = summary.tree
        return cls(
            id=tree.id,
            family_id=tree.family_id,
            name=tree.name,
            description=tree.description,
            created_by_id=tree.created_by_id,
            created_at=tree.created_at,
            version=tree.version,
            node_count=summary.node_count,
            relation_count=summary.relation_count,
            is_admin=summary.caller_is_admin,
        )


def dump(model: BaseModel) -> dict[str, Any]:
    """Serialise a wire model with camelCase keys and ISO dates."""
    return model.model_dump(by_alias=True, mode="json")


def success(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}
