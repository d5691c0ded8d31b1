"""Utilities for rendering family trees in the CLI."""

from __future__ import annotations

from collections import defaultdict
from typing import Optional

from familytree.db.models import Relation, RelationType, TreeNode


def _label(node: Optional[TreeNode], node_id: str) -> str:
    if node is None:
        return f"Unknown({node_id[:8]})"
    years = str(node.date_of_birth.year)
    if node.date_of_death:
        years += f"–{node.date_of_death.year}"
    elif not node.is_alive:
        years += "–?"
    return f"{_get_icon(node.gender.value)} {node.first_name} {node.last_name} ({years})"


def render_tree(nodes: list[TreeNode], relations: list[Relation], root_id: Optional[str] = None) -> str:
    """Render a family tree as ASCII descendant trees.

    Each person is followed by their spouses (``⚭``, with ``⚮`` for inactive
    marriages) and their children.  Without *root_id*, every person without a
    recorded parent starts a tree of their own.

    Returns:
        String representation of the tree.
    """
    node_map = {n.id: n for n in nodes}
    children: dict[str, list[str]] = defaultdict(list)
    spouses: dict[str, list[tuple[str, bool]]] = defaultdict(list)
    has_parent: set[str] = set()

    for rel in relations:
        if rel.relation_type == RelationType.PARENT:
            children[rel.from_node_id].append(rel.to_node_id)
            has_parent.add(rel.to_node_id)
        else:
            spouses[rel.from_node_id].append((rel.to_node_id, rel.is_active))
            spouses[rel.to_node_id].append((rel.from_node_id, rel.is_active))

    if root_id is not None:
        if root_id not in node_map:
            return "Root person not found in tree."
        roots = [root_id]
    else:
        roots = [n.id for n in nodes if n.id not in has_parent]
    if not roots:
        return "(empty tree)"

    lines: list[str] = []
    visited: set[str] = set()

    def _render(node_id: str, prefix: str, is_last: bool, is_root: bool) -> None:
        connector = "" if is_root else ("└── " if is_last else "├── ")
        if node_id in visited:
            # Already drawn under another parent.
            lines.append(f"{prefix}{connector}↺ {_label(node_map.get(node_id), node_id)}")
            return
        visited.add(node_id)

        lines.append(f"{prefix}{connector}{_label(node_map.get(node_id), node_id)}")
        child_prefix = prefix if is_root else prefix + ("    " if is_last else "│   ")

        for spouse_id, active in spouses.get(node_id, []):
            mark = "⚭" if active else "⚮"
            lines.append(f"{child_prefix}  {mark} {_label(node_map.get(spouse_id), spouse_id)}")

        kids = children.get(node_id, [])
        for i, child_id in enumerate(kids):
            _render(child_id, child_prefix, i == len(kids) - 1, False)

    for root in roots:
        if root not in visited:
            _render(root, "", True, True)

    return "\n".join(lines)


def _get_icon(gender: str) -> str:
    icons = {
        "MALE": "♂",
        "FEMALE": "♀",
    }
    return icons.get(gender, "•")
