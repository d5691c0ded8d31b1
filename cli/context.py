"""Remembered CLI state.

The CLI keeps track of one "active tree" so that ``tree show`` and
``tree sync`` can be run without ``--tree``.  The state lives in
``<cli_config_dir>/context.json`` (``~/.familytree_cli`` by default).
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

import typer

from familytree.config import settings


@dataclass
class CliContext:
    active_tree_id: str | None = None
    active_tree_name: str | None = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)

    @classmethod
    def from_json(cls, data: str) -> CliContext:
        """Parse saved state; anything unreadable yields an empty context."""
        try:
            return cls(**json.loads(data))
        except (json.JSONDecodeError, TypeError):
            return cls()


def context_path() -> Path:
    return settings.cli_config_dir / "context.json"


def load_context() -> CliContext:
    path = context_path()
    try:
        return CliContext.from_json(path.read_text(encoding="utf-8"))
    except OSError:
        return CliContext()


def save_context(ctx: CliContext) -> None:
    settings.cli_config_dir.mkdir(parents=True, exist_ok=True)
    context_path().write_text(ctx.to_json(), encoding="utf-8")


def remember_tree(tree_id: str, name: str) -> None:
    """Make *tree_id* the active tree."""
    ctx = load_context()
    ctx.active_tree_id = tree_id
    ctx.active_tree_name = name
    save_context(ctx)


def resolve_tree_id(explicit: Optional[str]) -> str:
    """Return *explicit* or the active tree id; abort when neither is set."""
    if explicit:
        return explicit
    active = load_context().active_tree_id
    if not active:
        typer.echo("❌ No active tree selected.")
        typer.echo("Pass --tree <id> or run 'tree use <id>' first.")
        raise typer.Exit(code=1)
    return active
