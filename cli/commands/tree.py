"""Family-tree commands.

The CLI is an operator tool with direct database access: it does not go
through the membership checks the HTTP API applies.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from familytree.api.schemas import TreeSyncRequest, TreeViewModel, dump
from familytree.db import get_connection, init_db
from familytree.db.trees import create_tree, get_tree, get_tree_graph, list_trees
from familytree.errors import TreeError
from familytree.graph.reconciler import TreeReconciler
from familytree.graph.validator import GraphSnapshot, validate_graph
from familytree.services.query import TreeQueryService

from cli.context import load_context, remember_tree, resolve_tree_id
from cli.rendering import render_tree

tree_app = typer.Typer(help="Create, inspect and sync family trees.", no_args_is_help=True)


def _read_payload(path: Path) -> TreeSyncRequest:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        typer.echo(f"❌ Cannot read {path}: {exc}")
        raise typer.Exit(code=1) from exc
    try:
        return TreeSyncRequest.model_validate(raw)
    except ValidationError as exc:
        typer.echo(f"❌ Invalid tree data ({exc.error_count()} error(s)):")
        for err in exc.errors():
            loc = ".".join(str(part) for part in err["loc"])
            typer.echo(f"   {loc}: {err['msg']}")
        raise typer.Exit(code=1) from exc


@tree_app.command("create")
def tree_create(
    family: str = typer.Option(..., "--family", help="Owning family id."),
    name: str = typer.Option(..., "--name", help="Display name."),
    creator: str = typer.Option(..., "--creator", help="Internal user id of the creator."),
    description: Optional[str] = typer.Option(None, "--description", help="Optional description."),
) -> None:
    """Create an empty tree and make it the active tree."""
    conn = get_connection()
    init_db(conn)
    try:
        tree = create_tree(conn, family_id=family, name=name, created_by_id=creator, description=description)
    finally:
        conn.close()

    typer.echo(f"✅ Tree created: {tree.name} ({tree.id})")
    remember_tree(tree.id, tree.name)


@tree_app.command("list")
def tree_list(
    family: Optional[str] = typer.Option(None, "--family", help="Only trees of this family."),
) -> None:
    """List trees."""
    conn = get_connection()
    init_db(conn)
    try:
        trees = list_trees(conn, family_id=family)
    finally:
        conn.close()

    if not trees:
        typer.echo("No trees found.")
        return
    active_id = load_context().active_tree_id
    for t in trees:
        marker = "*" if t.id == active_id else " "
        typer.echo(f"{marker} {t.name} \t[{t.id}]  family={t.family_id}  v{t.version}")


@tree_app.command("use")
def tree_use(tree_id: str = typer.Argument(..., help="Tree id.")) -> None:
    """Switch the active tree."""
    conn = get_connection()
    init_db(conn)
    try:
        tree = get_tree(conn, tree_id)
    finally:
        conn.close()

    if tree is None:
        typer.echo(f"❌ Tree not found: {tree_id}")
        raise typer.Exit(code=1)
    remember_tree(tree.id, tree.name)
    typer.echo(f"📂 Switched to tree: {tree.name}")


@tree_app.command("show")
def tree_show(
    tree: Optional[str] = typer.Option(None, "--tree", help="Tree id (defaults to the active tree)."),
    root: Optional[str] = typer.Option(None, "--root", help="Start from this person's node id."),
    format: str = typer.Option("tree", "--format", help="Output format: tree | json"),
) -> None:
    """Print a tree as ASCII descendants or as the API's JSON view."""
    tree_id = resolve_tree_id(tree)
    conn = get_connection()
    init_db(conn)
    try:
        graph = get_tree_graph(conn, tree_id)
        if graph is None:
            typer.echo(f"❌ Tree not found: {tree_id}")
            raise typer.Exit(code=1)
        if format == "json":
            view = TreeQueryService(conn).view(graph, caller_is_admin=True)
            typer.echo(json.dumps(dump(TreeViewModel.from_view(view)), indent=2, ensure_ascii=False))
            return
    finally:
        conn.close()

    typer.echo(f"🌳 {graph.tree.name}  ({len(graph.nodes)} people, {len(graph.relations)} relations)")
    typer.echo(render_tree(graph.nodes, graph.relations, root_id=root))


@tree_app.command("sync")
def tree_sync(
    payload: Path = typer.Argument(..., help="JSON file with {nodes, relations[, version]}."),
    tree: Optional[str] = typer.Option(None, "--tree", help="Tree id (defaults to the active tree)."),
) -> None:
    """Replace a tree's contents with the state in a JSON file."""
    tree_id = resolve_tree_id(tree)
    request = _read_payload(payload)
    nodes, relations = request.to_domain(tree_id)

    conn = get_connection()
    init_db(conn)
    try:
        graph = TreeReconciler(conn).reconcile(
            tree_id,
            caller_is_admin=True,
            nodes=nodes,
            relations=relations,
            expected_version=request.version,
        )
    except TreeError as exc:
        typer.echo(f"❌ Sync failed: {exc.message}")
        raise typer.Exit(code=1) from exc
    finally:
        conn.close()

    typer.echo(
        f"✅ Synced {graph.tree.name}: {len(graph.nodes)} people, "
        f"{len(graph.relations)} relations (version {graph.tree.version})"
    )


@tree_app.command("check")
def tree_check(
    payload: Path = typer.Argument(..., help="JSON file with {nodes, relations}."),
) -> None:
    """Validate a tree payload offline, without touching the database."""
    request = _read_payload(payload)
    nodes, relations = request.to_domain("")
    result = validate_graph(GraphSnapshot.build((n.id for n in nodes), relations))
    if not result.is_valid:
        typer.echo(f"❌ {result.reason}")
        raise typer.Exit(code=1)
    typer.echo(f"✅ {len(nodes)} people and {len(relations)} relations are consistent.")
