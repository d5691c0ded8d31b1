"""Family-tree CLI: entry-point for operator tasks.

Usage:
    python cli/main.py --help

Command groups:
    db     → database setup
    tree   → create, list, show, sync and check trees
"""

from __future__ import annotations

import sys
from pathlib import Path

# Running `python cli/main.py` from a checkout needs the repo root importable.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import typer

from familytree.config import configure_logging, settings
from familytree.db import get_connection, init_db
from familytree.db.migrations import current_version

from cli.commands.tree import tree_app

app = typer.Typer(
    name="familytree",
    help="Family-tree backend CLI.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    configure_logging("DEBUG" if verbose else "WARNING")


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create tables if they do not exist)."""
    conn = get_connection()
    init_db(conn)
    version = current_version(conn)
    conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path} (schema v{version})")


app.add_typer(tree_app, name="tree")


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
