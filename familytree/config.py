"""Runtime settings for the family-tree service and CLI.

Every knob has a default and an environment variable that overrides it.  A
`.env` file next to the package is read on import, without overriding
variables that are already set.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# <repo root>/.env
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("FAMILYTREE_WORKSPACE", Path.home() / ".familytree_data")
        )
    )

    @property
    def db_path(self) -> Path:
        """The SQLite file inside the workspace."""
        return self.workspace_dir / "familytree.db"

    @property
    def schema_path(self) -> Path:
        """``schema.sql`` shipped inside ``familytree/db``."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    cli_config_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("FAMILYTREE_CLI_DIR", Path.home() / ".familytree_cli")
        )
    )

    # ------------------------------------------------------------------
    # Tree synchronisation
    # ------------------------------------------------------------------
    sync_batch_size: int = field(
        default_factory=lambda: int(os.environ.get("SYNC_BATCH_SIZE", "5"))
    )
    sync_batch_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SYNC_BATCH_TIMEOUT", "5.0"))
    )
    allow_multiple_trees_per_family: bool = field(
        default_factory=lambda: _env_flag("ALLOW_MULTIPLE_TREES_PER_FAMILY")
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO").upper()
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


def configure_logging(level: str | None = None) -> None:
    """Install the process-wide log format.  Safe to call more than once."""
    logging.basicConfig(
        level=level or settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Module-level singleton, import this everywhere:
#   from familytree.config import settings
settings = Settings()
