"""Run the packaged queue migrations programmatically."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def upgrade_head(db_path: Path) -> None:
    """Bring the queue database at ``db_path`` up to the newest revision.

    Migrations ship inside the package, so this works from an installed
    wheel as well as from a source checkout.
    """

    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    command.upgrade(config, "head")
