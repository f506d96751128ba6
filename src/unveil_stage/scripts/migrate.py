# src/unveil_stage/scripts/migrate.py
from __future__ import annotations

import argparse
import os

from alembic import command
from alembic.config import Config

from unveil_stage.core.settings import settings

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", ".."))


def build_config() -> Config:
    """Return an Alembic config pointed at the project's migrations."""
    cfg = Config(os.path.join(PROJECT_ROOT, "alembic.ini"))
    cfg.set_main_option("script_location", os.path.join(PROJECT_ROOT, "migrations"))
    # Alembic runs synchronously
    cfg.set_main_option("sqlalchemy.url", settings.database_url_sync)
    return cfg


def run_upgrade(revision: str = "head") -> None:
    command.upgrade(build_config(), revision)


def run_downgrade(revision: str) -> None:
    command.downgrade(build_config(), revision)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Apply database migrations.")
    parser.add_argument("--revision", default="head", help="Target revision (default: head)")
    parser.add_argument("--downgrade", action="store_true", help="Downgrade to --revision instead")
    args = parser.parse_args(argv)

    if args.downgrade:
        run_downgrade(args.revision)
    else:
        run_upgrade(args.revision)


if __name__ == "__main__":
    main()
