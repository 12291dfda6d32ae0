from __future__ import annotations

import argparse
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from prizewheel.db.engine import make_engine
from prizewheel.models import Base

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _alembic_config() -> Config:
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    return alembic_cfg


def upgrade_db(target_revision: str = "head") -> None:
    """Apply Alembic migrations up to the requested revision."""
    command.upgrade(_alembic_config(), target_revision)


def print_tables() -> None:
    """Print the wheel tables present in the configured database, flagging missing ones."""
    engine = make_engine()
    present = set(inspect(engine).get_table_names())
    expected = set(Base.metadata.tables)
    print("Current tables:", ", ".join(sorted(present)))
    missing = expected - present
    if missing:
        print("Missing tables:", ", ".join(sorted(missing)))


def main(argv: list[str] | None = None) -> None:
    """Apply migrations (default to head) and report the resulting schema."""
    parser = argparse.ArgumentParser(description="Create or upgrade the prize wheel database.")
    parser.add_argument("--revision", default="head", help="Alembic revision to upgrade to")
    args = parser.parse_args(argv)

    upgrade_db(args.revision)
    print_tables()


if __name__ == "__main__":
    main()
