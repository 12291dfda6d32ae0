from __future__ import annotations

import argparse
import sys

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext
from sqlalchemy import inspect
from sqlalchemy.engine import Connection

from prizewheel.config import UniquenessMode, load_settings
from prizewheel.db.engine import make_engine
from prizewheel.models import Base

PARTICIPANT_KEY = ["company_id", "email"]


def _print_ops(ops, indent: int = 0) -> None:
    prefix = "  " * indent
    for op in ops:
        print(f"{prefix}- {op}")
        sub_ops = getattr(op, "ops", None)
        if sub_ops:
            _print_ops(sub_ops, indent + 1)


def has_unique_participant_email(connection: Connection) -> bool:
    """Whether ``roleta_participants`` enforces one row per (company_id, email).

    Strict uniqueness against a REST data service relies on this constraint
    to turn concurrent duplicate inserts into conflicts.
    """
    insp = inspect(connection)
    for uq in insp.get_unique_constraints("roleta_participants"):
        if uq["column_names"] == PARTICIPANT_KEY:
            return True
    for ix in insp.get_indexes("roleta_participants"):
        if ix.get("unique") and ix["column_names"] == PARTICIPANT_KEY:
            return True
    return False


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Compare the database schema with the prize wheel models."
    )
    parser.add_argument(
        "--require-unique-email",
        action="store_true",
        help="also fail when participants are not unique per (company_id, email); "
        "implied by PARTICIPATION_UNIQUENESS=strict",
    )
    args = parser.parse_args(argv)

    settings = load_settings()
    require_unique = (
        args.require_unique_email or settings.uniqueness is UniquenessMode.STRICT
    )
    engine = make_engine(settings.db_url)
    url_display = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": True,
                    "compare_server_default": True,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            migration = ag_api.produce_migrations(context, Base.metadata)
            upgrade_ops = migration.upgrade_ops
            if upgrade_ops is None:
                print(f"Schema drift check: ERROR for {url_display}: missing upgrade ops.")
                return 2
            if not upgrade_ops.is_empty():
                print(f"Schema drift check: FAILED for {url_display}. Differences detected:")
                _print_ops(upgrade_ops.ops or [])
                return 1
            if require_unique and not has_unique_participant_email(connection):
                print(
                    f"Schema drift check: FAILED for {url_display}. Strict uniqueness "
                    "needs a unique constraint on roleta_participants(company_id, email)."
                )
                return 1
            print(f"Schema drift check: OK (no differences) for {url_display}.")
            return 0
    except Exception as exc:
        print(f"Schema drift check: ERROR for {url_display}: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
