from pathlib import Path

import pytest
from alembic import command
from alembic.autogenerate import compare_metadata
from alembic.config import Config
from alembic.migration import MigrationContext
from sqlalchemy import inspect

from taskboard.db import Base, make_engine
from taskboard import models  # noqa: F401

ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture()
def migration_db(tmp_path: Path):
    url = "sqlite:///" + str(tmp_path / "migrated.db")
    # no ini file: keeps alembic from reconfiguring test logging
    cfg = Config()
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", url)
    engine = make_engine(url)
    try:
        yield cfg, engine
    finally:
        engine.dispose()


def test_upgrade_head_matches_models(migration_db):
    cfg, engine = migration_db
    command.upgrade(cfg, "head")

    with engine.connect() as conn:
        diff = compare_metadata(MigrationContext.configure(conn), Base.metadata)
    assert diff == []


def test_downgrade_base_drops_schema(migration_db):
    cfg, engine = migration_db
    command.upgrade(cfg, "head")
    assert {"users", "todos", "categories", "todo_categories"} <= set(inspect(engine).get_table_names())

    command.downgrade(cfg, "base")
    assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
