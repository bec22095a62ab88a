from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text

MIGRATIONS = Path(__file__).resolve().parents[1] / "migrations"


def _config(url: str) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS))
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def _legacy_db(tmp_path, with_status: bool):
    url = f"sqlite:///{tmp_path / 'legacy.db'}"
    engine = create_engine(url)
    status_col = ", status VARCHAR(20)" if with_status else ""
    with engine.begin() as conn:
        conn.execute(text(f"CREATE TABLE martyrs (id INTEGER PRIMARY KEY, name_en VARCHAR(255), approved BOOLEAN{status_col})"))
    return url, engine


def _columns(engine, table="martyrs"):
    return {c["name"] for c in inspect(engine).get_columns(table)}


def test_fresh_database_upgrades_to_head(tmp_path):
    url = f"sqlite:///{tmp_path / 'fresh.db'}"
    command.upgrade(_config(url), "head")

    engine = create_engine(url)
    tables = set(inspect(engine).get_table_names())
    assert {"admins", "martyrs", "tributes", "media_gallery", "statistics", "admin_logs"} <= tables
    assert "status" in _columns(engine)
    assert "approved" not in _columns(engine)
    engine.dispose()


def test_boolean_only_legacy_table_gets_a_status(tmp_path):
    url, engine = _legacy_db(tmp_path, with_status=False)
    with engine.begin() as conn:
        conn.execute(text("INSERT INTO martyrs (id, name_en, approved) VALUES (1, 'A', 1), (2, 'B', 0), (3, 'C', NULL)"))

    command.upgrade(_config(url), "head")

    assert "approved" not in _columns(engine)
    with engine.connect() as conn:
        rows = conn.execute(text("SELECT id, status FROM martyrs ORDER BY id")).all()
    assert [tuple(r) for r in rows] == [(1, "approved"), (2, "pending"), (3, "pending")]
    # the other tables are created around the adopted one
    assert "tributes" in inspect(engine).get_table_names()
    engine.dispose()


def test_agreeing_columns_are_collapsed(tmp_path):
    url, engine = _legacy_db(tmp_path, with_status=True)
    with engine.begin() as conn:
        conn.execute(
            text(
                "INSERT INTO martyrs (id, name_en, approved, status) VALUES "
                "(1, 'A', 1, 'approved'), (2, 'B', 0, 'pending'), (3, 'C', 0, 'rejected')"
            )
        )

    command.upgrade(_config(url), "head")

    assert "approved" not in _columns(engine)
    with engine.connect() as conn:
        statuses = conn.execute(text("SELECT status FROM martyrs ORDER BY id")).scalars().all()
    assert statuses == ["approved", "pending", "rejected"]
    engine.dispose()


def test_conflicting_rows_stop_the_migration(tmp_path):
    url, engine = _legacy_db(tmp_path, with_status=True)
    with engine.begin() as conn:
        conn.execute(
            text(
                "INSERT INTO martyrs (id, name_en, approved, status) VALUES "
                "(1, 'A', 1, 'approved'), (2, 'B', 1, 'pending'), (3, 'C', 0, 'approved')"
            )
        )

    with pytest.raises(RuntimeError, match="ids 2, 3"):
        command.upgrade(_config(url), "head")

    assert "approved" in _columns(engine)
    with engine.connect() as conn:
        version = conn.execute(text("SELECT version_num FROM alembic_version")).scalar_one()
    assert version == "0001_initial_schema"
    engine.dispose()
