"""Tests for the Alembic migration."""

from pathlib import Path

import pytest
import sqlalchemy as sa
from alembic import command
from alembic.config import Config

REPO_ROOT = Path(__file__).resolve().parents[2]
PRE_EXISTING_INDEX = "ix_chunks_chunk_audio_expires_at"


@pytest.fixture
def migration(tmp_path, monkeypatch):
    monkeypatch.delenv("REFRESHER_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    db_path = tmp_path / "refresher.db"

    config = Config()
    config.set_main_option("script_location", str(REPO_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{db_path}")
    engine = sa.create_engine(f"sqlite:///{db_path}")
    yield config, engine
    engine.dispose()


def index_names(engine: sa.Engine, table: str) -> set[str]:
    return {i["name"] for i in sa.inspect(engine).get_indexes(table)}


def test_upgrade_creates_tables_and_downgrade_removes_refresher_tables(migration):
    config, engine = migration

    command.upgrade(config, "head")

    tables = set(sa.inspect(engine).get_table_names())
    assert {"audio_records", "flashcards", "chunks", "refresh_locks", "refresh_runs"} <= tables
    assert "ix_refresher_chunks_chunk_audio_expires_at" in index_names(engine, "chunks")

    command.downgrade(config, "base")

    tables = set(sa.inspect(engine).get_table_names())
    assert "refresh_runs" not in tables
    assert "refresh_locks" not in tables
    assert "chunks" in tables
    assert index_names(engine, "chunks") == set()


def test_existing_expiry_index_survives_upgrade_and_downgrade(migration):
    config, engine = migration
    with engine.begin() as conn:
        conn.execute(
            sa.text(
                "CREATE TABLE chunks (id VARCHAR PRIMARY KEY, text TEXT, "
                "chunk_audio TEXT, chunk_audio_expires_at DATETIME, "
                "created_at DATETIME NOT NULL)"
            )
        )
        conn.execute(
            sa.text(f"CREATE INDEX {PRE_EXISTING_INDEX} ON chunks (chunk_audio_expires_at)")
        )

    command.upgrade(config, "head")
    assert index_names(engine, "chunks") == {PRE_EXISTING_INDEX}

    command.downgrade(config, "base")
    assert index_names(engine, "chunks") == {PRE_EXISTING_INDEX}
