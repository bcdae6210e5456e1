"""Test Alembic migrations: upgrade, downgrade, and structural checks."""

import os

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

ROOT = os.path.join(os.path.dirname(__file__), "..", "..")
ALEMBIC_INI = os.path.join(ROOT, "alembic.ini")
SCRIPT_LOCATION = os.path.join(ROOT, "backoffice", "migrations")

EXPECTED_TABLES = {
    "approval_workflow_definitions",
    "approval_workflow_steps",
    "approval_workflow_instances",
    "approval_requests",
    "approval_history",
}


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'migrations.db'}"


def _alembic_cfg(url: str) -> Config:
    cfg = Config(ALEMBIC_INI)
    cfg.set_main_option("script_location", SCRIPT_LOCATION)
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


@pytest.mark.integration
class TestMigrations:
    """Run upgrade -> verify -> downgrade -> verify cycle."""

    def test_upgrade_creates_tables(self, database_url):
        """Test that upgrading to head creates every approval table."""
        command.upgrade(_alembic_cfg(database_url), "head")

        engine = create_engine(database_url)
        inspector = inspect(engine)
        assert EXPECTED_TABLES <= set(inspector.get_table_names())

        uniques = inspector.get_unique_constraints("approval_workflow_steps")
        assert any(set(u["column_names"]) == {"workflow_definition_id", "step_order"} for u in uniques)
        indexes = {i["name"] for i in inspector.get_indexes("approval_requests")}
        assert "idx_approval_requests_approver" in indexes
        engine.dispose()

    def test_downgrade_drops_tables(self, database_url):
        """Test that downgrading to base removes every approval table."""
        cfg = _alembic_cfg(database_url)
        command.upgrade(cfg, "head")
        command.downgrade(cfg, "base")

        engine = create_engine(database_url)
        assert not EXPECTED_TABLES & set(inspect(engine).get_table_names())
        engine.dispose()
