"""Tests for the initial Alembic migration: structure and completeness."""

from __future__ import annotations

import importlib
import inspect
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    import types

from modelmagic.models.db import Base
from modelmagic.state_machine.registry import ProjectStatus


@pytest.fixture
def migration() -> types.ModuleType:
    """Import the initial migration module."""
    return importlib.import_module("migrations.versions.001_initial_schema")


class TestMigrationStructure:
    def test_revision_id(self, migration: types.ModuleType) -> None:
        assert migration.revision == "001"

    def test_down_revision_is_none(self, migration: types.ModuleType) -> None:
        assert migration.down_revision is None

    def test_upgrade_and_downgrade_callable(self, migration: types.ModuleType) -> None:
        assert callable(migration.upgrade)
        assert callable(migration.downgrade)


class TestMigrationCompleteness:
    """Verify the migration covers every table defined in db.py."""

    def test_all_tables_represented(self, migration: types.ModuleType) -> None:
        source = inspect.getsource(migration.upgrade)
        for table_name in Base.metadata.tables:
            assert f'"{table_name}"' in source, (
                f"Table '{table_name}' exists in db.py but is missing from migration"
            )

    def test_indexes_represented(self, migration: types.ModuleType) -> None:
        source = inspect.getsource(migration.upgrade)
        for table in Base.metadata.tables.values():
            for index in table.indexes:
                assert index.name in source, f"Index '{index.name}' missing from migration"

    def test_status_enum_matches_registry(self, migration: types.ModuleType) -> None:
        """The Postgres enum lists every lifecycle state in order."""
        assert list(migration.PROJECT_STATUS.enums) == [s.value for s in ProjectStatus]

    def test_downgrade_drops_in_reverse_order(self, migration: types.ModuleType) -> None:
        """Children are dropped before the tables they reference."""
        source = inspect.getsource(migration.downgrade)
        lines = [line.strip() for line in source.split("\n") if "drop_table" in line]
        table_order = [line.split('"')[1] for line in lines if '"' in line]
        assert table_order == [
            "notifications",
            "assets",
            "project_status_history",
            "projects",
            "users",
        ]
