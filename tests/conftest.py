"""Shared fixtures and helpers for tests."""

import logging
import warnings
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest
from testcontainers.core.container import DockerContainer
from testcontainers.core.waiting_utils import wait_for_logs

from alembic import command
from alembic.config import Config
from jobdesk.db import InMemoryCollectionGateway

logger = logging.getLogger(__name__)

_REPO_ROOT = Path(__file__).parent.parent


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# PostgresTestBase: helpers for integration tests that need a database
# ---------------------------------------------------------------------------


class PostgresTestBase:
    IMAGE = "postgres:16-alpine"

    @staticmethod
    def create_container() -> DockerContainer:
        return (
            DockerContainer(PostgresTestBase.IMAGE)
            .with_exposed_ports(5432)
            .with_env("POSTGRES_PASSWORD", "postgres")
        )

    @staticmethod
    def get_alembic_config() -> Config:
        ini_path = str(_REPO_ROOT / "alembic.ini")
        cfg = Config(ini_path)
        cfg.set_main_option("script_location", str(_REPO_ROOT / "alembic"))
        return cfg

    @staticmethod
    def run_migrations(connection_url: str) -> None:
        cfg = PostgresTestBase.get_alembic_config()
        cfg.set_main_option("sqlalchemy.url", connection_url)
        command.upgrade(cfg, "head")

    @staticmethod
    def cleanup_migrations(connection_url: str) -> None:
        cfg = PostgresTestBase.get_alembic_config()
        cfg.set_main_option("sqlalchemy.url", connection_url)
        command.downgrade(cfg, "base")

    @staticmethod
    def wait_for_postgres(container: DockerContainer) -> None:
        # The entrypoint restarts the server once after init, so wait for the second banner.
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", DeprecationWarning)
            wait_for_logs(container, "database system is ready to accept connections", timeout=60)
            logger.info("Postgres container %s is up", container.get_wrapped_container().short_id)


# ---------------------------------------------------------------------------
# Shared unit-test fixtures
# ---------------------------------------------------------------------------


def seed(gateway: InMemoryCollectionGateway, collection: str, records: list[Mapping[str, Any]]) -> None:
    """Insert records with fixed ids straight into the in-memory store."""
    rows = gateway.collections.setdefault(collection, {})
    for record in records:
        rows[str(record["id"])] = dict(record)


def customer_rows(count: int) -> list[dict[str, Any]]:
    """``count`` customers named Customer 01, Customer 02, ... in name order."""
    rows = []
    for i in range(1, count + 1):
        name = f"Customer {i:02d}"
        rows.append(
            {
                "id": f"c{i:02d}",
                "name": name,
                "nameLower": name.lower(),
                "phone": f"0400{i:06d}",
                "location": "Brisbane" if i % 2 else "Gold Coast",
                "postCode": "4000" if i % 2 else "4217",
            }
        )
    return rows


@pytest.fixture
def gateway() -> InMemoryCollectionGateway:
    return InMemoryCollectionGateway()
