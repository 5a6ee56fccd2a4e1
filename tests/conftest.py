"""Pytest configuration and shared fixtures.

Provides an explicit API configuration and a scripted fake database
connection so the whole request pipeline can run without PostgreSQL.
"""

from typing import Any, List, Optional

import pytest

from postgis_api.config import PostGISAPIConfig, reset_api_config
from postgis_api.repository import PostGISRepository, clear_geometry_column_cache
from postgis_api.service import PostGISService


@pytest.fixture(autouse=True)
def reset_state() -> None:
    """Reset cached configuration and geometry column lookups before each test."""
    reset_api_config()
    clear_geometry_column_cache()
    yield
    reset_api_config()
    clear_geometry_column_cache()


@pytest.fixture
def api_config() -> PostGISAPIConfig:
    """Configuration with a known access policy and defaults."""
    return PostGISAPIConfig(
        blacklisted_tables="secret_table,military_areas,internal_logs",
        allowed_tables="",
        default_geom_column="the_geom",
        fallback_geom_columns="geom,geometry,wkb_geometry,shape",
        default_limit=10,
        max_limit=1000,
        default_srid=4326,
        default_precision=9,
        route_prefix="v1",
        query_timeout_seconds=30,
        cache_privacy="private",
        cache_expires_in=3600,
        environment="production",
    )


# ============================================================================
# Fake psycopg connection
# ============================================================================

class FakeCursor:
    """Cursor that records statements and answers from its connection's script."""

    def __init__(self, connection: "FakeConnection") -> None:
        self.connection = connection
        self._rows: List[Any] = []

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *exc_info: Any) -> bool:
        return False

    def execute(self, query: Any, params: Any = None) -> None:
        self.connection.executed.append((query, params))
        outcome = self.connection.next_outcome()
        if isinstance(outcome, Exception):
            raise outcome
        self._rows = list(outcome)

    def fetchall(self) -> List[Any]:
        return self._rows

    def fetchone(self) -> Optional[Any]:
        return self._rows[0] if self._rows else None


class FakeConnection:
    """Connection that tracks commit, rollback and close calls."""

    def __init__(self, factory: "FakeConnectionFactory") -> None:
        self.factory = factory
        self.executed: List[Any] = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def next_outcome(self) -> Any:
        return self.factory.next_outcome()

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def close(self) -> None:
        self.closed = True


class FakeConnectionFactory:
    """
    Stand-in for psycopg.connect.

    Each executed statement consumes the next scripted outcome: a list of
    rows, or an exception to raise. When the script runs out, the statement
    returns no rows.
    """

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes)
        self.connections: List[FakeConnection] = []

    def __call__(self) -> FakeConnection:
        connection = FakeConnection(self)
        self.connections.append(connection)
        return connection

    def next_outcome(self) -> Any:
        if self.outcomes:
            return self.outcomes.pop(0)
        return []

    @property
    def statements(self) -> List[Any]:
        """Every (query, params) pair executed, across all connections."""
        return [item for conn in self.connections for item in conn.executed]


@pytest.fixture
def fake_db() -> FakeConnectionFactory:
    """Fake connection factory with an empty script."""
    return FakeConnectionFactory()


@pytest.fixture
def repository(api_config: PostGISAPIConfig, fake_db: FakeConnectionFactory) -> PostGISRepository:
    """PostGIS repository wired to the fake connection factory."""
    return PostGISRepository(api_config, connection_factory=fake_db)


@pytest.fixture
def service(api_config: PostGISAPIConfig, repository: PostGISRepository) -> PostGISService:
    """Service using the fake-backed repository."""
    return PostGISService(api_config, repository)
