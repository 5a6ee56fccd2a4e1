# ============================================================================
# MODULE CONTEXT - POSTGIS REPOSITORY
# ============================================================================
# STATUS: Standalone Module - PostGIS HTTP API data access
# PURPOSE: Execute built statements and resolve geometry columns from the catalog
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: PostGISRepository, clear_geometry_column_cache
# DEPENDENCIES: psycopg, infrastructure.postgresql, util_logger
# PATTERNS: Repository pattern, one statement per connection, cached catalog lookup
# ============================================================================

"""
PostGIS Repository

Runs exactly one Statement per connection and always closes it. Driver
errors become QueryExecutionFailure; the statement text and parameters are
logged here and never travel back to the client.

Geometry column resolution replaces per-request probe queries: the
geometry_columns view is read once per table, cached for the life of the
process, and the best candidate is picked from it.
"""

import threading
from typing import Any, Dict, List, Optional, Tuple

import psycopg

from infrastructure.postgresql import ConnectionFactory, PostgreSQLRepository
from util_logger import ComponentType, LoggerFactory

from .config import PostGISAPIConfig
from .errors import QueryExecutionFailure
from .queries import Statement, build_geometry_columns_lookup

logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "PostGISRepository")

# Geometry column names per table, shared by every repository in the process
_geometry_columns: Dict[str, Tuple[str, ...]] = {}
_geometry_columns_lock = threading.Lock()


def clear_geometry_column_cache() -> None:
    """Forget every cached geometry column lookup."""
    with _geometry_columns_lock:
        _geometry_columns.clear()


class PostGISRepository(PostgreSQLRepository):
    """
    Data access for the PostGIS API endpoints.

    Every public method opens one connection, runs one statement and closes
    the connection before returning or raising.
    """

    def __init__(self, config: PostGISAPIConfig,
                 connection_string: Optional[str] = None,
                 connection_factory: Optional[ConnectionFactory] = None):
        """
        Initialize repository.

        Args:
            config: PostGIS API configuration
            connection_string: Explicit connection string (defaults to config.py)
            connection_factory: Replacement for psycopg.connect, used by tests
        """
        super().__init__(
            connection_string=connection_string,
            connection_factory=connection_factory,
            statement_timeout_seconds=config.query_timeout_seconds
        )
        self.config = config

    # ========================================================================
    # STATEMENT EXECUTION
    # ========================================================================

    def fetch_all(self, statement: Statement, endpoint: str) -> List[Dict[str, Any]]:
        """Run a statement and return every row."""
        return self._run(statement, endpoint, fetch='all')

    def fetch_one(self, statement: Statement, endpoint: str) -> Optional[Dict[str, Any]]:
        """Run a statement and return its first row, or None."""
        return self._run(statement, endpoint, fetch='one')

    def _run(self, statement: Statement, endpoint: str, fetch: str) -> Any:
        text = statement.as_string()
        logger.debug(
            f"Executing {endpoint} statement",
            extra={'custom_dimensions': {
                'endpoint': endpoint,
                'statement': text,
                'params': list(statement.params)
            }}
        )

        try:
            result = self._execute_query(statement.sql, statement.params, fetch=fetch)
        except psycopg.Error as e:
            logger.error(
                f"Query failed for {endpoint}: {e}",
                extra={'custom_dimensions': {
                    'endpoint': endpoint,
                    'statement': text,
                    'params': list(statement.params),
                    'error_type': type(e).__name__,
                    'sqlstate': getattr(e, 'sqlstate', None)
                }}
            )
            raise QueryExecutionFailure(text, statement.params, endpoint) from e

        row_count = len(result) if isinstance(result, list) else int(result is not None)
        logger.info(
            f"{endpoint} returned {row_count} row(s)",
            extra={'custom_dimensions': {'endpoint': endpoint, 'row_count': row_count}}
        )
        return result

    # ========================================================================
    # GEOMETRY COLUMN RESOLUTION
    # ========================================================================

    def get_geometry_columns(self, table_name: str) -> Tuple[str, ...]:
        """
        Geometry column names registered for a table.

        Non-empty results are cached per process; an empty result is looked
        up again next time so newly registered tables are picked up.
        """
        with _geometry_columns_lock:
            cached = _geometry_columns.get(table_name)
        if cached is not None:
            return cached

        rows = self.fetch_all(build_geometry_columns_lookup(table_name), "geometry_columns")
        columns = tuple(row['column_name'] for row in rows)

        if columns:
            with _geometry_columns_lock:
                _geometry_columns[table_name] = columns
            logger.debug(f"Cached geometry columns for {table_name}: {columns}")

        return columns

    def resolve_geometry_column(self, table_name: str, requested: Optional[str] = None) -> str:
        """
        Pick the geometry column to query.

        Order: the requested column as given; the configured default if the
        table has it; the first fallback candidate the table has; the
        table's first geometry column; the configured default.
        """
        if requested:
            return requested

        available = self.get_geometry_columns(table_name)
        default = self.config.default_geom_column

        for candidate in (default,) + tuple(self.config.fallback_geom_columns):
            if candidate in available:
                return candidate

        if available:
            return available[0]

        logger.warning(
            f"No geometry_columns entry for {table_name}; using default '{default}'"
        )
        return default
