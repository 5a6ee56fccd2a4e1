# ============================================================================
# MODULE CONTEXT - POSTGRESQL REPOSITORY
# ============================================================================
# STATUS: Core Infrastructure - PostgreSQL connection management
# PURPOSE: Read-only PostgreSQL access shared by the PostGIS API and health checks
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: PostgreSQLRepository, ConnectionFactory
# DEPENDENCIES: psycopg, config
# SOURCE: Connection string from config.get_postgres_connection_string()
# SCOPE: Read-only database operations for API serving
# PATTERNS: Repository pattern, Per-request connections, Managed identity
# ============================================================================

"""
PostgreSQL Repository - Read-Only Database Access

Provides PostgreSQL connection management with support for:
- Password-based authentication (local development)
- Azure Managed Identity authentication (production)
- Per-request connection creation (no pooling)
- Statement timeout applied as a connection option
- Injectable connection factory (tests substitute a fake)

Usage:
    from infrastructure.postgresql import PostgreSQLRepository

    repo = PostgreSQLRepository()
    with repo._get_cursor() as cursor:
        cursor.execute("SELECT postgis_full_version()")
        row = cursor.fetchone()
"""

import logging
import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from typing import Any, Callable, Optional, Tuple
from contextlib import contextmanager

from config import get_app_config, get_postgres_connection_string

# Logger setup
logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], Any]


class PostgreSQLRepository:
    """
    PostgreSQL repository base class with connection management.

    Connection Strategy:
    -------------------
    Each operation creates a NEW connection and closes it immediately after
    use, including when the statement fails. No connection pooling is used;
    the Functions worker already runs requests on separate threads and
    serverless instances do not benefit from cross-request reuse.

    Connections are opened read-only, so a caller-supplied SQL fragment can
    never turn a SELECT endpoint into a write.

    Example:
    -------
    ```python
    repo = PostgreSQLRepository()

    with repo._get_cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    ```
    """

    def __init__(self, connection_string: Optional[str] = None,
                 connection_factory: Optional[ConnectionFactory] = None,
                 statement_timeout_seconds: Optional[int] = None):
        """
        Initialize PostgreSQL repository.

        Parameters:
        ----------
        connection_string : Optional[str]
            Explicit PostgreSQL connection string. If not provided,
            get_postgres_connection_string() supplies it on connect.

        connection_factory : Optional[Callable[[], Connection]]
            Replaces psycopg.connect entirely. Used by tests.

        statement_timeout_seconds : Optional[int]
            Server-side statement_timeout for every connection.
        """
        self._conn_string = connection_string
        self._connection_factory = connection_factory or self._connect
        self.statement_timeout_seconds = statement_timeout_seconds

    @property
    def conn_string(self) -> str:
        """
        Connection string for the next connection.

        Resolved lazily. With managed identity it is rebuilt on every access,
        because it embeds an access token that expires; otherwise it is
        resolved once and kept.
        """
        if self._conn_string is not None:
            return self._conn_string

        conn_string = get_postgres_connection_string()
        if not get_app_config().use_managed_identity:
            self._conn_string = conn_string
        return conn_string

    def _connect(self):
        """Open a read-only psycopg connection with dict rows."""
        options = {}
        if self.statement_timeout_seconds:
            options["options"] = f"-c statement_timeout={self.statement_timeout_seconds * 1000}"

        conn = psycopg.connect(self.conn_string, row_factory=dict_row, **options)
        conn.read_only = True
        return conn

    @contextmanager
    def _get_connection(self):
        """
        Context manager for PostgreSQL database connections.

        Provides safe connection lifecycle management:
        1. Create connection via the connection factory
        2. Yield connection to caller
        3. On error: rollback transaction
        4. Always: close connection

        Yields:
        ------
        psycopg.Connection
            Active connection with dict_row factory.

        Raises:
        ------
        psycopg.Error
            On connection or statement failures
        """
        conn = None
        try:
            logger.debug("🔗 Opening PostgreSQL connection")
            conn = self._connection_factory()
            logger.debug("✅ PostgreSQL connection established")

            yield conn

        except psycopg.Error as e:
            logger.error(f"❌ PostgreSQL error: {e}")
            logger.error(f"  Error type: {type(e).__name__}")

            # Rollback any pending transaction
            if conn is not None:
                try:
                    conn.rollback()
                except psycopg.Error as rollback_error:
                    logger.warning(f"Rollback failed: {rollback_error}")

            raise

        finally:
            # Always close connection to free resources
            if conn is not None:
                try:
                    conn.close()
                    logger.debug("🔒 Connection closed")
                except psycopg.Error as close_error:
                    logger.warning(f"Connection close failed: {close_error}")

    @contextmanager
    def _get_cursor(self, conn=None):
        """
        Context manager for PostgreSQL cursors.

        Parameters:
        ----------
        conn : Optional[psycopg.Connection]
            Existing connection to use. If None, creates a new connection
            that is committed and closed when the block exits.

        Yields:
        ------
        psycopg.Cursor
        """
        if conn is not None:
            # Use existing connection - caller controls transaction
            with conn.cursor() as cursor:
                yield cursor
        else:
            with self._get_connection() as conn:
                with conn.cursor() as cursor:
                    yield cursor
                    conn.commit()

    def _execute_query(self, query: sql.Composable, params: Optional[Tuple] = None,
                       fetch: Optional[str] = 'all') -> Optional[Any]:
        """
        Execute one statement on its own connection.

        Parameters:
        ----------
        query : sql.Composable
            SQL built with psycopg.sql composition. Plain strings are refused.

        params : Optional[Tuple]
            Values for the %s placeholders. Always passed as a tuple so '%%'
            escapes are resolved even when there are no placeholders.

        fetch : Optional[str]
            'one', 'all' or None

        Returns:
        -------
        Optional[Any]
            - fetch='one': Single row or None
            - fetch='all': List of rows
            - fetch=None: None

        Raises:
        ------
        TypeError
            If query is not a psycopg.sql object

        ValueError
            If fetch parameter is invalid

        psycopg.Error
            For any database failure; callers translate it
        """
        if not isinstance(query, sql.Composable):
            raise TypeError(f"Query must be psycopg.sql composed, got {type(query)}")

        if fetch not in (None, 'one', 'all'):
            raise ValueError(f"Invalid fetch mode: {fetch}")

        with self._get_cursor() as cursor:
            cursor.execute(query, tuple(params or ()))
            logger.debug("✅ Query executed successfully")

            if fetch == 'one':
                return cursor.fetchone()
            if fetch == 'all':
                return cursor.fetchall()
            return None
