# ============================================================================
# MODULE CONTEXT - INFRASTRUCTURE MODULE
# ============================================================================
# STATUS: Core Infrastructure - Database access
# PURPOSE: Shared infrastructure components for the PostGIS API and health checks
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: PostgreSQLRepository, ConnectionFactory
# DEPENDENCIES: psycopg, config
# ============================================================================

"""
Infrastructure Module

Provides shared infrastructure components:
- PostgreSQL connection management (PostgreSQLRepository)
"""

from .postgresql import PostgreSQLRepository, ConnectionFactory

__version__ = "1.0.0"
__all__ = [
    "PostgreSQLRepository",
    "ConnectionFactory",
]
