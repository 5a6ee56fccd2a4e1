# ============================================================================
# MODULE CONTEXT - POSTGIS API MODULE
# ============================================================================
# STATUS: Standalone Module - PostGIS HTTP API implementation
# PURPOSE: REST endpoints exposing PostGIS queries (rows, GeoJSON, Geobuf, MVT)
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: PostGISAPIConfig, get_api_config, PostGISService, get_postgis_triggers
# INTERFACES: get_postgis_triggers() is the only integration point
# PYDANTIC_MODELS: PostGISAPIConfig, SuccessEnvelope, FeatureCollection, PointLiteral
# DEPENDENCIES: psycopg, pydantic, azure-functions
# SOURCE: Environment variables for access policy and defaults
# SCOPE: PostGIS query gateway
# VALIDATION: Identifier grammar, point grammar, table access policy
# PATTERNS: Service Layer, Repository Pattern, Trigger Pattern
# ENTRY_POINTS: from postgis_api import get_postgis_triggers
# ============================================================================

"""
PostGIS HTTP API

Turns HTTP requests into PostGIS statements and returns JSON rows, GeoJSON,
Geobuf or Mapbox Vector Tiles.

Architecture:
    postgis_api/
    ├── config.py      # Access policy, defaults, cache headers
    ├── errors.py      # AccessDenied / MalformedInput / QueryExecutionFailure
    ├── access.py      # Table blacklist / allow-list gate
    ├── parsing.py     # Point, bounds, identifier and number parsing
    ├── queries.py     # One pure statement builder per endpoint
    ├── repository.py  # Statement execution, geometry column lookup
    ├── service.py     # Builder -> repository -> response shaping
    ├── models.py      # Response envelopes
    └── triggers.py    # Azure Functions HTTP handlers

Integration:
    # In function_app.py
    from postgis_api import get_postgis_triggers

    triggers = {t['name']: t for t in get_postgis_triggers()}
"""

from .config import PostGISAPIConfig, get_api_config
from .service import PostGISService
from .triggers import get_postgis_triggers

__version__ = "1.0.0"
__all__ = [
    "PostGISAPIConfig",
    "PostGISService",
    "get_postgis_triggers",
    "get_api_config"
]
