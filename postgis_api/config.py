# ============================================================================
# MODULE CONTEXT - POSTGIS API CONFIGURATION
# ============================================================================
# STATUS: Standalone Configuration - PostGIS HTTP API
# PURPOSE: Access policy, query defaults and response settings for the gateway
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: PostGISAPIConfig, get_api_config, reset_api_config
# INTERFACES: Pydantic BaseModel (frozen)
# PYDANTIC_MODELS: PostGISAPIConfig
# DEPENDENCIES: pydantic, os
# SOURCE: Environment variables (database connection lives in root config.py)
# SCOPE: PostGIS API configuration only
# VALIDATION: Pydantic v2 validation
# PATTERNS: Settings Pattern, Singleton via cached function
# ENTRY_POINTS: from postgis_api.config import get_api_config
# ============================================================================

"""
PostGIS API Configuration

Loaded once per process and immutable afterwards. Connection settings are
owned by the main application's config.py; this module only carries what
the HTTP gateway itself needs.

Environment Variables:
    - BLACKLISTED_TABLES: Comma-separated tables that can never be queried
      (default: "secret_table,military_areas,internal_logs")
    - ALLOWED_TABLES: Comma-separated allow-list; empty allows every table
      not blacklisted (default: "")
    - DEFAULT_GEOM_COLUMN: Geometry column when none is given (default: "the_geom")
    - FALLBACK_GEOM_COLUMNS: Candidates tried when resolving a table's
      geometry column (default: "geom,geometry,wkb_geometry,shape")
    - DEFAULT_LIMIT: Row limit for nearest-neighbour queries (default: 10)
    - MAX_LIMIT: Cap applied to any client-supplied limit (default: 10000)
    - DEFAULT_SRID: Output SRID for bbox/centroid/transform (default: 4326)
    - DEFAULT_PRECISION: GeoJSON coordinate precision (default: 9)
    - ROUTE_PREFIX: Route prefix under the Functions host prefix (default: "v1")
    - QUERY_TIMEOUT: Statement timeout in seconds (default: 30)
    - CACHE_PRIVACY: Cache-Control privacy directive (default: "private")
    - CACHE_EXPIRESIN: Cache-Control max-age in seconds (default: 3600)
    - APP_ENVIRONMENT: "development" exposes exception detail in 500s
      (default: "production")
"""

import os
from typing import Any, FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _split_csv(value: Any) -> Any:
    """Turn a comma-separated env string into a list of non-empty items."""
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class PostGISAPIConfig(BaseModel):
    """
    Configuration for the PostGIS HTTP API.

    Frozen after construction so the access policy cannot drift while the
    process is serving requests. Environment defaults are validated like
    explicit values, so comma-separated lists are split either way.
    """

    model_config = ConfigDict(frozen=True, validate_default=True)

    # Access policy
    blacklisted_tables: FrozenSet[str] = Field(
        default_factory=lambda: os.getenv(
            "BLACKLISTED_TABLES", "secret_table,military_areas,internal_logs"
        ),
        description="Tables that are never exposed"
    )
    allowed_tables: FrozenSet[str] = Field(
        default_factory=lambda: os.getenv("ALLOWED_TABLES", ""),
        description="Explicit allow-list (empty = every non-blacklisted table)"
    )

    # Query defaults
    default_geom_column: str = Field(
        default_factory=lambda: os.getenv("DEFAULT_GEOM_COLUMN", "the_geom"),
        description="Geometry column used when the request does not name one"
    )
    fallback_geom_columns: Tuple[str, ...] = Field(
        default_factory=lambda: os.getenv(
            "FALLBACK_GEOM_COLUMNS", "geom,geometry,wkb_geometry,shape"
        ),
        description="Geometry column candidates, in preference order"
    )
    default_limit: int = Field(
        default_factory=lambda: int(os.getenv("DEFAULT_LIMIT", "10")),
        ge=1,
        description="Default limit for nearest-neighbour queries"
    )
    max_limit: int = Field(
        default_factory=lambda: int(os.getenv("MAX_LIMIT", "10000")),
        ge=1,
        description="Maximum rows any request may ask for"
    )
    default_srid: int = Field(
        default_factory=lambda: int(os.getenv("DEFAULT_SRID", "4326")),
        description="Default output SRID"
    )
    default_precision: int = Field(
        default_factory=lambda: int(os.getenv("DEFAULT_PRECISION", "9")),
        ge=0,
        le=15,
        description="Default GeoJSON coordinate precision (decimal places)"
    )

    # HTTP settings
    route_prefix: str = Field(
        default_factory=lambda: os.getenv("ROUTE_PREFIX", "v1"),
        description="Route prefix below the Functions host 'api' prefix"
    )
    query_timeout_seconds: int = Field(
        default_factory=lambda: int(os.getenv("QUERY_TIMEOUT", "30")),
        ge=1,
        le=300,
        description="Maximum statement execution time in seconds"
    )
    cache_privacy: str = Field(
        default_factory=lambda: os.getenv("CACHE_PRIVACY", "private"),
        description="Cache-Control privacy directive (private/public/no-cache)"
    )
    cache_expires_in: int = Field(
        default_factory=lambda: int(os.getenv("CACHE_EXPIRESIN", "3600")),
        ge=0,
        description="Cache-Control max-age in seconds"
    )
    environment: str = Field(
        default_factory=lambda: os.getenv("APP_ENVIRONMENT", "production"),
        description="Deployment environment name"
    )

    @field_validator("blacklisted_tables", "allowed_tables", "fallback_geom_columns", mode="before")
    @classmethod
    def parse_comma_separated(cls, v: Any) -> Any:
        """Accept comma-separated strings for list-valued settings."""
        return _split_csv(v)

    @field_validator("route_prefix")
    @classmethod
    def strip_slashes(cls, v: str) -> str:
        """Routes are registered without leading or trailing slashes."""
        return v.strip("/")

    @property
    def is_development(self) -> bool:
        """True when running with APP_ENVIRONMENT=development."""
        return self.environment.lower() == "development"

    @property
    def cache_control(self) -> str:
        """Cache-Control header value applied to successful responses."""
        return f"{self.cache_privacy}, max-age={self.cache_expires_in}"

    def route(self, path: str) -> str:
        """Prefix an endpoint path with the configured route prefix."""
        if not self.route_prefix:
            return path
        return f"{self.route_prefix}/{path}" if path else self.route_prefix


# Singleton instance cache
_config_cache: Optional[PostGISAPIConfig] = None


def get_api_config() -> PostGISAPIConfig:
    """
    Get singleton PostGIS API configuration instance.

    Returns:
        Cached configuration instance

    Raises:
        ValidationError: If an environment variable holds an invalid value
    """
    global _config_cache

    if _config_cache is None:
        _config_cache = PostGISAPIConfig()

    return _config_cache


def reset_api_config() -> None:
    """Drop the cached configuration so the next call re-reads the environment."""
    global _config_cache
    _config_cache = None
