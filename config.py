# ============================================================================
# MODULE CONTEXT - APPLICATION CONFIGURATION
# ============================================================================
# STATUS: Core Infrastructure - Configuration Management
# PURPOSE: Centralized PostgreSQL connection configuration with managed identity support
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: AppConfig, get_app_config, get_postgres_connection_string, validate_configuration
# DEPENDENCIES: pydantic-settings, psycopg, azure-identity
# SOURCE: Environment variables, Azure managed identity
# PATTERNS: Singleton pattern for config, lazy initialization for credentials
# ============================================================================

"""
Application Configuration Module

Provides centralized database connection configuration:
- A full connection string (POSTGRES_CONNECTION) or individual settings
- Password or managed identity authentication
- Optional CA certificate for verified TLS

Connection Modes:
    1. Connection string:
       - Requires: POSTGRES_CONNECTION (URI or key=value form)
       - Wins over every POSTGIS_* connection setting

    2. Individual settings:
       - Requires: POSTGIS_HOST, POSTGIS_DATABASE, POSTGIS_USER
       - Plus POSTGIS_PASSWORD unless USE_MANAGED_IDENTITY=true

Authentication Modes:
    1. Password-based (local development): USE_MANAGED_IDENTITY=false or not set
    2. Managed Identity (Azure production): USE_MANAGED_IDENTITY=true, the
       password is replaced by an Azure AD access token

TLS:
    POSTGIS_SSLMODE defaults to "require". Setting SSL_ROOT_CERT_PATH adds
    sslrootcert and upgrades the mode to "verify-full".

Usage:
    from config import get_postgres_connection_string

    conn_string = get_postgres_connection_string()
    conn = psycopg.connect(conn_string)
"""

import logging
from typing import Optional
from functools import lru_cache
from urllib.parse import quote_plus

from psycopg.conninfo import make_conninfo
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

POSTGRES_AAD_SCOPE = "https://ossrdbms-aad.database.windows.net/.default"

# ============================================================================
# Application Configuration
# ============================================================================

class AppConfig(BaseSettings):
    """
    Application-wide configuration loaded from environment variables.

    Attributes:
        postgres_connection: Full connection string (overrides the parts below)
        postgis_host: PostgreSQL server hostname
        postgis_port: PostgreSQL server port
        postgis_database: Database name
        postgis_user: Database username
        postgis_password: Database password (optional with managed identity)
        postgis_sslmode: libpq sslmode
        ssl_root_cert_path: CA certificate file for verify-full TLS
        use_managed_identity: Enable Azure managed identity authentication
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Full connection string
    postgres_connection: Optional[str] = Field(default=None, description="PostgreSQL connection string")

    # PostgreSQL Connection
    postgis_host: Optional[str] = Field(default=None, description="PostgreSQL hostname")
    postgis_port: int = Field(default=5432, description="PostgreSQL port")
    postgis_database: Optional[str] = Field(default=None, description="Database name")
    postgis_user: Optional[str] = Field(default=None, description="Database username")
    postgis_password: Optional[str] = Field(default=None, description="Database password")
    postgis_sslmode: str = Field(default="require", description="libpq sslmode")

    # TLS
    ssl_root_cert_path: Optional[str] = Field(default=None, description="CA certificate path")

    # Authentication Mode
    use_managed_identity: bool = Field(
        default=False,
        description="Use Azure managed identity for authentication"
    )

    @model_validator(mode="after")
    def validate_connection_settings(self) -> "AppConfig":
        """Ensure either a connection string or a complete set of parts is present."""
        if self.postgres_connection:
            return self

        missing = [
            name.upper() for name in ("postgis_host", "postgis_database", "postgis_user")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(
                f"Set POSTGRES_CONNECTION or {', '.join(missing)}"
            )
        if not self.use_managed_identity and not self.postgis_password:
            raise ValueError(
                "POSTGIS_PASSWORD is required when USE_MANAGED_IDENTITY=false"
            )
        return self

    @property
    def effective_sslmode(self) -> str:
        """sslmode after the CA certificate upgrade."""
        return "verify-full" if self.ssl_root_cert_path else self.postgis_sslmode

    @property
    def auth_mode(self) -> str:
        return "managed_identity" if self.use_managed_identity else "password"


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """
    Get singleton application configuration instance.

    Returns:
        AppConfig: Validated configuration object

    Raises:
        ValidationError: If required environment variables are missing
    """
    return AppConfig()


# ============================================================================
# PostgreSQL Connection String Generation
# ============================================================================

def get_postgres_connection_string(config: Optional[AppConfig] = None) -> str:
    """
    Generate PostgreSQL connection string based on configuration.

    Args:
        config: Explicit configuration (uses singleton if not provided)

    Returns:
        str: PostgreSQL connection string (psycopg format)

    Raises:
        ValueError: If managed identity token acquisition fails

    Example:
        >>> conn_string = get_postgres_connection_string()
        >>> conn = psycopg.connect(conn_string)
    """
    config = config or get_app_config()

    password = None
    if config.use_managed_identity:
        password = _acquire_managed_identity_token(config)

    if config.postgres_connection:
        return _build_from_connection_string(config, password)
    return _build_from_parts(config, password)


def _build_from_connection_string(config: AppConfig, password: Optional[str]) -> str:
    """
    Apply TLS and token overrides to POSTGRES_CONNECTION.

    The string is returned untouched when there is nothing to override.
    """
    overrides = {}
    if config.ssl_root_cert_path:
        overrides["sslrootcert"] = config.ssl_root_cert_path
        overrides["sslmode"] = "verify-full"
    if password:
        overrides["password"] = password

    if not overrides:
        return config.postgres_connection

    logger.debug("Building connection string from POSTGRES_CONNECTION with overrides")
    return make_conninfo(config.postgres_connection, **overrides)


def _build_from_parts(config: AppConfig, password: Optional[str]) -> str:
    """
    Build connection URI from individual settings.

    Note:
        Password is URL-encoded to handle special characters like @ symbols
    """
    logger.debug(f"Building {config.auth_mode} connection string for {config.postgis_host}")

    secret = quote_plus(password or config.postgis_password or "")

    conn_string = (
        f"postgresql://{quote_plus(config.postgis_user)}:{secret}"
        f"@{config.postgis_host}:{config.postgis_port}"
        f"/{config.postgis_database}"
        f"?sslmode={config.effective_sslmode}"
    )
    if config.ssl_root_cert_path:
        conn_string += f"&sslrootcert={quote_plus(config.ssl_root_cert_path)}"

    return conn_string


@lru_cache(maxsize=1)
def _get_credential():
    """Process-wide DefaultAzureCredential, so its token cache is shared."""
    from azure.identity import DefaultAzureCredential

    return DefaultAzureCredential()


def _acquire_managed_identity_token(config: AppConfig) -> str:
    """
    Acquire an Azure AD access token for Azure Database for PostgreSQL.

    Raises:
        ValueError: If token acquisition fails

    Note:
        Tokens live about an hour. Callers must ask again for every new
        connection; the shared credential returns its cached token until
        it nears expiry and then fetches a new one.
    """
    logger.debug(f"Acquiring managed identity token for {config.postgis_host or 'POSTGRES_CONNECTION'}")

    try:
        token = _get_credential().get_token(POSTGRES_AAD_SCOPE)
    except Exception as e:
        logger.error(f"Failed to acquire managed identity token: {e}")
        raise ValueError(
            f"Managed identity authentication failed: {e}. "
            "Ensure system-assigned managed identity is enabled and has database permissions."
        ) from e

    logger.debug("✅ Acquired managed identity token")
    return token.token


# ============================================================================
# Configuration Validation
# ============================================================================

def validate_configuration() -> bool:
    """
    Validate configuration on application startup.

    Returns:
        bool: True if configuration is valid

    Raises:
        Exception: If configuration validation fails
    """
    try:
        config = get_app_config()
        logger.info("Configuration validation:")
        if config.postgres_connection:
            logger.info("  Connection: POSTGRES_CONNECTION")
        else:
            logger.info(f"  PostgreSQL Host: {config.postgis_host}")
            logger.info(f"  PostgreSQL Port: {config.postgis_port}")
            logger.info(f"  Database: {config.postgis_database}")
            logger.info(f"  User: {config.postgis_user}")
        logger.info(f"  SSL Mode: {config.effective_sslmode}")
        logger.info(f"  Managed Identity: {config.use_managed_identity}")

        get_postgres_connection_string(config)
        logger.info("✅ Connection string generated successfully")

        return True

    except Exception as e:
        logger.error(f"❌ Configuration validation failed: {e}")
        raise
