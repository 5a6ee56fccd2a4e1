# ============================================================================
# MODULE CONTEXT - HEALTH CHECK MODULE
# ============================================================================
# STATUS: Core Infrastructure - Health Monitoring
# PURPOSE: Liveness and readiness probes for the PostGIS gateway
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: get_public_health, get_detailed_health, get_app_identity, HealthStatus
# DEPENDENCIES: infrastructure.postgresql, postgis_api, util_logger
# PATTERNS: Two-tier health checks (public/detailed), timed probe runner
# ============================================================================

"""
Health Check Module

Two probes are exposed by function_app:

    /api/health            Liveness. Runs the database probe only and returns
                           {"status", "timestamp"}. Always HTTP 200.
    /api/health/detailed   Readiness. Runs every probe in PROBES and returns
                           per-probe results. HTTP 503 when unhealthy.

Each probe is a plain function returning (message, details). Raising
ProbeFailure marks a probe as failed with a specific message; any other
exception is reported under the exception type name. A failed critical
probe makes the gateway UNHEALTHY, a failed optional one only DEGRADED.

Keep /health/detailed off the public gateway: it reveals the PostGIS
version and access policy sizes.
"""

import time
import uuid
from enum import Enum
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from infrastructure.postgresql import PostgreSQLRepository
from util_logger import LoggerFactory, ComponentType, log_exceptions

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "HealthService")

APP_NAME = "postgis-http-api"
APP_DESCRIPTION = "PostGIS HTTP API"

PROBE_TIMEOUT_SECONDS = 5

ProbeOutcome = Tuple[str, Optional[Dict[str, Any]]]


class HealthStatus(str, Enum):
    """Overall gateway status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ProbeFailure(Exception):
    """Raised by a probe that ran but found something wrong."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details


@dataclass
class CheckResult:
    """Outcome of one probe."""
    status: str  # pass | fail
    latency_ms: float
    message: str
    details: Optional[Dict[str, Any]] = None

    @property
    def passed(self) -> bool:
        return self.status == "pass"

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "status": self.status,
            "latency_ms": round(self.latency_ms, 2),
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


def get_app_identity() -> Dict[str, str]:
    """Name and description used in startup logs and health payloads."""
    return {"name": APP_NAME, "description": APP_DESCRIPTION}


def _run_probe(label: str, probe: Callable[[], ProbeOutcome]) -> CheckResult:
    """
    Time a probe and convert its outcome into a CheckResult.

    Args:
        label: Prefix for failure messages (e.g., "Database connection")
        probe: Zero-argument callable returning (message, details)

    Returns:
        CheckResult; never raises
    """
    started = time.perf_counter()
    try:
        message, details = probe()
        status = "pass"
    except ProbeFailure as failure:
        status, message, details = "fail", str(failure), failure.details
    except Exception as e:
        logger.error(f"{label} check failed: {e}", extra={
            'custom_dimensions': {'probe': label, 'exception_type': type(e).__name__}
        })
        status = "fail"
        message = f"{label} failed: {type(e).__name__}"
        details = {"error": str(e)}

    return CheckResult(
        status=status,
        latency_ms=(time.perf_counter() - started) * 1000,
        message=message,
        details=details,
    )


def _probe_repository(repository: Optional[PostgreSQLRepository]) -> PostgreSQLRepository:
    return repository or PostgreSQLRepository(statement_timeout_seconds=PROBE_TIMEOUT_SECONDS)


# ============================================================================
# PROBES
# ============================================================================

def check_database_connectivity(repository: Optional[PostgreSQLRepository] = None) -> CheckResult:
    """Round-trip SELECT 1. Critical."""
    def probe() -> ProbeOutcome:
        with _probe_repository(repository)._get_cursor() as cur:
            cur.execute("SELECT 1 AS ok")
            cur.fetchone()
        return "PostgreSQL connection successful", None

    return _run_probe("Database connection", probe)


def check_postgis_extension(repository: Optional[PostgreSQLRepository] = None) -> CheckResult:
    """
    Confirm PostGIS is installed and count registered geometry tables.

    Critical: every endpoint calls PostGIS functions.
    """
    def probe() -> ProbeOutcome:
        with _probe_repository(repository)._get_cursor() as cur:
            cur.execute("SELECT extversion FROM pg_extension WHERE extname = %s", ('postgis',))
            extension = cur.fetchone()
            if not extension:
                raise ProbeFailure(
                    "PostGIS extension is not installed",
                    {"extension": "postgis", "installed": False},
                )
            cur.execute("SELECT COUNT(*) AS table_count FROM geometry_columns")
            table_count = cur.fetchone()["table_count"]

        version = extension["extversion"]
        return f"PostGIS {version}, {table_count} geometry tables", {
            "extension": "postgis",
            "version": version,
            "geometry_table_count": table_count,
        }

    return _run_probe("PostGIS check", probe)


def check_api_modules() -> CheckResult:
    """
    Load the postgis_api configuration and route table. Optional.

    A broken configuration leaves the database reachable but every
    endpoint unusable, so it degrades rather than fails the gateway.
    """
    def probe() -> ProbeOutcome:
        try:
            from postgis_api import get_api_config, get_postgis_triggers
            config = get_api_config()
            endpoint_count = len(get_postgis_triggers(config))
        except Exception as e:
            raise ProbeFailure(
                "No API modules available",
                {"postgis_api": {"available": False, "error": str(e)}},
            ) from e

        return "All modules loaded", {"postgis_api": {
            "available": True,
            "endpoints": endpoint_count,
            "route_prefix": config.route_prefix,
            "blacklisted_tables": len(config.blacklisted_tables),
            "allow_list_enabled": bool(config.allowed_tables),
        }}

    return _run_probe("API modules", probe)


# name -> (probe, critical)
PROBES: Dict[str, Tuple[Callable[[Optional[PostgreSQLRepository]], CheckResult], bool]] = {
    "database": (check_database_connectivity, True),
    "postgis": (check_postgis_extension, True),
    "api_modules": (lambda _repository: check_api_modules(), False),
}


# ============================================================================
# ENTRY POINTS
# ============================================================================

def get_public_health(repository: Optional[PostgreSQLRepository] = None) -> Dict[str, Any]:
    """
    Liveness payload: status and timestamp, nothing internal.

    Args:
        repository: Repository to probe (default: a short-timeout one)

    Returns:
        {"status": ..., "timestamp": ...}
    """
    result = check_database_connectivity(repository)
    status = HealthStatus.HEALTHY if result.passed else HealthStatus.UNHEALTHY

    logger.info("Public health check completed", extra={
        'custom_dimensions': {
            'check_type': 'public',
            'status': status.value,
            'duration_ms': round(result.latency_ms, 2),
        }
    })

    return {"status": status.value, "timestamp": datetime.now(timezone.utc).isoformat()}


@log_exceptions(logger=logger)
def get_detailed_health(repository: Optional[PostgreSQLRepository] = None) -> Dict[str, Any]:
    """
    Readiness payload with every probe result.

    Args:
        repository: Repository to probe (default: a short-timeout one)

    Returns:
        Dict with status, app identity, request_id, checks and total_duration_ms
    """
    started = time.perf_counter()
    request_id = uuid.uuid4().hex[:8]

    results: Dict[str, CheckResult] = {
        name: probe(repository) for name, (probe, _critical) in PROBES.items()
    }
    failed: List[str] = [name for name, result in results.items() if not result.passed]

    if any(PROBES[name][1] for name in failed):
        status = HealthStatus.UNHEALTHY
    elif failed:
        status = HealthStatus.DEGRADED
    else:
        status = HealthStatus.HEALTHY

    total_ms = round((time.perf_counter() - started) * 1000, 2)

    logger.info("Detailed health check completed", extra={
        'custom_dimensions': {
            'check_type': 'detailed',
            'request_id': request_id,
            'status': status.value,
            'duration_ms': total_ms,
            'failed_checks': failed,
        }
    })

    identity = get_app_identity()
    return {
        "status": status.value,
        "app": identity["name"],
        "description": identity["description"],
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id,
        "checks": {name: result.to_dict() for name, result in results.items()},
        "total_duration_ms": total_ms,
    }
