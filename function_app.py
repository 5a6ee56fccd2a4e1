# ============================================================================
# MODULE CONTEXT - AZURE FUNCTIONS ENTRY POINT
# ============================================================================
# STATUS: Core Infrastructure - Function App Entry Point
# PURPOSE: Main entry point for Azure Functions runtime with the PostGIS HTTP API
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: app (FunctionApp instance)
# DEPENDENCIES: azure-functions, postgis_api, health
# ============================================================================

"""
Azure Functions Entry Point for postgis-http-api

This module serves as the main entry point for the Azure Functions runtime.
It registers all HTTP triggers for the PostGIS API plus health checks.

Architecture:
    - PostGIS API: 12 endpoints under /api/{ROUTE_PREFIX}/
        - Row endpoints: bbox, centroid, intersect_feature, intersect_point,
          nearest, query, transform_point, list_columns, list_tables
        - Encoded endpoints: geojson, geobuf, mvt
    - Health checks: 2 endpoints for monitoring and APIM integration
        - /api/health - Public (minimal response for external callers)
        - /api/health/detailed - Internal (full metrics for APIM probes)

Total: 14 HTTP endpoints (12 API + 2 health check)

Deployment:
    - Local: func start
    - Azure: func azure functionapp publish <app-name> --python --build remote
"""

import json
import logging

import azure.functions as func

from health import get_app_identity, get_public_health, get_detailed_health, HealthStatus
from postgis_api import get_postgis_triggers

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Initialize Azure Function App
app = func.FunctionApp()

# ============================================================================
# PostGIS API - 12 Endpoints
# ============================================================================

logger.info("Registering PostGIS API endpoints...")

# Keyed by endpoint name; each decorated function needs a unique Python name
triggers = {t['name']: t for t in get_postgis_triggers()}


@app.route(route=triggers['bbox']['route'], methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def postgis_bbox(req: func.HttpRequest) -> func.HttpResponse:
    return triggers['bbox']['handler'](req)


@app.route(route=triggers['centroid']['route'], methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def postgis_centroid(req: func.HttpRequest) -> func.HttpResponse:
    return triggers['centroid']['handler'](req)


@app.route(route=triggers['intersect_feature']['route'], methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def postgis_intersect_feature(req: func.HttpRequest) -> func.HttpResponse:
    return triggers['intersect_feature']['handler'](req)


@app.route(route=triggers['intersect_point']['route'], methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def postgis_intersect_point(req: func.HttpRequest) -> func.HttpResponse:
    return triggers['intersect_point']['handler'](req)


@app.route(route=triggers['nearest']['route'], methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def postgis_nearest(req: func.HttpRequest) -> func.HttpResponse:
    return triggers['nearest']['handler'](req)


@app.route(route=triggers['query']['route'], methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def postgis_query(req: func.HttpRequest) -> func.HttpResponse:
    return triggers['query']['handler'](req)


@app.route(route=triggers['transform_point']['route'], methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def postgis_transform_point(req: func.HttpRequest) -> func.HttpResponse:
    return triggers['transform_point']['handler'](req)


# Protobuf responses
@app.route(route=triggers['geobuf']['route'], methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def postgis_geobuf(req: func.HttpRequest) -> func.HttpResponse:
    return triggers['geobuf']['handler'](req)


@app.route(route=triggers['geojson']['route'], methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def postgis_geojson(req: func.HttpRequest) -> func.HttpResponse:
    return triggers['geojson']['handler'](req)


@app.route(route=triggers['mvt']['route'], methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def postgis_mvt(req: func.HttpRequest) -> func.HttpResponse:
    return triggers['mvt']['handler'](req)


# Catalog
@app.route(route=triggers['list_columns']['route'], methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def postgis_list_columns(req: func.HttpRequest) -> func.HttpResponse:
    return triggers['list_columns']['handler'](req)


@app.route(route=triggers['list_tables']['route'], methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def postgis_list_tables(req: func.HttpRequest) -> func.HttpResponse:
    return triggers['list_tables']['handler'](req)


logger.info(f"✅ PostGIS API registered successfully ({len(triggers)} endpoints)")

# ============================================================================
# Health Check Endpoints - 2 Endpoints (Public + Detailed)
# ============================================================================

@app.route(route="health", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """
    Public health check endpoint - minimal response for external callers.

    Always returns 200 - status in body indicates health.

    Returns:
        JSON: {"status": "healthy|unhealthy", "timestamp": "..."}
    """
    result = get_public_health()

    return func.HttpResponse(
        json.dumps(result, default=str),
        mimetype="application/json",
        status_code=200,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"}
    )


@app.route(route="health/detailed", methods=["GET"], auth_level=func.AuthLevel.ANONYMOUS)
def health_detailed(req: func.HttpRequest) -> func.HttpResponse:
    """
    Detailed health check endpoint - for APIM probes and operations.

    Returns 503 if unhealthy, 200 otherwise.

    SECURITY: Block this endpoint from external access via APIM policy.
    """
    result = get_detailed_health()

    # Return 503 if unhealthy, 200 otherwise (healthy or degraded)
    status_code = 503 if result["status"] == HealthStatus.UNHEALTHY.value else 200

    return func.HttpResponse(
        json.dumps(result, default=str, indent=2),
        mimetype="application/json",
        status_code=status_code,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"}
    )

# ============================================================================
# Application Startup
# ============================================================================

_app_identity = get_app_identity()

logger.info("="*60)
logger.info(f"{_app_identity['name']} - {_app_identity['description']}")
logger.info("="*60)
logger.info("Function App initialized successfully")
logger.info("Available endpoints:")
logger.info("  - GET /api/health - Public health check (minimal)")
logger.info("  - GET /api/health/detailed - Detailed health (APIM only)")
logger.info("")
logger.info(f"PostGIS API ({len(triggers)} endpoints):")
for _trigger in triggers.values():
    logger.info(f"  - GET /api/{_trigger['route']}")
logger.info("="*60)
