# ============================================================================
# MODULE CONTEXT - POSTGIS API TRIGGERS
# ============================================================================
# STATUS: Standalone HTTP Triggers - PostGIS HTTP API endpoints
# PURPOSE: Azure Functions HTTP handlers for the PostGIS query endpoints
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: get_postgis_triggers, BasePostGISTrigger and one trigger per endpoint
# INTERFACES: Azure Functions HttpRequest/HttpResponse
# DEPENDENCIES: azure.functions, json, postgis_api.service, util_logger
# SOURCE: HTTP requests from map clients, GIS tools and scripts
# SCOPE: HTTP endpoint handlers for the PostGIS API
# PATTERNS: Trigger Pattern, Factory Pattern (get_postgis_triggers)
# ENTRY_POINTS: Function App route registration via get_postgis_triggers()
# ============================================================================

"""
PostGIS API HTTP Triggers - Azure Functions Handlers

Endpoints (under the Functions host prefix /api):
- GET /api/v1/bbox/{table}
- GET /api/v1/centroid/{table}
- GET /api/v1/intersect_feature/{table_from}/{table_to}
- GET /api/v1/intersect_point/{table}/{point}
- GET /api/v1/nearest/{table}/{point}
- GET /api/v1/query/{table}
- GET /api/v1/transform_point/{point}
- GET /api/v1/geobuf/{table}
- GET /api/v1/geojson/{table}
- GET /api/v1/mvt/{table}/{z}/{x}/{y}
- GET /api/v1/list_columns/{table}
- GET /api/v1/list_tables

Each trigger:
1. Runs the table access gate (blacklist / allow-list) on table, table_from
   and table_to; a rejection is a 400 and nothing else runs
2. Calls the service layer
3. Returns the JSON envelope, raw protobuf bytes, or 204 No Content
4. Translates GatewayError subclasses to their status code; anything else
   is a 500 INTERNAL_SERVER_ERROR
"""

import azure.functions as func
import json
from typing import Any, Dict, List, Mapping, Optional

from util_logger import ComponentType, LoggerFactory

from .access import check_route_access
from .config import PostGISAPIConfig, get_api_config
from .errors import AccessDenied, ErrorCode, GatewayError, QueryExecutionFailure
from .models import BinaryPayload, ServiceResult
from .service import PostGISService

logger = LoggerFactory.create_logger(ComponentType.TRIGGER, "PostGISTriggers")

# Query parameters never written to the log as-is
SENSITIVE_QUERY_KEYS = {"password", "token", "access_token", "key", "secret"}


# ============================================================================
# TRIGGER REGISTRY FUNCTION
# ============================================================================

def get_postgis_triggers(config: Optional[PostGISAPIConfig] = None,
                         service: Optional[PostGISService] = None) -> List[Dict[str, Any]]:
    """
    Get list of PostGIS API trigger configurations for function_app.py.

    Args:
        config: API configuration (uses singleton if not provided)
        service: Shared service instance (built from config if not provided)

    Returns:
        List of dicts with keys:
        - name: Unique function name
        - route: URL route pattern (without the host 'api' prefix)
        - methods: List of HTTP methods
        - handler: Callable trigger handler
    """
    config = config or get_api_config()
    service = service or PostGISService(config)

    trigger_classes = [
        BBoxTrigger,
        CentroidTrigger,
        IntersectFeatureTrigger,
        IntersectPointTrigger,
        NearestTrigger,
        QueryTrigger,
        TransformPointTrigger,
        GeobufTrigger,
        GeoJSONTrigger,
        MVTTrigger,
        ListColumnsTrigger,
        ListTablesTrigger,
    ]

    triggers = []
    for trigger_class in trigger_classes:
        trigger = trigger_class(config=config, service=service)
        triggers.append({
            'name': trigger.endpoint,
            'route': config.route(trigger.path),
            'methods': ['GET'],
            'handler': trigger.handle
        })
    return triggers


# ============================================================================
# BASE TRIGGER CLASS
# ============================================================================

class BasePostGISTrigger:
    """
    Base class for PostGIS API triggers.

    Subclasses set `endpoint` and `path` and implement process().
    """

    endpoint: str = ""
    path: str = ""

    def __init__(self, config: Optional[PostGISAPIConfig] = None,
                 service: Optional[PostGISService] = None):
        """Initialize trigger with configuration and service."""
        self.config = config or get_api_config()
        self.service = service or PostGISService(self.config)

    def process(self, params: Mapping[str, str], query: Mapping[str, str]) -> ServiceResult:
        raise NotImplementedError

    def handle(self, req: func.HttpRequest) -> func.HttpResponse:
        """
        Handle one request: gate, process, respond.

        Args:
            req: Azure Functions HTTP request

        Returns:
            HttpResponse (200 JSON, 200 protobuf, 204, 400 or 500)
        """
        params = dict(req.route_params or {})
        query = dict(req.params or {})

        decision = check_route_access(params, self.config)
        if not decision.allowed:
            logger.warning(
                f"{self.endpoint} rejected: {decision.reason}",
                extra={'custom_dimensions': self._log_context(params, query)}
            )
            return self._error_response(AccessDenied(decision.table, decision.reason))

        try:
            result = self.process(params, query)

        except GatewayError as e:
            context = self._log_context(params, query)
            context['error_code'] = e.code.value
            if isinstance(e, QueryExecutionFailure):
                context['statement'] = e.statement_text
                logger.error(f"{self.endpoint} failed: {e.message}",
                             extra={'custom_dimensions': context})
            else:
                logger.warning(f"{self.endpoint} bad request: {e.message}",
                               extra={'custom_dimensions': context})
            return self._error_response(e, self._detail(e.__cause__))

        except Exception as e:
            logger.exception(
                f"Unexpected error in {self.endpoint}: {e}",
                extra={'custom_dimensions': self._log_context(params, query)}
            )
            return self._error_response(
                GatewayError("Internal Server Error", ErrorCode.INTERNAL_SERVER_ERROR),
                self._detail(e)
            )

        return self._result_response(result)

    # ------------------------------------------------------------------------
    # Response helpers
    # ------------------------------------------------------------------------

    def _result_response(self, result: ServiceResult) -> func.HttpResponse:
        if result is None:
            return func.HttpResponse(
                status_code=204,
                headers={"Cache-Control": self.config.cache_control}
            )
        if isinstance(result, BinaryPayload):
            return self._binary_response(result.content, result.content_type)
        return self._json_response(result)

    def _json_response(
        self,
        data: Any,
        status_code: int = 200,
        content_type: str = "application/json"
    ) -> func.HttpResponse:
        """
        Create JSON HTTP response.

        Args:
            data: Data to serialize (dict or Pydantic model)
            status_code: HTTP status code
            content_type: Response content type

        Returns:
            Azure Functions HttpResponse
        """
        # Handle Pydantic models; row values (Decimal, datetime, ...) fall back to str
        if hasattr(data, 'model_dump'):
            data = data.model_dump()

        headers = {"Cache-Control": self.config.cache_control} if status_code == 200 else None
        return func.HttpResponse(
            body=json.dumps(data, default=str),
            status_code=status_code,
            mimetype=content_type,
            headers=headers
        )

    def _binary_response(
        self,
        data: bytes,
        content_type: str,
        status_code: int = 200
    ) -> func.HttpResponse:
        """Create binary response (protobuf)."""
        return func.HttpResponse(
            data,
            status_code=status_code,
            mimetype=content_type,
            headers={"Cache-Control": self.config.cache_control}
        )

    def _error_response(self, error: GatewayError,
                        detail: Optional[Dict[str, Any]] = None) -> func.HttpResponse:
        """
        Create error response from a GatewayError.

        Args:
            error: The failure to report
            detail: Diagnostic block, only included in development

        Returns:
            Azure Functions HttpResponse with the error envelope
        """
        body = error.to_response_body(detail if self.config.is_development else None)
        return self._json_response(body, status_code=error.status_code)

    @staticmethod
    def _detail(exc: Optional[BaseException]) -> Optional[Dict[str, Any]]:
        if exc is None:
            return None
        return {"type": type(exc).__name__, "message": str(exc)}

    def _log_context(self, params: Mapping[str, str], query: Mapping[str, str]) -> Dict[str, Any]:
        return {
            'endpoint': self.endpoint,
            'route_params': dict(params),
            'query_params': {
                key: ('***' if key.lower() in SENSITIVE_QUERY_KEYS else value)
                for key, value in query.items()
            }
        }


# ============================================================================
# ENDPOINT TRIGGERS
# ============================================================================

class BBoxTrigger(BasePostGISTrigger):
    """
    Feature centroids (or points on surface) as x/y rows.

    Endpoint: GET /api/v1/bbox/{table}
        ?geom_column=the_geom&srid=4326&filter=...&force_on_surface=true
    """
    endpoint = "bbox"
    path = "bbox/{table}"

    def process(self, params, query):
        return self.service.bbox(params, query)


class CentroidTrigger(BasePostGISTrigger):
    """
    Endpoint: GET /api/v1/centroid/{table}
        ?geom_column=the_geom&srid=4326&filter=...&force_on_surface=true
    """
    endpoint = "centroid"
    path = "centroid/{table}"

    def process(self, params, query):
        return self.service.centroid(params, query)


class IntersectFeatureTrigger(BasePostGISTrigger):
    """
    Features of two tables within a distance of each other.

    Endpoint: GET /api/v1/intersect_feature/{table_from}/{table_to}
        ?geom_column_from=&geom_column_to=&columns=&filter=&distance=0&sort=&limit=
    """
    endpoint = "intersect_feature"
    path = "intersect_feature/{table_from}/{table_to}"

    def process(self, params, query):
        return self.service.intersect_feature(params, query)


class IntersectPointTrigger(BasePostGISTrigger):
    """
    Features within a distance of a point.

    Endpoint: GET /api/v1/intersect_point/{table}/{point}
        point: x,y,srid (e.g. 29.1234,41.5678,4326)
    """
    endpoint = "intersect_point"
    path = "intersect_point/{table}/{point}"

    def process(self, params, query):
        return self.service.intersect_point(params, query)


class NearestTrigger(BasePostGISTrigger):
    """
    Nearest features to a point.

    Endpoint: GET /api/v1/nearest/{table}/{point}?limit=10
    """
    endpoint = "nearest"
    path = "nearest/{table}/{point}"

    def process(self, params, query):
        return self.service.nearest(params, query)


class QueryTrigger(BasePostGISTrigger):
    """
    Generic table query.

    Endpoint: GET /api/v1/query/{table}?columns=&filter=&sort=&group=&limit=
    """
    endpoint = "query"
    path = "query/{table}"

    def process(self, params, query):
        return self.service.query(params, query)


class TransformPointTrigger(BasePostGISTrigger):
    """
    Endpoint: GET /api/v1/transform_point/{point}?srid=4326
    """
    endpoint = "transform_point"
    path = "transform_point/{point}"

    def process(self, params, query):
        return self.service.transform_point(params, query)


class GeobufTrigger(BasePostGISTrigger):
    """
    Geobuf-encoded features (application/x-protobuf).

    Endpoint: GET /api/v1/geobuf/{table}?geom_column=&columns=&filter=&bounds=
    """
    endpoint = "geobuf"
    path = "geobuf/{table}"

    def process(self, params, query):
        return self.service.geobuf(params, query)


class GeoJSONTrigger(BasePostGISTrigger):
    """
    GeoJSON FeatureCollection inside the success envelope.

    Endpoint: GET /api/v1/geojson/{table}
        ?geom_column=&columns=&id_column=&filter=&bounds=&precision=9
    """
    endpoint = "geojson"
    path = "geojson/{table}"

    def process(self, params, query):
        return self.service.geojson(params, query)


class MVTTrigger(BasePostGISTrigger):
    """
    Mapbox Vector Tile (application/x-protobuf).

    Endpoint: GET /api/v1/mvt/{table}/{z}/{x}/{y}?geom_column=&columns=&id_column=&filter=
    """
    endpoint = "mvt"
    path = "mvt/{table}/{z}/{x}/{y}"

    def process(self, params, query):
        return self.service.mvt(params, query)


class ListColumnsTrigger(BasePostGISTrigger):
    """Endpoint: GET /api/v1/list_columns/{table}"""
    endpoint = "list_columns"
    path = "list_columns/{table}"

    def process(self, params, query):
        return self.service.list_columns(params, query)


class ListTablesTrigger(BasePostGISTrigger):
    """Endpoint: GET /api/v1/list_tables?filter=..."""
    endpoint = "list_tables"
    path = "list_tables"

    def process(self, params, query):
        return self.service.list_tables(params, query)
