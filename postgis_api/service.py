# ============================================================================
# MODULE CONTEXT - POSTGIS API SERVICE
# ============================================================================
# STATUS: Standalone Service - PostGIS HTTP API business logic
# PURPOSE: Build, execute and shape the result of each endpoint's statement
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: PostGISService
# INTERFACES: Returns SuccessEnvelope, BinaryPayload or None (no content)
# DEPENDENCIES: postgis_api.queries, postgis_api.repository, util_logger
# PATTERNS: Service Layer
# ============================================================================

"""
PostGIS API Service

Orchestrates the request pipeline after the access gate has passed:

    statement builder -> repository (one connection) -> result shaper

Shaping rules:
- Row sets are wrapped in the success envelope; no rows is still a 200
  with data: [].
- transform_point wraps its single row.
- GeoJSON rows are collected into a FeatureCollection; no rows means 204.
- Geobuf and MVT bytes are returned raw; a null or empty payload means 204.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional

from util_logger import ComponentType, LoggerFactory

from .access import validate_access
from .config import PostGISAPIConfig, get_api_config
from .models import BinaryPayload, FeatureCollection, SuccessEnvelope
from .parsing import parse_point, table_identifier
from .queries import (
    Statement,
    build_bbox,
    build_centroid,
    build_geobuf,
    build_geojson,
    build_intersect_feature,
    build_intersect_point,
    build_list_columns,
    build_list_tables,
    build_mvt,
    build_nearest,
    build_query,
    build_transform_point,
)
from .repository import PostGISRepository

logger = LoggerFactory.create_logger(ComponentType.SERVICE, "PostGISService")

Builder = Callable[[Mapping[str, str], Mapping[str, str], PostGISAPIConfig], Statement]


class PostGISService:
    """
    Business logic service for the PostGIS HTTP API.

    Every method takes the request's route parameters and query parameters
    as plain mappings, so the service can be driven without an HTTP layer.
    """

    def __init__(self, config: Optional[PostGISAPIConfig] = None,
                 repository: Optional[PostGISRepository] = None):
        """
        Initialize service.

        Args:
            config: API configuration (uses singleton if not provided)
            repository: Data access object (built from config if not provided)
        """
        self.config = config or get_api_config()
        self.repository = repository or PostGISRepository(self.config)

    # ========================================================================
    # SHAPERS
    # ========================================================================

    def _rows(self, endpoint: str, builder: Builder,
              params: Mapping[str, str], query: Mapping[str, str]) -> SuccessEnvelope:
        statement = builder(params, query, self.config)
        rows = self.repository.fetch_all(statement, endpoint)
        return SuccessEnvelope(data=rows, meta={"count": len(rows)})

    def _binary(self, endpoint: str, builder: Builder, column: str,
                params: Mapping[str, str], query: Mapping[str, str]) -> Optional[BinaryPayload]:
        statement = builder(params, query, self.config)
        row = self.repository.fetch_one(statement, endpoint)
        payload = row.get(column) if row else None
        if not payload:
            logger.info(f"{endpoint} produced no data for {params.get('table')}")
            return None
        return BinaryPayload(content=bytes(payload))

    # ========================================================================
    # ROW ENDPOINTS
    # ========================================================================

    def bbox(self, params: Mapping[str, str], query: Mapping[str, str]) -> SuccessEnvelope:
        """Centroid or point-on-surface coordinates per feature."""
        return self._rows("bbox", build_bbox, params, query)

    def centroid(self, params: Mapping[str, str], query: Mapping[str, str]) -> SuccessEnvelope:
        """Centroid coordinates per feature, transformed in a subquery."""
        return self._rows("centroid", build_centroid, params, query)

    def intersect_feature(self, params: Mapping[str, str], query: Mapping[str, str]) -> SuccessEnvelope:
        return self._rows("intersect_feature", build_intersect_feature, params, query)

    def intersect_point(self, params: Mapping[str, str], query: Mapping[str, str]) -> SuccessEnvelope:
        return self._rows("intersect_point", build_intersect_point, params, query)

    def nearest(self, params: Mapping[str, str], query: Mapping[str, str]) -> SuccessEnvelope:
        """
        Nearest features to a point.

        The point and table name are checked before the geometry column is
        resolved, so malformed input never costs a catalog query.
        """
        parse_point(params.get("point"))
        table_name = params.get("table")
        table_identifier(table_name)

        geom_column = self.repository.resolve_geometry_column(
            table_name, query.get("geom_column") or None
        )
        resolved_query: Dict[str, str] = dict(query)
        resolved_query["geom_column"] = geom_column

        return self._rows("nearest", build_nearest, params, resolved_query)

    def query(self, params: Mapping[str, str], query: Mapping[str, str]) -> SuccessEnvelope:
        return self._rows("query", build_query, params, query)

    def transform_point(self, params: Mapping[str, str], query: Mapping[str, str]) -> SuccessEnvelope:
        """Single {x, y} row for the reprojected point."""
        statement = build_transform_point(params, query, self.config)
        row = self.repository.fetch_one(statement, "transform_point")
        return SuccessEnvelope(data=row)

    def list_columns(self, params: Mapping[str, str], query: Mapping[str, str]) -> SuccessEnvelope:
        return self._rows("list_columns", build_list_columns, params, query)

    def list_tables(self, params: Mapping[str, str], query: Mapping[str, str]) -> SuccessEnvelope:
        """
        Tables the current role can read.

        Tables the access policy rejects are left out of the listing as well.
        """
        envelope = self._rows("list_tables", build_list_tables, params, query)
        visible: List[Dict[str, Any]] = [
            row for row in envelope.data
            if validate_access(row.get("table_name") or "", self.config).allowed
        ]
        return SuccessEnvelope(data=visible, meta={"count": len(visible)})

    # ========================================================================
    # ENCODED ENDPOINTS
    # ========================================================================

    def geojson(self, params: Mapping[str, str], query: Mapping[str, str]) -> Optional[SuccessEnvelope]:
        """FeatureCollection of the matching features, or None when there are none."""
        statement = build_geojson(params, query, self.config)
        rows = self.repository.fetch_all(statement, "geojson")
        if not rows:
            return None

        collection = FeatureCollection(features=[row["geojson"] for row in rows])
        return SuccessEnvelope(data=collection.model_dump(), meta={"count": len(rows)})

    def geobuf(self, params: Mapping[str, str], query: Mapping[str, str]) -> Optional[BinaryPayload]:
        """Geobuf bytes, or None when the query produced nothing."""
        return self._binary("geobuf", build_geobuf, "geobuf", params, query)

    def mvt(self, params: Mapping[str, str], query: Mapping[str, str]) -> Optional[BinaryPayload]:
        """Vector tile bytes, or None for an empty tile."""
        return self._binary("mvt", build_mvt, "mvt", params, query)
