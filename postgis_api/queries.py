# ============================================================================
# MODULE CONTEXT - POSTGIS STATEMENT BUILDERS
# ============================================================================
# STATUS: Standalone Module - PostGIS HTTP API SQL generation
# PURPOSE: Translate route/query parameters into one composed SQL statement per request
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: Statement, build_bbox, build_centroid, build_intersect_feature,
#          build_intersect_point, build_nearest, build_query, build_transform_point,
#          build_geobuf, build_geojson, build_mvt, build_list_columns,
#          build_list_tables, build_geometry_columns_lookup
# DEPENDENCIES: psycopg.sql
# PATTERNS: Pure builder functions, psycopg.sql composition, bound parameters
# ============================================================================

"""
PostGIS Statement Builders

Each builder is a pure function (route params, query params, config) ->
Statement. No builder touches the database, so the same input always yields
the same SQL text and parameter tuple.

Composition rules:
- Table and column names go through sql.Identifier (always double-quoted).
- Numbers (coordinates, SRIDs, distances, limits, precision, bounds, tile
  addresses) are bound as %s parameters.
- filter, sort, group and columns are caller-supplied SQL fragments and are
  inserted as written after check_expression() has vetted them. A literal
  '%' in a fragment is doubled so it survives parameter substitution.
- Optional clauses (WHERE, GROUP BY, ORDER BY, LIMIT) appear only when the
  corresponding parameter is present and non-empty.

Example:
    statement = build_query({"table": "parcels"}, {"limit": "10"}, config)
    statement.as_string()   # 'SELECT * FROM "parcels" LIMIT %s'
    statement.params        # (10,)
"""

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from psycopg import sql

from .config import PostGISAPIConfig
from .parsing import (
    EnvelopeBounds,
    TileBounds,
    Bounds,
    check_expression,
    validate_identifier,
    parse_bounds,
    parse_point,
    parse_tile,
    table_identifier,
    to_bool,
    to_int,
)

MVT_EXTENT = 4096
WEB_MERCATOR_SRID = 3857
WGS84_SRID = 4326


@dataclass(frozen=True)
class Statement:
    """One composed SQL statement and its bound parameters."""
    sql: sql.Composed
    params: Tuple[Any, ...] = ()

    def as_string(self) -> str:
        """Render the statement text (placeholders left as %s)."""
        return self.sql.as_string()


# ============================================================================
# SHARED HELPERS
# ============================================================================

def _fragment(value: Optional[str], parameter: str) -> Optional[sql.SQL]:
    """Vet a free-text fragment and wrap it for composition."""
    checked = check_expression(value, parameter)
    if checked is None:
        return None
    return sql.SQL(checked.replace("%", "%%"))


def _columns(query: Mapping[str, str]) -> sql.SQL:
    """Select list from 'columns', defaulting to '*'."""
    return _fragment(query.get("columns"), "columns") or sql.SQL("*")


def _geom_column(query: Mapping[str, str], config: PostGISAPIConfig,
                 key: str = "geom_column") -> str:
    return validate_identifier(query.get(key) or config.default_geom_column, key)


def _qualified(table_name: str, column: str) -> sql.Identifier:
    """Column identifier qualified by its (possibly schema-qualified) table."""
    return sql.Identifier(*table_name.split("."), column)


def _limit(value: Optional[str], config: PostGISAPIConfig,
           default: Optional[int] = None) -> Optional[int]:
    """Coerce a limit; non-positive or unparseable values fall back to default."""
    limit = to_int(value, default)
    if limit is None or limit < 1:
        return default
    return min(limit, config.max_limit)


def _where(conditions: List[sql.Composable], filter_sql: Optional[sql.SQL]) -> sql.Composable:
    """
    Build a WHERE clause from required conditions plus an optional filter.

    The filter is parenthesised when it is combined with other conditions so
    an OR inside it cannot escape the conjunction.
    """
    parts = list(conditions)
    if filter_sql is not None:
        parts.append(sql.SQL("({})").format(filter_sql) if parts else filter_sql)
    if not parts:
        return sql.SQL("")
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(parts)


def _optional(keyword: str, fragment: Optional[sql.SQL]) -> sql.Composable:
    if fragment is None:
        return sql.SQL("")
    return sql.SQL(" " + keyword + " ") + fragment


def _limit_clause(limit: Optional[int], params: List[Any]) -> sql.Composable:
    if limit is None:
        return sql.SQL("")
    params.append(limit)
    return sql.SQL(" LIMIT %s")


def _srid_subquery(table: sql.Identifier, geom_name: str) -> sql.Composed:
    """Subquery yielding the SRID of the table's first non-null geometry."""
    return sql.SQL(
        "SELECT ST_SRID({geom}) AS srid FROM {table} WHERE {geom} IS NOT NULL LIMIT 1"
    ).format(geom=sql.Identifier(geom_name), table=table)


def _bounds_condition(bounds: Optional[Bounds], geom: sql.Identifier,
                      srid_ref: sql.Composable, params: List[Any]) -> Optional[sql.Composed]:
    """
    Spatial filter for the 'bounds' parameter.

    Envelopes are given in EPSG:4326 and tiles in the web-mercator grid; both
    are transformed into the table's SRID so the spatial index stays usable.
    """
    if isinstance(bounds, EnvelopeBounds):
        params.extend([bounds.west, bounds.south, bounds.east, bounds.north])
        return sql.SQL(
            "{geom} && ST_Transform(ST_MakeEnvelope(%s, %s, %s, %s, {srid}), {srid_ref})"
        ).format(geom=geom, srid=sql.Literal(WGS84_SRID), srid_ref=srid_ref)
    if isinstance(bounds, TileBounds):
        params.extend([bounds.z, bounds.x, bounds.y])
        return sql.SQL(
            "{geom} && ST_Transform(ST_TileEnvelope(%s, %s, %s), {srid_ref})"
        ).format(geom=geom, srid_ref=srid_ref)
    return None


def _input_geom_cte(table: sql.Identifier, geom_name: str) -> sql.Composed:
    """CTE placing the request point (x, y, srid params) in the table's SRID."""
    return sql.SQL(
        "WITH input_geom AS ("
        "SELECT ST_Transform(ST_SetSRID(ST_MakePoint(%s, %s), %s), srid_sub.srid) AS geom "
        "FROM ({srid_subquery}) AS srid_sub)"
    ).format(srid_subquery=_srid_subquery(table, geom_name))


# ============================================================================
# POINT ON GEOMETRY - bbox / centroid
# ============================================================================

def _point_function(query: Mapping[str, str]) -> sql.SQL:
    if to_bool(query.get("force_on_surface")):
        return sql.SQL("ST_PointOnSurface")
    return sql.SQL("ST_Centroid")


def build_bbox(params: Mapping[str, str], query: Mapping[str, str],
               config: PostGISAPIConfig) -> Statement:
    """x/y of each feature's centroid (or point on surface) in the target SRID."""
    table = table_identifier(params.get("table"))
    geom = sql.Identifier(_geom_column(query, config))
    srid = to_int(query.get("srid"), config.default_srid)

    statement = sql.SQL(
        "SELECT ST_X(ST_Transform({fn}({geom}), %s)) AS x, "
        "ST_Y(ST_Transform({fn}({geom}), %s)) AS y "
        "FROM {table}{where}"
    ).format(
        fn=_point_function(query),
        geom=geom,
        table=table,
        where=_where([], _fragment(query.get("filter"), "filter"))
    )
    return Statement(statement, (srid, srid))


def build_centroid(params: Mapping[str, str], query: Mapping[str, str],
                   config: PostGISAPIConfig) -> Statement:
    """Same output as build_bbox, transforming once in a subquery."""
    table = table_identifier(params.get("table"))
    geom = sql.Identifier(_geom_column(query, config))
    srid = to_int(query.get("srid"), config.default_srid)

    statement = sql.SQL(
        "SELECT ST_X(geom_transformed) AS x, ST_Y(geom_transformed) AS y "
        "FROM (SELECT ST_Transform({fn}({geom}), %s) AS geom_transformed "
        "FROM {table}{where}) AS sub"
    ).format(
        fn=_point_function(query),
        geom=geom,
        table=table,
        where=_where([], _fragment(query.get("filter"), "filter"))
    )
    return Statement(statement, (srid,))


# ============================================================================
# SPATIAL RELATIONSHIPS - intersect / nearest
# ============================================================================

def build_intersect_feature(params: Mapping[str, str], query: Mapping[str, str],
                            config: PostGISAPIConfig) -> Statement:
    """Pairs of features from two tables lying within 'distance' of each other."""
    table_from_name = params.get("table_from")
    table_to_name = params.get("table_to")
    table_from = table_identifier(table_from_name)
    table_to = table_identifier(table_to_name)
    geom_from = _qualified(table_from_name, _geom_column(query, config, "geom_column_from"))
    geom_to = _qualified(table_to_name, _geom_column(query, config, "geom_column_to"))

    values: List[Any] = [to_int(query.get("distance"), 0)]
    within = sql.SQL("ST_DWithin({geom_from}, {geom_to}, %s)").format(
        geom_from=geom_from, geom_to=geom_to
    )

    statement = sql.SQL("SELECT {columns} FROM {table_from} CROSS JOIN {table_to}{where}{order}").format(
        columns=_columns(query),
        table_from=table_from,
        table_to=table_to,
        where=_where([within], _fragment(query.get("filter"), "filter")),
        order=_optional("ORDER BY", _fragment(query.get("sort"), "sort"))
    )
    statement += _limit_clause(_limit(query.get("limit"), config), values)
    return Statement(statement, tuple(values))


def build_intersect_point(params: Mapping[str, str], query: Mapping[str, str],
                          config: PostGISAPIConfig) -> Statement:
    """Features within 'distance' of a point, with their distance to it."""
    table_name = params.get("table")
    table = table_identifier(table_name)
    point = parse_point(params.get("point"))
    geom_name = _geom_column(query, config)
    geom = _qualified(table_name, geom_name)

    values: List[Any] = [point.x, point.y, point.srid, to_int(query.get("distance"), 0)]
    within = sql.SQL("ST_DWithin({geom}, input_geom.geom, %s)").format(geom=geom)

    statement = sql.SQL(
        "{cte} SELECT {columns}, ST_Distance({geom}, input_geom.geom) AS distance "
        "FROM {table}, input_geom{where}{order}"
    ).format(
        cte=_input_geom_cte(table, geom_name),
        columns=_columns(query),
        geom=geom,
        table=table,
        where=_where([within], _fragment(query.get("filter"), "filter")),
        order=_optional("ORDER BY", _fragment(query.get("sort"), "sort"))
    )
    statement += _limit_clause(_limit(query.get("limit"), config), values)
    return Statement(statement, tuple(values))


def build_nearest(params: Mapping[str, str], query: Mapping[str, str],
                  config: PostGISAPIConfig) -> Statement:
    """
    The 'limit' features closest to a point, ordered by the KNN operator.

    The geometry column must already be resolved by the caller when the
    request did not name one; see PostGISRepository.resolve_geometry_column.
    """
    table_name = params.get("table")
    table = table_identifier(table_name)
    point = parse_point(params.get("point"))
    geom_name = _geom_column(query, config)
    geom = _qualified(table_name, geom_name)
    limit = _limit(query.get("limit"), config, config.default_limit)

    statement = sql.SQL(
        "{cte} SELECT {columns}, ST_Distance({geom}, input_geom.geom) AS distance "
        "FROM {table}, input_geom{where} "
        "ORDER BY {geom} <-> input_geom.geom LIMIT %s"
    ).format(
        cte=_input_geom_cte(table, geom_name),
        columns=_columns(query),
        geom=geom,
        table=table,
        where=_where([], _fragment(query.get("filter"), "filter"))
    )
    return Statement(statement, (point.x, point.y, point.srid, limit))


# ============================================================================
# GENERIC QUERY / TRANSFORM
# ============================================================================

def build_query(params: Mapping[str, str], query: Mapping[str, str],
                config: PostGISAPIConfig) -> Statement:
    """Arbitrary filtered, grouped and sorted rows from one table."""
    table = table_identifier(params.get("table"))
    values: List[Any] = []

    statement = sql.SQL("SELECT {columns} FROM {table}{where}{group}{order}").format(
        columns=_columns(query),
        table=table,
        where=_where([], _fragment(query.get("filter"), "filter")),
        group=_optional("GROUP BY", _fragment(query.get("group"), "group")),
        order=_optional("ORDER BY", _fragment(query.get("sort"), "sort"))
    )
    statement += _limit_clause(_limit(query.get("limit"), config), values)
    return Statement(statement, tuple(values))


def build_transform_point(params: Mapping[str, str], query: Mapping[str, str],
                          config: PostGISAPIConfig) -> Statement:
    """Reproject a single point literal into the target SRID."""
    point = parse_point(params.get("point"))
    srid = to_int(query.get("srid"), config.default_srid)

    statement = sql.SQL(
        "SELECT ST_X(p.geom) AS x, ST_Y(p.geom) AS y "
        "FROM (SELECT ST_Transform(ST_SetSRID(ST_MakePoint(%s, %s), %s), %s) AS geom) AS p"
    )
    return Statement(sql.Composed([statement]), (point.x, point.y, point.srid, srid))


# ============================================================================
# ENCODED OUTPUTS - geobuf / geojson / mvt
# ============================================================================

def _extra_columns(columns: Optional[sql.SQL]) -> sql.Composable:
    """', <columns>' when columns were requested, else nothing."""
    if columns is None:
        return sql.SQL("")
    return sql.SQL(", ") + columns


def _id_column(query: Mapping[str, str]) -> Optional[str]:
    id_name = query.get("id_column") or None
    if id_name is None:
        return None
    return validate_identifier(id_name, "id_column")


def build_geobuf(params: Mapping[str, str], query: Mapping[str, str],
                 config: PostGISAPIConfig) -> Statement:
    """Whole result set encoded by ST_AsGeobuf, geometries in EPSG:4326."""
    table_name = params.get("table")
    table = table_identifier(table_name)
    geom_name = _geom_column(query, config)
    geom = _qualified(table_name, geom_name)
    columns = _fragment(query.get("columns"), "columns")
    values: List[Any] = []

    bounds = _bounds_condition(
        parse_bounds(query.get("bounds")), geom, sql.SQL("srid_cte.srid"), values
    )

    statement = sql.SQL(
        "WITH srid_cte AS ({srid_subquery}) "
        "SELECT ST_AsGeobuf(q, 'geom') AS geobuf FROM ("
        "SELECT ST_Transform({geom}, {wgs84}) AS geom{columns} "
        "FROM {table}, srid_cte{where}) AS q"
    ).format(
        srid_subquery=_srid_subquery(table, geom_name),
        geom=geom,
        wgs84=sql.Literal(WGS84_SRID),
        columns=_extra_columns(columns),
        table=table,
        where=_where([bounds] if bounds is not None else [],
                     _fragment(query.get("filter"), "filter"))
    )
    return Statement(statement, tuple(values))


def build_geojson(params: Mapping[str, str], query: Mapping[str, str],
                  config: PostGISAPIConfig) -> Statement:
    """
    One GeoJSON Feature per row.

    The service collects the rows into a FeatureCollection. Every selected
    column except the geometry (and the id column, when given) becomes a
    property.
    """
    table_name = params.get("table")
    table = table_identifier(table_name)
    geom_name = _geom_column(query, config)
    geom = _qualified(table_name, geom_name)
    columns = _fragment(query.get("columns"), "columns")
    id_name = _id_column(query)
    precision = to_int(query.get("precision"), config.default_precision)

    # Placeholders appear in text order: precision first, then bounds
    values: List[Any] = [precision]
    bounds = _bounds_condition(parse_bounds(query.get("bounds")), geom, sql.SQL("a.srid"), values)

    feature_id = sql.SQL("")
    properties = sql.SQL("to_jsonb(subq.*) - 'geom'")
    inner_id = sql.SQL("")
    if id_name is not None:
        feature_id = sql.SQL("'id', subq.{id}, ").format(id=sql.Identifier(id_name))
        properties = sql.SQL("{props} - {id}").format(props=properties, id=sql.Literal(id_name))
        inner_id = sql.SQL(", {id}").format(id=_qualified(table_name, id_name))

    statement = sql.SQL(
        "SELECT jsonb_build_object("
        "'type', 'Feature', {feature_id}"
        "'geometry', ST_AsGeoJSON(subq.geom, %s)::jsonb, "
        "'properties', {properties}) AS geojson "
        "FROM (SELECT ST_Transform({geom}, {wgs84}) AS geom{columns}{inner_id} "
        "FROM {table}, ({srid_subquery}) AS a{where}) AS subq"
    ).format(
        feature_id=feature_id,
        properties=properties,
        geom=geom,
        wgs84=sql.Literal(WGS84_SRID),
        columns=_extra_columns(columns),
        inner_id=inner_id,
        table=table,
        srid_subquery=_srid_subquery(table, geom_name),
        where=_where([bounds] if bounds is not None else [],
                     _fragment(query.get("filter"), "filter"))
    )
    return Statement(statement, tuple(values))


def build_mvt(params: Mapping[str, str], query: Mapping[str, str],
              config: PostGISAPIConfig) -> Statement:
    """A Mapbox Vector Tile for tile z/x/y; the layer is named after the table."""
    table_name = params.get("table")
    table = table_identifier(table_name)
    tile = parse_tile(params.get("z"), params.get("x"), params.get("y"))
    geom_name = _geom_column(query, config)
    geom = _qualified(table_name, geom_name)
    columns = _fragment(query.get("columns"), "columns")
    id_name = _id_column(query)

    inner_id = sql.SQL("")
    feature_id = sql.SQL("")
    if id_name is not None:
        inner_id = sql.SQL(", {id}").format(id=_qualified(table_name, id_name))
        feature_id = sql.SQL(", {id}").format(id=sql.Literal(id_name))

    in_tile = sql.SQL(
        "ST_Intersects({geom}, ST_Transform(ST_TileEnvelope(%s, %s, %s), a.srid))"
    ).format(geom=geom)

    statement = sql.SQL(
        "WITH mvtgeom AS ("
        "SELECT ST_AsMVTGeom(ST_Transform({geom}, {mercator}), ST_TileEnvelope(%s, %s, %s)) AS geom"
        "{columns}{inner_id} "
        "FROM {table}, ({srid_subquery}) AS a{where}) "
        "SELECT ST_AsMVT(mvtgeom.*, {layer}, {extent}, 'geom'{feature_id}) AS mvt FROM mvtgeom"
    ).format(
        geom=geom,
        mercator=sql.Literal(WEB_MERCATOR_SRID),
        columns=_extra_columns(columns),
        inner_id=inner_id,
        table=table,
        srid_subquery=_srid_subquery(table, geom_name),
        where=_where([in_tile], _fragment(query.get("filter"), "filter")),
        layer=sql.Literal(table_name),
        extent=sql.Literal(MVT_EXTENT),
        feature_id=feature_id
    )
    tile_params = (tile.z, tile.x, tile.y)
    return Statement(statement, tile_params + tile_params)


# ============================================================================
# CATALOG
# ============================================================================

def build_list_columns(params: Mapping[str, str], query: Mapping[str, str],
                       config: PostGISAPIConfig) -> Statement:
    """Column names and type names of a table, from the system catalog."""
    table_name = params.get("table") or ""
    table_identifier(table_name)
    parts = table_name.split(".")
    values: List[Any] = [parts[-1]]

    schema_condition = sql.SQL("")
    if len(parts) == 2:
        schema_condition = sql.SQL(" AND nspname = %s")
        values.append(parts[0])

    statement = sql.SQL(
        "SELECT attname AS field_name, typname AS field_type "
        "FROM pg_namespace, pg_attribute, pg_type, pg_class "
        "WHERE pg_type.oid = atttypid "
        "AND pg_class.oid = attrelid "
        "AND relnamespace = pg_namespace.oid "
        "AND attnum >= 1 "
        "AND NOT attisdropped "
        "AND relname = %s{schema_condition} "
        "ORDER BY attnum"
    ).format(schema_condition=schema_condition)
    return Statement(statement, tuple(values))


def build_list_tables(params: Mapping[str, str], query: Mapping[str, str],
                      config: PostGISAPIConfig) -> Statement:
    """Tables and views the current role may SELECT, with geometry metadata."""
    base = sql.SQL(
        "SELECT i.table_name, i.table_type, g.f_geometry_column AS geometry_column, "
        "g.coord_dimension, g.srid, g.type "
        "FROM information_schema.tables i "
        "LEFT JOIN geometry_columns g ON i.table_name = g.f_table_name "
        "INNER JOIN information_schema.table_privileges p ON i.table_name = p.table_name "
        "AND p.grantee IN (CURRENT_USER, 'PUBLIC') "
        "AND p.privilege_type = 'SELECT'"
    )
    schema_filter = sql.SQL("i.table_schema NOT IN ('pg_catalog', 'information_schema')")

    statement = sql.SQL("{base}{where} ORDER BY i.table_name").format(
        base=base,
        where=_where([schema_filter], _fragment(query.get("filter"), "filter"))
    )
    return Statement(statement, ())


def build_geometry_columns_lookup(table_name: str) -> Statement:
    """Geometry columns registered for a table in the geometry_columns view."""
    table_identifier(table_name)
    parts = table_name.split(".")
    values: List[Any] = [parts[-1]]

    schema_condition = sql.SQL("")
    if len(parts) == 2:
        schema_condition = sql.SQL(" AND f_table_schema = %s")
        values.append(parts[0])

    statement = sql.SQL(
        "SELECT f_geometry_column AS column_name, srid, type "
        "FROM geometry_columns "
        "WHERE f_table_name = %s{schema_condition} "
        "ORDER BY f_geometry_column"
    ).format(schema_condition=schema_condition)
    return Statement(statement, tuple(values))
