"""Unit tests for the PostGIS statement builders.

Builders are pure, so these tests render the composed SQL without a
database connection and check the text and the bound parameters.
"""

import pytest

from postgis_api.config import PostGISAPIConfig
from postgis_api.errors import MalformedInput
from postgis_api.queries import (
    build_bbox,
    build_centroid,
    build_geobuf,
    build_geojson,
    build_geometry_columns_lookup,
    build_intersect_feature,
    build_intersect_point,
    build_list_columns,
    build_list_tables,
    build_mvt,
    build_nearest,
    build_query,
    build_transform_point,
)


class TestBuildQuery:
    """Tests for the generic query builder."""

    def test_filter_and_limit(self, api_config: PostGISAPIConfig) -> None:
        """GET /query/parcels?filter=owner_id=5&limit=10"""
        # Act
        statement = build_query({"table": "parcels"}, {"filter": "owner_id=5", "limit": "10"}, api_config)

        # Assert
        assert statement.as_string() == 'SELECT * FROM "parcels" WHERE owner_id=5 LIMIT %s'
        assert statement.params == (10,)

    def test_optional_clauses_are_omitted(self, api_config: PostGISAPIConfig) -> None:
        statement = build_query({"table": "parcels"}, {"filter": "", "sort": "  ", "group": ""}, api_config)

        assert statement.as_string() == 'SELECT * FROM "parcels"'
        assert statement.params == ()

    def test_columns_group_and_sort(self, api_config: PostGISAPIConfig) -> None:
        query = {"columns": "owner_id, count(*)", "group": "owner_id", "sort": "owner_id DESC"}

        statement = build_query({"table": "parcels"}, query, api_config)

        assert statement.as_string() == (
            'SELECT owner_id, count(*) FROM "parcels" GROUP BY owner_id ORDER BY owner_id DESC'
        )

    @pytest.mark.parametrize("parameter, value, keyword, clause", [
        ("filter", "owner_id=5", "WHERE", "WHERE owner_id=5"),
        ("group", "owner_id", "GROUP BY", "GROUP BY owner_id"),
        ("sort", "owner_id DESC", "ORDER BY", "ORDER BY owner_id DESC"),
        ("limit", "10", "LIMIT", "LIMIT %s"),
    ])
    def test_single_parameter_adds_only_its_clause(self, api_config: PostGISAPIConfig, parameter: str,
                                                   value: str, keyword: str, clause: str) -> None:
        statement = build_query({"table": "parcels"}, {parameter: value}, api_config)

        text = statement.as_string()
        assert text == f'SELECT * FROM "parcels" {clause}'
        assert [kw for kw in ("WHERE", "GROUP BY", "ORDER BY", "LIMIT") if kw in text] == [keyword]

    def test_schema_qualified_table(self, api_config: PostGISAPIConfig) -> None:
        statement = build_query({"table": "geo.parcels"}, {}, api_config)

        assert statement.as_string() == 'SELECT * FROM "geo"."parcels"'

    @pytest.mark.parametrize("limit", ["0", "-5", "abc", ""])
    def test_unusable_limit_is_dropped(self, api_config: PostGISAPIConfig, limit: str) -> None:
        statement = build_query({"table": "parcels"}, {"limit": limit}, api_config)

        assert "LIMIT" not in statement.as_string()
        assert statement.params == ()

    def test_limit_is_capped(self, api_config: PostGISAPIConfig) -> None:
        statement = build_query({"table": "parcels"}, {"limit": "999999"}, api_config)

        assert statement.params == (api_config.max_limit,)

    def test_percent_in_fragment_is_escaped(self, api_config: PostGISAPIConfig) -> None:
        """A literal % must survive parameter substitution."""
        statement = build_query({"table": "parcels"}, {"filter": "name LIKE 'A%'"}, api_config)

        assert "name LIKE 'A%%'" in statement.as_string()

    def test_statement_separator_in_filter_is_rejected(self, api_config: PostGISAPIConfig) -> None:
        with pytest.raises(MalformedInput):
            build_query({"table": "parcels"}, {"filter": "1=1; DELETE FROM parcels"}, api_config)

    def test_invalid_table_is_rejected(self, api_config: PostGISAPIConfig) -> None:
        with pytest.raises(MalformedInput):
            build_query({"table": 'parcels"; --'}, {}, api_config)

    def test_builder_is_deterministic(self, api_config: PostGISAPIConfig) -> None:
        """Same input, same statement text and parameters."""
        query = {"filter": "owner_id=5", "sort": "gid", "limit": "3"}

        first = build_query({"table": "parcels"}, query, api_config)
        second = build_query({"table": "parcels"}, query, api_config)

        assert first.as_string() == second.as_string()
        assert first.params == second.params


class TestPointOnGeometry:
    """Tests for bbox and centroid."""

    def test_bbox_defaults(self, api_config: PostGISAPIConfig) -> None:
        statement = build_bbox({"table": "parcels"}, {}, api_config)

        assert statement.as_string() == (
            'SELECT ST_X(ST_Transform(ST_Centroid("the_geom"), %s)) AS x, '
            'ST_Y(ST_Transform(ST_Centroid("the_geom"), %s)) AS y '
            'FROM "parcels"'
        )
        assert statement.params == (4326, 4326)

    def test_bbox_point_on_surface_with_filter(self, api_config: PostGISAPIConfig) -> None:
        query = {"force_on_surface": "true", "srid": "3857", "filter": "area > 10", "geom_column": "geom"}

        statement = build_bbox({"table": "parcels"}, query, api_config)

        text = statement.as_string()
        assert 'ST_PointOnSurface("geom")' in text
        assert "ST_Centroid" not in text
        assert text.endswith(' FROM "parcels" WHERE area > 10')
        assert statement.params == (3857, 3857)

    def test_centroid_transforms_in_subquery(self, api_config: PostGISAPIConfig) -> None:
        statement = build_centroid({"table": "parcels"}, {}, api_config)

        assert statement.as_string() == (
            "SELECT ST_X(geom_transformed) AS x, ST_Y(geom_transformed) AS y "
            'FROM (SELECT ST_Transform(ST_Centroid("the_geom"), %s) AS geom_transformed '
            'FROM "parcels") AS sub'
        )
        assert statement.params == (4326,)

    def test_invalid_geom_column_is_rejected(self, api_config: PostGISAPIConfig) -> None:
        with pytest.raises(MalformedInput):
            build_centroid({"table": "parcels"}, {"geom_column": "geom) FROM x"}, api_config)


class TestSpatialRelationships:
    """Tests for intersect and nearest builders."""

    def test_nearest(self, api_config: PostGISAPIConfig) -> None:
        """GET /nearest/parcels/29.1,41.5,4326?limit=5"""
        # Arrange
        params = {"table": "parcels", "point": "29.1,41.5,4326"}
        query = {"limit": "5", "geom_column": "geom"}

        # Act
        statement = build_nearest(params, query, api_config)

        # Assert
        assert statement.as_string() == (
            "WITH input_geom AS ("
            "SELECT ST_Transform(ST_SetSRID(ST_MakePoint(%s, %s), %s), srid_sub.srid) AS geom "
            'FROM (SELECT ST_SRID("geom") AS srid FROM "parcels" WHERE "geom" IS NOT NULL LIMIT 1) AS srid_sub) '
            'SELECT *, ST_Distance("parcels"."geom", input_geom.geom) AS distance '
            'FROM "parcels", input_geom '
            'ORDER BY "parcels"."geom" <-> input_geom.geom LIMIT %s'
        )
        assert statement.params == (29.1, 41.5, 4326, 5)

    def test_nearest_default_limit(self, api_config: PostGISAPIConfig) -> None:
        statement = build_nearest({"table": "parcels", "point": "1,2,4326"}, {}, api_config)

        assert statement.params[-1] == api_config.default_limit

    def test_nearest_rejects_bad_point(self, api_config: PostGISAPIConfig) -> None:
        with pytest.raises(MalformedInput):
            build_nearest({"table": "parcels", "point": "notapoint"}, {"limit": "5"}, api_config)

    def test_intersect_point_parenthesises_filter(self, api_config: PostGISAPIConfig) -> None:
        """An OR in the filter cannot escape the distance condition."""
        params = {"table": "parcels", "point": "1,2,4326"}
        query = {"distance": "100", "filter": "a=1 OR b=2"}

        statement = build_intersect_point(params, query, api_config)

        assert statement.as_string().endswith(
            'FROM "parcels", input_geom '
            'WHERE ST_DWithin("parcels"."the_geom", input_geom.geom, %s) AND (a=1 OR b=2)'
        )
        assert statement.params == (1.0, 2.0, 4326, 100)

    def test_intersect_feature(self, api_config: PostGISAPIConfig) -> None:
        params = {"table_from": "parcels", "table_to": "roads"}
        query = {"sort": "1", "limit": "5", "geom_column_to": "geom"}

        statement = build_intersect_feature(params, query, api_config)

        assert statement.as_string() == (
            'SELECT * FROM "parcels" CROSS JOIN "roads" '
            'WHERE ST_DWithin("parcels"."the_geom", "roads"."geom", %s) '
            "ORDER BY 1 LIMIT %s"
        )
        assert statement.params == (0, 5)


class TestTransformPoint:
    """Tests for transform_point."""

    def test_point_values_are_bound(self, api_config: PostGISAPIConfig) -> None:
        statement = build_transform_point({"point": "1.5,2.5,4326"}, {"srid": "3857"}, api_config)

        assert statement.as_string() == (
            "SELECT ST_X(p.geom) AS x, ST_Y(p.geom) AS y "
            "FROM (SELECT ST_Transform(ST_SetSRID(ST_MakePoint(%s, %s), %s), %s) AS geom) AS p"
        )
        assert statement.params == (1.5, 2.5, 4326, 3857)

    def test_default_target_srid(self, api_config: PostGISAPIConfig) -> None:
        statement = build_transform_point({"point": "1,2,3857"}, {}, api_config)

        assert statement.params == (1.0, 2.0, 3857, 4326)


class TestEncodedOutputs:
    """Tests for geobuf, geojson and mvt builders."""

    def test_geobuf_without_bounds(self, api_config: PostGISAPIConfig) -> None:
        statement = build_geobuf({"table": "parcels"}, {}, api_config)

        assert statement.as_string() == (
            'WITH srid_cte AS (SELECT ST_SRID("the_geom") AS srid FROM "parcels" '
            'WHERE "the_geom" IS NOT NULL LIMIT 1) '
            "SELECT ST_AsGeobuf(q, 'geom') AS geobuf FROM ("
            'SELECT ST_Transform("parcels"."the_geom", 4326) AS geom '
            'FROM "parcels", srid_cte) AS q'
        )
        assert statement.params == ()

    def test_geobuf_envelope_bounds(self, api_config: PostGISAPIConfig) -> None:
        statement = build_geobuf({"table": "parcels"}, {"bounds": "1,2,3,4", "columns": "name"}, api_config)

        text = statement.as_string()
        assert 'AS geom, name FROM "parcels", srid_cte' in text
        assert (
            'WHERE "parcels"."the_geom" && '
            "ST_Transform(ST_MakeEnvelope(%s, %s, %s, %s, 4326), srid_cte.srid)"
        ) in text
        assert statement.params == (1.0, 2.0, 3.0, 4.0)

    def test_geobuf_tile_bounds(self, api_config: PostGISAPIConfig) -> None:
        statement = build_geobuf({"table": "parcels"}, {"bounds": "3,4,2"}, api_config)

        assert "ST_Transform(ST_TileEnvelope(%s, %s, %s), srid_cte.srid)" in statement.as_string()
        assert statement.params == (3, 4, 2)

    def test_geobuf_two_value_bounds_is_ignored(self, api_config: PostGISAPIConfig) -> None:
        statement = build_geobuf({"table": "parcels"}, {"bounds": "1,2"}, api_config)

        assert statement.as_string() == build_geobuf({"table": "parcels"}, {}, api_config).as_string()
        assert statement.params == ()

    def test_geojson_with_id_column(self, api_config: PostGISAPIConfig) -> None:
        query = {"id_column": "gid", "columns": "name", "precision": "6"}

        statement = build_geojson({"table": "parcels"}, query, api_config)

        text = statement.as_string()
        assert "'id', subq.\"gid\", " in text
        assert "'geometry', ST_AsGeoJSON(subq.geom, %s)::jsonb" in text
        assert "'properties', to_jsonb(subq.*) - 'geom' - 'gid'" in text
        assert 'AS geom, name, "parcels"."gid" FROM "parcels"' in text
        assert statement.params == (6,)

    def test_geojson_precision_precedes_bounds(self, api_config: PostGISAPIConfig) -> None:
        statement = build_geojson({"table": "parcels"}, {"bounds": "1,2,3,4"}, api_config)

        assert "a.srid)" in statement.as_string()
        assert statement.params == (api_config.default_precision, 1.0, 2.0, 3.0, 4.0)

    def test_mvt(self, api_config: PostGISAPIConfig) -> None:
        params = {"table": "parcels", "z": "3", "x": "4", "y": "2"}

        statement = build_mvt(params, {"id_column": "gid"}, api_config)

        text = statement.as_string()
        assert 'ST_AsMVTGeom(ST_Transform("parcels"."the_geom", 3857), ST_TileEnvelope(%s, %s, %s))' in text
        assert (
            'WHERE ST_Intersects("parcels"."the_geom", ST_Transform(ST_TileEnvelope(%s, %s, %s), a.srid))'
        ) in text
        assert text.endswith("SELECT ST_AsMVT(mvtgeom.*, 'parcels', 4096, 'geom', 'gid') AS mvt FROM mvtgeom")
        assert statement.params == (3, 4, 2, 3, 4, 2)

    def test_mvt_rejects_tile_outside_grid(self, api_config: PostGISAPIConfig) -> None:
        with pytest.raises(MalformedInput):
            build_mvt({"table": "parcels", "z": "1", "x": "5", "y": "0"}, {}, api_config)


class TestCatalog:
    """Tests for list_columns, list_tables and the geometry_columns lookup."""

    def test_list_columns(self, api_config: PostGISAPIConfig) -> None:
        statement = build_list_columns({"table": "parcels"}, {}, api_config)

        assert statement.as_string().endswith("AND relname = %s ORDER BY attnum")
        assert "AND NOT attisdropped" in statement.as_string()
        assert statement.params == ("parcels",)

    def test_list_columns_schema_qualified(self, api_config: PostGISAPIConfig) -> None:
        statement = build_list_columns({"table": "geo.parcels"}, {}, api_config)

        assert statement.as_string().endswith("AND relname = %s AND nspname = %s ORDER BY attnum")
        assert statement.params == ("parcels", "geo")

    def test_list_tables(self, api_config: PostGISAPIConfig) -> None:
        statement = build_list_tables({}, {}, api_config)

        assert statement.as_string().endswith(
            "WHERE i.table_schema NOT IN ('pg_catalog', 'information_schema') ORDER BY i.table_name"
        )
        assert statement.params == ()

    def test_list_tables_filter(self, api_config: PostGISAPIConfig) -> None:
        statement = build_list_tables({}, {"filter": "g.srid = 4326"}, api_config)

        assert statement.as_string().endswith(
            "'information_schema') AND (g.srid = 4326) ORDER BY i.table_name"
        )

    def test_geometry_columns_lookup(self) -> None:
        statement = build_geometry_columns_lookup("geo.parcels")

        assert statement.as_string() == (
            "SELECT f_geometry_column AS column_name, srid, type "
            "FROM geometry_columns "
            "WHERE f_table_name = %s AND f_table_schema = %s "
            "ORDER BY f_geometry_column"
        )
        assert statement.params == ("parcels", "geo")
