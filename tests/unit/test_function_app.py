"""Unit tests for Function App route registration."""

import function_app


class TestFunctionApp:
    """Registration checks; no request is executed."""

    def test_all_functions_registered(self) -> None:
        names = {f.get_function_name() for f in function_app.app.get_functions()}

        assert {
            "postgis_bbox", "postgis_centroid", "postgis_intersect_feature", "postgis_intersect_point",
            "postgis_nearest", "postgis_query", "postgis_transform_point", "postgis_geobuf",
            "postgis_geojson", "postgis_mvt", "postgis_list_columns", "postgis_list_tables",
            "health_check", "health_detailed",
        } == names

    def test_trigger_routes_use_prefix(self) -> None:
        assert function_app.triggers["nearest"]["route"].endswith("nearest/{table}/{point}")
        assert len(function_app.triggers) == 12
