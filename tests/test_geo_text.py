import pytest
from geoalchemy2.shape import to_shape

from app.services.geo import circle_bbox, haversine_km, point_geography, point_in_polygon, polygon_bbox, polygon_ewkt
from app.services.text_search import build_search_vector, like_pattern, query_terms, score

SQUARE = [(0.0, 0.0), (0.0, 1.0), (1.0, 1.0), (1.0, 0.0)]


def test_haversine_one_degree_of_latitude():
    assert haversine_km(14.0, 121.0, 15.0, 121.0) == pytest.approx(111.19, abs=0.01)
    assert haversine_km(14.5, 121.0, 14.5, 121.0) == 0.0


def test_circle_bbox_contains_the_circle():
    box = circle_bbox(14.55, 121.02, 5)
    for lat, lon in ((14.55 + 0.0449, 121.02), (14.55, 121.02 - 0.0464)):
        assert haversine_km(lat, lon, 14.55, 121.02) <= 5
        assert box.contains(lat, lon)
    # corners of the box are outside the circle
    assert haversine_km(box.max_lat, box.max_lon, 14.55, 121.02) > 5


def test_circle_bbox_near_pole_spans_all_longitudes():
    box = circle_bbox(90.0, 0.0, 10)
    assert (box.min_lon, box.max_lon) == (-180.0, 180.0)


def test_circle_bbox_wraps_across_the_antimeridian():
    box = circle_bbox(0.0, 179.95, 50)
    assert box.crosses_antimeridian
    (east_lo, east_hi), (west_lo, west_hi) = box.lon_ranges()
    assert east_hi == 180.0 and west_lo == -180.0
    assert east_lo < 179.95 and -180.0 < west_hi < -179.0
    assert box.contains(0.0, -179.95)
    assert box.contains(0.0, 179.9)
    assert not box.contains(0.0, 0.0)
    assert haversine_km(0.0, -179.95, 0.0, 179.95) == pytest.approx(11.12, abs=0.01)

    assert not circle_bbox(14.55, 121.02, 5).crosses_antimeridian


def test_point_in_polygon_edges_and_outside():
    assert point_in_polygon(0.5, 0.5, SQUARE)
    assert point_in_polygon(0.0, 0.5, SQUARE)
    assert point_in_polygon(1.0, 1.0, SQUARE)
    assert not point_in_polygon(1.5, 0.5, SQUARE)
    assert not point_in_polygon(0.5, 0.5, SQUARE[:2])

    box = polygon_bbox(SQUARE)
    assert (box.min_lat, box.max_lat, box.min_lon, box.max_lon) == (0.0, 1.0, 0.0, 1.0)


def test_point_geography_axis_order():
    element = point_geography(14.5, 121.0)
    point = to_shape(element)
    assert (point.x, point.y) == (121.0, 14.5)
    assert element.srid == 4326
    assert point_geography(None, 121.0) is None


def test_polygon_ewkt_uses_lon_lat():
    assert polygon_ewkt(SQUARE) == "SRID=4326;POLYGON ((0 0, 1 0, 1 1, 0 1, 0 0))"


def test_search_vector_and_terms():
    vec = build_search_vector("Sunny Loft", "loft with a VIEW!")
    assert vec == " sunny loft loft with a view "
    assert build_search_vector(None, None) == ""
    assert query_terms("Loft loft, view") == ["loft", "view"]


def test_score_prefers_distinct_terms_over_repeats():
    both = score(" garden view ", ["garden", "view"])
    repeated = score(" garden garden garden ", ["garden", "view"])
    assert (both.matched_terms, repeated.matched_terms) == (2, 1)
    assert both.relevance > repeated.relevance
    assert score("", ["garden"]).relevance == 0.0


def test_like_pattern_escapes_wildcards():
    assert like_pattern("50%_off") == "% 50\\%\\_off %"
