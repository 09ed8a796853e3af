from geoalchemy2 import Geography
from geoalchemy2.elements import WKBElement
from geoalchemy2.shape import from_shape, to_shape
from shapely import wkt
from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

from app.services.geo import SRID


class PointGeography(TypeDecorator):
    """
    PostGIS `geography(POINT, 4326)` on PostgreSQL.

    Backends without PostGIS (the SQLite test engine) keep the same point as
    EWKT text; values read back are WKBElements either way.
    """

    impl = String(120)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Geography(geometry_type="POINT", srid=SRID, spatial_index=False))
        return dialect.type_descriptor(String(120))

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name == "postgresql":
            return value
        return f"SRID={value.srid};{to_shape(value).wkt}"

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, WKBElement):
            return value
        srid, _, text = value.partition(";")
        return from_shape(wkt.loads(text), srid=int(srid.removeprefix("SRID=")))
