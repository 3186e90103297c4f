"""Point catalog for the emulated ventilation unit."""

from unit_emulator.catalog.points import (
    Access,
    CatalogError,
    DEFAULT_POINTS,
    DEFAULT_POINT_VALUES,
    Point,
    PointCatalog,
    PointSource,
    ValueKind,
    point,
)

__all__ = [
    "Access",
    "CatalogError",
    "DEFAULT_POINTS",
    "DEFAULT_POINT_VALUES",
    "Point",
    "PointCatalog",
    "PointSource",
    "ValueKind",
    "point",
]
