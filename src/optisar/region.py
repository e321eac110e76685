"""Region model for spatial reduction footprints.

A region is a point or polygon geometry in the archive's native
coordinates plus an optional buffer distance. Use the ``region()``
factory for validated construction with ``ConfigurationError`` on bad
input.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from rasterio.features import geometry_mask
from rasterio.transform import Affine
from shapely.errors import ShapelyError
from shapely.geometry import Point, mapping, shape
from shapely.geometry.base import BaseGeometry

from optisar._types import Mask
from optisar.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_SUPPORTED_GEOMETRIES: frozenset[str] = frozenset({"Point", "Polygon", "MultiPolygon"})


class Region(BaseModel):
    """Spatial footprint over which reduction occurs.

    Args:
        geometry: GeoJSON-like mapping of a Point, Polygon or
            MultiPolygon in the archive's native coordinates.
        buffer: Non-negative buffer distance in the same units.

    Example:
        >>> r = Region.from_point(14.8249, 49.7958, buffer=50)
        >>> r.geometry["type"]
        'Point'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    geometry: dict[str, Any]
    buffer: float = 0.0

    @field_validator("geometry", mode="before")
    @classmethod
    def _coerce_geometry(cls, v: Any) -> Any:
        """Accept shapely geometries as well as GeoJSON mappings."""
        if isinstance(v, BaseGeometry):
            return dict(mapping(v))
        return v

    @field_validator("geometry")
    @classmethod
    def _validate_geometry(cls, v: dict[str, Any]) -> dict[str, Any]:
        """Ensure the geometry is a supported, valid, non-empty shape."""
        geom_type = v.get("type")
        if geom_type not in _SUPPORTED_GEOMETRIES:
            msg = (
                f"geometry type must be one of {sorted(_SUPPORTED_GEOMETRIES)}, "
                f"got {geom_type!r}"
            )
            raise ValueError(msg)
        try:
            geom = shape(v)
        except (KeyError, TypeError, ValueError, IndexError, ShapelyError) as exc:
            msg = f"geometry could not be parsed: {exc}"
            raise ValueError(msg) from exc
        if geom.is_empty:
            msg = "geometry must not be empty"
            raise ValueError(msg)
        if not geom.is_valid:
            msg = "geometry is not valid (self-intersecting or degenerate)"
            raise ValueError(msg)
        return v

    @field_validator("buffer")
    @classmethod
    def _validate_buffer(cls, v: float) -> float:
        """Ensure the buffer distance is finite and non-negative."""
        if not np.isfinite(v) or v < 0:
            msg = "buffer must be a finite, non-negative distance"
            raise ValueError(msg)
        return v

    @classmethod
    def from_point(cls, x: float, y: float, buffer: float = 0.0) -> Region:
        """Build a point region, optionally buffered."""
        return cls(geometry=dict(mapping(Point(x, y))), buffer=buffer)

    @property
    def footprint(self) -> BaseGeometry:
        """Buffered shapely geometry used for rasterization."""
        geom = shape(self.geometry)
        if self.buffer > 0:
            return geom.buffer(self.buffer)
        return geom

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Footprint bounding box as ``(minx, miny, maxx, maxy)``."""
        minx, miny, maxx, maxy = self.footprint.bounds
        return (float(minx), float(miny), float(maxx), float(maxy))

    def __str__(self) -> str:
        minx, miny, maxx, maxy = self.bounds
        kind = self.geometry["type"]
        return f"{kind}[{minx:.4f}, {miny:.4f}, {maxx:.4f}, {maxy:.4f}]"


def region(
    geometry: Mapping[str, Any] | BaseGeometry | Sequence[float],
    buffer: float = 0.0,
) -> Region:
    """Create a validated region.

    Args:
        geometry: GeoJSON-like mapping, shapely geometry, or an ``(x, y)``
            coordinate pair for a point.
        buffer: Non-negative buffer distance in native units.

    Returns:
        A frozen ``Region``.

    Raises:
        ConfigurationError: If the geometry is empty, invalid or of an
            unsupported type, or the buffer is negative.

    Example:
        >>> selected = region((14.8249, 49.7958), buffer=50)
        >>> selected.buffer
        50.0
    """
    if isinstance(geometry, Sequence) and not isinstance(geometry, str):
        if len(geometry) != 2:
            raise ConfigurationError(
                what=f"Invalid point coordinates: {tuple(geometry)!r}",
                cause="A coordinate pair needs exactly two values (x, y)",
                fix="Pass (x, y) or a GeoJSON Point/Polygon mapping",
            )
        geometry = Point(float(geometry[0]), float(geometry[1]))

    try:
        return Region(geometry=geometry, buffer=buffer)
    except ValidationError as exc:
        raise ConfigurationError(
            what="Invalid region",
            cause=_summarize_validation(exc),
            fix="Provide a valid Point/Polygon geometry and a buffer >= 0",
        ) from exc


def footprint_mask(
    footprint: BaseGeometry,
    transform: Affine,
    out_shape: tuple[int, int],
) -> Mask:
    """Rasterize *footprint* onto a grid; ``True`` marks covered cells.

    Cells whose centre falls inside the footprint are selected. When the
    footprint is smaller than one cell (a sliver polygon) no centre may
    fall inside; every touched cell is selected instead so the region
    never reduces over an empty footprint by accident. Point footprints
    are sampled directly by the reduction and never rasterized.
    """
    shapes = [mapping(footprint)]
    covered: Mask = geometry_mask(
        shapes, out_shape=out_shape, transform=transform, invert=True
    )
    if not covered.any():
        logger.debug("Footprint smaller than one cell, using all touched cells")
        covered = geometry_mask(
            shapes,
            out_shape=out_shape,
            transform=transform,
            invert=True,
            all_touched=True,
        )
    return covered


def _summarize_validation(exc: ValidationError) -> str:
    """Flatten a pydantic ``ValidationError`` into one readable line."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "value"
        parts.append(f"{loc}: {err.get('msg', '')}")
    return "; ".join(parts)
