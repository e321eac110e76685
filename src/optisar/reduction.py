"""Spatial reduction of image collections into time series.

Each image is sampled onto a grid of the requested resolution that
covers the region footprint, the footprint is rasterized onto that
grid, and a reducer collapses each band's valid (non-``NaN``) pixels to
one number. One record is emitted per image, always: an image without
valid pixels yields ``NaN`` values, never a missing record.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from enum import Enum
from numbers import Real
from typing import Any

import numpy as np
import numpy.typing as npt
from rasterio.transform import Affine
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from optisar._types import Image, ImageCollection, Mask
from optisar.exceptions import ConfigurationError
from optisar.region import Region, footprint_mask
from optisar.results import SeriesMetadata, TimeSeries, TimeSeriesRecord

logger = logging.getLogger(__name__)


class Reducer(str, Enum):
    """Fixed set of spatial statistics.

    All are deterministic and independent of pixel order. ``std`` is the
    population standard deviation (``ddof=0``); ``count`` is the number
    of valid pixels.

    Example:
        >>> Reducer("MEAN") is Reducer.MEAN
        True
    """

    MEAN = "mean"
    MEDIAN = "median"
    MIN = "min"
    MAX = "max"
    STD = "std"
    COUNT = "count"

    @classmethod
    def _missing_(cls, value: object) -> Reducer | None:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return None

    def apply(self, values: npt.NDArray[np.float64]) -> float:
        """Reduce *values* to one number; ``NaN`` when *values* is empty.

        Callers pass valid pixels only (``NaN`` already removed).
        """
        if values.size == 0:
            return math.nan
        return float(_REDUCER_FUNCS[self](values))


_REDUCER_FUNCS: dict[Reducer, Callable[[npt.NDArray[np.float64]], Any]] = {
    Reducer.MEAN: np.mean,
    Reducer.MEDIAN: np.median,
    Reducer.MIN: np.min,
    Reducer.MAX: np.max,
    Reducer.STD: np.std,
    Reducer.COUNT: np.size,
}


def resolve_reducer(reducer: Reducer | str) -> Reducer:
    """Look up a reducer by enum member or (case-insensitive) name.

    Raises:
        ConfigurationError: If *reducer* names no supported statistic.
    """
    if isinstance(reducer, Reducer):
        return reducer
    try:
        return Reducer(reducer)
    except ValueError:
        valid = ", ".join(member.value for member in Reducer)
        raise ConfigurationError(
            what=f"Unknown reducer: {reducer!r}",
            cause=f"Supported reducers are: {valid}",
            fix=f"Use one of: {valid}",
        ) from None


# ── Grid helpers ───────────────────────────────────────────────────


def _reduction_grid(
    footprint: BaseGeometry,
    source: Affine,
    scale: float,
) -> tuple[Affine, tuple[int, int]]:
    """Build a grid of cell size *scale* covering *footprint*.

    The grid is anchored on the source grid origin so that, at native
    resolution, its cells coincide with source pixels.
    """
    minx, miny, maxx, maxy = footprint.bounds
    col0 = math.floor((minx - source.c) / scale)
    col1 = max(math.ceil((maxx - source.c) / scale), col0 + 1)
    row0 = math.floor((source.f - maxy) / scale)
    row1 = max(math.ceil((source.f - miny) / scale), row0 + 1)
    transform = Affine(
        scale, 0.0, source.c + col0 * scale, 0.0, -scale, source.f - row0 * scale
    )
    return transform, (row1 - row0, col1 - col0)


def _source_pixels(
    covered: Mask,
    source: Affine,
    target: Affine,
    source_shape: tuple[int, int],
) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.int64]]:
    """Map covered target cells to source pixel indices (nearest neighbour).

    Cell centres that fall outside the source image are dropped.
    """
    rows, cols = np.nonzero(covered)
    xs = target.c + (cols + 0.5) * target.a
    ys = target.f + (rows + 0.5) * target.e
    src_cols = np.floor((xs - source.c) / source.a).astype(np.int64)
    src_rows = np.floor((ys - source.f) / source.e).astype(np.int64)

    height, width = source_shape
    inside = (
        (src_rows >= 0) & (src_rows < height) & (src_cols >= 0) & (src_cols < width)
    )
    return src_rows[inside], src_cols[inside]


def _point_pixels(
    point: Point,
    source: Affine,
    source_shape: tuple[int, int],
    scale: float,
) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.int64]]:
    """Map a point footprint to the source pixel sampled for its grid cell.

    The image extent is closed: a point on the right or bottom edge falls
    in the last cell instead of the cell beyond the image.
    """
    height, width = source_shape
    left, top = source.c, source.f
    right = left + width * source.a
    bottom = top + height * source.e
    empty = np.empty(0, dtype=np.int64)
    if not (left <= point.x <= right and bottom <= point.y <= top):
        return empty, empty

    col = min(
        math.floor((point.x - left) / scale), math.ceil((right - left) / scale) - 1
    )
    row = min(
        math.floor((top - point.y) / scale), math.ceil((top - bottom) / scale) - 1
    )
    src_col = math.floor((col + 0.5) * scale / source.a)
    src_row = math.floor((row + 0.5) * scale / -source.e)
    if src_col >= width or src_row >= height:
        return empty, empty
    return np.array([src_row], dtype=np.int64), np.array([src_col], dtype=np.int64)


# ── Reduction ──────────────────────────────────────────────────────


def _validate_request(
    reducer: Reducer | str,
    scale: float,
    bands: Sequence[str],
) -> Reducer:
    resolved = resolve_reducer(reducer)
    if (
        isinstance(scale, bool)
        or not isinstance(scale, Real)
        or not math.isfinite(scale)
        or scale <= 0
    ):
        raise ConfigurationError(
            what=f"Invalid reduction scale: {scale!r}",
            cause="Scale must be a finite resolution greater than 0",
            fix="Pass the grid resolution in the archive's native distance unit",
        )
    if not bands:
        raise ConfigurationError(
            what="No bands requested for reduction",
            cause="The band list is empty",
            fix="Name at least one band to reduce",
        )
    if len(set(bands)) != len(bands):
        raise ConfigurationError(
            what=f"Duplicate bands requested: {list(bands)}",
            cause="Each band may appear only once in a time-series record",
            fix="Remove the duplicate band names",
        )
    return resolved


def reduce_region(
    image: Image,
    region: Region,
    reducer: Reducer | str,
    scale: float,
    bands: Sequence[str],
) -> dict[str, float]:
    """Reduce each band of *image* over *region* at resolution *scale*.

    Parameters:
        image: Image to reduce.
        region: Footprint to reduce over.
        reducer: Spatial statistic.
        scale: Grid resolution in native distance units.
        bands: Bands to reduce, in output order.

    Returns:
        Band name to statistic; ``NaN`` where a band has no valid pixel
        inside the region.

    Raises:
        ConfigurationError: If the reducer, scale or a band name is invalid.
    """
    resolved = _validate_request(reducer, scale, bands)
    return _reduce_image(image, region.footprint, resolved, float(scale), bands)


def _reduce_image(
    image: Image,
    footprint: BaseGeometry,
    reducer: Reducer,
    scale: float,
    bands: Sequence[str],
) -> dict[str, float]:
    missing = [band for band in bands if band not in image]
    if missing:
        raise ConfigurationError(
            what=f"Cannot reduce unknown band(s): {', '.join(missing)}",
            cause=f"Image {image.date} has bands: {', '.join(image.band_names)}",
            fix="Reduce only bands kept by the pipeline's band selection",
        )

    if isinstance(footprint, Point):
        src_rows, src_cols = _point_pixels(
            footprint, image.transform, image.shape, scale
        )
    else:
        target, out_shape = _reduction_grid(footprint, image.transform, scale)
        covered: Mask = footprint_mask(footprint, target, out_shape)
        src_rows, src_cols = _source_pixels(
            covered, image.transform, target, image.shape
        )

    values: dict[str, float] = {}
    for band in bands:
        pixels = image[band][src_rows, src_cols]
        values[band] = reducer.apply(pixels[~np.isnan(pixels)])
    return values


def reduce_to_series(
    collection: ImageCollection,
    region: Region,
    reducer: Reducer | str,
    scale: float,
    bands: Sequence[str],
    *,
    sensor: str = "",
) -> TimeSeries:
    """Reduce every image of *collection* to one record per image.

    Records follow acquisition order. An image with no valid pixel in
    *region* still yields a record, holding ``NaN`` for every band, so
    ``len(result) == len(collection)``.

    Parameters:
        collection: Processed image collection.
        region: Footprint to reduce over.
        reducer: Spatial statistic (enum member or name).
        scale: Grid resolution in native distance units; must be explicit.
        bands: Band group to reduce; keys of every record.
        sensor: Label stored in the series metadata.

    Returns:
        ``TimeSeries`` ready for charting or ``to_dataframe()``.

    Raises:
        ConfigurationError: If the reducer, scale or a band name is invalid.

    Example:
        >>> ts = reduce_to_series(
        ...     s2_processed, selected, "mean", 20, ["NDVI", "EVI"]
        ... )  # doctest: +SKIP
        >>> len(ts) == len(s2_processed)  # doctest: +SKIP
        True
    """
    resolved = _validate_request(reducer, scale, bands)
    footprint = region.footprint
    band_list = list(bands)

    records: list[TimeSeriesRecord] = []
    for image in collection:
        values = _reduce_image(image, footprint, resolved, float(scale), band_list)
        record = TimeSeriesRecord(timestamp=image.timestamp, values=values)
        if record.is_empty:
            logger.warning(
                "No valid pixels in region for %s image %s; recording no-data",
                sensor or "collection",
                image.date,
            )
        records.append(record)

    minx, miny, maxx, maxy = region.bounds
    metadata = SeriesMetadata(
        sensor=sensor,
        reducer=resolved.value,
        scale=float(scale),
        bands=band_list,
        region_bounds={"minx": minx, "miny": miny, "maxx": maxx, "maxy": maxy},
    )
    series = TimeSeries(records=records, metadata=metadata)
    logger.info(
        "Reduced %d image(s) to %d record(s) (%d with data) for bands %s",
        len(collection),
        len(series),
        series.valid_count,
        ", ".join(band_list),
    )
    return series
