"""Internal shared types for cross-boundary data contracts.

These types define the data shapes passed between the archive, masking,
index, pipeline and reduction components. ``Image`` and
``ImageCollection`` are re-exported from ``optisar.__init__``; the
aliases stay internal.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, overload

import numpy as np
import numpy.typing as npt
from rasterio.transform import Affine, from_origin

TimeRange = tuple[str, str]
"""ISO-8601 date pair ``(start, end)`` bounding a query window."""

Mask = npt.NDArray[np.bool_]
"""Per-pixel validity raster aligned to an image grid; ``True`` = keep."""

BandArray = npt.NDArray[np.float64]
"""Single-band raster with ``NaN`` as the no-data sentinel."""


def _default_transform() -> Affine:
    return from_origin(0.0, 0.0, 1.0, 1.0)


def _as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps so acquisition times stay comparable."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _freeze_band(name: str, values: Any) -> BandArray:
    """Return a read-only ``float64`` copy of *values* (no copy if already frozen)."""
    reuse = (
        isinstance(values, np.ndarray)
        and values.dtype == np.float64
        and not values.flags.writeable
    )
    array: BandArray = values if reuse else np.array(values, dtype=np.float64)
    if array.ndim != 2:
        msg = f"band {name!r} must be a 2-D array, got {array.ndim} dimension(s)"
        raise ValueError(msg)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class Image:
    """A named set of raster bands over a fixed north-up grid.

    Immutable: band arrays are stored read-only and every transformation
    returns a new ``Image``. ``NaN`` is the no-data sentinel in every band.

    Args:
        bands: Mapping of unique band name to 2-D array. All bands must
            share one shape. Values are converted to ``float64``.
        timestamp: Acquisition time. Naive values are taken as UTC.
        transform: Affine grid transform in the archive's native distance
            units (north-up, no rotation).
        metadata: Scalar properties such as cloud-cover percentage or
            orbit direction.

    Example:
        >>> import numpy as np
        >>> from datetime import datetime
        >>> img = Image(
        ...     bands={"B4": np.full((2, 2), 2000.0), "B8": np.full((2, 2), 8000.0)},
        ...     timestamp=datetime(2021, 6, 1),
        ...     metadata={"CLOUDY_PIXEL_PERCENTAGE": 12.5},
        ... )
        >>> img.band_names
        ('B4', 'B8')
    """

    bands: Mapping[str, BandArray]
    timestamp: datetime
    transform: Affine = field(default_factory=_default_transform)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        frozen: dict[str, BandArray] = {}
        shape: tuple[int, ...] | None = None
        for name, values in self.bands.items():
            array = _freeze_band(name, values)
            if shape is None:
                shape = array.shape
            elif array.shape != shape:
                msg = (
                    f"band {name!r} has shape {array.shape}, "
                    f"expected {shape} like the other bands"
                )
                raise ValueError(msg)
            frozen[name] = array

        t = self.transform
        if t.b != 0 or t.d != 0 or t.a <= 0 or t.e >= 0:
            msg = f"image grid must be north-up without rotation, got {tuple(t)[:6]}"
            raise ValueError(msg)

        object.__setattr__(self, "bands", MappingProxyType(frozen))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))
        object.__setattr__(self, "timestamp", _as_utc(self.timestamp))

    # ── Read-only views ──────────────────────────────────────────

    @property
    def band_names(self) -> tuple[str, ...]:
        """Band names in storage order."""
        return tuple(self.bands)

    @property
    def shape(self) -> tuple[int, int]:
        """Grid shape ``(rows, cols)``; ``(0, 0)`` for a band-less image."""
        for array in self.bands.values():
            return (int(array.shape[0]), int(array.shape[1]))
        return (0, 0)

    @property
    def pixel_size(self) -> float:
        """Native pixel width in grid units."""
        return float(self.transform.a)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Grid extent as ``(minx, miny, maxx, maxy)`` in native units."""
        rows, cols = self.shape
        t = self.transform
        return (t.c, t.f + rows * t.e, t.c + cols * t.a, t.f)

    @property
    def date(self) -> str:
        """Acquisition date as an ISO ``YYYY-MM-DD`` string."""
        return self.timestamp.date().isoformat()

    def __getitem__(self, name: str) -> BandArray:
        return self.bands[name]

    def __contains__(self, name: object) -> bool:
        return name in self.bands

    # ── Transformations (all return new images) ──────────────────

    def add_bands(
        self,
        new_bands: Mapping[str, Any],
        *,
        overwrite: bool = False,
    ) -> Image:
        """Return a copy with *new_bands* appended after the existing ones.

        Raises:
            ValueError: If a name already exists and *overwrite* is false.
        """
        clashes = [name for name in new_bands if name in self.bands]
        if clashes and not overwrite:
            msg = f"bands already present: {', '.join(clashes)}"
            raise ValueError(msg)
        merged: dict[str, Any] = {
            name: array for name, array in self.bands.items() if name not in new_bands
        }
        merged.update(new_bands)
        return self._evolve(merged)

    def replace_bands(self, new_values: Mapping[str, Any]) -> Image:
        """Return a copy with the values of existing bands replaced in place.

        Band order is preserved.

        Raises:
            KeyError: If a name in *new_values* is not a band of this image.
        """
        missing = [name for name in new_values if name not in self.bands]
        if missing:
            raise KeyError(", ".join(missing))
        merged = {
            name: new_values.get(name, array) for name, array in self.bands.items()
        }
        return self._evolve(merged)

    def select(self, names: Sequence[str]) -> Image:
        """Return a copy holding exactly *names*, in that order.

        Raises:
            KeyError: If a requested band is missing.
        """
        missing = [name for name in names if name not in self.bands]
        if missing:
            raise KeyError(", ".join(missing))
        return self._evolve({name: self.bands[name] for name in names})

    def _evolve(self, bands: Mapping[str, Any]) -> Image:
        return Image(
            bands=bands,
            timestamp=self.timestamp,
            transform=self.transform,
            metadata=self.metadata,
        )

    def __repr__(self) -> str:
        rows, cols = self.shape
        return (
            f"Image({self.timestamp.isoformat()}, "
            f"bands=[{', '.join(self.band_names)}], shape={rows}x{cols})"
        )


class ImageCollection(Sequence[Image]):
    """Ordered, immutable sequence of images sorted by acquisition time.

    Sorting is stable, so images sharing a timestamp keep their input
    order. Spacing between acquisitions is not assumed to be regular.

    Args:
        images: Images in any order.

    Example:
        >>> ImageCollection([]).timestamps
        []
    """

    __slots__ = ("_images",)

    def __init__(self, images: Iterable[Image] = ()) -> None:
        self._images: tuple[Image, ...] = tuple(
            sorted(images, key=lambda image: image.timestamp)
        )

    @overload
    def __getitem__(self, index: int) -> Image: ...

    @overload
    def __getitem__(self, index: slice) -> ImageCollection: ...

    def __getitem__(self, index: int | slice) -> Image | ImageCollection:
        if isinstance(index, slice):
            return ImageCollection(self._images[index])
        return self._images[index]

    def __len__(self) -> int:
        return len(self._images)

    def __iter__(self) -> Iterator[Image]:
        return iter(self._images)

    @property
    def timestamps(self) -> list[datetime]:
        """Acquisition timestamps in collection order."""
        return [image.timestamp for image in self._images]

    def map(self, func: Callable[[Image], Image]) -> ImageCollection:
        """Apply *func* to every image, keeping acquisition order."""
        return ImageCollection(func(image) for image in self._images)

    def filter(self, predicate: Callable[[Image], bool]) -> ImageCollection:
        """Keep only images for which *predicate* is true."""
        return ImageCollection(image for image in self._images if predicate(image))

    def __repr__(self) -> str:
        if not self._images:
            return "ImageCollection(size=0)"
        first = self._images[0].date
        last = self._images[-1].date
        return f"ImageCollection(size={len(self)}, {first} → {last})"
