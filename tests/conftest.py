"""Shared test fixtures for the optisar test suite."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

import numpy as np
import pytest
from rasterio.transform import Affine, from_origin
from shapely.geometry import box

from optisar._types import Image, Mask
from optisar.archive import InMemoryArchive
from optisar.config import DateRange
from optisar.masking import CloudMasker
from optisar.region import Region

GRID_SHAPE = (4, 4)
"""Synthetic images cover 0..40 x 0..40 native units with 10-unit pixels."""


def grid_transform() -> Affine:
    return from_origin(0.0, 40.0, 10.0, 10.0)


def make_image(
    bands: dict[str, Any],
    when: datetime,
    metadata: dict[str, Any] | None = None,
    transform: Affine | None = None,
) -> Image:
    """Build an image, broadcasting scalar band values over the grid."""
    arrays = {
        name: np.full(GRID_SHAPE, value, dtype=np.float64)
        if np.isscalar(value)
        else np.asarray(value, dtype=np.float64)
        for name, value in bands.items()
    }
    return Image(
        bands=arrays,
        timestamp=when,
        transform=transform or grid_transform(),
        metadata=metadata or {},
    )


def day(month: int, dom: int, year: int = 2021) -> datetime:
    return datetime(year, month, dom, 10, 0, tzinfo=timezone.utc)


# ── Stub cloud maskers ────────────────────────────────────────────────


class AllValidMasker(CloudMasker):
    """Marks every pixel usable and records each call."""

    def __init__(self) -> None:
        self.calls: list[tuple[Image, DateRange, Region, float]] = []

    def compute_mask(
        self,
        image: Image,
        date_range: DateRange,
        region: Region,
        max_cloud_percent: float,
    ) -> Mask:
        self.calls.append((image, date_range, region, max_cloud_percent))
        return np.ones(image.shape, dtype=bool)


class MaskDatesMasker(CloudMasker):
    """Fully masks images acquired on the given dates (ISO strings)."""

    def __init__(self, dates: Iterable[str]) -> None:
        self.dates = set(dates)

    def compute_mask(
        self,
        image: Image,
        date_range: DateRange,
        region: Region,
        max_cloud_percent: float,
    ) -> Mask:
        return np.full(image.shape, image.date not in self.dates, dtype=bool)


class FailingMasker(CloudMasker):
    """Simulates an unavailable masking service."""

    def compute_mask(
        self,
        image: Image,
        date_range: DateRange,
        region: Region,
        max_cloud_percent: float,
    ) -> Mask:
        raise RuntimeError("masking service returned HTTP 503")


class WrongShapeMasker(CloudMasker):
    """Returns a mask that is not aligned to the image grid."""

    def compute_mask(
        self,
        image: Image,
        date_range: DateRange,
        region: Region,
        max_cloud_percent: float,
    ) -> Mask:
        return np.ones((2, 2), dtype=bool)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def optical_image() -> Callable[..., Image]:
    """Factory for Sentinel-2-like images with constant raw reflectance.

    Defaults: B2=1000, B3=3000, B4=2000, B8=8000, B11=4000, B12=2000,
    SCL=4 (vegetation), 10 % scene cloud cover.
    """

    def _make(
        when: datetime | None = None,
        cloud: float | None = 10.0,
        **overrides: Any,
    ) -> Image:
        bands: dict[str, Any] = {
            "B2": 1000.0,
            "B3": 3000.0,
            "B4": 2000.0,
            "B8": 8000.0,
            "B11": 4000.0,
            "B12": 2000.0,
            "SCL": 4.0,
        }
        bands.update(overrides)
        metadata = {} if cloud is None else {"CLOUDY_PIXEL_PERCENTAGE": cloud}
        return make_image(bands, when or day(6, 1), metadata)

    return _make


@pytest.fixture
def radar_image() -> Callable[..., Image]:
    """Factory for Sentinel-1-like images with constant linear backscatter."""

    def _make(
        when: datetime | None = None,
        vv: Any = 0.5,
        vh: Any = 0.1,
        angle: Any = 38.0,
        orbit_pass: str = "ASCENDING",
        relative_orbit: int = 73,
    ) -> Image:
        return make_image(
            {"VV": vv, "VH": vh, "angle": angle},
            when or day(6, 3),
            {
                "orbitProperties_pass": orbit_pass,
                "relativeOrbitNumber_start": relative_orbit,
            },
        )

    return _make


@pytest.fixture
def window() -> DateRange:
    """Calendar year 2021."""
    return DateRange(start="2021-01-01", end="2022-01-01")


@pytest.fixture
def whole_grid() -> Region:
    """Polygon covering the complete synthetic grid."""
    return Region(geometry=box(0.0, 0.0, 40.0, 40.0))


@pytest.fixture
def archive(
    optical_image: Callable[..., Image],
    radar_image: Callable[..., Image],
) -> InMemoryArchive:
    """Archive with three optical and two radar acquisitions in 2021."""
    store = InMemoryArchive()
    store.add(
        "COPERNICUS/S2_SR_HARMONIZED",
        [
            optical_image(day(6, 1), cloud=10.0),
            optical_image(day(6, 11), cloud=80.0),
            optical_image(day(6, 21), cloud=30.0),
        ],
    )
    store.add(
        "COPERNICUS/S1_GRD_FLOAT",
        [radar_image(day(6, 3)), radar_image(day(6, 15), orbit_pass="DESCENDING")],
    )
    return store
