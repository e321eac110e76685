"""Pipeline configuration models.

Every setting a pipeline run needs (date range, region, thresholds,
resolution, requested bands, reducer) lives in one immutable
``PipelineConfig`` that is passed explicitly to each call. There is no
module-level default state.

Use the ``pipeline_config()`` and ``date_range()`` factories to get
``ConfigurationError`` instead of pydantic's ``ValidationError`` for bad
input, so invalid configuration fails before any processing starts.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from optisar._types import TimeRange
from optisar.analysis.optical import OPTICAL_INDICES, OpticalBandMap
from optisar.analysis.radar import RADAR_BANDS
from optisar.exceptions import ConfigurationError
from optisar.reduction import Reducer
from optisar.region import Region, _summarize_validation
from optisar.region import region as make_region

logger = logging.getLogger(__name__)

DEFAULT_OPTICAL_SENSOR = "COPERNICUS/S2_SR_HARMONIZED"
DEFAULT_RADAR_SENSOR = "COPERNICUS/S1_GRD_FLOAT"
DEFAULT_CLOUD_PROPERTY = "CLOUDY_PIXEL_PERCENTAGE"


class DateRange(BaseModel):
    """Acquisition window; ``start`` inclusive, ``end`` exclusive.

    Args:
        start: First day of the window (ISO date or ``date``).
        end: Day after the last day of the window; must be after ``start``.

    Example:
        >>> dr = DateRange(start="2019-01-01", end="2023-06-28")
        >>> dr.as_tuple()
        ('2019-01-01', '2023-06-28')
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    start: date
    end: date

    @model_validator(mode="after")
    def _check_order(self) -> DateRange:
        """Ensure the window is not empty or reversed."""
        if self.start >= self.end:
            msg = f"start ({self.start}) must be before end ({self.end})"
            raise ValueError(msg)
        return self

    def as_tuple(self) -> TimeRange:
        """Return the window as an ISO date pair."""
        return (self.start.isoformat(), self.end.isoformat())

    def contains(self, timestamp: datetime) -> bool:
        """Whether *timestamp* falls inside the window (UTC calendar date)."""
        if timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(timezone.utc)
        return self.start <= timestamp.date() < self.end

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


class PipelineConfig(BaseModel):
    """Complete, validated settings for an optical + radar time-series run.

    Args:
        date_range: Acquisition window for both sensors.
        region: Footprint for reduction (and the archive query bounds).
        max_cloud_percent: Maximum scene cloud cover (0--100) for optical
            images; also passed to the cloud-mask collaborator.
        scale: Reduction grid resolution in native distance units (> 0).
        optical_bands: Bands kept on optical images after index computation.
        radar_bands: Bands kept on radar images after index computation.
        reducer: Spatial statistic applied per band and image.
        optical_sensor: Archive identifier of the optical collection.
        radar_sensor: Archive identifier of the radar collection.
        cloud_property: Optical metadata key holding scene cloud cover.
        band_map: Optical band names and reflectance scale.
        orbit_pass: Keep only radar images from this orbit direction.
        max_relative_orbit: Keep only radar images whose relative orbit
            number is below this value.

    Example:
        >>> cfg = PipelineConfig(
        ...     date_range={"start": "2019-01-01", "end": "2023-06-28"},
        ...     region=Region.from_point(14.8249, 49.7958, buffer=50),
        ... )
        >>> cfg.optical_bands
        ['NDVI', 'EVI', 'NBR', 'NDMI']
    """

    model_config = ConfigDict(frozen=True, validate_default=True, extra="forbid")

    date_range: DateRange
    region: Region
    max_cloud_percent: float = 50.0
    scale: float = 20.0
    optical_bands: list[str] = Field(
        default_factory=lambda: ["NDVI", "EVI", "NBR", "NDMI"]
    )
    radar_bands: list[str] = Field(default_factory=lambda: ["VV", "VH", "RVI", "RFDI"])
    reducer: Reducer = Reducer.MEAN
    optical_sensor: str = DEFAULT_OPTICAL_SENSOR
    radar_sensor: str = DEFAULT_RADAR_SENSOR
    cloud_property: str = DEFAULT_CLOUD_PROPERTY
    band_map: OpticalBandMap = Field(default_factory=OpticalBandMap)
    orbit_pass: Literal["ASCENDING", "DESCENDING"] | None = None
    max_relative_orbit: int | None = None

    @field_validator("max_cloud_percent")
    @classmethod
    def _validate_cloud_percent(cls, v: float) -> float:
        """Ensure the cloud threshold is a percentage."""
        if not 0.0 <= v <= 100.0:
            msg = "max_cloud_percent must be between 0 and 100"
            raise ValueError(msg)
        return v

    @field_validator("scale")
    @classmethod
    def _validate_scale(cls, v: float) -> float:
        """Ensure the reduction resolution is finite and positive."""
        if not (math.isfinite(v) and v > 0):
            msg = "scale must be a finite number greater than 0"
            raise ValueError(msg)
        return v

    @field_validator("max_relative_orbit")
    @classmethod
    def _validate_relative_orbit(cls, v: int | None) -> int | None:
        """Ensure the relative orbit limit is positive when given."""
        if v is not None and v <= 0:
            msg = "max_relative_orbit must be greater than 0"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def _validate_bands(self) -> PipelineConfig:
        """Ensure requested bands are producible by each index computer."""
        _check_band_request(
            "optical_bands", self.optical_bands, producible_optical_bands(self.band_map)
        )
        _check_band_request("radar_bands", self.radar_bands, RADAR_BANDS)
        return self


def producible_optical_bands(band_map: OpticalBandMap | None = None) -> tuple[str, ...]:
    """Bands an optical image carries after ``add_optical_indices``."""
    band_map = band_map or OpticalBandMap()
    return band_map.required_bands + OPTICAL_INDICES


def _check_band_request(
    field_name: str,
    requested: list[str],
    producible: tuple[str, ...],
) -> None:
    if not requested:
        msg = f"{field_name} must name at least one band"
        raise ValueError(msg)
    duplicates = sorted({name for name in requested if requested.count(name) > 1})
    if duplicates:
        msg = f"{field_name} lists duplicate band(s): {', '.join(duplicates)}"
        raise ValueError(msg)
    unknown = [name for name in requested if name not in producible]
    if unknown:
        msg = (
            f"{field_name} has unknown band(s): {', '.join(unknown)}; "
            f"valid bands are: {', '.join(producible)}"
        )
        raise ValueError(msg)


def date_range(start: str | date, end: str | date) -> DateRange:
    """Create a validated acquisition window.

    Raises:
        ConfigurationError: If a date is not ISO formatted or
            ``start >= end``.

    Example:
        >>> str(date_range("2019-01-01", "2023-06-28"))
        '2019-01-01..2023-06-28'
    """
    try:
        return DateRange(start=start, end=end)
    except ValidationError as exc:
        raise ConfigurationError(
            what=f"Invalid date range: {start!r} to {end!r}",
            cause=_summarize_validation(exc),
            fix="Use ISO dates (YYYY-MM-DD) with start before end",
        ) from exc


def pipeline_config(**kwargs: Any) -> PipelineConfig:
    """Create a validated ``PipelineConfig``.

    Args:
        **kwargs: Any ``PipelineConfig`` field. ``date_range`` may be a
            ``(start, end)`` tuple and ``region`` an ``(x, y)`` pair.

    Returns:
        Frozen ``PipelineConfig``.

    Raises:
        ConfigurationError: If any setting is invalid (date order, region,
            cloud threshold, scale, band names or reducer name).

    Example:
        >>> cfg = pipeline_config(
        ...     date_range=("2019-01-01", "2023-06-28"),
        ...     region=(14.8249, 49.7958),
        ...     max_cloud_percent=50,
        ... )
        >>> cfg.reducer.value
        'mean'
    """
    dr = kwargs.get("date_range")
    if isinstance(dr, (tuple, list)):
        if len(dr) != 2:
            raise ConfigurationError(
                what=f"Invalid date range: {dr!r}",
                cause="A date range needs exactly two dates (start, end)",
                fix="Pass date_range=(start, end) with ISO dates",
            )
        kwargs["date_range"] = date_range(dr[0], dr[1])

    reg = kwargs.get("region")
    if isinstance(reg, (tuple, list)):
        kwargs["region"] = make_region(reg)

    try:
        cfg = PipelineConfig(**kwargs)
    except ValidationError as exc:
        raise ConfigurationError(
            what="Invalid pipeline configuration",
            cause=_summarize_validation(exc),
            fix="Correct the listed settings and build the configuration again",
        ) from exc

    logger.debug(
        "Pipeline configured: %s, region=%s, scale=%s, reducer=%s",
        cfg.date_range,
        cfg.region,
        cfg.scale,
        cfg.reducer.value,
    )
    return cfg
