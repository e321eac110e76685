"""Per-sensor collection pipelines.

Optical: cloud-cover filter → cloud mask → optical indices → band
selection. Radar: optional orbit filters → radar indices → band
selection. Stage order is fixed: masking precedes index computation so
indices of masked-out pixels are no-data as well.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from functools import partial
from numbers import Real

from optisar._types import ImageCollection
from optisar.analysis.optical import OpticalBandMap, add_optical_indices
from optisar.analysis.radar import RADAR_BANDS, add_radar_indices
from optisar.archive import filter_by_metadata
from optisar.config import (
    DEFAULT_CLOUD_PROPERTY,
    DateRange,
    _check_band_request,
    producible_optical_bands,
)
from optisar.exceptions import CollaboratorError, ConfigurationError
from optisar.masking import CloudMasker, apply_cloud_mask
from optisar.region import Region

logger = logging.getLogger(__name__)

ORBIT_PASS_PROPERTY = "orbitProperties_pass"
RELATIVE_ORBIT_PROPERTY = "relativeOrbitNumber_start"


def _require_bands(
    label: str,
    keep_bands: Sequence[str],
    producible: tuple[str, ...],
) -> None:
    """Fail fast when *keep_bands* asks for something never produced."""
    try:
        _check_band_request(label, list(keep_bands), producible)
    except ValueError as exc:
        raise ConfigurationError(
            what=f"Invalid {label} selection: {list(keep_bands)}",
            cause=str(exc),
            fix=f"Choose from: {', '.join(producible)}",
        ) from None


def select_bands(
    collection: ImageCollection,
    keep_bands: Sequence[str],
) -> ImageCollection:
    """Restrict every image to exactly *keep_bands*, in that order.

    Raises:
        ConfigurationError: If *keep_bands* is empty or an image lacks a
            requested band.
    """
    if not keep_bands:
        raise ConfigurationError(
            what="No bands selected",
            cause="The band selection is empty",
            fix="Select at least one band",
        )
    for image in collection:
        missing = [band for band in keep_bands if band not in image]
        if missing:
            raise ConfigurationError(
                what=f"Requested band(s) never produced: {', '.join(missing)}",
                cause=f"Image {image.date} has bands: {', '.join(image.band_names)}",
                fix="Select only bands produced by the index computation",
            )
    bands = list(keep_bands)
    return collection.map(lambda image: image.select(bands))


def process_optical(
    raw: ImageCollection,
    date_range: DateRange,
    region: Region,
    max_cloud_percent: float,
    keep_bands: Sequence[str],
    masker: CloudMasker,
    *,
    band_map: OpticalBandMap | None = None,
    cloud_property: str = DEFAULT_CLOUD_PROPERTY,
    sensor: str = "",
) -> ImageCollection:
    """Screen and index an optical collection.

    1. Drop images whose *cloud_property* exceeds *max_cloud_percent*.
    2. Mask cloud, shadow and snow pixels via *masker*.
    3. Append NDVI, EVI, NDWI, NDMI and NBR.
    4. Keep exactly *keep_bands*.

    Parameters:
        raw: Optical images as returned by the archive.
        date_range: Acquisition window, forwarded to the masker.
        region: Area of interest, forwarded to the masker.
        max_cloud_percent: Scene cloud-cover threshold (0--100, inclusive).
        keep_bands: Bands to keep, e.g. ``["NDVI", "EVI"]``.
        masker: Cloud-mask collaborator.
        band_map: Sensor band names; Sentinel-2 by default.
        cloud_property: Metadata key holding scene cloud cover.
        sensor: Sensor identifier for logs and error context.

    Returns:
        Processed collection; never larger than *raw*.

    Raises:
        ConfigurationError: For an out-of-range threshold or a band that
            the optical index computer cannot produce.
        CollaboratorError: If an image lacks cloud-cover metadata or a
            reflectance band, or the masker fails.
    """
    band_map = band_map or OpticalBandMap()
    if (
        isinstance(max_cloud_percent, bool)
        or not isinstance(max_cloud_percent, Real)
        or not 0 <= max_cloud_percent <= 100
    ):
        raise ConfigurationError(
            what=f"Invalid cloud threshold: {max_cloud_percent!r}",
            cause="max_cloud_percent must be between 0 and 100",
            fix="Pass a percentage such as 50",
        )
    _require_bands("optical_bands", keep_bands, producible_optical_bands(band_map))

    label = sensor or "optical"
    unlabeled = [image.date for image in raw if cloud_property not in image.metadata]
    if unlabeled:
        raise CollaboratorError(
            what=f"Optical image(s) without {cloud_property}: {', '.join(unlabeled)}",
            cause="The archive returned images lacking cloud-cover metadata",
            fix="Query a product that reports scene cloud cover, or set cloud_property",
            sensor=sensor,
            date_range=date_range.as_tuple(),
            region=str(region),
        )

    filtered = filter_by_metadata(raw, cloud_property, "lte", max_cloud_percent)
    logger.info(
        "%s: %d of %d image(s) with %s <= %s",
        label,
        len(filtered),
        len(raw),
        cloud_property,
        max_cloud_percent,
    )

    masked = apply_cloud_mask(
        filtered, date_range, region, max_cloud_percent, masker, sensor=sensor
    )
    indexed = masked.map(partial(add_optical_indices, bands=band_map))
    return select_bands(indexed, keep_bands)


def process_radar(
    raw: ImageCollection,
    keep_bands: Sequence[str],
    *,
    orbit_pass: str | None = None,
    max_relative_orbit: int | None = None,
    sensor: str = "",
) -> ImageCollection:
    """Derive radar features and keep the requested bands.

    No cloud screening applies to radar. The optional orbit filters keep
    acquisition geometry consistent across the series.

    Parameters:
        raw: Linear-scale dual-polarization radar images.
        keep_bands: Bands to keep, e.g. ``["VV", "VH", "RVI", "RFDI"]``.
        orbit_pass: Keep only ``"ASCENDING"`` or ``"DESCENDING"`` passes.
        max_relative_orbit: Keep only relative orbits below this number.
        sensor: Sensor identifier for logs.

    Returns:
        Processed collection with exactly *keep_bands* per image.

    Raises:
        ConfigurationError: If a band is not producible by the radar
            index computer or an orbit filter value is invalid.
        CollaboratorError: If an image lacks ``VV``, ``VH`` or ``angle``.
    """
    _require_bands("radar_bands", keep_bands, RADAR_BANDS)
    if orbit_pass is not None and orbit_pass not in ("ASCENDING", "DESCENDING"):
        raise ConfigurationError(
            what=f"Invalid orbit pass: {orbit_pass!r}",
            cause="Orbit pass must be 'ASCENDING' or 'DESCENDING'",
            fix="Pass one of the two directions, or None for both",
        )
    if max_relative_orbit is not None and not (
        isinstance(max_relative_orbit, int) and max_relative_orbit > 0
    ):
        raise ConfigurationError(
            what=f"Invalid relative orbit limit: {max_relative_orbit!r}",
            cause="The limit must be a positive integer",
            fix="Pass a relative orbit number such as 146",
        )

    label = sensor or "radar"
    collection = raw
    if orbit_pass is not None:
        collection = filter_by_metadata(
            collection, ORBIT_PASS_PROPERTY, "eq", orbit_pass
        )
        logger.info("%s: %d image(s) on %s passes", label, len(collection), orbit_pass)
    if max_relative_orbit is not None:
        collection = filter_by_metadata(
            collection, RELATIVE_ORBIT_PROPERTY, "lt", max_relative_orbit
        )
        logger.info(
            "%s: %d image(s) below relative orbit %d",
            label,
            len(collection),
            max_relative_orbit,
        )

    indexed = collection.map(add_radar_indices)
    return select_bands(indexed, keep_bands)
