"""Top-level orchestration of the optical and radar time-series runs.

Wires archive queries, the per-sensor pipelines and the reducer
together for one ``PipelineConfig``. The two sensor branches share no
state, so they may run concurrently.

Example:
    >>> import optisar as osr
    >>> cfg = osr.pipeline_config(
    ...     date_range=("2019-01-01", "2023-06-28"),
    ...     region=(14.8249, 49.7958),
    ... )  # doctest: +SKIP
    >>> pair = osr.time_series(cfg, archive, osr.SCLCloudMasker())  # doctest: +SKIP
    >>> pair.radar.select(["RVI", "RFDI"]).to_dataframe()  # doctest: +SKIP
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from optisar.archive import ImageArchive, query_archive
from optisar.config import PipelineConfig
from optisar.masking import CloudMasker
from optisar.pipeline import process_optical, process_radar
from optisar.reduction import reduce_to_series
from optisar.results import SensorSeries, TimeSeries

logger = logging.getLogger(__name__)


# ── Single-sensor runs ────────────────────────────────────────────────


def optical_series(
    config: PipelineConfig,
    archive: ImageArchive,
    masker: CloudMasker,
) -> TimeSeries:
    """Query, screen, index and reduce the optical collection.

    Args:
        config: Validated run configuration.
        archive: Imagery archive to query.
        masker: Cloud-mask collaborator.

    Returns:
        One record per cloud-filtered optical image, keyed by
        ``config.optical_bands``.

    Raises:
        CollaboratorError: If the archive or masker fails.
    """
    sensor = config.optical_sensor
    raw = query_archive(archive, sensor, config.region, config.date_range)
    processed = process_optical(
        raw,
        config.date_range,
        config.region,
        config.max_cloud_percent,
        config.optical_bands,
        masker,
        band_map=config.band_map,
        cloud_property=config.cloud_property,
        sensor=sensor,
    )
    return reduce_to_series(
        processed,
        config.region,
        config.reducer,
        config.scale,
        config.optical_bands,
        sensor=sensor,
    )


def radar_series(config: PipelineConfig, archive: ImageArchive) -> TimeSeries:
    """Query, index and reduce the radar collection.

    Args:
        config: Validated run configuration.
        archive: Imagery archive to query.

    Returns:
        One record per (orbit-filtered) radar image, keyed by
        ``config.radar_bands``.

    Raises:
        CollaboratorError: If the archive fails or returns images
            without ``VV``, ``VH`` or ``angle``.
    """
    sensor = config.radar_sensor
    raw = query_archive(archive, sensor, config.region, config.date_range)
    processed = process_radar(
        raw,
        config.radar_bands,
        orbit_pass=config.orbit_pass,
        max_relative_orbit=config.max_relative_orbit,
        sensor=sensor,
    )
    return reduce_to_series(
        processed,
        config.region,
        config.reducer,
        config.scale,
        config.radar_bands,
        sensor=sensor,
    )


# ── Combined run ──────────────────────────────────────────────────────


def time_series(
    config: PipelineConfig,
    archive: ImageArchive,
    masker: CloudMasker,
    *,
    parallel: bool = False,
) -> SensorSeries:
    """Build comparable optical and radar time series for one region.

    Args:
        config: Validated run configuration (see ``pipeline_config``).
        archive: Imagery archive serving both sensors.
        masker: Cloud-mask collaborator for the optical branch.
        parallel: Run the two branches on a two-worker thread pool.

    Returns:
        ``SensorSeries`` holding both series.

    Raises:
        CollaboratorError: If either branch fails. The other branch's
            result is discarded.

    Example:
        >>> pair = time_series(cfg, archive, masker, parallel=True)  # doctest: +SKIP
        >>> pair.to_dataframe().columns[:2].tolist()  # doctest: +SKIP
        ['optical_NDVI', 'optical_EVI']
    """
    logger.info(
        "Building time series for %s over %s (%s, scale=%s)",
        config.region,
        config.date_range,
        config.reducer.value,
        config.scale,
    )
    if parallel:
        with ThreadPoolExecutor(max_workers=2) as executor:
            optical_future = executor.submit(optical_series, config, archive, masker)
            radar_future = executor.submit(radar_series, config, archive)
            optical = optical_future.result()
            radar = radar_future.result()
    else:
        optical = optical_series(config, archive, masker)
        radar = radar_series(config, archive)

    logger.info(
        "Optical: %d record(s) (%d with data); radar: %d record(s) (%d with data)",
        len(optical),
        optical.valid_count,
        len(radar),
        radar.valid_count,
    )
    return SensorSeries(optical=optical, radar=radar)
