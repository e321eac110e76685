"""optisar: optical and radar time series from satellite image archives.

Example:
    >>> import optisar as osr
    >>>
    >>> cfg = osr.pipeline_config(
    ...     date_range=("2019-01-01", "2023-06-28"),
    ...     region=(14.8249, 49.7958),
    ...     max_cloud_percent=50,
    ... )
    >>> pair = osr.time_series(cfg, archive, osr.SCLCloudMasker())  # doctest: +SKIP
    >>> pair.optical.to_dataframe()  # doctest: +SKIP
"""

from optisar.__about__ import __version__
from optisar._types import Image, ImageCollection
from optisar.analysis import (
    OpticalBandMap,
    add_optical_indices,
    add_radar_indices,
    to_decibel,
)
from optisar.api import optical_series, radar_series, time_series
from optisar.archive import ImageArchive, InMemoryArchive, filter_by_metadata
from optisar.config import DateRange, PipelineConfig, date_range, pipeline_config
from optisar.exceptions import (
    CollaboratorError,
    ConfigurationError,
    OptiSARError,
)
from optisar.masking import CloudMasker, SCLCloudMasker, apply_cloud_mask
from optisar.pipeline import process_optical, process_radar, select_bands
from optisar.reduction import Reducer, reduce_region, reduce_to_series
from optisar.region import Region, region
from optisar.results import (
    SensorSeries,
    SeriesMetadata,
    TimeSeries,
    TimeSeriesRecord,
    combine_series,
)

__all__ = [
    # Version
    "__version__",
    # Orchestration
    "optical_series",
    "radar_series",
    "time_series",
    # Pipelines
    "process_optical",
    "process_radar",
    "select_bands",
    "apply_cloud_mask",
    "reduce_region",
    "reduce_to_series",
    # Indices and units
    "OpticalBandMap",
    "add_optical_indices",
    "add_radar_indices",
    "to_decibel",
    # Data model
    "Image",
    "ImageCollection",
    "Region",
    "region",
    "Reducer",
    # Collaborators
    "CloudMasker",
    "SCLCloudMasker",
    "ImageArchive",
    "InMemoryArchive",
    "filter_by_metadata",
    # Configuration
    "DateRange",
    "PipelineConfig",
    "date_range",
    "pipeline_config",
    # Results
    "SensorSeries",
    "SeriesMetadata",
    "TimeSeries",
    "TimeSeriesRecord",
    "combine_series",
    # Exceptions
    "CollaboratorError",
    "ConfigurationError",
    "OptiSARError",
]
