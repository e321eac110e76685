"""Time-series result model for reduced image collections."""

from __future__ import annotations

import math
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, overload

import numpy as np
import numpy.typing as npt
from pydantic import BaseModel, Field

if TYPE_CHECKING:
    import pandas as pd


class SeriesMetadata(BaseModel):
    """Metadata describing how a time series was produced.

    Uses pydantic (not dataclass) so it serializes cleanly next to
    exported tables.

    Attributes:
        sensor: Archive sensor identifier or a caller label.
        reducer: Name of the spatial statistic.
        scale: Reduction grid resolution in native units.
        bands: Band names present in every record, in column order.
        region_bounds: Footprint bounding box ``{"minx", "miny", "maxx", "maxy"}``.

    Example:
        >>> meta = SeriesMetadata(sensor="S2", reducer="mean", bands=["NDVI"])
        >>> meta.scale is None
        True
    """

    sensor: str = ""
    reducer: str = ""
    scale: float | None = None
    bands: list[str] = Field(default_factory=list)
    region_bounds: dict[str, float] = Field(default_factory=dict)


@dataclass(frozen=True, eq=False)
class TimeSeriesRecord:
    """One reduced observation: acquisition time and a value per band.

    ``NaN`` marks a band with no valid pixel inside the region.

    Example:
        >>> from datetime import datetime
        >>> rec = TimeSeriesRecord(datetime(2021, 6, 1), {"NDVI": 0.6})
        >>> rec.is_empty
        False
    """

    timestamp: datetime
    values: Mapping[str, float]

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "values",
            MappingProxyType({k: float(v) for k, v in self.values.items()}),
        )

    @property
    def is_empty(self) -> bool:
        """True when every band is no-data (e.g. a fully cloud-masked image)."""
        return all(math.isnan(v) for v in self.values.values())

    def __getitem__(self, band: str) -> float:
        return self.values[band]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeSeriesRecord):
            return NotImplemented
        if self.timestamp != other.timestamp or list(self.values) != list(other.values):
            return False
        return all(
            (math.isnan(a) and math.isnan(b)) or a == b
            for a, b in zip(self.values.values(), other.values.values())
        )

    def __hash__(self) -> int:
        return hash((self.timestamp, tuple(self.values)))

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v:.4f}" for k, v in self.values.items())
        return f"TimeSeriesRecord({self.timestamp.date().isoformat()}, {body})"


@dataclass
class TimeSeries(Sequence[TimeSeriesRecord]):
    """Ordered per-image observations of one collection.

    Holds exactly one record per reduced image, in acquisition order;
    records are never dropped for lack of valid pixels.

    Attributes:
        records: Records in acquisition-time order.
        metadata: Provenance of the series.

    Example:
        >>> ts = TimeSeries(records=[], metadata=SeriesMetadata(bands=["NDVI"]))
        >>> len(ts)
        0
    """

    records: list[TimeSeriesRecord] = field(default_factory=list)
    metadata: SeriesMetadata = field(default_factory=SeriesMetadata)

    @overload
    def __getitem__(self, index: int) -> TimeSeriesRecord: ...

    @overload
    def __getitem__(self, index: slice) -> list[TimeSeriesRecord]: ...

    def __getitem__(
        self, index: int | slice
    ) -> TimeSeriesRecord | list[TimeSeriesRecord]:
        return self.records[index]

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[TimeSeriesRecord]:
        return iter(self.records)

    @property
    def bands(self) -> list[str]:
        """Band names carried by every record."""
        return list(self.metadata.bands)

    @property
    def timestamps(self) -> list[datetime]:
        """Record timestamps in order."""
        return [record.timestamp for record in self.records]

    @property
    def valid_count(self) -> int:
        """Number of records with at least one band holding data."""
        return sum(1 for record in self.records if not record.is_empty)

    def values(self, band: str) -> npt.NDArray[np.float64]:
        """Return the series of one band as a ``float64`` array.

        Raises:
            KeyError: If *band* is not part of the series.
        """
        if band not in self.metadata.bands:
            raise KeyError(band)
        return np.array(
            [record.values[band] for record in self.records], dtype=np.float64
        )

    def select(self, bands: Sequence[str]) -> TimeSeries:
        """Return a band-group view, e.g. backscatter vs. radar indices.

        Raises:
            KeyError: If a requested band is not part of the series.
        """
        missing = [band for band in bands if band not in self.metadata.bands]
        if missing:
            raise KeyError(", ".join(missing))
        records = [
            TimeSeriesRecord(
                record.timestamp, {band: record.values[band] for band in bands}
            )
            for record in self.records
        ]
        metadata = self.metadata.model_copy(update={"bands": list(bands)})
        return TimeSeries(records=records, metadata=metadata)

    def __repr__(self) -> str:
        """Return a one-line summary without record values."""
        cls_name = type(self).__name__
        parts = [f"records={len(self.records)}", f"valid={self.valid_count}"]
        if self.metadata.sensor:
            parts.insert(0, f"sensor={self.metadata.sensor!r}")
        if self.metadata.bands:
            parts.append(f"bands=[{', '.join(self.metadata.bands)}]")
        if self.records:
            first = self.records[0].timestamp.date().isoformat()
            last = self.records[-1].timestamp.date().isoformat()
            parts.append(f"period={first} → {last}")
        return f"{cls_name}({', '.join(parts)})"

    def to_dataframe(self) -> pd.DataFrame:
        """Export the series to a pandas DataFrame for charting.

        Returns:
            DataFrame indexed by ``timestamp`` with one ``float64`` column
            per band; no-data stays ``NaN``.

        Example:
            >>> ts = TimeSeries(metadata=SeriesMetadata(bands=["NDVI"]))
            >>> list(ts.to_dataframe().columns)
            ['NDVI']
        """
        import pandas as pd

        rows: list[dict[str, Any]] = [
            {"timestamp": record.timestamp, **record.values} for record in self.records
        ]
        df = pd.DataFrame(rows, columns=["timestamp", *self.metadata.bands])
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
        df = df.set_index("timestamp")
        return df.astype("float64")


def combine_series(series: Mapping[str, TimeSeries]) -> pd.DataFrame:
    """Outer-join several series on timestamp for cross-sensor comparison.

    Columns are named ``"<label>_<band>"``. Acquisitions present in only
    one series leave ``NaN`` in the other series' columns.

    Args:
        series: Label to series, e.g. ``{"optical": s2, "radar": s1}``.

    Returns:
        DataFrame indexed by timestamp, sorted ascending.

    Example:
        >>> df = combine_series({"optical": TimeSeries(), "radar": TimeSeries()})
        >>> df.empty
        True
    """
    import pandas as pd

    frames = []
    for label, ts in series.items():
        frame = ts.to_dataframe()
        frame.columns = [f"{label}_{band}" for band in frame.columns]
        frames.append(frame)
    if not frames:
        return pd.DataFrame()
    combined = frames[0]
    for frame in frames[1:]:
        combined = combined.join(frame, how="outer")
    return combined.sort_index()


@dataclass
class SensorSeries:
    """Optical and radar series reduced over one region and window.

    Attributes:
        optical: Series of the optical collection (indices).
        radar: Series of the radar collection (backscatter and indices).

    Example:
        >>> pair = SensorSeries(optical=TimeSeries(), radar=TimeSeries())
        >>> pair.to_dataframe().empty
        True
    """

    optical: TimeSeries
    radar: TimeSeries

    def to_dataframe(self) -> pd.DataFrame:
        """Outer-join both series with ``optical_``/``radar_`` column prefixes."""
        return combine_series({"optical": self.optical, "radar": self.radar})
