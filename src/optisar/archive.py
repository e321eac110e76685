"""Imagery archive contract and metadata filtering.

Defines the ``ImageArchive`` abstract base class that archive back ends
implement, the ``filter_by_metadata`` predicate filter, and an
``InMemoryArchive`` serving images registered in process (notebooks,
tests, pre-fetched scenes).

Retrieval, caching and tiling belong to the archive implementation;
this package only consumes the ``ImageCollection`` it returns.
"""

from __future__ import annotations

import logging
import operator
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import Any

from shapely.geometry import box

from optisar._types import Image, ImageCollection
from optisar.config import DateRange
from optisar.exceptions import CollaboratorError, ConfigurationError, OptiSARError
from optisar.region import Region

logger = logging.getLogger(__name__)

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "neq": operator.ne,
    "lt": operator.lt,
    "lte": operator.le,
    "gt": operator.gt,
    "gte": operator.ge,
}


def filter_by_metadata(
    collection: ImageCollection,
    field_name: str,
    op: str,
    value: Any,
) -> ImageCollection:
    """Keep images whose metadata *field_name* satisfies ``field <op> value``.

    Images that lack the property, or whose value cannot be compared
    with *value*, are dropped.

    Args:
        collection: Collection to filter.
        field_name: Metadata key, e.g. ``"CLOUDY_PIXEL_PERCENTAGE"``.
        op: One of ``eq``, ``neq``, ``lt``, ``lte``, ``gt``, ``gte``.
        value: Right-hand operand.

    Returns:
        Filtered collection, acquisition order preserved.

    Raises:
        ConfigurationError: If *op* is not a supported operator.

    Example:
        >>> kept = filter_by_metadata(s2, "CLOUDY_PIXEL_PERCENTAGE", "lte", 50)  # doctest: +SKIP
    """
    try:
        compare = _OPERATORS[op]
    except KeyError:
        valid = ", ".join(_OPERATORS)
        raise ConfigurationError(
            what=f"Unknown metadata filter operator: {op!r}",
            cause=f"Supported operators are: {valid}",
            fix=f"Use one of: {valid}",
        ) from None

    def _keep(image: Image) -> bool:
        if field_name not in image.metadata:
            return False
        try:
            return bool(compare(image.metadata[field_name], value))
        except TypeError:
            return False

    filtered = collection.filter(_keep)
    logger.debug(
        "Metadata filter %s %s %r kept %d of %d image(s)",
        field_name,
        op,
        value,
        len(filtered),
        len(collection),
    )
    return filtered


class ImageArchive(ABC):
    """Abstract base class for imagery archives.

    Implementations return complete, consistent collections or raise;
    retries, if any, happen inside the implementation.

    Example:
        >>> archive = InMemoryArchive()
        >>> archive.name
        'memory'
    """

    _name: str = ""

    @property
    def name(self) -> str:
        """Archive identifier used in log messages."""
        return self._name

    @abstractmethod
    def query(
        self,
        sensor_id: str,
        bounds: Region,
        date_range: DateRange,
    ) -> ImageCollection:
        """Return images of *sensor_id* intersecting *bounds* within *date_range*.

        Returns an empty collection when nothing matches. Raises only
        on infrastructure failures.

        Args:
            sensor_id: Collection identifier, e.g.
                ``"COPERNICUS/S2_SR_HARMONIZED"``.
            bounds: Region whose footprint the images must intersect.
            date_range: Acquisition window (start inclusive, end exclusive).

        Returns:
            Matching images in acquisition order.
        """
        ...

    def filter_by_metadata(
        self,
        collection: ImageCollection,
        field_name: str,
        op: str,
        value: Any,
    ) -> ImageCollection:
        """Filter *collection* on a metadata predicate.

        The default filters in process; server-side archives may
        override this to push the predicate into the query.
        """
        return filter_by_metadata(collection, field_name, op, value)


class InMemoryArchive(ImageArchive):
    """Archive backed by images registered in memory.

    Example:
        >>> archive = InMemoryArchive()
        >>> archive.add("COPERNICUS/S1_GRD_FLOAT", [])
        >>> archive.sensors
        ['COPERNICUS/S1_GRD_FLOAT']
    """

    _name = "memory"

    def __init__(self) -> None:
        self._collections: dict[str, list[Image]] = {}

    @property
    def sensors(self) -> list[str]:
        """Registered sensor identifiers, sorted."""
        return sorted(self._collections)

    def add(self, sensor_id: str, images: Iterable[Image]) -> None:
        """Register *images* under *sensor_id* (appends to existing ones)."""
        self._collections.setdefault(sensor_id, []).extend(images)

    def query(
        self,
        sensor_id: str,
        bounds: Region,
        date_range: DateRange,
    ) -> ImageCollection:
        """Return registered images intersecting *bounds* within *date_range*.

        Raises:
            CollaboratorError: If *sensor_id* was never registered.
        """
        if sensor_id not in self._collections:
            raise CollaboratorError(
                what=f"Unknown image collection: {sensor_id!r}",
                cause=f"Registered collections: {', '.join(self.sensors) or 'none'}",
                fix="Register images with InMemoryArchive.add() first",
                sensor=sensor_id,
                date_range=date_range.as_tuple(),
                region=str(bounds),
            )
        footprint = bounds.footprint
        matches = [
            image
            for image in self._collections[sensor_id]
            if date_range.contains(image.timestamp)
            and box(*image.bounds).intersects(footprint)
        ]
        return ImageCollection(matches)


def query_archive(
    archive: ImageArchive,
    sensor_id: str,
    bounds: Region,
    date_range: DateRange,
) -> ImageCollection:
    """Query *archive*, normalizing failures to ``CollaboratorError``.

    ``CollaboratorError`` raised by the archive propagates unchanged;
    any other failure is wrapped with the sensor, date range and region
    so the caller can retry externally.

    Raises:
        CollaboratorError: If the query fails or returns something other
            than an ``ImageCollection``.
    """
    context: dict[str, Any] = {
        "sensor": sensor_id,
        "date_range": date_range.as_tuple(),
        "region": str(bounds),
    }
    try:
        result = archive.query(sensor_id, bounds, date_range)
    except OptiSARError:
        raise
    except Exception as exc:
        raise CollaboratorError(
            what=f"Archive query failed for {sensor_id}",
            cause=f"{type(exc).__name__}: {exc}",
            fix="Check the archive service and retry the call",
            **context,
        ) from exc

    if not isinstance(result, ImageCollection):
        raise CollaboratorError(
            what=f"Archive returned malformed data for {sensor_id}",
            cause=f"Expected ImageCollection, got {type(result).__name__}",
            fix="Fix the archive implementation to return an ImageCollection",
            **context,
        )

    logger.info(
        "%s collection size: %d image(s) for %s", sensor_id, len(result), date_range
    )
    if len(result) == 0:
        logger.warning("No %s images found for %s in %s", sensor_id, bounds, date_range)
    return result
