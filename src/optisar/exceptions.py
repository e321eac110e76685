"""OptiSAR exception hierarchy.

All exceptions follow a three-part message pattern: what failed,
likely cause, and suggested fix.

Per-pixel degeneracies (zero denominators, non-positive log inputs) are
never raised; they resolve to ``NaN`` in the affected band.
"""

from __future__ import annotations

from typing import Any


class OptiSARError(Exception):
    """Base exception for all OptiSAR errors.

    Args:
        what: Description of what failed.
        cause: Likely cause of the failure.
        fix: Suggested action to resolve the issue.

    Example:
        >>> raise OptiSARError(
        ...     what="Operation failed",
        ...     cause="Unexpected internal state",
        ...     fix="Please report this issue",
        ... )
    """

    def __init__(
        self,
        what: str,
        cause: str = "",
        fix: str = "",
    ) -> None:
        """Initialize with structured error context.

        Args:
            what: Description of what failed.
            cause: Likely cause of the failure.
            fix: Suggested action to resolve the issue.
        """
        self.what = what
        self.cause = cause
        self.fix = fix
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Build the multi-line error message from parts.

        Returns:
            Formatted message with optional Cause and Fix lines.
        """
        parts = [self.what]
        if self.cause:
            parts.append(f"Cause: {self.cause}")
        if self.fix:
            parts.append(f"Fix: {self.fix}")
        return "\n".join(parts)


class ConfigurationError(OptiSARError):
    """Raised for invalid caller-supplied configuration.

    Covers date ranges, regions, cloud thresholds, resolution, band
    names and reducer names. Always raised before any processing.

    Example:
        >>> raise ConfigurationError(
        ...     what="Unknown band: 'NDXI'",
        ...     cause="Valid optical bands are: EVI, NBR, NDMI, NDVI, NDWI",
        ...     fix="Request one of the producible bands",
        ... )
    """


class CollaboratorError(OptiSARError):
    """Raised when the archive or cloud-mask collaborator fails.

    Also raised when a collaborator returns malformed data (a mask with
    the wrong shape, an image missing a required band). No retry is
    attempted; the context attributes let the caller retry externally.

    Args:
        what: Description of what failed.
        cause: Likely cause of the failure.
        fix: Suggested action to resolve the issue.
        sensor: Archive sensor identifier involved, if known.
        date_range: ``(start, end)`` ISO date pair of the failed call.
        region: Region (or its bounds) of the failed call.

    Example:
        >>> raise CollaboratorError(
        ...     what="Cloud mask computation failed",
        ...     cause="Masking service returned HTTP 503",
        ...     fix="Retry once the masking service is available",
        ...     sensor="COPERNICUS/S2_SR_HARMONIZED",
        ... )
    """

    def __init__(
        self,
        what: str,
        cause: str = "",
        fix: str = "",
        *,
        sensor: str = "",
        date_range: tuple[str, str] | None = None,
        region: Any = None,
    ) -> None:
        """Initialize with structured error context and call context."""
        self.sensor = sensor
        self.date_range = date_range
        self.region = region
        super().__init__(what=what, cause=cause, fix=fix)

    def _format_message(self) -> str:
        """Append the call context line to the three-part message."""
        message = super()._format_message()
        context: list[str] = []
        if self.sensor:
            context.append(f"sensor={self.sensor}")
        if self.date_range is not None:
            context.append(f"date_range={self.date_range[0]}..{self.date_range[1]}")
        if self.region is not None:
            context.append(f"region={self.region}")
        if context:
            message += "\nContext: " + ", ".join(context)
        return message
