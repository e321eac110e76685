"""Optical vegetation, moisture and burn indices.

Pure computation module: no archive access, no masking. Takes numpy
arrays (or images) in, returns numpy arrays (or new images) out.
Division by zero always yields ``NaN``; infinities are never emitted.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.typing as npt
from pydantic import BaseModel, ConfigDict, field_validator

from optisar._types import Image
from optisar.exceptions import CollaboratorError

OPTICAL_INDICES: tuple[str, ...] = ("NDVI", "EVI", "NDWI", "NDMI", "NBR")
"""Index bands appended by ``add_optical_indices``, in output order."""


class OpticalBandMap(BaseModel):
    """Sensor band names and reflectance scaling for index computation.

    Defaults describe Sentinel-2 L2A surface reflectance, whose digital
    numbers become 0--1 reflectance after division by 10000.

    Example:
        >>> OpticalBandMap().nir
        'B8'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    blue: str = "B2"
    green: str = "B3"
    red: str = "B4"
    nir: str = "B8"
    swir1: str = "B11"
    swir2: str = "B12"
    reflectance_scale: float = 10000.0

    @field_validator("reflectance_scale")
    @classmethod
    def _validate_scale(cls, v: float) -> float:
        """Ensure the reflectance divisor is positive."""
        if v <= 0:
            msg = "reflectance_scale must be greater than 0"
            raise ValueError(msg)
        return v

    @property
    def required_bands(self) -> tuple[str, ...]:
        """Input band names needed to compute every optical index."""
        return (self.blue, self.green, self.red, self.nir, self.swir1, self.swir2)


def _safe_divide(
    numerator: npt.NDArray[np.float64],
    denominator: npt.NDArray[np.float64],
) -> npt.NDArray[np.float64]:
    """Divide elementwise, mapping zero or non-finite results to ``NaN``."""
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.where(denominator == 0.0, np.nan, numerator / denominator)
    result: npt.NDArray[np.float64] = np.where(np.isfinite(ratio), ratio, np.nan)
    return result


def normalized_difference(
    a: npt.ArrayLike,
    b: npt.ArrayLike,
) -> npt.NDArray[np.float64]:
    """Compute ``(a - b) / (a + b)``.

    ``NaN`` inputs (masked pixels) propagate to ``NaN`` output. Where
    ``a + b == 0`` the result is ``NaN``. The ratio is invariant to a
    common reflectance scale factor, so raw digital numbers may be used.

    Parameters:
        a: First band, e.g. NIR for NDVI.
        b: Second band, e.g. Red for NDVI.

    Returns:
        ``float64`` array in ``[-1, 1]`` for non-negative valid inputs.

    Example:
        >>> normalized_difference([[0.8]], [[0.2]]).round(2)
        array([[0.6]])
    """
    a_f = np.asarray(a, dtype=np.float64)
    b_f = np.asarray(b, dtype=np.float64)
    return _safe_divide(a_f - b_f, a_f + b_f)


def compute_evi(
    nir: npt.ArrayLike,
    red: npt.ArrayLike,
    blue: npt.ArrayLike,
) -> npt.NDArray[np.float64]:
    """Compute the Enhanced Vegetation Index.

    EVI = 2.5 * (NIR - RED) / (NIR + 6*RED - 7.5*BLUE + 1), on 0--1
    reflectance (the constant term makes EVI scale dependent). A zero
    denominator yields ``NaN``.

    Example:
        >>> round(float(compute_evi([[0.8]], [[0.2]], [[0.1]])[0, 0]), 4)
        0.6667
    """
    nir_f = np.asarray(nir, dtype=np.float64)
    red_f = np.asarray(red, dtype=np.float64)
    blue_f = np.asarray(blue, dtype=np.float64)
    return _safe_divide(
        2.5 * (nir_f - red_f),
        nir_f + 6.0 * red_f - 7.5 * blue_f + 1.0,
    )


def add_optical_indices(
    image: Image,
    bands: OpticalBandMap | None = None,
) -> Image:
    """Append NDVI, EVI, NDWI, NDMI and NBR bands to *image*.

    All original bands and metadata are retained. Re-running on an image
    that already carries the index bands recomputes them in place of the
    old values, so the operation is idempotent.

    Parameters:
        image: Optical image holding raw reflectance digital numbers.
        bands: Sensor band mapping; Sentinel-2 names by default.

    Returns:
        New ``Image`` with the five index bands appended.

    Raises:
        CollaboratorError: If a required reflectance band is missing,
            which means the archive returned a malformed image.
    """
    band_map = bands or OpticalBandMap()
    missing = [name for name in band_map.required_bands if name not in image]
    if missing:
        raise CollaboratorError(
            what=f"Optical image {image.date} is missing band(s): {', '.join(missing)}",
            cause=f"Image only has bands: {', '.join(image.band_names)}",
            fix="Query the archive for all reflectance bands or adjust the band map",
        )

    scale = band_map.reflectance_scale
    blue = image[band_map.blue] / scale
    green = image[band_map.green] / scale
    red = image[band_map.red] / scale
    nir = image[band_map.nir] / scale
    swir1 = image[band_map.swir1] / scale
    swir2 = image[band_map.swir2] / scale

    indices: dict[str, Any] = {
        "NDVI": normalized_difference(nir, red),
        "EVI": compute_evi(nir, red, blue),
        "NDWI": normalized_difference(green, nir),
        "NDMI": normalized_difference(nir, swir1),
        "NBR": normalized_difference(nir, swir2),
    }
    return image.add_bands(indices, overwrite=True)
