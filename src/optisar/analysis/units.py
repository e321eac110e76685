"""Radiometric unit conversion for radar backscatter.

Pure computation module: numpy arrays and images in, new arrays and
images out.

Known degenerate case: decibels are only defined for positive linear
power. Zero or negative inputs map to ``NaN`` (no-data) instead of
``-inf``/``NaN`` warnings or an exception, and are never clamped to a
floor value.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np
import numpy.typing as npt

from optisar._types import Image
from optisar.exceptions import ConfigurationError


def power_to_db(power: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Convert linear power to decibels, ``10 * log10(x)``.

    Parameters:
        power: Linear-scale power values.

    Returns:
        ``float64`` array in dB. Non-positive and ``NaN`` inputs are ``NaN``.

    Example:
        >>> power_to_db([0.1, 1.0, 0.0]).round(2)
        array([-10.,   0.,  nan])
    """
    values = np.asarray(power, dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        db: npt.NDArray[np.float64] = np.where(
            values > 0.0,
            10.0 * np.log10(np.where(values > 0.0, values, 1.0)),
            np.nan,
        )
    return db


def db_to_power(db: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Convert decibels back to linear power, ``10 ** (x / 10)``."""
    values = np.asarray(db, dtype=np.float64)
    return np.power(10.0, values / 10.0)


def to_decibel(image: Image, bands: Sequence[str]) -> Image:
    """Return *image* with each named band converted from power to dB.

    Other bands, band order, timestamp and metadata are unchanged.

    Parameters:
        image: Image holding linear-power bands.
        bands: Names of the bands to convert.

    Returns:
        New ``Image`` with the converted bands.

    Raises:
        ConfigurationError: If a named band is not present in *image*.

    Example:
        >>> import numpy as np
        >>> from datetime import datetime
        >>> img = Image(bands={"VV": np.array([[0.5]])}, timestamp=datetime(2021, 1, 1))
        >>> round(float(to_decibel(img, ["VV"])["VV"][0, 0]), 2)
        -3.01
    """
    missing = [name for name in bands if name not in image]
    if missing:
        raise ConfigurationError(
            what=f"Cannot convert band(s) to decibels: {', '.join(missing)}",
            cause=f"Image only has bands: {', '.join(image.band_names)}",
            fix="Request conversion of bands present in the image",
        )
    converted: dict[str, Any] = {name: power_to_db(image[name]) for name in bands}
    return image.replace_bands(converted)
