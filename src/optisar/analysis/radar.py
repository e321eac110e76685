"""Polarimetric radar indices and backscatter harmonization.

Ratios are defined on linear power, so RVI and RFDI are computed from
the linear ``VV``/``VH`` values before those bands are converted to
decibels for output.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.typing as npt

from optisar._types import Image
from optisar.analysis.optical import _safe_divide
from optisar.analysis.units import to_decibel
from optisar.exceptions import CollaboratorError

RADAR_INPUT_BANDS: tuple[str, ...] = ("VV", "VH", "angle")
RADAR_BANDS: tuple[str, ...] = ("angle", "VH", "VV", "RVI", "RFDI")
"""Bands produced by ``add_radar_indices``, in output order."""


def compute_rvi(
    vv: npt.ArrayLike,
    vh: npt.ArrayLike,
) -> npt.NDArray[np.float64]:
    """Radar Vegetation Index, ``4 * VH / (VV + VH)`` on linear power.

    Example:
        >>> round(float(compute_rvi([[0.5]], [[0.1]])[0, 0]), 4)
        0.6667
    """
    vv_f = np.asarray(vv, dtype=np.float64)
    vh_f = np.asarray(vh, dtype=np.float64)
    return _safe_divide(4.0 * vh_f, vv_f + vh_f)


def compute_rfdi(
    vv: npt.ArrayLike,
    vh: npt.ArrayLike,
) -> npt.NDArray[np.float64]:
    """Radar Forest Degradation Index, ``(VV - VH) / (VV + VH)`` on linear power."""
    vv_f = np.asarray(vv, dtype=np.float64)
    vh_f = np.asarray(vh, dtype=np.float64)
    return _safe_divide(vv_f - vh_f, vv_f + vh_f)


def add_radar_indices(image: Image) -> Image:
    """Derive radar features from a linear-scale dual-polarization image.

    The output holds exactly ``angle`` (passed through), ``VH`` and
    ``VV`` in dB, ``RVI`` and ``RFDI``. Every other input band is
    discarded; metadata and timestamp are kept. Pixels where
    ``VV + VH == 0`` are ``NaN`` in both indices, and non-positive
    backscatter is ``NaN`` after the dB conversion.

    Parameters:
        image: Radar image with linear ``VV``, ``VH`` and ``angle`` bands.

    Returns:
        New ``Image`` with the bands listed in ``RADAR_BANDS``.

    Raises:
        CollaboratorError: If an input band is missing.

    Example:
        >>> import numpy as np
        >>> from datetime import datetime
        >>> img = Image(
        ...     bands={"VV": [[0.5]], "VH": [[0.1]], "angle": [[38.0]]},
        ...     timestamp=datetime(2021, 1, 1),
        ... )
        >>> add_radar_indices(img).band_names
        ('angle', 'VH', 'VV', 'RVI', 'RFDI')
    """
    missing = [name for name in RADAR_INPUT_BANDS if name not in image]
    if missing:
        raise CollaboratorError(
            what=f"Radar image {image.date} is missing band(s): {', '.join(missing)}",
            cause=f"Image only has bands: {', '.join(image.band_names)}",
            fix="Query a dual-polarization (VV+VH) product with incidence angle",
        )

    vv = image["VV"]
    vh = image["VH"]

    # Indices first: both are ratios of linear power.
    rvi = compute_rvi(vv, vh)
    rfdi = compute_rfdi(vv, vh)

    features: dict[str, Any] = {
        "angle": image["angle"],
        "VH": vh,
        "VV": vv,
        "RVI": rvi,
        "RFDI": rfdi,
    }
    linear = Image(
        bands=features,
        timestamp=image.timestamp,
        transform=image.transform,
        metadata=image.metadata,
    )
    return to_decibel(linear, ["VH", "VV"])
