"""Cloud, shadow and snow screening for optical imagery.

The masking decision itself is delegated to a ``CloudMasker``
collaborator. This module invokes it per image and applies the returned
validity mask: invalid pixels become ``NaN`` in every band, and no image
is ever removed here, even when fully masked.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import numpy as np
import numpy.typing as npt

from optisar._types import Image, ImageCollection, Mask
from optisar.config import DateRange
from optisar.exceptions import CollaboratorError, OptiSARError
from optisar.region import Region

logger = logging.getLogger(__name__)

# ESA Sentinel-2 Scene Classification Layer (SCL) classes to mask.
# Values: 0=NoData, 1=Saturated, 3=CloudShadow, 8=CloudMedium,
#         9=CloudHigh, 10=ThinCirrus, 11=Snow.
_SCL_MASK_CLASSES: frozenset[int] = frozenset({0, 1, 3, 8, 9, 10, 11})
_SCL_MASK_ARRAY: npt.NDArray[np.int32] = np.array(
    sorted(_SCL_MASK_CLASSES), dtype=np.int32
)


class CloudMasker(ABC):
    """Decision service producing a per-pixel validity mask.

    Implementations combine at least cloud, cloud-shadow and snow
    detection. Their method is opaque to the pipeline, which only
    consumes the boolean mask.
    """

    @abstractmethod
    def compute_mask(
        self,
        image: Image,
        date_range: DateRange,
        region: Region,
        max_cloud_percent: float,
    ) -> Mask:
        """Return a mask aligned to *image*; ``True`` marks a usable pixel.

        Args:
            image: Optical image to screen.
            date_range: Acquisition window of the collection.
            region: Area of interest.
            max_cloud_percent: Scene cloud-cover threshold (0--100).

        Returns:
            Boolean array with the shape of the image grid.
        """
        ...


class SCLCloudMasker(CloudMasker):
    """Mask built from the Sentinel-2 Scene Classification Layer.

    Pixels classified as no-data, saturated, cloud shadow, medium or
    high cloud, thin cirrus or snow are invalid. A ``NaN`` SCL value is
    invalid too.

    Args:
        scl_band: Name of the classification band.

    Example:
        >>> SCLCloudMasker().scl_band
        'SCL'
    """

    def __init__(self, scl_band: str = "SCL") -> None:
        self.scl_band = scl_band

    def compute_mask(
        self,
        image: Image,
        date_range: DateRange,
        region: Region,
        max_cloud_percent: float,
    ) -> Mask:
        """Return ``True`` where the SCL class is not a masked class.

        Raises:
            CollaboratorError: If the image has no SCL band.
        """
        if self.scl_band not in image:
            raise CollaboratorError(
                what=f"Cannot mask image {image.date}: no {self.scl_band} band",
                cause=f"Image only has bands: {', '.join(image.band_names)}",
                fix="Query the archive with the scene classification band included",
                date_range=date_range.as_tuple(),
                region=str(region),
            )
        scl = image[self.scl_band]
        classified = ~np.isnan(scl)
        classes = np.where(classified, scl, 0).astype(np.int32)
        valid_mask: Mask = classified & ~np.isin(classes, _SCL_MASK_ARRAY)
        return valid_mask


def apply_mask(image: Image, mask: Mask) -> Image:
    """Set every band of *image* to ``NaN`` where *mask* is false.

    Raises:
        CollaboratorError: If *mask* is not a boolean array of the
            image's shape.
    """
    mask = np.asarray(mask)
    if mask.dtype != np.bool_ or mask.shape != image.shape:
        raise CollaboratorError(
            what=f"Malformed cloud mask for image {image.date}",
            cause=(
                f"Expected bool array of shape {image.shape}, "
                f"got {mask.dtype} array of shape {mask.shape}"
            ),
            fix="Fix the masking collaborator to return an aligned boolean mask",
        )
    masked = {
        name: np.where(mask, values, np.nan) for name, values in image.bands.items()
    }
    return image.replace_bands(masked)


def apply_cloud_mask(
    collection: ImageCollection,
    date_range: DateRange,
    region: Region,
    max_cloud_percent: float,
    masker: CloudMasker,
    *,
    sensor: str = "",
) -> ImageCollection:
    """Screen every image of *collection* with *masker*.

    The result has the same cardinality and order as the input; fully
    masked images are kept, holding ``NaN`` in every band.

    Args:
        collection: Optical images.
        date_range: Acquisition window, forwarded to the masker.
        region: Area of interest, forwarded to the masker.
        max_cloud_percent: Cloud-cover threshold, forwarded to the masker.
        masker: Masking collaborator.
        sensor: Sensor identifier used in error context.

    Returns:
        Masked ``ImageCollection``.

    Raises:
        CollaboratorError: If the masker fails or returns a malformed
            mask. The whole call is aborted; nothing is partially masked.
    """
    context: dict[str, Any] = {
        "sensor": sensor,
        "date_range": date_range.as_tuple(),
        "region": str(region),
    }
    masked_images: list[Image] = []
    for image in collection:
        try:
            mask = masker.compute_mask(image, date_range, region, max_cloud_percent)
            masked = apply_mask(image, mask)
        except CollaboratorError as exc:
            # Fill each missing context field; the masker's own values win.
            original = {
                "sensor": exc.sensor,
                "date_range": exc.date_range,
                "region": exc.region,
            }
            filled = {key: original[key] or context[key] for key in original}
            if filled == original:
                raise
            raise CollaboratorError(
                what=exc.what, cause=exc.cause, fix=exc.fix, **filled
            ) from exc
        except OptiSARError:
            raise
        except Exception as exc:
            raise CollaboratorError(
                what=f"Cloud mask computation failed for image {image.date}",
                cause=f"{type(exc).__name__}: {exc}",
                fix="Check the masking service and retry the call",
                **context,
            ) from exc

        valid = np.asarray(mask)
        cloud_free_ratio = (
            float(np.count_nonzero(valid)) / valid.size if valid.size else 0.0
        )
        logger.debug("Image %s cloud-free ratio: %.2f", image.date, cloud_free_ratio)
        if cloud_free_ratio == 0.0:
            logger.warning("Image %s is fully masked (cloud/shadow/snow)", image.date)
        masked_images.append(masked)

    return ImageCollection(masked_images)
