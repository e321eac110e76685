"""Tests for cloud masking."""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
import numpy.testing as npt
import pytest
from conftest import (
    AllValidMasker,
    FailingMasker,
    MaskDatesMasker,
    WrongShapeMasker,
    day,
)

from optisar._types import Image, ImageCollection
from optisar.config import DateRange
from optisar.exceptions import CollaboratorError
from optisar.masking import SCLCloudMasker, apply_cloud_mask, apply_mask
from optisar.region import Region


class TestApplyMask:
    """Tests for apply_mask()."""

    @pytest.mark.unit
    def test_invalid_pixels_become_nan_in_every_band(
        self, optical_image: Callable[..., Image]
    ) -> None:
        img = optical_image()
        mask = np.ones((4, 4), dtype=bool)
        mask[0, :] = False

        out = apply_mask(img, mask)

        for band in out.band_names:
            assert np.isnan(out[band][0, :]).all()
            npt.assert_array_equal(out[band][1:, :], img[band][1:, :])
        assert out.band_names == img.band_names

    @pytest.mark.unit
    def test_wrong_shape_rejected(self, optical_image: Callable[..., Image]) -> None:
        with pytest.raises(CollaboratorError, match="Malformed cloud mask"):
            apply_mask(optical_image(), np.ones((2, 2), dtype=bool))

    @pytest.mark.unit
    def test_non_boolean_rejected(self, optical_image: Callable[..., Image]) -> None:
        with pytest.raises(CollaboratorError, match="bool"):
            apply_mask(optical_image(), np.ones((4, 4), dtype=np.uint8))


class TestSCLCloudMasker:
    """Tests for the Scene Classification Layer masker."""

    @pytest.mark.unit
    def test_masked_classes(
        self,
        optical_image: Callable[..., Image],
        window: DateRange,
        whole_grid: Region,
    ) -> None:
        # 0 no-data, 1 saturated, 3 shadow, 8/9 cloud, 10 cirrus, 11 snow
        scl = np.array(
            [
                [0, 1, 2, 3],
                [4, 5, 6, 7],
                [8, 9, 10, 11],
                [np.nan, 4, 5, 6],
            ]
        )
        mask = SCLCloudMasker().compute_mask(
            optical_image(SCL=scl), window, whole_grid, 50.0
        )
        expected = np.array(
            [
                [False, False, True, False],
                [True, True, True, True],
                [False, False, False, False],
                [False, True, True, True],
            ]
        )
        npt.assert_array_equal(mask, expected)
        assert mask.dtype == np.bool_

    @pytest.mark.unit
    def test_missing_scl_band(
        self,
        optical_image: Callable[..., Image],
        window: DateRange,
        whole_grid: Region,
    ) -> None:
        img = optical_image().select(["B4", "B8"])
        with pytest.raises(CollaboratorError, match="SCL"):
            SCLCloudMasker().compute_mask(img, window, whole_grid, 50.0)


class TestApplyCloudMask:
    """Tests for apply_cloud_mask()."""

    @pytest.mark.unit
    def test_forwards_arguments_to_masker(
        self,
        optical_image: Callable[..., Image],
        window: DateRange,
        whole_grid: Region,
    ) -> None:
        masker = AllValidMasker()
        coll = ImageCollection([optical_image(day(6, 1)), optical_image(day(6, 2))])

        out = apply_cloud_mask(coll, window, whole_grid, 35.0, masker)

        assert len(masker.calls) == 2
        _, date_range, region, threshold = masker.calls[0]
        assert date_range == window
        assert region == whole_grid
        assert threshold == 35.0
        npt.assert_array_equal(out[0]["B8"], coll[0]["B8"])

    @pytest.mark.unit
    def test_fully_masked_image_is_kept(
        self,
        optical_image: Callable[..., Image],
        window: DateRange,
        whole_grid: Region,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        coll = ImageCollection([optical_image(day(6, 1)), optical_image(day(6, 2))])
        masker = MaskDatesMasker(["2021-06-02"])

        with caplog.at_level("WARNING", logger="optisar.masking"):
            out = apply_cloud_mask(coll, window, whole_grid, 50.0, masker)

        assert len(out) == len(coll)
        assert out.timestamps == coll.timestamps
        assert np.isnan(out[1]["B8"]).all()
        assert not np.isnan(out[0]["B8"]).any()
        assert "fully masked" in caplog.text

    @pytest.mark.unit
    def test_empty_collection(self, window: DateRange, whole_grid: Region) -> None:
        out = apply_cloud_mask(ImageCollection(), window, whole_grid, 50.0, AllValidMasker())
        assert len(out) == 0

    @pytest.mark.unit
    def test_masker_failure_wrapped_with_context(
        self,
        optical_image: Callable[..., Image],
        window: DateRange,
        whole_grid: Region,
    ) -> None:
        coll = ImageCollection([optical_image()])
        with pytest.raises(CollaboratorError) as excinfo:
            apply_cloud_mask(
                coll, window, whole_grid, 50.0, FailingMasker(), sensor="S2"
            )
        err = excinfo.value
        assert err.sensor == "S2"
        assert err.date_range == ("2021-01-01", "2022-01-01")
        assert err.region == str(whole_grid)
        assert isinstance(err.__cause__, RuntimeError)
        assert "HTTP 503" in err.cause

    @pytest.mark.unit
    def test_malformed_mask_gets_context(
        self,
        optical_image: Callable[..., Image],
        window: DateRange,
        whole_grid: Region,
    ) -> None:
        coll = ImageCollection([optical_image()])
        with pytest.raises(CollaboratorError, match="Malformed") as excinfo:
            apply_cloud_mask(
                coll, window, whole_grid, 50.0, WrongShapeMasker(), sensor="S2"
            )
        assert excinfo.value.sensor == "S2"
        assert excinfo.value.date_range == ("2021-01-01", "2022-01-01")

    @pytest.mark.unit
    def test_partial_masker_context_is_completed(
        self,
        optical_image: Callable[..., Image],
        window: DateRange,
        whole_grid: Region,
    ) -> None:
        # SCLCloudMasker reports date range and region but not the sensor.
        coll = ImageCollection([optical_image().select(["B4", "B8"])])
        with pytest.raises(CollaboratorError, match="SCL") as excinfo:
            apply_cloud_mask(
                coll,
                window,
                whole_grid,
                50.0,
                SCLCloudMasker(),
                sensor="COPERNICUS/S2_SR_HARMONIZED",
            )
        err = excinfo.value
        assert err.sensor == "COPERNICUS/S2_SR_HARMONIZED"
        assert err.date_range == ("2021-01-01", "2022-01-01")
        assert err.region == str(whole_grid)
        assert "sensor=COPERNICUS/S2_SR_HARMONIZED" in str(err)
