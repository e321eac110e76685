"""End-to-end tests for the orchestration API."""

from __future__ import annotations

import math

import numpy.testing as npt
import pytest
from conftest import AllValidMasker, FailingMasker, MaskDatesMasker
from shapely.geometry import box

import optisar as osr
from optisar.archive import InMemoryArchive
from optisar.config import PipelineConfig
from optisar.exceptions import CollaboratorError


@pytest.fixture
def config() -> PipelineConfig:
    return osr.pipeline_config(
        date_range=("2021-01-01", "2022-01-01"),
        region=osr.region(box(0.0, 0.0, 40.0, 40.0)),
    )


@pytest.mark.integration
class TestTimeSeries:
    """time_series() over the in-memory archive."""

    def test_both_sensors(self, config: PipelineConfig, archive: InMemoryArchive) -> None:
        pair = osr.time_series(config, archive, AllValidMasker())

        # Three optical scenes; the 80 % cloudy one is filtered out.
        assert len(pair.optical) == 2
        assert pair.optical.bands == ["NDVI", "EVI", "NBR", "NDMI"]
        npt.assert_allclose(pair.optical.values("NDVI"), [0.6, 0.6])
        npt.assert_allclose(pair.optical.values("EVI"), [1.5 / 2.25] * 2)

        assert len(pair.radar) == 2
        assert pair.radar.bands == ["VV", "VH", "RVI", "RFDI"]
        npt.assert_allclose(pair.radar.values("VH"), [-10.0, -10.0])
        npt.assert_allclose(pair.radar.values("RFDI"), [0.4 / 0.6] * 2)

    def test_parallel_matches_sequential(
        self, config: PipelineConfig, archive: InMemoryArchive
    ) -> None:
        sequential = osr.time_series(config, archive, AllValidMasker())
        parallel = osr.time_series(config, archive, AllValidMasker(), parallel=True)
        assert parallel.optical.records == sequential.optical.records
        assert parallel.radar.records == sequential.radar.records

    def test_fully_masked_scene_keeps_its_record(
        self, config: PipelineConfig, archive: InMemoryArchive
    ) -> None:
        pair = osr.time_series(config, archive, MaskDatesMasker(["2021-06-21"]))
        assert len(pair.optical) == 2
        assert pair.optical.valid_count == 1
        assert math.isnan(pair.optical[1]["NDVI"])

    def test_orbit_filter_from_config(self, archive: InMemoryArchive) -> None:
        cfg = osr.pipeline_config(
            date_range=("2021-01-01", "2022-01-01"),
            region=(20.0, 20.0),
            orbit_pass="DESCENDING",
            radar_bands=["RVI"],
        )
        series = osr.radar_series(cfg, archive)
        assert [ts.day for ts in series.timestamps] == [15]
        assert series.metadata.sensor == "COPERNICUS/S1_GRD_FLOAT"

    def test_combined_dataframe(
        self, config: PipelineConfig, archive: InMemoryArchive
    ) -> None:
        df = osr.time_series(config, archive, AllValidMasker()).to_dataframe()
        assert len(df) == 4
        assert "optical_NDVI" in df.columns
        assert "radar_VV" in df.columns

    @pytest.mark.parametrize("parallel", [False, True])
    def test_masker_failure_propagates(
        self, config: PipelineConfig, archive: InMemoryArchive, parallel: bool
    ) -> None:
        with pytest.raises(CollaboratorError) as excinfo:
            osr.time_series(config, archive, FailingMasker(), parallel=parallel)
        assert excinfo.value.sensor == "COPERNICUS/S2_SR_HARMONIZED"

    def test_unknown_sensor_reports_context(self, archive: InMemoryArchive) -> None:
        cfg = osr.pipeline_config(
            date_range=("2021-01-01", "2022-01-01"),
            region=(20.0, 20.0),
            optical_sensor="LANDSAT/LC08/C02/T1_L2",
        )
        with pytest.raises(CollaboratorError) as excinfo:
            osr.optical_series(cfg, archive, AllValidMasker())
        assert excinfo.value.sensor == "LANDSAT/LC08/C02/T1_L2"
        assert excinfo.value.date_range == ("2021-01-01", "2022-01-01")

    def test_logs_stage_sizes(
        self,
        config: PipelineConfig,
        archive: InMemoryArchive,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level("INFO", logger="optisar"):
            osr.time_series(config, archive, AllValidMasker())
        assert "COPERNICUS/S2_SR_HARMONIZED collection size: 3" in caplog.text
        assert "COPERNICUS/S1_GRD_FLOAT collection size: 2" in caplog.text
        assert "Optical: 2 record(s)" in caplog.text
