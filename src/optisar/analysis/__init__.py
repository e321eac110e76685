"""Per-pixel index and unit computations for optical and radar imagery."""

from optisar.analysis.optical import (
    OPTICAL_INDICES,
    OpticalBandMap,
    add_optical_indices,
    compute_evi,
    normalized_difference,
)
from optisar.analysis.radar import (
    RADAR_BANDS,
    add_radar_indices,
    compute_rfdi,
    compute_rvi,
)
from optisar.analysis.units import db_to_power, power_to_db, to_decibel

__all__ = [
    "OPTICAL_INDICES",
    "RADAR_BANDS",
    "OpticalBandMap",
    "add_optical_indices",
    "add_radar_indices",
    "compute_evi",
    "compute_rfdi",
    "compute_rvi",
    "db_to_power",
    "normalized_difference",
    "power_to_db",
    "to_decibel",
]
