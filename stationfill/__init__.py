"""
StationFill — Multi-station daily gap reconciliation for hydrologic model input.
"""
__version__ = "1.0.0"
__license__ = "MIT"

from .engine import (
    DonorSelector,
    GapDetector,
    InfillEngine,
    ReconciledSeries,
    StationFillEngine,
    StationSeries,
    reconcile,
)
from .errors import (
    InvalidConfigurationError,
    IrreconcilableGapWarning,
    OutputWriteError,
    StationFillError,
    UnknownStationError,
)
from .options import ReconcileOptions
from .providers import fetch_observations
from .report import ReconciliationReport
from .table import ObservationTable, Station
from .writer import OutputUnit, StationWriter, read_station_file, write

__all__ = [
    "DonorSelector",
    "GapDetector",
    "InfillEngine",
    "InvalidConfigurationError",
    "IrreconcilableGapWarning",
    "ObservationTable",
    "OutputUnit",
    "OutputWriteError",
    "ReconcileOptions",
    "ReconciledSeries",
    "ReconciliationReport",
    "Station",
    "StationFillEngine",
    "StationFillError",
    "StationSeries",
    "StationWriter",
    "UnknownStationError",
    "fetch_observations",
    "read_station_file",
    "reconcile",
    "write",
]
