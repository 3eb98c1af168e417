"""
StationFill error taxonomy.
"""


class StationFillError(Exception):
    """Base class for all StationFill errors."""


class InvalidConfigurationError(StationFillError, ValueError):
    """Bad options or key station set. Raised before any work starts."""


class UnknownStationError(StationFillError, KeyError):
    """A key station has no coverage in the observation table."""

    def __init__(self, station_id, reason="no coverage in the observation table"):
        self.station_id = station_id
        self.reason = reason
        super().__init__(station_id)

    def __str__(self):
        return f"Unknown station {self.station_id!r}: {self.reason}"


class OutputWriteError(StationFillError, RuntimeError):
    """A station's output unit could not be finalized."""

    def __init__(self, station_id, path, cause=None):
        self.station_id = station_id
        self.path = path
        self.cause = cause
        msg = f"Could not write output for station {station_id!r} to {path}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class IrreconcilableGapWarning(UserWarning):
    """A gap no donor could fill. The output cell stays missing."""

    def __init__(self, station_id, date, variable):
        self.station_id = station_id
        self.date = date
        self.variable = variable
        super().__init__(
            f"Irreconcilable gap: station {station_id!r}, "
            f"{date:%Y-%m-%d}, {variable}"
        )

    @property
    def key(self):
        return (self.station_id, self.date, self.variable)

    def __eq__(self, other):
        if not isinstance(other, IrreconcilableGapWarning):
            return NotImplemented
        return self.key == other.key

    def __hash__(self):
        return hash(self.key)
