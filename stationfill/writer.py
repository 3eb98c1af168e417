"""
Station Writer — one Raven-style .rvt file per reconciled key station.

Layout::

    :Gauge <station_id>
      :StationName <name>
      :Latitude <lat>
      :Longitude <lon>
      :Elevation <elev>
    :EndGauge
    :MultiData
      <start date> 00:00:00 1.0 <n days>
      :Parameters,<var>,<var>,...
      :Units,<unit>,<unit>,...
      <value>,<value>,...
    :EndMultiData

Irreconcilable cells carry MISSING_VALUE.
"""

import logging
import os
import tempfile
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager, suppress
from pathlib import Path
from urllib.parse import quote, unquote

import numpy as np
import pandas as pd

from .errors import OutputWriteError
from .table import ObservationTable, build_registry

logger = logging.getLogger(__name__)

MISSING_VALUE = -1.2345
DEFAULT_PREFIX = "station_"
DEFAULT_SUFFIX = ".rvt"


class OutputUnit:
    """Handle for one station's output: a path on success, an error otherwise."""

    def __init__(self, station_id, path, metadata=None, error=None):
        self.station_id = station_id
        self.path = path
        self.metadata = metadata
        self.error = error

    @property
    def ok(self):
        return self.error is None

    def __repr__(self):
        state = "ok" if self.ok else f"error={self.error}"
        return f"OutputUnit({self.station_id!r}, {self.path}, {state})"


@contextmanager
def atomic_output(path):
    """
    Open a temporary file beside ``path``; rename it over ``path`` only if the
    block exits cleanly, otherwise remove it.
    """
    path = Path(path)
    fd, tmp = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", newline="\n") as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        with suppress(FileNotFoundError):
            os.remove(tmp)
        raise


def _fmt(value):
    if value is None or np.isnan(value):
        return repr(MISSING_VALUE)
    return repr(float(value))


def _unsafe_fields(station, variables):
    """Header fields that would not read back unchanged."""
    bad = []
    fields = (("station id", str(station.station_id)), ("name", str(station.name)))
    for label, text in fields:
        if text != text.strip() or len(text.splitlines()) > 1:
            bad.append(f"{label} {text!r}")
    if not station.station_id:
        bad.append("empty station id")
    for var in map(str, variables):
        if "," in var or var.split() != [var]:
            bad.append(f"variable {var!r}")
    return bad


def _registry(stations):
    if stations is None:
        return None
    if isinstance(stations, ObservationTable):
        return stations.registry
    if isinstance(stations, dict):
        return stations
    return build_registry(stations)


class StationWriter:
    """
    Writes reconciled key stations to ``output_dir``.

    File names are ``prefix + quote(station_id) + suffix``; quoting keeps the
    name unique per identifier and safe on disk.
    """

    def __init__(self, output_dir, prefix=DEFAULT_PREFIX, suffix=DEFAULT_SUFFIX,
                 units=None, workers=None):
        self.output_dir = Path(output_dir)
        self.prefix = prefix
        self.suffix = suffix
        self.units = units or {}
        self.workers = workers

    def path_for(self, station_id):
        return self.output_dir / f"{self.prefix}{quote(str(station_id), safe='')}{self.suffix}"

    def station_id_for(self, path):
        """Inverse of ``path_for``."""
        name = Path(path).name
        if not (name.startswith(self.prefix) and name.endswith(self.suffix)):
            raise ValueError(f"Not a station output file: {name}")
        return unquote(name[len(self.prefix): len(name) - len(self.suffix)])

    def _lines(self, station, series):
        values = series.values
        variables = list(values.columns)
        units = [self.units.get(v, "-") for v in variables]
        start = values.index[0] if len(values) else pd.Timestamp("1970-01-01")

        yield "#" * 73
        yield f"# Reconciled daily series for station {station.station_id}"
        yield "#" * 73
        yield f":Gauge {station.station_id}"
        yield f"  :StationName {station.name}"
        yield f"  :Latitude {station.latitude!r}"
        yield f"  :Longitude {station.longitude!r}"
        yield f"  :Elevation {station.elevation!r}"
        yield ":EndGauge"
        yield ""
        yield ":MultiData"
        yield f"  {start:%Y-%m-%d} 00:00:00 1.0 {len(values)}"
        yield "  :Parameters," + ",".join(variables)
        yield "  :Units," + ",".join(units)
        for row in values.to_numpy(dtype=float):
            yield "  " + ",".join(_fmt(v) for v in row)
        yield ":EndMultiData"

    def write_station(self, series, station=None):
        """Write one station atomically. Raises OutputWriteError."""
        station = station or series.station
        path = self.path_for(station.station_id)
        bad = _unsafe_fields(station, series.values.columns)
        if bad:
            raise OutputWriteError(
                station.station_id, path, "cannot write " + ", ".join(bad)
            )
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            with atomic_output(path) as f:
                for line in self._lines(station, series):
                    f.write(line + "\n")
        except Exception as e:
            raise OutputWriteError(station.station_id, path, e) from e
        logger.debug("Wrote %s", path)
        return OutputUnit(station.station_id, path, metadata=station._asdict())

    def _write_one(self, series, registry):
        station_id = series.station_id
        try:
            station = None
            if registry is not None:
                station = registry.get(station_id)
                if station is None:
                    raise OutputWriteError(
                        station_id, self.path_for(station_id),
                        "station missing from registry",
                    )
            return self.write_station(series, station)
        except OutputWriteError as e:
            logger.error("%s", e)
            return OutputUnit(station_id, self.path_for(station_id), error=e)

    def write(self, reconciled, stations=None, report=None):
        """
        Write every station of a ReconciledSeries.

        A failing station never aborts the batch: its OutputUnit carries the
        error, which is also recorded on ``report`` when given.
        """
        registry = _registry(stations)
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = [
                executor.submit(self._write_one, series, registry)
                for series in reconciled
            ]
            units = [f.result() for f in futures]

        if report is not None:
            for unit in units:
                if not unit.ok:
                    report.record_output_error(unit.station_id, unit.error)
        written = sum(1 for u in units if u.ok)
        logger.info("Wrote %d/%d station files to %s", written, len(units), self.output_dir)
        return units


def write(reconciled, stations, output_dir, report=None, **kwargs):
    """Shortcut for ``StationWriter(output_dir, **kwargs).write(...)``."""
    return StationWriter(output_dir, **kwargs).write(reconciled, stations, report)


def read_station_file(path):
    """
    Parse a station file back into (metadata, DataFrame).

    The DataFrame is indexed by date; MISSING_VALUE cells become NaN.
    """
    metadata = {}
    fields = {
        ":StationName": ("name", str),
        ":Latitude": ("latitude", float),
        ":Longitude": ("longitude", float),
        ":Elevation": ("elevation", float),
    }
    header = None
    parameters = []
    rows = []
    section = None

    with open(path) as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith(":Gauge"):
                metadata["station_id"] = line[len(":Gauge"):].strip()
                section = "gauge"
            elif line == ":EndGauge":
                section = None
            elif line == ":MultiData":
                section = "header"
            elif line == ":EndMultiData":
                section = None
            elif section == "gauge":
                tag, _, value = line.partition(" ")
                if tag in fields:
                    key, cast = fields[tag]
                    metadata[key] = cast(value.strip())
            elif section == "header":
                date, _time, _step, count = line.split()
                header = (pd.Timestamp(date), int(count))
                section = "data"
            elif section == "data":
                if line.startswith(":Parameters,"):
                    parameters = line.split(",")[1:]
                elif line.startswith(":Units,"):
                    continue
                else:
                    rows.append([float(v) for v in line.split(",")])

    if header is None:
        raise ValueError(f"No :MultiData block in {path}")
    start, count = header
    if len(rows) != count:
        raise ValueError(f"{path}: expected {count} rows, found {len(rows)}")

    index = pd.date_range(start, periods=count, freq="D", name="date")
    data = np.array(rows, dtype=float).reshape(count, len(parameters))
    df = pd.DataFrame(data, index=index, columns=parameters)
    df = df.mask(df == MISSING_VALUE)
    return metadata, df
