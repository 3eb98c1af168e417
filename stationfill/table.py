"""
Observation Table — station registry plus daily multi-station observations.
"""

import logging
from collections import namedtuple

import numpy as np
import pandas as pd

from .errors import InvalidConfigurationError

logger = logging.getLogger(__name__)

Station = namedtuple(
    "Station", ["station_id", "name", "latitude", "longitude", "elevation"]
)

STATION_COLUMNS = list(Station._fields)

MISSING_SENTINELS = [-999, -9999, -99.9, -999.0, -9999.0, 9999, 99999]


def detect_date_column(df, date_col=None):
    """Return the name of the datetime column, parsing it in place."""
    if date_col and date_col in df.columns:
        df[date_col] = pd.to_datetime(df[date_col])
        return date_col

    for col in df.columns:
        if pd.api.types.is_numeric_dtype(df[col]):
            continue
        try:
            parsed = pd.to_datetime(df[col], format="mixed")
            if parsed.notna().sum() > len(df) * 0.8:
                df[col] = parsed
                return col
        except (ValueError, TypeError):
            continue

    raise ValueError("No date column detected. Please specify date_col parameter.")


def build_registry(stations):
    """
    Build the station registry from a DataFrame or an iterable of records.

    Returns a dict of station_id -> Station ordered by identifier. Duplicate
    identifiers keep their first record.
    """
    if isinstance(stations, pd.DataFrame):
        missing = [c for c in STATION_COLUMNS if c not in stations.columns]
        if missing:
            raise InvalidConfigurationError(
                f"Station table is missing columns: {', '.join(missing)}"
            )
        records = stations[STATION_COLUMNS].itertuples(index=False, name=None)
    else:
        records = (tuple(s) for s in stations)

    registry = {}
    for station_id, name, lat, lon, elev in records:
        station_id = str(station_id)
        if station_id in registry:
            logger.warning("Duplicate station %s in registry, keeping first", station_id)
            continue
        registry[station_id] = Station(
            station_id,
            "" if pd.isna(name) else str(name),
            float(lat),
            float(lon),
            float(elev) if pd.notna(elev) else np.nan,
        )
    return dict(sorted(registry.items()))


class ObservationTable:
    """
    Read-only daily observations for a set of stations.

    Every station is reindexed onto a contiguous daily range spanning its own
    coverage window, so a date absent from the input becomes an explicit
    missing cell for every tracked variable.
    """

    def __init__(self, stations, observations, variables=None,
                 station_col="station_id", date_col="date"):
        self.registry = build_registry(stations)
        self.station_col = station_col
        self.date_col = date_col

        df = observations.copy()
        if station_col not in df.columns:
            raise InvalidConfigurationError(
                f"Observation table has no {station_col!r} column"
            )
        df[station_col] = df[station_col].astype(str)
        self.date_col = detect_date_column(df, date_col)
        df[self.date_col] = pd.to_datetime(df[self.date_col]).dt.normalize()

        if variables is None:
            variables = [
                c for c in df.select_dtypes(include=[np.number]).columns
                if c not in (station_col, self.date_col)
            ]
        else:
            unknown = [v for v in variables if v not in df.columns]
            if unknown:
                raise InvalidConfigurationError(
                    f"Unknown variables: {', '.join(unknown)}"
                )
        if not variables:
            raise InvalidConfigurationError("Observation table has no numeric variables")
        self.variables = list(variables)

        df[self.variables] = df[self.variables].astype(float)
        self.sentinels_replaced = self._replace_sentinels(df)

        dupes = df.duplicated([station_col, self.date_col])
        if dupes.any():
            logger.warning(
                "Dropping %d duplicate (station, date) rows", int(dupes.sum())
            )
            df = df[~dupes]

        self._frames = {}
        for station_id, grp in df.groupby(station_col, sort=True):
            grp = grp.set_index(self.date_col).sort_index()
            full_range = pd.date_range(grp.index.min(), grp.index.max(), freq="D")
            frame = grp[self.variables].reindex(full_range)
            frame.index.name = "date"
            self._frames[station_id] = frame

        unregistered = sorted(set(self._frames) - set(self.registry))
        if unregistered:
            logger.warning(
                "Observations for stations missing from registry: %s",
                ", ".join(unregistered),
            )

        # Wide per-variable views (date x station) used for donor lookup
        self._wide = {}
        for var in self.variables:
            if not self._frames:
                self._wide[var] = pd.DataFrame(dtype=float)
                continue
            wide = pd.concat(
                {sid: frame[var] for sid, frame in self._frames.items()}, axis=1
            )
            self._wide[var] = wide.sort_index()

    def _replace_sentinels(self, df):
        replaced = {}
        for col in self.variables:
            mask = df[col].isin(MISSING_SENTINELS)
            if mask.any():
                df.loc[mask, col] = np.nan
                replaced[col] = int(mask.sum())
        return replaced

    @property
    def station_ids(self):
        """Stations that have observations."""
        return list(self._frames)

    def has_coverage(self, station_id):
        return station_id in self._frames

    def coverage(self, station_id):
        """First and last date of a station's window, or None."""
        frame = self._frames.get(station_id)
        if frame is None:
            return None
        return frame.index[0], frame.index[-1]

    def station_frame(self, station_id):
        """Date-indexed variable frame for one station. Do not mutate."""
        return self._frames[station_id]

    def wide(self, variable):
        """Date x station frame for one variable. Do not mutate."""
        return self._wide[variable]

    def value(self, station_id, date, variable):
        frame = self._frames.get(station_id)
        if frame is None or date not in frame.index:
            return np.nan
        return frame.at[date, variable]

    def to_frame(self):
        """Long-format copy: one row per (station, date)."""
        frames = [
            frame.reset_index().assign(**{self.station_col: sid})
            for sid, frame in self._frames.items()
        ]
        cols = [self.station_col, "date"] + self.variables
        return pd.concat(frames, ignore_index=True)[cols]

    def __repr__(self):
        return (
            f"ObservationTable({len(self.registry)} stations registered, "
            f"{len(self._frames)} with data, variables={self.variables})"
        )


def load_stations_csv(filepath_or_buffer, id_col="station_id"):
    """Load the station registry from a CSV file."""
    df = pd.read_csv(filepath_or_buffer, dtype={id_col: str})
    if id_col != "station_id":
        df = df.rename(columns={id_col: "station_id"})
    return df


def load_observations_csv(filepath_or_buffer, date_col=None, station_col="station_id"):
    """Load long-format daily observations from a CSV file."""
    df = pd.read_csv(filepath_or_buffer, dtype={station_col: str})
    date_col = detect_date_column(df, date_col or "date")
    if date_col != "date":
        df = df.rename(columns={date_col: "date"})
    return df
