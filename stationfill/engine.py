"""
StationFill Engine — gap detection, donor ranking and infill.
"""

import logging
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pandas as pd

from .distance import get_metric
from .errors import InvalidConfigurationError, UnknownStationError
from .options import ReconcileOptions
from .report import ReconciliationReport
from .table import ObservationTable

logger = logging.getLogger(__name__)

Gap = namedtuple("Gap", ["station_id", "date", "variable"])
Donor = namedtuple("Donor", ["station_id", "distance", "value"])
Infill = namedtuple("Infill", ["value", "donors", "method"])

FLAG_ORIGINAL = "O"
FLAG_FILLED = "F"
FLAG_MISSING = "M"


class GapDetector:
    """Finds missing cells of key stations, one variable at a time."""

    def __init__(self, table):
        self.table = table

    def _frame(self, station_id):
        if not self.table.has_coverage(station_id):
            raise UnknownStationError(station_id)
        if station_id not in self.table.registry:
            raise UnknownStationError(station_id, "not in the station registry")
        return self.table.station_frame(station_id)

    def detect(self, station_id):
        """Return {variable: [Gap, ...]} with gaps ordered by date."""
        frame = self._frame(station_id)
        gaps = {}
        for var in self.table.variables:
            missing = frame.index[frame[var].isna().to_numpy()]
            gaps[var] = [Gap(station_id, date, var) for date in missing]
        return gaps

    def detect_all(self, station_ids):
        return {sid: self.detect(sid) for sid in station_ids}

    @staticmethod
    def _runs(mask):
        """Contiguous True runs of a boolean array as (start, end) pairs."""
        runs = []
        in_gap = False
        start = None
        for i, missing in enumerate(mask):
            if missing and not in_gap:
                start = i
                in_gap = True
            elif not missing and in_gap:
                runs.append((start, i - 1))
                in_gap = False
        if in_gap:
            runs.append((start, len(mask) - 1))
        return runs

    def summarize(self, station_id):
        """Gap statistics per variable for one station."""
        frame = self._frame(station_id)
        total = len(frame)
        summary = {}
        for var in self.table.variables:
            mask = frame[var].isna().to_numpy()
            runs = self._runs(mask)
            lengths = [end - start + 1 for start, end in runs]
            n_missing = int(mask.sum())
            summary[var] = {
                "total_records": total,
                "missing_count": n_missing,
                "missing_pct": round(n_missing / total * 100, 2) if total else 0.0,
                "n_gaps": len(runs),
                "gaps": [
                    {
                        "start_date": frame.index[start].strftime("%Y-%m-%d"),
                        "end_date": frame.index[end].strftime("%Y-%m-%d"),
                        "length": end - start + 1,
                    }
                    for start, end in runs
                ],
                "max_gap_length": max(lengths) if lengths else 0,
                "mean_gap_length": (
                    round(float(np.mean(lengths)), 1) if lengths else 0
                ),
                "gap_length_distribution": {
                    "1": sum(1 for g in lengths if g == 1),
                    "2-5": sum(1 for g in lengths if 2 <= g <= 5),
                    "6-15": sum(1 for g in lengths if 6 <= g <= 15),
                    "16-30": sum(1 for g in lengths if 16 <= g <= 30),
                    ">30": sum(1 for g in lengths if g > 30),
                },
            }
        return summary


class DonorSelector:
    """
    Ranks donor stations for a key station by distance.

    The ranking depends only on the registry and on which stations have
    observations; per-gap donor lists then keep the ranked stations that
    have a real value for that date and variable.
    """

    def __init__(self, table, metric="great_circle", exclude=()):
        self.table = table
        self.metric = get_metric(metric) if isinstance(metric, str) else metric
        self.exclude = frozenset(exclude)

    def rank(self, station_id):
        """Return [(donor_id, distance_km), ...] nearest first, ties by id."""
        target = self.table.registry[station_id]
        candidates = [
            s for sid, s in self.table.registry.items()
            if sid != station_id
            and sid not in self.exclude
            and self.table.has_coverage(sid)
        ]
        distances = self.metric(
            target.latitude,
            target.longitude,
            [s.latitude for s in candidates],
            [s.longitude for s in candidates],
        )
        ranked = sorted(
            zip((s.station_id for s in candidates), distances.tolist()),
            key=lambda pair: (pair[1], pair[0]),
        )
        return ranked

    def donors_for(self, station_id, variable, dates, ranking=None):
        """Return {date: [Donor, ...]} for a batch of gap dates."""
        if ranking is None:
            ranking = self.rank(station_id)
        donor_ids = [sid for sid, _ in ranking]
        distance = dict(ranking)
        wide = self.table.wide(variable).reindex(index=pd.DatetimeIndex(dates),
                                                 columns=donor_ids)
        result = {}
        for date, row in zip(wide.index, wide.to_numpy()):
            result[date] = [
                Donor(sid, distance[sid], float(value))
                for sid, value in zip(donor_ids, row)
                if not np.isnan(value)
            ]
        return result

    def select(self, gap, ranking=None):
        """Ordered donors with a real value for one gap."""
        return self.donors_for(gap.station_id, gap.variable, [gap.date], ranking)[gap.date]


class InfillEngine:
    """Blends donor values into a replacement for one gap."""

    def __init__(self, options=None):
        self.options = options or ReconcileOptions()

    def _weights(self, distances):
        if self.options.decay is not None:
            return np.array([self.options.decay(d) for d in distances], dtype=float)
        return 1.0 / distances

    def fill(self, gap, donors):
        """Return an Infill, or None when the gap is irreconcilable."""
        usable = [d for d in donors if d.value is not None and not np.isnan(d.value)]
        if not usable:
            return None
        if self.options.max_donors is not None:
            usable = usable[: self.options.max_donors]

        for donor in usable:
            if donor.distance == 0:
                return Infill(donor.value, (donor.station_id,), "colocated")

        if self.options.weighting == "nearest_only":
            nearest = usable[0]
            return Infill(nearest.value, (nearest.station_id,), "nearest_only")

        distances = np.array([d.distance for d in usable], dtype=float)
        values = np.array([d.value for d in usable], dtype=float)
        weights = self._weights(distances)
        valid = np.isfinite(weights) & (weights > 0)
        if not valid.any():
            logger.debug("No positive donor weight for %s", gap)
            return None

        weights = weights[valid]
        value = float(np.sum(weights * values[valid]) / np.sum(weights))
        used = tuple(d.station_id for d, ok in zip(usable, valid) if ok)
        return Infill(value, used, "inverse_distance")


class StationSeries:
    """Reconciled values of one key station with per-cell flags."""

    def __init__(self, station, values, flags, methods):
        self.station = station
        self.values = values
        self.flags = flags
        self.methods = methods

    @property
    def station_id(self):
        return self.station.station_id

    @property
    def variables(self):
        return list(self.values.columns)

    def missing_count(self):
        return int(self.values.isna().to_numpy().sum())

    def equals(self, other):
        same_station = all(
            a == b or (pd.isna(a) and pd.isna(b))
            for a, b in zip(self.station, other.station)
        )
        return (
            same_station
            and self.values.equals(other.values)
            and self.flags.equals(other.flags)
            and self.methods.equals(other.methods)
        )

    def __repr__(self):
        return (
            f"StationSeries({self.station_id!r}, {len(self.values)} days, "
            f"{self.missing_count()} missing)"
        )


class ReconciledSeries:
    """Mapping of key station id -> StationSeries, in key order."""

    def __init__(self):
        self._series = {}

    def add(self, station_series):
        self._series[station_series.station_id] = station_series

    def __getitem__(self, station_id):
        return self._series[station_id]

    def __contains__(self, station_id):
        return station_id in self._series

    def __iter__(self):
        return iter(self._series.values())

    def __len__(self):
        return len(self._series)

    @property
    def station_ids(self):
        return list(self._series)

    def equals(self, other):
        return self.station_ids == other.station_ids and all(
            s.equals(other[s.station_id]) for s in self
        )

    def __repr__(self):
        return f"ReconciledSeries({self.station_ids})"


def normalize_key_stations(key_station_ids):
    """De-duplicate key station ids, keeping caller order."""
    if isinstance(key_station_ids, str):
        key_station_ids = [key_station_ids]
    keys = list(dict.fromkeys(str(k) for k in (key_station_ids or [])))
    if not keys:
        raise InvalidConfigurationError("Key station set is empty")
    return keys


class StationFillEngine:
    """
    Reconciles key stations of an ObservationTable.

    Each key station is an independent task: it reads only the shared,
    read-only table and returns its own series and partial report. The
    calling thread merges the partial reports in key order.
    """

    def __init__(self, table, options=None):
        self.table = table
        self.options = (options or ReconcileOptions()).validate()
        self.infill = InfillEngine(self.options)
        self.detector = GapDetector(table)

    def reconcile_station(self, station_id, key_ids=()):
        """Fill one key station. Returns (StationSeries, ReconciliationReport)."""
        gaps = self.detector.detect(station_id)
        station = self.table.registry[station_id]

        # Donors read the raw table, so other key stations lend observed values only
        exclude = set(key_ids) - {station_id} if self.options.exclude_key_donors else ()
        selector = DonorSelector(self.table, self.options.distance_metric, exclude)
        ranking = selector.rank(station_id)

        frame = self.table.station_frame(station_id)
        values = frame.copy()
        flags = pd.DataFrame(FLAG_ORIGINAL, index=frame.index, columns=frame.columns)
        methods = pd.DataFrame("original", index=frame.index, columns=frame.columns)

        report = ReconciliationReport()
        report.record_station(station_id, self.detector.summarize(station_id))

        for var, var_gaps in gaps.items():
            if not var_gaps:
                continue
            donors = selector.donors_for(
                station_id, var, [g.date for g in var_gaps], ranking
            )
            for gap in var_gaps:
                result = self.infill.fill(gap, donors[gap.date])
                if result is None:
                    flags.at[gap.date, var] = FLAG_MISSING
                    methods.at[gap.date, var] = "irreconcilable"
                    report.record_irreconcilable(station_id, gap.date, var)
                else:
                    values.at[gap.date, var] = result.value
                    flags.at[gap.date, var] = FLAG_FILLED
                    methods.at[gap.date, var] = result.method
                    report.record_filled(station_id, gap.date, var)

        counts = report.station_counts[station_id]
        logger.info(
            "Station %s: %d gaps, %d filled, %d irreconcilable",
            station_id, counts["gaps"], counts["filled"], counts["irreconcilable"],
        )
        return StationSeries(station, values, flags, methods), report

    def run(self, key_station_ids):
        """Reconcile every key station. Returns (ReconciledSeries, report)."""
        key_ids = normalize_key_stations(key_station_ids)
        series = ReconciledSeries()
        report = ReconciliationReport()

        with ThreadPoolExecutor(max_workers=self.options.workers) as executor:
            futures = [
                (sid, executor.submit(self.reconcile_station, sid, key_ids))
                for sid in key_ids
            ]
            for sid, future in futures:
                try:
                    station_series, partial = future.result()
                except UnknownStationError as e:
                    logger.warning("%s", e)
                    report.record_failure(sid, e)
                    continue
                except Exception as e:
                    logger.exception("Reconciliation failed for station %s", sid)
                    report.record_failure(sid, e)
                    continue
                series.add(station_series)
                report.merge(partial)

        logger.info(
            "Reconciled %d/%d key stations: %d gaps, %d filled, %d irreconcilable",
            len(series), len(key_ids), report.total_gaps,
            report.filled_count, report.unfilled_count,
        )
        return series, report


def reconcile(stations, observations, key_station_ids, options=None):
    """
    Fill the gaps of the key stations from the other stations.

    Parameters
    ----------
    stations : pd.DataFrame or iterable of Station
        Station registry. Ignored when ``observations`` is already an
        ObservationTable.
    observations : pd.DataFrame or ObservationTable
        Long-format daily observations with ``station_id`` and ``date``.
    key_station_ids : iterable of str
        Stations to reconcile.
    options : ReconcileOptions or dict, optional

    Returns
    -------
    (ReconciledSeries, ReconciliationReport)
    """
    if options is None:
        options = ReconcileOptions()
    elif isinstance(options, dict):
        options = ReconcileOptions.from_dict(options)
    options.validate()
    key_ids = normalize_key_stations(key_station_ids)

    if isinstance(observations, ObservationTable):
        table = observations
    else:
        table = ObservationTable(stations, observations)

    series, report = StationFillEngine(table, options).run(key_ids)
    if options.emit_warnings:
        report.emit(stacklevel=3)
    return series, report
