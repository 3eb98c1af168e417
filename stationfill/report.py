"""
Reconciliation Report — fill outcomes for one run.
"""

import warnings

from .errors import IrreconcilableGapWarning

FILLED = "filled"
IRRECONCILABLE = "irreconcilable"
FAILED = "failed"


class ReconciliationReport:
    """
    Append-only accumulator of gap outcomes.

    Workers build one partial report per station; the coordinator merges
    them with ``merge``. Nothing here is fatal: the caller decides whether
    irreconcilable gaps or failed stations are acceptable.
    """

    def __init__(self):
        self.total_gaps = 0
        self.filled_count = 0
        self.irreconcilable = []
        self.failed_stations = {}
        self.output_errors = {}
        self.gap_summary = {}
        self.station_counts = {}

    def _counts(self, station_id):
        return self.station_counts.setdefault(
            station_id, {"gaps": 0, "filled": 0, "irreconcilable": 0}
        )

    def record_station(self, station_id, gap_summary=None):
        """Register a processed station, even one with no gaps."""
        self._counts(station_id)
        if gap_summary is not None:
            self.gap_summary[station_id] = gap_summary

    def record_filled(self, station_id, date, variable):
        counts = self._counts(station_id)
        counts["gaps"] += 1
        counts["filled"] += 1
        self.total_gaps += 1
        self.filled_count += 1

    def record_irreconcilable(self, station_id, date, variable):
        counts = self._counts(station_id)
        counts["gaps"] += 1
        counts["irreconcilable"] += 1
        self.total_gaps += 1
        self.irreconcilable.append(
            IrreconcilableGapWarning(station_id, date, variable)
        )

    def record_failure(self, station_id, error):
        self.failed_stations[station_id] = error

    def record_output_error(self, station_id, error):
        self.output_errors[station_id] = error

    def merge(self, other):
        """Append another (partial) report into this one."""
        self.total_gaps += other.total_gaps
        self.filled_count += other.filled_count
        self.irreconcilable.extend(other.irreconcilable)
        self.failed_stations.update(other.failed_stations)
        self.output_errors.update(other.output_errors)
        self.gap_summary.update(other.gap_summary)
        for station_id, counts in other.station_counts.items():
            mine = self._counts(station_id)
            for k, v in counts.items():
                mine[k] += v
        return self

    @property
    def unfilled_count(self):
        return len(self.irreconcilable)

    @property
    def ok(self):
        """True when every gap was filled and no station failed."""
        return not (self.irreconcilable or self.failed_stations or self.output_errors)

    def outcome(self, station_id):
        """``"failed"``, ``"irreconcilable"`` or ``"filled"`` for a station."""
        if station_id in self.failed_stations:
            return FAILED
        counts = self.station_counts.get(station_id)
        if counts is None:
            raise KeyError(station_id)
        if counts["irreconcilable"]:
            return IRRECONCILABLE
        return FILLED

    def irreconcilable_for(self, station_id):
        return [w for w in self.irreconcilable if w.station_id == station_id]

    def emit(self, stacklevel=2):
        """Issue every irreconcilable gap through the warnings module."""
        for warning in self.irreconcilable:
            warnings.warn(warning, stacklevel=stacklevel)

    def to_dict(self):
        stations = {
            sid: dict(counts, outcome=self.outcome(sid))
            for sid, counts in self.station_counts.items()
        }
        for sid in self.failed_stations:
            stations[sid] = {"outcome": FAILED}
        return {
            "total_gaps": self.total_gaps,
            "filled_count": self.filled_count,
            "unfilled_count": self.unfilled_count,
            "irreconcilable": [
                {
                    "station_id": w.station_id,
                    "date": w.date.strftime("%Y-%m-%d"),
                    "variable": w.variable,
                }
                for w in self.irreconcilable
            ],
            "stations": dict(sorted(stations.items())),
            "failed_stations": {
                sid: str(err) for sid, err in self.failed_stations.items()
            },
            "output_errors": {
                sid: str(err) for sid, err in self.output_errors.items()
            },
            "gap_summary": self.gap_summary,
        }

    def __repr__(self):
        return (
            f"ReconciliationReport(total_gaps={self.total_gaps}, "
            f"filled={self.filled_count}, unfilled={self.unfilled_count}, "
            f"failed_stations={sorted(self.failed_stations)})"
        )
