"""
Reconciliation options.
"""

from .distance import METRICS
from .errors import InvalidConfigurationError

WEIGHTINGS = ("inverse_distance", "nearest_only")


class ReconcileOptions:
    """
    Tunables for a reconciliation run.

    Parameters
    ----------
    max_donors : int, optional
        Number of nearest donors blended per gap. ``None`` uses every donor
        with a value that day.
    weighting : str
        ``"inverse_distance"`` or ``"nearest_only"``.
    distance_metric : str
        ``"great_circle"`` or ``"planar"``.
    decay : callable, optional
        Maps distance in km to a weight, replacing ``1 / distance``.
    exclude_key_donors : bool
        Keep other key stations out of the donor pool. By default they donate
        their observed (never infilled) values like any other station.
    workers : int, optional
        Thread pool size. ``None`` lets the executor decide.
    emit_warnings : bool
        Have ``reconcile`` issue an ``IrreconcilableGapWarning`` per unfilled
        gap.
    """

    FIELDS = (
        "max_donors",
        "weighting",
        "distance_metric",
        "decay",
        "exclude_key_donors",
        "workers",
        "emit_warnings",
    )

    def __init__(self, max_donors=None, weighting="inverse_distance",
                 distance_metric="great_circle", decay=None,
                 exclude_key_donors=False, workers=None, emit_warnings=True):
        self.max_donors = max_donors
        self.weighting = weighting
        self.distance_metric = distance_metric
        self.decay = decay
        self.exclude_key_donors = exclude_key_donors
        self.workers = workers
        self.emit_warnings = emit_warnings

    @classmethod
    def from_dict(cls, config):
        unknown = set(config) - set(cls.FIELDS)
        if unknown:
            raise InvalidConfigurationError(
                f"Unknown options: {', '.join(sorted(unknown))}"
            )
        return cls(**config)

    def to_dict(self):
        return {f: getattr(self, f) for f in self.FIELDS if f != "decay"}

    def validate(self):
        """Raise InvalidConfigurationError on any bad value."""
        for field in ("max_donors", "workers"):
            value = getattr(self, field)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise InvalidConfigurationError(
                    f"{field} must be a positive integer, got {value!r}"
                )
        if self.weighting not in WEIGHTINGS:
            raise InvalidConfigurationError(
                f"Unknown weighting: {self.weighting}. "
                f"Choose from: {', '.join(WEIGHTINGS)}"
            )
        if self.distance_metric not in METRICS:
            raise InvalidConfigurationError(
                f"Unknown distance metric: {self.distance_metric}. "
                f"Choose from: {', '.join(METRICS)}"
            )
        if self.decay is not None and not callable(self.decay):
            raise InvalidConfigurationError("decay must be callable")
        return self

    def __repr__(self):
        args = ", ".join(f"{k}={v!r}" for k, v in self.to_dict().items())
        return f"ReconcileOptions({args})"
