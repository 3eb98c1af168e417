"""
Distance metrics between stations, in kilometres.

Each metric maps one origin (lat, lon) and arrays of destination coordinates
to an array of distances. Both are deterministic and monotonic in separation.
"""

import numpy as np
from scipy.spatial.distance import cdist
from sklearn.metrics.pairwise import haversine_distances

EARTH_RADIUS_KM = 6371.0


class DistanceMetric:
    name = None

    def __call__(self, lat, lon, lats, lons):
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}()"


class GreatCircleDistance(DistanceMetric):
    """Haversine distance on a spherical Earth."""

    name = "great_circle"

    def __call__(self, lat, lon, lats, lons):
        lats = np.asarray(lats, dtype=float)
        lons = np.asarray(lons, dtype=float)
        if lats.size == 0:
            return np.empty(0)
        origin = np.radians([[lat, lon]])
        dest = np.radians(np.column_stack([lats, lons]))
        return haversine_distances(origin, dest)[0] * EARTH_RADIUS_KM


class PlanarDistance(DistanceMetric):
    """
    Euclidean distance on an equirectangular projection centred on the
    origin station. Adequate for the small extents of a station network.
    """

    name = "planar"

    def __call__(self, lat, lon, lats, lons):
        lats = np.asarray(lats, dtype=float)
        lons = np.asarray(lons, dtype=float)
        if lats.size == 0:
            return np.empty(0)
        scale = np.cos(np.radians(lat))
        origin = np.array([[lon * scale, lat]])
        dest = np.column_stack([lons * scale, lats])
        return cdist(origin, dest)[0] * np.radians(1.0) * EARTH_RADIUS_KM


METRICS = {
    GreatCircleDistance.name: GreatCircleDistance,
    PlanarDistance.name: PlanarDistance,
}


def get_metric(name):
    """Instantiate a metric by name."""
    try:
        return METRICS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown distance metric: {name}. "
            f"Choose from: {', '.join(METRICS)}"
        ) from None
