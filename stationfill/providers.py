"""
Raw observation provider — Open-Meteo archive (free, no API key).

Pulls daily series at each station's coordinates and returns them in the
long format ObservationTable expects.
"""

import logging

import pandas as pd

from .table import build_registry

logger = logging.getLogger(__name__)

OPEN_METEO_URL = "https://archive-api.open-meteo.com/v1/archive"

DEFAULT_VARIABLES = [
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
]


def get_open_meteo_data(lat, lon, start_date, end_date, variables=None):
    """
    Download daily archive data for one location.

    Parameters
    ----------
    lat, lon : float
        Station coordinates
    start_date, end_date : str
        Date range (YYYY-MM-DD)
    variables : list, optional
        Open-Meteo daily variable names.

    Returns
    -------
    pd.DataFrame
        Daily data with a 'date' column and one column per variable.
    """
    import requests

    if variables is None:
        variables = DEFAULT_VARIABLES

    params = {
        "latitude": lat,
        "longitude": lon,
        "start_date": start_date,
        "end_date": end_date,
        "daily": ",".join(variables),
        "timezone": "auto",
    }

    response = requests.get(OPEN_METEO_URL, params=params, timeout=60)
    response.raise_for_status()
    data = response.json()

    if "daily" not in data:
        raise ValueError(f"No data returned from Open-Meteo. Response: {data}")

    df = pd.DataFrame(data["daily"])
    df["time"] = pd.to_datetime(df["time"])
    return df.rename(columns={"time": "date"})


def fetch_observations(stations, start_date, end_date, variables=None):
    """
    Long-format observations for every station in the registry.

    A station whose download fails is skipped with a warning; it then simply
    has no coverage downstream.
    """
    frames = []
    for station in build_registry(stations).values():
        try:
            df = get_open_meteo_data(
                station.latitude, station.longitude,
                start_date, end_date, variables,
            )
        except Exception as e:
            logger.warning("Open-Meteo download failed for %s: %s", station.station_id, e)
            continue
        df.insert(0, "station_id", station.station_id)
        frames.append(df)

    if not frames:
        raise ValueError("No observations downloaded for any station")
    return pd.concat(frames, ignore_index=True)
