import numpy as np
import pandas as pd
import pytest

from stationfill.table import STATION_COLUMNS

KEY_IDS = ["K1", "K2", "K3"]
AUX_IDS = ["A1", "A2", "A3", "A4", "A5"]


def build_network(key_ids=KEY_IDS, aux_ids=AUX_IDS, missing=(), periods=10):
    """Key stations on one parallel, auxiliaries scattered to the north."""
    rows = []
    for i, sid in enumerate(key_ids):
        rows.append((sid, f"Key {sid}", 45.0, -75.0 + 0.1 * i, 100.0 + i))
    for i, sid in enumerate(aux_ids):
        rows.append((sid, f"Aux {sid}", 45.2 + 0.05 * i, -75.0 + 0.07 * i, 200.0))
    stations = pd.DataFrame(rows, columns=STATION_COLUMNS)

    dates = pd.date_range("2020-01-01", periods=periods, freq="D")
    frames = []
    for i, row in enumerate(rows):
        frames.append(
            pd.DataFrame(
                {
                    "station_id": row[0],
                    "date": dates,
                    "TEMP": 10.0 + i + np.arange(periods) * 0.5,
                    "PRECIP": float(i),
                }
            )
        )
    obs = pd.concat(frames, ignore_index=True)
    for sid, date, var in missing:
        mask = (obs["station_id"] == sid) & (obs["date"] == pd.Timestamp(date))
        obs.loc[mask, var] = np.nan
    return stations, obs


@pytest.fixture
def network():
    return build_network
