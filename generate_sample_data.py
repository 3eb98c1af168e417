#!/usr/bin/env python3
"""Generate a synthetic station network with controlled gaps."""

import numpy as np
import pandas as pd


def generate_sample_network(
    n_stations=8,
    start_date="2019-01-01",
    end_date="2020-12-31",
    gap_pct=0.03,
    n_sensor_failures=4,
    seed=42,
):
    """
    Return (stations, observations) DataFrames.

    Stations are scattered within ~1 degree of a common centre and share a
    regional weather signal plus local noise, so neighbours are good donors.
    """
    rng = np.random.default_rng(seed)
    dates = pd.date_range(start_date, end_date, freq="D")
    n = len(dates)
    doy = dates.dayofyear.to_numpy()

    stations = pd.DataFrame({
        "station_id": [f"ST{i:03d}" for i in range(1, n_stations + 1)],
        "name": [f"Sample Station {i}" for i in range(1, n_stations + 1)],
        "latitude": np.round(45.0 + rng.uniform(-1, 1, n_stations), 4),
        "longitude": np.round(-75.0 + rng.uniform(-1, 1, n_stations), 4),
        "elevation": np.round(rng.uniform(50, 800, n_stations), 1),
    })

    # Regional signal shared by every station
    regional_temp = 8 + 14 * np.sin(2 * np.pi * (doy - 105) / 365)
    noise = rng.normal(0, 2.5, n)
    for i in range(1, n):
        noise[i] = 0.6 * noise[i - 1] + 0.4 * noise[i]
    regional_temp += noise
    wet = rng.random(n) < 0.3
    regional_precip = np.maximum(0, rng.exponential(6, n) * wet)

    frames = []
    for station in stations.itertuples(index=False):
        lapse = -0.0065 * station.elevation
        temp = regional_temp + lapse + rng.normal(0, 0.8, n)
        tmax = temp + np.abs(rng.normal(4, 1, n))
        tmin = temp - np.abs(rng.normal(4, 1, n))
        precip = np.maximum(0, regional_precip * rng.uniform(0.7, 1.3, n))

        df = pd.DataFrame({
            "station_id": station.station_id,
            "date": dates,
            "TEMP_MAX": np.round(tmax, 1),
            "TEMP_MIN": np.round(tmin, 1),
            "PRECIP": np.round(precip, 1),
        })
        variables = ["TEMP_MAX", "TEMP_MIN", "PRECIP"]

        # Random single-point gaps
        for col in variables:
            mask = rng.random(n) < gap_pct
            df.loc[mask, col] = np.nan

        # Sensor failures (5-15 days)
        for _ in range(n_sensor_failures):
            start = int(rng.integers(0, n - 20))
            length = int(rng.integers(5, 15))
            col = rng.choice(variables)
            df.loc[start: start + length, col] = np.nan

        # Sentinel values
        for _ in range(3):
            idx = int(rng.integers(0, n))
            df.loc[idx, rng.choice(variables)] = -9999

        frames.append(df)

    return stations, pd.concat(frames, ignore_index=True)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser()
    parser.add_argument("--stations", default="sample_stations.csv")
    parser.add_argument("-o", "--output", default="sample_observations.csv")
    parser.add_argument("-n", "--n-stations", type=int, default=8)
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    stations, obs = generate_sample_network(n_stations=args.n_stations, seed=args.seed)
    stations.to_csv(args.stations, index=False)
    obs.to_csv(args.output, index=False)
    print(f"Generated {len(stations)} stations → {args.stations}")
    print(f"Generated {len(obs)} records → {args.output}")
    for col in obs.columns[2:]:
        missing = obs[col].isna().sum()
        pct = missing / len(obs) * 100
        print(f"  {col}: {missing} missing ({pct:.1f}%)")
