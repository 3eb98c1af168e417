import io

import numpy as np
import pandas as pd
import pytest

from stationfill import InvalidConfigurationError, Station
from stationfill.distance import PlanarDistance, GreatCircleDistance, get_metric
from stationfill.options import ReconcileOptions
from stationfill.table import (
    ObservationTable,
    build_registry,
    detect_date_column,
    load_observations_csv,
    load_stations_csv,
)


class TestRegistry:
    def test_registry_sorted_and_deduplicated(self, network):
        stations, _ = network()
        dup = pd.concat([stations, stations.iloc[[0]].assign(name="Other")])
        registry = build_registry(dup)
        assert list(registry) == sorted(stations["station_id"])
        assert registry["K1"].name == "Key K1"
        assert isinstance(registry["K1"], Station)

    def test_registry_from_records(self):
        registry = build_registry([(1001, "One", 45, -75, None)])
        assert registry["1001"].latitude == 45.0
        assert np.isnan(registry["1001"].elevation)

    def test_missing_columns(self):
        with pytest.raises(InvalidConfigurationError, match="missing columns"):
            build_registry(pd.DataFrame({"station_id": ["A"]}))


class TestObservationTable:
    def test_absent_dates_become_explicit_missing(self, network):
        stations, obs = network()
        obs = obs.drop(obs[(obs.station_id == "K1") & (obs.date == "2020-01-04")].index)
        table = ObservationTable(stations, obs)
        frame = table.station_frame("K1")
        assert len(frame) == 10
        assert frame.loc[pd.Timestamp("2020-01-04")].isna().all()

    def test_sentinels_replaced(self, network):
        stations, obs = network()
        obs.loc[0, "TEMP"] = -9999
        obs.loc[1, "PRECIP"] = -999
        table = ObservationTable(stations, obs)
        assert table.sentinels_replaced == {"TEMP": 1, "PRECIP": 1}
        assert table.station_frame("K1")["TEMP"].isna().sum() == 1

    def test_input_not_mutated(self, network):
        stations, obs = network()
        obs.loc[0, "TEMP"] = -9999
        before = obs.copy()
        ObservationTable(stations, obs)
        pd.testing.assert_frame_equal(obs, before)

    def test_variables_detected(self, network):
        stations, obs = network()
        table = ObservationTable(stations, obs)
        assert table.variables == ["TEMP", "PRECIP"]

    def test_unknown_variable(self, network):
        stations, obs = network()
        with pytest.raises(InvalidConfigurationError, match="Unknown variables"):
            ObservationTable(stations, obs, variables=["WIND"])

    def test_coverage_windows_differ(self, network):
        stations, obs = network()
        obs = obs[~((obs.station_id == "A1") & (obs.date < "2020-01-05"))]
        table = ObservationTable(stations, obs)
        assert table.coverage("A1")[0] == pd.Timestamp("2020-01-05")
        assert table.coverage("K1")[0] == pd.Timestamp("2020-01-01")
        assert table.coverage("NOPE") is None
        assert np.isnan(table.value("A1", pd.Timestamp("2020-01-02"), "TEMP"))

    def test_duplicate_rows_dropped(self, network):
        stations, obs = network()
        obs = pd.concat([obs, obs.iloc[[0]]], ignore_index=True)
        table = ObservationTable(stations, obs)
        assert len(table.station_frame("K1")) == 10

    def test_to_frame_long_format(self, network):
        stations, obs = network()
        long = ObservationTable(stations, obs).to_frame()
        assert list(long.columns) == ["station_id", "date", "TEMP", "PRECIP"]
        assert len(long) == len(obs)


class TestLoading:
    def test_detect_date_column(self):
        df = pd.DataFrame({"id": ["a", "b"], "Day": ["2020-01-01", "2020-01-02"]})
        assert detect_date_column(df) == "Day"

    def test_no_date_column_raises(self):
        df = pd.DataFrame({"name": ["abc", "def"], "val": ["xyz", "uvw"]})
        with pytest.raises(ValueError, match="No date column"):
            detect_date_column(df)

    def test_load_csvs(self, network):
        stations, obs = network()
        sbuf, obuf = io.StringIO(), io.StringIO()
        stations.rename(columns={"station_id": "ID"}).to_csv(sbuf, index=False)
        obs.rename(columns={"date": "Date"}).to_csv(obuf, index=False)
        sbuf.seek(0)
        obuf.seek(0)
        table = ObservationTable(
            load_stations_csv(sbuf, id_col="ID"), load_observations_csv(obuf)
        )
        assert set(table.registry) == set(stations["station_id"])
        assert table.variables == ["TEMP", "PRECIP"]


class TestDistance:
    def test_great_circle_one_degree(self):
        d = GreatCircleDistance()(0.0, 0.0, [1.0], [0.0])
        assert d[0] == pytest.approx(111.19, abs=0.01)

    def test_planar_close_to_great_circle_at_small_scale(self):
        planar = PlanarDistance()(45.0, -75.0, [45.1], [-75.1])
        great = GreatCircleDistance()(45.0, -75.0, [45.1], [-75.1])
        assert planar[0] == pytest.approx(great[0], rel=0.01)

    def test_zero_distance(self):
        for metric in (PlanarDistance(), GreatCircleDistance()):
            assert metric(10.0, 20.0, [10.0], [20.0])[0] == 0.0

    def test_empty(self):
        assert len(GreatCircleDistance()(0.0, 0.0, [], [])) == 0

    def test_unknown_metric(self):
        with pytest.raises(ValueError, match="Unknown distance metric"):
            get_metric("manhattan")


class TestOptions:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_donors": 0},
            {"max_donors": -2},
            {"max_donors": True},
            {"workers": 0},
            {"weighting": "kriging"},
            {"distance_metric": "manhattan"},
            {"decay": 3},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(InvalidConfigurationError):
            ReconcileOptions(**kwargs).validate()

    def test_from_dict(self):
        opts = ReconcileOptions.from_dict({"max_donors": 3, "distance_metric": "planar"})
        assert opts.validate().max_donors == 3
        assert opts.to_dict()["distance_metric"] == "planar"

    def test_from_dict_unknown_key(self):
        with pytest.raises(InvalidConfigurationError, match="Unknown options"):
            ReconcileOptions.from_dict({"power": 2})
