import numpy as np
import pandas as pd
import pytest

from stationfill import (
    OutputWriteError,
    ReconcileOptions,
    StationWriter,
    read_station_file,
    reconcile,
    write,
)
from stationfill.writer import MISSING_VALUE, atomic_output

from conftest import KEY_IDS

DAY = pd.Timestamp("2020-01-03")


@pytest.fixture
def reconciled(network):
    missing = [("K1", DAY, "TEMP"), ("K2", "2020-01-06", "PRECIP")]
    stations, obs = network(missing=missing)
    series, report = reconcile(
        stations, obs, KEY_IDS, ReconcileOptions(emit_warnings=False)
    )
    return stations, series, report


def test_round_trip(reconciled, tmp_path):
    stations, series, _ = reconciled
    units = write(series, stations, tmp_path)
    assert [u.station_id for u in units] == KEY_IDS
    for unit in units:
        assert unit.ok
        metadata, df = read_station_file(unit.path)
        original = series[unit.station_id]
        assert metadata == original.station._asdict()
        assert list(df.columns) == original.variables
        assert df.index.equals(original.values.index)
        np.testing.assert_array_equal(df.to_numpy(), original.values.to_numpy())


def test_irreconcilable_cells_use_marker(network, tmp_path):
    stations, obs = network(aux_ids=[], missing=[(k, DAY, "TEMP") for k in KEY_IDS])
    series, _ = reconcile(stations, obs, KEY_IDS, ReconcileOptions(emit_warnings=False))
    unit = StationWriter(tmp_path).write(series, stations)[0]
    assert repr(MISSING_VALUE) in unit.path.read_text()
    _, df = read_station_file(unit.path)
    assert np.isnan(df.at[DAY, "TEMP"])
    assert df.isna().sum().sum() == 1


def test_file_naming(tmp_path):
    writer = StationWriter(tmp_path)
    assert writer.path_for("K1").name == "station_K1.rvt"
    a = writer.path_for("a/b")
    b = writer.path_for("a%2Fb")
    assert a != b
    assert a.parent == tmp_path
    assert writer.station_id_for(a) == "a/b"
    assert writer.station_id_for(b) == "a%2Fb"
    with pytest.raises(ValueError):
        writer.station_id_for(tmp_path / "other.csv")


def test_header_block(reconciled, tmp_path):
    stations, series, _ = reconciled
    unit = StationWriter(tmp_path, units={"TEMP": "C", "PRECIP": "mm/d"}).write(series, stations)[0]
    text = unit.path.read_text()
    assert ":Gauge K1" in text
    assert "  :StationName Key K1" in text
    assert "  :Units,C,mm/d" in text
    assert "  2020-01-01 00:00:00 1.0 10" in text


def test_failed_station_is_atomic_and_isolated(reconciled, tmp_path, monkeypatch):
    stations, series, report = reconciled
    writer = StationWriter(tmp_path, workers=2)
    target = writer.path_for("K2")
    target.write_text("previous run\n")

    original = StationWriter._lines

    def _boom(self, station, data):
        for i, line in enumerate(original(self, station, data)):
            if station.station_id == "K2" and i == 12:
                raise OSError("disk full")
            yield line

    monkeypatch.setattr(StationWriter, "_lines", _boom)
    units = writer.write(series, stations, report)

    by_id = {u.station_id: u for u in units}
    assert by_id["K1"].ok and by_id["K3"].ok
    assert isinstance(by_id["K2"].error, OutputWriteError)
    assert "disk full" in str(by_id["K2"].error)
    assert target.read_text() == "previous run\n"
    assert not list(tmp_path.glob("*.tmp"))
    assert "K2" in report.output_errors
    assert not report.ok


def test_unwritable_target(reconciled, tmp_path):
    stations, series, report = reconciled
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("")
    units = StationWriter(blocker).write(series, stations, report)
    assert all(not u.ok for u in units)
    assert set(report.output_errors) == set(KEY_IDS)


def test_station_missing_from_registry(reconciled, tmp_path):
    stations, series, _ = reconciled
    units = StationWriter(tmp_path).write(series, stations[stations.station_id != "K3"])
    assert [u.ok for u in units] == [True, True, False]
    assert not (tmp_path / "station_K3.rvt").exists()


def test_atomic_output_discards_on_error(tmp_path):
    path = tmp_path / "unit.rvt"
    with pytest.raises(RuntimeError):
        with atomic_output(path) as f:
            f.write("partial")
            raise RuntimeError("stop")
    assert not path.exists()
    assert list(tmp_path.iterdir()) == []


def test_read_rejects_truncated_file(tmp_path):
    path = tmp_path / "station_X.rvt"
    path.write_text(":Gauge X\n:EndGauge\n:MultiData\n  2020-01-01 00:00:00 1.0 3\n"
                    "  :Parameters,TEMP\n  :Units,C\n  1.0\n:EndMultiData\n")
    with pytest.raises(ValueError, match="expected 3 rows"):
        read_station_file(path)


def test_variable_names_that_break_the_table_are_rejected(network, tmp_path):
    stations, obs = network(missing=[("K1", DAY, "TEMP")])
    obs = obs.rename(columns={"PRECIP": "precip,mm"})
    series, _ = reconcile(stations, obs, ["K1"], ReconcileOptions(emit_warnings=False))

    unit = StationWriter(tmp_path).write(series, stations)[0]

    assert isinstance(unit.error, OutputWriteError)
    assert "precip,mm" in str(unit.error)
    assert list(tmp_path.iterdir()) == []


@pytest.mark.parametrize("name", ["Upper\nRiver", " Upper River", "Upper River\r"])
def test_station_names_that_break_the_header_are_rejected(reconciled, tmp_path, name):
    stations, series, report = reconciled
    stations = stations.copy()
    stations.loc[stations.station_id == "K2", "name"] = name

    units = StationWriter(tmp_path).write(series, stations, report)

    assert [u.ok for u in units] == [True, False, True]
    assert not (tmp_path / "station_K2.rvt").exists()
    assert isinstance(report.output_errors["K2"], OutputWriteError)


def test_name_with_inner_spaces_round_trips(reconciled, tmp_path):
    stations, series, _ = reconciled
    stations = stations.copy()
    stations.loc[stations.station_id == "K1", "name"] = "Upper  River, North"
    unit = StationWriter(tmp_path).write(series, stations)[0]
    metadata, _ = read_station_file(unit.path)
    assert metadata["name"] == "Upper  River, North"
