"""Tests for the application data builders (no network access)."""

import sys

import numpy as np
import pandas as pd
import pytest

from policy_methods import panel, timeseries

from conftest import load_application_module

macro = load_application_module("macro_timeseries")
election = load_application_module("election_panel")
census = load_application_module("census_spatial")


class TestMacro:

    def test_transform_level_and_growth(self):
        raw = pd.DataFrame({
            "date": pd.date_range("2000-01-01", periods=3, freq="QS"),
            "GDPC1": [100.0, 101.0, 102.0],
        })
        out = macro.transform_series(raw, "gdp_growth")
        assert len(out) == 2
        assert out["value"].iloc[0] == pytest.approx(400 * np.log(1.01))
        assert out.attrs["key"] == "gdp_growth"

        raw = pd.DataFrame({"date": raw["date"], "UNRATE": [4.0, 4.1, np.nan]})
        out = macro.transform_series(raw, "unemployment")
        assert list(out["value"]) == [4.0, 4.1]

    def test_unknown_series(self):
        with pytest.raises(KeyError):
            macro.load_series("housing")

    def test_load_all_fails_when_every_series_fails(self, monkeypatch):
        def _down(*args, **kwargs):
            raise ConnectionError("offline")

        monkeypatch.setattr(macro, "fetch_fred_series", _down)
        with pytest.raises(RuntimeError):
            macro.load_all(use_cache=False)

    def test_simulated_series_are_stationary(self):
        sims = macro.simulate_all(seed=1)
        assert set(sims) == set(macro.SERIES)
        for frame in sims.values():
            fit = timeseries.fit_ar(frame["value"], 2)
            assert fit["stationary"]


class TestElection:

    @pytest.fixture
    def wide(self):
        frame = pd.DataFrame({"fips_code": ["1001", "06037"]})
        for year in election.ELECTION_COLUMNS:
            frame[f"total_{year}"] = [100, 1000]
            frame[f"dem_{year}"] = [30, 600]
            frame[f"gop_{year}"] = [60, 300]
        return frame

    def test_reshape(self, wide):
        long = election.reshape_election_returns(wide)
        assert len(long) == 6
        assert set(long["fips"]) == {"01001", "06037"}
        row = long[(long["fips"] == "01001") & (long["year"] == 2012)].iloc[0]
        assert row["dem_share"] == pytest.approx(30 / 90)
        assert row["state"] == "01"

    def test_reshape_missing_year(self, wide):
        with pytest.raises(KeyError):
            election.reshape_election_returns(wide.drop(columns="dem_2016"))

    def test_build_panel(self, wide):
        long = election.reshape_election_returns(wide)
        cov = long[["fips", "year"]].assign(median_income=50000.0, population=200.0)
        built = election.build_panel(long, cov)
        assert len(built) == 6
        assert built["turnout"].iloc[0] == pytest.approx(0.5)
        assert built["log_income"].iloc[0] == pytest.approx(np.log(50000))

    def test_simulated_panel_supports_fe(self):
        frame = election.simulate_panel(n_counties=200, seed=0)
        p = panel.panel_arrays(frame, "fips", "year", "dem_share",
                               ["log_income", "log_turnout"])
        fe = panel.estimate_fe(p["y"], p["X"], p["unit_ids"], time_ids=p["time_ids"],
                               names=p["names"])
        assert fe["n_units"] == 200
        assert fe["beta"][0] == pytest.approx(-0.08, abs=0.06)


class TestCensus:

    def test_derive_rates(self):
        acs = pd.DataFrame({
            "fips": ["39001", "39003"], "NAME": ["A", "B"],
            "B17001_002E": [20.0, 10.0], "B17001_001E": [100.0, 0.0],
            "B15003_022E": [10.0, 5.0], "B15003_023E": [5.0, 5.0],
            "B15003_024E": [1.0, 0.0], "B15003_025E": [4.0, 0.0],
            "B15003_001E": [80.0, 50.0],
            "B23025_005E": [3.0, 2.0], "B23025_003E": [60.0, 40.0],
        })
        out = census.derive_rates(acs)
        assert list(out["fips"]) == ["39001"]
        assert out["poverty_rate"].iloc[0] == pytest.approx(20.0)
        assert out["ba_share"].iloc[0] == pytest.approx(25.0)
        assert out["unemployment_rate"].iloc[0] == pytest.approx(5.0)

    def test_load_real_data_drops_islands(self, monkeypatch):
        fips = ["39001", "39003", "39005", "39007"]
        acs = pd.DataFrame({"fips": fips, "NAME": fips})
        for var in census.ACS_VARIABLES:
            acs[var] = 10.0
        acs["B17001_001E"] = 100.0
        acs["B15003_001E"] = 100.0
        acs["B23025_003E"] = 100.0

        monkeypatch.setattr(census, "fetch_census", lambda *a, **k: acs)
        monkeypatch.setattr(census, "fetch_county_adjacency",
                            lambda *a, **k: [("39001", "39003"), ("39003", "39005")])

        data = census.load_real_data(state="OH")
        assert list(data["frame"]["fips"]) == ["39001", "39003", "39005"]
        assert data["w"].ids == ["39001", "39003", "39005"]
        np.testing.assert_allclose(data["w"].matrix.sum(axis=1), 1.0)

    def test_load_real_data_wraps_network_errors(self, monkeypatch):
        def _down(*args, **kwargs):
            raise ConnectionError("offline")

        monkeypatch.setattr(census, "fetch_census", _down)
        with pytest.raises(RuntimeError):
            census.load_real_data(state="OH")

    def test_unknown_state(self):
        with pytest.raises(ValueError):
            census.load_real_data(state="ZZ")

    def test_simulated_lattice(self):
        data = census.simulate_lattice(side=8)
        assert len(data["frame"]) == 64
        assert data["w"].standardized
        assert data["w"].cardinalities.min() == 2

    def test_analysis_runs_on_simulated_lattice(self, monkeypatch, tmp_path, capsys):
        analysis = load_application_module("census_spatial", "analysis")
        monkeypatch.setattr(sys, "argv", [
            "analysis.py", "--source", "simulate", "--permutations", "49",
            "--outdir", str(tmp_path)])
        analysis.main()

        out = capsys.readouterr().out
        assert "[Moran] OLS residuals" in out
        assert "[SAR] rho=" in out
        assert (tmp_path / "moran_scatter.png").exists()
