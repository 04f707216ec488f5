"""Smoke tests: every figure builder returns a Figure and saves cleanly."""

import numpy as np
import pandas as pd
import pytest
from matplotlib.figure import Figure

from policy_methods import mle, plots


@pytest.fixture(autouse=True)
def _style():
    plots.use_style()


def test_plot_series_with_forecast(tmp_path):
    dates = pd.date_range("2000-01-01", periods=24, freq="MS")
    f_dates = pd.date_range("2002-01-01", periods=6, freq="MS")
    fig = plots.plot_series(dates, np.arange(24.0), title="t",
                            forecast=(f_dates, np.ones(6)))
    assert isinstance(fig, Figure)
    path = plots.savefig(fig, tmp_path / "figs" / "series.png")
    assert path.exists()


def test_plot_acf_pacf(rng):
    fig = plots.plot_acf_pacf(rng.normal(size=200), nlags=12)
    assert len(fig.axes) == 2


def test_likelihood_figures():
    x, y = mle.simulate_linear(200, seed=0)
    fit = mle.fit_normal_regression(x, y)
    b1, se1 = fit["beta"][1], fit["se"][1]
    prof = mle.profile_likelihood(mle.normal_nll, fit["params"], 1,
                                  np.linspace(b1 - 3 * se1, b1 + 3 * se1, 15),
                                  args=(x, y))
    assert isinstance(plots.plot_profile_likelihood(prof, b1), Figure)

    g0 = np.linspace(fit["beta"][0] - 3, fit["beta"][0] + 3, 15)
    g1 = np.linspace(b1 - 0.1, b1 + 0.1, 15)
    G0, G1, LL = mle.log_likelihood_surface(mle.normal_nll, g0, g1,
                                            args=(x, y), fixed=fit["params"])
    fig = plots.plot_likelihood_contour(G0, G1, LL, mle=fit["beta"],
                                        path=np.array([[g0[0], g1[0]], fit["beta"]]))
    assert isinstance(fig, Figure)

    fig = plots.plot_fit_line(x, y, {"MLE": tuple(fit["beta"])})
    assert isinstance(fig, Figure)


def test_plot_coefficients():
    results = {
        "A": dict(names=["const", "x"], beta=np.array([1.0, 0.5]), se=np.array([0.1, 0.1])),
        "B": dict(names=["x"], beta=np.array([0.4]), se=np.array([0.2])),
    }
    fig = plots.plot_coefficients(results, "x")
    assert [t.get_text() for t in fig.axes[0].get_yticklabels()] == ["A", "B"]
    with pytest.raises(ValueError):
        plots.plot_coefficients(results, "z")


def test_plot_moran_scatter(rng):
    y = rng.normal(size=50)
    fig = plots.plot_moran_scatter(y, 0.5 * y + rng.normal(size=50), {"I": 0.4})
    assert "0.400" in fig.axes[0].get_title()
