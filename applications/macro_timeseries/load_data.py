"""
Macroeconomic series for the autoregressive-models lab.
========================================================

Three FRED series, each transformed to the stationary form used in class:

    unemployment : UNRATE, monthly level (percent)
    gdp_growth   : GDPC1, quarterly real GDP, annualized log growth
    inflation    : CPIAUCSL, monthly CPI, year-over-year log growth

The series are listed explicitly in SERIES; loaders iterate over that
mapping rather than constructing names on the fly.
"""

from pathlib import Path

import numpy as np
import pandas as pd

from policy_methods.data import fetch_fred_series
from policy_methods.timeseries import growth_rate

DATA_DIR = Path(__file__).parent / "data"
DEFAULT_START = "1960-01-01"

# key -> (FRED id, transform, growth periods, growth scale, label)
SERIES = {
    "unemployment": ("UNRATE", "level", None, None, "Unemployment rate (%)"),
    "gdp_growth": ("GDPC1", "growth", 1, 400.0, "Real GDP growth, annualized (%)"),
    "inflation": ("CPIAUCSL", "growth", 12, 100.0, "CPI inflation, y/y (%)"),
}


def transform_series(raw, key):
    """Apply the SERIES transform for `key` to a fetched FRED frame."""
    fred_id, transform, periods, scale, label = SERIES[key]
    out = raw[["date"]].copy()
    if transform == "level":
        out["value"] = raw[fred_id].astype(float)
    else:
        out["value"] = growth_rate(raw[fred_id], periods=periods, scale=scale).to_numpy()
    out = out.dropna().reset_index(drop=True)
    out.attrs["label"] = label
    out.attrs["key"] = key
    return out


def load_series(key, start=DEFAULT_START, end=None, use_cache=True):
    """Fetch and transform one series from SERIES."""
    if key not in SERIES:
        raise KeyError(f"Unknown series {key!r}; choose from {list(SERIES)}")
    fred_id = SERIES[key][0]
    cache = DATA_DIR / f"{fred_id}.csv" if use_cache else None
    raw = fetch_fred_series(fred_id, start=start, end=end, cache_path=cache)
    return transform_series(raw, key)


def load_all(start=DEFAULT_START, end=None, use_cache=True):
    """
    Fetch every series in SERIES.

    Returns
    -------
    dict mapping series key -> DataFrame(date, value)
    """
    tables = {}
    for key in SERIES:
        try:
            tables[key] = load_series(key, start=start, end=end, use_cache=use_cache)
        except (ConnectionError, ValueError) as e:
            print(f"  [FRED] {key} unavailable: {e}")
    if not tables:
        raise RuntimeError("No FRED series could be loaded")
    return tables


def simulate_series(n=400, phi=(0.6, 0.2), mean=5.0, sigma=0.5, freq="MS",
                    start=DEFAULT_START, seed=0, key="simulated"):
    """
    Simulate a stationary AR(p) series dated like a FRED download.

        y_t - mean = sum_j phi_j (y_{t-j} - mean) + e_t
    """
    rng = np.random.default_rng(seed)
    phi = np.asarray(phi, dtype=float)
    p = len(phi)
    burn = 200
    y = np.zeros(n + burn)
    e = rng.normal(0, sigma, n + burn)
    for t in range(p, n + burn):
        y[t] = phi @ y[t - p:t][::-1] + e[t]
    out = pd.DataFrame({
        "date": pd.date_range(start, periods=n, freq=freq),
        "value": mean + y[burn:],
    })
    out.attrs["label"] = f"Simulated AR({p})"
    out.attrs["key"] = key
    return out


def simulate_all(seed=0):
    """Simulated stand-ins for every entry in SERIES."""
    return {
        "unemployment": simulate_series(phi=(1.2, -0.25), mean=6.0, sigma=0.2,
                                        seed=seed, key="unemployment"),
        "gdp_growth": simulate_series(n=250, phi=(0.35,), mean=3.0, sigma=3.5,
                                      freq="QS", seed=seed + 1, key="gdp_growth"),
        "inflation": simulate_series(phi=(0.95,), mean=3.5, sigma=0.35,
                                     seed=seed + 2, key="inflation"),
    }
