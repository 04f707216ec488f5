"""
County presidential election panel, 2008-2016.
===============================================

1. **Election returns** -- county-level presidential vote totals compiled
   from official state sources, published as a wide CSV (one row per
   county, one column per party-year):
   https://github.com/tonmcg/US_County_Level_Election_Results_08-20

2. **County income** -- ACS 5-year median household income and population
   from the Census Data API, matched to each election year.

The wide election file is reshaped to long (county x year) through the
explicit ELECTION_COLUMNS mapping, then merged with the ACS tables on
5-digit FIPS and year.

Returns a long DataFrame with columns:
    fips, state, year, dem_share, turnout, log_turnout,
    median_income, log_income, population
"""

from pathlib import Path

import numpy as np
import pandas as pd

from policy_methods.data import fetch_csv, fetch_census, zero_pad_fips

DATA_DIR = Path(__file__).parent / "data"

ELECTION_URL = (
    "https://raw.githubusercontent.com/tonmcg/"
    "US_County_Level_Election_Results_08-20/master/"
    "US_County_Level_Presidential_Results_08-16.csv"
)

# election year -> {long column: wide column}
ELECTION_COLUMNS = {
    2008: {"total": "total_2008", "dem": "dem_2008", "gop": "gop_2008"},
    2012: {"total": "total_2012", "dem": "dem_2012", "gop": "gop_2012"},
    2016: {"total": "total_2016", "dem": "dem_2016", "gop": "gop_2016"},
}

# election year -> ACS 5-year release used for county covariates
# (2009 is the first 5-year release with every county)
ACS_YEAR = {2008: 2009, 2012: 2012, 2016: 2016}

ACS_VARIABLES = {
    "B19013_001E": "median_income",
    "B01003_001E": "population",
}


def reshape_election_returns(wide, fips_col="fips_code"):
    """
    Wide election file -> long county-year frame.

    Parameters
    ----------
    wide : DataFrame
        One row per county with the columns named in ELECTION_COLUMNS.
    fips_col : str

    Returns
    -------
    DataFrame with columns fips, state, year, total, dem, gop, dem_share
    """
    if fips_col not in wide.columns:
        raise KeyError(f"Election file has no {fips_col!r} column")

    pieces = []
    for year, cols in ELECTION_COLUMNS.items():
        missing = [c for c in cols.values() if c not in wide.columns]
        if missing:
            raise KeyError(f"Election file is missing {missing} for {year}")
        piece = wide[[fips_col] + list(cols.values())].rename(
            columns={v: k for k, v in cols.items()}
        )
        piece = piece.rename(columns={fips_col: "fips"})
        piece["year"] = year
        pieces.append(piece)

    long = pd.concat(pieces, ignore_index=True)
    long["fips"] = zero_pad_fips(long["fips"]).to_numpy()
    for c in ("total", "dem", "gop"):
        long[c] = pd.to_numeric(long[c], errors="coerce")

    two_party = long["dem"] + long["gop"]
    long["dem_share"] = long["dem"] / two_party.where(two_party > 0)
    long["state"] = long["fips"].str[:2]
    long = long.dropna(subset=["dem_share", "total"])
    long = long.drop_duplicates(subset=["fips", "year"])
    return long[["fips", "state", "year", "total", "dem", "gop", "dem_share"]]


def load_election_returns(use_cache=True):
    cache = DATA_DIR / "county_presidential_08_16.csv" if use_cache else None
    wide = fetch_csv(ELECTION_URL, cache_path=cache, dtype={"fips_code": str})
    long = reshape_election_returns(wide)
    print(f"  [Elections] {long['fips'].nunique()} counties x "
          f"{long['year'].nunique()} elections")
    return long


def load_acs_covariates(api_key=None):
    """
    ACS county covariates for every election year.

    Returns
    -------
    DataFrame with columns fips, year, median_income, population
    """
    frames = []
    for year, acs_year in ACS_YEAR.items():
        acs = fetch_census(list(ACS_VARIABLES), geography="county:*",
                           year=acs_year, api_key=api_key)
        acs = acs.rename(columns=ACS_VARIABLES)
        acs["year"] = year
        frames.append(acs[["fips", "year"] + list(ACS_VARIABLES.values())])
    return pd.concat(frames, ignore_index=True)


def build_panel(returns, covariates):
    """Merge returns with covariates and derive the model variables."""
    panel = returns.merge(covariates, on=["fips", "year"], how="inner",
                          validate="one_to_one")
    panel = panel[(panel["median_income"] > 0) & (panel["population"] > 0)].copy()
    panel["turnout"] = panel["total"] / panel["population"]
    panel["log_turnout"] = np.log(panel["turnout"])
    panel["log_income"] = np.log(panel["median_income"])
    return panel.sort_values(["fips", "year"]).reset_index(drop=True)


def load_real_data(api_key=None):
    """
    Build the county-year panel from the election file and the Census API.

    Raises RuntimeError if either source cannot be loaded.
    """
    try:
        returns = load_election_returns()
        covariates = load_acs_covariates(api_key=api_key)
    except (ConnectionError, KeyError, ValueError) as e:
        raise RuntimeError(f"Real election data unavailable: {e}") from e

    panel = build_panel(returns, covariates)
    print(f"  [Data] Panel: {len(panel)} county-years, "
          f"{panel['fips'].nunique()} counties")
    return panel


def simulate_panel(n_counties=400, n_states=20, seed=42):
    """
    Simulate a county x election panel with county effects correlated
    with income, so pooled and random-effects estimates are biased.

        dem_share = 0.45 + a_c - 0.08 log_income + 0.05 log_turnout
                    + year shift + e
        a_c correlated with mean county log income
    """
    rng = np.random.default_rng(seed)
    years = list(ELECTION_COLUMNS)
    n = n_counties * len(years)

    county = np.repeat(np.arange(n_counties), len(years))
    state = county % n_states
    year = np.tile(years, n_counties)

    base_income = rng.normal(10.8, 0.25, n_counties)
    a = 0.6 * (base_income - 10.8) + rng.normal(0, 0.05, n_counties)
    log_income = base_income[county] + 0.02 * (year - 2008) / 4 + rng.normal(0, 0.05, n)
    log_turnout = np.log(0.45) + rng.normal(0, 0.08, n)
    shift = {2008: 0.0, 2012: -0.01, 2016: -0.05}
    dem_share = (0.45 + a[county] - 0.08 * (log_income - 10.8)
                 + 0.05 * (log_turnout - np.log(0.45))
                 + np.array([shift[t] for t in year])
                 + rng.normal(0, 0.02, n))

    return pd.DataFrame({
        "fips": [f"{s:02d}{c:03d}" for s, c in zip(state, county)],
        "state": [f"{s:02d}" for s in state],
        "year": year,
        "dem_share": np.clip(dem_share, 0.01, 0.99),
        "log_turnout": log_turnout,
        "turnout": np.exp(log_turnout),
        "log_income": log_income,
        "median_income": np.exp(log_income),
        "population": rng.integers(5_000, 500_000, n),
    })
