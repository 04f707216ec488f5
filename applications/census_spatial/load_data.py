"""
County poverty, education and unemployment with county adjacency.
==================================================================

1. **ACS 5-year county estimates** from the Census Data API:
     B17001_002E / B17001_001E   population below poverty / universe
     B15003_022E..025E / B15003_001E   bachelor's degree or higher / 25+
     B23025_005E / B23025_003E   unemployed / civilian labour force

2. **County adjacency** -- the Census Bureau's county adjacency file,
   which lists every county's neighbours by FIPS code.

The result is a county table keyed by 5-digit FIPS and a SpatialWeights
object over the same counties, in the same order.
"""

from pathlib import Path

import numpy as np
import pandas as pd

from policy_methods.data import fetch_census, fetch_county_adjacency
from policy_methods.spatial import weights_from_adjacency

DATA_DIR = Path(__file__).parent / "data"
ACS_YEAR = 2022

POVERTY = ["B17001_002E", "B17001_001E"]
EDUCATION = ["B15003_022E", "B15003_023E", "B15003_024E", "B15003_025E",
             "B15003_001E"]
LABOR = ["B23025_005E", "B23025_003E"]
ACS_VARIABLES = POVERTY + EDUCATION + LABOR

# state postal code -> FIPS, for the --state option
STATE_FIPS = {
    "AL": "01", "AZ": "04", "AR": "05", "CA": "06", "CO": "08", "CT": "09",
    "DE": "10", "FL": "12", "GA": "13", "ID": "16", "IL": "17", "IN": "18",
    "IA": "19", "KS": "20", "KY": "21", "LA": "22", "ME": "23", "MD": "24",
    "MA": "25", "MI": "26", "MN": "27", "MS": "28", "MO": "29", "MT": "30",
    "NE": "31", "NV": "32", "NH": "33", "NJ": "34", "NM": "35", "NY": "36",
    "NC": "37", "ND": "38", "OH": "39", "OK": "40", "OR": "41", "PA": "42",
    "RI": "44", "SC": "45", "SD": "46", "TN": "47", "TX": "48", "UT": "49",
    "VT": "50", "VA": "51", "WA": "53", "WV": "54", "WI": "55", "WY": "56",
}


def derive_rates(acs):
    """Percentages used in the models, from raw ACS counts."""
    out = pd.DataFrame({"fips": acs["fips"], "name": acs["NAME"]})
    out["poverty_rate"] = 100 * acs["B17001_002E"] / acs["B17001_001E"]
    out["ba_share"] = 100 * acs[EDUCATION[:-1]].sum(axis=1) / acs["B15003_001E"]
    out["unemployment_rate"] = 100 * acs["B23025_005E"] / acs["B23025_003E"]
    out = out.replace([np.inf, -np.inf], np.nan).dropna()
    return out.sort_values("fips").reset_index(drop=True)


def load_real_data(state=None, year=ACS_YEAR, api_key=None):
    """
    County rates and row-standardized contiguity weights.

    Parameters
    ----------
    state : str or None
        Postal code (e.g. "OH") to restrict to one state; None for the
        contiguous US.

    Returns
    -------
    dict with keys: frame (DataFrame), w (SpatialWeights), label
    """
    state_fips = None
    if state:
        state_fips = STATE_FIPS.get(state.upper())
        if state_fips is None:
            raise ValueError(f"Unknown state {state!r}")

    try:
        acs = fetch_census(ACS_VARIABLES, geography="county:*", state=state_fips,
                           year=year, api_key=api_key)
        pairs = fetch_county_adjacency(cache_path=DATA_DIR / "county_adjacency.txt")
    except (ConnectionError, ValueError) as e:
        raise RuntimeError(f"Census data unavailable: {e}") from e

    frame = derive_rates(acs)
    # Alaska, Hawaii and Puerto Rico have no land neighbours in the lower 48
    if state_fips is None:
        frame = frame[~frame["fips"].str[:2].isin(["02", "15", "72"])]
    frame = frame.reset_index(drop=True)

    w = weights_from_adjacency(pairs, ids=list(frame["fips"]))
    islands = w.islands
    if islands:
        print(f"  [Census] Dropping {len(islands)} counties with no neighbours")
        frame = frame[~frame["fips"].isin(islands)].reset_index(drop=True)
        w = w.subset(list(frame["fips"]))

    label = f"{state.upper()} counties" if state else "US counties"
    print(f"  [Data] {len(frame)} {label}, "
          f"mean neighbours={w.cardinalities.mean():.2f}")
    return dict(frame=frame, w=w.row_standardize(), label=label)


def simulate_lattice(side=20, rho=0.5, seed=3):
    """
    Spatial-lag data on a side x side rook lattice.

        poverty = (I - rho W)^{-1} (8 + 0.4 unemployment - 0.25 ba_share + e)
    """
    rng = np.random.default_rng(seed)
    n = side * side
    ids = [f"{i:05d}" for i in range(n)]
    pairs = []
    for r in range(side):
        for c in range(side):
            i = r * side + c
            if c + 1 < side:
                pairs.append((ids[i], ids[i + 1]))
            if r + 1 < side:
                pairs.append((ids[i], ids[i + side]))
    w = weights_from_adjacency(pairs, ids=ids).row_standardize()

    ba = rng.normal(25, 8, n)
    unemp = np.clip(rng.normal(5, 1.5, n), 1, None)
    xb = 8 + 0.4 * unemp - 0.25 * ba + rng.normal(0, 2, n)
    poverty = np.linalg.solve(np.eye(n) - rho * w.matrix, xb)

    frame = pd.DataFrame({
        "fips": ids, "name": ids,
        "poverty_rate": poverty, "ba_share": ba, "unemployment_rate": unemp,
    })
    return dict(frame=frame, w=w, label=f"simulated {side}x{side} lattice")
