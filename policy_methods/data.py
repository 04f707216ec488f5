"""
Public-data access over HTTP: plain CSV files, FRED series, the Census
Data API and the Census county adjacency file.

Downloads can be cached on disk; a cached file is reused on the next call.
Network failures surface as ConnectionError naming the URL.
"""

import io
import json
import os
from pathlib import Path

import numpy as np
import pandas as pd
import requests

USER_AGENT = "policy-methods-course/1.0"
TIMEOUT = 60

FRED_CSV_URL = "https://fred.stlouisfed.org/graph/fredgraph.csv"
CENSUS_API_URL = "https://api.census.gov/data"
COUNTY_ADJACENCY_URL = (
    "https://www2.census.gov/geo/docs/reference/county_adjacency/"
    "county_adjacency2023.txt"
)

# Census API placeholders for "not available" (jam values)
CENSUS_MISSING = {-999999999, -888888888, -666666666, -555555555,
                  -333333333, -222222222}


def fetch_text(url, cache_path=None, params=None, timeout=TIMEOUT,
               encoding=None):
    """
    GET a URL and return the body as text.

    Parameters
    ----------
    url : str
    cache_path : str or Path, optional
        Reuse this file if it exists; otherwise write the download to it.
    params : dict, optional
        Query-string parameters.
    encoding : str, optional
        Override the response encoding (e.g. "latin-1").
    """
    if cache_path:
        cache_path = Path(cache_path)
        if cache_path.exists():
            return cache_path.read_text(encoding=encoding or "utf-8")

    try:
        resp = requests.get(url, params=params, timeout=timeout,
                            headers={"User-Agent": USER_AGENT})
        resp.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise ConnectionError(f"Could not fetch {url}: {e}") from e

    if encoding:
        resp.encoding = encoding
    text = resp.text

    if cache_path:
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        cache_path.write_text(text, encoding=encoding or "utf-8")
    return text


def fetch_csv(url, cache_path=None, params=None, **read_csv_kwargs):
    """Download a CSV and parse it with pandas.read_csv."""
    text = fetch_text(url, cache_path=cache_path, params=params)
    return pd.read_csv(io.StringIO(text), **read_csv_kwargs)


def parse_fred_csv(text, series_id):
    """
    Parse a fredgraph.csv payload into columns `date` and `series_id`.

    Older downloads label the date column DATE, newer ones observation_date;
    missing observations are written as ".".
    """
    frame = pd.read_csv(io.StringIO(text), na_values=["."])
    date_col = frame.columns[0]
    if series_id not in frame.columns:
        raise ValueError(
            f"FRED response has no column {series_id!r} (got {list(frame.columns)})"
        )
    out = pd.DataFrame({
        "date": pd.to_datetime(frame[date_col]),
        series_id: pd.to_numeric(frame[series_id], errors="coerce"),
    })
    return out


def fetch_fred_series(series_id, start=None, end=None, cache_path=None):
    """
    Download one FRED series.

    Parameters
    ----------
    series_id : str
        e.g. "UNRATE", "GDPC1", "CPIAUCSL".
    start, end : str or None
        ISO dates bounding the observation window.

    Returns
    -------
    DataFrame with columns `date` and `series_id`, missing values dropped.
    """
    params = {"id": series_id}
    if start:
        params["cosd"] = start
    if end:
        params["coed"] = end

    text = fetch_text(FRED_CSV_URL, cache_path=cache_path, params=params)
    frame = parse_fred_csv(text, series_id).dropna().reset_index(drop=True)
    if start:
        frame = frame[frame["date"] >= pd.Timestamp(start)]
    if end:
        frame = frame[frame["date"] <= pd.Timestamp(end)]
    frame = frame.reset_index(drop=True)
    print(f"  [FRED] Loaded {series_id}: {len(frame)} observations")
    return frame


def zero_pad_fips(values, width=5):
    """FIPS codes as zero-padded strings (e.g. 1001 -> "01001")."""
    s = pd.Series(values)
    s = s.astype(str).str.replace(r"\.0$", "", regex=True).str.strip()
    return s.str.zfill(width)


def parse_census_json(payload, variables):
    """
    Turn a Census API response (list of rows, header first) into a DataFrame.

    Requested variables are converted to float with the API's placeholder
    values mapped to NaN. County geography gets a 5-digit `fips` key.
    """
    if not payload or len(payload) < 2:
        raise ValueError("Census API returned no rows")
    frame = pd.DataFrame(payload[1:], columns=payload[0])

    for var in variables:
        if var not in frame.columns:
            raise ValueError(f"Census API response has no column {var!r}")
        col = pd.to_numeric(frame[var], errors="coerce")
        frame[var] = col.where(~col.isin(CENSUS_MISSING), np.nan)

    if "state" in frame.columns and "county" in frame.columns:
        frame["fips"] = zero_pad_fips(frame["state"], 2) + zero_pad_fips(frame["county"], 3)
    return frame


def fetch_census(variables, geography="county:*", state=None, year=2022,
                 dataset="acs/acs5", api_key=None):
    """
    Query the Census Data API.

    Parameters
    ----------
    variables : list of str
        Variable codes, e.g. ["B19013_001E"].
    geography : str
        The `for` clause, e.g. "county:*" or "state:*".
    state : str or None
        Two-digit state FIPS for the `in` clause.
    year : int
    dataset : str
        e.g. "acs/acs5", "dec/pl".
    api_key : str or None
        Falls back to the CENSUS_API_KEY environment variable; small
        queries work without a key.

    Returns
    -------
    DataFrame with NAME, the requested variables (float), the geography
    columns and, for counties, `fips`.
    """
    variables = list(variables)
    url = f"{CENSUS_API_URL}/{year}/{dataset}"
    params = {"get": ",".join(["NAME"] + variables), "for": geography}
    if state:
        params["in"] = f"state:{state}"
    api_key = api_key or os.environ.get("CENSUS_API_KEY")
    if api_key:
        params["key"] = api_key

    text = fetch_text(url, params=params)
    try:
        payload = json.loads(text)
    except ValueError as e:
        # the API answers bad keys and bad variables with an HTML page
        raise ValueError(f"Census API did not return JSON: {text[:200]!r}") from e

    frame = parse_census_json(payload, variables)
    print(f"  [Census] Loaded {len(frame)} rows from {dataset} {year}")
    return frame


def parse_county_adjacency(text):
    """
    Parse the Census county adjacency file into (fips, neighbour_fips) pairs.

    Handles both layouts: the pipe-delimited release with a header and
    every field filled, and the older tab-delimited release in which a
    county's name and code appear only on its first line. Self-pairs are
    dropped.
    """
    pairs = []
    current = None
    lines = text.splitlines()
    delim = "|" if lines and "|" in lines[0] else "\t"

    for line in lines:
        if not line.strip():
            continue
        fields = [f.strip().strip('"') for f in line.split(delim)]
        if len(fields) < 4:
            continue
        if not fields[1].isdigit() and fields[1]:
            # header row
            continue
        if fields[1]:
            current = fields[1].zfill(5)
        neighbour = fields[3]
        if current is None or not neighbour.isdigit():
            continue
        neighbour = neighbour.zfill(5)
        if neighbour != current:
            pairs.append((current, neighbour))
    return pairs


def fetch_county_adjacency(cache_path=None, url=COUNTY_ADJACENCY_URL):
    """Download and parse the Census county adjacency file."""
    text = fetch_text(url, cache_path=cache_path, encoding="latin-1")
    pairs = parse_county_adjacency(text)
    print(f"  [Census] Loaded {len(pairs)} county adjacency pairs")
    return pairs
