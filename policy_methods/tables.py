"""
Regression tables: several fitted models side by side, coefficients
aligned by name, standard errors in parentheses beneath.
"""

import numpy as np
import pandas as pd

# (result key, row label), in display order
STAT_ROWS = [
    ("nobs", "N"),
    ("r2", "R-squared"),
    ("adj_r2", "Adj. R-squared"),
    ("r2_within", "Within R-squared"),
    ("pseudo_r2", "Pseudo R-squared"),
    ("loglik", "Log-likelihood"),
    ("aic", "AIC"),
]


def significance_stars(p):
    """*** p < 0.01, ** p < 0.05, * p < 0.1."""
    if p is None or not np.isfinite(p):
        return ""
    if p < 0.01:
        return "***"
    if p < 0.05:
        return "**"
    if p < 0.1:
        return "*"
    return ""


def coef_frame(result):
    """One model's coefficients as a DataFrame (coef, se, t, p) indexed by name."""
    names = result.get("names") or [f"b{j}" for j in range(len(result["beta"]))]
    frame = pd.DataFrame(
        {"coef": np.asarray(result["beta"], dtype=float),
         "se": np.asarray(result["se"], dtype=float)},
        index=names,
    )
    if "tvalues" in result:
        frame["t"] = np.asarray(result["tvalues"], dtype=float)
    if "pvalues" in result:
        frame["p"] = np.asarray(result["pvalues"], dtype=float)
    return frame


def regression_table(results, digits=3, extra_rows=None):
    """
    Lay out fitted models side by side.

    Parameters
    ----------
    results : mapping of column label -> result dict
        Each dict needs `beta` and `se`; `names`, `pvalues` and the keys in
        STAT_ROWS are used when present.
    digits : int
    extra_rows : mapping of row label -> mapping of column label -> value
        Additional footer rows, e.g. {"Unit FE": {"FE": "Yes", "RE": "No"}}.

    Returns
    -------
    DataFrame of strings. Coefficient rows are labelled by name and are
    followed by an unlabelled standard-error row.
    """
    if not results:
        raise ValueError("No models to tabulate")

    frames = {label: coef_frame(res) for label, res in results.items()}
    terms = []
    for frame in frames.values():
        terms.extend(t for t in frame.index if t not in terms)

    fmt = f"{{:.{digits}f}}"
    index, rows = [], []
    for term in terms:
        coef_row, se_row = [], []
        for frame in frames.values():
            if term in frame.index:
                r = frame.loc[term]
                stars = significance_stars(r["p"]) if "p" in frame.columns else ""
                coef_row.append(fmt.format(r["coef"]) + stars)
                se_row.append("(" + fmt.format(r["se"]) + ")")
            else:
                coef_row.append("")
                se_row.append("")
        index.extend([term, ""])
        rows.extend([coef_row, se_row])

    for key, label in STAT_ROWS:
        if not any(key in res and res[key] is not None for res in results.values()):
            continue
        row = []
        for res in results.values():
            val = res.get(key)
            if val is None:
                row.append("")
            elif key == "nobs":
                row.append(f"{int(val):,}")
            else:
                row.append(fmt.format(val))
        index.append(label)
        rows.append(row)

    for label, values in (extra_rows or {}).items():
        index.append(label)
        rows.append([str(values.get(col, "")) for col in results])

    return pd.DataFrame(rows, index=index, columns=list(results))
