"""
Shared helpers used across the estimator modules: least squares via the
normal equations, design-matrix assembly and coefficient inference.
"""

import numpy as np
import pandas as pd
from scipy import stats


def ols_fit(X, y):
    """
    OLS estimation via least squares.

    Parameters
    ----------
    X : ndarray, shape (n, k)
        Design matrix (should include a constant column if an intercept is desired).
    y : ndarray, shape (n,)
        Outcome vector.

    Returns
    -------
    b : ndarray, shape (k,)
        Coefficient estimates  beta_hat = (X'X)^{-1} X'y.
    se : ndarray, shape (k,)
        Homoskedastic standard errors.
    e : ndarray, shape (n,)
        Residuals  y - X @ b.
    s2 : float
        Estimated error variance  e'e / (n - k).
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float)
    n, k = X.shape
    if len(y) != n:
        raise ValueError(f"X has {n} rows but y has {len(y)} elements")
    if n <= k:
        raise ValueError(f"Need more observations than regressors (n={n}, k={k})")

    b = np.linalg.lstsq(X, y, rcond=None)[0]
    e = y - X @ b
    s2 = (e @ e) / (n - k)
    se = np.sqrt(np.diag(s2 * safe_inv(X.T @ X)))
    return b, se, e, s2


def add_const(x):
    """
    Prepend a column of ones (intercept) to the design matrix.

    Parameters
    ----------
    x : ndarray
        1-d array or 2-d matrix of regressors.

    Returns
    -------
    X : ndarray, shape (n, k+1)
        Design matrix with leading ones column.
    """
    x = np.asarray(x, dtype=float)
    x = x[:, None] if x.ndim == 1 else x
    return np.column_stack([np.ones(x.shape[0]), x])


def design_matrix(frame, columns, const=True):
    """
    Pull regressors out of a DataFrame as a float design matrix.

    Parameters
    ----------
    frame : DataFrame
    columns : list of str
        Regressor columns, in order.
    const : bool
        Prepend an intercept column named "const".

    Returns
    -------
    X : ndarray, shape (n, k)
    names : list of str
    """
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise KeyError(f"Columns not in frame: {missing}")

    block = frame[list(columns)].apply(pd.to_numeric, errors="coerce")
    bad = block.isna().any(axis=1)
    if bad.any():
        raise ValueError(
            f"{int(bad.sum())} rows have missing or non-numeric values in "
            f"{list(columns)}; drop or impute them first"
        )

    X = block.to_numpy(dtype=float)
    names = list(columns)
    if const:
        X = add_const(X)
        names = ["const"] + names
    return X, names


def safe_inv(A):
    """Matrix inverse that returns NaNs instead of raising on singular input."""
    try:
        return np.linalg.inv(A)
    except np.linalg.LinAlgError:
        return np.full_like(np.atleast_2d(A), np.nan, dtype=float)


def coef_inference(beta, se, dof=None):
    """
    t-statistics and two-sided p-values.

    Uses the t distribution when `dof` is given, otherwise the normal
    (appropriate for ML estimators).
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        tvalues = np.asarray(beta) / np.asarray(se)
    if dof is None:
        pvalues = 2 * stats.norm.sf(np.abs(tvalues))
    else:
        pvalues = 2 * stats.t.sf(np.abs(tvalues), dof)
    return tvalues, pvalues


def default_names(k, const=True):
    """Coefficient labels ["const", "x1", ...] for an unnamed design matrix."""
    if const:
        return ["const"] + [f"x{j}" for j in range(1, k)]
    return [f"x{j}" for j in range(1, k + 1)]
