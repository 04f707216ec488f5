"""
Time Series -- Autocorrelation and Autoregressive Models

Sample ACF/PACF, AR(p) by conditional least squares, information-criterion
order selection, recursive forecasts and the Ljung-Box residual test.
"""

import numpy as np
import pandas as pd
from scipy import stats

from .utils import ols_fit, coef_inference


def growth_rate(series, periods=1, scale=100.0):
    """
    Log growth rate  scale * (log y_t - log y_{t-periods}).

    Use periods=4 with quarterly data (or 12 with monthly) for
    year-over-year growth; scale=400 annualizes quarterly one-period growth.
    """
    s = pd.Series(series, dtype=float)
    if (s.dropna() <= 0).any():
        raise ValueError("Log growth rates need a strictly positive series")
    return scale * np.log(s).diff(periods)


def lag_matrix(y, p):
    """
    Stack lags 1..p of y.

    Returns
    -------
    target : ndarray, shape (n - p,)
        y_t for t = p, ..., n-1.
    lags : ndarray, shape (n - p, p)
        Column j holds y_{t-(j+1)}.
    """
    y = np.asarray(y, dtype=float)
    n = len(y)
    if p < 1:
        raise ValueError("Lag order must be at least 1")
    if n <= p:
        raise ValueError(f"Series of length {n} is too short for {p} lags")
    lags = np.column_stack([y[p - j - 1:n - j - 1] for j in range(p)])
    return y[p:], lags


def acf(y, nlags=20):
    """
    Sample autocorrelation function.

        r_k = sum_{t>=k} (y_t - ybar)(y_{t-k} - ybar) / sum_t (y_t - ybar)^2

    Returns
    -------
    ndarray, shape (nlags + 1,)
        r_0 = 1, r_1, ..., r_nlags.
    """
    y = np.asarray(y, dtype=float)
    n = len(y)
    if nlags >= n:
        raise ValueError(f"nlags={nlags} must be smaller than the series length {n}")
    d = y - y.mean()
    c0 = d @ d
    if c0 == 0:
        raise ValueError("ACF undefined for a constant series")
    return np.array([d[k:] @ d[:n - k] / c0 for k in range(nlags + 1)])


def pacf(y, nlags=20):
    """
    Sample partial autocorrelation function via the Durbin-Levinson recursion.

    Returns
    -------
    ndarray, shape (nlags + 1,)
        phi_00 = 1, phi_11, ..., phi_{nlags,nlags}.
    """
    r = acf(y, nlags)
    out = np.empty(nlags + 1)
    out[0] = 1.0
    if nlags == 0:
        return out

    phi = np.array([r[1]])
    out[1] = r[1]
    for k in range(2, nlags + 1):
        num = r[k] - phi @ r[k - 1:0:-1]
        den = 1 - phi @ r[1:k]
        phi_kk = num / den
        phi = np.append(phi - phi_kk * phi[::-1], phi_kk)
        out[k] = phi_kk
    return out


def acf_confint(n, alpha=0.05):
    """Half-width of the white-noise band for sample (P)ACF: z_{1-a/2} / sqrt(n)."""
    return stats.norm.ppf(1 - alpha / 2) / np.sqrt(n)


def fit_ar(y, p, const=True):
    """
    AR(p) by conditional least squares.

        y_t = c + phi_1 y_{t-1} + ... + phi_p y_{t-p} + e_t

    Parameters
    ----------
    y : array-like
    p : int
    const : bool

    Returns
    -------
    dict with keys:
        beta      : [c, phi_1, ..., phi_p] (c omitted if const=False)
        se, tvalues, pvalues
        phi       : the lag coefficients alone
        sigma2    : residual variance (ML, e'e / T)
        residuals : residuals, length n - p
        aic, bic  : T log(sigma2) + penalty
        nobs      : T = n - p
        p, const, names
        mean      : implied unconditional mean (nan if nonstationary)
        stationary: bool
    """
    target, lags = lag_matrix(y, p)
    X = np.column_stack([np.ones(len(target)), lags]) if const else lags
    b, se, e, _ = ols_fit(X, target)

    T, k = X.shape
    sigma2 = (e @ e) / T
    tvalues, pvalues = coef_inference(b, se, T - k)
    phi = b[1:] if const else b

    stationary = is_stationary(phi)
    mean = b[0] / (1 - phi.sum()) if (const and stationary) else (
        0.0 if stationary else np.nan)

    names = (["const"] if const else []) + [f"L{j}" for j in range(1, p + 1)]
    return dict(
        beta=b,
        se=se,
        tvalues=tvalues,
        pvalues=pvalues,
        phi=phi,
        sigma2=sigma2,
        residuals=e,
        aic=T * np.log(sigma2) + 2 * k,
        bic=T * np.log(sigma2) + np.log(T) * k,
        nobs=T,
        p=p,
        const=const,
        names=names,
        mean=mean,
        stationary=stationary,
    )


def select_ar_order(y, max_p=8, criterion="bic", const=True):
    """
    Choose the AR order by AIC or BIC.

    Every candidate is fit on the same estimation sample (the last
    n - max_p observations) so the criteria are comparable.

    Returns
    -------
    dict with keys:
        best_p : selected order
        table  : DataFrame indexed by p with aic and bic columns
    """
    if criterion not in ("aic", "bic"):
        raise ValueError(f"criterion must be 'aic' or 'bic', got {criterion!r}")
    y = np.asarray(y, dtype=float)

    rows = []
    for p in range(1, max_p + 1):
        res = fit_ar(y[max_p - p:], p, const=const)
        rows.append(dict(p=p, aic=res["aic"], bic=res["bic"]))
    table = pd.DataFrame(rows).set_index("p")
    return dict(best_p=int(table[criterion].idxmin()), table=table)


def forecast_ar(result, y, steps=8):
    """
    Recursive point forecasts from a fitted AR(p).

    Parameters
    ----------
    result : dict
        Output of `fit_ar`.
    y : array-like
        History; its last p values seed the recursion.
    steps : int

    Returns
    -------
    ndarray, shape (steps,)
    """
    p = result["p"]
    c = result["beta"][0] if result["const"] else 0.0
    phi = result["phi"]
    history = list(np.asarray(y, dtype=float)[-p:])
    if len(history) < p:
        raise ValueError(f"Need at least {p} observations to forecast")

    out = np.empty(steps)
    for h in range(steps):
        recent = np.array(history[::-1][:p])
        out[h] = c + phi @ recent
        history.append(out[h])
    return out


def ljung_box(resid, lags=10, dof=0):
    """
    Ljung-Box portmanteau test for residual autocorrelation.

        Q = n (n + 2) sum_{k=1}^{m} r_k^2 / (n - k)  ~  chi2(m - dof)

    Pass dof=p when testing AR(p) residuals.

    Returns
    -------
    dict with keys: Q, dof, p_value, reject
    """
    resid = np.asarray(resid, dtype=float)
    n = len(resid)
    if lags <= dof:
        raise ValueError("Number of lags must exceed the degrees-of-freedom adjustment")
    r = acf(resid, lags)[1:]
    k = np.arange(1, lags + 1)
    Q = n * (n + 2) * np.sum(r ** 2 / (n - k))
    df = lags - dof
    p_value = stats.chi2.sf(Q, df)
    return dict(Q=Q, dof=df, p_value=p_value, reject=p_value < 0.05)


def is_stationary(phi):
    """
    True if all roots of 1 - phi_1 z - ... - phi_p z^p lie outside the unit circle.
    """
    phi = np.atleast_1d(np.asarray(phi, dtype=float))
    if len(phi) == 0:
        return True
    # np.roots wants the highest power first
    coefs = np.concatenate([-phi[::-1], [1.0]])
    roots = np.roots(coefs)
    return bool(np.all(np.abs(roots) > 1.0))
