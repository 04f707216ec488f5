"""
Panel Data -- Fixed Effects, Random Effects and Mixed Models

Pooled, between, within (one- or two-way fixed effects) and Swamy-Arora
random-effects estimators written out with numpy, the Hausman test that
chooses between them, and a random-intercept mixed model via statsmodels.
"""

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from scipy import stats

from .ols import clustered_se
from .utils import ols_fit, add_const, coef_inference, safe_inv


def _as_2d(X):
    X = np.asarray(X, dtype=float)
    return X[:, None] if X.ndim == 1 else X


def _slope_names(names, k):
    if names is not None:
        return list(names)
    return [f"x{j}" for j in range(1, k + 1)]


def check_panel_index(unit_ids, time_ids):
    """Raise ValueError if any (unit, time) pair appears more than once."""
    idx = pd.DataFrame({"u": np.asarray(unit_ids), "t": np.asarray(time_ids)})
    dup = idx.duplicated()
    if dup.any():
        first = idx[dup].iloc[0]
        raise ValueError(
            f"{int(dup.sum())} duplicate (unit, time) rows, e.g. "
            f"unit={first['u']!r} time={first['t']!r}"
        )


def panel_arrays(frame, unit, time, outcome, regressors):
    """
    Pull a long-format panel out of a DataFrame.

    Rows with missing values in any used column are dropped; the panel
    index is checked for duplicates.

    Returns
    -------
    dict with keys: y, X, unit_ids, time_ids, names
    """
    cols = [unit, time, outcome] + list(regressors)
    missing = [c for c in cols if c not in frame.columns]
    if missing:
        raise KeyError(f"Columns not in frame: {missing}")

    df = frame[cols].dropna().sort_values([unit, time])
    check_panel_index(df[unit], df[time])
    return dict(
        y=df[outcome].to_numpy(dtype=float),
        X=df[list(regressors)].to_numpy(dtype=float),
        unit_ids=df[unit].to_numpy(),
        time_ids=df[time].to_numpy(),
        names=list(regressors),
    )


def within_demean(y, X, unit_ids, time_ids=None, tol=1e-10, max_iter=1000):
    """
    Demean y and X within each unit (and, optionally, each period).

    With time_ids the two-way transformation is computed by alternating
    unit and period demeaning until it stops changing, which is exact for
    unbalanced panels as well.

    Returns
    -------
    dict with keys:
        y_demean : demeaned y
        X_demean : demeaned X, shape (n, k)
    """
    data = np.column_stack([np.asarray(y, dtype=float), _as_2d(X)])
    frame = pd.DataFrame(data)
    units = pd.Series(np.asarray(unit_ids))

    if time_ids is None:
        out = frame - frame.groupby(units.values).transform("mean")
    else:
        times = pd.Series(np.asarray(time_ids))
        out = frame.copy()
        for _ in range(max_iter):
            prev = out
            out = out - out.groupby(units.values).transform("mean")
            out = out - out.groupby(times.values).transform("mean")
            if np.max(np.abs(out.values - prev.values)) < tol:
                break

    arr = out.to_numpy()
    return dict(y_demean=arr[:, 0], X_demean=arr[:, 1:])


def estimate_fe(y, X, unit_ids, time_ids=None, names=None):
    """
    Fixed-effects (within) estimation with clustered standard errors.

        beta_FE = (X_dm' X_dm)^{-1} X_dm' y_dm

    Parameters
    ----------
    y : ndarray, shape (n,)
    X : ndarray, shape (n,) or (n, k)
        Time-varying regressors (no constant).
    unit_ids : ndarray, shape (n,)
    time_ids : ndarray or None
        If given, period effects are also swept out (two-way FE).
    names : list of str or None

    Returns
    -------
    dict with keys:
        beta, se (clustered by unit), se_homosk, se_cluster, cov (homoskedastic)
        tvalues, pvalues
        residuals : within residuals
        effects   : Series of estimated unit effects (one-way only)
        r2_within, s2, nobs, n_units, names
    """
    X = _as_2d(X)
    y = np.asarray(y, dtype=float)
    unit_ids = np.asarray(unit_ids)
    N, K = X.shape
    G = len(np.unique(unit_ids))

    dm = within_demean(y, X, unit_ids, time_ids)
    Xd, yd = dm["X_demean"], dm["y_demean"]
    if np.any(np.all(np.abs(Xd) < 1e-12, axis=0)):
        raise ValueError("A regressor has no within-unit variation")

    b = np.linalg.lstsq(Xd, yd, rcond=None)[0]
    e = yd - Xd @ b

    dof = N - G - K
    if time_ids is not None:
        dof -= len(np.unique(time_ids)) - 1
    s2 = (e @ e) / dof
    cov = s2 * safe_inv(Xd.T @ Xd)
    se_homosk = np.sqrt(np.diag(cov))
    se_cluster = clustered_se(Xd, e, unit_ids)
    tvalues, pvalues = coef_inference(b, se_cluster, G - 1)

    effects = None
    if time_ids is None:
        means = pd.DataFrame(np.column_stack([y, X])).groupby(unit_ids).mean()
        effects = means[0] - means.drop(columns=0).to_numpy() @ b

    tss = yd @ yd
    return dict(
        beta=b,
        se=se_cluster,
        se_homosk=se_homosk,
        se_cluster=se_cluster,
        cov=cov,
        tvalues=tvalues,
        pvalues=pvalues,
        residuals=e,
        effects=effects,
        r2_within=1 - (e @ e) / tss if tss > 0 else np.nan,
        s2=s2,
        nobs=N,
        n_units=G,
        names=_slope_names(names, K),
    )


def estimate_pooled(y, X, unit_ids, names=None):
    """Pooled OLS with an intercept and unit-clustered standard errors."""
    X = _as_2d(X)
    Xc = add_const(X)
    b, se_homosk, e, s2 = ols_fit(Xc, y)
    se = clustered_se(Xc, e, unit_ids)
    G = len(np.unique(unit_ids))
    tvalues, pvalues = coef_inference(b, se, G - 1)
    return dict(
        beta=b,
        se=se,
        se_homosk=se_homosk,
        tvalues=tvalues,
        pvalues=pvalues,
        residuals=e,
        s2=s2,
        nobs=len(e),
        n_units=G,
        names=["const"] + _slope_names(names, X.shape[1]),
    )


def estimate_between(y, X, unit_ids, names=None):
    """
    Between estimator: OLS of unit means of y on unit means of X.

    Returns
    -------
    dict with keys: beta, se, residuals, s2, ssr, nobs (units), names
    """
    X = _as_2d(X)
    means = pd.DataFrame(np.column_stack([y, X])).groupby(np.asarray(unit_ids)).mean()
    yb = means[0].to_numpy()
    Xb = add_const(means.drop(columns=0).to_numpy())
    b, se, e, s2 = ols_fit(Xb, yb)
    tvalues, pvalues = coef_inference(b, se, len(yb) - Xb.shape[1])
    return dict(
        beta=b,
        se=se,
        tvalues=tvalues,
        pvalues=pvalues,
        residuals=e,
        s2=s2,
        ssr=e @ e,
        nobs=len(yb),
        names=["const"] + _slope_names(names, X.shape[1]),
    )


def estimate_re(y, X, unit_ids, names=None):
    """
    Random-effects GLS with Swamy-Arora variance components.

        sigma2_e = SSR_within / (N - G - K)
        sigma2_u = max(0, SSR_between / (G - K - 1) - sigma2_e / T_bar)
        theta_i  = 1 - sqrt(sigma2_e / (T_i sigma2_u + sigma2_e))

    then OLS on the quasi-demeaned data  y_it - theta_i ybar_i  (the
    constant becomes 1 - theta_i). T_bar is the harmonic mean of the
    unit sizes.

    Returns
    -------
    dict with keys:
        beta (with const), se (homoskedastic GLS), se_cluster, cov
        tvalues, pvalues
        sigma2_u, sigma2_e, rho (share of variance due to unit effects)
        theta : Series of theta_i by unit
        residuals, nobs, n_units, names
    """
    X = _as_2d(X)
    y = np.asarray(y, dtype=float)
    unit_ids = np.asarray(unit_ids)
    N, K = X.shape

    fe = estimate_fe(y, X, unit_ids)
    G = fe["n_units"]
    sigma2_e = fe["residuals"] @ fe["residuals"] / (N - G - K)

    between = estimate_between(y, X, unit_ids)
    T_i = pd.Series(unit_ids).value_counts()
    T_bar = G / np.sum(1.0 / T_i.to_numpy())
    sigma2_u = max(0.0, between["ssr"] / (G - K - 1) - sigma2_e / T_bar)

    theta = 1 - np.sqrt(sigma2_e / (T_i * sigma2_u + sigma2_e))
    th = theta.reindex(unit_ids).to_numpy()

    data = pd.DataFrame(np.column_stack([y, np.ones(N), X]))
    means = data.groupby(unit_ids).transform("mean").to_numpy()
    star = data.to_numpy() - th[:, None] * means
    ys, Xs = star[:, 0], star[:, 1:]

    b, _, e, s2 = ols_fit(Xs, ys)
    cov = s2 * safe_inv(Xs.T @ Xs)
    se = np.sqrt(np.diag(cov))
    tvalues, pvalues = coef_inference(b, se)

    return dict(
        beta=b,
        se=se,
        se_cluster=clustered_se(Xs, e, unit_ids),
        cov=cov,
        tvalues=tvalues,
        pvalues=pvalues,
        sigma2_u=sigma2_u,
        sigma2_e=sigma2_e,
        rho=sigma2_u / (sigma2_u + sigma2_e),
        theta=theta,
        residuals=e,
        nobs=N,
        n_units=G,
        names=["const"] + _slope_names(names, K),
    )


def hausman_test(fe, re):
    """
    Hausman specification test of FE against RE.

        H = (b_FE - b_RE)' [V_FE - V_RE]^{-1} (b_FE - b_RE)  ~  chi2(K)

    Both covariance matrices are the homoskedastic ones. When the
    difference is not positive definite a Moore-Penrose inverse is used and
    the degrees of freedom are its rank.

    Parameters
    ----------
    fe : dict from `estimate_fe`
    re : dict from `estimate_re`

    Returns
    -------
    dict with keys: stat, dof, p_value, reject
    """
    d = fe["beta"] - re["beta"][1:]
    V = fe["cov"] - re["cov"][1:, 1:]

    eig = np.linalg.eigvalsh(V)
    if np.all(eig > 0):
        stat = d @ np.linalg.solve(V, d)
        dof = len(d)
    else:
        stat = d @ np.linalg.pinv(V) @ d
        dof = max(int(np.linalg.matrix_rank(V)), 1)

    stat = float(max(stat, 0.0))
    p_value = stats.chi2.sf(stat, dof)
    return dict(stat=stat, dof=dof, p_value=p_value, reject=p_value < 0.05)


def fit_random_intercept(frame, formula, group, reml=True):
    """
    Random-intercept mixed model via statsmodels MixedLM.

        y_ij = x_ij' beta + u_j + e_ij,   u_j ~ N(0, tau^2),  e_ij ~ N(0, sigma^2)

    Parameters
    ----------
    frame : DataFrame
    formula : str
        Patsy formula for the fixed part, e.g. "dem_share ~ log_turnout".
    group : str
        Column holding the grouping factor.
    reml : bool

    Returns
    -------
    dict with keys:
        beta, se, tvalues, pvalues, names  (fixed effects)
        group_var : tau^2
        resid_var : sigma^2
        icc       : tau^2 / (tau^2 + sigma^2)
        loglik, converged, nobs, n_groups
        fit       : the statsmodels results object
    """
    if group not in frame.columns:
        raise KeyError(f"Grouping column {group!r} not in frame")

    model = smf.mixedlm(formula, frame, groups=frame[group])
    fit = model.fit(reml=reml)

    fe_names = list(fit.fe_params.index)
    group_var = float(np.asarray(fit.cov_re)[0, 0])
    resid_var = float(fit.scale)
    return dict(
        beta=fit.fe_params.to_numpy(),
        se=fit.bse_fe.to_numpy(),
        tvalues=fit.tvalues[fe_names].to_numpy(),
        pvalues=fit.pvalues[fe_names].to_numpy(),
        names=fe_names,
        group_var=group_var,
        resid_var=resid_var,
        icc=group_var / (group_var + resid_var),
        loglik=float(fit.llf),
        converged=bool(fit.converged),
        nobs=len(model.endog),
        n_groups=len(model.group_labels),
        fit=fit,
    )
