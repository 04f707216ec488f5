"""
OLS -- Ordinary Least Squares

The linear regression used throughout the course, with classical,
HC1 (Huber-White) and cluster-robust (Liang-Zeger) standard errors.
"""

import numpy as np

from .utils import ols_fit, coef_inference, default_names, safe_inv


def estimate(X, y, names=None, cov="classical", clusters=None):
    """
    OLS estimation: beta_hat = (X'X)^{-1} X'y.

    Parameters
    ----------
    X : ndarray, shape (n, k)
        Design matrix (include a constant column for intercept).
    y : ndarray, shape (n,)
        Outcome vector.
    names : list of str or None
        Coefficient labels. Defaults to const, x1, x2, ...
    cov : {"classical", "HC1", "cluster"}
        Covariance estimator used for `se`.
    clusters : ndarray or None
        Cluster identifiers, required when cov="cluster".

    Returns
    -------
    dict with keys:
        beta      : coefficient vector
        se        : standard errors (per `cov`)
        tvalues, pvalues
        residuals : OLS residuals
        fitted    : fitted values X @ beta
        s2        : estimated error variance
        r2, adj_r2
        nobs, names, cov_type
    """
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float)
    b, se, e, s2 = ols_fit(X, y)
    n, k = X.shape

    if cov == "HC1":
        se = hc1_robust_se(X, e)
    elif cov == "cluster":
        if clusters is None:
            raise ValueError("cov='cluster' requires cluster identifiers")
        se = clustered_se(X, e, clusters)
    elif cov != "classical":
        raise ValueError(f"Unknown covariance type: {cov!r}")

    dof = n - k
    if cov == "cluster":
        dof = len(np.unique(clusters)) - 1
    tvalues, pvalues = coef_inference(b, se, dof)

    tss = np.sum((y - y.mean()) ** 2)
    r2 = 1 - (e @ e) / tss if tss > 0 else np.nan
    adj_r2 = 1 - (1 - r2) * (n - 1) / (n - k)
    loglik = -n / 2 * (np.log(2 * np.pi * (e @ e) / n) + 1)

    return dict(
        beta=b,
        se=se,
        tvalues=tvalues,
        pvalues=pvalues,
        residuals=e,
        fitted=X @ b,
        s2=s2,
        r2=r2,
        adj_r2=adj_r2,
        loglik=loglik,
        aic=-2 * loglik + 2 * (k + 1),
        nobs=n,
        names=list(names) if names is not None else default_names(k),
        cov_type=cov,
    )


def hc1_robust_se(X, residuals):
    """
    HC1 (Huber-White) heteroskedasticity-consistent standard errors.

    V_HC1 = (n/(n-k)) * (X'X)^{-1} * [sum_i e_hat_i^2 * x_i x_i'] * (X'X)^{-1}
    """
    n, k = X.shape
    meat = (X.T * residuals ** 2) @ X
    bread = safe_inv(X.T @ X)
    V_hc1 = bread @ meat @ bread * (n / (n - k))
    return np.sqrt(np.diag(V_hc1))


def clustered_se(X, residuals, clusters):
    """
    Cluster-robust standard errors.

    V = (X'X)^{-1} [sum_g (X_g' e_g)(X_g' e_g)'] (X'X)^{-1}
        * G/(G-1) * (N-1)/(N-K)

    Parameters
    ----------
    X : ndarray, shape (n,) or (n, k)
    residuals : ndarray, shape (n,)
    clusters : ndarray, shape (n,)

    Returns
    -------
    ndarray, shape (k,)
    """
    X = np.asarray(X, dtype=float)
    X = X[:, None] if X.ndim == 1 else X
    clusters = np.asarray(clusters)
    N, K = X.shape
    groups = np.unique(clusters)
    G = len(groups)
    if G < 2:
        raise ValueError("Clustered standard errors need at least two clusters")

    meat = np.zeros((K, K))
    for g in groups:
        mask = clusters == g
        score = X[mask].T @ residuals[mask]
        meat += np.outer(score, score)

    bread = safe_inv(X.T @ X)
    dof_corr = (G / (G - 1)) * ((N - 1) / (N - K))
    V = bread @ meat @ bread * dof_corr
    return np.sqrt(np.diag(V))
