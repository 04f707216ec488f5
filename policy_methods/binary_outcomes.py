"""
Binary Outcomes -- Logistic Regression by Maximum Likelihood

Logit MLE from scratch (BFGS on the hand-written log-likelihood), average
marginal effects with delta-method standard errors, and the linear
probability model for comparison.
"""

import numpy as np
from scipy.optimize import minimize

from .ols import hc1_robust_se
from .utils import ols_fit, coef_inference, default_names, safe_inv


def logistic(z):
    """Logistic (sigmoid) CDF: 1 / (1 + exp(-z))."""
    return 1 / (1 + np.exp(-np.clip(z, -500, 500)))


def logit_nll(b, X, y):
    """Negative log-likelihood for logit."""
    p = np.clip(logistic(X @ b), 1e-12, 1 - 1e-12)
    return -np.sum(y * np.log(p) + (1 - y) * np.log(1 - p))


def logit_score(b, X, y):
    """Gradient of `logit_nll`: -X'(y - p)."""
    return -X.T @ (y - logistic(X @ b))


def _check_binary(y):
    y = np.asarray(y, dtype=float)
    if not np.all(np.isin(y, (0.0, 1.0))):
        raise ValueError("Logit outcome must be coded 0/1")
    if y.min() == y.max():
        raise ValueError("Logit outcome has no variation")
    return y


def fit_logit(X, y, start=None, names=None):
    """
    Logit MLE via BFGS optimization.

    Parameters
    ----------
    X : ndarray, shape (n, k)
        Design matrix (with constant).
    y : ndarray, shape (n,)
        Binary outcome (0/1).
    start : ndarray or None
        Starting values for optimization. Defaults to zeros.
    names : list of str or None

    Returns
    -------
    dict with keys:
        beta      : MLE coefficient vector
        se        : SEs from the inverse Fisher information X' W X
        tvalues, pvalues
        p_hat     : predicted probabilities
        nll, loglik, llnull
        pseudo_r2 : McFadden's 1 - loglik / llnull
        converged : bool
        nobs, names
    """
    X = np.asarray(X, dtype=float)
    y = _check_binary(y)
    n, k = X.shape
    if start is None:
        start = np.zeros(k)

    res = minimize(logit_nll, start, args=(X, y), jac=logit_score,
                   method="BFGS")
    beta = res.x
    p_hat = logistic(X @ beta)

    W = p_hat * (1 - p_hat)
    fisher = X.T @ (X * W[:, None])
    se = np.sqrt(np.diag(safe_inv(fisher)))
    tvalues, pvalues = coef_inference(beta, se)

    ybar = y.mean()
    llnull = n * (ybar * np.log(ybar) + (1 - ybar) * np.log(1 - ybar))
    loglik = -res.fun

    return dict(
        beta=beta,
        se=se,
        tvalues=tvalues,
        pvalues=pvalues,
        p_hat=p_hat,
        nll=res.fun,
        loglik=loglik,
        llnull=llnull,
        pseudo_r2=1 - loglik / llnull,
        aic=2 * res.fun + 2 * k,
        converged=bool(res.success),
        nobs=n,
        names=list(names) if names is not None else default_names(k),
    )


def logit_ame(X, beta, coef_idx=1):
    """
    Average Marginal Effect for a logit model.

    AME = mean( beta_j * p_i * (1 - p_i) )
    """
    p = logistic(X @ beta)
    return np.mean(beta[coef_idx] * p * (1 - p))


def ame_se_delta(X, beta, coef_idx=1):
    """
    Delta-method standard error for the logit AME of beta[coef_idx].

    Gradient of the AME with respect to beta:

        d AME / d beta_m = mean( 1[m = j] w_i + beta_j w_i (1 - 2 p_i) x_im )

    with w_i = p_i (1 - p_i), combined with the inverse Fisher information.
    """
    X = np.asarray(X, dtype=float)
    p = logistic(X @ beta)
    w = p * (1 - p)

    cov = safe_inv(X.T @ (X * w[:, None]))

    grad = beta[coef_idx] * ((w * (1 - 2 * p)) @ X) / len(p)
    grad[coef_idx] += w.mean()

    return np.sqrt(grad @ cov @ grad)


def fit_lpm(X, y, names=None):
    """
    Linear Probability Model (OLS on binary outcome) with HC1 SEs.

    The LPM is heteroskedastic by construction, so robust SEs are reported.
    """
    X = np.asarray(X, dtype=float)
    y = _check_binary(y)
    b, _, e, _ = ols_fit(X, y)
    se = hc1_robust_se(X, e)
    tvalues, pvalues = coef_inference(b, se, len(y) - X.shape[1])
    return dict(
        beta=b,
        se=se,
        tvalues=tvalues,
        pvalues=pvalues,
        residuals=e,
        fitted=X @ b,
        nobs=len(y),
        names=list(names) if names is not None else default_names(X.shape[1]),
    )
