"""
Maximum Likelihood Estimation -- from scratch

The centrepiece is the Gaussian regression log-likelihood written out by
hand and handed to scipy.optimize.minimize. Around it sit the generic MLE
tools used elsewhere in the course: standard errors from the observed
Fisher information (numerical Hessian), profile likelihoods, and
likelihood surfaces for contour plots.
"""

import numpy as np
from scipy import stats
from scipy.optimize import minimize

from .utils import add_const, coef_inference, safe_inv

# Returned instead of a log-likelihood when sigma is not a valid scale.
# Large enough to dominate any attainable NLL for course-sized data.
NLL_PENALTY = 1e12


def simulate_linear(n, beta0=20.0, beta1=0.8, sigma=10.0, x_range=(0.0, 100.0),
                    seed=None):
    """
    Draw the course's synthetic regression sample.

        x ~ Uniform(x_range)
        y = beta0 + beta1 * x + N(0, sigma^2)

    Returns
    -------
    x, y : ndarray, shape (n,)
    """
    rng = np.random.default_rng(seed)
    x = rng.uniform(x_range[0], x_range[1], n)
    y = beta0 + beta1 * x + rng.normal(0, sigma, n)
    return x, y


def normal_nll(params, x, y):
    """
    Negative log-likelihood of a linear model with Gaussian errors.

    params = (beta_0, beta_1, ..., beta_k, sigma); x has shape (n,) or (n, k).

        r_i = y_i - (beta_0 + x_i' beta)
        NLL = -sum_i log phi(r_i; 0, sigma)

    A non-positive sigma returns NLL_PENALTY scaled by (1 + log(1 + |sigma|))
    rather than raising, so the optimizer is pushed back towards sigma > 0;
    the penalty stays finite for every finite sigma. A non-finite sigma
    returns NLL_PENALTY.

    Returns
    -------
    float
    """
    params = np.asarray(params, dtype=float)
    beta, sigma = params[:-1], params[-1]

    if not np.isfinite(sigma):
        return NLL_PENALTY
    if sigma <= 0:
        return NLL_PENALTY * (1.0 + np.log1p(abs(sigma)))

    X = add_const(x)
    if X.shape[1] != len(beta):
        raise ValueError(
            f"Expected {X.shape[1] + 1} parameters (intercept, "
            f"{X.shape[1] - 1} slope(s), sigma), got {len(params)}"
        )

    resid = np.asarray(y, dtype=float) - X @ beta
    nll = -np.sum(stats.norm.logpdf(resid, loc=0.0, scale=sigma))
    if not np.isfinite(nll):
        return NLL_PENALTY
    return float(nll)


def _normal_nll_log_sigma(theta, x, y):
    return normal_nll(np.append(theta[:-1], np.exp(theta[-1])), x, y)


def fit_normal_regression(x, y, start=None, method="Nelder-Mead"):
    """
    Fit a Gaussian linear regression by minimizing `normal_nll`.

    Parameters
    ----------
    x : ndarray, shape (n,) or (n, k)
    y : ndarray, shape (n,)
    start : array-like or None
        Starting (beta_0, ..., beta_k, sigma). Defaults to
        (mean(y), 0, ..., 0, sd(y)).
    method : str
        Any scipy.optimize.minimize method. Nelder-Mead is restarted once
        from its own solution, which rebuilds a collapsed simplex.

    Returns
    -------
    dict with keys:
        beta      : intercept and slope estimates
        sigma     : error standard deviation estimate
        params    : beta and sigma stacked
        se        : standard errors from the numerical Hessian
        nll       : negative log-likelihood at the optimum
        loglik    : -nll
        converged : bool
        nobs      : sample size
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    k = 1 if x.ndim == 1 else x.shape[1]
    if start is None:
        start = np.concatenate([[y.mean()], np.zeros(k), [y.std()]])
    start = np.asarray(start, dtype=float)

    options = None
    if method == "Nelder-Mead":
        options = {"xatol": 1e-7, "fatol": 1e-7,
                   "maxiter": 20000, "maxfev": 40000}

    res = minimize(normal_nll, start, args=(x, y), method=method,
                   options=options)
    if method == "Nelder-Mead":
        res = minimize(normal_nll, res.x, args=(x, y), method=method,
                       options=options)

    params = res.x
    # Hessian in (beta, log sigma): difference steps never reach sigma <= 0,
    # whatever the scale of y. se(sigma) = sigma * se(log sigma).
    theta = np.append(params[:-1], np.log(params[-1]))
    hess = numerical_hessian(_normal_nll_log_sigma, theta, args=(x, y))
    se = np.sqrt(np.diag(safe_inv(hess)))
    se[-1] *= params[-1]
    tvalues, pvalues = coef_inference(params[:-1], se[:-1])

    names = ["const"] + ([f"x{j}" for j in range(1, k + 1)] if k > 1 else ["x"])
    return dict(
        beta=params[:-1],
        sigma=params[-1],
        params=params,
        se=se[:-1],
        se_sigma=se[-1],
        tvalues=tvalues,
        pvalues=pvalues,
        nll=res.fun,
        loglik=-res.fun,
        aic=2 * res.fun + 2 * len(params),
        converged=bool(res.success),
        nobs=len(y),
        names=names,
    )


def fit_mle(neg_log_lik, start, args=(), method="BFGS", track_path=False):
    """
    Generic MLE via scipy.optimize.minimize.

    Parameters
    ----------
    neg_log_lik : callable
        Negative log-likelihood function: f(beta, *args) -> float.
    start : ndarray
        Starting parameter values.
    args : tuple
        Extra arguments passed to neg_log_lik.
    method : str
        Optimization method (default BFGS).
    track_path : bool
        If True, record the optimization path.

    Returns
    -------
    dict with keys:
        beta      : MLE estimates
        se        : standard errors from observed Fisher info
        nll       : negative log-likelihood at optimum
        hessian   : numerical Hessian at the MLE
        converged : bool
        path      : list of parameter arrays (if track_path)
    """
    path = [np.array(start, dtype=float).copy()]
    callback = (lambda xk: path.append(np.array(xk).copy())) if track_path else None

    res = minimize(neg_log_lik, start, args=args, method=method,
                   callback=callback)

    beta = res.x
    hess = numerical_hessian(neg_log_lik, beta, args=args)
    se = np.sqrt(np.diag(safe_inv(hess)))

    result = dict(
        beta=beta,
        se=se,
        nll=res.fun,
        hessian=hess,
        converged=bool(res.success),
    )
    if track_path:
        result["path"] = np.array(path)

    return result


def numerical_hessian(neg_log_lik, beta, args=(), eps=1e-4):
    """
    Central-difference Hessian of the negative log-likelihood at beta.

    Step sizes scale with |beta_j| so that parameters on very different
    scales (intercepts vs. slopes vs. sigma) are differenced sensibly.

    Returns
    -------
    H : ndarray, shape (k, k)
    """
    beta = np.asarray(beta, dtype=float)
    k = len(beta)
    h = eps * np.maximum(np.abs(beta), 1.0)

    def f(b):
        return neg_log_lik(b, *args)

    H = np.empty((k, k))
    f0 = f(beta)
    for i in range(k):
        ei = np.zeros(k)
        ei[i] = h[i]
        H[i, i] = (f(beta + ei) - 2 * f0 + f(beta - ei)) / h[i] ** 2
        for j in range(i + 1, k):
            ej = np.zeros(k)
            ej[j] = h[j]
            H[i, j] = (
                f(beta + ei + ej) - f(beta + ei - ej)
                - f(beta - ei + ej) + f(beta - ei - ej)
            ) / (4 * h[i] * h[j])
            H[j, i] = H[i, j]
    return H


def profile_likelihood(neg_log_lik, beta_mle, profile_idx, grid, args=(),
                       method="Nelder-Mead"):
    """
    Compute the profile likelihood for a single parameter.

    For each value of beta[profile_idx] on the grid, maximizes
    the log-likelihood over all other parameters.

    Parameters
    ----------
    neg_log_lik : callable
    beta_mle : ndarray
        MLE estimates (used as starting values).
    profile_idx : int
        Index of the parameter to profile.
    grid : ndarray
        Grid of values for the profiled parameter.
    args : tuple

    Returns
    -------
    dict with keys:
        grid        : parameter values
        profile_ll  : profile log-likelihood at each grid point
        ci_95       : (lo, hi) 95% CI based on likelihood ratio
    """
    beta_mle = np.asarray(beta_mle, dtype=float)
    grid = np.asarray(grid, dtype=float)
    k = len(beta_mle)
    other_idx = [j for j in range(k) if j != profile_idx]

    profile_ll = np.empty(len(grid))
    start_other = beta_mle[other_idx]
    for i, val in enumerate(grid):
        def _partial_nll(b_other, _val=val):
            b_full = np.empty(k)
            b_full[profile_idx] = _val
            b_full[other_idx] = b_other
            return neg_log_lik(b_full, *args)

        res = minimize(_partial_nll, start_other, method=method)
        profile_ll[i] = -res.fun

    # chi2_1(0.95) / 2
    cutoff = stats.chi2.ppf(0.95, 1) / 2
    ll_max = profile_ll.max()
    in_ci = profile_ll >= (ll_max - cutoff)
    if in_ci.any():
        ci = (grid[in_ci].min(), grid[in_ci].max())
    else:
        ci = (np.nan, np.nan)

    return dict(grid=grid, profile_ll=profile_ll, ci_95=ci)


def log_likelihood_surface(neg_log_lik, grid_0, grid_1, args=(), fixed=None,
                           idx=(0, 1)):
    """
    Log-likelihood on a 2-d grid (for contour plots).

    Parameters
    ----------
    neg_log_lik : callable
    grid_0, grid_1 : ndarray
        Grids for the two parameters being varied.
    args : tuple
    fixed : ndarray or None
        Full parameter vector supplying the values held fixed. If None the
        likelihood is assumed to take exactly two parameters.
    idx : tuple of int
        Positions in the parameter vector that grid_0 and grid_1 vary.

    Returns
    -------
    G0, G1 : meshgrid arrays
    LL : ndarray
        Log-likelihood values on the grid.
    """
    G0, G1 = np.meshgrid(grid_0, grid_1)
    base = np.zeros(2) if fixed is None else np.asarray(fixed, dtype=float)

    LL = np.empty(G0.shape)
    for i in range(G0.shape[0]):
        for j in range(G0.shape[1]):
            b = base.copy()
            b[idx[0]] = G0[i, j]
            b[idx[1]] = G1[i, j]
            LL[i, j] = -neg_log_lik(b, *args)
    return G0, G1, LL
