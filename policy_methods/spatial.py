"""
Spatial Data -- Weights, Autocorrelation and Spatial Regression

Builds spatial weights matrices (from an adjacency list, k nearest
neighbours or a distance band), computes spatial lags and Moran's I, and
fits the spatial lag (SAR) and spatial error (SEM) models by concentrated
maximum likelihood.
"""

from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from scipy import stats
from scipy.optimize import minimize_scalar
from scipy.spatial import cKDTree

from .mle import NLL_PENALTY, numerical_hessian
from .utils import ols_fit, coef_inference, default_names, safe_inv


@dataclass(eq=False)
class SpatialWeights:
    """
    A dense spatial weights matrix with the unit ids labelling its rows.

    matrix[i, j] > 0 means unit ids[j] is a neighbour of unit ids[i].
    """

    ids: list
    matrix: np.ndarray
    standardized: bool = False
    _eigenvalues: np.ndarray = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.ids = list(self.ids)
        self.matrix = np.asarray(self.matrix, dtype=float)
        n = len(self.ids)
        if self.matrix.shape != (n, n):
            raise ValueError(
                f"Weights matrix has shape {self.matrix.shape}, expected ({n}, {n})"
            )
        if len(set(self.ids)) != n:
            raise ValueError("Spatial unit ids must be unique")

    @property
    def n(self):
        return len(self.ids)

    @property
    def index(self):
        return {uid: i for i, uid in enumerate(self.ids)}

    def neighbors(self, uid):
        """Ids of the neighbours of unit `uid`."""
        row = self.matrix[self.ids.index(uid)]
        return [self.ids[j] for j in np.flatnonzero(row)]

    @property
    def cardinalities(self):
        return pd.Series((self.matrix > 0).sum(axis=1), index=self.ids)

    @property
    def islands(self):
        """Units with no neighbours."""
        card = self.cardinalities
        return list(card.index[card == 0])

    def row_standardize(self):
        """Copy with each row summing to one (islands keep a zero row)."""
        sums = self.matrix.sum(axis=1, keepdims=True)
        with np.errstate(divide="ignore", invalid="ignore"):
            m = np.where(sums > 0, self.matrix / sums, 0.0)
        return SpatialWeights(self.ids, m, standardized=True)

    def subset(self, ids):
        """
        Weights restricted to `ids`, in that order.

        Standardized weights are re-standardized over the kept columns;
        row scaling cancels, so this equals standardizing the raw submatrix
        and keeps non-binary weights intact.
        """
        index = self.index
        pos = [index[uid] for uid in ids]
        sub = SpatialWeights(ids, self.matrix[np.ix_(pos, pos)])
        return sub.row_standardize() if self.standardized else sub

    def eigenvalues(self):
        if self._eigenvalues is None:
            self._eigenvalues = np.linalg.eigvals(self.matrix)
        return self._eigenvalues


def weights_from_adjacency(pairs, ids=None):
    """
    Binary contiguity weights from (unit, neighbour) pairs.

    The relation is symmetrized; self-pairs and pairs involving units not
    in `ids` are dropped.

    Parameters
    ----------
    pairs : iterable of (id, id)
    ids : list or None
        Unit ordering. Defaults to the sorted set of ids seen in `pairs`.

    Returns
    -------
    SpatialWeights
    """
    pairs = [(a, b) for a, b in pairs if a != b]
    if ids is None:
        ids = sorted({a for a, _ in pairs} | {b for _, b in pairs})
    pos = {uid: i for i, uid in enumerate(ids)}

    m = np.zeros((len(ids), len(ids)))
    for a, b in pairs:
        if a in pos and b in pos:
            m[pos[a], pos[b]] = 1.0
            m[pos[b], pos[a]] = 1.0
    return SpatialWeights(ids, m)


def knn_weights(coords, k=5, ids=None):
    """
    k-nearest-neighbour weights from point coordinates.

    Not symmetric in general: j may be among i's k nearest without the
    reverse holding.
    """
    coords = np.asarray(coords, dtype=float)
    n = len(coords)
    if not 0 < k < n:
        raise ValueError(f"k must be between 1 and n-1 (n={n}), got {k}")
    ids = list(range(n)) if ids is None else list(ids)

    _, nn = cKDTree(coords).query(coords, k=k + 1)
    m = np.zeros((n, n))
    for i in range(n):
        for j in nn[i]:
            if j != i:
                m[i, j] = 1.0
    # with duplicate points the query may not return i itself; keep k
    for i in range(n):
        extra = int(m[i].sum()) - k
        if extra > 0:
            m[i, nn[i][-1]] = 0.0
    return SpatialWeights(ids, m)


def distance_band_weights(coords, threshold, ids=None):
    """Binary weights linking every pair of points within `threshold`."""
    coords = np.asarray(coords, dtype=float)
    n = len(coords)
    ids = list(range(n)) if ids is None else list(ids)

    m = np.zeros((n, n))
    for i, j in cKDTree(coords).query_pairs(r=threshold):
        m[i, j] = 1.0
        m[j, i] = 1.0
    return SpatialWeights(ids, m)


def spatial_lag(w, y):
    """W y: the (weighted) average of each unit's neighbours."""
    y = np.asarray(y, dtype=float)
    if len(y) != w.n:
        raise ValueError(f"y has {len(y)} elements, weights cover {w.n} units")
    return w.matrix @ y


def _moran_stat(z, W, S0):
    return len(z) / S0 * (z @ W @ z) / (z @ z)


def morans_i(y, w, permutations=999, seed=None):
    """
    Global Moran's I.

        I = (n / S0) * z' W z / z' z,    z = y - ybar,  S0 = sum_ij w_ij

    Inference uses the normality approximation for E[I] and Var[I] and,
    if permutations > 0, a conditional permutation pseudo p-value
    (one-sided in the direction of the observed statistic).

    Returns
    -------
    dict with keys: I, expected, variance, z, p_norm, p_sim, permutations
    """
    y = np.asarray(y, dtype=float)
    n = len(y)
    if n != w.n:
        raise ValueError(f"y has {n} elements, weights cover {w.n} units")
    W = w.matrix
    S0 = W.sum()
    if S0 == 0:
        raise ValueError("Weights matrix has no links")

    z = y - y.mean()
    I = _moran_stat(z, W, S0)
    EI = -1.0 / (n - 1)

    S1 = 0.5 * np.sum((W + W.T) ** 2)
    S2 = np.sum((W.sum(axis=1) + W.sum(axis=0)) ** 2)
    VI = (n ** 2 * S1 - n * S2 + 3 * S0 ** 2) / ((n ** 2 - 1) * S0 ** 2) - EI ** 2
    z_score = (I - EI) / np.sqrt(VI)
    p_norm = 2 * stats.norm.sf(abs(z_score))

    p_sim = np.nan
    if permutations:
        rng = np.random.default_rng(seed)
        sims = np.array([_moran_stat(rng.permutation(z), W, S0)
                         for _ in range(permutations)])
        if I >= EI:
            larger = np.sum(sims >= I)
        else:
            larger = np.sum(sims <= I)
        p_sim = (larger + 1) / (permutations + 1)

    return dict(I=I, expected=EI, variance=VI, z=z_score, p_norm=p_norm,
                p_sim=p_sim, permutations=permutations)


def _check_fit_inputs(y, X, w):
    y = np.asarray(y, dtype=float)
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X[:, None]
    if len(y) != w.n or X.shape[0] != w.n:
        raise ValueError(
            f"y ({len(y)}) and X ({X.shape[0]}) must match the {w.n} weighted units"
        )
    if not np.any(w.matrix):
        raise ValueError("Weights matrix has no links")
    return y, X


def _param_bounds(w):
    lam = w.eigenvalues().real
    lo = 1.0 / lam.min() if lam.min() < 0 else -1.0
    hi = 1.0 / lam.max()
    return lo + 1e-6, hi - 1e-6


def _logdet(w, coef):
    return np.sum(np.log(np.abs(1.0 - coef * w.eigenvalues())))


def _full_nll(e, log_s2, logdet):
    """
    Gaussian NLL of the filtered residuals e, with log sigma^2 as the
    scale parameter, so the Hessian steps stay valid for any scale of y.
    """
    n = len(e)
    s2 = np.exp(log_s2)
    nll = n / 2 * (np.log(2 * np.pi) + log_s2) + (e @ e) / (2 * s2) - logdet
    if not np.isfinite(nll):
        return NLL_PENALTY
    return nll


def fit_spatial_lag(y, X, w, names=None):
    """
    Spatial lag (SAR) model by maximum likelihood.

        y = rho W y + X beta + e,   e ~ N(0, sigma^2 I)

    rho is found by maximizing the concentrated log-likelihood

        L(rho) = -n/2 (log 2 pi + 1) - n/2 log sigma2(rho) + log|I - rho W|

    with sigma2(rho) = (e0 - rho eL)'(e0 - rho eL) / n, where e0 and eL are
    the OLS residuals of y and W y on X. Standard errors come from the
    numerical Hessian of the full log-likelihood in (beta, rho, log sigma2).

    Parameters
    ----------
    y : ndarray, shape (n,)
    X : ndarray, shape (n, k)
        Design matrix including the constant.
    w : SpatialWeights
        Usually row-standardized.

    Returns
    -------
    dict with keys:
        beta, se, tvalues, pvalues, names
        rho, se_rho, sigma2
        loglik, aic, nobs, residuals
    """
    y, X = _check_fit_inputs(y, X, w)
    n, k = X.shape
    Wy = w.matrix @ y

    b0 = np.linalg.lstsq(X, y, rcond=None)[0]
    bL = np.linalg.lstsq(X, Wy, rcond=None)[0]
    e0 = y - X @ b0
    eL = Wy - X @ bL

    def conc_nll(rho):
        e = e0 - rho * eL
        s2 = (e @ e) / n
        return n / 2 * (np.log(2 * np.pi) + 1) + n / 2 * np.log(s2) - _logdet(w, rho)

    res = minimize_scalar(conc_nll, bounds=_param_bounds(w), method="bounded")
    rho = res.x
    beta = b0 - rho * bL
    e = y - rho * Wy - X @ beta
    sigma2 = (e @ e) / n

    def full_nll(params):
        b, r = params[:k], params[k]
        u = y - r * Wy - X @ b
        return _full_nll(u, params[k + 1], _logdet(w, r))

    params = np.concatenate([beta, [rho, np.log(sigma2)]])
    cov = safe_inv(numerical_hessian(full_nll, params))
    se_all = np.sqrt(np.diag(cov))
    tvalues, pvalues = coef_inference(beta, se_all[:k])
    loglik = -res.fun

    return dict(
        beta=beta,
        se=se_all[:k],
        tvalues=tvalues,
        pvalues=pvalues,
        names=list(names) if names is not None else default_names(k),
        rho=rho,
        se_rho=se_all[k],
        sigma2=sigma2,
        loglik=loglik,
        aic=-2 * loglik + 2 * (k + 2),
        nobs=n,
        residuals=e,
    )


def fit_spatial_error(y, X, w, names=None):
    """
    Spatial error (SEM) model by maximum likelihood.

        y = X beta + u,   u = lam W u + e,   e ~ N(0, sigma^2 I)

    For each lam, beta(lam) is OLS of (y - lam W y) on (X - lam W X); lam
    maximizes the concentrated log-likelihood

        L(lam) = -n/2 (log 2 pi + 1) - n/2 log sigma2(lam) + log|I - lam W|

    Returns
    -------
    dict with keys:
        beta, se, tvalues, pvalues, names
        lam, se_lam, sigma2
        loglik, aic, nobs, residuals
    """
    y, X = _check_fit_inputs(y, X, w)
    n, k = X.shape
    W = w.matrix
    Wy = W @ y
    WX = W @ X

    def _gls(lam):
        ys = y - lam * Wy
        Xs = X - lam * WX
        b = np.linalg.lstsq(Xs, ys, rcond=None)[0]
        e = ys - Xs @ b
        return b, e

    def conc_nll(lam):
        _, e = _gls(lam)
        s2 = (e @ e) / n
        return n / 2 * (np.log(2 * np.pi) + 1) + n / 2 * np.log(s2) - _logdet(w, lam)

    res = minimize_scalar(conc_nll, bounds=_param_bounds(w), method="bounded")
    lam = res.x
    beta, e = _gls(lam)
    sigma2 = (e @ e) / n

    def full_nll(params):
        b, lm = params[:k], params[k]
        u = y - X @ b
        v = u - lm * (W @ u)
        return _full_nll(v, params[k + 1], _logdet(w, lm))

    params = np.concatenate([beta, [lam, np.log(sigma2)]])
    cov = safe_inv(numerical_hessian(full_nll, params))
    se_all = np.sqrt(np.diag(cov))
    tvalues, pvalues = coef_inference(beta, se_all[:k])
    loglik = -res.fun

    return dict(
        beta=beta,
        se=se_all[:k],
        tvalues=tvalues,
        pvalues=pvalues,
        names=list(names) if names is not None else default_names(k),
        lam=lam,
        se_lam=se_all[k],
        sigma2=sigma2,
        loglik=loglik,
        aic=-2 * loglik + 2 * (k + 2),
        nobs=n,
        residuals=e,
    )


def ols_residual_moran(y, X, w, permutations=999, seed=None):
    """Moran's I of OLS residuals, the usual first check for spatial dependence."""
    _, _, e, _ = ols_fit(np.asarray(X, dtype=float), np.asarray(y, dtype=float))
    return morans_i(e, w, permutations=permutations, seed=seed)
