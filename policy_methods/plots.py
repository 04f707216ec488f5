"""
Course-standard matplotlib figures. Every function returns the Figure so
scripts can save it with `savefig` and notebooks can display it.
"""

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from .timeseries import acf, pacf, acf_confint

STYLE = {
    "figure.facecolor": "#FAFAFA", "axes.facecolor": "#FAFAFA",
    "axes.edgecolor": "#333", "axes.labelcolor": "#222",
    "xtick.color": "#555", "ytick.color": "#555", "text.color": "#222",
    "font.size": 10, "axes.titlesize": 12, "axes.titleweight": "bold",
    "axes.grid": True, "grid.alpha": 0.25, "grid.color": "#AAA", "figure.dpi": 140,
}
CB, CO, CG, CR, CP, CY = "#2171B5", "#E6550D", "#31A354", "#DE2D26", "#756BB1", "#888"


def use_style():
    plt.rcParams.update(STYLE)


def savefig(fig, path):
    """Write a figure to disk (creating the directory) and close it."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, bbox_inches="tight", dpi=150)
    plt.close(fig)
    return path


def plot_series(dates, values, title="", ylabel="", label=None, forecast=None):
    """
    Line plot of a series, optionally continued by a dashed forecast.

    forecast : (dates, values) or None
    """
    fig, ax = plt.subplots(figsize=(9, 4))
    ax.plot(dates, values, color=CB, lw=1.2, label=label)
    if forecast is not None:
        f_dates, f_values = forecast
        ax.plot(f_dates, f_values, color=CO, lw=1.5, ls="--", label="Forecast")
        ax.legend(frameon=False)
    elif label:
        ax.legend(frameon=False)
    ax.set_title(title)
    ax.set_ylabel(ylabel)
    return fig


def plot_acf_pacf(y, nlags=20, title=""):
    """ACF and PACF stem plots with the white-noise 95% band."""
    y = np.asarray(y, dtype=float)
    band = acf_confint(len(y))
    lags = np.arange(nlags + 1)

    fig, axes = plt.subplots(1, 2, figsize=(11, 3.8))
    for ax, values, name in ((axes[0], acf(y, nlags), "ACF"),
                             (axes[1], pacf(y, nlags), "PACF")):
        ax.vlines(lags[1:], 0, values[1:], color=CB, lw=2)
        ax.scatter(lags[1:], values[1:], color=CB, s=14, zorder=3)
        ax.axhline(0, color="#333", lw=0.8)
        ax.axhspan(-band, band, color=CY, alpha=0.2)
        ax.set_xlabel("Lag")
        ax.set_title(f"{title} {name}".strip())
    return fig


def plot_fit_line(x, y, lines, title="", xlabel="x", ylabel="y"):
    """
    Scatter of (x, y) with one or more fitted lines.

    lines : mapping of label -> (intercept, slope)
    """
    x = np.asarray(x, dtype=float)
    fig, ax = plt.subplots(figsize=(7, 5))
    ax.scatter(x, y, s=6, alpha=0.35, color=CY)
    grid = np.linspace(x.min(), x.max(), 100)
    colors = [CB, CO, CG, CR, CP]
    for (label, (b0, b1)), c in zip(lines.items(), colors):
        ax.plot(grid, b0 + b1 * grid, color=c, lw=2,
                label=f"{label}: {b0:.2f} + {b1:.3f}x")
    ax.legend(frameon=False)
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    return fig


def plot_profile_likelihood(profile, mle_value=None, title="", xlabel=""):
    """Profile log-likelihood with its likelihood-ratio 95% interval shaded."""
    fig, ax = plt.subplots(figsize=(7, 4))
    ax.plot(profile["grid"], profile["profile_ll"], color=CB, lw=2)
    lo, hi = profile["ci_95"]
    if np.isfinite(lo) and np.isfinite(hi):
        ax.axvspan(lo, hi, color=CG, alpha=0.15, label="LR 95% interval")
    if mle_value is not None:
        ax.axvline(mle_value, color=CR, ls="--", lw=1, label="MLE")
    ax.legend(frameon=False)
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel("Profile log-likelihood")
    return fig


def plot_likelihood_contour(G0, G1, LL, mle=None, path=None, title="",
                            xlabel="", ylabel=""):
    """Contours of a log-likelihood surface, with optional MLE and optimizer path."""
    fig, ax = plt.subplots(figsize=(6.5, 5))
    levels = np.quantile(LL, np.linspace(0.5, 1.0, 15))
    cs = ax.contour(G0, G1, LL, levels=np.unique(levels), cmap="viridis")
    fig.colorbar(cs, ax=ax, label="log-likelihood")
    if path is not None:
        path = np.asarray(path)
        ax.plot(path[:, 0], path[:, 1], "o-", color=CO, ms=3, lw=1,
                label="optimizer path")
    if mle is not None:
        ax.plot(mle[0], mle[1], "*", color=CR, ms=14, label="MLE")
    if path is not None or mle is not None:
        ax.legend(frameon=False)
    ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    return fig


def plot_coefficients(results, term, title=""):
    """
    Point estimates and 95% intervals for one coefficient across models.

    results : mapping of model label -> result dict (with names, beta, se)
    """
    labels, est, se = [], [], []
    for label, res in results.items():
        names = list(res["names"])
        if term in names:
            j = names.index(term)
            labels.append(label)
            est.append(res["beta"][j])
            se.append(res["se"][j])
    if not labels:
        raise ValueError(f"No model has a coefficient named {term!r}")

    est, se = np.array(est), np.array(se)
    fig, ax = plt.subplots(figsize=(7, 0.6 * len(labels) + 1.5))
    pos = np.arange(len(labels))
    ax.errorbar(est, pos, xerr=1.96 * se, fmt="o", color=CB, capsize=4)
    ax.axvline(0, color="#333", lw=0.8)
    ax.set_yticks(pos)
    ax.set_yticklabels(labels)
    ax.invert_yaxis()
    ax.set_title(title or term)
    return fig


def plot_moran_scatter(y, wy, moran=None, title="", xlabel="y", ylabel="Spatial lag of y"):
    """Moran scatterplot: standardized y against its standardized spatial lag."""
    y = np.asarray(y, dtype=float)
    wy = np.asarray(wy, dtype=float)
    zy = (y - y.mean()) / y.std()
    zwy = (wy - wy.mean()) / wy.std()

    fig, ax = plt.subplots(figsize=(6, 6))
    ax.scatter(zy, zwy, s=8, alpha=0.5, color=CB)
    slope = np.polyfit(zy, zwy, 1)
    grid = np.linspace(zy.min(), zy.max(), 50)
    ax.plot(grid, np.polyval(slope, grid), color=CR, lw=1.5)
    ax.axhline(0, color="#333", lw=0.8)
    ax.axvline(0, color="#333", lw=0.8)
    if moran is not None:
        ax.set_title(f"{title}  Moran's I = {moran['I']:.3f}".strip())
    else:
        ax.set_title(title)
    ax.set_xlabel(xlabel)
    ax.set_ylabel(ylabel)
    return fig
