"""
Autoregressive Models for Macroeconomic Series
================================================

For each series (unemployment, real GDP growth, CPI inflation):

  1. plot the series and its ACF / PACF,
  2. choose an AR order by BIC,
  3. fit AR(p) by least squares and check the residuals (Ljung-Box),
  4. forecast two years ahead.

Data come from FRED (see load_data.py); `--source simulate` replaces them
with simulated AR series of the same shape.
"""

import argparse
import os
import sys
import warnings
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import pandas as pd

THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = THIS_DIR.parents[1]
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(THIS_DIR))

from policy_methods import timeseries as m_ts
from policy_methods import plots
from policy_methods.tables import regression_table

from load_data import SERIES, load_all, simulate_all

warnings.filterwarnings("ignore", category=FutureWarning)

MAX_P = 8
NLAGS = 24
# forecast horizon in periods: two years
HORIZON = {"MS": 24, "QS": 8}


def _freq(dates):
    return "QS" if pd.Series(dates).diff().median().days > 45 else "MS"


def analyze_series(key, frame, outdir):
    """Run the ACF -> order selection -> AR fit -> forecast sequence for one series."""
    label = frame.attrs.get("label", key)
    y = frame["value"].to_numpy()
    dates = frame["date"]
    print(f"\n--- {label} [{dates.iloc[0]:%Y-%m} to {dates.iloc[-1]:%Y-%m}, "
          f"T={len(y)}] ---")

    plots.savefig(plots.plot_acf_pacf(y, nlags=NLAGS, title=label),
                  outdir / f"{key}_acf_pacf.png")

    r = m_ts.acf(y, 4)
    pa = m_ts.pacf(y, 4)
    band = m_ts.acf_confint(len(y))
    print(f"[ACF]  lags 1-4: {', '.join(f'{v:.2f}' for v in r[1:])}")
    print(f"[PACF] lags 1-4: {', '.join(f'{v:.2f}' for v in pa[1:])}  "
          f"(95% band +/-{band:.2f})")

    sel = m_ts.select_ar_order(y, max_p=MAX_P, criterion="bic")
    p = sel["best_p"]
    print(f"[Order] BIC selects p={p} (AIC would pick "
          f"p={int(sel['table']['aic'].idxmin())})")

    fit = m_ts.fit_ar(y, p)
    lb = m_ts.ljung_box(fit["residuals"], lags=min(NLAGS, fit["nobs"] // 4), dof=p)
    print(f"[AR({p})] stationary={fit['stationary']}  implied mean={fit['mean']:.3f}  "
          f"sigma={fit['sigma2'] ** 0.5:.3f}")
    print(f"[Ljung-Box] Q={lb['Q']:.2f}  df={lb['dof']}  p={lb['p_value']:.3f}")

    freq = _freq(dates)
    steps = HORIZON[freq]
    fc = m_ts.forecast_ar(fit, y, steps=steps)
    fc_dates = pd.date_range(dates.iloc[-1], periods=steps + 1, freq=freq)[1:]
    print(f"[Forecast] h=1: {fc[0]:.2f}   h={steps}: {fc[-1]:.2f}")

    recent = frame.iloc[-15 * (12 if freq == "MS" else 4):]
    plots.savefig(
        plots.plot_series(recent["date"], recent["value"], title=label,
                          label="Observed", forecast=(fc_dates, fc)),
        outdir / f"{key}_forecast.png",
    )
    return fit


def main():
    parser = argparse.ArgumentParser(
        description="AR models for unemployment, GDP growth and inflation"
    )
    parser.add_argument(
        "--source", choices=["auto", "fred", "simulate"], default="auto",
        help="'fred' to download from FRED, 'simulate' for synthetic series, "
             "'auto' to try FRED then fall back to simulation (default: auto)"
    )
    parser.add_argument("--start", type=str, default="1960-01-01",
                        help="First observation date (default: 1960-01-01)")
    parser.add_argument("--outdir", type=str,
                        default=os.path.join(THIS_DIR, "output"))
    args = parser.parse_args()

    outdir = Path(args.outdir)
    plots.use_style()

    print("=" * 60)
    print("Autoregressive Models for Macroeconomic Series")
    print("=" * 60)

    if args.source == "simulate":
        print("\n[Data] Using simulated series")
        tables = simulate_all()
    elif args.source == "fred":
        tables = load_all(start=args.start)
    else:
        try:
            tables = load_all(start=args.start)
        except RuntimeError:
            print("\n[Data] FRED unavailable, using simulated series")
            tables = simulate_all()

    fits = {}
    for key in SERIES:
        if key in tables:
            fits[key] = analyze_series(key, tables[key], outdir)

    print("\n" + regression_table(fits).to_string())
    print(f"\n[Output] Figures written to {outdir}")


if __name__ == "__main__":
    main()
