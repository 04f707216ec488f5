"""
County Election Panel: Fixed vs. Random Effects
================================================

Does a county's Democratic two-party vote share move with its income and
turnout? With three presidential elections per county, unobserved county
characteristics can be handled either as fixed effects (within estimator)
or as random effects (GLS). The Hausman test asks whether the random
effects assumption is tenable; a random-intercept mixed model by state is
shown for comparison.

Data: county returns 2008-2016 plus ACS income (see load_data.py). Falls
back to a simulated panel if the sources are unavailable.
"""

import argparse
import os
import sys
import warnings
from pathlib import Path

import matplotlib
matplotlib.use("Agg")

THIS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = THIS_DIR.parents[1]
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(THIS_DIR))

from policy_methods import panel as m_panel
from policy_methods import plots
from policy_methods.tables import regression_table

from load_data import load_real_data, simulate_panel

warnings.filterwarnings("ignore", category=FutureWarning)

OUTCOME = "dem_share"
REGRESSORS = ["log_income", "log_turnout"]


def main():
    parser = argparse.ArgumentParser(
        description="County election panel -- FE vs. RE"
    )
    parser.add_argument(
        "--source", choices=["auto", "real", "simulate"], default="auto",
        help="'real' for election returns + Census ACS, 'simulate' for a "
             "synthetic panel, 'auto' to try real data then fall back "
             "(default: auto)"
    )
    parser.add_argument("--census-key", type=str, default=None,
                        help="Census API key (default: $CENSUS_API_KEY)")
    parser.add_argument("--outdir", type=str,
                        default=os.path.join(THIS_DIR, "output"))
    args = parser.parse_args()

    outdir = Path(args.outdir)
    plots.use_style()

    print("=" * 60)
    print("County Election Panel -- Fixed vs. Random Effects")
    print("=" * 60)

    if args.source == "simulate":
        print("\n[Data] Using simulated panel")
        frame = simulate_panel()
    elif args.source == "real":
        frame = load_real_data(api_key=args.census_key)
    else:
        try:
            frame = load_real_data(api_key=args.census_key)
        except RuntimeError as e:
            print(f"\n[Data] {e}; using simulated panel")
            frame = simulate_panel()

    p = m_panel.panel_arrays(frame, "fips", "year", OUTCOME, REGRESSORS)
    y, X, units, years = p["y"], p["X"], p["unit_ids"], p["time_ids"]
    print(f"\n[Data] N={len(y)}  counties={len(set(units))}  "
          f"elections={sorted(set(years))}")

    # --- 1) Pooled OLS ---
    pooled = m_panel.estimate_pooled(y, X, units, names=REGRESSORS)

    # --- 2) One-way and two-way fixed effects ---
    fe = m_panel.estimate_fe(y, X, units, names=REGRESSORS)
    fe2 = m_panel.estimate_fe(y, X, units, time_ids=years, names=REGRESSORS)

    # --- 3) Random effects ---
    re = m_panel.estimate_re(y, X, units, names=REGRESSORS)
    print(f"\n[RE] sigma_u^2={re['sigma2_u']:.5f}  sigma_e^2={re['sigma2_e']:.5f}  "
          f"rho={re['rho']:.3f}  median theta={re['theta'].median():.3f}")

    # --- 4) Hausman ---
    h = m_panel.hausman_test(fe, re)
    verdict = "prefer FE" if h["reject"] else "RE not rejected"
    print(f"[Hausman] chi2({h['dof']}) = {h['stat']:.2f}  p = {h['p_value']:.4f}  "
          f"-> {verdict}")

    # --- 5) Random intercept by state ---
    mixed = m_panel.fit_random_intercept(
        frame.dropna(subset=[OUTCOME] + REGRESSORS),
        f"{OUTCOME} ~ " + " + ".join(REGRESSORS) + " + C(year)",
        group="state",
    )
    print(f"[Mixed] state intercept variance={mixed['group_var']:.5f}  "
          f"ICC={mixed['icc']:.3f}  converged={mixed['converged']}")

    results = {
        "Pooled": pooled,
        "FE": fe,
        "FE (two-way)": fe2,
        "RE": re,
        "Mixed (state)": mixed,
    }
    table = regression_table(results, digits=4, extra_rows={
        "County effects": {"FE": "fixed", "FE (two-way)": "fixed", "RE": "random"},
        "Year effects": {"FE (two-way)": "yes", "Mixed (state)": "yes"},
    })
    print("\n" + table.to_string())

    for term in REGRESSORS:
        fig = plots.plot_coefficients(results, term, title=f"Coefficient on {term}")
        plots.savefig(fig, outdir / f"coef_{term}.png")
    print(f"\n[Output] Figures written to {outdir}")


if __name__ == "__main__":
    main()
