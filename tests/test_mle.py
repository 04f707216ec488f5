"""Tests for the Gaussian negative log-likelihood and the generic MLE tools."""

import numpy as np
import pytest
from scipy import stats

from policy_methods import mle
from policy_methods.utils import add_const, ols_fit


@pytest.fixture
def small_sample():
    """Well-conditioned regression sample: y = 2 + 3x + N(0, 1)."""
    rng = np.random.default_rng(7)
    x = rng.normal(0, 1, 500)
    y = 2 + 3 * x + rng.normal(0, 1, 500)
    return x, y


class TestNormalNLL:

    def test_matches_scipy_logpdf(self, small_sample):
        x, y = small_sample
        params = np.array([1.5, 2.5, 1.3])
        resid = y - (params[0] + params[1] * x)
        expected = -stats.norm.logpdf(resid, scale=params[2]).sum()
        assert mle.normal_nll(params, x, y) == pytest.approx(expected)

    def test_minimized_at_ols_for_fixed_sigma(self, small_sample):
        x, y = small_sample
        b, _, _, _ = ols_fit(add_const(x), y)
        sigma = 1.0
        at_ols = mle.normal_nll([b[0], b[1], sigma], x, y)

        for d0, d1 in [(0.01, 0), (-0.01, 0), (0, 0.01), (0, -0.01),
                       (0.5, 0.5), (-0.5, 0.2), (0.2, -0.5)]:
            nearby = mle.normal_nll([b[0] + d0, b[1] + d1, sigma], x, y)
            assert nearby > at_ols

    def test_monotone_in_slope_away_from_optimum(self, small_sample):
        x, y = small_sample
        b, _, _, _ = ols_fit(add_const(x), y)
        steps = np.linspace(0, 1.0, 21)

        right = [mle.normal_nll([b[0], b[1] + s, 1.0], x, y) for s in steps]
        left = [mle.normal_nll([b[0], b[1] - s, 1.0], x, y) for s in steps]
        assert np.all(np.diff(right) >= 0)
        assert np.all(np.diff(left) >= 0)

    @pytest.mark.parametrize(
        "sigma", [0.0, -1.0, -1e6, -1e300, -np.finfo(float).max, np.nan, -np.inf])
    def test_invalid_sigma_returns_finite_penalty(self, small_sample, sigma):
        x, y = small_sample
        value = mle.normal_nll([2.0, 3.0, sigma], x, y)
        assert np.isfinite(value)
        assert value >= mle.NLL_PENALTY
        assert value > mle.normal_nll([2.0, 3.0, 1.0], x, y)

    def test_penalty_grows_with_negative_sigma(self, small_sample):
        x, y = small_sample
        assert (mle.normal_nll([2.0, 3.0, -5.0], x, y)
                > mle.normal_nll([2.0, 3.0, -1.0], x, y))

    def test_deterministic(self, small_sample):
        x, y = small_sample
        params = [1.0, 2.0, 3.0]
        assert mle.normal_nll(params, x, y) == mle.normal_nll(params, x, y)

    def test_wrong_parameter_count_raises(self, small_sample):
        x, y = small_sample
        with pytest.raises(ValueError):
            mle.normal_nll([1.0, 2.0, 3.0, 4.0], x, y)

    def test_multiple_regressors(self, rng):
        x = rng.normal(size=(200, 2))
        y = 1 + x @ np.array([0.5, -2.0]) + rng.normal(size=200)
        value = mle.normal_nll([1.0, 0.5, -2.0, 1.0], x, y)
        assert np.isfinite(value)


class TestFitNormalRegression:

    def test_recovers_generating_parameters(self):
        x, y = mle.simulate_linear(5000, 20.0, 0.8, 10.0, seed=2024)
        fit = mle.fit_normal_regression(x, y)

        assert abs(fit["beta"][0] - 20.0) < 1.0
        assert abs(fit["beta"][1] - 0.8) < 0.05
        assert abs(fit["sigma"] - 10.0) < 1.0

    def test_coincides_with_ols(self, small_sample):
        x, y = small_sample
        b, _, e, _ = ols_fit(add_const(x), y)
        fit = mle.fit_normal_regression(x, y)

        np.testing.assert_allclose(fit["beta"], b, atol=1e-3)
        # ML variance divides by n
        assert fit["sigma"] == pytest.approx(np.sqrt(e @ e / len(y)), abs=1e-3)
        assert fit["converged"]

    def test_gradient_based_method(self, small_sample):
        x, y = small_sample
        b, _, _, _ = ols_fit(add_const(x), y)
        fit = mle.fit_normal_regression(x, y, method="BFGS")
        np.testing.assert_allclose(fit["beta"], b, atol=1e-3)

    def test_recovers_from_invalid_start(self, small_sample):
        x, y = small_sample
        fit = mle.fit_normal_regression(x, y, start=[0.0, 0.0, -1.0])
        assert fit["sigma"] > 0
        assert fit["beta"][1] == pytest.approx(3.0, abs=0.2)

    def test_standard_errors_match_ols_scale(self, small_sample):
        x, y = small_sample
        fit = mle.fit_normal_regression(x, y)
        _, se, _, _ = ols_fit(add_const(x), y)
        np.testing.assert_allclose(fit["se"], se, rtol=0.05)

    def test_standard_errors_on_small_scale_outcome(self, small_sample):
        x, y = small_sample
        scale = 1e-4
        b, se_ols, _, _ = ols_fit(add_const(x), y * scale)
        start = np.append(b, (y * scale).std())
        fit = mle.fit_normal_regression(x, y * scale, start=start)

        assert np.all(np.isfinite(fit["se"]))
        assert np.isfinite(fit["se_sigma"])
        np.testing.assert_allclose(fit["se"], se_ols, rtol=0.05)
        # asymptotic se of the ML sigma: sigma / sqrt(2n)
        assert fit["se_sigma"] == pytest.approx(
            fit["sigma"] / np.sqrt(2 * len(y)), rel=0.05)

    def test_result_keys(self, small_sample):
        x, y = small_sample
        fit = mle.fit_normal_regression(x, y)
        for key in ("beta", "sigma", "se", "nll", "loglik", "nobs", "names"):
            assert key in fit
        assert fit["loglik"] == pytest.approx(-fit["nll"])
        assert fit["names"] == ["const", "x"]


class TestGenericTools:

    def test_numerical_hessian_of_quadratic(self):
        A = np.array([[4.0, 1.0], [1.0, 3.0]])

        def f(b):
            return 0.5 * b @ A @ b

        H = mle.numerical_hessian(f, np.array([0.3, -0.7]))
        np.testing.assert_allclose(H, A, atol=1e-4)

    def test_fit_mle_matches_fit_normal_regression(self, small_sample):
        x, y = small_sample
        direct = mle.fit_normal_regression(x, y)
        generic = mle.fit_mle(mle.normal_nll, direct["params"] + 0.1, args=(x, y),
                              method="Nelder-Mead", track_path=True)
        np.testing.assert_allclose(generic["beta"], direct["params"], atol=1e-2)
        assert generic["path"].shape[1] == 3

    def test_profile_interval_covers_estimate(self, small_sample):
        x, y = small_sample
        fit = mle.fit_normal_regression(x, y)
        b1, se1 = fit["beta"][1], fit["se"][1]
        grid = np.linspace(b1 - 4 * se1, b1 + 4 * se1, 33)
        prof = mle.profile_likelihood(mle.normal_nll, fit["params"], 1, grid,
                                      args=(x, y))
        lo, hi = prof["ci_95"]
        assert lo < b1 < hi
        # LR interval is close to the Wald interval for a linear model
        assert hi - lo == pytest.approx(2 * 1.96 * se1, rel=0.2)
        assert grid[np.argmax(prof["profile_ll"])] == pytest.approx(b1, abs=se1 / 2)

    def test_likelihood_surface_peaks_near_mle(self, small_sample):
        x, y = small_sample
        fit = mle.fit_normal_regression(x, y)
        g0 = np.linspace(fit["beta"][0] - 0.5, fit["beta"][0] + 0.5, 21)
        g1 = np.linspace(fit["beta"][1] - 0.5, fit["beta"][1] + 0.5, 21)
        G0, G1, LL = mle.log_likelihood_surface(mle.normal_nll, g0, g1,
                                                args=(x, y), fixed=fit["params"])
        assert LL.shape == (21, 21)
        i, j = np.unravel_index(np.argmax(LL), LL.shape)
        assert G0[i, j] == pytest.approx(fit["beta"][0], abs=0.05)
        assert G1[i, j] == pytest.approx(fit["beta"][1], abs=0.05)

    def test_simulate_linear_is_reproducible(self):
        a = mle.simulate_linear(100, seed=1)
        b = mle.simulate_linear(100, seed=1)
        np.testing.assert_array_equal(a[0], b[0])
        np.testing.assert_array_equal(a[1], b[1])
