"""Tests for spatial weights, Moran's I and the SAR / SEM estimators."""

import numpy as np
import pytest

from policy_methods import ols, spatial
from policy_methods.spatial import SpatialWeights


def lattice_weights(side):
    pairs = []
    for r in range(side):
        for c in range(side):
            i = r * side + c
            if c + 1 < side:
                pairs.append((i, i + 1))
            if r + 1 < side:
                pairs.append((i, i + side))
    return spatial.weights_from_adjacency(pairs, ids=list(range(side * side)))


@pytest.fixture(scope="module")
def w20():
    return lattice_weights(20).row_standardize()


class TestWeights:

    def test_rook_cardinalities(self, rook_pairs):
        w = spatial.weights_from_adjacency(rook_pairs)
        card = w.cardinalities
        assert card[0] == 2
        assert card[5] == 3
        assert card[55] == 4
        assert np.array_equal(w.matrix, w.matrix.T)
        assert sorted(w.neighbors(0)) == [1, 10]

    def test_row_standardize(self, rook_pairs):
        w = spatial.weights_from_adjacency(rook_pairs).row_standardize()
        assert w.standardized
        np.testing.assert_allclose(w.matrix.sum(axis=1), 1.0)

    def test_islands_keep_zero_rows(self):
        w = spatial.weights_from_adjacency([("a", "b")], ids=["a", "b", "c"])
        assert w.islands == ["c"]
        ws = w.row_standardize()
        np.testing.assert_allclose(ws.matrix.sum(axis=1), [1.0, 1.0, 0.0])

    def test_self_and_unknown_pairs_dropped(self):
        w = spatial.weights_from_adjacency(
            [("a", "a"), ("a", "b"), ("b", "z")], ids=["a", "b"])
        np.testing.assert_array_equal(w.matrix, [[0, 1], [1, 0]])

    def test_subset_restandardizes(self, rook_pairs):
        w = spatial.weights_from_adjacency(rook_pairs).row_standardize()
        sub = w.subset([0, 1, 2, 10, 11])
        assert sub.ids == [0, 1, 2, 10, 11]
        np.testing.assert_allclose(sub.matrix.sum(axis=1), 1.0)

    def test_subset_keeps_weight_proportions(self):
        m = np.array([[0.0, 1.0, 3.0, 4.0],
                      [1.0, 0.0, 2.0, 0.0],
                      [3.0, 2.0, 0.0, 1.0],
                      [4.0, 0.0, 1.0, 0.0]])
        w = SpatialWeights(["a", "b", "c", "d"], m)
        sub = w.row_standardize().subset(["c", "a", "b"])
        raw = w.subset(["c", "a", "b"]).row_standardize()
        assert sub.standardized
        np.testing.assert_allclose(sub.matrix, raw.matrix)
        np.testing.assert_allclose(sub.matrix[1], [0.75, 0.0, 0.25])

    def test_subset_order_and_neighbours(self, rook_pairs):
        w = spatial.weights_from_adjacency(rook_pairs)
        ids = list(range(99, -1, -1))
        sub = w.subset(ids)
        assert sub.ids == ids
        np.testing.assert_array_equal(sub.matrix, w.matrix[::-1, ::-1])
        assert sorted(sub.neighbors(55)) == [45, 54, 56, 65]

    def test_knn_rows_have_k_neighbours(self, rng):
        coords = rng.uniform(size=(50, 2))
        w = spatial.knn_weights(coords, k=4)
        np.testing.assert_array_equal(w.matrix.sum(axis=1), 4)
        assert np.all(np.diag(w.matrix) == 0)

    def test_knn_invalid_k(self, rng):
        with pytest.raises(ValueError):
            spatial.knn_weights(rng.uniform(size=(5, 2)), k=5)

    def test_distance_band(self):
        coords = np.column_stack([np.arange(5.0), np.zeros(5)])
        w = spatial.distance_band_weights(coords, threshold=1.01, ids=list("abcde"))
        assert w.neighbors("c") == ["b", "d"]
        assert w.islands == []
        assert np.array_equal(w.matrix, w.matrix.T)

    def test_shape_mismatch_raises(self):
        with pytest.raises(ValueError):
            SpatialWeights(["a", "b"], np.zeros((3, 3)))

    def test_duplicate_ids_raise(self):
        with pytest.raises(ValueError):
            SpatialWeights(["a", "a"], np.zeros((2, 2)))

    def test_spatial_lag_of_constant(self, w20):
        np.testing.assert_allclose(spatial.spatial_lag(w20, np.full(400, 3.0)), 3.0)

    def test_spatial_lag_length_check(self, w20):
        with pytest.raises(ValueError):
            spatial.spatial_lag(w20, np.ones(10))


class TestMoran:

    def test_smooth_field_is_positive(self, rook_pairs):
        w = spatial.weights_from_adjacency(rook_pairs).row_standardize()
        r, c = np.divmod(np.arange(100), 10)
        res = spatial.morans_i((r + c).astype(float), w, permutations=199, seed=0)
        assert res["I"] > 0.5
        assert res["p_sim"] < 0.05
        assert res["p_norm"] < 0.05
        assert res["expected"] == pytest.approx(-1 / 99)

    def test_checkerboard_is_negative(self, rook_pairs):
        w = spatial.weights_from_adjacency(rook_pairs).row_standardize()
        r, c = np.divmod(np.arange(100), 10)
        res = spatial.morans_i(((r + c) % 2).astype(float), w, permutations=199, seed=0)
        assert res["I"] == pytest.approx(-1.0)
        assert res["z"] < 0
        assert res["p_sim"] < 0.05

    def test_noise_is_near_expectation(self, w20, rng):
        res = spatial.morans_i(rng.normal(size=400), w20, permutations=0)
        assert abs(res["I"] - res["expected"]) < 4 * np.sqrt(res["variance"])
        assert np.isnan(res["p_sim"])

    def test_permutations_reproducible(self, w20, rng):
        y = rng.normal(size=400)
        a = spatial.morans_i(y, w20, permutations=99, seed=5)
        b = spatial.morans_i(y, w20, permutations=99, seed=5)
        assert a["p_sim"] == b["p_sim"]

    def test_no_links_raises(self):
        w = SpatialWeights([0, 1, 2], np.zeros((3, 3)))
        with pytest.raises(ValueError):
            spatial.morans_i(np.arange(3.0), w)


class TestSpatialRegression:

    @pytest.fixture(scope="class")
    def lag_data(self, w20):
        rng = np.random.default_rng(21)
        X = np.column_stack([np.ones(400), rng.normal(size=400)])
        y = np.linalg.solve(np.eye(400) - 0.5 * w20.matrix,
                            X @ np.array([1.0, 2.0]) + rng.normal(size=400))
        return y, X

    @pytest.fixture(scope="class")
    def error_data(self, w20):
        rng = np.random.default_rng(22)
        X = np.column_stack([np.ones(400), rng.normal(size=400)])
        u = np.linalg.solve(np.eye(400) - 0.6 * w20.matrix, rng.normal(size=400))
        return X @ np.array([1.0, 2.0]) + u, X

    def test_sar_recovers_rho(self, lag_data, w20):
        y, X = lag_data
        res = spatial.fit_spatial_lag(y, X, w20, names=["const", "x"])
        assert res["rho"] == pytest.approx(0.5, abs=0.15)
        assert res["beta"][1] == pytest.approx(2.0, abs=0.2)
        assert res["sigma2"] == pytest.approx(1.0, abs=0.25)
        assert 0 < res["se_rho"] < 0.2
        assert res["names"] == ["const", "x"]

    def test_sar_beats_ols_likelihood(self, lag_data, w20):
        y, X = lag_data
        sar = spatial.fit_spatial_lag(y, X, w20)
        assert sar["loglik"] > ols.estimate(X, y)["loglik"]

    def test_sem_recovers_lambda(self, error_data, w20):
        y, X = error_data
        res = spatial.fit_spatial_error(y, X, w20)
        assert res["lam"] == pytest.approx(0.6, abs=0.2)
        assert res["beta"][1] == pytest.approx(2.0, abs=0.2)
        assert 0 < res["se_lam"] < 0.2

    def test_sar_standard_errors_follow_outcome_scale(self, lag_data, w20):
        y, X = lag_data
        base = spatial.fit_spatial_lag(y, X, w20)
        small = spatial.fit_spatial_lag(y * 1e-3, X, w20)
        assert np.all(np.isfinite(small["se"]))
        assert small["rho"] == pytest.approx(base["rho"], abs=1e-4)
        np.testing.assert_allclose(small["se"], base["se"] * 1e-3, rtol=1e-2)
        assert small["se_rho"] == pytest.approx(base["se_rho"], rel=1e-2)

    def test_sem_standard_errors_follow_outcome_scale(self, error_data, w20):
        y, X = error_data
        base = spatial.fit_spatial_error(y, X, w20)
        small = spatial.fit_spatial_error(y * 1e-3, X, w20)
        assert np.all(np.isfinite(small["se"]))
        assert small["lam"] == pytest.approx(base["lam"], abs=1e-4)
        np.testing.assert_allclose(small["se"], base["se"] * 1e-3, rtol=1e-2)
        assert small["se_lam"] == pytest.approx(base["se_lam"], rel=1e-2)

    def test_ols_residuals_show_dependence(self, error_data, w20):
        y, X = error_data
        res = spatial.ols_residual_moran(y, X, w20, permutations=99, seed=1)
        assert res["I"] > 0
        assert res["p_norm"] < 0.05

    def test_input_length_check(self, lag_data, w20):
        y, X = lag_data
        with pytest.raises(ValueError):
            spatial.fit_spatial_lag(y[:-1], X[:-1], w20)
