"""Tests for the additive block coordinate-descent solver."""

from __future__ import annotations

import json
import warnings

import numpy as np
import pandas as pd
import pytest
from sklearn.exceptions import ConvergenceWarning

from hierbasis import (
    AdditiveHierBasisResult,
    SingularDesignError,
    additive_hier_basis,
    additive_objective,
    fit_additive,
)
from hierbasis.additive import _block_projections
from hierbasis.basis import additive_bases
from hierbasis.lambdas import max_lambda_from, smoothness_weights
from hierbasis.prox import prox_solve

# ------------------------------------------------------------------ #
# Shared fixtures
# ------------------------------------------------------------------ #

_N, _J, _P = 150, 4, 3


@pytest.fixture()
def problem():
    """Orthogonal bases for three predictors, only the first relevant."""
    rng = np.random.default_rng(2024)
    X = rng.uniform(size=(_N, _P))
    y = 2.0 * X[:, 0] + np.sin(3 * X[:, 0]) + 0.1 * rng.standard_normal(_N)
    cube, _ = additive_bases(X, _J)
    return X, y - y.mean(), cube


def _weights(cube: np.ndarray, y: np.ndarray, ratio: float) -> np.ndarray:
    ak = smoothness_weights(_J, 3)
    v = _block_projections(y, cube)
    lam = max_lambda_from(v.ravel(order="F"), np.tile(ak, _P)) * ratio
    return lam * ak


def _one_sweep(y: np.ndarray, cube: np.ndarray, w: np.ndarray) -> np.ndarray:
    """Cyclic block updates from zero, recomputing each partial residual."""
    beta = np.zeros((_J, _P))
    for l in range(_P):
        others = sum(cube[:, :, k] @ beta[:, k] for k in range(_P) if k != l)
        beta[:, l] = prox_solve(cube[:, :, l].T @ (y - others) / _N, w)
    return beta


# ------------------------------------------------------------------ #
# fit_additive
# ------------------------------------------------------------------ #


class TestFitAdditive:
    def test_single_block_matches_prox(self, problem) -> None:
        _, y, cube = problem
        block = cube[:, :, :1]
        w = 0.05 * smoothness_weights(_J, 3)
        fit = fit_additive(y, w[:, None], block, tol=1e-12)
        expected = prox_solve(block[:, :, 0].T @ y / _N, w)
        np.testing.assert_allclose(fit.beta.toarray()[:, 0], expected, atol=1e-12)
        assert fit.state.converged[0]
        assert fit.state.n_iter[0] == 2

    def test_one_sweep_then_warning(self, problem) -> None:
        _, y, cube = problem
        w = _weights(cube, y, 0.05)
        with pytest.warns(ConvergenceWarning, match="max_iter=1"):
            fit = fit_additive(y, w[:, None], cube, tol=0.0, max_iter=1)
        assert not fit.state.converged[0]
        assert fit.state.n_iter[0] == 1
        np.testing.assert_allclose(
            fit.beta.toarray()[:, 0], _one_sweep(y, cube, w).ravel(order="F"), atol=1e-12
        )

    def test_objective_never_increases(self, problem) -> None:
        _, y, cube = problem
        w = _weights(cube, y, 0.02)
        objectives = []
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            for sweeps in range(1, 8):
                fit = fit_additive(y, w[:, None], cube, tol=0.0, max_iter=sweeps)
                beta = fit.beta.toarray()[:, 0].reshape((_J, _P), order="F")
                objectives.append(additive_objective(y, cube, beta, w))
        assert np.all(np.diff(objectives) <= 1e-12)
        assert objectives[-1] < additive_objective(y, cube, np.zeros((_J, _P)), w)

    def test_top_of_path_is_zero(self, problem) -> None:
        _, y, cube = problem
        w = _weights(cube, y, 1.0)
        fit = fit_additive(y, w[:, None], cube)
        assert fit.beta.nnz == 0
        assert fit.state.converged[0]
        assert fit.state.n_iter[0] == 1

    def test_irrelevant_predictors_stay_zero(self, problem) -> None:
        _, y, cube = problem
        fit = fit_additive(y, _weights(cube, y, 0.5)[:, None], cube, tol=1e-8)
        beta = fit.beta.toarray()[:, 0].reshape((_J, _P), order="F")
        assert np.any(beta[:, 0] != 0)
        np.testing.assert_array_equal(beta[:, 1:], 0.0)

    def test_blocks_have_leading_support(self, problem) -> None:
        _, y, cube = problem
        ak = smoothness_weights(_J, 3)
        lambdas = _weights(cube, y, 1.0)[0] * np.logspace(0, -3, 12)
        fit = fit_additive(y, ak[:, None] * lambdas[None, :], cube, tol=1e-8)
        dense = fit.beta.toarray()
        for i in range(lambdas.shape[0]):
            block = dense[:, i].reshape((_J, _P), order="F")
            for l in range(_P):
                nonzero = np.flatnonzero(block[:, l])
                np.testing.assert_array_equal(nonzero, np.arange(nonzero.size))

    def test_warm_and_cold_starts_agree(self, problem) -> None:
        _, y, cube = problem
        ak = smoothness_weights(_J, 3)
        W = ak[:, None] * (_weights(cube, y, 1.0)[0] * np.logspace(0, -2, 6))[None, :]
        warm = fit_additive(y, W, cube, tol=1e-12, max_iter=2000)
        cold = fit_additive(y, W, cube, tol=1e-12, max_iter=2000, warm_start=False)
        np.testing.assert_allclose(warm.beta.toarray(), cold.beta.toarray(), atol=1e-6)
        assert warm.state.n_iter.sum() <= cold.state.n_iter.sum()

    def test_parallel_cold_start_matches_serial(self, problem) -> None:
        _, y, cube = problem
        ak = smoothness_weights(_J, 3)
        W = ak[:, None] * (_weights(cube, y, 1.0)[0] * np.logspace(0, -2, 5))[None, :]
        serial = fit_additive(y, W, cube, warm_start=False)
        parallel = fit_additive(y, W, cube, warm_start=False, n_jobs=2)
        np.testing.assert_array_equal(serial.beta.toarray(), parallel.beta.toarray())
        np.testing.assert_array_equal(serial.state.n_iter, parallel.state.n_iter)

    def test_n_jobs_ignored_with_warm_start(self, problem) -> None:
        _, y, cube = problem
        w = _weights(cube, y, 0.5)
        with pytest.warns(UserWarning, match="n_jobs is ignored"):
            fit_additive(y, w[:, None], cube, n_jobs=2)

    def test_initial_iterate(self, problem) -> None:
        _, y, cube = problem
        w = _weights(cube, y, 0.1)
        reference = fit_additive(y, w[:, None], cube, tol=1e-12, max_iter=500)
        start = reference.beta.toarray()[:, 0].reshape((_J, _P), order="F")
        restarted = fit_additive(y, w[:, None], cube, beta=start, tol=1e-12, max_iter=500)
        assert restarted.state.n_iter[0] <= 2
        np.testing.assert_allclose(
            restarted.beta.toarray(), reference.beta.toarray(), atol=1e-10
        )


class TestFitAdditiveValidation:
    def test_binomial_not_implemented(self, problem) -> None:
        _, y, cube = problem
        with pytest.raises(NotImplementedError, match="binomial"):
            fit_additive(y, np.ones((_J, 1)), cube, family="binomial")

    def test_unknown_family(self, problem) -> None:
        _, y, cube = problem
        with pytest.raises(ValueError, match="Unknown family"):
            fit_additive(y, np.ones((_J, 1)), cube, family="poisson")

    def test_negative_tol(self, problem) -> None:
        _, y, cube = problem
        with pytest.raises(ValueError, match="tol"):
            fit_additive(y, np.ones((_J, 1)), cube, tol=-1.0)

    @pytest.mark.parametrize("max_iter", [0, -5, 2.5])
    def test_bad_max_iter(self, problem, max_iter) -> None:
        _, y, cube = problem
        with pytest.raises(ValueError, match="max_iter"):
            fit_additive(y, np.ones((_J, 1)), cube, max_iter=max_iter)

    def test_weight_rows_must_match_basis(self, problem) -> None:
        _, y, cube = problem
        with pytest.raises(ValueError, match="weights must have shape"):
            fit_additive(y, np.ones((_J + 1, 2)), cube)

    def test_response_length(self, problem) -> None:
        _, y, cube = problem
        with pytest.raises(ValueError, match="rows"):
            fit_additive(y[:-1], np.ones((_J, 1)), cube)

    def test_initial_iterate_shape(self, problem) -> None:
        _, y, cube = problem
        with pytest.raises(ValueError, match="beta must have shape"):
            fit_additive(y, np.ones((_J, 1)), cube, beta=np.zeros((_J, _P + 1)))

    def test_negative_weights(self, problem) -> None:
        _, y, cube = problem
        with pytest.raises(ValueError, match="non-negative"):
            fit_additive(y, -np.ones((_J, 1)), cube)


# ------------------------------------------------------------------ #
# additive_hier_basis
# ------------------------------------------------------------------ #


class TestAdditiveHierBasis:
    @pytest.fixture()
    def frame(self, problem):
        X, _, _ = problem
        rng = np.random.default_rng(5)
        y = 2.0 * X[:, 0] + np.sin(3 * X[:, 0]) + 0.1 * rng.standard_normal(_N)
        return pd.DataFrame(X, columns=["a", "b", "c"]), y

    @pytest.fixture()
    def fit(self, frame):
        df, y = frame
        return additive_hier_basis(df, y, nbasis=_J, nlam=20, tol=1e-8, max_iter=500)

    def test_result_structure(self, fit) -> None:
        assert isinstance(fit, AdditiveHierBasisResult)
        assert fit.beta.shape == (_J * _P, 20)
        assert fit.fitted_values.shape == (_N, 20)
        assert fit.feature_names == ["a", "b", "c"]
        assert fit.n_iter.shape == (20,)
        assert fit.converged.all()
        assert np.all(np.diff(fit.lambdas) < 0)

    def test_path_starts_at_the_mean(self, fit, frame) -> None:
        _, y = frame
        assert fit.active[0] == 0
        assert fit.intercept == pytest.approx(y.mean())
        np.testing.assert_allclose(fit.fitted_values[:, 0], y.mean())

    def test_relevant_predictor_enters_first(self, fit) -> None:
        first = int(np.flatnonzero(fit.active)[0])
        assert fit.component("a")[:, first].nnz > 0
        assert fit.component("b")[:, first].nnz == 0
        assert fit.component("c")[:, first].nnz == 0

    def test_component_by_name_and_index(self, fit) -> None:
        by_name = fit.component("b").toarray()
        by_index = fit.component(1).toarray()
        np.testing.assert_array_equal(by_name, by_index)
        np.testing.assert_array_equal(by_index, fit.beta.toarray()[_J : 2 * _J])

    def test_predict_reproduces_fitted_values(self, fit, frame) -> None:
        df, _ = frame
        np.testing.assert_allclose(fit.predict(df), fit.fitted_values, atol=1e-8)
        np.testing.assert_allclose(
            fit.predict(df.to_numpy()), fit.fitted_values, atol=1e-8
        )

    def test_predict_reorders_named_columns(self, fit, frame) -> None:
        df, _ = frame
        shuffled = df[["c", "a", "b"]]
        np.testing.assert_allclose(fit.predict(shuffled), fit.predict(df))

    def test_predict_column_count(self, fit) -> None:
        with pytest.raises(ValueError, match="columns"):
            fit.predict(np.ones((3, 2)))

    def test_matches_fit_additive(self, fit, frame) -> None:
        df, y = frame
        cube, _ = additive_bases(df.to_numpy(), _J)
        W = smoothness_weights(_J, 3)[:, None] * fit.lambdas[None, :]
        direct = fit_additive(y - y.mean(), W, cube, tol=1e-8, max_iter=500)
        np.testing.assert_allclose(direct.beta.toarray(), fit.beta.toarray())

    def test_numpy_input_gets_default_names(self, frame) -> None:
        df, y = frame
        fit = additive_hier_basis(df.to_numpy(), y, nbasis=3, nlam=5)
        assert fit.feature_names == ["x1", "x2", "x3"]

    def test_row_mismatch(self, frame) -> None:
        df, y = frame
        with pytest.raises(ValueError, match="rows but y has length"):
            additive_hier_basis(df, y[:-1], nbasis=3)

    def test_rejects_non_frame(self, frame) -> None:
        _, y = frame
        with pytest.raises(TypeError, match="'X' must be"):
            additive_hier_basis({"a": [1.0, 2.0]}, y, nbasis=3)

    def test_to_dict_is_json_serialisable(self, fit) -> None:
        d = fit.to_dict()
        assert "bases" not in d
        assert d["feature_names"] == ["a", "b", "c"]
        assert isinstance(d["converged"][0], bool)
        json.dumps(d)


# ------------------------------------------------------------------ #
# Binary predictor
# ------------------------------------------------------------------ #


class TestBinaryPredictor:
    """A 0/1 column has a single independent power."""

    @pytest.fixture()
    def binary_fit(self):
        rng = np.random.default_rng(11)
        a = rng.uniform(size=_N)
        flag = rng.integers(0, 2, size=_N).astype(float)
        y = np.sin(3 * a) + 1.5 * flag + 0.1 * rng.standard_normal(_N)
        df = pd.DataFrame({"a": a, "flag": flag})
        fit = additive_hier_basis(df, y, nbasis=_J, nlam=20, tol=1e-8, max_iter=500)
        return df, fit

    def test_only_leading_coefficient_is_used(self, binary_fit) -> None:
        _, fit = binary_fit
        assert fit.bases[1].rank == 1
        block = fit.component("flag").toarray()
        np.testing.assert_array_equal(block[1:], 0.0)
        assert np.any(block[0] != 0.0)
        assert np.all(fit.active <= _J + 1)

    def test_component_is_constant_within_levels(self, binary_fit) -> None:
        df, fit = binary_fit
        contribution = fit.bases[1].q @ fit.component("flag").toarray()
        flag = df["flag"].to_numpy()
        for level in (0.0, 1.0):
            spread = np.ptp(contribution[flag == level], axis=0)
            assert spread.max() < 1e-10

    def test_level_gap_is_recovered(self, binary_fit) -> None:
        df, fit = binary_fit
        contribution = fit.bases[1].q @ fit.component("flag").toarray()[:, -1]
        flag = df["flag"].to_numpy()
        gap = contribution[flag == 1.0].mean() - contribution[flag == 0.0].mean()
        assert gap == pytest.approx(1.5, abs=0.1)

    def test_predict_raises(self, binary_fit) -> None:
        df, fit = binary_fit
        with pytest.raises(SingularDesignError, match="rank deficient"):
            fit.predict(df)
