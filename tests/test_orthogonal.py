"""Tests for the QR reparametrisation and the back-transform."""

from __future__ import annotations

import numpy as np
import pytest
from scipy import sparse

from hierbasis.basis import polynomial_design
from hierbasis.orthogonal import (
    SingularDesignError,
    backtransform,
    dependent_columns,
    orthogonalize,
)


@pytest.fixture()
def design():
    rng = np.random.default_rng(7)
    return rng.standard_normal((60, 4)) + np.array([1.0, -2.0, 0.5, 3.0])


class TestOrthogonalize:
    def test_scaled_orthonormal_columns(self, design) -> None:
        basis = orthogonalize(design)
        np.testing.assert_allclose(basis.q.T @ basis.q, 60 * np.eye(4), atol=1e-10)

    def test_reconstructs_centered_design(self, design) -> None:
        basis = orthogonalize(design)
        np.testing.assert_allclose(basis.means, design.mean(axis=0))
        np.testing.assert_allclose(basis.q @ basis.r, design - design.mean(axis=0), atol=1e-12)

    def test_r_upper_triangular(self, design) -> None:
        r = orthogonalize(design).r
        assert r.shape == (4, 4)
        np.testing.assert_array_equal(np.tril(r, -1), 0.0)

    def test_columns_centered(self, design) -> None:
        q = orthogonalize(design).q
        np.testing.assert_allclose(q.mean(axis=0), 0.0, atol=1e-12)

    def test_without_centering(self, design) -> None:
        centered = design - design.mean(axis=0)
        basis = orthogonalize(centered, center=False)
        np.testing.assert_array_equal(basis.means, np.zeros(4))
        np.testing.assert_allclose(basis.q @ basis.r, centered, atol=1e-12)

    def test_wide_matrix_rejected(self) -> None:
        with pytest.raises(ValueError, match="more columns"):
            orthogonalize(np.ones((3, 5)))

    def test_non_finite_rejected(self, design) -> None:
        design[0, 0] = np.nan
        with pytest.raises(ValueError, match="NaN or infinite"):
            orthogonalize(design)

    def test_one_dimensional_rejected(self) -> None:
        with pytest.raises(ValueError, match="2-D"):
            orthogonalize(np.ones(5))

    def test_full_rank_design_reports_rank(self, design) -> None:
        assert orthogonalize(design).rank == 4


class TestRankDeficientDesign:
    def test_dependent_column_is_zeroed(self, design) -> None:
        design[:, 2] = design[:, 0] + design[:, 1]
        basis = orthogonalize(design)
        assert basis.rank == 3
        np.testing.assert_array_equal(basis.q[:, 2], 0.0)
        kept = basis.q[:, [0, 1, 3]]
        np.testing.assert_allclose(kept.T @ kept, 60 * np.eye(3), atol=1e-9)

    def test_remaining_columns_span_the_design(self, design) -> None:
        design[:, 2] = design[:, 0] + design[:, 1]
        basis = orthogonalize(design)
        centered = design - design.mean(axis=0)
        projected = basis.q @ (basis.q.T @ centered) / 60
        np.testing.assert_allclose(projected, centered, atol=1e-9)

    def test_tied_polynomial_powers(self) -> None:
        x = np.repeat([0.0, 0.5, 1.0], 10)
        basis = orthogonalize(polynomial_design(x, 5))
        assert basis.rank == 2
        np.testing.assert_array_equal(basis.q[:, 2:], 0.0)
        assert np.all(np.linalg.norm(basis.q[:, :2], axis=0) > 0)

    def test_constant_column_with_roundoff(self, design) -> None:
        design[:, 1] = 0.1
        basis = orthogonalize(design)
        assert basis.rank == 3
        np.testing.assert_array_equal(basis.q[:, 1], 0.0)

    def test_dependent_columns_mask(self) -> None:
        r = np.array([[2.0, 1.0, 3.0], [0.0, 1e-14, 0.0], [0.0, 0.0, 0.0]])
        np.testing.assert_array_equal(dependent_columns(r), [False, True, True])


class TestBacktransform:
    def test_round_trip_vector(self, design) -> None:
        r = orthogonalize(design).r
        beta = np.array([1.5, -0.5, 0.0, 2.0])
        np.testing.assert_allclose(backtransform(r, r @ beta), beta, atol=1e-12)

    def test_round_trip_path(self, design) -> None:
        r = orthogonalize(design).r
        B = np.random.default_rng(0).standard_normal((4, 6))
        np.testing.assert_allclose(backtransform(r, r @ B), B, atol=1e-12)

    def test_accepts_sparse_path(self, design) -> None:
        r = orthogonalize(design).r
        theta = np.zeros((4, 3))
        theta[0, 1:] = [1.0, 2.0]
        result = backtransform(r, sparse.csc_matrix(theta))
        np.testing.assert_allclose(result, backtransform(r, theta))

    def test_rank_deficient_design_raises(self, design) -> None:
        design[:, 3] = 1.0  # constant column vanishes after centering
        basis = orthogonalize(design)
        with pytest.raises(SingularDesignError, match="rank deficient"):
            backtransform(basis.r, np.ones(4))

    def test_singular_error_is_linalg_error(self) -> None:
        with pytest.raises(np.linalg.LinAlgError):
            backtransform(np.zeros((2, 2)), np.ones(2))

    def test_shape_mismatch(self, design) -> None:
        r = orthogonalize(design).r
        with pytest.raises(ValueError, match="rows"):
            backtransform(r, np.ones(3))
