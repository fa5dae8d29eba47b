"""Typed result objects for hierarchical-penalty fits.

Frozen dataclasses that provide:

* **Attribute access** — ``result.lambdas``, ``result.beta``, etc.
* **Dict-like access** — ``result["lambdas"]``, ``result.get("key")``,
  ``"key" in result`` for consumers that prefer bracket syntax.
* **Serialisation** — ``.to_dict()`` returns a plain ``dict[str, Any]``
  with NumPy and SciPy sparse values converted to native Python.

Three result types mirror the three entry points:

* :class:`SolutionPath` — low-level single-response solver output.
* :class:`HierBasisResult` — univariate curve fit with ``coef``,
  ``predict`` and ``dof``.
* :class:`AdditiveHierBasisResult` — sparse additive model fit.

All are frozen: a result is a snapshot of a completed fit.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar

import numpy as np
from scipy import sparse

from .basis import polynomial_design
from .diagnostics import degrees_of_freedom, degrees_of_freedom_path
from .lambdas import smoothness_weights
from .orthogonal import OrthogonalBasis, backtransform

# ------------------------------------------------------------------ #
# Serialisation helper
# ------------------------------------------------------------------ #


def _numpy_to_python(obj: Any) -> Any:
    """Recursively convert NumPy / SciPy values to Python-native types.

    Sparse matrices become dense nested lists so that :meth:`to_dict`
    returns a fully JSON-serialisable structure.
    """
    if sparse.issparse(obj):
        return obj.toarray().tolist()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, dict):
        return {k: _numpy_to_python(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        converted = [_numpy_to_python(item) for item in obj]
        return type(obj)(converted)
    return obj


# ------------------------------------------------------------------ #
# Dict-compatibility mixin
# ------------------------------------------------------------------ #


class _DictAccessMixin:
    """Dict-like access convenience for result dataclasses.

    Supports three access patterns:

    1. ``result["key"]``     — raises ``KeyError`` on miss
    2. ``result.get(key, d)`` — returns *d* on miss (default ``None``)
    3. ``"key" in result``   — membership test
    """

    # Fields to exclude from to_dict() serialisation.
    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset({"basis", "bases"})

    def __getitem__(self, key: str) -> Any:
        """Attribute lookup via bracket syntax."""
        try:
            return getattr(self, key)
        except AttributeError:
            raise KeyError(key) from None

    def get(self, key: str, default: Any = None) -> Any:
        """Attribute lookup with a fallback default."""
        return getattr(self, key, default)

    def __contains__(self, key: object) -> bool:
        """Membership test: ``"key" in result``."""
        if not isinstance(key, str):
            return False
        return hasattr(self, key)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain, JSON-serialisable dictionary."""
        result: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            if f.name in self._EXCLUDE_FROM_DICT:
                continue
            result[f.name] = _numpy_to_python(getattr(self, f.name))
        return result


# ------------------------------------------------------------------ #
# SolutionPath
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class SolutionPath(_DictAccessMixin):
    """Output of :func:`~hierbasis.core.fit_single_response`."""

    beta: np.ndarray
    """Original-scale coefficient path ``(J, nlam)``."""

    beta_orthogonal: sparse.csc_matrix
    """Orthogonal-scale coefficient path ``(J, nlam)``."""

    lambdas: np.ndarray
    """Lambda sequence, strictly decreasing."""

    basis: OrthogonalBasis = field(repr=False, compare=False)
    """Orthogonal factorisation of the centered design."""

    @property
    def active(self) -> np.ndarray:
        """Active-set size per lambda."""
        return np.count_nonzero(self.beta_orthogonal.toarray(), axis=0)


# ------------------------------------------------------------------ #
# HierBasisResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class HierBasisResult(_DictAccessMixin):
    """Univariate hierarchical-basis fit over a lambda path.

    Returned by :func:`~hierbasis.core.hier_basis`.  Coefficients are
    stored in the orthogonal coordinates of the centered polynomial
    basis; :meth:`coef` maps them back to ``x, x², …``.
    """

    # ---- Path ------------------------------------------------------
    beta: sparse.csc_matrix
    """Orthogonal-scale coefficient path ``(nbasis, nlam)``."""

    fitted_values: np.ndarray
    """Fitted values ``(n, nlam)``, intercept included."""

    lambdas: np.ndarray
    """Lambda sequence used for the path."""

    active: np.ndarray
    """Active-set size per lambda (no intercept)."""

    # ---- Data ------------------------------------------------------
    x: np.ndarray
    """Training predictor values."""

    y: np.ndarray
    """Training responses."""

    # ---- Basis -----------------------------------------------------
    m: float
    """Smoothness order of the penalty weights."""

    nbasis: int
    """Maximum number of basis functions."""

    xbar: np.ndarray
    """Means of ``x, x², …, x^nbasis``."""

    ybar: float
    """Mean of *y*."""

    backend: str
    """Backend that evaluated the proximal path."""

    basis: OrthogonalBasis = field(repr=False, compare=False)
    """Orthogonal factorisation; ``basis.q`` is the design used."""

    @property
    def x_mat(self) -> np.ndarray:
        """Orthogonal design matrix; ``Q'Q = nI`` up to zero columns for dependent powers."""
        return self.basis.q

    @property
    def ak(self) -> np.ndarray:
        return smoothness_weights(self.nbasis, self.m)

    def coef(self) -> tuple[np.ndarray, np.ndarray]:
        """Coefficients on the original polynomial scale.

        Returns:
            ``(beta, intercept)`` with ``beta`` of shape
            ``(nbasis, nlam)`` and ``intercept`` of shape ``(nlam,)``.

        Raises:
            SingularDesignError: If the polynomial basis is numerically
                rank deficient.
        """
        beta = backtransform(self.basis.r, self.beta)
        intercept = self.ybar - self.xbar @ beta
        return beta, intercept

    def predict(self, new_x=None, interpolate: bool = False) -> np.ndarray:
        """Evaluate every fitted curve at *new_x*.

        Args:
            new_x: Points to predict at.  ``None`` returns the fitted
                values.
            interpolate: Linearly interpolate the fitted values over the
                training ``x`` instead of back-transforming the
                coefficients.  Stable for large *nbasis*; points outside
                the training range are ``NaN``.

        Returns:
            Predictions ``(len(new_x), nlam)``.
        """
        if new_x is None:
            return self.fitted_values
        new_x = np.atleast_1d(np.asarray(new_x, dtype=float))

        if interpolate:
            order = np.argsort(self.x, kind="stable")
            xs = self.x[order]
            return np.column_stack(
                [
                    np.interp(new_x, xs, self.fitted_values[order, l],
                              left=np.nan, right=np.nan)
                    for l in range(self.lambdas.shape[0])
                ]
            )

        beta, intercept = self.coef()
        return polynomial_design(new_x, self.nbasis) @ beta + intercept

    def dof(self, lam_index: int | None = None):
        """Degrees of freedom at one lambda index, or along the path."""
        n = self.y.shape[0]
        if lam_index is not None:
            return degrees_of_freedom(
                self.beta[:, lam_index], self.lambdas[lam_index], self.ak,
                self.basis.q, n,
            )
        return degrees_of_freedom_path(self.beta, self.lambdas, self.ak, self.basis.q, n)


# ------------------------------------------------------------------ #
# AdditiveHierBasisResult
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class AdditiveHierBasisResult(_DictAccessMixin):
    """Sparse additive hierarchical-basis fit over a lambda path.

    Returned by :func:`~hierbasis.additive.additive_hier_basis`.
    Predictor *l* occupies rows ``l*nbasis:(l+1)*nbasis`` of
    :attr:`beta`.
    """

    # ---- Path ------------------------------------------------------
    beta: sparse.csc_matrix
    """Orthogonal-scale coefficient path ``(nbasis * p, nlam)``."""

    fitted_values: np.ndarray
    """Fitted values ``(n, nlam)``, intercept included."""

    lambdas: np.ndarray
    """Lambda sequence used for the path."""

    active: np.ndarray
    """Number of nonzero coefficients per lambda."""

    # ---- Convergence -----------------------------------------------
    n_iter: np.ndarray
    """Coordinate-descent sweeps run for each lambda."""

    converged: np.ndarray
    """Whether each lambda met the tolerance before ``max_iter``."""

    # ---- Metadata --------------------------------------------------
    feature_names: list[str]
    """Predictor names, one per block."""

    intercept: float
    """Mean of *y*; the intercept of every fitted model."""

    m: float
    """Smoothness order of the penalty weights."""

    nbasis: int
    """Basis functions per predictor."""

    bases: list[OrthogonalBasis] = field(repr=False, compare=False)
    """Per-predictor orthogonal factorisations."""

    def component(self, index: int | str) -> sparse.csc_matrix:
        """Coefficient block ``(nbasis, nlam)`` for one predictor."""
        if isinstance(index, str):
            index = self.feature_names.index(index)
        start = index * self.nbasis
        return self.beta[start : start + self.nbasis, :]

    def predict(self, new_X) -> np.ndarray:
        """Evaluate the additive model at new predictor rows.

        Args:
            new_X: ``(n_new, p)`` array or DataFrame with the training
                columns.

        Returns:
            Predictions ``(n_new, nlam)``.

        Raises:
            SingularDesignError: If any predictor's polynomial basis is
                numerically rank deficient.
        """
        from ._compat import _ensure_pandas_df

        if not isinstance(new_X, np.ndarray):
            df = _ensure_pandas_df(new_X, name="new_X")
            if set(self.feature_names).issubset(df.columns):
                df = df[self.feature_names]
            new_X = df.to_numpy(dtype=float)
        new_X = np.atleast_2d(np.asarray(new_X, dtype=float))
        if new_X.shape[1] != len(self.feature_names):
            raise ValueError(
                f"new_X has {new_X.shape[1]} columns, expected {len(self.feature_names)}."
            )

        pred = np.full((new_X.shape[0], self.lambdas.shape[0]), self.intercept)
        for l, factor in enumerate(self.bases):
            coefs = backtransform(factor.r, self.component(l))
            design = polynomial_design(new_X[:, l], self.nbasis) - factor.means
            pred += design @ coefs
        return pred
