"""Sparse additive models with hierarchical basis functions.

Minimises, for every λ on a path,

    (1/2n) ‖y − Σₗ Xₗβₗ‖²  +  Σₗ Σⱼ wⱼ ‖βₗ[j:J]‖₂

over one coefficient block βₗ ∈ ℝᴶ per predictor, where each ``Xₗ`` is
an orthogonal basis with ``Xₗ'Xₗ = nI`` on its independent columns (columns
of a rank-deficient block are zero and their coefficients stay zero).

Block coordinate descent
~~~~~~~~~~~~~~~~~~~~~~~~
With the other blocks held fixed, the problem in βₗ is

    ½ ‖Xₗ'rₗ/n − βₗ‖²  +  Σⱼ wⱼ ‖βₗ[j:J]‖₂  + const,
    rₗ = y − Σ_{l'≠l} X_{l'}β_{l'},

which the hierarchical proximal operator solves exactly.  A sweep
updates the blocks in a fixed cyclic order, maintaining a running
fitted-value accumulator so each partial residual costs O(n) instead
of O(npJ).  Every block update is an exact minimisation, so the
objective never increases from one sweep to the next.

Convergence
~~~~~~~~~~~
After each sweep the change in the Frobenius norm of the ``(J, p)``
coefficient matrix is compared with ``tol``.  A λ that reaches
``max_iter`` sweeps keeps its last iterate; the fit continues and one
:class:`~sklearn.exceptions.ConvergenceWarning` listing the affected
λ indices is emitted at the end.

Warm starts
~~~~~~~~~~~
By default each λ starts from the previous λ's solution, which makes
the path inherently sequential.  With ``warm_start=False`` every λ
starts from the same initial iterate and the λ values are independent,
so they can be spread over ``n_jobs`` joblib threads.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np
from joblib import Parallel, delayed
from scipy import sparse
from sklearn.exceptions import ConvergenceWarning

from ._compat import _ensure_pandas_df, _ensure_vector
from ._results import AdditiveHierBasisResult
from .basis import additive_bases
from .diagnostics import active_set_size
from .lambdas import build_lambda_path, smoothness_weights
from .prox import prox_solve

logger = logging.getLogger(__name__)

_FAMILIES = ("gaussian", "binomial")


@dataclass
class ConvergenceState:
    """Per-lambda bookkeeping of the coordinate-descent loop."""

    n_iter: np.ndarray
    """Sweeps run for each lambda."""

    converged: np.ndarray
    """Whether ``|change| < tol`` was reached before ``max_iter``."""

    last_change: np.ndarray
    """Frobenius-norm change of the final sweep."""

    @classmethod
    def empty(cls, nlam: int) -> ConvergenceState:
        return cls(
            n_iter=np.zeros(nlam, dtype=int),
            converged=np.zeros(nlam, dtype=bool),
            last_change=np.full(nlam, np.nan),
        )


class AdditivePath(NamedTuple):
    """Output of :func:`fit_additive`."""

    beta: sparse.csc_matrix
    """Stacked coefficient path ``(J * p, nlam)``; block *l* in rows
    ``l*J:(l+1)*J``."""

    state: ConvergenceState


class _LambdaFit(NamedTuple):
    beta: np.ndarray
    x_beta: np.ndarray
    n_iter: int
    converged: bool
    change: float


# ------------------------------------------------------------------ #
# Single-lambda solver
# ------------------------------------------------------------------ #


def _block_projections(y: np.ndarray, bases: np.ndarray) -> np.ndarray:
    """``Xₗ'y / n`` for every block, as a ``(J, p)`` matrix.

    Evaluated exactly as the first sweep from zero evaluates it, so a
    lambda path built on these values is all zero at its top.
    """
    n = bases.shape[0]
    return np.column_stack([bases[:, :, l].T @ (y / n) for l in range(bases.shape[2])])


def _coordinate_descent(
    y: np.ndarray,
    bases: np.ndarray,
    w: np.ndarray,
    beta: np.ndarray,
    x_beta: np.ndarray,
    tol: float,
    max_iter: int,
) -> _LambdaFit:
    """Block coordinate descent at one weight vector.

    *beta* ``(J, p)`` and *x_beta* ``(n, p)`` are copied, never
    mutated.
    """
    n, _, p = bases.shape
    beta = beta.copy()
    x_beta = x_beta.copy()
    total = x_beta.sum(axis=1)

    change = np.nan
    for sweep in range(1, max_iter + 1):
        old_norm = np.linalg.norm(beta)

        for l in range(p):
            X_l = bases[:, :, l]
            partial = y - total + x_beta[:, l]
            v = X_l.T @ (partial / n)
            beta[:, l] = prox_solve(v, w)
            new_fit = X_l @ beta[:, l]
            total += new_fit - x_beta[:, l]
            x_beta[:, l] = new_fit

        change = float(np.linalg.norm(beta) - old_norm)
        if abs(change) < tol:
            return _LambdaFit(beta, x_beta, sweep, True, change)

    return _LambdaFit(beta, x_beta, max_iter, False, change)


def _validate_additive_inputs(
    y: np.ndarray, weights: np.ndarray, bases: np.ndarray, beta: np.ndarray
) -> None:
    if bases.ndim != 3:
        raise ValueError(f"bases must be a (n, J, p) cube, got shape {bases.shape}.")
    n, J, p = bases.shape
    if y.shape[0] != n:
        raise ValueError(f"y has length {y.shape[0]} but bases have {n} rows.")
    if weights.ndim != 2 or weights.shape[0] != J:
        raise ValueError(
            f"weights must have shape ({J}, nlam), got {weights.shape}."
        )
    if beta.shape != (J, p):
        raise ValueError(f"beta must have shape ({J}, {p}), got {beta.shape}.")
    if np.any(weights < 0):
        raise ValueError("weights must be non-negative.")


def fit_additive(
    y,
    weights: np.ndarray,
    bases: np.ndarray,
    beta: np.ndarray | None = None,
    *,
    tol: float = 1e-4,
    max_iter: int = 100,
    warm_start: bool = True,
    n_jobs: int = 1,
    family: str = "gaussian",
) -> AdditivePath:
    """Block coordinate descent over a path of weight vectors.

    Args:
        y: Response ``(n,)``, normally centered.
        weights: Per-lambda penalty weights ``(J, nlam)``; column *i*
            is ``lambdas[i] * ak``.
        bases: Orthogonal bases ``(n, J, p)`` with
            ``bases[:, :, l].T @ bases[:, :, l] == n * I``, except that
            columns of a rank-deficient block may be zero.
        beta: Initial iterate ``(J, p)``; zeros when ``None``.
        tol: Convergence threshold on the Frobenius-norm change of the
            coefficient matrix between sweeps.
        max_iter: Maximum sweeps per lambda.
        warm_start: Start each lambda from the previous solution.
        n_jobs: joblib threads across lambdas; only used with
            ``warm_start=False``.
        family: ``"gaussian"``.  ``"binomial"`` is reserved and not
            implemented.

    Returns:
        :class:`AdditivePath` with the sparse stacked path and the
        :class:`ConvergenceState`.

    Raises:
        ValueError: On shape mismatches or invalid settings.
        NotImplementedError: For ``family="binomial"``.

    Warns:
        ConvergenceWarning: If any lambda stops at ``max_iter``.
    """
    if family not in _FAMILIES:
        raise ValueError(f"Unknown family {family!r}. Choose from {_FAMILIES}.")
    if family == "binomial":
        raise NotImplementedError(
            "The binomial additive model is not implemented; use family='gaussian'."
        )
    if tol < 0:
        raise ValueError(f"tol must be non-negative, got {tol}.")
    if int(max_iter) != max_iter or max_iter < 1:
        raise ValueError(f"max_iter must be a positive integer, got {max_iter}.")
    max_iter = int(max_iter)

    y = _ensure_vector(y, name="y")
    bases = np.asarray(bases, dtype=float)
    W = np.asarray(weights, dtype=float)
    if W.ndim == 1:
        W = W[:, None]
    J, p = (bases.shape[1], bases.shape[2]) if bases.ndim == 3 else (0, 0)
    beta0 = np.zeros((J, p)) if beta is None else np.asarray(beta, dtype=float)
    _validate_additive_inputs(y, W, bases, beta0)

    nlam = W.shape[1]
    x_beta0 = np.einsum("njp,jp->np", bases, beta0)

    if n_jobs != 1 and warm_start:
        warnings.warn(
            "n_jobs is ignored when warm_start=True because each lambda "
            "starts from the previous solution.  Falling back to n_jobs=1.",
            UserWarning,
            stacklevel=2,
        )
        n_jobs = 1

    state = ConvergenceState.empty(nlam)
    path = np.zeros((J * p, nlam))

    if warm_start:
        current, x_current = beta0, x_beta0
        fits = []
        for i in range(nlam):
            fit = _coordinate_descent(y, bases, W[:, i], current, x_current, tol, max_iter)
            current, x_current = fit.beta, fit.x_beta
            fits.append(fit)
    elif n_jobs == 1:
        fits = [
            _coordinate_descent(y, bases, W[:, i], beta0, x_beta0, tol, max_iter)
            for i in range(nlam)
        ]
    else:
        fits = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_coordinate_descent)(y, bases, W[:, i], beta0, x_beta0, tol, max_iter)
            for i in range(nlam)
        )

    for i, fit in enumerate(fits):
        path[:, i] = fit.beta.ravel(order="F")
        state.n_iter[i] = fit.n_iter
        state.converged[i] = fit.converged
        state.last_change[i] = fit.change
        logger.debug(
            "lambda %d: %d sweeps, converged=%s, change=%.3g",
            i, fit.n_iter, fit.converged, fit.change,
        )

    failed = np.flatnonzero(~state.converged)
    if failed.size:
        shown = ", ".join(str(i) for i in failed[:10]) + (", ..." if failed.size > 10 else "")
        warnings.warn(
            f"Coordinate descent did not converge within max_iter={max_iter} "
            f"sweeps for {failed.size} of {nlam} lambda values (indices {shown}).  "
            f"The last iterate is returned for these values; consider "
            f"increasing max_iter or tol.",
            ConvergenceWarning,
            stacklevel=2,
        )

    return AdditivePath(beta=sparse.csc_matrix(path), state=state)


def additive_objective(
    y,
    bases: np.ndarray,
    beta: np.ndarray,
    weights: np.ndarray,
) -> float:
    """Penalised objective of a ``(J, p)`` iterate at one weight vector."""
    y = np.asarray(y, dtype=float)
    n = y.shape[0]
    resid = y - np.einsum("njp,jp->n", bases, beta)
    tail_norms = np.sqrt(np.cumsum(beta[::-1, :] ** 2, axis=0)[::-1, :])
    penalty = float(np.sum(np.asarray(weights, dtype=float)[:, None] * tail_norms))
    return float(resid @ resid) / (2 * n) + penalty


def additive_hier_basis(
    X,
    y,
    nbasis: int = 10,
    *,
    max_lambda: float | None = None,
    nlam: int = 50,
    lam_min_ratio: float = 1e-4,
    m: float = 3,
    tol: float = 1e-4,
    max_iter: int = 100,
    warm_start: bool = True,
    n_jobs: int = 1,
    family: str = "gaussian",
) -> AdditiveHierBasisResult:
    """Fit a sparse additive hierarchical-basis model path.

    Each predictor is expanded in its own centered polynomial basis of
    size *nbasis* and orthogonalized; the blocks are then fitted
    jointly by :func:`fit_additive`.  A predictor with fewer than
    ``nbasis + 1`` distinct values (a binary column, say) only uses its
    leading independent powers; the rest of its block stays zero, and
    :meth:`~hierbasis.AdditiveHierBasisResult.predict` raises
    :class:`~hierbasis.SingularDesignError` for it.

    Args:
        X: Predictors ``(n, p)`` as a pandas or Polars DataFrame or a
            2-D array.
        y: Responses ``(n,)``.
        nbasis: Basis functions per predictor.
        max_lambda: Top of the path.  ``None`` selects the smallest
            lambda at which every block is zero.
        nlam: Number of lambda values.
        lam_min_ratio: Ratio of the smallest to the largest lambda.
        m: Smoothness order.
        tol: Coordinate-descent tolerance.
        max_iter: Maximum sweeps per lambda.
        warm_start: Start each lambda from the previous solution.
        n_jobs: joblib threads across lambdas (``warm_start=False``).
        family: ``"gaussian"``.

    Returns:
        :class:`~hierbasis.AdditiveHierBasisResult`.
    """
    df = _ensure_pandas_df(X, name="X")
    y = _ensure_vector(y, name="y")
    X_np = df.to_numpy(dtype=float)
    n, p = X_np.shape
    if n != y.shape[0]:
        raise ValueError(f"X has {n} rows but y has length {y.shape[0]}.")
    if p == 0:
        raise ValueError("X must have at least one predictor column.")

    cube, factors = additive_bases(X_np, nbasis)
    ak = smoothness_weights(nbasis, m)

    ybar = float(y.mean())
    y_centered = y - ybar
    v = _block_projections(y_centered, cube)
    lambdas = build_lambda_path(
        v.ravel(order="F"), np.tile(ak, p), nlam, lam_min_ratio, max_lambda
    )
    weights = ak[:, None] * lambdas[None, :]

    fit = fit_additive(
        y_centered,
        weights,
        cube,
        tol=tol,
        max_iter=max_iter,
        warm_start=warm_start,
        n_jobs=n_jobs,
        family=family,
    )

    dense = fit.beta.toarray()
    fitted = np.full((n, lambdas.shape[0]), ybar)
    for l in range(p):
        fitted += cube[:, :, l] @ dense[l * nbasis : (l + 1) * nbasis, :]

    return AdditiveHierBasisResult(
        beta=fit.beta,
        fitted_values=fitted,
        lambdas=lambdas,
        active=active_set_size(fit.beta),
        n_iter=fit.state.n_iter,
        converged=fit.state.converged,
        feature_names=[str(c) for c in df.columns],
        intercept=ybar,
        m=m,
        nbasis=int(nbasis),
        bases=factors,
    )
