"""Orthogonal reparametrisation of a least-squares design.

For a centered design ``X_c = Q R`` with ``Q'Q = nI`` the two problems

    (1/2n) ‖y − X_c β‖²       + P(β)
    ½      ‖Q'y/n − θ‖²       + P(θ),    θ = R β,

share their penalised solution in θ, so the hierarchical proximal
operator is exact in the orthogonal coordinates.  Coefficients on the
original scale are recovered by back-substitution ``R β = θ``.

Rank deficiency
~~~~~~~~~~~~~~~
A column that lies (numerically) in the span of the columns before it
has ``|R_jj|`` at roundoff level, and the matching column of ``Q`` is
an arbitrary direction outside the design's column space.  Such
columns are zeroed in ``Q`` and the remaining columns span exactly the
independent ones.  Their projection ``v_j`` is then exactly zero, the
proximal operator keeps ``θ_j = 0``, and every fit stays a function of
the design.  For a polynomial basis the dependent columns are the
trailing powers at and beyond the number of distinct ``x`` values.
``R`` itself is left untouched, so :func:`backtransform` still refuses
it with :class:`SingularDesignError`.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

import numpy as np
from scipy import linalg

logger = logging.getLogger(__name__)

# Smallest residual fraction |R_jj| / ‖R[:j+1, j]‖ of an independent column.
_RANK_RTOL = 1e-10


class SingularDesignError(np.linalg.LinAlgError):
    """The design is rank deficient, so ``R`` cannot be inverted.

    Raised instead of returning NaN or meaningless coefficients when
    the orthogonal-scale path cannot be mapped back to the original
    design.
    """


class OrthogonalBasis(NamedTuple):
    """Rescaled economy QR factors of a centered design.

    Attributes:
        q: ``(n, J)`` basis.  Columns of full-rank directions satisfy
            ``q[:, j] @ q[:, j] == n`` and are mutually orthogonal;
            columns flagged as dependent are zero.
        r: ``(J, J)`` upper-triangular factor, ``centered == q @ r`` on
            the independent columns.
        means: Column means removed before factorisation (zeros when
            the caller passed ``center=False``).
        rank: Number of independent columns.
    """

    q: np.ndarray
    r: np.ndarray
    means: np.ndarray
    rank: int


def dependent_columns(r: np.ndarray, rtol: float = _RANK_RTOL) -> np.ndarray:
    """Boolean mask of columns that add no new direction to the design.

    Column *j* is dependent when the part of it orthogonal to the
    previous columns, ``|R_jj|``, is at most ``rtol`` times its norm
    ``‖R[:j+1, j]‖`` (an all-zero column is always dependent).

    Args:
        r: Upper-triangular factor ``(J, J)``.
        rtol: Relative tolerance on the residual fraction.

    Returns:
        Mask of length *J*.
    """
    r = np.asarray(r, dtype=float)
    col_norms = np.sqrt(np.sum(np.triu(r) ** 2, axis=0))
    diag = np.abs(np.diag(r))
    return (col_norms == 0.0) | (diag <= rtol * col_norms)


def orthogonalize(matrix: np.ndarray, *, center: bool = True) -> OrthogonalBasis:
    """Factor a design matrix into an orthogonal basis and ``R``.

    Args:
        matrix: Design matrix ``(n, J)`` with ``n >= J``.
        center: Subtract column means first.  With ``False`` the caller
            guarantees the columns are already centered.

    Returns:
        :class:`OrthogonalBasis` with ``Q`` scaled by ``sqrt(n)`` and
        ``R`` by ``1/sqrt(n)``.  Columns of ``Q`` belonging to
        dependent design columns are zero.

    Raises:
        ValueError: For non-2-D, non-finite or wide (``J > n``) input.
    """
    X = np.asarray(matrix, dtype=float)
    if X.ndim != 2:
        raise ValueError(f"Design matrix must be 2-D, got shape {X.shape}.")
    n, J = X.shape
    if n == 0 or J == 0:
        raise ValueError("Design matrix must have at least one row and one column.")
    if J > n:
        raise ValueError(
            f"Design matrix has more columns ({J}) than rows ({n}); "
            "the QR factor R would be singular."
        )
    if not np.all(np.isfinite(X)):
        raise ValueError("Design matrix contains NaN or infinite values.")

    means = X.mean(axis=0) if center else np.zeros(J)
    centered = X - means
    if center:
        # Constant columns center to roundoff rather than exact zeros.
        flat = np.linalg.norm(centered, axis=0) <= (
            _RANK_RTOL * np.linalg.norm(X, axis=0)
        )
        centered[:, flat] = 0.0
    q, r = linalg.qr(centered, mode="economic")
    scale = np.sqrt(n)
    q = q * scale

    dependent = dependent_columns(r)
    if dependent.any():
        keep = ~dependent
        q = np.zeros_like(q)
        if keep.any():
            # Span of the independent columns only.
            q_keep, _ = linalg.qr(centered[:, keep], mode="economic")
            q[:, keep] = q_keep * scale
        logger.debug(
            "Design has rank %d of %d; zeroed basis columns %s",
            J - int(dependent.sum()), J, np.flatnonzero(dependent).tolist(),
        )
    return OrthogonalBasis(
        q=q, r=r / scale, means=means, rank=J - int(dependent.sum())
    )


def _check_invertible(r: np.ndarray) -> None:
    dependent = dependent_columns(r)
    if r.shape[0] == 0 or dependent.any():
        rank = r.shape[0] - int(dependent.sum())
        logger.debug(
            "Back-transform refused: numerical rank %d of %d", rank, r.shape[0]
        )
        raise SingularDesignError(
            f"R is singular (numerical rank {rank} of {r.shape[0]}); the design "
            "is rank deficient and coefficients on the original scale cannot "
            "be recovered.  Reduce nbasis or use interpolated predictions."
        )


def backtransform(r: np.ndarray, beta_orthogonal) -> np.ndarray:
    """Solve ``R β = θ`` for one coefficient vector or a whole path.

    Args:
        r: Upper-triangular factor from :func:`orthogonalize`.
        beta_orthogonal: ``(J,)`` vector or ``(J, nlam)`` path (dense
            or SciPy sparse) in orthogonal coordinates.

    Returns:
        Dense coefficients on the original scale, same shape as the
        input.

    Raises:
        SingularDesignError: If ``R`` is numerically singular.
        ValueError: On a shape mismatch.
    """
    r = np.asarray(r, dtype=float)
    if hasattr(beta_orthogonal, "toarray"):
        beta_orthogonal = beta_orthogonal.toarray()
    theta = np.asarray(beta_orthogonal, dtype=float)
    if r.ndim != 2 or r.shape[0] != r.shape[1]:
        raise ValueError(f"R must be square, got shape {r.shape}.")
    if theta.shape[0] != r.shape[0]:
        raise ValueError(
            f"Coefficients have {theta.shape[0]} rows but R is {r.shape[0]}x{r.shape[1]}."
        )
    _check_invertible(r)
    return linalg.solve_triangular(r, theta, lower=False)
