"""Closed-form proximal operator of the hierarchical (nested) penalty.

Solves

    argmin_β  ½‖y − β‖²  +  Σⱼ wⱼ ‖β[j:J]‖₂

where block *j* covers the coordinate suffix ``j..J`` so that every
block contains all blocks after it.  Because the groups are nested,
the problem is solved exactly by a single backward pass over the
suffixes, innermost first:

    for j = J, J−1, …, 1:
        s ← β[j:J]
        s ← max(1 − wⱼ / ‖s‖, 0) · s

Each step only rescales coordinates that later (outer) steps rescale
again by a common factor, so an inner suffix that has been set to zero
stays zero.  With generic input and increasing weights the nonzero
coordinates therefore form a leading block ``{1, …, K'}``: the
hierarchical sparsity pattern the method is named after.

A suffix whose norm does not exceed its weight (including a zero-norm
suffix) is set to exactly zero.  No division by zero can occur.

References:
    Jenatton, R., Mairal, J., Obozinski, G. & Bach, F. (2011).
    Proximal methods for hierarchical sparse coding.  *JMLR*, 12,
    2297–2334.

    Haris, A., Shojaie, A. & Simon, N. (2016).  Nonparametric
    regression with adaptive truncation via a convex hierarchical
    penalty.  *arXiv:1611.09972*.
"""

from __future__ import annotations

import numpy as np
from scipy import sparse


def _check_prox_inputs(y: np.ndarray, weights: np.ndarray) -> None:
    if y.ndim != 1:
        raise ValueError(f"y must be one-dimensional, got shape {y.shape}.")
    if weights.shape[0] != y.shape[0]:
        raise ValueError(
            f"weights have {weights.shape[0]} rows but y has length {y.shape[0]}."
        )
    if np.any(weights < 0):
        raise ValueError("weights must be non-negative.")


def _shrink_suffixes(beta: np.ndarray, weights: np.ndarray) -> np.ndarray:
    """In-place backward pass on a private working copy."""
    J = beta.shape[0]
    for j in range(J - 1, -1, -1):
        s = beta[j:]
        norm = np.sqrt(np.dot(s, s))
        if norm > weights[j]:
            s *= 1.0 - weights[j] / norm
        else:
            s[:] = 0.0
    return beta


def prox_solve(y: np.ndarray, weights: np.ndarray) -> np.ndarray:
    """Proximal operator for a single weight vector.

    Args:
        y: Point to project, shape ``(J,)``.
        weights: Non-negative per-suffix weights, shape ``(J,)``.

    Returns:
        The exact minimiser, shape ``(J,)``.  *y* is not modified.

    Raises:
        ValueError: On shape mismatch or negative weights.

    Examples:
        >>> prox_solve(np.array([3.0, 4.0]), np.array([1.0, 1.0]))
        array([2.29289322, 2.29289322])
    """
    y = np.asarray(y, dtype=float)
    weights = np.asarray(weights, dtype=float)
    _check_prox_inputs(y, weights)
    if weights.ndim != 1:
        raise ValueError(
            f"weights must be one-dimensional, got shape {weights.shape}. "
            "Use prox_solve_path for a matrix of weights."
        )
    return _shrink_suffixes(y.copy(), weights)


def prox_solve_path(y: np.ndarray, weights_per_lambda: np.ndarray) -> sparse.csc_matrix:
    """Proximal operator for every column of a weight matrix.

    Columns are solved independently from the same *y*; nothing is
    shared between them.

    Args:
        y: Point to project, shape ``(J,)``.
        weights_per_lambda: Weight matrix ``(J, nlam)``; column *l*
            is ``lambdas[l] * ak``.

    Returns:
        Sparse ``(J, nlam)`` coefficient path.
    """
    y = np.asarray(y, dtype=float)
    W = np.asarray(weights_per_lambda, dtype=float)
    if W.ndim == 1:
        W = W[:, None]
    _check_prox_inputs(y, W)
    path = np.column_stack(
        [_shrink_suffixes(y.copy(), W[:, l]) for l in range(W.shape[1])]
    )
    return sparse.csc_matrix(path)
