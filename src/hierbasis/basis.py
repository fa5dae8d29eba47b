"""Polynomial basis construction for univariate and additive fits."""

from __future__ import annotations

import numpy as np

from .orthogonal import OrthogonalBasis, orthogonalize


def polynomial_design(x: np.ndarray, nbasis: int) -> np.ndarray:
    """Return the ``(n, nbasis)`` matrix ``[x, x², …, x^nbasis]``.

    There is no constant column; the intercept is handled by centering.

    Raises:
        ValueError: If *nbasis* is below 1 or a power of *x* overflows.
    """
    if nbasis < 1:
        raise ValueError(f"nbasis must be at least 1, got {nbasis}.")
    x = np.asarray(x, dtype=float).ravel()
    with np.errstate(over="ignore"):
        design = np.power.outer(x, np.arange(1, nbasis + 1, dtype=float))
    finite = np.isfinite(design).all(axis=0)
    if np.all(np.isfinite(x)) and not finite.all():
        degree = int(np.argmin(finite)) + 1
        raise ValueError(
            f"x**{degree} overflows for max |x| = {np.abs(x).max():.4g} "
            f"(nbasis={nbasis}); rescale x (e.g. to [-1, 1]) or reduce nbasis."
        )
    return design


def additive_bases(
    X: np.ndarray, nbasis: int
) -> tuple[np.ndarray, list[OrthogonalBasis]]:
    """Orthogonalize one polynomial block per predictor column.

    Args:
        X: Predictor matrix ``(n, p)``.
        nbasis: Basis size *J* for every predictor.

    Returns:
        ``(cube, factors)`` where ``cube[:, :, l]`` is the rescaled
        orthogonal basis of predictor *l* (shape ``(n, J, p)``) and
        ``factors[l]`` its :class:`~hierbasis.orthogonal.OrthogonalBasis`.
    """
    X = np.asarray(X, dtype=float)
    if X.ndim != 2:
        raise ValueError(f"X must be 2-D, got shape {X.shape}.")
    factors = [
        orthogonalize(polynomial_design(X[:, l], nbasis)) for l in range(X.shape[1])
    ]
    cube = np.stack([f.q for f in factors], axis=2)
    return cube, factors
