"""Penalty weights and the regularisation path.

The hierarchical penalty weights coordinate suffix *j* by

    aⱼ = jᵐ − (j − 1)ᵐ,   j = 1, …, J,

for a smoothness order *m*.  The weights are positive and increasing
for ``m > 1`` (constant for ``m = 1``) and telescope:
``Σ_{i ≤ j} aᵢ = jᵐ``.

The path runs from ``max_lambda``, where every coefficient is zero,
down to ``max_lambda · lam_min_ratio`` on a log-equispaced grid.
"""

from __future__ import annotations

import logging

import numpy as np

logger = logging.getLogger(__name__)


def smoothness_weights(nbasis: int, m: float = 3) -> np.ndarray:
    """Return the weight template ``ak`` of length *nbasis*.

    Raises:
        ValueError: If ``nbasis < 1`` or ``m < 1``.
    """
    if nbasis < 1:
        raise ValueError(f"nbasis must be at least 1, got {nbasis}.")
    if m < 1:
        raise ValueError(f"Smoothness order m must be at least 1, got {m}.")
    j = np.arange(1, nbasis + 1, dtype=float)
    return j**m - (j - 1.0) ** m


def max_lambda_from(v: np.ndarray, ak: np.ndarray) -> float:
    """Smallest lambda at which the proximal solution is all zero.

    Computes ``max_j |v_j| / ak_j`` and rounds it up by one ulp so
    that ``lam * ak_j >= |v_j|`` holds in floating point for every
    ``j``; the proximal operator then returns exactly zero at the top
    of the path.

    Raises:
        ValueError: If *v* is identically zero.
    """
    v = np.asarray(v, dtype=float).ravel()
    ak = np.asarray(ak, dtype=float).ravel()
    top = float(np.max(np.abs(v) / ak))
    if top <= 0.0:
        raise ValueError(
            "Cannot select max_lambda automatically: the projected response "
            "is identically zero.  Pass max_lambda explicitly."
        )
    return float(np.nextafter(top, np.inf))


def build_lambda_path(
    v: np.ndarray,
    ak: np.ndarray,
    nlam: int,
    lam_min_ratio: float,
    max_lambda: float | None = None,
) -> np.ndarray:
    """Generate a strictly decreasing, log-equispaced lambda sequence.

    Args:
        v: Orthogonal-coordinate response projection ``Q'y / n``.
        ak: Weight template (see :func:`smoothness_weights`).
        nlam: Number of lambda values.
        lam_min_ratio: Ratio of the smallest to the largest lambda,
            strictly inside ``(0, 1)``.
        max_lambda: Top of the path.  Selected with
            :func:`max_lambda_from` when ``None``.

    Returns:
        Array of length *nlam* whose first entry is exactly
        *max_lambda*.

    Raises:
        ValueError: On out-of-range arguments or mismatched lengths.

    Examples:
        >>> build_lambda_path(np.ones(2), np.ones(2), 3, 0.01, max_lambda=10.0)
        array([10. ,  1. ,  0.1])
    """
    v = np.asarray(v, dtype=float).ravel()
    ak = np.asarray(ak, dtype=float).ravel()
    if v.shape != ak.shape:
        raise ValueError(
            f"v has length {v.shape[0]} but ak has length {ak.shape[0]}."
        )
    if not 0.0 < lam_min_ratio < 1.0:
        raise ValueError(
            f"lam_min_ratio must lie strictly between 0 and 1, got {lam_min_ratio}."
        )
    if int(nlam) != nlam or nlam < 1:
        raise ValueError(f"nlam must be a positive integer, got {nlam}.")
    nlam = int(nlam)

    if max_lambda is None:
        max_lambda = max_lambda_from(v, ak)
    elif not max_lambda > 0.0:
        raise ValueError(f"max_lambda must be positive, got {max_lambda}.")

    lambdas = np.logspace(
        np.log10(max_lambda), np.log10(max_lambda * lam_min_ratio), nlam
    )
    lambdas[0] = max_lambda
    logger.debug(
        "Lambda path: %d values from %.6g to %.6g", nlam, lambdas[0], lambdas[-1]
    )
    return lambdas
