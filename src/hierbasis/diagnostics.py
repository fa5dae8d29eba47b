"""Post-fit diagnostics for hierarchical-penalty paths.

Degrees of freedom
~~~~~~~~~~~~~~~~~~
At a solution with active prefix ``{1, …, K'}`` the fit is locally a
smooth function of the response.  Differentiating the stationarity
condition

    Q'(y − Qθ) / n = ∇Ω(θ)

with respect to *y* gives ``∂θ/∂y = (Q'Q + nM)⁻¹ Q'`` where *M* is the
Hessian of the nested-norm penalty restricted to the active block:

    M = Σⱼ  (wⱼ / ‖θ[j:K']‖) Pⱼ  −  (wⱼ / ‖θ[j:K']‖³) Pⱼ θθ' Pⱼ

and ``Pⱼ`` zeroes every row and column before *j*.  The effective
number of parameters is the trace of the resulting smoother,
``tr(Q_K (Q_K'Q_K + nM)⁻¹ Q_K')``.  For an orthogonal basis this is
``tr((I + M)⁻¹) ≤ K'``.

The estimator only reads a completed path; it never feeds back into
the optimisation.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy import linalg, sparse

logger = logging.getLogger(__name__)


def _as_dense_column(beta) -> np.ndarray:
    if sparse.issparse(beta):
        beta = beta.toarray()
    return np.asarray(beta, dtype=float).ravel()


def active_set_size(beta_path) -> np.ndarray:
    """Number of nonzero coefficients in each column of a path."""
    if sparse.issparse(beta_path):
        B = sparse.csc_matrix(beta_path, copy=True)
        B.eliminate_zeros()
        return np.diff(B.indptr)
    B = np.asarray(beta_path)
    if B.ndim == 1:
        B = B[:, None]
    return np.count_nonzero(B, axis=0)


def penalty_hessian(beta: np.ndarray, weights: np.ndarray) -> np.ndarray:
    """Hessian of ``Σⱼ wⱼ ‖β[j:K]‖`` at a vector with ``β[K-1] != 0``."""
    K = beta.shape[0]
    tail_norms = np.sqrt(np.cumsum(beta[::-1] ** 2)[::-1])
    w1 = weights / tail_norms
    w3 = weights / tail_norms**3
    M = np.zeros((K, K))
    for j in range(K):
        b = beta[j:]
        M[j:, j:] += w1[j] * np.eye(K - j) - w3[j] * np.outer(b, b)
    return M


def degrees_of_freedom(
    beta,
    lam: float,
    ak: np.ndarray,
    q: np.ndarray,
    n: int | None = None,
) -> float:
    """Effective number of parameters at one lambda.

    Args:
        beta: Orthogonal-scale coefficient vector ``(J,)``.
        lam: The lambda at which *beta* was fitted.
        ak: Weight template ``(J,)``.
        q: Orthogonal basis ``(n, J)``.
        n: Sample size; defaults to ``q.shape[0]``.

    Returns:
        Degrees of freedom; ``0.0`` when *beta* is entirely zero.
    """
    beta = _as_dense_column(beta)
    ak = np.asarray(ak, dtype=float).ravel()
    q = np.asarray(q, dtype=float)
    if n is None:
        n = q.shape[0]
    if beta.shape[0] != ak.shape[0] or q.shape[1] != beta.shape[0]:
        raise ValueError(
            f"Shape mismatch: beta {beta.shape}, ak {ak.shape}, basis {q.shape}."
        )

    nonzero = np.flatnonzero(beta)
    if nonzero.size == 0:
        return 0.0

    k_prime = int(nonzero[-1]) + 1
    beta_k = beta[:k_prime]
    M = penalty_hessian(beta_k, lam * ak[:k_prime])

    q_k = q[:, :k_prime]
    gram = q_k.T @ q_k
    # tr(Q (G + nM)⁻¹ Q') == tr((G + nM)⁻¹ G)
    smoother = linalg.solve(gram + n * M, gram, assume_a="sym")
    return float(np.trace(smoother))


def degrees_of_freedom_path(
    beta_path,
    lambdas: np.ndarray,
    ak: np.ndarray,
    q: np.ndarray,
    n: int | None = None,
) -> np.ndarray:
    """:func:`degrees_of_freedom` for every column of a path."""
    B = beta_path.toarray() if sparse.issparse(beta_path) else np.asarray(beta_path)
    lambdas = np.asarray(lambdas, dtype=float).ravel()
    if B.shape[1] != lambdas.shape[0]:
        raise ValueError(
            f"Path has {B.shape[1]} columns but {lambdas.shape[0]} lambdas were given."
        )
    dof = np.array(
        [degrees_of_freedom(B[:, l], lambdas[l], ak, q, n) for l in range(B.shape[1])]
    )
    if dof.size:
        logger.debug("Degrees of freedom range: %.3f to %.3f", dof.min(), dof.max())
    return dof
