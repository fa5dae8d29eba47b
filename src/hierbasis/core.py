"""Univariate nonparametric regression with hierarchical basis functions.

Minimises over β ∈ ℝᴶ

    (1/2n) ‖y − Ψβ‖²  +  λ Σⱼ aⱼ ‖β[j:J]‖₂,     aⱼ = jᵐ − (j−1)ᵐ,

for a whole path of λ values, where Ψ is the centered design (by
default the polynomial basis ``x, x², …, x^J``).

Solution strategy
~~~~~~~~~~~~~~~~~
1. **Orthogonalize** the centered design, ``Ψ_c = QR`` with
   ``Q'Q = nI``.  In the coordinates θ = Rβ the least-squares term
   becomes ``½‖v − θ‖²`` up to a constant, with ``v = Q'y/n``.
   Columns of a rank-deficient design get a zero column in ``Q``, so
   their ``vⱼ`` and ``θⱼ`` stay zero.
2. **Build the lambda path** from ``max_λ = maxⱼ |vⱼ|/aⱼ`` (all-zero
   fit) down to ``max_λ · lam_min_ratio``.
3. **Proximal path** — the penalised problem in θ is exactly the
   hierarchical proximal operator at ``v``, one closed-form backward
   pass per λ, evaluated by the active backend.
4. **Back-transform** each column with ``Rβ = θ``.

:func:`fit_single_response` runs all four steps on an arbitrary
design.  :func:`hier_basis` builds the polynomial design, keeps the
orthogonal-scale path and defers step 4 to
:meth:`~hierbasis.HierBasisResult.coef`, so that very large bases
(where ``R`` is numerically singular) can still be fitted and used
through interpolated predictions.

References:
    Haris, A., Shojaie, A. & Simon, N. (2016).  Nonparametric
    regression with adaptive truncation via a convex hierarchical
    penalty.  *arXiv:1611.09972*.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy import sparse

from ._backends import resolve_backend
from ._compat import _ensure_vector
from ._results import HierBasisResult, SolutionPath
from .basis import polynomial_design
from .lambdas import build_lambda_path, smoothness_weights
from .orthogonal import OrthogonalBasis, backtransform, orthogonalize

logger = logging.getLogger(__name__)


def _orthogonal_path(
    basis: OrthogonalBasis,
    y_centered: np.ndarray,
    ak: np.ndarray,
    weights: np.ndarray | None,
    *,
    nlam: int,
    lam_min_ratio: float,
    max_lambda: float | None,
    backend: str | None,
    n_jobs: int,
) -> tuple[sparse.csc_matrix, np.ndarray, str]:
    """Steps 2–3: lambda path and proximal path in θ coordinates."""
    n = basis.q.shape[0]
    v = basis.q.T @ (y_centered / n)
    lambdas = build_lambda_path(v, ak, nlam, lam_min_ratio, max_lambda)

    if weights is None:
        template = np.repeat(ak[:, None], lambdas.shape[0], axis=1)
    else:
        template = np.asarray(weights, dtype=float)
        if template.ndim == 1:
            template = np.repeat(template[:, None], lambdas.shape[0], axis=1)
        if template.shape != (ak.shape[0], lambdas.shape[0]):
            raise ValueError(
                f"weights must have shape ({ak.shape[0]}, {lambdas.shape[0]}), "
                f"got {template.shape}."
            )
    scaled = template * lambdas[None, :]

    _backend = resolve_backend(backend)
    theta = _backend.prox_path(v, scaled, n_jobs=n_jobs)
    logger.debug(
        "Proximal path on %s backend: J=%d, nlam=%d", _backend.name, *theta.shape
    )
    return sparse.csc_matrix(theta), lambdas, _backend.name


def fit_single_response(
    design: np.ndarray,
    y,
    ak: np.ndarray,
    weights: np.ndarray | None = None,
    *,
    lam_min_ratio: float = 1e-4,
    nlam: int = 50,
    max_lambda: float | None = None,
    backend: str | None = None,
    n_jobs: int = 1,
) -> SolutionPath:
    """Fit the hierarchical-penalty path on a general design.

    Args:
        design: Design matrix ``(n, J)``; centered internally.
        y: Response vector ``(n,)``; centered internally.
        ak: Weight template ``(J,)``.
        weights: Optional ``(J,)`` or ``(J, nlam)`` template replacing
            ``ak`` in the penalty (``ak`` is still used to select
            ``max_lambda``).  Each column is multiplied by its lambda.
        lam_min_ratio: Ratio of the smallest to the largest lambda.
        nlam: Number of lambda values.
        max_lambda: Top of the path; auto-selected when ``None``.
        backend: ``"numpy"``, ``"jax"`` or ``None`` for the configured
            default.
        n_jobs: Parallel workers for the NumPy backend.

    Returns:
        :class:`~hierbasis.SolutionPath` with the original-scale path,
        the orthogonal-scale path and the lambdas.

    Raises:
        ValueError: On mismatched dimensions or invalid path settings.
        SingularDesignError: If the design is rank deficient.
    """
    design = np.asarray(design, dtype=float)
    y = _ensure_vector(y, name="y")
    ak = np.asarray(ak, dtype=float).ravel()
    if design.ndim != 2:
        raise ValueError(f"design must be 2-D, got shape {design.shape}.")
    if design.shape[0] != y.shape[0]:
        raise ValueError(
            f"design has {design.shape[0]} rows but y has length {y.shape[0]}."
        )
    if design.shape[1] != ak.shape[0]:
        raise ValueError(
            f"design has {design.shape[1]} columns but ak has length {ak.shape[0]}."
        )

    basis = orthogonalize(design)
    theta, lambdas, _ = _orthogonal_path(
        basis,
        y - y.mean(),
        ak,
        weights,
        nlam=nlam,
        lam_min_ratio=lam_min_ratio,
        max_lambda=max_lambda,
        backend=backend,
        n_jobs=n_jobs,
    )
    beta = backtransform(basis.r, theta)
    return SolutionPath(beta=beta, beta_orthogonal=theta, lambdas=lambdas, basis=basis)


def hier_basis(
    x,
    y,
    nbasis: int | None = None,
    *,
    max_lambda: float | None = None,
    nlam: int = 50,
    lam_min_ratio: float = 1e-4,
    m: float = 3,
    backend: str | None = None,
    n_jobs: int = 1,
) -> HierBasisResult:
    """Fit a univariate hierarchical-basis regression path.

    Args:
        x: Predictor values ``(n,)``.
        y: Responses ``(n,)``.
        nbasis: Number of polynomial basis functions; defaults to
            ``len(y)``.  Powers beyond the number of distinct ``x``
            values add nothing to the design and keep zero
            coefficients.  ``x**nbasis`` must be representable, so
            rescale ``x`` (e.g. to ``[-1, 1]``) before using a large
            basis.
        max_lambda: Top of the path.  ``None`` selects the smallest
            lambda at which the fit is the constant ``mean(y)``.
        nlam: Number of lambda values on the log scale.
        lam_min_ratio: Ratio of the smallest to the largest lambda.
        m: Smoothness order, usually not more than 3.
        backend: ``"numpy"``, ``"jax"`` or ``None`` for the configured
            default.
        n_jobs: Parallel workers for the NumPy backend.

    Returns:
        :class:`~hierbasis.HierBasisResult`.

    Raises:
        ValueError: On mismatched lengths, a constant ``x``, or a basis
            power that overflows.

    Examples:
        >>> rng = np.random.default_rng(0)
        >>> x = rng.uniform(size=100)
        >>> y = np.sin(3 * x) + rng.normal(scale=0.1, size=100)
        >>> fit = hier_basis(x, y, nbasis=8, nlam=20)
        >>> fit.fitted_values.shape
        (100, 20)
    """
    x = _ensure_vector(x, name="x")
    y = _ensure_vector(y, name="y")
    n = y.shape[0]
    if x.shape[0] != n:
        raise ValueError(f"x has length {x.shape[0]} but y has length {n}.")
    if n < 2:
        raise ValueError("hier_basis requires at least two observations.")
    if nbasis is None:
        nbasis = n

    design = polynomial_design(x, nbasis)
    ak = smoothness_weights(nbasis, m)

    basis = orthogonalize(design)
    if basis.rank == 0:
        raise ValueError("x must take at least two distinct values.")
    ybar = float(y.mean())
    theta, lambdas, backend_name = _orthogonal_path(
        basis,
        y - ybar,
        ak,
        None,
        nlam=nlam,
        lam_min_ratio=lam_min_ratio,
        max_lambda=max_lambda,
        backend=backend,
        n_jobs=n_jobs,
    )

    fitted = np.asarray(basis.q @ theta.toarray()) + ybar
    active = np.count_nonzero(theta.toarray(), axis=0)

    return HierBasisResult(
        beta=theta,
        fitted_values=fitted,
        lambdas=lambdas,
        active=active,
        x=x,
        y=y,
        m=m,
        nbasis=int(nbasis),
        xbar=basis.means,
        ybar=ybar,
        backend=backend_name,
        basis=basis,
    )
