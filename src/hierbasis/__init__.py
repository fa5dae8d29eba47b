"""hierbasis — Nonparametric regression with hierarchical basis functions.

Fits univariate regression curves and sparse additive models by
penalising nested coordinate suffixes of an orthogonalized polynomial
basis, which truncates the basis adaptively.  The engine solves the
proximal problem of the nested penalty in closed form, traces a full
lambda path, extends the single-predictor solver to many predictors by
block coordinate descent, and estimates degrees of freedom along the
path.

Public API:
    .. autosummary::
        hier_basis
        additive_hier_basis
        fit_single_response
        fit_additive
        additive_objective
        prox_solve
        prox_solve_path
        build_lambda_path
        max_lambda_from
        smoothness_weights
        orthogonalize
        backtransform
        polynomial_design
        degrees_of_freedom
        degrees_of_freedom_path
        active_set_size
        get_backend
        set_backend
        HierBasisResult
        AdditiveHierBasisResult
        SolutionPath
        AdditivePath
        ConvergenceState
        OrthogonalBasis
        SingularDesignError
"""

from ._backends import get_backend, set_backend
from ._results import AdditiveHierBasisResult, HierBasisResult, SolutionPath
from .additive import (
    AdditivePath,
    ConvergenceState,
    additive_hier_basis,
    additive_objective,
    fit_additive,
)
from .basis import polynomial_design
from .core import fit_single_response, hier_basis
from .diagnostics import active_set_size, degrees_of_freedom, degrees_of_freedom_path
from .lambdas import build_lambda_path, max_lambda_from, smoothness_weights
from .orthogonal import OrthogonalBasis, SingularDesignError, backtransform, orthogonalize
from .prox import prox_solve, prox_solve_path

__all__ = [
    "hier_basis",
    "additive_hier_basis",
    "fit_single_response",
    "fit_additive",
    "additive_objective",
    "prox_solve",
    "prox_solve_path",
    "build_lambda_path",
    "max_lambda_from",
    "smoothness_weights",
    "orthogonalize",
    "backtransform",
    "polynomial_design",
    "degrees_of_freedom",
    "degrees_of_freedom_path",
    "active_set_size",
    "get_backend",
    "set_backend",
    "HierBasisResult",
    "AdditiveHierBasisResult",
    "SolutionPath",
    "AdditivePath",
    "ConvergenceState",
    "OrthogonalBasis",
    "SingularDesignError",
]

__version__ = "0.1.0"
