"""NumPy backend (always available).

The reference implementation: one backward pass of
:func:`~hierbasis.prox.prox_solve` per lambda column.

Parallelism
~~~~~~~~~~~
Lambda columns share nothing but the read-only input vector, so when
``n_jobs != 1`` they are distributed with
``joblib.Parallel(prefer="threads")``.  Threads avoid serialising the
input for every task; each task allocates its own working copy.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from joblib import Parallel, delayed

from ..prox import prox_solve


@dataclass(frozen=True)
class NumpyBackend:
    """NumPy compute backend.

    Frozen dataclass with no instance state — safe to cache in the
    module-level ``_BACKEND_CACHE`` singleton.
    """

    @property
    def name(self) -> str:
        return "numpy"

    @property
    def is_available(self) -> bool:  # noqa: PLR6301
        return True

    def prox_path(
        self,
        y: np.ndarray,
        weights: np.ndarray,
        n_jobs: int = 1,
    ) -> np.ndarray:
        """Column-by-column proximal path.

        Args:
            y: Point to project ``(J,)``.
            weights: Per-lambda weights ``(J, nlam)``.
            n_jobs: Number of joblib threads; ``1`` runs a plain loop.

        Returns:
            Dense coefficient path ``(J, nlam)``.
        """
        y = np.asarray(y, dtype=float)
        W = np.asarray(weights, dtype=float)
        if W.ndim == 1:
            W = W[:, None]
        nlam = W.shape[1]

        if n_jobs == 1:
            columns = [prox_solve(y, W[:, l]) for l in range(nlam)]
        else:
            columns = Parallel(n_jobs=n_jobs, prefer="threads")(
                delayed(prox_solve)(y, W[:, l]) for l in range(nlam)
            )
        return np.column_stack(columns) if columns else np.zeros((y.shape[0], 0))
