"""Compute backends for the proximal path, and how one is chosen.

Each backend implements :class:`BackendProtocol`: the hierarchical
proximal operator evaluated for every column of a ``(J, nlam)`` weight
matrix.  Solvers ask :func:`resolve_backend` for an instance instead of
testing for JAX themselves.

A solver called with ``backend=None`` uses :func:`get_backend`, which
looks at, in order, a pin set with :func:`set_backend`, the
``HIERBASIS_BACKEND`` environment variable, and finally whether JAX is
installed.  A misspelt name raises ``ValueError`` wherever it comes
from, including the environment variable.  A request for ``"jax"``
without JAX installed raises ``ImportError``; only automatic selection
falls back to NumPy.

Examples:
    From the shell::

        export HIERBASIS_BACKEND=numpy

    From Python::

        hierbasis.set_backend("numpy")
        hierbasis.set_backend("auto")   # back to automatic selection
"""

from __future__ import annotations

import importlib.util
import os
from typing import Protocol, runtime_checkable

import numpy as np

# ------------------------------------------------------------------ #
# BackendProtocol
# ------------------------------------------------------------------ #


@runtime_checkable
class BackendProtocol(Protocol):
    """Interface that every compute backend must implement.

    Attributes:
        name: Short identifier (e.g. ``"numpy"``, ``"jax"``).
    """

    @property
    def name(self) -> str: ...

    @property
    def is_available(self) -> bool:
        """Whether the backend's dependencies are importable."""
        ...

    def prox_path(
        self,
        y: np.ndarray,
        weights: np.ndarray,
        n_jobs: int = 1,
    ) -> np.ndarray:
        """Hierarchical proximal operator for every weight column.

        Args:
            y: Point to project ``(J,)``.
            weights: Per-lambda weights ``(J, nlam)``.
            n_jobs: Parallel workers (ignored by vectorised backends).

        Returns:
            Dense coefficient path ``(J, nlam)``.
        """
        ...


# ------------------------------------------------------------------ #
# Selection policy
# ------------------------------------------------------------------ #

_ENV_VAR = "HIERBASIS_BACKEND"
_BACKENDS = ("numpy", "jax")

# Name stored by set_backend; None means no override.
_backend_override: str | None = None


def _jax_is_available() -> bool:
    return importlib.util.find_spec("jax") is not None


def _normalise(name: str, source: str, allow_auto: bool = False) -> str:
    """Lower-case *name* and check it against the known backends."""
    normalised = str(name).strip().lower()
    choices = _BACKENDS + ("auto",) if allow_auto else _BACKENDS
    if normalised not in choices:
        raise ValueError(
            f"Unknown backend {name!r} from {source}.  "
            f"Choose one of {', '.join(repr(c) for c in choices)}."
        )
    return normalised


def get_backend() -> str:
    """Name of the backend used when a solver gets ``backend=None``.

    An override from :func:`set_backend` wins, then the
    ``HIERBASIS_BACKEND`` environment variable, then ``"jax"`` when it
    is installed and ``"numpy"`` otherwise.

    Raises:
        ValueError: If the environment variable names no backend.
    """
    if _backend_override is not None:
        return _backend_override

    env = os.environ.get(_ENV_VAR, "").strip()
    if env and env.lower() != "auto":
        return _normalise(env, f"${_ENV_VAR}")

    return "jax" if _jax_is_available() else "numpy"


def set_backend(name: str) -> None:
    """Pin the default backend for this process.

    Args:
        name: ``"numpy"`` or ``"jax"``; ``"auto"`` clears the pin.
            Case-insensitive.

    Raises:
        ValueError: For any other name.
    """
    global _backend_override
    normalised = _normalise(name, "set_backend()", allow_auto=True)
    _backend_override = None if normalised == "auto" else normalised


# ------------------------------------------------------------------ #
# Backend resolution
# ------------------------------------------------------------------ #

# One instance per backend name.
_BACKEND_CACHE: dict[str, BackendProtocol] = {}


def resolve_backend(name: str | None = None) -> BackendProtocol:
    """Return a :class:`BackendProtocol` instance for *name*.

    Args:
        name: ``"numpy"``, ``"jax"``, or ``None`` for
            :func:`get_backend`.

    Returns:
        A backend instance.

    Raises:
        ImportError: If ``"jax"`` is explicitly requested but JAX
            is not installed.
        ValueError: If *name* is not a recognised backend.
    """
    name = get_backend() if name is None else _normalise(name, "backend=")

    if name in _BACKEND_CACHE:
        return _BACKEND_CACHE[name]

    if name == "numpy":
        from ._numpy import NumpyBackend

        backend: BackendProtocol = NumpyBackend()
    else:
        from ._jax import JaxBackend

        backend = JaxBackend()
        if not backend.is_available:
            raise ImportError(
                "Backend 'jax' was requested but JAX is not installed.  "
                "Install the 'jax' extra or use set_backend('numpy')."
            )

    _BACKEND_CACHE[name] = backend
    return backend
