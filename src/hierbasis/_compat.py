"""Input compatibility layer for pandas and optional Polars support.

All public fitting functions accept NumPy arrays, pandas objects, and
Polars objects.  Inputs are converted to float64 NumPy arrays at the
boundary so that the solvers, which only ever see ``np.ndarray``,
remain unchanged.

Polars is **not** a required dependency.  If it is not installed, the
converters simply handle NumPy and pandas inputs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeAlias

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    import polars as pl

    DataFrameLike: TypeAlias = pd.DataFrame | pl.DataFrame | pl.LazyFrame
else:
    DataFrameLike: TypeAlias = pd.DataFrame

# Polars is optional.
try:
    import polars as pl

    _HAS_POLARS = True
except ImportError:
    _HAS_POLARS = False


def _ensure_pandas_df(obj: Any, *, name: str = "input") -> pd.DataFrame:
    """Convert *obj* to a :class:`pandas.DataFrame` if necessary.

    Accepted types:
        * ``pandas.DataFrame`` — returned as-is.
        * ``polars.DataFrame`` — converted via ``.to_pandas()``.
        * ``polars.LazyFrame`` — collected then converted.
        * 2-D ``numpy.ndarray`` — wrapped with columns ``x1 .. xp``.

    Args:
        obj: A pandas or Polars DataFrame (or LazyFrame), or a 2-D array.
        name: Label used in error messages (e.g. ``"X"``).

    Returns:
        A pandas ``DataFrame``.

    Raises:
        TypeError: If *obj* is not a recognised DataFrame type.
    """
    if isinstance(obj, pd.DataFrame):
        return obj

    if _HAS_POLARS:
        if isinstance(obj, pl.LazyFrame):
            return obj.collect().to_pandas()
        if isinstance(obj, pl.DataFrame):
            return obj.to_pandas()

    if isinstance(obj, np.ndarray) and obj.ndim == 2:
        return pd.DataFrame(obj, columns=[f"x{i + 1}" for i in range(obj.shape[1])])

    raise TypeError(
        f"'{name}' must be a pandas DataFrame or 2-D array"
        + (" or Polars DataFrame/LazyFrame" if _HAS_POLARS else "")
        + f", got {type(obj).__name__}."
    )


def _ensure_vector(obj: Any, *, name: str = "input") -> np.ndarray:
    """Convert a 1-D input to a float64 NumPy vector.

    Accepts NumPy arrays, lists, pandas Series, single-column pandas
    DataFrames, and (when installed) Polars Series or single-column
    DataFrames.

    Raises:
        TypeError: If *obj* is a mapping or another unsupported type.
        ValueError: If *obj* has more than one column or contains
            non-finite values.
    """
    if _HAS_POLARS:
        if isinstance(obj, pl.LazyFrame):
            obj = obj.collect()
        if isinstance(obj, (pl.Series, pl.DataFrame)):
            obj = obj.to_pandas()

    if isinstance(obj, pd.DataFrame):
        if obj.shape[1] != 1:
            raise ValueError(
                f"'{name}' must have exactly one column, got {obj.shape[1]}."
            )
        obj = obj.iloc[:, 0]

    if isinstance(obj, (dict, str)):
        raise TypeError(f"'{name}' must be array-like, got {type(obj).__name__}.")

    arr = np.asarray(obj, dtype=float)
    if arr.ndim == 2 and 1 in arr.shape:
        arr = arr.ravel()
    if arr.ndim != 1:
        raise ValueError(f"'{name}' must be one-dimensional, got shape {arr.shape}.")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"'{name}' contains NaN or infinite values.")
    return arr
