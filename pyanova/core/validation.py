"""
Input validators for observations, weights and factor labels.

Each validator checks one property and raises with the parameter name in
the message. Nothing is corrected silently: the only coercion is converting
array-likes to numpy arrays and integer observations to float64.
"""

from typing import Any

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pyanova.core.exceptions import DimensionError, ValidationError


def check_array(array: ArrayLike, name: str) -> NDArray[np.floating[Any]]:
    """
    Convert numeric input (observations, weights) to a float array.

    Raises:
        ValidationError: If the input is ragged, mixed or non-numeric
    """
    try:
        out = np.asarray(array)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"{name}: cannot convert to array: {e}") from e

    if out.dtype == object:
        raise ValidationError(
            f"{name}: object dtype; values are ragged, mixed or non-numeric"
        )
    if not np.issubdtype(out.dtype, np.number):
        raise ValidationError(f"{name}: non-numeric dtype {out.dtype}")
    if not np.issubdtype(out.dtype, np.floating):
        out = out.astype(np.float64)
    return out


def check_finite(array: NDArray[np.floating[Any]], name: str) -> None:
    """Reject NaN and Inf; missing observations make a design unbalanced."""
    finite = np.isfinite(array)
    if not finite.all():
        n_nan = int(np.isnan(array).sum())
        n_inf = int((~finite).sum()) - n_nan
        raise ValidationError(
            f"{name}: contains non-finite values ({n_nan} NaN, {n_inf} Inf)"
        )


def check_1d(array: NDArray[Any], name: str) -> None:
    if array.ndim != 1:
        raise DimensionError(
            f"{name}: expected 1D array, got {array.ndim}D with shape {array.shape}"
        )


def check_min_ndim(array: NDArray[Any], min_ndim: int, name: str) -> None:
    """
    Require at least min_ndim axes (one per factor, plus replicates).

    Raises:
        DimensionError: If the array has too few axes
    """
    if array.ndim < min_ndim:
        raise DimensionError(
            f"{name}: expected at least {min_ndim}D array, got {array.ndim}D "
            f"with shape {array.shape}"
        )


def check_labels(labels: ArrayLike, name: str) -> NDArray:
    """
    Validate one factor's label vector.

    Labels may be numbers or strings. Mixed (object) labels are converted to
    strings so that np.unique can order them.

    Raises:
        DimensionError: If labels are not 1D
    """
    out = np.asarray(labels)
    if out.ndim != 1:
        raise DimensionError(f"{name}: expected 1D labels, got {out.ndim}D")
    if out.dtype == object:
        out = out.astype(str)
    return out
