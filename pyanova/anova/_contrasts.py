"""
Linear contrasts between levels of one factor.

A contrast is a weighted sum of level means whose weights sum to zero:

    psi = sum(w_i * mean_i)
    SS  = psi^2 / sum(w_i^2 / n_i)        (1 df)

The F-test borrows the error term of the factor's own F-test. The weight
generators below produce the usual families: simple (each level vs a
control), repeated (adjacent levels) and difference (Helmert, each level vs
the mean of the following or preceding levels).
"""

from typing import Any

import numpy as np
from numpy.typing import NDArray

from pyanova.anova._common import ContrastRow, Effect, Term
from pyanova.anova._ftest import f_test
from pyanova.core.compute.tolerances import CPU_FP64, is_zero
from pyanova.core.exceptions import DimensionError, ValidationError
from pyanova.core.validation import check_array, check_finite, check_1d


def normalize_weights(weights: Any, n_levels: int) -> NDArray:
    """
    Validate contrast weights.

    Weights summing to zero are used as given. Otherwise weights in
    {+1, -1, 0} are read as group memberships and rescaled so that each
    side averages its members: [1, 1, -1] becomes [0.5, 0.5, -1]. Group
    codes in {1, 2, 0} are read the same way with 2 as the second group:
    [1, 2, 2, 2] becomes [1, -1/3, -1/3, -1/3].

    Raises:
        DimensionError: If the number of weights doesn't match the levels
        ValidationError: If the weights can't form a contrast
    """
    w = check_array(weights, "weights")
    check_finite(w, "weights")
    check_1d(w, "weights")
    if len(w) != n_levels:
        raise DimensionError(
            f"weights: expected {n_levels} weights (one per level), got {len(w)}"
        )
    if np.all(w == 0):
        raise ValidationError("weights: all weights are zero")

    if is_zero(float(np.sum(w)), float(np.sum(np.abs(w))), CPU_FP64):
        return w.astype(np.float64)

    if np.any(w == 2) and np.any(w == 1) and np.all(np.isin(w, (0.0, 1.0, 2.0))):
        w = np.where(w == 2, -1.0, w)

    if not np.all(np.isin(w, (-1.0, 0.0, 1.0))):
        raise ValidationError(
            f"weights: must sum to zero or be +1/-1/0 or 1/2/0 group memberships, "
            f"got sum {np.sum(w):g}"
        )
    n_pos = int(np.sum(w > 0))
    n_neg = int(np.sum(w < 0))
    if n_pos == 0 or n_neg == 0:
        raise ValidationError(
            "weights: group memberships need levels on both sides (+1 and -1)"
        )
    return np.where(w > 0, 1.0 / n_pos, np.where(w < 0, -1.0 / n_neg, 0.0))


def simple_weights(n_levels: int, control: int) -> list[NDArray]:
    """Each level against the control level."""
    if not 0 <= control < n_levels:
        raise ValidationError(
            f"control: level index must be in [0, {n_levels}), got {control}"
        )
    out = []
    for i in range(n_levels):
        if i == control:
            continue
        w = np.zeros(n_levels)
        w[i] = 1.0
        w[control] = -1.0
        out.append(w)
    return out


def repeated_weights(n_levels: int) -> list[NDArray]:
    """Each level against the next one."""
    out = []
    for i in range(n_levels - 1):
        w = np.zeros(n_levels)
        w[i] = 1.0
        w[i + 1] = -1.0
        out.append(w)
    return out


def difference_weights(n_levels: int, reverse: bool = False) -> list[NDArray]:
    """
    Helmert contrasts.

    Forward: level i against the mean of levels i+1..k-1. Reverse: level i
    against the mean of levels 0..i-1. Both sets are orthogonal, so their
    sums of squares add up to the factor's.
    """
    out = []
    if reverse:
        for i in range(1, n_levels):
            w = np.zeros(n_levels)
            w[i] = 1.0
            w[:i] = -1.0 / i
            out.append(w)
    else:
        for i in range(n_levels - 1):
            w = np.zeros(n_levels)
            w[i] = 1.0
            w[i + 1:] = -1.0 / (n_levels - i - 1)
            out.append(w)
    return out


def contrast_row(
    weights: NDArray,
    level_means: NDArray,
    n_per_level: int,
    error_ms: float,
    error_df: float,
    error_term: str,
    label: str,
    *,
    n_obs: int,
    measured_total: float | None,
    floor: float = 0.0,
) -> ContrastRow:
    """
    Test one contrast.

    measured_total is the omega-squared denominator of the factor without
    the factor's own contribution; None when variance components are not
    available. floor is the rounding-noise level of the data, see
    noise_floor().
    """
    value = float(np.dot(weights, level_means))
    ss = value ** 2 / float(np.sum(weights ** 2 / n_per_level))
    effect = Effect(term=Term(name=label, live=0), sum_sq=ss, df=1, mean_sq=ss)
    f_val, p_val = f_test(effect, error_ms, error_df, error_term, floor)

    if measured_total is None:
        omega_sq = float('nan')
    else:
        contribution = max((ss - error_ms) / n_obs, 0.0)
        denom = contribution + measured_total
        omega_sq = contribution / denom if denom > 0 else 0.0

    return ContrastRow(
        label=label,
        weights=tuple(float(x) for x in weights),
        contrast=value,
        sum_sq=ss,
        df=1,
        f_value=f_val,
        p_value=p_val,
        omega_sq=omega_sq,
        r=float(np.sqrt(f_val / (f_val + error_df))),
    )
