"""
ANOVA solver dispatch.

Public API:
    anova(observations, ...) -> AnovaSolution
    levene(observations, ...) -> AnovaSolution
    contrast(result, weights, ...) -> ContrastSolution
    simple_contrasts(result, ...) -> ContrastSolution
    repeated_contrasts(result, ...) -> ContrastSolution
    difference_contrasts(result, ...) -> ContrastSolution
"""

from typing import Any, Sequence

import numpy as np
from numpy.typing import NDArray

from pyanova.core.compute.timing import Timer
from pyanova.core.exceptions import NumericDegeneracyError, ValidationError
from pyanova.core.result import Result
from pyanova.anova._common import AnovaParams, ContrastParams, Factor, FactorType
from pyanova.anova._contrasts import (
    contrast_row,
    difference_weights,
    normalize_weights,
    repeated_weights,
    simple_weights,
)
from pyanova.anova._ems import solve_ems
from pyanova.anova._ftest import evaluate, noise_floor
from pyanova.anova._levene import CENTERS, absolute_deviations, cell_variances
from pyanova.anova._ss import decompose
from pyanova.anova.design import AnovaDesign
from pyanova.anova.solution import AnovaSolution, ContrastSolution


def anova(
    observations: Any,
    factor_assignments: Any = None,
    *,
    factor_types: Sequence[FactorType | str] | None = None,
    factor_names: Sequence[str] | None = None,
    has_replicates: bool | None = None,
    data: Any = None,
) -> AnovaSolution:
    """
    Balanced-design Analysis of Variance.

    Handles any number of fixed factors, up to three crossed factors when
    random factors are involved, nested factors and one subject/block factor
    for repeated measures. Error terms are derived from the expected mean
    squares of the design, with quasi-F ratios where no single term fits.

    Args:
        observations: One of
            - N-dimensional array, replicates along axis 0 and one axis per
              factor (least significant first), or an array of replicate
              vectors
            - flat 1D vector, with factor_assignments
            - a column name, with data
        factor_assignments: One label vector per factor, least significant
            first (or column names when data is given)
        factor_types: FactorType (or name) per factor, least significant
            first; missing entries are fixed
        factor_names: Name per factor
        has_replicates: For array input, whether axis 0 holds replicates
            (default True). For flat and table input the replicates are
            inferred and an explicit value is checked.
        data: pandas DataFrame or mapping of columns

    Returns:
        AnovaSolution with ANOVA table, error terms, expected mean squares
        and generalized omega-squared

    Examples:
        >>> result = anova(cells, factor_types=['random', 'fixed'])
        >>> print(result.summary())
        >>> result['A'].f_value
        >>> result = anova('y', ['subject', 'time'], data=df,
        ...                factor_types=['subject', 'fixed'])
    """
    timer = Timer()
    timer.start()

    with timer.section('build'):
        design = _build_design(
            observations, factor_assignments, factor_types, factor_names,
            has_replicates, data,
        )

    return _analyze(design, timer)


def levene(
    observations: Any,
    factor_assignments: Any = None,
    *,
    factor_types: Sequence[FactorType | str] | None = None,
    factor_names: Sequence[str] | None = None,
    has_replicates: bool = True,
    data: Any = None,
    center: str = 'mean',
) -> AnovaSolution:
    """
    Levene's test for homogeneity of variances across cells.

    Runs the ANOVA on absolute deviations from the cell centers. Accepts the
    same inputs as anova(), restricted to fixed and random factors with
    replicates.

    Args:
        observations: See anova()
        factor_assignments: See anova()
        factor_types: FactorType per factor (fixed or random only)
        factor_names: Name per factor
        has_replicates: See anova(); cells must hold replicates
        data: pandas DataFrame or mapping of columns
        center: 'mean' (Levene, default) or 'median' (Brown-Forsythe)

    Returns:
        AnovaSolution without effect sizes
    """
    if center not in CENTERS:
        raise ValueError(f"center must be 'mean' or 'median', got {center!r}")

    timer = Timer()
    timer.start()

    with timer.section('build'):
        design = _build_design(
            observations, factor_assignments, factor_types, factor_names,
            has_replicates, data, min_replicates=2,
        )
        transformed = absolute_deviations(design, center)

    variant = "Brown-Forsythe" if center == 'median' else "Levene"
    return _analyze(
        transformed,
        timer,
        effect_size=False,
        extra_info={
            'title': f"{variant} Test for Homogeneity of Variances",
            'center': center,
            'cell_variances': cell_variances(design),
        },
    )


def contrast(
    result: AnovaSolution,
    weights: Any,
    *,
    factor: str | int = 0,
    label: str | None = None,
) -> ContrastSolution:
    """
    Test a linear contrast between the levels of one factor.

    Args:
        result: Solution from anova()
        weights: One weight per level. Weights that sum to zero are used as
            given; +1/-1/0 (or 1/2/0) weights that don't are read as two
            groups of levels and averaged within each group.
        factor: Factor name, or index into the crossed factors listed
            top-first (0 = the first factor in the table)
        label: Display label; defaults to the weighted level names

    Returns:
        ContrastSolution

    Examples:
        >>> result = anova(cells)
        >>> c = contrast(result, [1, 1, -1])   # levels 1 and 2 vs level 3
        >>> c.p_value, c.r
    """
    f = _contrast_factor(result, factor)
    w = normalize_weights(weights, f.n_levels)
    if label is None:
        label = _weights_label(w, f.levels)
    return _run_contrasts(result, f, 'custom', [(label, w)])


def simple_contrasts(
    result: AnovaSolution,
    control: int | str = 0,
    factor: str | int = 0,
) -> ContrastSolution:
    """
    Every level against a control level.

    Args:
        result: Solution from anova()
        control: Control level index or label
        factor: Factor name or crossed-factor index (see contrast())
    """
    f = _contrast_factor(result, factor)
    ctrl = _level_index(f, control)
    weights = simple_weights(f.n_levels, ctrl)
    others = [i for i in range(f.n_levels) if i != ctrl]
    labelled = [
        (f"{f.levels[i]} - {f.levels[ctrl]}", w) for i, w in zip(others, weights)
    ]
    return _run_contrasts(result, f, 'simple', labelled)


def repeated_contrasts(
    result: AnovaSolution,
    factor: str | int = 0,
) -> ContrastSolution:
    """Each level against the next one."""
    f = _contrast_factor(result, factor)
    labelled = [
        (f"{f.levels[i]} - {f.levels[i + 1]}", w)
        for i, w in enumerate(repeated_weights(f.n_levels))
    ]
    return _run_contrasts(result, f, 'repeated', labelled)


def difference_contrasts(
    result: AnovaSolution,
    factor: str | int = 0,
    reverse: bool = False,
) -> ContrastSolution:
    """
    Helmert contrasts: each level against the mean of the later levels
    (or of the earlier levels with reverse=True).

    The contrasts are orthogonal, so their sums of squares add up to the
    factor's sum of squares.
    """
    f = _contrast_factor(result, factor)
    weights = difference_weights(f.n_levels, reverse=reverse)
    if reverse:
        labelled = [
            (f"{f.levels[i]} - mean({', '.join(f.levels[:i])})", w)
            for i, w in zip(range(1, f.n_levels), weights)
        ]
    else:
        labelled = [
            (f"{f.levels[i]} - mean({', '.join(f.levels[i + 1:])})", w)
            for i, w in enumerate(weights)
        ]
    return _run_contrasts(result, f, 'difference', labelled)


# =====================================================================
# Helpers
# =====================================================================


def _build_design(
    observations: Any,
    factor_assignments: Any,
    factor_types: Sequence[FactorType | str] | None,
    factor_names: Sequence[str] | None,
    has_replicates: bool | None,
    data: Any,
    *,
    min_replicates: int = 1,
) -> AnovaDesign:
    """Pick the AnovaDesign factory matching the input form."""
    if data is not None:
        if factor_assignments is None:
            raise ValidationError(
                "factor_assignments: factor column names are required with data"
            )
        return AnovaDesign.for_table(
            data, observations, factor_assignments, factor_types,
            factor_names=factor_names, has_replicates=has_replicates,
        )

    if factor_assignments is not None:
        return AnovaDesign.for_assignments(
            observations, factor_assignments, factor_types,
            factor_names=factor_names, has_replicates=has_replicates,
        )

    return AnovaDesign.for_array(
        observations, factor_types,
        factor_names=factor_names,
        has_replicates=True if has_replicates is None else has_replicates,
        min_replicates=min_replicates,
    )


def _analyze(
    design: AnovaDesign,
    timer: Timer,
    *,
    effect_size: bool = True,
    extra_info: dict[str, Any] | None = None,
) -> AnovaSolution:
    """Decompose, solve the EMS system and evaluate the F-tests."""
    with timer.section('decompose'):
        decomposition = decompose(design)

    with timer.section('ems'):
        ems = solve_ems(decomposition, design.factors, design.n)

    with timer.section('evaluate'):
        evaluation = evaluate(
            decomposition, ems, design.factors, effect_size=effect_size,
        )

    timer.stop()

    params = AnovaParams(
        table=evaluation.table,
        factors=design.factors,
        n_obs=design.n,
        n_replicates=design.n_replicates,
        grand_mean=decomposition.grand_mean,
        level_means=decomposition.level_means,
        ems=ems.entries,
        variance_components=evaluation.variance_components,
        measured_terms=evaluation.measured_terms,
        negative_components=evaluation.negative_components,
        effect_size_inferred=evaluation.effect_size_inferred,
        error_source=decomposition.error_source,
    )

    info: dict[str, Any] = {
        'design_type': design.design_type,
        'source': design.source,
        'shape': design.shape,
        'has_replicates': design.has_replicates,
        'factor_types': {f.name: f.factor_type.value for f in design.factors},
    }
    if extra_info:
        info.update(extra_info)

    result = Result(
        params=params,
        info=info,
        timing=timer.result(),
        backend_name='cpu',
        warnings=evaluation.warnings,
    )

    return AnovaSolution(_result=result)


def _contrast_factor(result: AnovaSolution, factor: str | int) -> Factor:
    """Resolve a factor name or top-first crossed index."""
    crossed = [f for f in reversed(result.factors) if f.is_crossed]

    if isinstance(factor, str):
        for f in result.factors:
            if f.name == factor:
                if not f.is_crossed:
                    raise ValidationError(
                        f"factor: {factor!r} is a {f.factor_type.value} factor; "
                        f"only fixed and random factors can be contrasted"
                    )
                return f
        raise ValidationError(
            f"factor: no factor {factor!r}. Available: {[f.name for f in crossed]}"
        )

    if isinstance(factor, (int, np.integer)) and not isinstance(factor, bool):
        if not 0 <= factor < len(crossed):
            raise ValidationError(
                f"factor: index must be in [0, {len(crossed)}), got {factor}"
            )
        return crossed[int(factor)]

    raise ValidationError(
        f"factor: expected a name or an index, got {type(factor).__name__}"
    )


def _level_index(f: Factor, level: int | str) -> int:
    if isinstance(level, str):
        if level not in f.levels:
            raise ValidationError(
                f"control: {f.name} has no level {level!r}. "
                f"Available: {list(f.levels)}"
            )
        return f.levels.index(level)
    return int(level)


def _weights_label(weights: NDArray, levels: tuple[str, ...]) -> str:
    """'+0.5*a +0.5*b -1*c' for the nonzero weights."""
    return ' '.join(
        f"{w:+.4g}*{level}" for w, level in zip(weights, levels) if w != 0
    )


def _omega_denominator(result: AnovaSolution, term: str) -> float | None:
    """
    Generalized omega-squared denominator for a contrast on term: all
    measured contributions except the term's own.
    """
    components = result.variance_components
    if not components:
        return None
    total = max(components['Error'], 0.0)
    for name in result.measured_terms:
        if name != term:
            total += max(components[name], 0.0)
    return total


def _run_contrasts(
    result: AnovaSolution,
    f: Factor,
    method: str,
    labelled_weights: list[tuple[str, NDArray]],
) -> ContrastSolution:
    timer = Timer()
    timer.start()

    row = result.row(f.name)
    if row.numerator_term is not None:
        raise NumericDegeneracyError(
            f"{f.name}: tested by ({row.numerator_term}) / ({row.error_term}); "
            f"a single-df contrast has no matching denominator",
            term=f.name,
            error_term=row.error_term,
        )
    error_ms = result.denominator_ms(f.name)
    floor = noise_floor(result.grand_mean, result.total.sum_sq, result.n_obs)
    means = np.asarray(result.level_means[f.name], dtype=np.float64)
    n_per_level = result.n_obs // f.n_levels
    measured_total = _omega_denominator(result, f.name)

    with timer.section('contrasts'):
        rows = tuple(
            contrast_row(
                w, means, n_per_level, error_ms, row.error_df, row.error_term,
                label, n_obs=result.n_obs, measured_total=measured_total,
                floor=floor,
            )
            for label, w in labelled_weights
        )

    notes = []
    if len(result.factors) > 1:
        notes.append(
            f"Contrasts compare marginal means of {f.name}; contrasts "
            f"spanning several factors are not supported"
        )

    timer.stop()

    params = ContrastParams(
        factor=f.name,
        method=method,
        contrasts=rows,
        error_term=row.error_term,
        error_ms=error_ms,
        error_df=row.error_df,
        level_means=tuple(float(m) for m in means),
        n_per_level=n_per_level,
    )

    contrast_result = Result(
        params=params,
        info={'levels': f.levels, 'n_levels': f.n_levels},
        timing=timer.result(),
        backend_name='cpu',
        warnings=tuple(notes),
    )

    return ContrastSolution(_result=contrast_result)
