"""
F-tests and generalized omega-squared.

Turns a Decomposition and its EmsSystem into ANOVA table rows. Effect sizes
follow Olejnik & Algina (2003): the variance contribution of an effect over
the sum of contributions of everything that is measured rather than
manipulated (random, nested and subject terms plus error), with the effect
itself added when it is manipulated.
"""

import warnings
from dataclasses import dataclass

import numpy as np
from scipy import stats as sp_stats

from pyanova.anova._common import AnovaTableRow, Effect, Factor, FactorType
from pyanova.anova._ems import EmsSystem, satterthwaite_df
from pyanova.anova._ss import Decomposition
from pyanova.core.exceptions import NumericDegeneracyError

# rounding headroom, in units of machine epsilon
_FLOOR_ULPS = 64


@dataclass(frozen=True)
class Evaluation:
    """F-test rows plus the effect-size bookkeeping."""
    table: tuple[AnovaTableRow, ...]
    variance_components: dict[str, float]
    measured_terms: tuple[str, ...]
    negative_components: tuple[str, ...]
    effect_size_inferred: bool
    warnings: tuple[str, ...]


def error_term_label(error_terms: tuple[tuple[str, float], ...]) -> str:
    """'A:B' or a quasi-F combination such as 'A:B + A:C - A:B:C'."""
    parts = []
    for i, (name, coef) in enumerate(error_terms):
        mult = '' if abs(abs(coef) - 1.0) < 1e-10 else f"{abs(coef):g}*"
        if i == 0:
            parts.append(f"{'-' if coef < 0 else ''}{mult}{name}")
        else:
            parts.append(f"{'-' if coef < 0 else '+'} {mult}{name}")
    return ' '.join(parts)


def noise_floor(grand_mean: float, total_ss: float, n_obs: int) -> float:
    """
    Smallest mean square distinguishable from rounding error.

    Residuals of data that are constant up to rounding are of order
    eps * |x|, so their mean square is of order (eps * |x|)^2 with
    |x|^2 estimated by grand_mean^2 + total_ss / n_obs.
    """
    scale = grand_mean ** 2 + total_ss / n_obs
    return (_FLOOR_ULPS * np.finfo(np.float64).eps) ** 2 * scale


def combination_floor(
    error_terms: tuple[tuple[str, float], ...],
    mean_squares: dict[str, float],
    floor: float,
) -> float:
    """Cancellation error of sum(c_i * MS_i) on top of the noise floor."""
    magnitude = sum(abs(c) * mean_squares[name] for name, c in error_terms)
    return max(floor, _FLOOR_ULPS * np.finfo(np.float64).eps * magnitude)


def f_test(
    effect: Effect,
    denominator_ms: float,
    error_df: float,
    error_term: str,
    floor: float = 0.0,
) -> tuple[float, float]:
    """
    F ratio and right-tailed p-value.

    floor is the mean square below which the denominator is treated as
    rounding noise; see noise_floor(). It never depends on the numerator, so
    a very large but genuine F is kept.

    Raises:
        NumericDegeneracyError: If the denominator mean square is not above floor
    """
    if not denominator_ms > floor:
        raise NumericDegeneracyError(
            f"{effect.term.name}: denominator mean square of {error_term} is "
            f"{denominator_ms:.6g}; the F-ratio is undefined",
            term=effect.term.name,
            error_term=error_term,
        )
    f_val = effect.mean_sq / denominator_ms
    p_val = float(sp_stats.f.sf(f_val, effect.df, error_df))
    return float(f_val), p_val


def additive_quasi_f(
    effect: Effect,
    error_terms: tuple[tuple[str, float], ...],
    by_name: dict[str, Effect],
    floor: float,
) -> tuple[float, float, float, float, str, str]:
    """
    Quasi-F with every mean square added rather than subtracted.

    E(MS_A) = sigma_A + sum(c+ MS+) - sum(|c-| MS-) rearranges to
    F' = (MS_A + sum(|c-| MS-)) / sum(c+ MS+), which is positive whenever
    the mean squares are, with Satterthwaite df on both sides.

    Returns:
        (F, p, numerator df, denominator df, numerator label, denominator label)
    """
    moved = [(name, -c) for name, c in error_terms if c < 0]
    kept = tuple((name, c) for name, c in error_terms if c > 0)

    num_ms = effect.mean_sq + sum(c * by_name[name].mean_sq for name, c in moved)
    den_ms = sum(c * by_name[name].mean_sq for name, c in kept)
    num_df = satterthwaite_df(
        [1.0] + [c for _, c in moved],
        [effect.mean_sq] + [by_name[name].mean_sq for name, _ in moved],
        [effect.df] + [by_name[name].df for name, _ in moved],
    )
    den_df = satterthwaite_df(
        [c for _, c in kept],
        [by_name[name].mean_sq for name, _ in kept],
        [by_name[name].df for name, _ in kept],
    )
    num_label = error_term_label(((effect.term.name, 1.0),) + tuple(moved))
    den_label = error_term_label(kept)

    if not den_ms > floor:
        raise NumericDegeneracyError(
            f"{effect.term.name}: denominator mean square of {den_label} is "
            f"{den_ms:.6g}; the F-ratio is undefined",
            term=effect.term.name,
            error_term=den_label,
        )
    f_val = num_ms / den_ms
    p_val = float(sp_stats.f.sf(f_val, num_df, den_df))
    return float(f_val), p_val, num_df, den_df, num_label, den_label


def _fixed_shrinkage(live: int, factors: tuple[Factor, ...]) -> float:
    """prod((l - 1) / l) over the fixed live factors."""
    out = 1.0
    for f in factors:
        if live & (1 << f.position) and f.factor_type is FactorType.FIXED:
            out *= (f.n_levels - 1) / f.n_levels
    return out


def effect_size_is_inferred(factors: tuple[Factor, ...]) -> bool:
    """Designs where the generalized omega-squared is an extrapolation."""
    if any(not f.is_crossed for f in factors):
        return True
    crossed = [f for f in factors if f.is_crossed]
    return len(crossed) == 3 and any(
        f.factor_type is FactorType.RANDOM for f in crossed
    )


def evaluate(
    decomposition: Decomposition,
    ems: EmsSystem,
    factors: tuple[Factor, ...],
    *,
    effect_size: bool = True,
) -> Evaluation:
    """
    Compute F, p and generalized omega-squared for every effect.

    Args:
        decomposition: Output of decompose()
        ems: Output of solve_ems()
        factors: Factors of the design
        effect_size: False to skip omega-squared (Levene)

    Returns:
        Evaluation
    """
    by_name = {e.term.name: e for e in decomposition.effects}
    by_name['Error'] = decomposition.error
    measured = sum(1 << f.position for f in factors if f.factor_type.is_measured)

    measured_terms = tuple(
        e.term.name for e in decomposition.effects if e.term.live & measured
    )
    notes: list[str] = []

    contributions: dict[str, float] = {}
    negative: list[str] = []
    inferred = False
    if effect_size:
        for effect in decomposition.effects:
            name = effect.term.name
            contributions[name] = ems.sigma[name] * _fixed_shrinkage(
                effect.term.live, factors,
            )
            if contributions[name] < 0:
                negative.append(name)
        contributions['Error'] = ems.sigma['Error']

        if negative:
            msg = (
                f"Negative variance component estimates for {negative} were "
                f"set to 0 for the effect sizes"
            )
            notes.append(msg)
            warnings.warn(msg, RuntimeWarning, stacklevel=2)

        inferred = effect_size_is_inferred(factors)
        if inferred:
            notes.append(
                "Generalized omega-squared for this design is inferred from "
                "the variance components and has not been validated against "
                "published values"
            )

    measured_total = 0.0
    clipped: dict[str, float] = {}
    if effect_size:
        clipped = {name: max(c, 0.0) for name, c in contributions.items()}
        measured_total = clipped['Error'] + sum(
            clipped[name] for name in measured_terms
        )

    total = decomposition.total
    floor = noise_floor(decomposition.grand_mean, total.sum_sq, total.df + 1)
    mean_squares = {name: e.mean_sq for name, e in by_name.items()}

    rows = []
    for effect, entry in zip(decomposition.effects, ems.entries):
        name = effect.term.name
        label = error_term_label(entry.error_terms)
        denominator_ms = sum(
            coef * by_name[term].mean_sq for term, coef in entry.error_terms
        )
        error_df = entry.error_df
        numerator_term = None
        numerator_df = None

        subtractive = any(coef < 0 for _, coef in entry.error_terms)
        if subtractive and not denominator_ms > combination_floor(
            entry.error_terms, mean_squares, floor,
        ):
            f_val, p_val, numerator_df, error_df, numerator_term, used = (
                additive_quasi_f(effect, entry.error_terms, by_name, floor)
            )
            msg = (
                f"{name}: {label} is not positive ({denominator_ms:.6g}); "
                f"F uses ({numerator_term}) / ({used})"
            )
            notes.append(msg)
            warnings.warn(msg, RuntimeWarning, stacklevel=2)
            label = used
        else:
            f_val, p_val = f_test(effect, denominator_ms, error_df, label, floor)

        omega_sq = None
        if effect_size:
            denom = measured_total
            if name not in measured_terms:
                denom += clipped[name]
            omega_sq = clipped[name] / denom if denom > 0 else 0.0

        rows.append(AnovaTableRow(
            term=name,
            df=effect.df,
            sum_sq=effect.sum_sq,
            mean_sq=effect.mean_sq,
            f_value=f_val,
            p_value=p_val,
            omega_sq=omega_sq,
            error_term=label,
            error_df=error_df,
            numerator_term=numerator_term,
            numerator_df=numerator_df,
        ))

    error = decomposition.error
    rows.append(AnovaTableRow(
        term='Error', df=error.df, sum_sq=error.sum_sq, mean_sq=error.mean_sq,
        f_value=None, p_value=None, omega_sq=None,
        error_term=None, error_df=None,
    ))
    rows.append(AnovaTableRow(
        term='Total', df=total.df, sum_sq=total.sum_sq, mean_sq=None,
        f_value=None, p_value=None, omega_sq=None,
        error_term=None, error_df=None,
    ))

    return Evaluation(
        table=tuple(rows),
        variance_components=contributions,
        measured_terms=measured_terms,
        negative_components=tuple(negative),
        effect_size_inferred=inferred,
        warnings=tuple(notes),
    )
