"""
Expected mean squares and F-test denominators.

The E(MS) of each effect is built from an int8 inclusion array in the spirit
of Hopkins (1976): term F contributes to E(MS) of term E when F involves
every factor of E and each additional factor F compares levels of is random
(measured, nested or subject). This is the restricted Cornfield-Tukey rule,
under which fixed-by-random interactions do not inflate the random main
effect.

The denominator of the F-test for E is the term, or linear combination of
terms (quasi-F), whose expectation equals E(MS) without E's own component.
Variance components follow from solving the full E(MS) system.
"""

from dataclasses import dataclass
from itertools import combinations

import numpy as np
from numpy.typing import NDArray

from pyanova.anova._common import EmsEntry, Factor, Term
from pyanova.anova._ss import Decomposition
from pyanova.core.compute.tolerances import CPU_FP64, is_zero
from pyanova.core.exceptions import NumericDegeneracyError


@dataclass(frozen=True)
class EmsSystem:
    """
    E(MS) of every tested effect plus Error.

    Rows and columns of inclusion and coefficients follow names, with
    'Error' last.
    """
    names: tuple[str, ...]
    inclusion: NDArray[np.int8]
    coefficients: NDArray[np.floating]
    entries: tuple[EmsEntry, ...]
    sigma: dict[str, float]


def _measured_mask(factors: tuple[Factor, ...]) -> int:
    return sum(1 << f.position for f in factors if f.factor_type.is_measured)


def _included(e: Term, f: Term, measured: int) -> bool:
    """Test whether f is in the E(MS) of e."""
    if f.full & e.full != e.full:
        return False
    extra = f.live & ~e.full
    return extra & ~measured == 0


def inclusion_matrix(
    terms: list[Term],
    factors: tuple[Factor, ...],
) -> NDArray[np.int8]:
    """
    E(MS) inclusion array with an Error row and column appended.

    out[i, j] == 1 when component j appears in E(MS) of term i. Error
    appears in every E(MS) and its own E(MS) holds only itself.
    """
    measured = _measured_mask(factors)
    n = len(terms)
    out = np.zeros((n + 1, n + 1), dtype=np.int8)
    for row, e in enumerate(terms):
        for col, f in enumerate(terms):
            out[row, col] = _included(e, f, measured)
    out[:, n] = 1
    return out


def component_coefficients(
    terms: list[Term],
    factors: tuple[Factor, ...],
    n_obs: int,
) -> NDArray[np.floating]:
    """Observations per level combination of each term; 1 for Error."""
    coefs = []
    for term in terms:
        cells = 1
        for f in factors:
            if term.full & (1 << f.position):
                cells *= f.n_levels
        coefs.append(n_obs / cells)
    coefs.append(1.0)
    return np.asarray(coefs, dtype=np.float64)


def find_denominator(
    index: int,
    inclusion: NDArray[np.int8],
    coefficients: NDArray[np.floating],
    names: tuple[str, ...],
) -> tuple[tuple[str, float], ...]:
    """
    Mean squares whose combined expectation is E(MS) of names[index] minus
    its own component.

    A single matching term is preferred. Otherwise the smallest combination
    of candidate terms, those whose E(MS) lies within the target, that
    reproduces the target exactly is used.

    Raises:
        NumericDegeneracyError: If no combination reproduces the target
    """
    target_incl = inclusion[index].copy()
    target_incl[index] = 0
    system = inclusion * coefficients[np.newaxis, :]
    target = system[index].copy()
    target[index] = 0.0

    for j in range(len(names)):
        if j != index and np.array_equal(inclusion[j], target_incl):
            return ((names[j], 1.0),)

    candidates = [
        j for j in range(len(names))
        if j != index and np.all(inclusion[j] <= target_incl)
    ]
    scale = float(np.linalg.norm(target))
    for size in range(2, len(candidates) + 1):
        for combo in combinations(candidates, size):
            a = system[list(combo)].T
            c, *_ = np.linalg.lstsq(a, target, rcond=None)
            residual = float(np.linalg.norm(a @ c - target))
            if not is_zero(residual, scale, CPU_FP64):
                continue
            if any(is_zero(ci, 1.0, CPU_FP64) for ci in c):
                continue
            return tuple(
                (names[j], float(np.round(ci, 10))) for j, ci in zip(combo, c)
            )

    raise NumericDegeneracyError(
        f"{names[index]}: no combination of mean squares matches its "
        f"expected mean square without the effect itself",
        term=names[index],
    )


def satterthwaite_df(
    coefs: list[float],
    mean_squares: list[float],
    dfs: list[float],
) -> float:
    """
    Approximate df for a linear combination L = sum(c_i * MS_i).

    DF = L^2 / sum(c_i^2 * MS_i^2 / df_i)
    """
    numerator = sum(c * ms for c, ms in zip(coefs, mean_squares)) ** 2
    denom = 0.0
    for c, ms, df in zip(coefs, mean_squares, dfs):
        if df > 0:
            denom += (c * ms) ** 2 / df
    if denom <= 0:
        return float('nan')
    return float(numerator / denom)


def solve_ems(
    decomposition: Decomposition,
    factors: tuple[Factor, ...],
    n_obs: int,
) -> EmsSystem:
    """
    Build the E(MS) table, F-test denominators and variance components.

    Args:
        decomposition: Output of decompose()
        factors: Factors of the design
        n_obs: Total number of observations

    Returns:
        EmsSystem
    """
    effects = list(decomposition.effects) + [decomposition.error]
    terms = [e.term for e in decomposition.effects]
    names = tuple(e.term.name for e in effects)

    inclusion = inclusion_matrix(terms, factors)
    coefficients = component_coefficients(terms, factors, n_obs)
    by_name = {e.term.name: e for e in effects}

    entries = []
    for i, effect in enumerate(decomposition.effects):
        components = (names[i],) + tuple(
            names[j] for j in range(len(names))
            if j != i and inclusion[i, j]
        )
        error_terms = find_denominator(i, inclusion, coefficients, names)
        if len(error_terms) == 1:
            error_df = float(by_name[error_terms[0][0]].df)
        else:
            error_df = satterthwaite_df(
                [c for _, c in error_terms],
                [by_name[name].mean_sq for name, _ in error_terms],
                [by_name[name].df for name, _ in error_terms],
            )
        entries.append(EmsEntry(
            term=effect.term.name,
            components=components,
            error_terms=error_terms,
            error_df=error_df,
        ))

    system = inclusion * coefficients[np.newaxis, :]
    mean_squares = np.array([e.mean_sq for e in effects], dtype=np.float64)
    sigma = np.linalg.solve(system, mean_squares)

    return EmsSystem(
        names=names,
        inclusion=inclusion,
        coefficients=coefficients,
        entries=tuple(entries),
        sigma={name: float(s) for name, s in zip(names, sigma)},
    )
