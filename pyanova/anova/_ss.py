"""
Sums of squares and degrees of freedom for balanced designs.

Every effect is identified by a Term: a bitmask of the factors whose levels
it compares (live) and a bitmask of the factors it is nested within (dead).
For a balanced cell array the effect estimates are obtained directly from
marginal means by inclusion-exclusion:

    effect(L | D) = sum over U subset of L of (-1)^|L - U| * mean(U | D)

where mean(M) is the table of means over the factors in M. The SS of the
term is the sum of the squared effect over every observation. Because the
design is balanced the terms are orthogonal and
SS_total = sum(SS_terms) + SS_error.
"""

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pyanova.anova._common import Effect, Factor, FactorType, Term
from pyanova.anova.design import AnovaDesign


@dataclass(frozen=True)
class Decomposition:
    """Output of decompose(): tested effects plus the Error and Total rows."""
    effects: tuple[Effect, ...]          # table order, Error/Total excluded
    error: Effect
    total: Effect
    grand_mean: float
    level_means: dict[str, tuple[float, ...]]
    error_source: str | None             # top term used as Error without replicates


def _bits(mask: int) -> list[int]:
    """Positions set in mask, lowest first."""
    out = []
    pos = 0
    while mask:
        if mask & 1:
            out.append(pos)
        mask >>= 1
        pos += 1
    return out


def _subsets(mask: int) -> list[int]:
    """All subsets of mask, including 0 and mask itself."""
    out = []
    sub = mask
    while True:
        out.append(sub)
        if sub == 0:
            return out
        sub = (sub - 1) & mask


def term_name(live: int, dead: int, factors: tuple[Factor, ...]) -> str:
    """
    Display name of a term.

    One rule for every term: crossed factors top-first (the most
    significant axis leads, matching the default letters), then the
    subject or nested factor, then the nesting set top-first in
    parentheses: 'A:B', 'Subject(A)', 'B:Subject(A)', 'Tank(A:B)'. Names
    never depend on the order factor_names were declared in.
    """
    live_factors = [factors[p] for p in reversed(_bits(live))]
    crossed = [f.name for f in live_factors if f.is_crossed]
    other = [f.name for f in live_factors if not f.is_crossed]
    name = ':'.join(crossed + other)
    if dead:
        name += '(' + ':'.join(factors[p].name for p in reversed(_bits(dead))) + ')'
    return name


def enumerate_terms(factors: tuple[Factor, ...]) -> list[Term]:
    """
    All effects of the design in table order.

    Crossed factors contribute every non-empty subset. A subject factor S
    contributes W x S for every subset W of the within factors (including
    the empty one), nested in all among factors. Each nested factor is
    nested in every factor above it.
    """
    k = len(factors)
    all_mask = (1 << k) - 1
    crossed_mask = sum(1 << f.position for f in factors if f.is_crossed)

    masks: list[tuple[int, int]] = [
        (sub, 0) for sub in _subsets(crossed_mask) if sub
    ]
    for f in factors:
        bit = 1 << f.position
        if f.factor_type is FactorType.SUBJECT:
            within = sum(1 << g.position for g in factors if g.role == 'within')
            among = sum(1 << g.position for g in factors if g.role == 'among')
            masks.extend((sub | bit, among) for sub in _subsets(within))
        elif f.factor_type is FactorType.NESTED:
            above = all_mask & ~((bit << 1) - 1)
            masks.append((bit, above))

    def order(item: tuple[int, int]) -> tuple[Any, ...]:
        live, dead = item
        full = live | dead
        ranks = sorted(k - 1 - p for p in _bits(full))
        return (len(ranks), ranks, sorted(k - 1 - p for p in _bits(live)))

    return [
        Term(name=term_name(live, dead, factors), live=live, dead=dead)
        for live, dead in sorted(masks, key=order)
    ]


def term_df(term: Term, factors: tuple[Factor, ...]) -> int:
    """prod(levels - 1) over live factors times prod(levels) over dead."""
    df = 1
    for p in _bits(term.live):
        df *= factors[p].n_levels - 1
    for p in _bits(term.dead):
        df *= factors[p].n_levels
    return df


class _MarginalMeans:
    """Memoised tables of means over subsets of the factors (keepdims)."""

    def __init__(self, cells: NDArray):
        self._cells = cells
        self._k = cells.ndim - 1
        self._cache: dict[int, NDArray] = {}

    def __call__(self, mask: int) -> NDArray:
        if mask not in self._cache:
            axes = (0,) + tuple(
                p + 1 for p in range(self._k) if not mask & (1 << p)
            )
            self._cache[mask] = self._cells.mean(axis=axes, keepdims=True)
        return self._cache[mask]


def _effect_ss(term: Term, means: _MarginalMeans, n: int) -> float:
    """SS of one term by inclusion-exclusion over marginal means."""
    n_live = len(_bits(term.live))
    effect: NDArray | float = 0.0
    # lower-order means first so that every table broadcasts into the last
    for sub in sorted(_subsets(term.live), key=lambda s: len(_bits(s))):
        sign = -1.0 if (n_live - len(_bits(sub))) % 2 else 1.0
        effect = effect + sign * means(sub | term.dead)
    effect = np.asarray(effect)
    return float(n / effect.size * np.sum(effect ** 2))


def decompose(design: AnovaDesign) -> Decomposition:
    """
    Partition the total sum of squares of a balanced design.

    Without replicates the term covering every factor has no degrees of
    freedom left for a separate error estimate, so it becomes the Error row.

    Args:
        design: Validated AnovaDesign

    Returns:
        Decomposition
    """
    cells = design.cells
    factors = design.factors
    n = design.n
    all_mask = (1 << len(factors)) - 1
    means = _MarginalMeans(cells)

    grand_mean = float(means(0).ravel()[0])
    # two-pass total SS
    total_ss = float(np.sum((cells - grand_mean) ** 2))
    total = Effect(
        term=Term(name='Total', live=0, dead=0),
        sum_sq=total_ss,
        df=n - 1,
        mean_sq=total_ss / (n - 1),
    )

    effects = []
    for term in enumerate_terms(factors):
        ss = _effect_ss(term, means, n)
        df = term_df(term, factors)
        effects.append(Effect(term=term, sum_sq=ss, df=df, mean_sq=ss / df))

    error_term = Term(name='Error', live=0, dead=all_mask)
    error_source = None
    if design.has_replicates:
        cell_means = cells.mean(axis=0, keepdims=True)
        error_ss = float(np.sum((cells - cell_means) ** 2))
        error_df = n - int(np.prod(design.shape))
        error = Effect(
            term=error_term, sum_sq=error_ss, df=error_df,
            mean_sq=error_ss / error_df,
        )
    else:
        top = next(e for e in effects if e.term.full == all_mask)
        effects.remove(top)
        error_source = top.term.name
        error = Effect(
            term=error_term, sum_sq=top.sum_sq, df=top.df, mean_sq=top.mean_sq,
        )

    level_means = {
        f.name: tuple(float(m) for m in means(1 << f.position).ravel())
        for f in reversed(factors) if f.is_crossed
    }

    return Decomposition(
        effects=tuple(effects),
        error=error,
        total=total,
        grand_mean=grand_mean,
        level_means=level_means,
        error_source=error_source,
    )
