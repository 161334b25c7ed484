"""
User-facing results of anova(), levene() and the contrast functions.

AnovaSolution and ContrastSolution wrap a Result and expose the table, the
denominators chosen by the EMS solver, variance components and an R-style
summary().
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping

import numpy as np

from pyanova.core.result import Result
from pyanova.anova._common import (
    AnovaParams,
    AnovaTableRow,
    ContrastParams,
    ContrastRow,
    EmsEntry,
    Factor,
)

if TYPE_CHECKING:
    import pandas as pd


# =====================================================================
# AnovaSolution
# =====================================================================


@dataclass
class AnovaSolution:
    """
    User-facing result for a balanced-design ANOVA.

    Produced by anova() and levene().
    """
    _result: Result[AnovaParams]

    @property
    def table(self) -> tuple[AnovaTableRow, ...]:
        """ANOVA table: every effect, then Error, then Total."""
        return self._result.params.table

    @property
    def effects(self) -> tuple[AnovaTableRow, ...]:
        """Rows that carry an F-test."""
        return tuple(row for row in self.table if row.f_value is not None)

    @property
    def error(self) -> AnovaTableRow:
        return self.row('Error')

    @property
    def total(self) -> AnovaTableRow:
        return self.row('Total')

    def row(self, term: str) -> AnovaTableRow:
        """Look up a table row by term name ('A', 'A:B', 'Error', ...)."""
        for row in self.table:
            if row.term == term:
                return row
        raise KeyError(
            f"No term {term!r}. Available: {[row.term for row in self.table]}"
        )

    def __getitem__(self, term: str) -> AnovaTableRow:
        return self.row(term)

    def ems_entry(self, term: str) -> EmsEntry:
        """Expected mean square and error term of one effect."""
        for entry in self.ems:
            if entry.term == term:
                return entry
        raise KeyError(f"No tested term {term!r}")

    def denominator_ms(self, term: str) -> float:
        """
        Mean square of the F-test denominator used for term.

        When the subtractive quasi-F combination was not positive and the
        additive form was used instead, only the added mean squares count.
        """
        entry = self.ems_entry(term)
        additive = self.row(term).numerator_term is not None
        return float(sum(
            coef * self.row(name).mean_sq for name, coef in entry.error_terms
            if not (additive and coef < 0)
        ))

    @property
    def factors(self) -> tuple[Factor, ...]:
        """Factors in axis order, least significant first."""
        return self._result.params.factors

    @property
    def ems(self) -> tuple[EmsEntry, ...]:
        return self._result.params.ems

    @property
    def n_obs(self) -> int:
        return self._result.params.n_obs

    @property
    def n_replicates(self) -> int:
        return self._result.params.n_replicates

    @property
    def grand_mean(self) -> float:
        return self._result.params.grand_mean

    @property
    def level_means(self) -> Mapping[str, tuple[float, ...]]:
        """Marginal level means of every crossed factor."""
        return self._result.params.level_means

    @property
    def variance_components(self) -> Mapping[str, float]:
        """Variance contribution of every term (unclipped)."""
        return self._result.params.variance_components

    @property
    def measured_terms(self) -> tuple[str, ...]:
        return self._result.params.measured_terms

    @property
    def negative_components(self) -> tuple[str, ...]:
        return self._result.params.negative_components

    @property
    def effect_size_inferred(self) -> bool:
        return self._result.params.effect_size_inferred

    @property
    def error_source(self) -> str | None:
        """Term used as Error when the design has no replicates."""
        return self._result.params.error_source

    @property
    def omega_squared(self) -> dict[str, float]:
        return {
            row.term: row.omega_sq for row in self.effects
            if row.omega_sq is not None
        }

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def timing(self) -> dict[str, float] | None:
        return self._result.timing

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def to_dataframe(self) -> 'pd.DataFrame':
        """ANOVA table as a pandas DataFrame indexed by term."""
        import pandas as pd

        records = [
            {
                'df': row.df,
                'sum_sq': row.sum_sq,
                'mean_sq': row.mean_sq,
                'F': row.f_value,
                'p': row.p_value,
                'omega_sq': row.omega_sq,
                'error_term': row.error_term,
                'error_df': row.error_df,
                'numerator_term': row.numerator_term,
                'numerator_df': row.numerator_df,
            }
            for row in self.table
        ]
        return pd.DataFrame(records, index=[row.term for row in self.table])

    def summary(self) -> str:
        """Generate R-style ANOVA summary table."""
        title = self.info.get('title', 'Analysis of Variance Table')
        lines = [
            title,
            "=" * 86,
            f"Observations: {self.n_obs}    Replicates per cell: {self.n_replicates}",
            "",
            f"{'Source':<20} {'Df':>8} {'Sum Sq':>14} {'Mean Sq':>14} "
            f"{'F value':>10} {'Pr(>F)':>12}  {'omega^2':>8}",
            "-" * 86,
        ]

        for row in self.table:
            df = f"{row.df:>8d}"
            if row.f_value is not None:
                sig = _significance_stars(row.p_value)
                omega = "" if row.omega_sq is None else f"{row.omega_sq:>8.4f}"
                lines.append(
                    f"{row.term:<20} {df} {row.sum_sq:>14.4f} "
                    f"{row.mean_sq:>14.4f} {row.f_value:>10.4f} "
                    f"{row.p_value:>12.4e}  {omega:>8} {sig}"
                )
            elif row.mean_sq is not None:
                lines.append(
                    f"{row.term:<20} {df} {row.sum_sq:>14.4f} "
                    f"{row.mean_sq:>14.4f}"
                )
            else:
                lines.append(f"{row.term:<20} {df} {row.sum_sq:>14.4f}")

        lines.append("-" * 86)
        lines.append("Signif. codes:  0 '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 ' ' 1")

        # Error terms other than the residual
        tested = [
            row for row in self.effects
            if row.error_term is not None and row.error_term != 'Error'
        ]
        if tested:
            lines.append("")
            lines.append("Error terms:")
            for row in tested:
                if row.numerator_term is not None:
                    lines.append(
                        f"  {row.term}: ({row.numerator_term}) / ({row.error_term}) "
                        f"(df = {row.numerator_df:.4g}, {row.error_df:.4g})"
                    )
                else:
                    lines.append(
                        f"  {row.term}: {row.error_term} (df = {row.error_df:.4g})"
                    )

        if self.error_source is not None:
            lines.append("")
            lines.append(
                f"No replicates: {self.error_source} is used as the error term"
            )

        if self.warnings:
            lines.append("")
            lines.append("Warnings:")
            for w in self.warnings:
                lines.append(f"  {w}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        terms = [row.term for row in self.effects]
        return (
            f"AnovaSolution(n={self.n_obs}, replicates={self.n_replicates}, "
            f"terms={terms})"
        )


# =====================================================================
# ContrastSolution
# =====================================================================


@dataclass
class ContrastSolution:
    """
    User-facing result for linear contrasts on one factor.

    Produced by contrast(), simple_contrasts(), repeated_contrasts() and
    difference_contrasts().
    """
    _result: Result[ContrastParams]

    @property
    def contrasts(self) -> tuple[ContrastRow, ...]:
        return self._result.params.contrasts

    @property
    def factor(self) -> str:
        return self._result.params.factor

    @property
    def method(self) -> str:
        return self._result.params.method

    @property
    def error_term(self) -> str:
        return self._result.params.error_term

    @property
    def error_ms(self) -> float:
        return self._result.params.error_ms

    @property
    def error_df(self) -> float:
        return self._result.params.error_df

    @property
    def level_means(self) -> tuple[float, ...]:
        return self._result.params.level_means

    # Single-contrast shortcuts

    @property
    def contrast(self) -> float:
        return self.contrasts[0].contrast

    @property
    def f_value(self) -> float:
        return self.contrasts[0].f_value

    @property
    def p_value(self) -> float:
        return self.contrasts[0].p_value

    @property
    def r(self) -> float:
        return self.contrasts[0].r

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def timing(self) -> dict[str, float] | None:
        return self._result.timing

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    def __len__(self) -> int:
        return len(self.contrasts)

    def __iter__(self):
        return iter(self.contrasts)

    def summary(self) -> str:
        lines = [
            f"Contrasts on {self.factor} ({self.method})",
            "=" * 78,
            f"Error term: {self.error_term}  "
            f"(MS = {self.error_ms:.4f}, df = {self.error_df:.4g})",
            "",
            f"{'Contrast':<24} {'Estimate':>10} {'Sum Sq':>12} {'F':>10} "
            f"{'p':>12} {'r':>8}",
            "-" * 78,
        ]
        for c in self.contrasts:
            sig = _significance_stars(c.p_value)
            lines.append(
                f"{c.label:<24} {c.contrast:>10.4f} {c.sum_sq:>12.4f} "
                f"{c.f_value:>10.4f} {c.p_value:>12.4e} {c.r:>8.4f} {sig}"
            )
        lines.append("-" * 78)
        lines.append("p-values are not adjusted for multiple comparisons")

        if self.warnings:
            lines.append("")
            for w in self.warnings:
                lines.append(f"Note: {w}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"ContrastSolution(factor={self.factor!r}, method={self.method!r}, "
            f"n_contrasts={len(self.contrasts)})"
        )


# =====================================================================
# Helpers
# =====================================================================


def _significance_stars(p: float | None) -> str:
    """Return significance stars for a p-value."""
    if p is None or np.isnan(p):
        return ""
    if p < 0.001:
        return "***"
    if p < 0.01:
        return "**"
    if p < 0.05:
        return "*"
    if p < 0.1:
        return "."
    return ""
