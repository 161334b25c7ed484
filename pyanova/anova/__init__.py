"""
Analysis of Variance (ANOVA) for balanced designs.

Public API:
    anova(observations, ...) -> AnovaSolution              # any balanced design
    levene(observations, ...) -> AnovaSolution             # homogeneity of variances
    contrast(result, weights, ...) -> ContrastSolution     # custom contrast
    simple_contrasts(result, ...) -> ContrastSolution      # each level vs control
    repeated_contrasts(result, ...) -> ContrastSolution    # adjacent levels
    difference_contrasts(result, ...) -> ContrastSolution  # Helmert
"""

from pyanova.anova._common import FactorType
from pyanova.anova.design import AnovaDesign
from pyanova.anova.solvers import (
    anova,
    contrast,
    difference_contrasts,
    levene,
    repeated_contrasts,
    simple_contrasts,
)
from pyanova.anova.solution import (
    AnovaSolution,
    ContrastSolution,
)

__all__ = [
    "anova",
    "levene",
    "contrast",
    "simple_contrasts",
    "repeated_contrasts",
    "difference_contrasts",
    "AnovaDesign",
    "AnovaSolution",
    "ContrastSolution",
    "FactorType",
]
