"""
pyanova: analysis of variance for balanced designs.

Fixed, random, nested and repeated-measures (subject/block) factors with
error terms derived from expected mean squares, generalized omega-squared
effect sizes, linear contrasts and Levene's test.

Submodules:
    anova: Design builder, ANOVA engine, contrasts and Levene's test
    core: Result envelope, exceptions, validation, timing
"""

__version__ = "0.1.0"
__author__ = "pyanova developers"

from pyanova.anova import (
    AnovaDesign,
    AnovaSolution,
    ContrastSolution,
    FactorType,
    anova,
    contrast,
    difference_contrasts,
    levene,
    repeated_contrasts,
    simple_contrasts,
)

__all__ = [
    "__version__",
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
