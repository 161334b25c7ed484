"""
Stage timing and tolerance tiers shared by the ANOVA modules.

Submodules:
    timing: Timer with named stages
    tolerances: Tolerance tiers and zero checks
"""

from pyanova.core.compute.timing import Timer
from pyanova.core.compute.tolerances import (
    CPU_FP64,
    REFERENCE,
    ToleranceTier,
    is_zero,
)

__all__ = [
    # Timing
    "Timer",
    # Tolerances
    "CPU_FP64",
    "REFERENCE",
    "ToleranceTier",
    "is_zero",
]
