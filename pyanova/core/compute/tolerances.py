"""
Tolerance tiers for numerical comparisons.

The engine runs in double precision only. CPU_FP64 is used for exactness
checks inside the engine (zero-sum contrast weights, EMS combinations,
degenerate denominators) and by the test suite when comparing against
reference computations. REFERENCE matches the looser agreement expected
between two independent double-precision implementations.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ToleranceTier:
    """Relative and absolute tolerance pair with a label."""
    rtol: float
    atol: float
    name: str
    description: str


# Exactness checks within one computation
CPU_FP64 = ToleranceTier(
    rtol=1e-10,
    atol=1e-12,
    name='cpu_fp64',
    description='CPU double precision, same algorithm',
)

# Agreement with an independent reference implementation
REFERENCE = ToleranceTier(
    rtol=1e-6,
    atol=1e-6,
    name='reference',
    description='CPU double precision, independent reference computation',
)


def is_zero(value: float, scale: float = 1.0, tier: ToleranceTier = CPU_FP64) -> bool:
    """
    Check whether value is zero relative to scale.

    Args:
        value: Quantity to test
        scale: Magnitude the value is compared against
        tier: Tolerance tier to apply

    Returns:
        True if |value| <= atol + rtol * |scale|
    """
    return abs(value) <= tier.atol + tier.rtol * abs(scale)
