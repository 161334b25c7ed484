"""
Core infrastructure for pyanova.

This module provides shared abstractions and utilities used by the analysis
sub-packages.

Key components:
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Timing and numerical tolerance tiers
"""

from pyanova.core.result import Result
from pyanova.core.exceptions import (
    PyAnovaError,
    ValidationError,
    DimensionError,
    ConfigurationError,
    ImbalanceError,
    InsufficientReplicatesError,
    NumericalError,
    NumericDegeneracyError,
)

__all__ = [
    # Result
    "Result",
    # Exceptions
    "PyAnovaError",
    "ValidationError",
    "DimensionError",
    "ConfigurationError",
    "ImbalanceError",
    "InsufficientReplicatesError",
    "NumericalError",
    "NumericDegeneracyError",
]
