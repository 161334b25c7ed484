"""
Exceptions raised by pyanova.

Input problems derive from ValidationError and are raised before any
computation starts. Problems that only show up in the numbers (an F-ratio
with no usable denominator) derive from NumericalError. Every exception
carries the offending factor, term or count as an attribute so callers
can react without parsing messages.
"""


class PyAnovaError(Exception):
    """Root of the pyanova exception hierarchy."""
    pass


class ValidationError(PyAnovaError):
    """Observations, labels, weights or options are invalid."""
    pass


class DimensionError(ValidationError):
    """
    An input has the wrong number of axes or elements.

    For example a 2D label vector, or contrast weights that don't match the
    number of levels.
    """
    pass


class ConfigurationError(ValidationError):
    """
    The declared factor structure is not a supported design.

    Raised for invalid factor-type ordering, too many crossed factors in a
    design with random effects, malformed nesting, or too few levels.

    Attributes:
        factor: Name of the offending factor, if one can be singled out
    """

    def __init__(self, message: str, factor: str | None = None):
        super().__init__(message)
        self.factor = factor


class ImbalanceError(ValidationError):
    """
    Cells of the design hold different numbers of observations.

    Attributes:
        cell_counts: Sorted distinct observation counts found per cell
    """

    def __init__(
        self,
        message: str,
        cell_counts: tuple[int, ...] | None = None,
    ):
        super().__init__(message)
        self.cell_counts = cell_counts


class InsufficientReplicatesError(ValidationError):
    """
    The data show no replication where the computation requires it.

    Attributes:
        n_replicates: Observations per cell found in the data
    """

    def __init__(self, message: str, n_replicates: int | None = None):
        super().__init__(message)
        self.n_replicates = n_replicates


class NumericalError(PyAnovaError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class NumericDegeneracyError(NumericalError):
    """
    An F-ratio or variance-component system is undefined.

    Raised when the denominator mean square of a test is zero or negative,
    or when no combination of mean squares matches an expected mean square.

    Attributes:
        term: Effect being tested
        error_term: Denominator that failed, if one was selected
    """

    def __init__(
        self,
        message: str,
        term: str | None = None,
        error_term: str | None = None,
    ):
        super().__init__(message)
        self.term = term
        self.error_term = error_term
