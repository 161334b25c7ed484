"""
Common data types for ANOVA.

Contains the factor model types and the frozen parameter payloads that go
inside Result[P] envelopes. Payloads are pure data containers; the only
behaviour here is label coercion on FactorType, bitmask accessors on Term
and read-only mappings on AnovaParams.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class FactorType(Enum):
    """
    Role of a factor in the design.

    FIXED (MANIPULATED): crossed factor with fixed effects
        (treatment, concentration, exposure time)
    RANDOM (MEASURED): crossed factor with random effects
        (location, individual)
    NESTED: random factor whose levels are unique to a combination of the
        factors above it
    SUBJECT (BLOCK): random factor measured repeatedly across the levels of
        the within-subject factors
    """
    FIXED = 'fixed'
    RANDOM = 'random'
    NESTED = 'nested'
    SUBJECT = 'subject'
    MANIPULATED = 'fixed'
    MEASURED = 'random'
    BLOCK = 'subject'

    @property
    def is_measured(self) -> bool:
        """True for every factor type that contributes variance."""
        return self is not FactorType.FIXED

    @classmethod
    def coerce(cls, value: 'FactorType | str') -> 'FactorType':
        """Accept a FactorType or one of its names/aliases as a string."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                pass
        valid = sorted(m.lower() for m in cls.__members__)
        raise ValueError(f"Unknown factor type {value!r}. Use one of {valid}")


@dataclass(frozen=True)
class Factor:
    """
    One independent variable of the design.

    Attributes:
        name: Display name
        position: Axis of the factor in the cell array (0 = least significant)
        factor_type: FactorType
        n_levels: Number of levels (per parent cell for nested/subject)
        levels: Level labels in array order
        parents: Names of the factors this one is nested within
        role: 'within' or 'among' for fixed factors of a repeated-measures
            design, None otherwise
    """
    name: str
    position: int
    factor_type: FactorType
    n_levels: int
    levels: tuple[str, ...]
    parents: tuple[str, ...] = ()
    role: str | None = None

    @property
    def is_crossed(self) -> bool:
        return self.factor_type in (FactorType.FIXED, FactorType.RANDOM)


@dataclass(frozen=True)
class Term:
    """
    Identity of one effect as bitmasks over factor positions.

    live: factors whose levels the effect compares
    dead: factors the effect is nested within (0 for crossed effects)
    """
    name: str
    live: int
    dead: int = 0

    @property
    def full(self) -> int:
        return self.live | self.dead


@dataclass(frozen=True)
class Effect:
    """One SS term of the decomposition."""
    term: Term
    sum_sq: float
    df: int
    mean_sq: float


@dataclass(frozen=True)
class EmsEntry:
    """
    Expected mean square of one effect and the F-test denominator it implies.

    components lists the variance components in E(MS), the effect itself
    first and 'Error' last. error_terms is the linear combination of mean
    squares with the same expectation minus the tested component.
    """
    term: str
    components: tuple[str, ...]
    error_terms: tuple[tuple[str, float], ...]
    error_df: float


@dataclass(frozen=True)
class AnovaTableRow:
    """One row of an ANOVA table (an effect, Error or Total)."""
    term: str
    df: int
    sum_sq: float
    mean_sq: float | None       # None for Total row
    f_value: float | None       # None for Error and Total rows
    p_value: float | None       # None for Error and Total rows
    omega_sq: float | None      # generalized omega^2; None when not computed
    error_term: str | None      # denominator used for the F-test
    error_df: float | None      # float because Satterthwaite df are fractional
    numerator_term: str | None = None   # set when the quasi-F adds to the numerator
    numerator_df: float | None = None


@dataclass(frozen=True)
class AnovaParams:
    """
    Parameter payload for a balanced-design ANOVA.

    Used by anova() and levene().
    """
    table: tuple[AnovaTableRow, ...]
    factors: tuple[Factor, ...]
    n_obs: int
    n_replicates: int
    grand_mean: float
    level_means: Mapping[str, tuple[float, ...]]  # crossed factor -> level means
    ems: tuple[EmsEntry, ...]
    variance_components: Mapping[str, float]       # term -> raw contribution
    measured_terms: tuple[str, ...]                 # terms with a random live factor
    negative_components: tuple[str, ...]
    effect_size_inferred: bool
    error_source: str | None                        # confounded term without replicates

    def __post_init__(self):
        # mappings are exposed read-only
        for name in ('level_means', 'variance_components'):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))


@dataclass(frozen=True)
class ContrastRow:
    """One linear contrast between levels of a factor."""
    label: str
    weights: tuple[float, ...]
    contrast: float
    sum_sq: float
    df: int
    f_value: float
    p_value: float
    omega_sq: float
    r: float


@dataclass(frozen=True)
class ContrastParams:
    """Parameter payload for one or more contrasts on a single factor."""
    factor: str
    method: str                     # 'custom', 'simple', 'repeated', 'difference'
    contrasts: tuple[ContrastRow, ...]
    error_term: str
    error_ms: float
    error_df: float
    level_means: tuple[float, ...]
    n_per_level: int
