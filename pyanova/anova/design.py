"""
ANOVA design object.

Wraps the validated factor model and the balanced observation structure.
Factory methods normalize the three accepted input shapes (N-dimensional
array, flat vector with factor assignments, table with named columns) into
one canonical form: a cell array of shape (n_replicates, *levels) with axis 0
holding replicates and one axis per factor, least significant factor first.
"""

from dataclasses import dataclass, replace
from string import ascii_uppercase
from typing import Any, Sequence

import numpy as np
from numpy.typing import NDArray

from pyanova.core.validation import (
    check_array,
    check_finite,
    check_1d,
    check_min_ndim,
    check_labels,
)
from pyanova.core.exceptions import (
    ConfigurationError,
    DimensionError,
    ImbalanceError,
    InsufficientReplicatesError,
    ValidationError,
)
from pyanova.anova._common import Factor, FactorType

# Crossed factors allowed when any factor is random or a subject/block factor
MAX_CROSSED_WITH_RANDOM = 3

RESERVED_NAMES = frozenset({'Error', 'Total'})


@dataclass(frozen=True)
class AnovaDesign:
    """
    Validated factor model and observation structure for ANOVA.

    Created via factory methods, not directly.
    """
    cells: NDArray[np.floating[Any]]    # (n_replicates, *levels)
    factors: tuple[Factor, ...]          # in axis order, least significant first
    n: int
    n_replicates: int
    has_replicates: bool
    source: str                           # 'array', 'assignments', 'table'

    @property
    def shape(self) -> tuple[int, ...]:
        """Level counts in axis order."""
        return tuple(self.cells.shape[1:])

    @property
    def crossed(self) -> tuple[Factor, ...]:
        return tuple(f for f in self.factors if f.is_crossed)

    @property
    def nested(self) -> tuple[Factor, ...]:
        return tuple(
            f for f in self.factors if f.factor_type is FactorType.NESTED
        )

    @property
    def subject(self) -> Factor | None:
        for f in self.factors:
            if f.factor_type is FactorType.SUBJECT:
                return f
        return None

    @property
    def design_type(self) -> str:
        """'repeated_measures', 'nested', 'fixed', 'random' or 'mixed'."""
        if self.subject is not None:
            return 'repeated_measures'
        if self.nested:
            return 'nested'
        kinds = {f.factor_type for f in self.crossed}
        if kinds == {FactorType.FIXED}:
            return 'fixed'
        if kinds == {FactorType.RANDOM}:
            return 'random'
        return 'mixed'

    def factor(self, name: str) -> Factor:
        """Look up a factor by name."""
        for f in self.factors:
            if f.name == name:
                return f
        raise KeyError(
            f"No factor {name!r}. Available: {[f.name for f in self.factors]}"
        )

    def with_cells(self, cells: NDArray) -> 'AnovaDesign':
        """Same factor model over transformed observations."""
        if cells.shape != self.cells.shape:
            raise DimensionError(
                f"cells: expected shape {self.cells.shape}, got {cells.shape}"
            )
        return replace(self, cells=np.asarray(cells, dtype=np.float64))

    @staticmethod
    def for_array(
        observations: Any,
        factor_types: Sequence[FactorType | str] | None = None,
        *,
        factor_names: Sequence[str] | None = None,
        has_replicates: bool = True,
        min_replicates: int = 1,
    ) -> 'AnovaDesign':
        """
        Create design from an N-dimensional array of observations.

        Each axis is a factor, least significant first, so that
        observations[r, i, j] is replicate r at level i of the first factor
        and level j of the second. The cells may instead hold replicate
        vectors (an object array or a ragged nesting of sequences).

        Args:
            observations: Numeric array, replicates along axis 0 when
                has_replicates, or an array of replicate vectors
            factor_types: FactorType per factor axis; missing trailing
                entries default to fixed
            factor_names: Name per factor axis; defaults to letters with the
                last (most significant) axis named 'A'
            has_replicates: Whether axis 0 of a numeric array holds replicates
            min_replicates: Fewest replicates per cell the caller accepts

        Returns:
            AnovaDesign
        """
        cells = _coerce_cells(observations, has_replicates)
        check_finite(cells, "observations")
        shape = cells.shape[1:]

        types = _resolve_types(factor_types, len(shape))
        names = _resolve_names(factor_names, len(shape))
        levels = [tuple(str(i + 1) for i in range(k)) for k in shape]
        factors = _build_factors(types, names, levels)

        return _finalize(
            cells, factors, source='array', min_replicates=min_replicates,
        )

    @staticmethod
    def for_assignments(
        y: Any,
        factor_assignments: Any,
        factor_types: Sequence[FactorType | str] | None = None,
        *,
        factor_names: Sequence[str] | None = None,
        has_replicates: bool | None = None,
    ) -> 'AnovaDesign':
        """
        Create design from a flat observation vector and factor labels.

        Args:
            y: Observations (1D numeric)
            factor_assignments: One label vector per factor (same length as
                y), least significant factor first. Labels need not be
                consecutive or ordered. Nested and subject labels may be
                reused across parent cells or be globally unique.
            factor_types: FactorType per factor; missing entries are fixed
            factor_names: Name per factor
            has_replicates: None to infer from the cell counts; an explicit
                value is checked against the data

        Returns:
            AnovaDesign
        """
        y_arr = check_array(y, "y")
        check_finite(y_arr, "y")
        check_1d(y_arr, "y")

        assignments = _coerce_assignments(factor_assignments, len(y_arr))
        types = _resolve_types(factor_types, len(assignments))
        names = _resolve_names(factor_names, len(assignments))
        _check_layout(types, names)

        codes, levels = _encode_levels(assignments, types, names)
        factors = _build_factors(types, names, levels)
        shape = tuple(len(lv) for lv in levels)
        cells = _group_cells(y_arr, codes, shape)

        n_rep = cells.shape[0]
        if has_replicates is False and n_rep > 1:
            raise ConfigurationError(
                f"has_replicates=False but every cell holds {n_rep} observations"
            )
        if has_replicates is True and n_rep == 1:
            raise InsufficientReplicatesError(
                "has_replicates=True but every cell holds a single observation",
                n_replicates=n_rep,
            )

        return _finalize(cells, factors, source='assignments')

    @staticmethod
    def for_table(
        data: Any,
        observation_column: Any,
        factor_columns: Sequence[Any],
        factor_types: Sequence[FactorType | str] | None = None,
        *,
        factor_names: Sequence[str] | None = None,
        has_replicates: bool | None = None,
    ) -> 'AnovaDesign':
        """
        Create design from tabular data.

        Args:
            data: pandas DataFrame or any mapping of column name -> values
            observation_column: Column holding the observations
            factor_columns: Columns holding factor labels, least significant
                factor first
            factor_types: FactorType per factor column
            factor_names: Names per factor; defaults to the column names
            has_replicates: As for for_assignments()

        Returns:
            AnovaDesign
        """
        if isinstance(factor_columns, str):
            factor_columns = [factor_columns]

        y = _column(data, observation_column)
        assignments = [_column(data, col) for col in factor_columns]
        if not factor_names:
            factor_names = [str(col) for col in factor_columns]

        design = AnovaDesign.for_assignments(
            y, assignments, factor_types,
            factor_names=factor_names, has_replicates=has_replicates,
        )
        return replace(design, source='table')


# =====================================================================
# Factor model helpers
# =====================================================================


def _resolve_types(
    factor_types: Any,
    n_factors: int,
) -> tuple[FactorType, ...]:
    """Coerce declared types and pad with fixed."""
    if factor_types is None:
        given: list[FactorType] = []
    else:
        if isinstance(factor_types, (str, FactorType)):
            factor_types = [factor_types]
        try:
            given = [FactorType.coerce(t) for t in factor_types]
        except ValueError as e:
            raise ConfigurationError(f"factor_types: {e}") from e

    if len(given) > n_factors:
        raise ConfigurationError(
            f"factor_types: {len(given)} types given for {n_factors} factors"
        )
    return tuple(given + [FactorType.FIXED] * (n_factors - len(given)))


def _default_name(rank: int) -> str:
    """Letter name for the factor at the given rank (0 = top factor)."""
    letter = ascii_uppercase[rank % 26]
    return letter if rank < 26 else f"{letter}{rank // 26}"


def _resolve_names(
    factor_names: Sequence[str] | None,
    n_factors: int,
) -> tuple[str, ...]:
    """Validate names, or assign letters top-first."""
    if factor_names is None or len(factor_names) == 0:
        return tuple(_default_name(n_factors - 1 - pos) for pos in range(n_factors))

    names = tuple(str(name) for name in factor_names)
    if len(names) != n_factors:
        raise ConfigurationError(
            f"factor_names: {len(names)} names given for {n_factors} factors"
        )
    if len(set(names)) != len(names):
        raise ConfigurationError(f"factor_names: duplicate names in {list(names)}")
    for name in names:
        if name in RESERVED_NAMES:
            raise ConfigurationError(
                f"factor_names: {name!r} is reserved for the table", factor=name,
            )
    return names


def _check_layout(
    types: tuple[FactorType, ...],
    names: tuple[str, ...],
) -> int | None:
    """
    Validate the factor-type ordering.

    Nested factors come first, then crossed factors; a subject/block factor
    sits after the within-subject factors and before the among-subject
    factors.

    Returns:
        Position of the subject/block factor, or None
    """
    n_factors = len(types)
    n_nested = 0
    while n_nested < n_factors and types[n_nested] is FactorType.NESTED:
        n_nested += 1
    for pos in range(n_nested, n_factors):
        if types[pos] is FactorType.NESTED:
            raise ConfigurationError(
                f"{names[pos]}: nested factors must be declared before "
                f"crossed and subject factors",
                factor=names[pos],
            )

    subjects = [p for p, t in enumerate(types) if t is FactorType.SUBJECT]
    if len(subjects) > 1:
        raise ConfigurationError(
            f"at most one subject/block factor per design, got "
            f"{[names[p] for p in subjects]}"
        )

    crossed = [
        p for p, t in enumerate(types)
        if t in (FactorType.FIXED, FactorType.RANDOM)
    ]
    if not crossed:
        raise ConfigurationError(
            "design needs at least one crossed (fixed or random) factor"
        )
    random = [p for p in crossed if types[p] is FactorType.RANDOM]

    if subjects:
        subject_pos = subjects[0]
        if random:
            raise ConfigurationError(
                f"{names[random[0]]}: random crossed factors cannot be "
                f"combined with a subject/block factor",
                factor=names[random[0]],
            )
        if not any(p < subject_pos for p in crossed):
            raise ConfigurationError(
                f"{names[subject_pos]}: subject/block factor must follow at "
                f"least one within-subject factor; declare it nested instead",
                factor=names[subject_pos],
            )
        if len(crossed) > MAX_CROSSED_WITH_RANDOM:
            raise ConfigurationError(
                f"repeated-measures designs support at most "
                f"{MAX_CROSSED_WITH_RANDOM} fixed factors, got {len(crossed)}"
            )
        return subject_pos

    if random and len(crossed) > MAX_CROSSED_WITH_RANDOM:
        raise ConfigurationError(
            f"designs with random factors support at most "
            f"{MAX_CROSSED_WITH_RANDOM} crossed factors, got {len(crossed)}"
        )
    return None


def _build_factors(
    types: tuple[FactorType, ...],
    names: tuple[str, ...],
    levels: list[tuple[str, ...]],
) -> tuple[Factor, ...]:
    """Validate layout and level counts and build Factor descriptors."""
    subject_pos = _check_layout(types, names)

    for pos, lv in enumerate(levels):
        if len(lv) < 2:
            raise ConfigurationError(
                f"{names[pos]}: need at least 2 levels, got {len(lv)}",
                factor=names[pos],
            )

    factors = []
    for pos, ftype in enumerate(types):
        if ftype is FactorType.NESTED:
            parents = names[pos + 1:]
        elif ftype is FactorType.SUBJECT:
            parents = tuple(
                names[p] for p in range(pos + 1, len(types))
                if types[p] is FactorType.FIXED
            )
        else:
            parents = ()

        role = None
        if subject_pos is not None and ftype is FactorType.FIXED:
            role = 'within' if pos < subject_pos else 'among'

        factors.append(Factor(
            name=names[pos],
            position=pos,
            factor_type=ftype,
            n_levels=len(levels[pos]),
            levels=levels[pos],
            parents=tuple(parents),
            role=role,
        ))
    return tuple(factors)


def _finalize(
    cells: NDArray,
    factors: tuple[Factor, ...],
    *,
    source: str,
    min_replicates: int = 1,
) -> AnovaDesign:
    n_rep = cells.shape[0]
    if n_rep < 1:
        raise ImbalanceError("observations: cells are empty", cell_counts=(0,))
    if n_rep < min_replicates:
        raise InsufficientReplicatesError(
            f"observations: need at least {min_replicates} replicates per "
            f"cell, got {n_rep}",
            n_replicates=int(n_rep),
        )
    if n_rep == 1 and len(factors) < 2:
        raise ConfigurationError(
            "a single factor without replicates leaves no error term"
        )

    return AnovaDesign(
        cells=np.ascontiguousarray(cells, dtype=np.float64),
        factors=factors,
        n=int(cells.size),
        n_replicates=int(n_rep),
        has_replicates=n_rep > 1,
        source=source,
    )


# =====================================================================
# Array input
# =====================================================================


def _coerce_cells(observations: Any, has_replicates: bool) -> NDArray:
    """Turn array input into a (n_replicates, *levels) float array."""
    try:
        arr = np.asarray(observations, dtype=np.float64)
    except (ValueError, TypeError):
        return _cells_from_vectors(observations)

    if has_replicates:
        check_min_ndim(arr, 2, "observations")
        return arr
    check_min_ndim(arr, 1, "observations")
    return arr[np.newaxis, ...]


def _cells_from_vectors(observations: Any) -> NDArray:
    """Stack an array of replicate vectors along a new leading axis."""
    try:
        grid = np.array(observations, dtype=object)
    except ValueError as e:
        raise ValidationError(
            f"observations: cannot interpret as an array of cells: {e}"
        ) from e
    check_min_ndim(grid, 1, "observations")

    vectors = []
    for cell in grid.flat:
        vec = check_array(cell, "observations")
        if vec.ndim > 1:
            raise DimensionError(
                f"observations: replicate cells must be 1D, got shape {vec.shape}"
            )
        vectors.append(np.atleast_1d(vec).astype(np.float64))

    counts = sorted({v.size for v in vectors})
    if len(counts) > 1:
        raise ImbalanceError(
            f"observations: cells hold different numbers of replicates {counts}; "
            f"a balanced design is required",
            cell_counts=tuple(counts),
        )
    n_rep = counts[0]
    if n_rep == 0:
        raise ImbalanceError("observations: cells are empty", cell_counts=(0,))

    stacked = np.stack(vectors, axis=-1)   # (n_rep, n_cells)
    return stacked.reshape((n_rep,) + grid.shape)


# =====================================================================
# Flat vector input
# =====================================================================


def _column(data: Any, column: Any) -> NDArray:
    try:
        values = data[column]
    except (KeyError, IndexError) as e:
        raise ValidationError(f"data: no column {column!r}") from e
    return np.asarray(values)


def _coerce_assignments(factor_assignments: Any, n: int) -> list[NDArray]:
    """Split factor assignments into one label vector per factor."""
    rows = list(factor_assignments)
    if not rows:
        raise ValidationError("factor_assignments: at least one factor is required")
    if np.ndim(rows[0]) == 0:
        # a single label vector
        rows = [factor_assignments]

    out = []
    for i, row in enumerate(rows):
        labels = check_labels(row, f"factor_assignments[{i}]")
        if len(labels) != n:
            raise DimensionError(
                f"factor_assignments[{i}]: length {len(labels)} doesn't match "
                f"y length {n}"
            )
        out.append(labels)
    return out


def _encode_levels(
    assignments: list[NDArray],
    types: tuple[FactorType, ...],
    names: tuple[str, ...],
) -> tuple[list[NDArray], list[tuple[str, ...]]]:
    """
    Map labels to integer level codes per factor.

    Nested and subject labels are numbered within each combination of their
    parent factors. Parents always sit at higher positions, so factors are
    encoded from the top down.
    """
    k = len(assignments)
    codes: list[NDArray | None] = [None] * k
    levels: list[tuple[str, ...] | None] = [None] * k

    for pos in reversed(range(k)):
        labels = assignments[pos]
        if types[pos] is FactorType.NESTED:
            parent_pos = list(range(pos + 1, k))
        elif types[pos] is FactorType.SUBJECT:
            parent_pos = [
                p for p in range(pos + 1, k) if types[p] is FactorType.FIXED
            ]
        else:
            parent_pos = []

        if parent_pos:
            local, n_local = _encode_within(
                labels, [codes[p] for p in parent_pos], names[pos],
            )
            codes[pos] = local
            levels[pos] = tuple(str(i + 1) for i in range(n_local))
        else:
            uniq, inverse = np.unique(labels, return_inverse=True)
            codes[pos] = inverse.ravel()
            levels[pos] = tuple(str(u) for u in uniq)

    return codes, levels


def _encode_within(
    labels: NDArray,
    parent_codes: list[NDArray],
    name: str,
) -> tuple[NDArray, int]:
    """Number labels 0..k-1 within each parent cell; k must be constant."""
    parent_keys = np.stack(parent_codes, axis=1)
    _, parent_cell = np.unique(parent_keys, axis=0, return_inverse=True)
    parent_cell = parent_cell.ravel()
    _, label_codes = np.unique(labels, return_inverse=True)
    label_codes = label_codes.ravel()

    pairs = np.stack([parent_cell, label_codes], axis=1)
    uniq_pairs, pair_index = np.unique(pairs, axis=0, return_inverse=True)
    pair_index = pair_index.ravel()

    per_parent = np.bincount(uniq_pairs[:, 0])
    distinct = sorted({int(c) for c in per_parent})
    if len(distinct) > 1:
        raise ImbalanceError(
            f"{name}: parent cells contain different numbers of levels "
            f"{distinct}; a balanced design is required",
            cell_counts=tuple(distinct),
        )

    starts = np.concatenate([[0], np.cumsum(per_parent)[:-1]])
    local = np.arange(len(uniq_pairs)) - starts[uniq_pairs[:, 0]]
    return local[pair_index], distinct[0]


def _group_cells(
    y: NDArray,
    codes: list[NDArray],
    shape: tuple[int, ...],
) -> NDArray:
    """Arrange observations into a (n_replicates, *shape) cell array."""
    flat = np.ravel_multi_index(tuple(codes), shape)
    n_cells = int(np.prod(shape))
    counts = np.bincount(flat, minlength=n_cells)
    distinct = np.unique(counts)
    if len(distinct) > 1:
        raise ImbalanceError(
            f"cells hold unequal numbers of observations (from "
            f"{int(distinct.min())} to {int(distinct.max())}); a balanced "
            f"design is required",
            cell_counts=tuple(int(c) for c in distinct),
        )

    n_rep = int(distinct[0])
    order = np.argsort(flat, kind='stable')
    return y[order].reshape(n_cells, n_rep).T.reshape((n_rep,) + tuple(shape))
