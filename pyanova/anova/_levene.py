"""
Levene's test for homogeneity of variances.

Algorithm: replace every observation with |y - center(cell)| and run the
balanced ANOVA on the transformed cells. center='mean' gives the original
Levene test, center='median' the Brown-Forsythe variant.
"""

import numpy as np

from pyanova.anova.design import AnovaDesign
from pyanova.core.exceptions import ConfigurationError, InsufficientReplicatesError

CENTERS = {'mean': np.mean, 'median': np.median}


def absolute_deviations(design: AnovaDesign, center: str = 'mean') -> AnovaDesign:
    """
    Same design over absolute deviations from each cell's center.

    Args:
        design: Crossed design with replicates
        center: 'mean' (Levene) or 'median' (Brown-Forsythe)

    Returns:
        AnovaDesign over the transformed observations
    """
    if center not in CENTERS:
        raise ValueError(f"center must be 'mean' or 'median', got {center!r}")

    for f in design.factors:
        if not f.is_crossed:
            raise ConfigurationError(
                f"{f.name}: Levene's test supports only fixed and random "
                f"factors, got {f.factor_type.value}",
                factor=f.name,
            )
    if design.n_replicates < 2:
        raise InsufficientReplicatesError(
            f"Levene's test needs replicates within every cell, got "
            f"{design.n_replicates}",
            n_replicates=design.n_replicates,
        )

    cells = design.cells
    centers = CENTERS[center](cells, axis=0, keepdims=True)
    return design.with_cells(np.abs(cells - centers))


def cell_variances(design: AnovaDesign) -> np.ndarray:
    """Sample variance (ddof=1) of every cell, shape design.shape."""
    return np.var(design.cells, axis=0, ddof=1)
