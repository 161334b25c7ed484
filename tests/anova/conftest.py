"""
Shared fixtures for ANOVA tests.

Cell arrays follow the library layout: replicates on axis 0, then one axis
per factor with the least significant factor first.
"""

import numpy as np
import pytest


# =====================================================================
# One-way fixtures
# =====================================================================


@pytest.fixture
def oneway_exact():
    """
    3 levels x 4 replicates with level means 2, 4, 6.

    SS_A = 32 (df 2), SS_error = 9 (df 9), so F = 16 exactly.
    """
    means = np.array([2.0, 4.0, 6.0])
    deviations = np.array([
        [-1.0, -1.0, -0.5],
        [-1.0, -1.0, -0.5],
        [1.0, 1.0, 0.5],
        [1.0, 1.0, 0.5],
    ])
    return means[np.newaxis, :] + deviations


@pytest.fixture
def oneway_random():
    """4 levels x 8 replicates, clear level differences."""
    rng = np.random.default_rng(42)
    means = np.array([10.0, 12.0, 15.0, 11.0])
    return means + rng.normal(0.0, 2.0, size=(8, 4))


# =====================================================================
# Factorial fixtures
# =====================================================================


@pytest.fixture
def two_way_cells():
    """A (2 levels, top) x B (3 levels) with 5 replicates: shape (5, 3, 2)."""
    rng = np.random.default_rng(7)
    a_effect = np.array([0.0, 3.0])
    b_effect = np.array([0.0, 1.0, 2.0])
    mean = 20.0 + b_effect[:, np.newaxis] + a_effect[np.newaxis, :]
    return mean + rng.normal(0.0, 1.5, size=(5, 3, 2))


@pytest.fixture
def three_way_cells():
    """A (2, top) x B (3) x C (4) with 3 replicates: shape (3, 4, 3, 2)."""
    rng = np.random.default_rng(11)
    c_effect = rng.normal(0.0, 1.0, size=4)
    b_effect = rng.normal(0.0, 1.0, size=3)
    a_effect = np.array([0.0, 2.0])
    mean = (
        c_effect[:, np.newaxis, np.newaxis]
        + b_effect[np.newaxis, :, np.newaxis]
        + a_effect[np.newaxis, np.newaxis, :]
    )
    return 50.0 + mean + rng.normal(0.0, 1.0, size=(3, 4, 3, 2))


# =====================================================================
# Nested and repeated-measures fixtures
# =====================================================================


@pytest.fixture
def nested_cells():
    """
    Tank nested in Treatment: 3 treatments x 4 tanks x 5 fish.

    Shape (5, 4, 3): fish, tank (nested), treatment.
    """
    rng = np.random.default_rng(3)
    treatment = np.array([0.0, 2.0, 4.0])
    tank = rng.normal(0.0, 1.0, size=(4, 3))
    return 10.0 + treatment + tank + rng.normal(0.0, 0.5, size=(5, 4, 3))


@pytest.fixture
def rm_cells():
    """
    One within factor (4 conditions) x 6 subjects, no replicates.

    Shape (4, 6): condition, subject (replicate axis added by has_replicates=False).
    """
    rng = np.random.default_rng(21)
    condition = np.array([0.0, 1.0, 1.5, 3.0])
    subject = rng.normal(0.0, 2.0, size=6)
    return (
        30.0 + condition[:, np.newaxis] + subject[np.newaxis, :]
        + rng.normal(0.0, 0.7, size=(4, 6))
    )


@pytest.fixture
def split_plot_cells():
    """
    Within factor Time (3 levels) x Subject (5 per group) x among factor Group
    (2 groups), no replicates. Shape (3, 5, 2).
    """
    rng = np.random.default_rng(5)
    a = np.array([0.0, 1.0, 2.5])
    b = np.array([0.0, 4.0])
    subject = rng.normal(0.0, 1.5, size=(5, 2))
    return (
        a[:, np.newaxis, np.newaxis] + subject[np.newaxis, :, :]
        + b[np.newaxis, np.newaxis, :]
        + rng.normal(0.0, 0.5, size=(3, 5, 2))
    )


# =====================================================================
# Long-format helpers
# =====================================================================


def _to_long(cells):
    """
    Flatten a (n_rep, *levels) cell array into y plus one label vector per
    factor (least significant first).
    """
    cells = np.asarray(cells)
    index = np.indices(cells.shape[1:])
    reps = cells.shape[0]
    y = cells.reshape(reps, -1).T.ravel()
    labels = [
        np.repeat(index[k].ravel(), reps) for k in range(index.shape[0])
    ]
    return y, labels


@pytest.fixture
def to_long():
    """Converter from cell arrays to long format (y, labels)."""
    return _to_long
