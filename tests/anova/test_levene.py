"""
Tests for Levene's test / Brown-Forsythe test.

Validates:
    - One-factor results match scipy.stats.levene (both centers)
    - Multi-factor designs run the ANOVA on absolute deviations
    - No effect sizes are reported
    - Designs without replicates or with nested factors are rejected
"""

import numpy as np
import pytest
from scipy import stats as sp_stats

from pyanova import anova, levene
from pyanova.core.exceptions import ConfigurationError, InsufficientReplicatesError


class TestLeveneOneWay:

    @pytest.mark.parametrize('center', ['mean', 'median'])
    def test_matches_scipy(self, oneway_random, center):
        result = levene(oneway_random, center=center)
        expected = sp_stats.levene(*oneway_random.T, center=center)
        np.testing.assert_allclose(result['A'].f_value, expected.statistic, rtol=1e-10)
        np.testing.assert_allclose(result['A'].p_value, expected.pvalue, rtol=1e-8)

    def test_degrees_of_freedom(self, oneway_random):
        result = levene(oneway_random)
        assert result['A'].df == 3
        assert result.error.df == 28

    def test_unequal_variances_detected(self, rng):
        cells = rng.normal(10.0, 1.0, size=(30, 3)) * np.array([1.0, 5.0, 10.0])
        assert levene(cells)['A'].p_value < 0.001

    def test_flat_input(self, oneway_random, to_long):
        y, labels = to_long(oneway_random)
        result = levene(y, labels)
        np.testing.assert_allclose(
            result['A'].f_value, levene(oneway_random)['A'].f_value, rtol=1e-10,
        )


class TestLeveneOutput:

    def test_no_effect_sizes(self, oneway_random):
        result = levene(oneway_random)
        assert result['A'].omega_sq is None
        assert result.omega_squared == {}
        assert result.warnings == ()

    def test_title_and_center(self, oneway_random):
        result = levene(oneway_random, center='median')
        assert result.info['center'] == 'median'
        assert 'Brown-Forsythe Test for Homogeneity of Variances' in result.summary()
        assert 'Levene Test' in levene(oneway_random).summary()

    def test_cell_variances(self, two_way_cells):
        result = levene(two_way_cells)
        np.testing.assert_allclose(
            result.info['cell_variances'], np.var(two_way_cells, axis=0, ddof=1),
        )


class TestLeveneFactorial:

    def test_anova_on_absolute_deviations(self, two_way_cells):
        deviations = np.abs(two_way_cells - two_way_cells.mean(axis=0))
        expected = anova(deviations)
        result = levene(two_way_cells)
        for a, b in zip(result.effects, expected.effects):
            assert a.term == b.term
            np.testing.assert_allclose(a.f_value, b.f_value, rtol=1e-10)

    def test_random_factor_allowed(self, two_way_cells):
        result = levene(two_way_cells, factor_types=['random', 'fixed'])
        assert result['A'].error_term == 'A:B'

    def test_random_factor_rows_have_no_effect_size(self, two_way_cells):
        result = levene(two_way_cells, factor_types=['random', 'random'])
        assert [row.term for row in result.effects] == ['A', 'B', 'A:B']
        for row in result.effects:
            assert np.isfinite(row.f_value)
            assert row.omega_sq is None
        assert result.variance_components == {}

    def test_random_three_way(self, three_way_cells):
        deviations = np.abs(three_way_cells - three_way_cells.mean(axis=0))
        types = ['random', 'fixed', 'fixed']
        expected = anova(deviations, factor_types=types)
        result = levene(three_way_cells, factor_types=types)
        for a, b in zip(result.effects, expected.effects):
            assert a.error_term == b.error_term
            np.testing.assert_allclose(a.f_value, b.f_value, rtol=1e-10)


class TestLeveneValidation:

    def test_bad_center(self, oneway_random):
        with pytest.raises(ValueError, match="center"):
            levene(oneway_random, center='mode')

    def test_no_replicates(self, rm_cells):
        with pytest.raises(InsufficientReplicatesError):
            levene(rm_cells, has_replicates=False)

    def test_single_replicate(self):
        with pytest.raises(InsufficientReplicatesError):
            levene([[1.0, 2.0, 3.0]])

    def test_nested_rejected(self, nested_cells):
        with pytest.raises(ConfigurationError, match="Levene"):
            levene(nested_cells, factor_types=['nested'])
