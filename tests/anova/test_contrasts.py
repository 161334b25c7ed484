"""
Tests for linear contrasts.

Validates:
    - Contrast value, SS, F, p and r for hand-computed weights
    - Group-membership weights are normalised
    - Helmert (difference) contrasts partition the factor SS
    - Simple and repeated generators
    - Error term borrowed from the factor's own F-test
    - Input validation
"""

import numpy as np
import pytest
from scipy import stats as sp_stats

from pyanova import (
    anova,
    contrast,
    difference_contrasts,
    levene,
    repeated_contrasts,
    simple_contrasts,
)
from pyanova.core.exceptions import DimensionError, ValidationError


@pytest.fixture
def oneway_result(oneway_exact):
    return anova(oneway_exact)


# ═══════════════════════════════════════════════════════════════════════
# Single contrasts
# ═══════════════════════════════════════════════════════════════════════


class TestContrast:

    def test_zero_sum_weights(self, oneway_result):
        c = contrast(oneway_result, [1, 0, -1])
        # means 2, 4, 6; n = 4 per level; MS_error = 1
        assert c.contrast == pytest.approx(-4.0)
        assert c.contrasts[0].sum_sq == pytest.approx(32.0)
        assert c.f_value == pytest.approx(32.0)
        assert c.p_value == pytest.approx(sp_stats.f.sf(32.0, 1, 9))
        assert c.r == pytest.approx(np.sqrt(32.0 / (32.0 + 9.0)))

    def test_membership_weights_normalised(self, oneway_result):
        c = contrast(oneway_result, [1, 1, -1])
        np.testing.assert_allclose(c.contrasts[0].weights, [0.5, 0.5, -1.0])
        assert c.contrast == pytest.approx(-3.0)
        assert c.contrasts[0].sum_sq == pytest.approx(24.0)

    def test_group_codes_one_and_two(self, oneway_result):
        c = contrast(oneway_result, [1, 2, 2])
        np.testing.assert_allclose(c.contrasts[0].weights, [1.0, -0.5, -0.5])
        # 2 - (4 + 6) / 2
        assert c.contrast == pytest.approx(-3.0)
        assert c.contrasts[0].sum_sq == pytest.approx(24.0)

    def test_group_codes_one_against_rest(self, oneway_random):
        result = anova(oneway_random)
        coded = contrast(result, [1, 2, 2, 2])
        explicit = contrast(result, [3, -1, -1, -1])
        np.testing.assert_allclose(
            coded.contrasts[0].weights, [1.0, -1 / 3, -1 / 3, -1 / 3],
        )
        assert coded.f_value == pytest.approx(explicit.f_value)
        assert coded.p_value == pytest.approx(explicit.p_value)

    def test_large_contrast_not_degenerate(self, rng):
        cells = np.array([0.0, 0.0, 1e7]) + rng.normal(0.0, 1.0, size=(10, 3))
        c = contrast(anova(cells), [1, 1, -1])
        assert c.f_value > 1e12

    def test_omega_squared(self, oneway_result):
        c = contrast(oneway_result, [1, 1, -1])
        contribution = (24.0 - 1.0) / 12
        assert c.contrasts[0].omega_sq == pytest.approx(contribution / (contribution + 1.0))

    def test_default_label(self, oneway_result):
        c = contrast(oneway_result, [1, 0, -1])
        assert c.contrasts[0].label == '+1*1 -1*3'

    def test_custom_label(self, oneway_result):
        c = contrast(oneway_result, [1, 0, -1], label='high vs low')
        assert c.contrasts[0].label == 'high vs low'
        assert c.method == 'custom'

    def test_error_term_borrowed(self, oneway_result):
        c = contrast(oneway_result, [1, -1, 0])
        assert c.error_term == 'Error'
        assert c.error_ms == pytest.approx(1.0)
        assert c.error_df == 9

    def test_summary(self, oneway_result):
        text = contrast(oneway_result, [1, 0, -1]).summary()
        assert 'Contrasts on A (custom)' in text
        assert 'not adjusted' in text


class TestContrastValidation:

    def test_wrong_length(self, oneway_result):
        with pytest.raises(DimensionError, match="expected 3 weights"):
            contrast(oneway_result, [1, -1])

    def test_not_a_contrast(self, oneway_result):
        with pytest.raises(ValidationError, match="sum to zero"):
            contrast(oneway_result, [1, 2, 3])

    def test_one_sided_membership(self, oneway_result):
        with pytest.raises(ValidationError, match="both sides"):
            contrast(oneway_result, [1, 1, 0])

    def test_all_zero(self, oneway_result):
        with pytest.raises(ValidationError, match="all weights are zero"):
            contrast(oneway_result, [0, 0, 0])

    def test_unknown_factor(self, oneway_result):
        with pytest.raises(ValidationError, match="no factor"):
            contrast(oneway_result, [1, 0, -1], factor='Z')

    def test_index_out_of_range(self, oneway_result):
        with pytest.raises(ValidationError, match="index"):
            contrast(oneway_result, [1, 0, -1], factor=1)

    def test_nested_factor_rejected(self, nested_cells):
        result = anova(nested_cells, factor_types=['nested'],
                       factor_names=['Tank', 'Treatment'])
        with pytest.raises(ValidationError, match="nested"):
            contrast(result, [1, 0, 0, -1], factor='Tank')


# ═══════════════════════════════════════════════════════════════════════
# Generators
# ═══════════════════════════════════════════════════════════════════════


class TestDifferenceContrasts:

    def test_forward_partitions_factor_ss(self, oneway_result):
        c = difference_contrasts(oneway_result)
        assert len(c) == 2
        assert [row.sum_sq for row in c] == [pytest.approx(24.0), pytest.approx(8.0)]
        assert sum(row.sum_sq for row in c) == pytest.approx(oneway_result['A'].sum_sq)
        assert c.method == 'difference'

    def test_reverse_partitions_factor_ss(self, oneway_random):
        result = anova(oneway_random)
        c = difference_contrasts(result, reverse=True)
        assert len(c) == 3
        np.testing.assert_allclose(
            sum(row.sum_sq for row in c), result['A'].sum_sq, rtol=1e-10,
        )

    def test_forward_weights(self, oneway_result):
        c = difference_contrasts(oneway_result)
        np.testing.assert_allclose(c.contrasts[0].weights, [1.0, -0.5, -0.5])
        assert c.contrasts[0].label == '1 - mean(2, 3)'

    def test_reverse_weights(self, oneway_result):
        c = difference_contrasts(oneway_result, reverse=True)
        np.testing.assert_allclose(c.contrasts[1].weights, [-0.5, -0.5, 1.0])
        assert c.contrasts[1].contrast == pytest.approx(3.0)


class TestSimpleAndRepeated:

    def test_simple(self, oneway_result):
        c = simple_contrasts(oneway_result)
        assert [row.label for row in c] == ['2 - 1', '3 - 1']
        assert [row.contrast for row in c] == [pytest.approx(2.0), pytest.approx(4.0)]

    def test_simple_control_by_label(self, oneway_result):
        c = simple_contrasts(oneway_result, control='3')
        assert [row.contrast for row in c] == [pytest.approx(-4.0), pytest.approx(-2.0)]

    def test_simple_bad_control(self, oneway_result):
        with pytest.raises(ValidationError, match="control"):
            simple_contrasts(oneway_result, control=5)

    def test_repeated(self, oneway_result):
        c = repeated_contrasts(oneway_result)
        assert c.method == 'repeated'
        assert [row.contrast for row in c] == [pytest.approx(-2.0), pytest.approx(-2.0)]


# ═══════════════════════════════════════════════════════════════════════
# Multi-factor designs
# ═══════════════════════════════════════════════════════════════════════


class TestMultiFactor:

    def test_marginal_means_warning(self, two_way_cells):
        result = anova(two_way_cells)
        c = contrast(result, [1, -1], factor='A')
        assert c._result.has_warning('marginal means')
        assert c.level_means == pytest.approx(result.level_means['A'])

    def test_factor_index_top_first(self, two_way_cells):
        result = anova(two_way_cells)
        c = repeated_contrasts(result, factor=1)
        assert c.factor == 'B'

    def test_mixed_design_borrows_interaction(self, two_way_cells):
        result = anova(two_way_cells, factor_types=['random', 'fixed'])
        c = contrast(result, [1, -1], factor='A')
        assert c.error_term == 'A:B'
        assert c.error_ms == pytest.approx(result['A:B'].mean_sq)
        assert c.error_df == result['A:B'].df
        # a one-df factor has a single contrast equal to the factor test
        assert c.f_value == pytest.approx(result['A'].f_value)

    def test_levene_result_has_no_omega(self, oneway_random):
        c = contrast(levene(oneway_random), [1, -1, 0, 0])
        assert np.isnan(c.contrasts[0].omega_sq)
