"""
Tests for repeated-measures (subject/block) designs.

Validates:
    - One within factor: condition tested against condition x subject
    - Split-plot: among factor tested against subjects within groups,
      within factor and interaction against the residual
    - Agreement with a hand-computed two-way decomposition
    - Long-format input with subject ids
"""

import numpy as np
import pytest
from scipy import stats as sp_stats

from pyanova import anova


class TestOneWithin:

    @pytest.fixture
    def result(self, rm_cells):
        return anova(
            rm_cells, factor_types=['fixed', 'subject'],
            factor_names=['Condition', 'Subject'], has_replicates=False,
        )

    def test_table(self, result):
        assert [(row.term, row.df) for row in result.table] == [
            ('Subject', 5), ('Condition', 3), ('Error', 15), ('Total', 23),
        ]
        assert result.error_source == 'Condition:Subject'

    def test_manual_f(self, rm_cells, result):
        grand = rm_cells.mean()
        cond = rm_cells.mean(axis=1, keepdims=True)
        subj = rm_cells.mean(axis=0, keepdims=True)
        ss_cond = 6 * np.sum((cond - grand) ** 2)
        ss_resid = np.sum((rm_cells - cond - subj + grand) ** 2)
        f_expected = (ss_cond / 3) / (ss_resid / 15)
        np.testing.assert_allclose(result['Condition'].f_value, f_expected, rtol=1e-10)
        np.testing.assert_allclose(
            result['Condition'].p_value, sp_stats.f.sf(f_expected, 3, 15), rtol=1e-8,
        )

    def test_subject_measured(self, result):
        assert result.measured_terms == ('Subject',)
        assert result.effect_size_inferred
        assert result.factors[1].role is None

    def test_long_format(self, rm_cells, result):
        conditions, subjects = np.indices(rm_cells.shape)
        ids = np.array(['s%02d' % s for s in subjects.ravel()])
        long = anova(
            rm_cells.ravel(), [conditions.ravel(), ids],
            factor_types=['fixed', 'subject'],
            factor_names=['Condition', 'Subject'],
        )
        np.testing.assert_allclose(
            long['Condition'].f_value, result['Condition'].f_value, rtol=1e-10,
        )
        assert long.factors[1].levels == tuple('s%02d' % i for i in range(6))

    def test_block_alias(self, rm_cells, result):
        blocked = anova(
            rm_cells, factor_types=['fixed', 'block'],
            factor_names=['Condition', 'Subject'], has_replicates=False,
        )
        assert blocked['Condition'].f_value == pytest.approx(result['Condition'].f_value)


class TestSplitPlot:

    @pytest.fixture
    def result(self, split_plot_cells):
        return anova(
            split_plot_cells, factor_types=['fixed', 'subject', 'fixed'],
            factor_names=['Time', 'Subject', 'Group'], has_replicates=False,
        )

    def test_terms(self, result):
        assert [row.term for row in result.effects] == [
            'Group', 'Time', 'Subject(Group)', 'Group:Time',
        ]
        assert result.error_source == 'Time:Subject(Group)'
        assert result.error.df == 16

    def test_error_terms(self, result):
        assert result['Group'].error_term == 'Subject(Group)'
        assert result['Time'].error_term == 'Error'
        assert result['Group:Time'].error_term == 'Error'
        assert result['Subject(Group)'].error_term == 'Error'

    def test_among_factor_matches_oneway_on_subject_means(self, split_plot_cells, result):
        subject_means = split_plot_cells.mean(axis=0)   # (5 subjects, 2 groups)
        expected = sp_stats.f_oneway(*subject_means.T)
        np.testing.assert_allclose(result['Group'].f_value, expected.statistic, rtol=1e-10)

    def test_strong_among_effect(self, result):
        # groups differ by 4 with subject sd 1.5
        assert result['Group'].p_value < 0.05
