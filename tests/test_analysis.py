"""
Tests for pairwise subset comparisons.
"""

import numpy as np
import pandas as pd
import pytest

from cochlea_disparity.analysis import anova_table, compare_models, compare_subsets
from cochlea_disparity.disparity import DisparityRecord
from cochlea_disparity.errors import InsufficientDataError


def records_from(values):
    return [
        DisparityRecord(name, i, float(v))
        for name, series in values.items()
        for i, v in enumerate(series)
    ]


@pytest.fixture
def records():
    base = np.linspace(-0.1, 0.1, 20)
    return records_from({
        'a': 1.0 + base,
        'b': 5.0 + base,
        'c': 1.0 + base[::-1],
    })


class TestCompareSubsets:

    def test_columns(self, records):
        table = compare_subsets(records)
        assert list(table.columns) == [
            'comparison', 'subset_a', 'subset_b', 'estimate', 'std_error',
            't', 'p_value', 'p_corrected', 'significant'
        ]
        assert list(table['comparison']) == ['a : b', 'a : c', 'b : c']

    def test_distinct_subsets_significant(self, records):
        table = compare_subsets(records).set_index('comparison')
        assert table.loc['a : b', 'estimate'] == pytest.approx(-4.0)
        assert bool(table.loc['a : b', 'significant'])
        assert table.loc['b : c', 'estimate'] == pytest.approx(4.0)

    def test_equal_subsets_not_significant(self, records):
        table = compare_subsets(records).set_index('comparison')
        assert table.loc['a : c', 'estimate'] == pytest.approx(0.0, abs=1e-10)
        assert not bool(table.loc['a : c', 'significant'])

    def test_bonferroni(self, records):
        table = compare_subsets(records, alpha=0.05)
        np.testing.assert_allclose(
            table['p_corrected'], np.minimum(1.0, 3 * table['p_value'])
        )
        assert table.attrs['threshold'] == pytest.approx(0.05 / 3)

    def test_single_subset(self):
        with pytest.raises(InsufficientDataError):
            compare_subsets(records_from({'a': [1.0, 2.0, 3.0]}))


def test_anova(records):
    anova = anova_table(records)
    assert anova['PR(>F)'].iloc[0] < 1e-6


def test_compare_models(records):
    table = compare_subsets(records)
    combined = compare_models({'acctran': table, 'deltran': table})
    assert combined.columns[0] == 'model'
    assert len(combined) == 2 * len(table)
    assert list(pd.unique(combined['model'])) == ['acctran', 'deltran']
