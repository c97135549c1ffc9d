import numpy as np
import pytest

from graph_engine.errors import ParseError
from graph_engine.stats import DescriptiveStats, as_array, descriptive_stats, histogram


def test_descriptive_stats_are_population_values():
    s = descriptive_stats([2, 4, 4, 4, 5, 5, 7, 9])
    assert s.count == 8
    assert s.mean == pytest.approx(5)
    assert s.median == pytest.approx(4.5)
    assert s.stddev == pytest.approx(2)
    assert s.variance == pytest.approx(4)
    assert (s.min, s.max) == (2, 9)
    assert (s.q1, s.q3) == (pytest.approx(4), pytest.approx(6))
    assert s.iqr == pytest.approx(2)


def test_quartiles_of_odd_count_pick_a_sample():
    s = descriptive_stats([5, 1, 4, 2, 3])
    assert (s.q1, s.median, s.q3) == (2, 3, 4)


def test_empty_data_is_all_zeros():
    assert descriptive_stats([]) == DescriptiveStats()
    assert descriptive_stats("").count == 0


def test_text_input():
    assert as_array("1, 2; 3 4\n5").tolist() == [1, 2, 3, 4, 5]
    with pytest.raises(ParseError):
        as_array("1, two, 3")


def test_summary_steps():
    s = descriptive_stats([1, 2, 3])
    steps = s.steps([1, 2, 3])
    assert steps[0] == "Data: [1, 2, 3]  (n = 3)"
    assert "Mean: 2.0000" in steps
    assert steps[-1] == "IQR: 2.0000"


def test_histogram_closes_the_last_bin():
    bins = histogram(np.arange(11), bins=5)
    assert [b.count for b in bins] == [2, 2, 2, 2, 3]
    assert bins[0].lo == 0 and bins[-1].hi == pytest.approx(10)
    assert sum(b.count for b in bins) == 11


def test_histogram_of_constant_data():
    bins = histogram([3, 3, 3], bins=4)
    assert [b.count for b in bins] == [3, 0, 0, 0]
    assert (bins[0].lo, bins[0].hi) == (3, 3.25)


def test_histogram_of_empty_data():
    assert histogram([]) == []
    assert len(histogram([1.0, 2.0])) == 10
