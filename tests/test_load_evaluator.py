import pytest

from advisor.inventory import Host
from advisor.load_evaluator import (LoadEvaluator, calculate_std_dev, calculate_threshold,
                                    get_threshold_multiplier)


@pytest.mark.parametrize('values,expected', [
    ([10, 10, 10], 0.0),
    ([42], 0.0),
    ([], 0.0),
    ([10, 20], 7.0710678),
    ([2, 4, 4, 4, 5, 5, 7, 9], 2.1380899),
])
def test_calculate_std_dev(values, expected):
    assert calculate_std_dev(values) == pytest.approx(expected, rel=1e-6, abs=1e-9)


@pytest.mark.parametrize('aggressiveness,multiplier', [
    (1, 1.5),
    (2, 1.25),
    (3, 1.0),
    (4, 0.75),
    (5, 0.5),
])
def test_threshold_multiplier(aggressiveness, multiplier):
    assert get_threshold_multiplier(aggressiveness) == multiplier


def test_invalid_aggressiveness_falls_back_to_default(caplog):
    assert get_threshold_multiplier(9) == 1.0
    assert 'Invalid aggressiveness level' in caplog.text


def test_threshold_strictly_decreases_with_aggressiveness():
    thresholds = [calculate_threshold(50.0, 10.0, level) for level in range(1, 6)]
    assert all(a > b for a, b in zip(thresholds, thresholds[1:]))


def test_two_host_imbalance_is_not_flagged_at_level_3(make_host):
    evaluator = LoadEvaluator([make_host('H1', 90, 50), make_host('H2', 20, 20)])
    report = evaluator.evaluate(3)

    assert report.cpu_mean == pytest.approx(55.0)
    assert report.cpu_std_dev == pytest.approx(49.4974747, rel=1e-6)
    assert report.cpu_threshold == pytest.approx(104.4974747, rel=1e-6)
    assert report.over_utilized == []
    assert report.under_utilized == ['H2']


def test_over_and_under_utilized_hosts(make_host):
    hosts = [make_host('A', 10, 10), make_host('B', 5, 30), make_host('C', 5, 20), make_host('D', 90, 90)]
    report = LoadEvaluator(hosts).evaluate(3)

    assert report.over_utilized == ['D']
    assert report.under_utilized == ['C', 'B', 'A']
    assert report.host_percentages['D'] == (pytest.approx(90.0), pytest.approx(90.0))


def test_higher_aggressiveness_flags_more_hosts(make_host):
    hosts = [make_host('A', 10, 10), make_host('B', 20, 20), make_host('C', 30, 30), make_host('D', 45, 45)]

    assert LoadEvaluator(hosts).evaluate(1).over_utilized == []
    assert LoadEvaluator(hosts).evaluate(5).over_utilized == ['D']


def test_zero_capacity_host_reports_zero_percent():
    evaluator = LoadEvaluator([Host(name='empty', cpu_used=100, memory_used=5)])
    assert evaluator.get_host_percentages_map() == {'empty': (0.0, 0.0)}
