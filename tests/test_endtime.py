import numpy as np
import pytest

from coda.core.endtime import EndTimePicker


def _decay(n=300, start=20, peak=5.0, slope=0.05, noise=0.0):
    data = np.full(n, noise)
    t = np.arange(n - start)
    data[start:] = peak - slope * t
    return data


def test_linear_decay_crossing():
    data = _decay()
    # threshold 0.52 + 2.0 = 2.52 is crossed 50 samples after the start
    end = EndTimePicker().get_end_time(data, 1.0, 0.0, 20, 5.0, 200.0, 2.0, 0.52)
    assert end == pytest.approx(70.0)


def test_sampling_rate_scales_result():
    data = _decay()
    end = EndTimePicker().get_end_time(data, 2.0, 0.0, 20, 5.0, 200.0, 2.0, 0.52)
    assert end == pytest.approx(35.0)


def test_signal_below_threshold_at_start():
    data = _decay(peak=1.0)
    end = EndTimePicker().get_end_time(data, 1.0, 0.0, 20, 5.0, 200.0, 2.0, 0.52)
    assert end == pytest.approx(20.0)


def test_never_decays_returns_end_of_search():
    data = np.full(1000, 5.0)
    end = EndTimePicker().get_end_time(data, 1.0, 0.0, 10, 5.0, 100.0, 1.0, 0.0)
    assert end == pytest.approx(111.0)


def test_isolated_dips_are_ignored():
    data = np.full(200, 5.0)
    data[40] = -1.0
    data[41] = -1.0
    data[120:] = -1.0
    end = EndTimePicker(min_run=3).get_end_time(data, 1.0, 0.0, 10, 5.0, 500.0, 1.0, 0.0)
    assert end == pytest.approx(120.0)
    end = EndTimePicker(min_run=1).get_end_time(data, 1.0, 0.0, 10, 5.0, 500.0, 1.0, 0.0)
    assert end == pytest.approx(40.0)


def test_run_truncated_by_end_of_data():
    data = np.full(50, 5.0)
    data[-2:] = -1.0
    end = EndTimePicker(min_run=3).get_end_time(data, 1.0, 0.0, 10, 5.0, 500.0, 1.0, 0.0)
    assert end == pytest.approx(48.0)


def test_unusable_inputs_return_none():
    picker = EndTimePicker()
    assert picker.get_end_time([], 1.0, 0.0, 0, 5.0, 100.0, 1.0, 0.0) is None
    assert picker.get_end_time(np.ones(10), 1.0, 0.0, 10, 5.0, 100.0, 1.0, 0.0) is None
    assert picker.get_end_time(np.ones(10), 1.0, 0.0, -1, 5.0, 100.0, 1.0, 0.0) is None
    assert picker.get_end_time(np.ones(10), 1.0, 0.0, 0, 5.0, 100.0, 1.0, np.nan) is None


def test_min_run_must_be_positive():
    with pytest.raises(ValueError):
        EndTimePicker(min_run=0)
