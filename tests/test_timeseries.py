import numpy as np
import pytest
from obspy import UTCDateTime

from coda.core.timeseries import TimeSeries, TimeSeriesBoundaryError


T0 = UTCDateTime(2020, 1, 1)


def _ramp(n=100, sr=10.0):
    return TimeSeries(np.arange(n, dtype=float), sr, T0)


def test_endtime_is_exclusive():
    ts = _ramp()
    assert ts.npts == 100
    assert ts.endtime - ts.starttime == pytest.approx(10.0)


def test_cut_half_open_window():
    ts = _ramp().cut(T0 + 1.0, T0 + 2.0)
    assert ts.npts == 10
    assert ts.starttime == T0 + 1.0
    assert ts.data[0] == 10.0
    assert ts.data[-1] == 19.0


def test_cut_clips_partial_overlap():
    ts = _ramp().cut(T0 - 5.0, T0 + 1.0)
    assert ts.starttime == T0
    assert ts.npts == 10

    ts = _ramp().cut(T0 + 9.0, T0 + 50.0)
    assert ts.npts == 10
    assert ts.endtime == T0 + 10.0


def test_cut_rejects_degenerate_and_outside_windows():
    with pytest.raises(TimeSeriesBoundaryError):
        _ramp().cut(T0 + 2.0, T0 + 2.0)
    with pytest.raises(TimeSeriesBoundaryError):
        _ramp().cut(T0 + 3.0, T0 + 1.0)
    with pytest.raises(TimeSeriesBoundaryError):
        _ramp().cut(T0 + 10.0, T0 + 20.0)
    with pytest.raises(TimeSeriesBoundaryError):
        _ramp().cut(T0 - 20.0, T0)
    # boundary errors are ValueErrors
    with pytest.raises(ValueError):
        _ramp().cut(T0 + 50.0, T0 + 60.0)


def test_interpolate_preserves_duration_and_linear_signal():
    sr = 10.0
    ts = TimeSeries(np.arange(100) / sr, sr, T0)
    ts.interpolate(4.0)
    assert ts.sampling_rate == 4.0
    assert ts.npts == 40
    assert ts.starttime == T0
    assert abs(ts.duration - 10.0) <= 1.0 / 4.0
    np.testing.assert_allclose(ts.data, ts.times(), atol=1e-9)


def test_interpolate_upsample_is_deterministic():
    data = np.random.RandomState(0).randn(200)
    a = TimeSeries(data, 20.0, T0).interpolate(50.0)
    b = TimeSeries(data, 20.0, T0).interpolate(50.0)
    assert a.npts == 500
    np.testing.assert_array_equal(a.data, b.data)


def test_remove_mean_and_trend():
    ts = TimeSeries(3.0 + 0.5 * np.arange(500), 10.0, T0)
    ts.remove_mean()
    assert abs(np.mean(ts.data)) < 1e-9
    ts.remove_trend()
    assert np.max(np.abs(ts.data)) < 1e-8


def test_taper_zeroes_ends_only():
    ts = TimeSeries(np.ones(1000), 10.0, T0).taper(1)
    assert ts.data[0] == pytest.approx(0.0)
    assert ts.data[-1] == pytest.approx(0.0)
    assert ts.data[500] == 1.0
    assert np.all(ts.data[20:980] == 1.0)


def test_zero_phase_filter_does_not_shift_peak():
    n = 1001
    x = np.arange(n)
    pulse = np.exp(-0.5 * ((x - 500) / 20.0) ** 2)
    ts = TimeSeries(pulse, 100.0, T0).filter(4, 'lowpass', freqmax=5.0, zero_phase=True)
    assert int(np.argmax(ts.data)) == 500


def test_bandpass_rejects_inverted_corners():
    ts = TimeSeries(np.random.RandomState(1).randn(400), 4.0, T0)
    with pytest.raises(ValueError):
        ts.filter(4, 'bandpass', 1.5, 1.0)
    with pytest.raises(ValueError):
        ts.filter(4, 'notapassband', 0.5, 1.0)


def test_envelope_of_sinusoid_is_flat():
    sr = 100.0
    t = np.arange(2000) / sr
    ts = TimeSeries(2.0 * np.sin(2 * np.pi * 5.0 * t), sr, T0).envelope()
    np.testing.assert_allclose(ts.data[200:1800], 2.0, rtol=1e-2)


def test_log10_floors_non_positive_samples():
    ts = TimeSeries([0.0, 1.0, 100.0, -3.0, np.nan], 1.0, T0).log10()
    assert np.all(np.isfinite(ts.data))
    assert ts.data[1] == pytest.approx(0.0)
    assert ts.data[2] == pytest.approx(2.0)
    assert ts.data[0] == ts.data[3] == ts.data[4]


def test_smooth():
    data = np.random.RandomState(2).randn(300)
    ts = TimeSeries(data, 4.0, T0).smooth(0)
    np.testing.assert_array_equal(ts.data, data)

    ts = TimeSeries(np.full(50, 7.0), 4.0, T0).smooth(5)
    np.testing.assert_allclose(ts.data, 7.0)

    ts = TimeSeries(data, 4.0, T0).smooth(9)
    assert np.std(ts.data) < np.std(data)


def test_get_max_time_and_index():
    data = np.zeros(100)
    data[37] = 4.0
    ts = TimeSeries(data, 10.0, T0)
    offset, value = ts.get_max_time()
    assert offset == pytest.approx(3.7)
    assert value == 4.0
    assert ts.get_index_for_time(T0 + 3.7) == 37
    assert ts.get_index_for_time(T0 - 100) == 0
    assert ts.get_index_for_time(T0 + 100) == 99


def test_copy_is_independent():
    ts = _ramp()
    cp = ts.copy()
    cp.cut(T0 + 1.0, T0 + 2.0)
    cp.data[0] = -1
    assert ts.npts == 100
    assert ts.data[10] == 10.0
