import numpy as np
import pytest
from obspy import UTCDateTime

from coda.core.envelope import EnvelopeGenerator, create_envelopes
from coda.model import (EnvelopeJobConfiguration, Event, FrequencyBandConfiguration,
                        PickType, Station, Waveform, WaveformPick)


ORIGIN = UTCDateTime(2019, 6, 1, 12, 0, 0)


def _make_raw(seed=0, sr=20.0, begin_offset=-300.0, duration=2000.0, event=True, name='STA1'):
    rng = np.random.RandomState(seed)
    n = int(duration * sr)
    t = begin_offset + np.arange(n) / sr
    data = 0.1 * rng.randn(n)
    # coda-like burst starting 60 s after origin
    burst = t > 60.0
    data[burst] += rng.randn(np.sum(burst)) * 10.0 * np.exp(-(t[burst] - 60.0) / 200.0)
    ev = Event('ev1', ORIGIN, 10.0, 20.0) if event else None
    return Waveform.from_samples(
        data, sr, ORIGIN + begin_offset,
        event=ev,
        station=Station(name, 11.0, 21.0, network='XX'),
        channel='BHZ',
        waveform_id=f'XX.{name}..BHZ',
    )


def _job():
    return EnvelopeJobConfiguration([
        FrequencyBandConfiguration(0.5, 1.0, 20.0),
        FrequencyBandConfiguration(1.0, 1.5, 10.0),
    ])


def test_envelopes_per_band_with_expected_duration():
    raw = _make_raw()
    result = EnvelopeGenerator(n_workers=1).create_envelopes(1, [raw], _job())
    assert result.success
    assert len(result.value) == 2

    by_band = {(e.low_frequency, e.high_frequency): e for e in result.value}
    # 1650 s cut window minus 2 * (2 * smoothing) edge trims
    expected = {(0.5, 1.0): 1650.0 - 80.0, (1.0, 1.5): 1650.0 - 40.0}
    for band, duration in expected.items():
        env = by_band[band]
        assert env.sample_rate == 4.0
        assert abs(env.duration - duration) <= 1.0 / env.sample_rate + 1e-6
        assert env.end_time - env.begin_time == pytest.approx(env.duration)
        smoothing_trim = (duration - 1650.0) / -2.0
        assert abs((env.begin_time - ORIGIN) - (-150.0 + smoothing_trim)) <= 0.25 + 1e-6


def test_envelope_samples_are_finite_and_shrink():
    raw = _make_raw()
    interpolated_npts = int(round(len(raw.segment) * 4.0 / raw.sample_rate))
    result = create_envelopes(7, [raw], _job(), n_workers=1)
    for env in result.value:
        assert np.all(np.isfinite(env.segment))
        assert len(env.segment) < interpolated_npts


def test_envelope_copies_reference_fields():
    raw = _make_raw()
    raw.add_pick(WaveformPick(PickType.F, 100.0))
    env = EnvelopeGenerator(n_workers=1).create_envelopes(1, [raw], _job()).value[0]
    assert env is not raw
    assert env.event is raw.event
    assert env.station is raw.station
    assert env.channel == 'BHZ'
    assert env.waveform_id == raw.waveform_id
    assert env.associated_picks == []
    # source waveform untouched
    assert raw.sample_rate == 20.0
    assert len(raw.associated_picks) == 1


def test_coda_burst_is_above_pre_event_level():
    raw = _make_raw()
    env = EnvelopeGenerator(n_workers=1).create_envelopes(1, [raw], _job()).value[0]
    t = (env.begin_time - ORIGIN) + np.arange(len(env.segment)) / env.sample_rate
    pre = env.segment[t < 0].mean()
    coda = env.segment[(t > 100) & (t < 300)].mean()
    assert coda > pre + 1.0


def test_no_waveforms_is_a_failure():
    result = EnvelopeGenerator().create_envelopes(1, [], _job())
    assert not result.success
    assert result.errors[0].startswith('No waveforms provided')
    assert result.value == []

    result = EnvelopeGenerator().create_envelopes(1, None, _job())
    assert not result.success


def test_missing_configuration_is_a_distinct_failure():
    result = EnvelopeGenerator().create_envelopes(1, [_make_raw()], None)
    assert not result.success
    assert 'No configuration' in result.errors[0]

    result = EnvelopeGenerator().create_envelopes(1, [_make_raw()], EnvelopeJobConfiguration([]))
    assert not result.success
    assert 'No configuration' in result.errors[0]


def test_default_configuration_used_when_none_given():
    gen = EnvelopeGenerator(default_configuration=_job(), n_workers=1)
    result = gen.create_envelopes(1, [_make_raw()], None)
    assert result.success
    assert len(result.value) == 2


def test_waveform_without_event_is_skipped():
    waves = [_make_raw(seed=1, name='A'), _make_raw(seed=2, event=False, name='B'),
             _make_raw(seed=3, name='C'), None]
    result = EnvelopeGenerator(n_workers=2).create_envelopes(1, waves, _job())
    assert result.success
    assert len(result.value) == 4
    assert {e.station.name for e in result.value} == {'A', 'C'}


def test_non_overlapping_and_broken_waveforms_are_dropped():
    early = _make_raw(seed=4, begin_offset=-5000.0, duration=1000.0, name='EARLY')
    late = _make_raw(seed=5, begin_offset=3000.0, duration=1000.0, name='LATE')
    broken = Waveform.from_samples([1.0], 20.0, ORIGIN, event=Event('ev1', ORIGIN, 0.0, 0.0),
                                   waveform_id='XX.BAD..BHZ')
    good = _make_raw(seed=6, name='GOOD')
    result = EnvelopeGenerator(n_workers=2).create_envelopes(1, [early, late, broken, good], _job())
    assert result.success
    assert {e.station.name for e in result.value} == {'GOOD'}


def test_partial_overlap_is_clipped():
    # data begins 100 s after the cut start
    raw = _make_raw(seed=7, begin_offset=-50.0, duration=1200.0)
    result = EnvelopeGenerator(n_workers=1).create_envelopes(1, [raw], _job())
    assert len(result.value) == 2
    for env in result.value:
        assert env.begin_time >= ORIGIN - 50.0
        assert env.end_time <= ORIGIN + 1150.0 + 1e-6


def test_trim_longer_than_data_drops_pairing():
    raw = _make_raw(seed=8, begin_offset=-10.0, duration=100.0)
    job = EnvelopeJobConfiguration([FrequencyBandConfiguration(0.5, 1.0, 30.0)])
    result = EnvelopeGenerator(n_workers=1).create_envelopes(1, [raw], job)
    assert result.success
    assert result.value == []
