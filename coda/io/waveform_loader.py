"""
Waveform conversion and file I/O for CODA.

Provides:
- Waveform <-> TimeSeries conversion (sample-buffer marshalling)
- obspy Trace <-> Waveform conversion using SAC headers for event,
  station, band and pick metadata
- Reading waveform files and writing envelope SAC files
"""

import os
import glob
import logging
import numpy as np

from obspy import read, Stream, Trace, UTCDateTime
from obspy.core.util import AttribDict

from ..core.timeseries import TimeSeries
from ..model import Event, PickType, Station, Waveform, WaveformPick

logger = logging.getLogger(__name__)

# SAC "undefined" sentinel
SAC_UNDEFINED = -12345.0

# SAC headers are float32; band corners are rounded back to this many
# decimals so they match the band parameter keys again
BAND_DECIMALS = 6


class WaveformToTimeSeriesConverter:
    """Convert between persisted Waveform records and TimeSeries."""

    def convert(self, waveform):
        """TimeSeries copy of a waveform's samples."""
        return TimeSeries(waveform.segment, waveform.sample_rate, waveform.begin_time)

    def to_waveform(self, series, template, **fields):
        """
        Derive a waveform from ``template`` carrying the samples of ``series``.

        Begin/end times and sample rate come from the series; ``fields``
        override any other attribute (e.g. band corners).
        """
        return template.derive(
            begin_time=series.starttime,
            end_time=series.endtime,
            sample_rate=series.sampling_rate,
            segment=floats_to_doubles(series.data),
            **fields
        )


def floats_to_doubles(data):
    """Copy a sample buffer into a float64 array."""
    return np.array(data, dtype=np.float64)


def _sac_value(sac, key):
    value = sac.get(key)
    if value is None:
        return None
    try:
        if float(value) == SAC_UNDEFINED:
            return None
    except (TypeError, ValueError):
        pass
    return value


def _reference_time(trace):
    """SAC reference time: trace start minus the ``b`` header."""
    sac = trace.stats.get('sac', AttribDict())
    b = _sac_value(sac, 'b')
    return trace.stats.starttime - (float(b) if b is not None else 0.0)


def waveform_from_trace(trace):
    """
    Build a Waveform from an obspy Trace.

    Event and station come from SAC headers (``evla``, ``evlo``, ``evdp``,
    ``o``, ``kevnm``, ``stla``, ``stlo``) when present. Band corners are
    read from ``user0``/``user1``. Picks come from ``a`` and ``f``, both
    seconds after the reference time: the start pick is ``a - o`` and the
    coda duration is ``f - a`` (``f - o`` for a manual end pick without
    ``a``).
    """
    stats = trace.stats
    sac = stats.get('sac', AttribDict())
    reftime = _reference_time(trace)

    event = None
    evla, evlo, origin = _sac_value(sac, 'evla'), _sac_value(sac, 'evlo'), _sac_value(sac, 'o')
    if evla is not None and evlo is not None and origin is not None:
        evdp = _sac_value(sac, 'evdp')
        event_id = _sac_value(sac, 'kevnm')
        event = Event(
            event_id=str(event_id).strip() if event_id else str(reftime + float(origin)),
            origin_time=reftime + float(origin),
            latitude=float(evla),
            longitude=float(evlo),
            depth=float(evdp) if evdp is not None else 0.0,
        )

    station = None
    stla, stlo = _sac_value(sac, 'stla'), _sac_value(sac, 'stlo')
    if stla is not None and stlo is not None:
        station = Station(name=stats.station, latitude=float(stla),
                          longitude=float(stlo), network=stats.network)

    low = _sac_value(sac, 'user0')
    high = _sac_value(sac, 'user1')

    waveform = Waveform.from_samples(
        trace.data, stats.sampling_rate, stats.starttime,
        event=event,
        station=station,
        channel=stats.channel,
        waveform_id=trace.id,
        low_frequency=round(float(low), BAND_DECIMALS) if low is not None else 0.0,
        high_frequency=round(float(high), BAND_DECIMALS) if high is not None else 0.0,
    )

    if event is not None:
        start_pick = _sac_value(sac, 'a')
        if start_pick is not None:
            waveform.add_pick(WaveformPick(PickType.AP, float(start_pick) - float(origin)))
        end_pick = _sac_value(sac, 'f')
        if end_pick is not None:
            coda_start = start_pick if start_pick is not None else origin
            waveform.add_pick(WaveformPick(PickType.F, float(end_pick) - float(coda_start)))
    return waveform


def trace_from_waveform(waveform):
    """obspy Trace (with SAC headers) for a Waveform; inverse of waveform_from_trace."""
    trace = Trace(data=np.asarray(waveform.segment, dtype=np.float32))
    trace.stats.sampling_rate = waveform.sample_rate
    trace.stats.starttime = waveform.begin_time
    if waveform.waveform_id and waveform.waveform_id.count('.') == 3:
        net, sta, loc, cha = waveform.waveform_id.split('.')
        trace.stats.network, trace.stats.station, trace.stats.location, trace.stats.channel = net, sta, loc, cha
    if waveform.station is not None:
        trace.stats.station = waveform.station.name
        trace.stats.network = waveform.station.network
    if waveform.channel:
        trace.stats.channel = waveform.channel

    sac = AttribDict()
    # Reference time is the first sample, so b = 0
    sac.b = 0.0
    if waveform.event is not None:
        origin = waveform.event.origin_time - waveform.begin_time
        sac.o = origin
        sac.evla = waveform.event.latitude
        sac.evlo = waveform.event.longitude
        sac.evdp = waveform.event.depth
        sac.kevnm = str(waveform.event.event_id)[:16]
        coda_start = origin
        start_pick = waveform.find_pick(PickType.AP)
        if start_pick is not None and not start_pick.is_bad:
            coda_start = origin + start_pick.pick_time
            sac.a = coda_start
        end_pick = waveform.find_pick(PickType.F)
        if end_pick is not None and not end_pick.is_bad:
            sac.f = coda_start + end_pick.pick_time
    if waveform.station is not None:
        sac.stla = waveform.station.latitude
        sac.stlo = waveform.station.longitude
    sac.user0 = waveform.low_frequency
    sac.user1 = waveform.high_frequency
    trace.stats.sac = sac
    return trace


def load_waveforms(paths):
    """
    Read waveform files into Waveform records.

    Parameters
    ----------
    paths : str or list of str
        File paths or glob patterns

    Returns
    -------
    waveforms : list of Waveform
    """
    if isinstance(paths, str):
        paths = [paths]

    files = []
    for pattern in paths:
        matched = sorted(glob.glob(pattern))
        if not matched:
            logger.warning(f"No files match {pattern}")
        files.extend(matched)

    stream = Stream()
    for f in files:
        try:
            stream += read(f)
        except Exception as e:
            logger.warning(f"Failed to read {f}: {e}")

    waveforms = []
    for tr in stream:
        if tr.data.dtype.kind == 'i':
            tr.data = tr.data.astype(np.float64)
        waveforms.append(waveform_from_trace(tr))

    logger.info(f"Loaded {len(waveforms)} waveforms from {len(files)} files")
    return waveforms


def envelope_filename(waveform):
    tr = trace_from_waveform(waveform)
    event = waveform.event.event_id if waveform.event is not None else 'noevent'
    band = f"{waveform.low_frequency:g}_{waveform.high_frequency:g}"
    return f"{event}_{tr.id}_{band}_ENV.sac".replace(' ', '')


def write_waveforms(waveforms, outdir):
    """Write waveforms as SAC files under ``outdir``; returns the paths written."""
    os.makedirs(outdir, exist_ok=True)
    written = []
    for wf in waveforms:
        path = os.path.join(outdir, envelope_filename(wf))
        trace_from_waveform(wf).write(path, format='SAC')
        written.append(path)
    logger.info(f"Wrote {len(written)} waveforms to {outdir}")
    return written
