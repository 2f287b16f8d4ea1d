"""
Peak group-velocity measurement on envelope waveforms.

The envelope peak inside a group-velocity window gives the apparent
velocity of the strongest arrival; the mean envelope level before the
origin gives the noise level used later by the autopicker.
"""

import logging

from obspy.geodetics import gps2dist_azimuth

from ..io.waveform_loader import WaveformToTimeSeriesConverter
from ..model import PeakVelocityMeasurement, VelocityConfiguration
from .parallel import parallel_map

logger = logging.getLogger(__name__)


def event_station_distance(event, station):
    """Great-circle distance in km between an event and a station."""
    dist_m, _, _ = gps2dist_azimuth(event.latitude, event.longitude,
                                    station.latitude, station.longitude)
    return dist_m / 1000.0


def measure_velocity(waveform, config, converter=None):
    """
    Measure the peak velocity of one envelope.

    Returns
    -------
    measurement : PeakVelocityMeasurement or None
        None when the waveform lacks reference data or the windows fall
        outside the data
    """
    if waveform.event is None or waveform.station is None:
        logger.debug(f"Waveform {waveform.waveform_id} lacks event or station; skipping")
        return None

    converter = converter or WaveformToTimeSeriesConverter()
    distance = event_station_distance(waveform.event, waveform.station)
    if distance <= 0:
        logger.debug(f"Zero event-station distance for {waveform.waveform_id}; skipping")
        return None

    origin = waveform.event.origin_time
    gv1, gv2 = config.group_velocities(distance)
    window_start = origin + distance / gv1
    window_end = origin + distance / gv2

    series = converter.convert(waveform)
    try:
        peak = series.copy().cut(window_start, window_end)
        noise = series.mean_between(origin + config.noise_window_start,
                                    origin + config.noise_window_end)
    except ValueError as e:
        logger.debug(f"Cannot measure velocity for {waveform.waveform_id}: {e}")
        return None

    offset, amplitude = peak.get_max_time()
    peak_time = (peak.starttime + offset) - origin
    if peak_time <= 0:
        return None

    return PeakVelocityMeasurement(
        waveform=waveform,
        noise_level=noise,
        distance=distance,
        velocity=distance / peak_time,
        time_sec_from_origin=peak_time,
        amplitude=amplitude,
        snr=amplitude - noise,
    )


def measure_velocities(envelopes, velocity_configuration=None, n_workers=None):
    """
    Peak velocity measurements for a batch of envelopes.

    Parameters
    ----------
    envelopes : iterable of Waveform
        log10 envelope waveforms
    velocity_configuration : VelocityConfiguration, optional
    n_workers : int, optional

    Returns
    -------
    measurements : list of PeakVelocityMeasurement
    """
    config = velocity_configuration or VelocityConfiguration()
    converter = WaveformToTimeSeriesConverter()

    def _measure(waveform):
        try:
            return measure_velocity(waveform, config, converter)
        except Exception as e:
            logger.info(f"Velocity measurement failed for {waveform.waveform_id}: {e}")
            return None

    results = parallel_map(_measure, [wf for wf in envelopes if wf is not None], n_workers)
    measurements = [m for m in results if m is not None]
    logger.info(f"Measured peak velocities for {len(measurements)} envelopes")
    return measurements
