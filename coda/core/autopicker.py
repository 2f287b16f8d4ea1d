"""
Automatic coda start/end picking.

For each peak-velocity measurement the autopicker predicts the coda onset
from the apparent-velocity model ``v0 - v1 / (v2 + distance)``, refines it
to the envelope peak in the following 30 seconds, and asks the end-time
estimator where the coda decays into the noise. Two picks are attached to
the waveform:

- ``AP``: start pick, seconds from origin
- ``F``: coda duration after the start pick, clamped to the band's
  ``[min_length, max_length]``; ``None`` marks a failed pick

Waveforms that already carry a manual end pick (``F`` without ``AP``) are
left alone.
"""

import logging

from ..io.waveform_loader import WaveformToTimeSeriesConverter
from ..model import PickType, WaveformPick
from .endtime import EndTimePicker
from .parallel import parallel_map

logger = logging.getLogger(__name__)

# Window after the predicted onset searched for the envelope peak (s)
START_SEARCH_WINDOW = 30.0

# Rate the end-time estimator works at (Hz)
PICK_SAMPLE_RATE = 1.0


def needs_autopick(waveform):
    """True when there is no end pick yet, or the existing one is automatic."""
    has_end = waveform.find_pick(PickType.F) is not None
    has_auto = waveform.find_pick(PickType.AP) is not None
    return not has_end or has_auto


def clamp_coda_length(offset, min_length, max_length):
    """Coda length after the clamp law; None when shorter than ``min_length``."""
    if offset is None or offset < min_length:
        return None
    if offset > max_length:
        return max_length
    return offset


class Autopicker:
    """
    Parameters
    ----------
    end_time_picker : EndTimePicker, optional
        End-time estimation routine
    converter : WaveformToTimeSeriesConverter, optional
    start_search_window : float
        Seconds after the predicted onset searched for the peak
    pick_sample_rate : float
        Rate the waveform is resampled to for end-time estimation
    n_workers : int, optional
        Pool size; 1 runs sequentially
    """

    def __init__(self, end_time_picker=None, converter=None,
                 start_search_window=START_SEARCH_WINDOW,
                 pick_sample_rate=PICK_SAMPLE_RATE, n_workers=None):
        self.end_time_picker = end_time_picker or EndTimePicker()
        self.converter = converter or WaveformToTimeSeriesConverter()
        self.start_search_window = start_search_window
        self.pick_sample_rate = pick_sample_rate
        self.n_workers = n_workers

    def auto_pick_velocity_measured_waveforms(self, measurements, band_parameters):
        """
        Pick every measurement's waveform in place.

        Parameters
        ----------
        measurements : iterable of PeakVelocityMeasurement
        band_parameters : dict
            FrequencyBand -> SharedFrequencyBandParameters

        Returns
        -------
        measurements : list
            The input measurements that carry a waveform, with updated picks
        """
        units = [m for m in measurements if m is not None and m.waveform is not None]
        results = parallel_map(lambda m: self._pick_unit(m, band_parameters), units, self.n_workers)
        return [m for m in results if m is not None]

    def _pick_unit(self, measurement, band_parameters):
        try:
            self.auto_pick(measurement, band_parameters)
        except Exception as e:
            logger.error(f"Autopick failed for {measurement.waveform.waveform_id}: {e}",
                         exc_info=True)
        return measurement

    def auto_pick(self, measurement, band_parameters):
        """
        Compute and attach AP/F picks for one measurement.

        Returns
        -------
        picked : bool
            False when the waveform was skipped
        """
        waveform = measurement.waveform
        params = band_parameters.get(waveform.frequency_band)
        if params is None:
            logger.debug(f"No band parameters for {waveform.frequency_band}; skipping "
                         f"{waveform.waveform_id}")
            return False
        if waveform.event is None:
            logger.debug(f"Waveform {waveform.waveform_id} has no event; skipping")
            return False
        if not needs_autopick(waveform):
            return False

        logger.debug(f"Starting autopick for {waveform.waveform_id}")
        origin = waveform.event.origin_time
        start_time = self.start_pick_time(measurement, params)

        segment = self.converter.convert(waveform)
        segment.interpolate(self.pick_sample_rate)
        proposed = self.end_time_picker.get_end_time(
            segment.data,
            segment.sampling_rate,
            start_time.timestamp,
            segment.get_index_for_time(start_time),
            params.min_length,
            params.max_length,
            params.min_snr,
            measurement.noise_level)
        logger.debug(f"Proposed end pick {proposed} s after {segment.starttime}")

        coda_length = None
        if proposed is not None:
            # estimator answers relative to the buffer start
            end_time = segment.starttime + proposed
            offset = (end_time - origin) - (start_time - origin)
            coda_length = clamp_coda_length(offset, params.min_length, params.max_length)

        waveform.clear_picks()
        waveform.add_pick(WaveformPick(PickType.F, coda_length))
        waveform.add_pick(WaveformPick(PickType.AP, start_time - origin))
        logger.debug(f"Ending autopick for {waveform.waveform_id}: start {start_time - origin:.2f} s, "
                     f"coda length {coda_length}")
        return True

    def start_pick_time(self, measurement, params):
        """
        Absolute time of the coda start.

        The envelope peak inside the window after the predicted onset, or
        the predicted onset itself when that window cannot be extracted.
        """
        waveform = measurement.waveform
        vr = params.apparent_velocity(measurement.distance)
        trim_time = waveform.event.origin_time + measurement.distance / vr

        trimmed = self.converter.convert(waveform)
        try:
            trimmed.cut(trim_time, trim_time + self.start_search_window)
            offset, _ = trimmed.get_max_time()
            return trimmed.starttime + offset
        except (ValueError, ArithmeticError) as e:
            logger.debug(f"Falling back to predicted onset for {waveform.waveform_id}: {e}")
            return trim_time


def auto_pick_velocity_measured_waveforms(measurements, band_parameters, **kwargs):
    """Convenience wrapper around ``Autopicker.auto_pick_velocity_measured_waveforms``."""
    return Autopicker(**kwargs).auto_pick_velocity_measured_waveforms(measurements, band_parameters)
