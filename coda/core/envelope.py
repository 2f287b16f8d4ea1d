"""
Envelope generation for CODA.

For every (waveform, frequency band) pair of a job, produce one smoothed
log10 envelope waveform:

    interpolate -> cut around origin -> demean -> detrend -> taper
    -> band-pass -> envelope -> log10 -> smooth -> trim smoothing edges

Each pairing is independent and runs on the shared worker pool. A pairing
that cannot be processed is logged and dropped; the batch still returns
everything that succeeded.
"""

import logging

from ..io.waveform_loader import WaveformToTimeSeriesConverter
from ..model import Result
from .parallel import parallel_map

logger = logging.getLogger(__name__)

# Cut window relative to origin time (s)
CUT_BEFORE_ORIGIN = 150.0
CUT_AFTER_ORIGIN = 1500.0

# Working sample rate of envelopes (Hz)
ENVELOPE_SAMPLE_RATE = 4.0

FILTER_ORDER = 4
TAPER_PERCENT = 1.0

NO_WAVEFORMS_MESSAGE = "No waveforms provided; unable to compute envelopes."
NO_CONFIGURATION_MESSAGE = ("No configuration specified but is required for this endpoint; "
                            "unable to compute envelopes.")


class EnvelopeGenerator:
    """
    Batch envelope creation.

    Parameters
    ----------
    converter : WaveformToTimeSeriesConverter, optional
        Waveform <-> TimeSeries marshalling
    default_configuration : EnvelopeJobConfiguration, optional
        Used when a job is submitted without a configuration
    sample_rate : float
        Working sample rate (Hz)
    cut_before, cut_after : float
        Cut window around origin time (s)
    n_workers : int, optional
        Pool size; 1 runs sequentially
    """

    def __init__(self, converter=None, default_configuration=None,
                 sample_rate=ENVELOPE_SAMPLE_RATE,
                 cut_before=CUT_BEFORE_ORIGIN, cut_after=CUT_AFTER_ORIGIN,
                 n_workers=None):
        self.converter = converter or WaveformToTimeSeriesConverter()
        self.default_configuration = default_configuration
        self.sample_rate = sample_rate
        self.cut_before = cut_before
        self.cut_after = cut_after
        self.n_workers = n_workers

    def create_envelopes(self, session_id, waveforms, job_configuration=None):
        """
        Create envelopes for every waveform and configured band.

        Returns
        -------
        result : Result
            ``Result.ok(list_of_envelopes)``, or a failure carrying a
            readable message when no waveforms or no configuration was given
        """
        if not waveforms:
            logger.warning(f"Session {session_id}: {NO_WAVEFORMS_MESSAGE}")
            return Result.failure(NO_WAVEFORMS_MESSAGE)

        if job_configuration is None or not job_configuration.frequency_band_configuration:
            job_configuration = self.default_configuration

        if job_configuration is None or not job_configuration.frequency_band_configuration:
            logger.warning(f"Session {session_id}: {NO_CONFIGURATION_MESSAGE}")
            return Result.failure(NO_CONFIGURATION_MESSAGE)

        raw = [wf for wf in waveforms if wf is not None]
        bands = list(job_configuration.frequency_band_configuration)
        units = [(wf, band) for wf in raw for band in bands]

        logger.info(f"Session {session_id}: creating envelopes for {len(raw)} waveforms "
                    f"x {len(bands)} bands")
        results = parallel_map(self._envelope_unit, units, self.n_workers)
        envelopes = [env for env in results if env is not None]
        logger.info(f"Session {session_id}: produced {len(envelopes)} of {len(units)} envelopes")
        return Result.ok(envelopes)

    def _envelope_unit(self, unit):
        waveform, band_config = unit
        try:
            return self.envelope_for_band(waveform, band_config)
        except Exception as e:
            logger.info(f"Envelope failed for {waveform.waveform_id} "
                        f"[{band_config.low_frequency}, {band_config.high_frequency}] Hz: {e}",
                        exc_info=True)
            return None

    def envelope_for_band(self, waveform, band_config):
        """
        Smoothed log10 envelope of one waveform in one band.

        Returns None when the waveform has no event or the cut window does
        not overlap the data.
        """
        if waveform.event is None:
            logger.debug(f"Waveform {waveform.waveform_id} has no event; skipping")
            return None

        origin = waveform.event.origin_time
        startcut = origin - self.cut_before
        endcut = origin + self.cut_after

        seis = self.converter.convert(waveform)
        seis.interpolate(self.sample_rate)

        if startcut >= endcut:
            logger.info("Start time of cut is >= end time of cut.")
            return None
        if startcut >= seis.endtime:
            logger.info(f"Start time of cut is >= end time of {waveform.waveform_id}.")
            return None
        if endcut <= seis.starttime:
            logger.info(f"End time of cut is <= start time of {waveform.waveform_id}.")
            return None

        # Detrend after the cut so no ramp from discarded data remains
        seis.cut(startcut, endcut)
        seis.remove_mean()
        seis.remove_trend()
        seis.taper(TAPER_PERCENT)

        seis.filter(FILTER_ORDER, 'bandpass', band_config.low_frequency,
                    band_config.high_frequency, zero_phase=True)

        seis.envelope()
        seis.log10()

        smoothing = int(round(band_config.smoothing * seis.sampling_rate))
        seis.smooth(smoothing)

        # final cut to eliminate smoothing edge effects
        trimlength = 2 * smoothing / seis.sampling_rate
        trim_start = seis.starttime + trimlength
        trim_end = seis.endtime - trimlength
        if trim_end <= trim_start:
            logger.info(f"Nothing left of {waveform.waveform_id} after trimming "
                        f"{trimlength:.1f} s smoothing edges")
            return None
        seis.cut(trim_start, trim_end)

        return self.converter.to_waveform(
            seis, waveform,
            low_frequency=band_config.low_frequency,
            high_frequency=band_config.high_frequency,
        )


def create_envelopes(session_id, waveforms, job_configuration, **kwargs):
    """Convenience wrapper around ``EnvelopeGenerator.create_envelopes``."""
    return EnvelopeGenerator(**kwargs).create_envelopes(session_id, waveforms, job_configuration)
