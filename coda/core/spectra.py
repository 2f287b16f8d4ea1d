"""
Coda spectral amplitude measurement with path and site corrections.

The coda of a log10 envelope in one band follows

    log10 A(t) = A0 - gamma(d) * log10(t) + b(d) * t

with ``t`` seconds from origin, ``b(d) = beta0 - beta1 / (beta2 + d)`` and
``gamma(d) = gamma0 - gamma1 / (gamma2 + d)``. Only the amplitude ``A0`` is
fitted per waveform; the shape comes from the band parameters.

The fitted amplitude is corrected for geometric spreading and attenuation
along the path, then for a per-station site term estimated from the
residuals of all events recorded at that station.
"""

import logging
import math
import numpy as np
import pandas as pd

from ..io.waveform_loader import WaveformToTimeSeriesConverter
from ..model import PickType, SpectraMeasurement
from .parallel import parallel_map

logger = logging.getLogger(__name__)


def coda_shape(params, distance):
    """Return (beta, gamma) of the coda model at ``distance`` km."""
    beta = params.beta0 - params.beta1 / (params.beta2 + distance)
    gamma = params.gamma0 - params.gamma1 / (params.gamma2 + distance)
    return beta, gamma


def coda_model(t, amplitude, beta, gamma):
    """log10 coda amplitude at ``t`` seconds after origin."""
    t = np.asarray(t, dtype=np.float64)
    return amplitude - gamma * np.log10(t) + beta * t


def fit_coda_amplitude(series, origin, start, end, beta, gamma):
    """
    Least-squares amplitude of the coda model over ``[start, end)``.

    Parameters
    ----------
    series : TimeSeries
        log10 envelope
    origin : UTCDateTime
        Event origin time
    start, end : float
        Fit window in seconds from origin
    beta, gamma : float
        Coda shape

    Returns
    -------
    amplitude : float
        Fitted A0
    rms : float
        Root-mean-square misfit (log10 units)
    """
    window = series.copy().cut(origin + start, origin + end)
    t = (window.starttime - origin) + window.times()
    keep = t > 0
    if not np.any(keep):
        raise ValueError("coda window does not start after origin")
    t = t[keep]
    data = window.data[keep]

    shape = coda_model(t, 0.0, beta, gamma)
    amplitude = float(np.mean(data - shape))
    residual = data - (shape + amplitude)
    rms = float(np.sqrt(np.mean(residual ** 2)))
    return amplitude, rms


def path_correction(distance, params):
    """
    log10 path term: geometric spreading plus attenuation.

    Spreading is ``d^-s1`` out to the crossover distance ``xc`` and
    ``d^-s2`` beyond it; attenuation is evaluated at the band's centre
    frequency with the apparent velocity of the band.
    """
    if distance <= 0:
        raise ValueError(f"distance must be positive, got {distance}")

    if distance <= params.xc:
        spreading = -params.s1 * math.log10(distance)
    else:
        spreading = -params.s1 * math.log10(params.xc) - params.s2 * math.log10(distance / params.xc)

    freq = math.sqrt(params.low_frequency * params.high_frequency)
    vr = params.apparent_velocity(distance)
    attenuation = -(math.pi * freq * distance) / (params.q * vr) * math.log10(math.e)
    return spreading + attenuation


def _measurement_key(measurement):
    wf = measurement.waveform
    station = wf.station.name if wf.station is not None else wf.waveform_id
    return wf.event.event_id, station, wf.low_frequency, wf.high_frequency


def compute_site_terms(measurements):
    """
    Per-station site terms from path-corrected amplitudes.

    Each amplitude is compared with the mean of its event and band; a
    station's site term is its mean residual over all events.

    Returns
    -------
    terms : dict
        (station, low, high) -> site term
    """
    rows = []
    for m in measurements:
        event_id, station, low, high = _measurement_key(m)
        rows.append({'event': event_id, 'station': station, 'low': low, 'high': high,
                     'value': m.path_corrected})
    if not rows:
        return {}

    df = pd.DataFrame(rows)
    event_mean = df.groupby(['event', 'low', 'high'])['value'].transform('mean')
    df['residual'] = df['value'] - event_mean
    site = df.groupby(['station', 'low', 'high'])['residual'].mean()
    return {key: float(value) for key, value in site.items()}


class SpectraCalculator:
    """
    Raw, path-corrected and site-corrected coda amplitudes.

    Parameters
    ----------
    converter : WaveformToTimeSeriesConverter, optional
    n_workers : int, optional
    """

    def __init__(self, converter=None, n_workers=None):
        self.converter = converter or WaveformToTimeSeriesConverter()
        self.n_workers = n_workers

    def measure_spectra(self, measurements, band_parameters):
        """
        Measure every picked waveform.

        Waveforms without band parameters, event, start pick or a good end
        pick are skipped.

        Returns
        -------
        spectra : list of SpectraMeasurement
        """
        units = [m for m in measurements if m is not None and m.waveform is not None]
        results = parallel_map(lambda m: self._measure_unit(m, band_parameters), units, self.n_workers)
        spectra = [s for s in results if s is not None]

        terms = compute_site_terms(spectra)
        for s in spectra:
            _, station, low, high = _measurement_key(s)
            s.path_and_site_corrected = s.path_corrected - terms.get((station, low, high), 0.0)

        logger.info(f"Measured spectra for {len(spectra)} of {len(units)} waveforms")
        return spectra

    def _measure_unit(self, measurement, band_parameters):
        try:
            return self.measure(measurement, band_parameters)
        except Exception as e:
            logger.info(f"Spectra measurement failed for {measurement.waveform.waveform_id}: {e}")
            return None

    def measure(self, measurement, band_parameters):
        waveform = measurement.waveform
        params = band_parameters.get(waveform.frequency_band)
        if params is None or waveform.event is None:
            logger.debug(f"Missing reference data for {waveform.waveform_id}; skipping")
            return None

        start_pick = waveform.find_pick(PickType.AP)
        end_pick = waveform.find_pick(PickType.F)
        if start_pick is None or end_pick is None or start_pick.is_bad or end_pick.is_bad:
            logger.debug(f"Waveform {waveform.waveform_id} has no usable coda picks; skipping")
            return None

        start = start_pick.pick_time
        end = start + end_pick.pick_time
        if start <= 0:
            raise ValueError(f"start pick {start} s is not after origin")
        beta, gamma = coda_shape(params, measurement.distance)
        series = self.converter.convert(waveform)
        amplitude, rms = fit_coda_amplitude(series, waveform.event.origin_time, start, end, beta, gamma)

        raw_at_start = float(coda_model(start, amplitude, beta, gamma))
        raw_at_measured = float(coda_model(start + params.measurement_time, amplitude, beta, gamma))

        return SpectraMeasurement(
            waveform=waveform,
            raw_at_start=raw_at_start,
            raw_at_measured_time=raw_at_measured,
            path_corrected=raw_at_measured - path_correction(measurement.distance, params),
            rms_fit=rms,
            start_cut_sec=start,
            end_cut_sec=end,
        )


def measure_spectra(measurements, band_parameters, **kwargs):
    """Convenience wrapper around ``SpectraCalculator.measure_spectra``."""
    return SpectraCalculator(**kwargs).measure_spectra(measurements, band_parameters)
