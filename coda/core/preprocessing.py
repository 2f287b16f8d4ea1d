"""
Signal preprocessing helpers for CODA.

Array-level building blocks used by the TimeSeries primitive:
- Butterworth filtering (band-pass, low-pass, high-pass, band-stop)
- Moving-average smoothing
- Hann tapering
- Analytic-signal envelope
"""

import numpy as np
import logging
from scipy.signal import butter, sosfilt, sosfiltfilt, hilbert
from scipy.ndimage import uniform_filter1d

logger = logging.getLogger(__name__)

PASSBANDS = ('bandpass', 'lowpass', 'highpass', 'bandstop')


def design_filter(sampling_rate, passband, freqmin=None, freqmax=None, corners=4):
    """
    Design a Butterworth filter in second-order sections.

    Parameters
    ----------
    sampling_rate : float
        Sampling rate in Hz
    passband : str
        One of 'bandpass', 'lowpass', 'highpass', 'bandstop'
    freqmin : float, optional
        Lower corner (Hz); required for bandpass, bandstop and highpass
    freqmax : float, optional
        Upper corner (Hz); required for bandpass, bandstop and lowpass
    corners : int
        Filter order

    Returns
    -------
    sos : ndarray
        Second-order sections
    """
    if passband not in PASSBANDS:
        raise ValueError(f"Unknown passband '{passband}'; expected one of {PASSBANDS}")
    if sampling_rate <= 0:
        raise ValueError(f"sampling_rate must be positive, got {sampling_rate}")

    nyquist = 0.5 * sampling_rate

    def _normalized(freq, name):
        if freq is None:
            raise ValueError(f"{passband} filter requires {name}")
        if freq <= 0:
            raise ValueError(f"{name} must be positive, got {freq}")
        # Keep corners strictly inside (0, Nyquist)
        return max(0.001, min(freq / nyquist, 0.999))

    if passband in ('bandpass', 'bandstop'):
        if freqmin is not None and freqmax is not None and freqmin >= freqmax:
            raise ValueError(f"freqmin ({freqmin}) must be below freqmax ({freqmax})")
        low = _normalized(freqmin, 'freqmin')
        high = _normalized(freqmax, 'freqmax')
        high = max(low + 0.001, min(high, 0.999))
        wn = [low, high]
    elif passband == 'lowpass':
        wn = _normalized(freqmax, 'freqmax')
    else:
        wn = _normalized(freqmin, 'freqmin')

    return butter(corners, wn, btype=passband, output='sos')


def apply_filter(data, sampling_rate, passband, freqmin=None, freqmax=None,
                 corners=4, zero_phase=True):
    """
    Filter data with a Butterworth design.

    Zero-phase filtering runs the sections forward and backward, so the
    result is non-causal but introduces no time shift.

    Returns
    -------
    filtered : ndarray
        Filtered data (float64)
    """
    sos = design_filter(sampling_rate, passband, freqmin, freqmax, corners)
    data = np.asarray(data, dtype=np.float64)
    if zero_phase:
        return sosfiltfilt(sos, data)
    return sosfilt(sos, data)


def compute_envelope(data):
    """Instantaneous amplitude (magnitude of the analytic signal)."""
    return np.abs(hilbert(np.asarray(data, dtype=np.float64)))


def smooth(data, window_size):
    """
    Smooth data using moving average.

    Parameters
    ----------
    data : ndarray
        Input data
    window_size : int
        Size of smoothing window in samples

    Returns
    -------
    smoothed : ndarray
        Smoothed data
    """
    if window_size < 1:
        return data

    return uniform_filter1d(data, size=int(window_size), mode='nearest')


def hann_taper(n, max_percentage=0.05):
    """
    Build a taper window of length n with Hann ramps on both ends.

    Parameters
    ----------
    n : int
        Window length in samples
    max_percentage : float
        Fraction of the length used for each ramp

    Returns
    -------
    w : ndarray
        Taper weights in [0, 1]
    """
    w = np.ones(n, dtype=np.float64)
    win_len = int(round(max_percentage * n))
    if n <= 0 or win_len <= 0:
        return w

    ramp = np.hanning(2 * win_len)
    w[:win_len] = ramp[:win_len]
    w[-win_len:] = ramp[-win_len:]
    return w


def apply_taper(data, max_percentage=0.05):
    """Apply a Hann taper to an array; integer input is promoted to float."""
    data = np.asarray(data, dtype=np.float64)
    return data * hann_taper(len(data), max_percentage)
