"""
Fixed-rate sampled signal with an absolute start time.

The TimeSeries class is the working representation every pipeline stage
operates on. Operations mutate the series in place and return ``self`` so
calls can be chained. The end time is exclusive:
``endtime = starttime + npts / sampling_rate``.

Empty buffers are a precondition violation for the detrending, tapering
and filtering operations; their output is undefined.
"""

import logging
import numpy as np
from scipy.interpolate import interp1d
from scipy.signal import detrend

from obspy import UTCDateTime

from .preprocessing import apply_filter, apply_taper, compute_envelope, smooth

logger = logging.getLogger(__name__)

# Floor applied before log10 so envelopes with zero samples stay finite
LOG_FLOOR = 1e-20

# Tolerance (in samples) when converting times to indices
_INDEX_EPS = 1e-6


class TimeSeriesBoundaryError(ValueError):
    """Raised when a requested time window cannot be extracted."""


class TimeSeries:
    """
    Uniformly sampled signal.

    Parameters
    ----------
    data : array-like
        Sample buffer (copied to float64)
    sampling_rate : float
        Samples per second
    starttime : UTCDateTime, float or str
        Time of the first sample
    """

    def __init__(self, data, sampling_rate, starttime):
        if sampling_rate is None or sampling_rate <= 0:
            raise ValueError(f"sampling_rate must be positive, got {sampling_rate}")
        self.data = np.array(data, dtype=np.float64)
        self.sampling_rate = float(sampling_rate)
        self.starttime = UTCDateTime(starttime)

    def __len__(self):
        return len(self.data)

    def __repr__(self):
        return (f"TimeSeries(npts={self.npts}, sampling_rate={self.sampling_rate}, "
                f"starttime={self.starttime})")

    @property
    def npts(self):
        return len(self.data)

    @property
    def delta(self):
        return 1.0 / self.sampling_rate

    @property
    def duration(self):
        return self.npts / self.sampling_rate

    @property
    def endtime(self):
        return self.starttime + self.duration

    def copy(self):
        return TimeSeries(self.data, self.sampling_rate, self.starttime)

    def times(self):
        """Sample times in seconds relative to ``starttime``."""
        return np.arange(self.npts) / self.sampling_rate

    def get_index_for_time(self, time):
        """Nearest sample index for an absolute time, clipped to the buffer."""
        if self.npts == 0:
            return 0
        idx = int(round((UTCDateTime(time) - self.starttime) * self.sampling_rate))
        return min(max(idx, 0), self.npts - 1)

    def cut(self, start, end):
        """
        Truncate to samples whose time lies in ``[start, end)``.

        A window that only partially overlaps the series is clipped to the
        available data.

        Raises
        ------
        TimeSeriesBoundaryError
            If ``start >= end``, the window lies entirely outside the series,
            or no sample falls inside it.
        """
        start = UTCDateTime(start)
        end = UTCDateTime(end)
        if start >= end:
            raise TimeSeriesBoundaryError(f"Cut start {start} is not before cut end {end}")
        if start >= self.endtime or end <= self.starttime:
            raise TimeSeriesBoundaryError(
                f"Cut window [{start}, {end}) lies outside series [{self.starttime}, {self.endtime})")

        i0 = int(np.ceil((start - self.starttime) * self.sampling_rate - _INDEX_EPS))
        i1 = int(np.ceil((end - self.starttime) * self.sampling_rate - _INDEX_EPS))
        i0 = max(i0, 0)
        i1 = min(i1, self.npts)
        if i1 <= i0:
            raise TimeSeriesBoundaryError(f"Cut window [{start}, {end}) contains no samples")

        self.data = self.data[i0:i1].copy()
        self.starttime = self.starttime + i0 / self.sampling_rate
        return self

    def interpolate(self, new_rate):
        """
        Linearly resample onto a uniform grid at ``new_rate`` Hz.

        The first sample time is unchanged and the number of samples is
        ``round(npts * new_rate / sampling_rate)``, so the duration changes
        by less than one output sample.
        """
        if new_rate <= 0:
            raise ValueError(f"new_rate must be positive, got {new_rate}")
        if np.isclose(new_rate, self.sampling_rate):
            return self
        if self.npts < 2:
            raise ValueError("interpolation requires at least two samples")

        new_npts = max(1, int(round(self.npts * new_rate / self.sampling_rate)))
        old_t = self.times()
        new_t = np.arange(new_npts) / new_rate
        f = interp1d(old_t, self.data, kind='linear', bounds_error=False,
                     fill_value=(self.data[0], self.data[-1]), assume_sorted=True)
        self.data = f(new_t)
        self.sampling_rate = float(new_rate)
        return self

    def remove_mean(self):
        self.data = self.data - np.mean(self.data)
        return self

    def remove_trend(self):
        self.data = detrend(self.data, type='linear')
        return self

    def taper(self, percent=1.0):
        """Hann taper covering ``percent`` % of the length at each end."""
        self.data = apply_taper(self.data, max_percentage=percent / 100.0)
        return self

    def filter(self, order, passband, freqmin=None, freqmax=None, zero_phase=True):
        """
        Butterworth filter in place.

        Parameters
        ----------
        order : int
            Filter order
        passband : str
            'bandpass', 'lowpass', 'highpass' or 'bandstop'
        freqmin, freqmax : float
            Corner frequencies in Hz
        zero_phase : bool
            Forward-backward filtering (no time shift)
        """
        self.data = apply_filter(self.data, self.sampling_rate, passband,
                                 freqmin=freqmin, freqmax=freqmax,
                                 corners=order, zero_phase=zero_phase)
        return self

    def envelope(self):
        self.data = compute_envelope(self.data)
        return self

    def log10(self, floor=LOG_FLOOR):
        """Element-wise log10 with samples below ``floor`` raised to it."""
        data = np.where(np.isnan(self.data), floor, self.data)
        self.data = np.log10(np.maximum(data, floor))
        return self

    def smooth(self, window_samples):
        self.data = smooth(self.data, int(window_samples))
        return self

    def get_max_time(self):
        """
        Locate the peak sample.

        Returns
        -------
        (offset, value) : tuple of float
            Seconds after ``starttime`` of the maximum and its amplitude
        """
        if self.npts == 0:
            raise TimeSeriesBoundaryError("cannot locate the maximum of an empty series")
        idx = int(np.argmax(self.data))
        return idx / self.sampling_rate, float(self.data[idx])

    def mean_between(self, start, end):
        """Mean of the samples in ``[start, end)``."""
        return float(np.mean(self.copy().cut(start, end).data))
