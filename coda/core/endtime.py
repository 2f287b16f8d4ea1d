"""
Coda end-time estimation.

Given a log10 amplitude trace, a noise level and an SNR threshold, find
where the coda decays into the noise.
"""

import logging
import numpy as np

logger = logging.getLogger(__name__)


class EndTimePicker:
    """
    Threshold-crossing end-time estimator.

    Samples are log10 amplitudes, so the SNR threshold is additive:
    the signal is considered above noise while
    ``data >= noise_level + min_snr``.

    Parameters
    ----------
    min_run : int
        Number of consecutive samples that must sit below threshold before
        the coda is declared ended; isolated dips do not end the coda.
    """

    def __init__(self, min_run=3):
        if min_run < 1:
            raise ValueError("min_run must be >= 1")
        self.min_run = int(min_run)

    def get_end_time(self, data, sampling_rate, start_time, start_index,
                     min_length, max_length, min_snr, noise_level):
        """
        Propose a coda end time.

        Parameters
        ----------
        data : ndarray
            log10 amplitudes
        sampling_rate : float
            Sampling rate in Hz
        start_time : float
            Epoch time of the coda start (informational)
        start_index : int
            Index of the coda start in ``data``
        min_length, max_length : float
            Allowed coda length in seconds; the search stops one sample
            past ``max_length``. ``min_length`` is enforced by the caller.
        min_snr : float
            Required log10 amplitude above noise
        noise_level : float
            log10 noise amplitude

        Returns
        -------
        end : float or None
            Seconds after the first sample of ``data``, or None when no
            usable end exists
        """
        data = np.asarray(data, dtype=np.float64)
        n = len(data)
        if n == 0 or sampling_rate <= 0:
            return None
        if start_index < 0 or start_index >= n:
            logger.debug(f"Start index {start_index} outside data of length {n}")
            return None
        if not np.isfinite(noise_level) or not np.isfinite(min_snr):
            return None

        threshold = noise_level + min_snr
        stop = min(n, start_index + int(np.ceil(max_length * sampling_rate)) + 2)
        window = data[start_index:stop]

        below = window < threshold
        run = 0
        for i, is_below in enumerate(below):
            run = run + 1 if is_below else 0
            if run >= self.min_run:
                end_index = start_index + i - self.min_run + 1
                return end_index / sampling_rate
        # A run cut short by the end of the window still counts
        if run > 0 and stop == n:
            return (start_index + len(below) - run) / sampling_rate

        logger.debug(f"Coda never drops below {threshold:.3f} within {max_length} s "
                     f"after {start_time}")
        return (stop - 1) / sampling_rate
