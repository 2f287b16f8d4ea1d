"""
Core algorithms for coda envelope calibration.

This module provides:
- The TimeSeries primitive and array-level preprocessing
- Envelope generation
- Peak velocity measurement
- End-time estimation and autopicking
- Spectral measurement with path and site corrections
"""

from .timeseries import TimeSeries, TimeSeriesBoundaryError
from .envelope import EnvelopeGenerator, create_envelopes
from .endtime import EndTimePicker
from .velocity import measure_velocities
from .autopicker import Autopicker, auto_pick_velocity_measured_waveforms
from .spectra import SpectraCalculator, measure_spectra

__all__ = [
    'TimeSeries',
    'TimeSeriesBoundaryError',
    'EnvelopeGenerator',
    'create_envelopes',
    'EndTimePicker',
    'measure_velocities',
    'Autopicker',
    'auto_pick_velocity_measured_waveforms',
    'SpectraCalculator',
    'measure_spectra',
]
