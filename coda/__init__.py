"""
CODA - Coda envelope calibration core

Signal-processing pipeline that turns raw seismic waveforms into
calibrated coda envelope measurements.

This package provides:
- Envelope generation per frequency band (filter, envelope, log, smooth)
- Peak group-velocity measurement on envelopes
- Automatic coda start/end picking
- Coda amplitude measurement with path and site corrections
- Waveform file I/O and band parameter loading
"""

__version__ = "0.1.0"
__author__ = "Coda Calibration Team"

from . import core
from . import io

__all__ = ['core', 'io']
