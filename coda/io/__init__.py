"""
I/O modules for waveform and parameter data.

Provides:
- Waveform <-> TimeSeries conversion
- SAC waveform reading and writing via obspy
- Band parameter files (JSON or YAML)
"""

from .waveform_loader import (WaveformToTimeSeriesConverter, load_waveforms,
                              write_waveforms, waveform_from_trace, trace_from_waveform)
from .parameters import ParameterSet, load_parameters

__all__ = [
    'WaveformToTimeSeriesConverter',
    'load_waveforms',
    'write_waveforms',
    'waveform_from_trace',
    'trace_from_waveform',
    'ParameterSet',
    'load_parameters',
]
