"""
Domain records shared by the CODA pipelines.

Events, stations, frequency bands and band parameters are immutable
reference data. Waveforms are immutable by convention: pipelines derive new
records from them, and only the autopicker edits a waveform's pick list.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

import numpy as np
from obspy import UTCDateTime


class PickType(Enum):
    """Closed set of pick types with their display phase."""

    F = 'f'
    A = 'a'
    B = 'b'
    PN = 'Pn'
    PG = 'Pg'
    SN = 'Sn'
    LG = 'Lg'
    O = 'o'
    AP = 'ap'
    UNKNOWN = 'UNK'

    @property
    def phase(self) -> str:
        return self.value

    @classmethod
    def parse(cls, text) -> 'PickType':
        """Case-insensitive lookup by name; anything else is UNKNOWN."""
        if isinstance(text, PickType):
            return text
        if text is None:
            return cls.UNKNOWN
        name = str(text).strip().upper()
        return cls.__members__.get(name, cls.UNKNOWN)

    @classmethod
    def is_known_phase(cls, text) -> bool:
        if text is None:
            return False
        text = str(text).strip().lower()
        return text in {p.phase.lower() for p in (cls.PN, cls.PG, cls.SN, cls.LG)}


@dataclass(frozen=True)
class Event:
    event_id: str
    origin_time: UTCDateTime
    latitude: float
    longitude: float
    depth: float = 0.0


@dataclass(frozen=True)
class Station:
    name: str
    latitude: float
    longitude: float
    network: str = ''


@dataclass(frozen=True)
class FrequencyBand:
    low: float
    high: float


@dataclass(frozen=True)
class SharedFrequencyBandParameters:
    """Physical constants for one frequency band."""

    low_frequency: float
    high_frequency: float
    velocity0: float
    velocity1: float
    velocity2: float
    min_snr: float
    min_length: float
    max_length: float
    smoothing: float = 0.0
    # coda shape: b(d) = beta0 - beta1 / (beta2 + d)
    beta0: float = 0.0
    beta1: float = 0.0
    beta2: float = 1.0
    # coda shape: gamma(d) = gamma0 - gamma1 / (gamma2 + d)
    gamma0: float = 0.0
    gamma1: float = 0.0
    gamma2: float = 1.0
    # path: geometric spreading exponents, crossover distance (km), Q
    s1: float = 1.0
    s2: float = 0.5
    xc: float = 100.0
    q: float = 1000.0
    measurement_time: float = 0.0

    @property
    def band(self) -> FrequencyBand:
        return FrequencyBand(self.low_frequency, self.high_frequency)

    def apparent_velocity(self, distance):
        """``v0 - v1 / (v2 + distance)``, with 1.0 substituted for zero."""
        vr = self.velocity0 - self.velocity1 / (self.velocity2 + distance)
        if vr == 0.0:
            vr = 1.0
        return vr


@dataclass(eq=False)
class WaveformPick:
    pick_type: PickType
    pick_time: Optional[float] = None
    waveform: Optional['Waveform'] = field(default=None, repr=False)

    @property
    def pick_name(self) -> str:
        return self.pick_type.phase

    @property
    def is_bad(self) -> bool:
        return self.pick_time is None


@dataclass(eq=False)
class Waveform:
    """
    Sampled waveform segment with its event/station context.

    ``end_time`` is exclusive: ``begin_time + len(segment) / sample_rate``.
    """

    begin_time: UTCDateTime
    end_time: UTCDateTime
    sample_rate: float
    segment: np.ndarray
    event: Optional[Event] = None
    station: Optional[Station] = None
    channel: str = ''
    waveform_id: Optional[str] = None
    low_frequency: float = 0.0
    high_frequency: float = 0.0
    associated_picks: List[WaveformPick] = field(default_factory=list)

    def __post_init__(self):
        self.segment = np.asarray(self.segment, dtype=np.float64)
        self.begin_time = UTCDateTime(self.begin_time)
        self.end_time = UTCDateTime(self.end_time)
        for pick in self.associated_picks:
            pick.waveform = self

    @classmethod
    def from_samples(cls, segment, sample_rate, begin_time, **fields):
        segment = np.asarray(segment, dtype=np.float64)
        begin_time = UTCDateTime(begin_time)
        end_time = begin_time + len(segment) / float(sample_rate)
        return cls(begin_time=begin_time, end_time=end_time,
                   sample_rate=float(sample_rate), segment=segment, **fields)

    @property
    def frequency_band(self) -> FrequencyBand:
        return FrequencyBand(self.low_frequency, self.high_frequency)

    @property
    def duration(self) -> float:
        return len(self.segment) / self.sample_rate

    def derive(self, **changes) -> 'Waveform':
        """New record sharing event/station/channel/id; picks are not copied."""
        changes.setdefault('associated_picks', [])
        return replace(self, **changes)

    def find_pick(self, pick_type) -> Optional[WaveformPick]:
        pick_type = PickType.parse(pick_type)
        for pick in self.associated_picks:
            if pick.pick_type is pick_type:
                return pick
        return None

    def add_pick(self, pick: WaveformPick) -> WaveformPick:
        pick.waveform = self
        self.associated_picks.append(pick)
        return pick

    def clear_picks(self):
        for pick in self.associated_picks:
            pick.waveform = None
        self.associated_picks = []


@dataclass(eq=False)
class PeakVelocityMeasurement:
    waveform: Optional[Waveform]
    noise_level: float
    distance: float
    velocity: float = 0.0
    time_sec_from_origin: float = 0.0
    amplitude: float = 0.0
    snr: float = 0.0


@dataclass(frozen=True)
class FrequencyBandConfiguration:
    low_frequency: float
    high_frequency: float
    smoothing: float

    @property
    def band(self) -> FrequencyBand:
        return FrequencyBand(self.low_frequency, self.high_frequency)


@dataclass
class EnvelopeJobConfiguration:
    frequency_band_configuration: List[FrequencyBandConfiguration] = field(default_factory=list)

    @classmethod
    def from_band_parameters(cls, band_parameters):
        """Job configuration covering every band of a parameter mapping."""
        bands = sorted(band_parameters.values(), key=lambda p: (p.low_frequency, p.high_frequency))
        return cls([FrequencyBandConfiguration(p.low_frequency, p.high_frequency, p.smoothing)
                    for p in bands])


@dataclass(frozen=True)
class VelocityConfiguration:
    """Group-velocity windows (km/s) and noise window (s from origin)."""

    group_velocity1_gt_distance: float = 4.7
    group_velocity2_gt_distance: float = 2.3
    group_velocity1_lt_distance: float = 3.9
    group_velocity2_lt_distance: float = 1.9
    distance_threshold: float = 300.0
    noise_window_start: float = -100.0
    noise_window_end: float = -20.0

    def group_velocities(self, distance):
        if distance > self.distance_threshold:
            return self.group_velocity1_gt_distance, self.group_velocity2_gt_distance
        return self.group_velocity1_lt_distance, self.group_velocity2_lt_distance


@dataclass(eq=False)
class SpectraMeasurement:
    waveform: Waveform
    raw_at_start: float
    raw_at_measured_time: float
    path_corrected: float
    path_and_site_corrected: float = float('nan')
    rms_fit: float = 0.0
    start_cut_sec: float = 0.0
    end_cut_sec: float = 0.0


@dataclass
class Result:
    """Outcome of a batch call: success flag, value and readable errors."""

    success: bool
    value: object = None
    errors: List[str] = field(default_factory=list)

    @classmethod
    def ok(cls, value):
        return cls(True, value)

    @classmethod
    def failure(cls, *messages):
        return cls(False, [], list(messages))
