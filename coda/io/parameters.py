"""
Band parameter and job configuration files.

Parameter files are JSON or YAML documents with a ``bands`` list; each
entry describes one frequency band::

    {
      "bands": [
        {"lowFreqHz": 1.0, "highFreqHz": 1.5, "smoothing": 20,
         "velocity0": 3.5, "velocity1": 10.0, "velocity2": 0.0,
         "minSnr": 0.3, "minLength": 20, "maxLength": 500,
         "beta0": ..., "gamma0": ..., "s1": ..., "q": ...}
      ],
      "velocity": {"distanceThreshold": 300.0, ...}
    }

A malformed band is reported in ``ParameterSet.errors`` and does not stop
the remaining bands from loading.
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List

import yaml

from ..model import (EnvelopeJobConfiguration, FrequencyBand,
                     SharedFrequencyBandParameters, VelocityConfiguration)

logger = logging.getLogger(__name__)

# file key -> SharedFrequencyBandParameters field
BAND_FIELDS = {
    'lowFreqHz': 'low_frequency',
    'highFreqHz': 'high_frequency',
    'velocity0': 'velocity0',
    'velocity1': 'velocity1',
    'velocity2': 'velocity2',
    'minSnr': 'min_snr',
    'minLength': 'min_length',
    'maxLength': 'max_length',
    'smoothing': 'smoothing',
    'beta0': 'beta0',
    'beta1': 'beta1',
    'beta2': 'beta2',
    'gamma0': 'gamma0',
    'gamma1': 'gamma1',
    'gamma2': 'gamma2',
    's1': 's1',
    's2': 's2',
    'xc': 'xc',
    'q': 'q',
    'measurementTime': 'measurement_time',
}

VELOCITY_FIELDS = {
    'groupVelocity1GtDistance': 'group_velocity1_gt_distance',
    'groupVelocity2GtDistance': 'group_velocity2_gt_distance',
    'groupVelocity1LtDistance': 'group_velocity1_lt_distance',
    'groupVelocity2LtDistance': 'group_velocity2_lt_distance',
    'distanceThreshold': 'distance_threshold',
    'noiseWindowStart': 'noise_window_start',
    'noiseWindowEnd': 'noise_window_end',
}

REQUIRED_BAND_FIELDS = ('velocity0', 'velocity1', 'velocity2', 'minSnr', 'minLength', 'maxLength')


@dataclass
class ParameterSet:
    band_parameters: Dict[FrequencyBand, SharedFrequencyBandParameters] = field(default_factory=dict)
    job_configuration: EnvelopeJobConfiguration = field(default_factory=EnvelopeJobConfiguration)
    velocity_configuration: VelocityConfiguration = field(default_factory=VelocityConfiguration)
    errors: List[str] = field(default_factory=list)


def _normalize(entry, mapping):
    """Map file keys (camelCase or snake_case) onto dataclass field names."""
    out = {}
    targets = set(mapping.values())
    for key, value in entry.items():
        if key in mapping:
            out[mapping[key]] = value
        elif key in targets:
            out[key] = value
    return out


def band_from_dict(entry):
    """
    SharedFrequencyBandParameters from one ``bands`` entry.

    Raises
    ------
    ValueError
        If the band corners or a required constant are missing
    """
    if entry.get('lowFreqHz', entry.get('low_frequency')) is None or \
            entry.get('highFreqHz', entry.get('high_frequency')) is None:
        raise ValueError(f"Unable to parse frequency band {entry}; received an empty frequency band.")

    values = _normalize(entry, BAND_FIELDS)
    missing = [k for k in REQUIRED_BAND_FIELDS if BAND_FIELDS[k] not in values]
    if missing:
        raise ValueError(f"Frequency band {values['low_frequency']}-{values['high_frequency']} "
                         f"is missing {', '.join(missing)}")
    try:
        values = {k: float(v) for k, v in values.items()}
    except (TypeError, ValueError) as e:
        raise ValueError(f"Non-numeric value in frequency band {entry}: {e}")
    if values['low_frequency'] >= values['high_frequency']:
        raise ValueError(f"Frequency band {values['low_frequency']}-{values['high_frequency']} "
                         f"has low >= high")
    return SharedFrequencyBandParameters(**values)


def parse_parameters(document):
    """Build a ParameterSet from an already-decoded document."""
    params = ParameterSet()
    if not isinstance(document, dict):
        params.errors.append("Parameter document is not a mapping")
        return params

    for entry in document.get('bands') or []:
        try:
            band = band_from_dict(entry)
        except ValueError as e:
            logger.warning(str(e))
            params.errors.append(str(e))
            continue
        params.band_parameters[band.band] = band

    velocity = document.get('velocity')
    if velocity:
        try:
            params.velocity_configuration = VelocityConfiguration(
                **{k: float(v) for k, v in _normalize(velocity, VELOCITY_FIELDS).items()})
        except (TypeError, ValueError) as e:
            params.errors.append(f"Invalid velocity configuration: {e}")

    params.job_configuration = EnvelopeJobConfiguration.from_band_parameters(params.band_parameters)
    return params


def load_parameters(path):
    """
    Read a JSON (``.json``) or YAML (``.yaml``/``.yml``) parameter file.

    Returns
    -------
    params : ParameterSet
    """
    ext = os.path.splitext(path)[1].lower()
    if ext not in ('.json', '.yaml', '.yml'):
        raise ValueError(f"Unsupported parameter file type: {path}")

    try:
        with open(path) as fh:
            document = json.load(fh) if ext == '.json' else yaml.safe_load(fh)
    except (OSError, ValueError, yaml.YAMLError) as e:
        params = ParameterSet()
        params.errors.append(f"Error parsing ({os.path.basename(path)}): {e}")
        logger.error(params.errors[-1])
        return params

    params = parse_parameters(document)
    logger.info(f"Loaded {len(params.band_parameters)} frequency bands from {path}")
    return params
