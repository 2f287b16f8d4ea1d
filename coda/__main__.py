"""
CODA pipeline runner.

Usage:
    python -m coda --parameters params.json --output out/ data/*.sac

Stages:
  - read raw waveforms (any format obspy reads; SAC headers carry the
    event and station metadata)
  - create log10 envelopes for every configured band
  - measure peak velocities and noise levels
  - autopick coda start/end times
  - measure coda amplitudes with path and site corrections

Writes ``picks.csv`` and ``spectra.csv`` to the output directory, and the
envelope SAC files when ``--save-envelopes`` is given.
"""

import os
import sys
import logging
import argparse

import pandas as pd
import yaml

from coda.core.envelope import EnvelopeGenerator
from coda.core.velocity import measure_velocities
from coda.core.autopicker import Autopicker
from coda.core.spectra import SpectraCalculator
from coda.io.parameters import load_parameters
from coda.io.waveform_loader import load_waveforms, write_waveforms
from coda.model import PickType

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(
        description='CODA - coda envelope calibration pipeline',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m coda --parameters bands.json --output out data/*.sac
  python -m coda --config run.yaml --skip-spectra data/*.sac
        """
    )
    parser.add_argument('--config', default=None,
                        help='Path to YAML config file containing options (overridden by CLI args)')
    parser.add_argument('files', nargs='*', help='Waveform files or glob patterns')
    parser.add_argument('--parameters', '-p', default=None,
                        help='Band parameter file (JSON or YAML)')
    parser.add_argument('--output', '-o', default='./coda_output',
                        help='Output directory')
    parser.add_argument('--session-id', type=int, default=0,
                        help='Session identifier used in log messages')
    parser.add_argument('--workers', '-w', type=int, default=None,
                        help='Worker threads (default: CPU count; 1 = sequential)')
    parser.add_argument('--skip-picks', action='store_true',
                        help='Stop after envelope creation')
    parser.add_argument('--skip-spectra', action='store_true',
                        help='Skip spectral measurement')
    parser.add_argument('--save-envelopes', action='store_true',
                        help='Write envelope waveforms as SAC files')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose output')
    return parser


def parse_args(argv=None):
    parser = build_parser()

    # First pass parse to detect config file, then set defaults from it so CLI args override config
    known_args, _ = parser.parse_known_args(argv)
    if known_args.config is not None:
        try:
            with open(known_args.config) as fh:
                cfg = yaml.safe_load(fh) or {}
            # Normalize keys: replace hyphens with underscore to match argparse dest names
            parser.set_defaults(**{k.replace('-', '_'): v for k, v in cfg.items()})
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f'Failed to load config file {known_args.config}: {e}')

    return parser.parse_args(argv)


def picks_table(measurements):
    rows = []
    for m in measurements:
        wf = m.waveform
        start = wf.find_pick(PickType.AP)
        end = wf.find_pick(PickType.F)
        rows.append({
            'waveform': wf.waveform_id,
            'event': wf.event.event_id if wf.event is not None else None,
            'station': wf.station.name if wf.station is not None else None,
            'low_hz': wf.low_frequency,
            'high_hz': wf.high_frequency,
            'distance_km': m.distance,
            'velocity_kms': m.velocity,
            'noise': m.noise_level,
            'snr': m.snr,
            'start_pick_s': start.pick_time if start is not None else None,
            'coda_length_s': end.pick_time if end is not None else None,
        })
    return pd.DataFrame(rows)


def spectra_table(spectra):
    return pd.DataFrame([{
        'waveform': s.waveform.waveform_id,
        'event': s.waveform.event.event_id,
        'station': s.waveform.station.name if s.waveform.station is not None else None,
        'low_hz': s.waveform.low_frequency,
        'high_hz': s.waveform.high_frequency,
        'raw_at_start': s.raw_at_start,
        'raw_at_measured_time': s.raw_at_measured_time,
        'path_corrected': s.path_corrected,
        'path_and_site_corrected': s.path_and_site_corrected,
        'rms_fit': s.rms_fit,
        'start_cut_s': s.start_cut_sec,
        'end_cut_s': s.end_cut_sec,
    } for s in spectra])


def run(args):
    """Run the pipeline; returns a process exit code."""
    if not args.parameters:
        logger.error('No band parameter file given (--parameters)')
        return 2

    params = load_parameters(args.parameters)
    for err in params.errors:
        logger.warning(err)

    waveforms = load_waveforms(args.files)
    generator = EnvelopeGenerator(n_workers=args.workers)
    result = generator.create_envelopes(args.session_id, waveforms, params.job_configuration)
    if not result.success:
        for err in result.errors:
            logger.error(err)
        return 1
    envelopes = result.value

    os.makedirs(args.output, exist_ok=True)

    measurements = []
    if not args.skip_picks:
        measurements = measure_velocities(envelopes, params.velocity_configuration, n_workers=args.workers)
        picker = Autopicker(n_workers=args.workers)
        measurements = picker.auto_pick_velocity_measured_waveforms(measurements, params.band_parameters)
        picks_path = os.path.join(args.output, 'picks.csv')
        picks_table(measurements).to_csv(picks_path, index=False)
        logger.info(f'Wrote {len(measurements)} picks to {picks_path}')

    if args.save_envelopes:
        write_waveforms(envelopes, os.path.join(args.output, 'envelopes'))

    if not args.skip_picks and not args.skip_spectra:
        calculator = SpectraCalculator(n_workers=args.workers)
        spectra = calculator.measure_spectra(measurements, params.band_parameters)
        spectra_path = os.path.join(args.output, 'spectra.csv')
        spectra_table(spectra).to_csv(spectra_path, index=False)
        logger.info(f'Wrote {len(spectra)} spectra measurements to {spectra_path}')

    return 0


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s %(name)s %(levelname)s: %(message)s')
    return run(args)


if __name__ == '__main__':
    sys.exit(main())
