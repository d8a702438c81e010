#!/usr/bin/env python3
"""
dicomsynth command-line interface

Generates synthetic DICOM studies and works with the persisted output.

Usage:
    python -m dicomsynth.cli create --modality CT --series-count 2 --image-count 3
    python -m dicomsynth.cli list --format json
    python -m dicomsynth.cli export --study-id <uid> --format pdf
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydicom.errors import InvalidDicomError

from .config import (
    GenerationParams,
    GeneratorConfig,
    StudyTemplate,
    load_config,
    save_config,
)
from .errors import DicomSynthError
from .export import EXPORT_FORMATS, export_study
from .listing import FORMATS, list_studies, render
from .modality import supported_modalities
from .pipeline import run_generation
from .storage import StudyWriter

logger = logging.getLogger(__name__)


def configure_logging(config: GeneratorConfig, verbose: bool = False, debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO if verbose else getattr(logging, config.log_level.upper())
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))
    logging.basicConfig(level=level, format=config.log_format, handlers=handlers, force=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='dicomsynth',
        description='Synthetic DICOM study generator',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One chest radiograph with defaults
  dicomsynth create

  # CT study with 2 series of 3 images, reproducible pixel noise
  dicomsynth create --modality CT --series-count 2 --image-count 3 --seed 42

  # Use a built-in template
  dicomsynth create --template mri-brain

  # List studies as CSV, export one as PDF
  dicomsynth list --format csv
  dicomsynth export --study-id 1.2.826.0.1.3680043.8.498.1.123 --format pdf
        """
    )
    parser.add_argument('--config', type=Path, help='JSON configuration file')
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    parser.add_argument('--debug', action='store_true', help='Debug logging')

    sub = parser.add_subparsers(dest='command', required=True)

    # create
    create = sub.add_parser('create', help='Generate synthetic studies')
    create.add_argument('--template', help='Study template name (see `templates`)')
    create.add_argument('--study-count', type=int, default=1, help='Number of studies (default: 1)')
    create.add_argument('--series-count', type=int, help='Series per study (default: 1)')
    create.add_argument('--image-count', type=int, help='Images per series (default: 1)')
    create.add_argument(
        '--modality',
        help=f'Modality code (default: CR; one of {", ".join(supported_modalities())})',
    )
    create.add_argument('--anatomical-region', help='Anatomical region (default: chest)')
    create.add_argument('--patient-name', help='Patient name (generated when omitted)')
    create.add_argument('--patient-id', help='Patient ID (generated when omitted)')
    create.add_argument('--patient-birth-date', help='Birth date, any common format (default: 19500101)')
    create.add_argument('--patient-sex', choices=['M', 'F', 'O'], help='Patient sex (default: O)')
    create.add_argument('--accession-number', help='Accession number (generated when omitted)')
    create.add_argument('--study-description', help='Study description')
    create.add_argument('--width', type=int, help='Override image width')
    create.add_argument('--height', type=int, help='Override image height')
    create.add_argument('--bits', type=int, dest='bits_per_pixel', help='Override bits per pixel (1-16)')
    create.add_argument('--seed', type=int, help='Seed for reproducible pixel content')
    create.add_argument('--workers', type=int, default=1, help='Worker threads (default: 1)')
    create.add_argument('--output-dir', type=Path, help='Output directory (default: from config)')

    # list
    listing = sub.add_parser('list', help='List local studies')
    listing.add_argument('--output-dir', type=Path, help='Studies directory (default: from config)')
    listing.add_argument('--format', choices=FORMATS, default='table', help='Output format (default: table)')
    listing.add_argument('--details', action='store_true', help='Show description, modality and accession')

    # export
    export = sub.add_parser('export', help='Export a study to PNG, JPEG or PDF')
    export.add_argument('--study-id', required=True, help='Study instance UID')
    export.add_argument('--format', choices=EXPORT_FORMATS, default='png', help='Export format (default: png)')
    export.add_argument('--input-dir', type=Path, help='Studies directory (default: from config)')
    export.add_argument('--output-dir', type=Path, default=Path('exports'), help='Export directory (default: exports)')
    export.add_argument('--output-file', type=Path, help='PDF output file')

    # templates
    templates = sub.add_parser('templates', help='List or add study templates')
    templates.add_argument('--add', metavar='NAME', help='Add a user template to the config file')
    templates.add_argument('--modality', default='CR')
    templates.add_argument('--series-count', type=int, default=1)
    templates.add_argument('--image-count', type=int, default=1)
    templates.add_argument('--anatomical-region', default='chest')
    templates.add_argument('--study-description', default='')

    # init-config
    init = sub.add_parser('init-config', help='Write a default configuration file')
    init.add_argument('path', type=Path, nargs='?', default=Path('dicomsynth.json'))
    init.add_argument('--force', action='store_true', help='Overwrite an existing file')

    return parser


# ═══════════════════════════════════════════════════════════════════════════════
# COMMANDS
# ═══════════════════════════════════════════════════════════════════════════════

def cmd_create(args: argparse.Namespace, config: GeneratorConfig) -> int:
    # Options left unset fall back to the template, then to GenerationParams defaults
    given = {
        name: getattr(args, name)
        for name in (
            'series_count', 'image_count', 'modality', 'anatomical_region',
            'patient_name', 'patient_id', 'patient_birth_date', 'patient_sex',
            'accession_number', 'study_description', 'width', 'height', 'bits_per_pixel',
        )
        if getattr(args, name) is not None
    }
    params = GenerationParams(study_count=args.study_count, **given)
    if args.template:
        params = params.with_template(config.get_template(args.template), keep=given)

    output_dir = args.output_dir or Path(config.output_dir)
    report = run_generation(
        params, config, seed=args.seed, workers=args.workers, writer=StudyWriter(output_dir),
    )

    print(f"\nGeneration complete ({output_dir}):")
    print(report.summary())
    for uid in report.study_uids:
        print(f"  Study: {uid}")
    for item in report.failed:
        print(f"  ✗ Failed {item.position}: {item.error_type}: {item.error}", file=sys.stderr)

    return 0 if report.success else 1


def cmd_list(args: argparse.Namespace, config: GeneratorConfig) -> int:
    output_dir = args.output_dir or Path(config.output_dir)
    if not output_dir.exists():
        print(f"No studies directory found at: {output_dir}")
        print("Use 'dicomsynth create' to generate some studies first.")
        return 0
    studies = list_studies(output_dir)
    if not studies:
        print("No studies found.")
        return 0
    print(render(studies, args.format, args.details))
    return 0


def cmd_export(args: argparse.Namespace, config: GeneratorConfig) -> int:
    input_dir = args.input_dir or Path(config.output_dir)
    study_dir = input_dir / args.study_id
    if not study_dir.is_dir():
        print(f"Error: Study not found: {study_dir}", file=sys.stderr)
        return 1
    paths = export_study(study_dir, args.format, args.output_dir, args.output_file)
    print(f"Exported {len(paths)} file(s):")
    for path in paths:
        print(f"  {path}")
    return 0


def cmd_templates(args: argparse.Namespace, config: GeneratorConfig) -> int:
    if args.add:
        if not args.config:
            print("Error: --config is required to add a template", file=sys.stderr)
            return 1
        template = StudyTemplate(
            modality=args.modality,
            series_count=args.series_count,
            image_count=args.image_count,
            anatomical_region=args.anatomical_region,
            study_description=args.study_description or f"{args.modality} {args.anatomical_region}",
        )
        GenerationParams(
            series_count=template.series_count, image_count=template.image_count
        ).validate()
        if template.modality.upper() not in supported_modalities():
            print(f"Error: Unsupported modality: {template.modality}", file=sys.stderr)
            return 1
        config.templates[args.add] = template
        save_config(config, args.config)
        print(f"Template '{args.add}' saved to {args.config}")
        return 0

    templates = config.all_templates()
    print(f"{'Name':<22} {'Modality':<8} {'Series':<6} {'Images':<6} Description")
    print("-" * 70)
    for name in config.list_templates():
        t = templates[name]
        print(f"{name:<22} {t.modality:<8} {t.series_count:<6} {t.image_count:<6} {t.study_description}")
    return 0


def cmd_init_config(args: argparse.Namespace, config: GeneratorConfig) -> int:
    if args.path.exists() and not args.force:
        print(f"Error: {args.path} already exists (use --force to overwrite)", file=sys.stderr)
        return 1
    save_config(GeneratorConfig(), args.path)
    print(f"Wrote default configuration: {args.path}")
    return 0


COMMANDS = {
    'create': cmd_create,
    'list': cmd_list,
    'export': cmd_export,
    'templates': cmd_templates,
    'init-config': cmd_init_config,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"Error: Could not load configuration: {e}", file=sys.stderr)
        return 1

    configure_logging(config, args.verbose, args.debug)

    try:
        return COMMANDS[args.command](args, config)
    except (DicomSynthError, InvalidDicomError, ValueError, KeyError, OSError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
