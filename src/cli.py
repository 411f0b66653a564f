#!/usr/bin/env python3
"""CLI entry point for stage-driver.

Usage:
    stage-driver list
    stage-driver apply -P <platform> -d <dir> [--var-file F ...] [--dry-run] [--json-output]
    stage-driver destroy-bootstrap -P <platform> -d <dir> [--dry-run] [--json-output]
    stage-driver destroy -P <platform> -d <dir> [--dry-run] [--json-output]
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from common import cause_chain
from config import ConfigError, load_installer_config
from reporting import PipelineReport
from stages import get_platform_stages, list_platforms
from stages.base import StageError
from stages.sequencer import StageSequencer
from tfexec import TerraformExecutor

PRIMARY_VAR_FILE = 'terraform.tfvars.json'
PLATFORM_VAR_FILE = 'terraform.platform.auto.tfvars.json'

# Action commands
ACTIONS = {
    "list": "List platforms and their stages",
    "apply": "Apply every stage in order",
    "destroy-bootstrap": "Tear down bootstrap resources",
    "destroy": "Destroy every stage in reverse order",
}

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def print_usage():
    """Print top-level usage."""
    print("Usage: stage-driver <action> [options]")
    print()
    print("Actions:")
    for name, description in ACTIONS.items():
        print(f"  {name:<18} {description}")
    print()
    print("Run 'stage-driver <action> --help' for action-specific options.")


def _action_parser(action: str) -> argparse.ArgumentParser:
    """Build argument parser with options shared by pipeline actions."""
    parser = argparse.ArgumentParser(
        prog=f'stage-driver {action}',
        description=ACTIONS[action],
    )
    parser.add_argument(
        '--platform', '-P',
        required=True,
        choices=list_platforms(),
        help='Target platform',
    )
    parser.add_argument(
        '--dir', '-d',
        type=Path,
        required=True,
        help='Install directory (state, outputs, assets)',
    )
    parser.add_argument(
        '--terraform-dir',
        type=Path,
        help='Root of {platform}/{stage} terraform modules (default: from installer.yaml)',
    )
    parser.add_argument(
        '--var-file',
        type=Path,
        action='append',
        dest='var_files',
        help='Variable file, repeatable; the first is rewritten by stage hooks '
             f'(default: {PRIMARY_VAR_FILE} and {PLATFORM_VAR_FILE} in --dir)',
    )
    parser.add_argument(
        '--report-dir', '-r',
        type=Path,
        help='Write JSON and markdown reports here',
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Preview stages without executing',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging',
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs to stderr)',
    )
    return parser


def _setup_logging(verbose: bool, json_output: bool) -> None:
    """Configure logging based on flags."""
    if json_output:
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
        root_logger.addHandler(stderr_handler)

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _default_var_files(directory: Path) -> list[Path]:
    """Primary var file, plus the platform var file when present."""
    var_files = [directory / PRIMARY_VAR_FILE]
    platform_vars = directory / PLATFORM_VAR_FILE
    if platform_vars.exists():
        var_files.append(platform_vars)
    return var_files


def build_sequencer(args, action: str) -> StageSequencer:
    """Create a sequencer from parsed args and installer config."""
    config = load_installer_config(args.dir)
    report_dir = args.report_dir or config.report_dir
    return StageSequencer(
        stages=get_platform_stages(args.platform),
        directory=args.dir,
        terraform_dir=args.terraform_dir or config.terraform_dir,
        var_files=args.var_files or _default_var_files(args.dir),
        executor=TerraformExecutor.from_config(config),
        report=PipelineReport(platform=args.platform, action=action, report_dir=report_dir),
    )


def list_main(argv: list) -> int:
    """Print platforms and their ordered stages."""
    parser = argparse.ArgumentParser(prog='stage-driver list', description=ACTIONS['list'])
    parser.add_argument('--json-output', action='store_true', help='Output structured JSON')
    args = parser.parse_args(argv)

    platforms = {
        platform: [
            {
                'name': stage.name,
                'providers': [p.value for p in stage.providers],
                'destroy_with_bootstrap': stage.destroy_with_bootstrap,
            }
            for stage in get_platform_stages(platform)
        ]
        for platform in list_platforms()
    }

    if args.json_output:
        print(json.dumps(platforms, indent=2))
        return 0

    for platform, stages in platforms.items():
        print(f"{platform}:")
        for i, stage in enumerate(stages, 1):
            marker = ' (bootstrap teardown)' if stage['destroy_with_bootstrap'] else ''
            print(f"  {i}. {stage['name']} [{', '.join(stage['providers'])}]{marker}")
    return 0


def run_action(action: str, argv: list) -> int:
    """Parse args for a pipeline action and run it."""
    args = _action_parser(action).parse_args(argv)
    _setup_logging(args.verbose, args.json_output)

    try:
        sequencer = build_sequencer(args, action)
    except (ConfigError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.dry_run:
        sequencer.preview(action)
        return 0

    try:
        if action == 'apply':
            sequencer.provision()
        elif action == 'destroy-bootstrap':
            sequencer.destroy_bootstrap()
        else:
            sequencer.destroy()
        success = True
    except StageError as e:
        logger.error(f"{action} failed: {e}")
        for cause in cause_chain(e):
            logger.error(f"  caused by: {cause}")
        success = False

    if args.json_output:
        print(json.dumps(sequencer.report.to_dict(), indent=2))

    return 0 if success else 1


def main(argv=None) -> int:
    """CLI entry point: dispatch to action handlers."""
    argv = sys.argv[1:] if argv is None else argv

    if not argv or argv[0] in ('-h', '--help'):
        print_usage()
        return 0

    action, rest = argv[0], argv[1:]
    if action == 'list':
        return list_main(rest)
    if action in ACTIONS:
        return run_action(action, rest)

    print(f"Error: Unknown command '{action}'")
    print_usage()
    return 1


if __name__ == '__main__':
    sys.exit(main())
