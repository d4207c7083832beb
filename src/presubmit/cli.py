"""presubmit CLI.

Two entrypoints share one parser:

    presubmit local        # developer machine, includes the leak guard
    presubmit automated    # CI runner (alias: ci)

The zero-argument console scripts `presubmit-local` and `presubmit-ci` run
the same thing without a subcommand. The process exits with the pipeline's
status.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from presubmit import __version__
from presubmit.config import load_config
from presubmit.errors import ConfigurationError
from presubmit.logging import configure_logging
from presubmit.models.run import Entrypoint
from presubmit.pipeline import Pipeline
from presubmit.tracing import configure_tracing

ENTRYPOINT_COMMANDS = {
    "local": Entrypoint.LOCAL,
    "automated": Entrypoint.AUTOMATED,
    "ci": Entrypoint.AUTOMATED,
}


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--root",
        default=None,
        help="Repository root (default: current directory)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML config file (default: presubmit.yaml in the root)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug events",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines instead of console output",
    )


def execute(
    entrypoint: Entrypoint,
    root: str | None = None,
    config_path: str | None = None,
    verbose: bool = False,
    json_logs: bool = False,
) -> int:
    """Configure logging and tracing, run one entrypoint, return its status."""
    configure_logging(json_format=json_logs, level=logging.DEBUG if verbose else logging.INFO)
    configure_tracing(service_version=__version__, environment=str(entrypoint))

    try:
        config = load_config(root=root, config_path=config_path)
        pipeline = Pipeline.for_entrypoint(entrypoint, config)
    except ConfigurationError as e:
        print(f"presubmit: {e.message}", file=sys.stderr)
        return 1

    result = pipeline.run()
    failed = result.failed_stage
    if failed is not None and failed.result is not None:
        print(f"presubmit: {failed.name}: {failed.result.error}", file=sys.stderr)
    return result.exit_code


def main(argv: Sequence[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="presubmit",
        description="presubmit - build, system-test and vet a project before it is submitted",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for command, help_text in (
        ("local", "Run the local gate (includes the privacy leak guard)"),
        ("automated", "Run the CI gate"),
        ("ci", "Alias for 'automated'"),
    ):
        add_common_arguments(subparsers.add_parser(command, help=help_text))

    args = parser.parse_args(argv)

    if args.command not in ENTRYPOINT_COMMANDS:
        parser.print_help()
        sys.exit(1)

    sys.exit(
        execute(
            ENTRYPOINT_COMMANDS[args.command],
            root=args.root,
            config_path=args.config,
            verbose=args.verbose,
            json_logs=args.json_logs,
        )
    )


def _single_entrypoint(entrypoint: Entrypoint, prog: str, argv: Sequence[str] | None) -> None:
    parser = argparse.ArgumentParser(prog=prog, description=f"Run the {entrypoint} presubmit gate")
    add_common_arguments(parser)
    args = parser.parse_args(argv)
    sys.exit(
        execute(
            entrypoint,
            root=args.root,
            config_path=args.config,
            verbose=args.verbose,
            json_logs=args.json_logs,
        )
    )


def main_local(argv: Sequence[str] | None = None) -> None:
    """Console script: presubmit-local."""
    _single_entrypoint(Entrypoint.LOCAL, "presubmit-local", argv)


def main_automated(argv: Sequence[str] | None = None) -> None:
    """Console script: presubmit-ci."""
    _single_entrypoint(Entrypoint.AUTOMATED, "presubmit-ci", argv)


if __name__ == "__main__":
    main()
