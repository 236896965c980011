#!/usr/bin/env python3
"""
Contour Tile Batch CLI

Generates contour tiles for every tile at the output minimum zoom level by
running the external contour worker once per tile, up to ``max_workers`` at
a time.

Usage:
    contour-tiles --sFile terrain.pmtiles --oDir ./output \
        --sEncoding terrarium --oMinZoom 5 --oMaxZoom 11 -v

Usage errors, validation errors and -h/--help print the usage text to stderr
and exit with status 1.
"""

import argparse
import sys
from typing import List, NoReturn, Optional

import structlog

from .errors import ConfigValidationError
from .orchestrator import ExitStatus, Orchestrator
from .utils.config import Configuration, SourceEncoding, load_runtime_settings
from .utils.logging_config import configure_logging


INCREMENT_DEFAULT = 10
SOURCE_MAX_ZOOM_DEFAULT = 8
SOURCE_ENCODING_DEFAULT = SourceEncoding.MAPBOX.value
OUTPUT_MAX_ZOOM_DEFAULT = 11
OUTPUT_MIN_ZOOM_DEFAULT = 5


class UsageExit(Exception):
    """Raised by the parser instead of exiting, carrying the message to print."""

    def __init__(self, message: Optional[str] = None):
        self.message = message
        super().__init__(message or "")


class ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors with exit status 1."""

    def error(self, message: str) -> NoReturn:
        raise UsageExit(message)


def build_parser(prog: Optional[str] = None) -> ArgumentParser:
    parser = ArgumentParser(
        prog=prog,
        usage="%(prog)s --sFile <path> --oDir <path> [options]",
        add_help=False,
        allow_abbrev=False
    )

    options = parser.add_argument_group("Options")
    options.add_argument(
        "--increment", type=int, default=INCREMENT_DEFAULT, metavar="<value>",
        help=f"Increment value (default: {INCREMENT_DEFAULT})"
    )
    options.add_argument(
        "--sMaxZoom", dest="source_max_zoom", type=int,
        default=SOURCE_MAX_ZOOM_DEFAULT, metavar="<value>",
        help=f"Source Max Zoom (default: {SOURCE_MAX_ZOOM_DEFAULT})"
    )
    options.add_argument(
        "--sEncoding", dest="source_encoding", default=SOURCE_ENCODING_DEFAULT,
        metavar="<encoding>",
        help=f"Source Encoding (default: {SOURCE_ENCODING_DEFAULT}) (must be 'mapbox' or 'terrarium')"
    )
    options.add_argument(
        "--sFile", dest="source_path", metavar="<path>",
        help="TerrainRGB or Terrarium PMTiles File Path or URL (REQUIRED)"
    )
    options.add_argument(
        "--oDir", dest="output_dir", metavar="<path>",
        help="Output Directory (REQUIRED)"
    )
    options.add_argument(
        "--oMaxZoom", dest="output_max_zoom", type=int,
        default=OUTPUT_MAX_ZOOM_DEFAULT, metavar="<value>",
        help=f"Output Max Zoom (default: {OUTPUT_MAX_ZOOM_DEFAULT})"
    )
    options.add_argument(
        "--oMinZoom", dest="output_min_zoom", type=int,
        default=OUTPUT_MIN_ZOOM_DEFAULT, metavar="<value>",
        help=f"Output Min Zoom (default: {OUTPUT_MIN_ZOOM_DEFAULT})"
    )
    options.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable verbose output"
    )
    options.add_argument(
        "-h", "--help", action="store_true",
        help="Show this usage statement"
    )
    return parser


def _usage_failure(parser: ArgumentParser, message: Optional[str] = None) -> int:
    if message:
        print(f"Error: {message}", file=sys.stderr)
    parser.print_help(sys.stderr)
    return ExitStatus.FAILURE


def main(argv: Optional[List[str]] = None, orchestrator: Optional[Orchestrator] = None) -> int:
    """
    Parse arguments and run a batch.

    Args:
        argv: Command-line arguments, sys.argv[1:] by default
        orchestrator: Orchestrator to run; one is built from the runtime
            settings when omitted

    Returns:
        Process exit status
    """
    parser = build_parser()

    try:
        args = parser.parse_args(argv)
    except UsageExit as e:
        return _usage_failure(parser, e.message)

    if args.help:
        return _usage_failure(parser)

    try:
        config = Configuration.create(
            source_path=args.source_path,
            output_dir=args.output_dir,
            increment=args.increment,
            source_max_zoom=args.source_max_zoom,
            source_encoding=args.source_encoding,
            output_max_zoom=args.output_max_zoom,
            output_min_zoom=args.output_min_zoom,
            verbose=args.verbose
        )
    except ConfigValidationError as e:
        return _usage_failure(parser, str(e))

    if orchestrator is None:
        try:
            settings = load_runtime_settings()
        except ConfigValidationError as e:
            print(f"Error: invalid runtime settings: {e}", file=sys.stderr)
            return ExitStatus.FAILURE
        configure_logging(verbose=config.verbose, log_format=settings.log_format)
        orchestrator = Orchestrator(settings=settings)

    structlog.get_logger(component="cli").debug("Configuration resolved", config=config.summary())
    return int(orchestrator.run(config))


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
