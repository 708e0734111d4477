# main.py

"""Entry point for the loadwatch monitor (scan, watch or browse)."""

import argparse
import asyncio
import logging
import sys

from loadwatch.config.logging_config import setup_logging
from loadwatch.config.settings import Settings
from loadwatch.models.criteria import TEXT_FILTER_FIELDS, DurationBucket

logger = logging.getLogger("loadwatch.main")


def _add_criteria_options(parser: argparse.ArgumentParser) -> None:
    """Criteria overrides shared by every subcommand."""
    group = parser.add_argument_group("criteria")
    group.add_argument("--distance-min", type=float, default=None)
    group.add_argument("--distance-max", type=float, default=None)
    group.add_argument("--price-min", type=float, default=None)
    group.add_argument("--stops-max", type=int, default=None)
    group.add_argument("--deadhead-max", type=float, default=None)
    group.add_argument(
        "--latest-departure",
        default=None,
        help="Latest pickup, e.g. '14:00' or '2024-05-01 14:00'.",
    )
    group.add_argument(
        "--duration",
        choices=[b.value for b in DurationBucket],
        default=None,
    )
    group.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Minimum price change in %% worth a notification.",
    )
    group.add_argument(
        "--show-similar",
        action="store_true",
        default=False,
        help="Keep entries sharing a lane with an earlier match.",
    )
    text = group.add_mutually_exclusive_group()
    text.add_argument(
        "--exclude", default=None, help="Drop entries containing TEXT."
    )
    text.add_argument(
        "--only", default=None, help="Keep only entries containing TEXT."
    )
    group.add_argument(
        "--text-field",
        choices=list(TEXT_FILTER_FIELDS),
        default="origin",
        help="Field the text filter applies to (default: origin).",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="loadwatch",
        description="Monitor a live load board and act on matching entries.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Also log INFO messages to the console.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser(
        "scan", help="Extract and filter one page (file or URL)."
    )
    scan.add_argument("target", help="HTML file path or URL.")
    scan.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    _add_criteria_options(scan)

    watch = sub.add_parser(
        "watch", help="Poll a URL over HTTP and alert on new matches."
    )
    watch.add_argument("url")
    watch.add_argument(
        "--interval",
        type=float,
        default=None,
        help=f"Seconds between refreshes (default: {Settings.REFRESH_INTERVAL:.0f}).",
    )
    watch.add_argument(
        "--ticks",
        type=int,
        default=None,
        help="Stop after this many refreshes.",
    )
    _add_criteria_options(watch)

    browse = sub.add_parser(
        "browse", help="Monitor a live page in a browser."
    )
    browse.add_argument("url")
    browse.add_argument(
        "-m",
        "--mode",
        choices=Settings.MODES,
        default=None,
        help="Operating mode (default: last saved mode).",
    )
    browse.add_argument(
        "--seconds",
        type=float,
        default=None,
        help="Stop after this many seconds.",
    )
    browse.add_argument(
        "--headless",
        action="store_true",
        default=None,
        help="Run the browser without a window.",
    )
    _add_criteria_options(browse)
    return parser


def _dispatch(args: argparse.Namespace) -> int:
    from loadwatch.cli.runner import (
        criteria_overrides,
        run_browse,
        run_scan,
        run_watch,
    )

    overrides = criteria_overrides(args)
    if args.command == "scan":
        return asyncio.run(
            run_scan(args.target, overrides, args.output_format)
        )
    if args.command == "watch":
        return asyncio.run(
            run_watch(args.url, overrides, args.ticks, args.interval)
        )
    return asyncio.run(
        run_browse(
            args.url, overrides, args.mode, args.seconds, args.headless
        )
    )


def main() -> None:
    """Parse arguments, set up logging and run the chosen command."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(verbose=args.verbose)
    logger.info("loadwatch starting, log file: %s", log_file)

    try:
        exit_code = _dispatch(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        exit_code = 130
    except Exception:
        logger.critical("Fatal error", exc_info=True)
        raise
    finally:
        logger.info("loadwatch shutting down")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
