"""Command-line entry point."""

import argparse
import logging
import sys
from pathlib import Path

from checkdocs.checker import run_checks
from checkdocs.config import build_config, parse_severity
from checkdocs.errors import CheckDocsError
from checkdocs.report import REPORT_FORMATS, exit_code, render
from checkdocs.slugs import SLUG_STYLES

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_INVOCATION = 2


def main(argv: list[str] | None = None) -> int:
    """Run checkdocs.

    Args:
        argv: Arguments (defaults to ``sys.argv[1:]``).

    Returns:
        0 when no finding reaches the failure threshold, 1 when one does,
        2 for invocation or load errors.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose, args.quiet)

    try:
        config = build_config(
            Path(args.root),
            config_file=Path(args.config) if args.config else None,
            index=tuple(args.index) if args.index else None,
            ignore=_split_globs(args.ignore),
            output_format=args.format,
            fail_on=parse_severity(args.fail_on) if args.fail_on else None,
            include_rst=True if args.include_rst else None,
            slug_style=args.slug_style,
            jobs=args.jobs,
            show_stats=True if args.stats else None,
        )
        report = run_checks(config)
    except CheckDocsError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_INVOCATION

    rendered = render(report, config.output_format, show_stats=config.show_stats)
    if args.output:
        try:
            Path(args.output).write_text(rendered, encoding="utf-8")
        except OSError as exc:
            print(f"ERROR: Failed to write report to {args.output}: {exc}", file=sys.stderr)
            return EXIT_INVOCATION
        logger.info("Report written to %s", args.output)
    else:
        sys.stdout.write(rendered)

    return EXIT_FINDINGS if exit_code(report, config.fail_on) else EXIT_OK


def _split_globs(raw: list[str] | None) -> tuple[str, ...] | None:
    """Flatten repeated, comma-separated ``--ignore`` values (None when not given)."""
    if not raw:
        return None
    return tuple(part.strip() for value in raw for part in value.split(",") if part.strip())


def _configure_logging(verbose: int, quiet: bool) -> None:
    """Send log records to stderr so stdout carries only the report.

    Args:
        verbose: Number of ``-v`` flags.
        quiet: Whether ``-q`` was given.
    """
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="checkdocs",
        description="Check a Markdown documentation vault for broken links, TOC drift and stale statistics.",
    )
    parser.add_argument("root", help="Path to the vault root directory.")
    parser.add_argument(
        "--index",
        action="append",
        help="Index document to reconcile against, relative to the root (default: README.md). Repeatable.",
    )
    parser.add_argument(
        "--ignore",
        action="append",
        help="Comma-separated glob patterns to skip (default: node_modules,.git). Repeatable.",
    )
    parser.add_argument("--format", choices=REPORT_FORMATS, help="Report format (default: text).")
    parser.add_argument(
        "--fail-on",
        choices=("error", "warning", "info"),
        help="Minimum severity that causes a non-zero exit (default: error).",
    )
    parser.add_argument("--config", help="JSON config file (default: .checkdocs.json in the root, if present).")
    parser.add_argument("--include-rst", action="store_true", help="Also load reStructuredText files.")
    parser.add_argument("--slug-style", choices=SLUG_STYLES, help="Heading anchor algorithm (default: github).")
    parser.add_argument("--jobs", type=int, help="Worker threads for loading and analysis (default: 1).")
    parser.add_argument("--stats", action="store_true", help="Append per-section statistics to text output.")
    parser.add_argument("--output", help="Write the report to this file instead of stdout.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Log progress (-vv for debug).")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log errors.")
    return parser
