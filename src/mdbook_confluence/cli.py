"""mdbook alternative backend that publishes the book to Confluence.

mdbook runs ``mdbook-confluence`` for an ``[output.confluence]`` table in
book.toml and pipes the RenderContext JSON to its stdin.  The command can
also be run by hand against a saved context with ``--context``.

Output streams: logs and the human-readable report go to stderr; stdout
carries only the JSON report when ``--json-report`` is given.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import IO, Any

from dotenv import load_dotenv

from . import __version__
from .book import RenderContext, load_render_context
from .config import Config, load_config
from .config_loader import load_hierarchical_config
from .config_schema import build_config, merge_options
from .errors import ConfluenceSyncError
from .lifespan import confluence_session
from .logger import setup_logging
from .sync.engine import SyncEngine
from .sync.models import SyncReport
from .sync.reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)
from .version import check_mdbook_version

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mdbook-confluence",
        description="Publish an mdbook as a tree of Confluence pages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Normally invoked by mdbook; configure it in book.toml:
  #   [output.confluence]
  #   enabled = true
  #   url = "https://confluence.example.com"
  #   username = "docs-bot"
  #   root_page = 123456
  CONFLUENCE_PASSWORD=... mdbook build

  # Preview what a build would change, from a saved RenderContext
  mdbook-confluence --context context.json --dry-run

  # Machine-readable report on stdout
  mdbook-confluence --context context.json --json-report

The password is read from CONFLUENCE_PASSWORD (or .env), or prompted for
on the terminal. It is never accepted on the command line.
        """,
    )
    parser.add_argument(
        "--context",
        type=Path,
        help="Read the RenderContext from this file instead of stdin",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute and print the plan without changing Confluence",
    )
    parser.add_argument(
        "--url",
        help="Override the Confluence URL (takes precedence over CONFLUENCE_URL and book.toml)",
    )
    parser.add_argument(
        "--username",
        help="Override the Confluence username (takes precedence over CONFLUENCE_USERNAME and book.toml)",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification (use only for development)",
    )
    parser.add_argument(
        "--no-prompt",
        action="store_true",
        help="Fail instead of prompting when no password is configured",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        help="Also append log records to this file",
    )
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        default="text",
        help="Log record format (default: text)",
    )
    parser.add_argument(
        "--json-report",
        action="store_true",
        help="Print the sync report as JSON on stdout",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"mdbook-confluence version {__version__}",
    )
    return parser


def _read_context(path: Path | None, stdin: IO[str]) -> RenderContext:
    if path is None:
        return load_render_context(stdin)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return load_render_context(fh)
    except OSError as e:
        raise ConfluenceSyncError(f"Cannot read {path}: {e}") from e


async def _sync(config: Config, context: RenderContext, dry_run: bool) -> SyncReport:
    async with confluence_session(config) as session:
        engine = SyncEngine(session["client"], config, runner=session["runner"])
        return await engine.run_async(context.book, dry_run=dry_run)


def _emit_report(report: SyncReport, as_json: bool) -> None:
    text = (
        format_dry_run_preview(report)
        if report.dry_run
        else format_sync_report(report)
    )
    print(text, file=sys.stderr)
    if as_json:
        print(json.dumps(report_to_json(report), indent=2))


def main(argv: list[str] | None = None, stdin: IO[str] | None = None) -> int:
    """Run one render; return the process exit code."""
    args = build_parser().parse_args(argv)
    load_dotenv()

    log_settings: dict[str, Any] = {}
    try:
        context = _read_context(args.context, stdin or sys.stdin)
        unified = build_config(load_hierarchical_config(context.root))
        log_settings = {
            "level": unified.logging.level,
            "log_file": args.log_file or unified.logging.file,
        }
    except (ConfluenceSyncError, ValueError) as e:
        setup_logging(debug=args.debug, log_file=args.log_file, log_format=args.log_format)
        logger.error("%s", e)
        return EXIT_FAILED

    setup_logging(debug=args.debug, log_format=args.log_format, **log_settings)

    try:
        options = merge_options(unified.confluence, context.confluence_section)
    except ValueError as e:
        logger.error("Invalid [output.confluence] settings: %s", e)
        return EXIT_FAILED

    if not options.enabled:
        logger.info("Confluence renderer is disabled")
        return EXIT_OK

    compatible, message = check_mdbook_version(context.version)
    if not compatible:
        logger.warning("Warning: %s", message)
    else:
        logger.debug(message)

    try:
        config = load_config(
            options,
            url=args.url,
            username=args.username,
            insecure=args.insecure,
            debug=args.debug,
            prompt=not args.no_prompt,
        )
        report = asyncio.run(_sync(config, context, args.dry_run))
    except ConfluenceSyncError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return EXIT_FAILED

    _emit_report(report, args.json_report)
    return EXIT_OK if report.ok else EXIT_FAILED


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)


if __name__ == "__main__":
    run()
