"""
Command-line interface for waitless.

Opens a page in Owl Browser, waits for it to settle and prints the
stability report as JSON. Exit status is 0 when the page became stable
and 1 when the wait timed out.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

import structlog
from dotenv import load_dotenv
from pydantic import ValidationError

from waitless.config import StabilityConfig
from waitless.errors import WaitlessError
from waitless.oracle import WaitResult
from waitless.session import StabilitySession


def configure_logging(verbose: bool = False, debug: bool = False) -> None:
    """Configure structlog for CLI output."""
    log_level = "DEBUG" if debug else "INFO" if verbose else "WARNING"

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="waitless",
        description="waitless - wait for a page to become stable and report what it was doing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  waitless https://example.com
  waitless https://example.com --max-wait 5000 --ignore-url "*/analytics*"
  waitless https://example.com --ignore-animation ".spinner" -o report.json

Settings not given on the command line are read from WAITLESS_* environment
variables (a .env file is loaded if present).
""",
    )

    parser.add_argument("url", help="Page to open")
    parser.add_argument(
        "--max-wait",
        type=float,
        dest="max_wait_time",
        help="Hard deadline in milliseconds",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        dest="poll_interval",
        help="Delay between checks in milliseconds",
    )
    parser.add_argument(
        "--mutation-settle",
        type=float,
        dest="mutation_settle_time",
        help="Quiet period after the last DOM mutation in milliseconds",
    )
    parser.add_argument(
        "--network-idle",
        type=float,
        dest="network_idle_time",
        help="Quiet period after the last request in milliseconds",
    )
    parser.add_argument(
        "--animation-settle",
        type=float,
        dest="animation_settle_time",
        help="Quiet period after the last animation in milliseconds",
    )
    parser.add_argument(
        "--ignore-url",
        action="append",
        dest="ignore_urls",
        metavar="PATTERN",
        help="URL pattern to exclude from network tracking (repeatable)",
    )
    parser.add_argument(
        "--ignore-animation",
        action="append",
        dest="ignore_animation_selectors",
        metavar="SELECTOR",
        help="Selector whose animations are not tracked (repeatable)",
    )
    parser.add_argument(
        "-o", "--output",
        default=None,
        help="Write the JSON report to this file instead of stdout",
    )
    parser.add_argument(
        "--owl-endpoint",
        default="",
        help="Owl Browser endpoint (default: from OWL_ENDPOINT env var)",
    )
    parser.add_argument(
        "--owl-token",
        default="",
        help="Owl Browser auth token (default: from OWL_TOKEN env var)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--debug", action="store_true", help="Debug output")

    return parser


def build_config(args: argparse.Namespace) -> StabilityConfig:
    """Merge command-line options over ``WAITLESS_*`` environment settings."""
    overrides: dict[str, Any] = {}
    for name in (
        "max_wait_time",
        "poll_interval",
        "mutation_settle_time",
        "network_idle_time",
        "animation_settle_time",
        "ignore_urls",
        "ignore_animation_selectors",
    ):
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value
    return StabilityConfig.from_env(**overrides)


async def run_check(
    url: str,
    config: StabilityConfig,
    endpoint: str,
    token: str,
) -> WaitResult:
    """Open ``url`` in a fresh context and wait for it to settle."""
    from owl_browser import OwlBrowser, RemoteConfig

    logger = structlog.get_logger("waitless.cli")

    async with OwlBrowser(RemoteConfig(url=endpoint, token=token)) as browser:
        ctx = await browser.create_context()
        context_id = ctx["context_id"]
        try:
            await browser.navigate(context_id=context_id, url=url)
            async with StabilitySession(browser, context_id, config) as session:
                return await session.wait_until_stable()
        finally:
            try:
                await browser.close_context(context_id=context_id)
            except Exception as e:
                logger.debug("Failed to close context", context_id=context_id, error=str(e))


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose, debug=args.debug)
    logger = structlog.get_logger("waitless.cli")

    try:
        config = build_config(args)
    except ValidationError as e:
        logger.error("Invalid configuration", error=str(e))
        return 2

    endpoint = args.owl_endpoint or os.environ.get("OWL_ENDPOINT", "")
    token = args.owl_token or os.environ.get("OWL_TOKEN", "")
    if not endpoint or not token:
        logger.error("OWL_ENDPOINT and OWL_TOKEN must be set (via env or --owl-endpoint/--owl-token)")
        return 2

    try:
        result = asyncio.run(run_check(args.url, config, endpoint, token))
    except WaitlessError as e:
        logger.error("Stability check failed", error=str(e))
        return 2

    payload = json.dumps(
        {"state": str(result.state), "polls": result.polls, "report": result.report.to_dict()},
        indent=2,
    )
    if args.output:
        Path(args.output).write_text(payload + "\n", encoding="utf-8")
        logger.info("Report written", path=args.output)
    else:
        print(payload)

    if result.timed_out:
        print(result.report.format(), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
