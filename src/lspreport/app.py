"""lspreport - Collect memory diagnostics from running Dart language servers."""

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from lspreport.collector import SnapshotCollector
from lspreport.config import COMPANION_FILTER, REPORT_FILENAME, TARGET_FILTER, CollectorConfig
from lspreport.errors import ExternalToolError
from lspreport.ports import list_listening_ports
from lspreport.processes import find_processes, format_processes, send_quit_signal
from lspreport.report import write_report
from lspreport.resolver import EndpointResolver

logger = logging.getLogger("lspreport")


def parse_args(argv: Sequence[str] | None = None) -> tuple[CollectorConfig, bool]:
    """Parse command-line arguments into a config and the verbose flag."""
    parser = argparse.ArgumentParser(
        prog="lspreport",
        description="Write a memory report of all running Dart language servers.",
    )
    parser.add_argument("-o", "--output", type=Path, default=Path(REPORT_FILENAME), help="report file path")
    parser.add_argument("--attempts", type=int, default=3, help="endpoint resolution attempts")
    parser.add_argument("--retry-delay", type=float, default=5.0, help="seconds between attempts")
    parser.add_argument("--timeout", type=float, default=30.0, help="seconds per VM service request")
    parser.add_argument("--min-bytes", type=int, default=1024, help="smallest allocation entry to report")
    parser.add_argument("--target-filter", default=TARGET_FILTER, help="command substring of target processes")
    parser.add_argument(
        "--companion-filter", default=COMPANION_FILTER, help="command substring of development-service processes"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug details")
    args = parser.parse_args(argv)
    try:
        config = CollectorConfig(
            target_filter=args.target_filter,
            companion_filter=args.companion_filter,
            max_attempts=args.attempts,
            retry_delay=args.retry_delay,
            request_timeout=args.timeout if args.timeout > 0 else None,
            min_bytes=args.min_bytes,
            output=args.output,
        )
    except ValueError as exc:
        parser.error(str(exc))
    return config, args.verbose


def configure_logging(verbose: bool = False) -> None:
    """Send progress lines to stdout."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False


def run(config: CollectorConfig) -> Path | None:
    """
    Run one collection pass.

    Returns the report path, or None when no language server is running.

    Raises:
        ExternalToolError: If process or port listing fails.
    """
    logger.info("Finding Dart LSP processes")
    targets = find_processes(config.target_filter)
    if not targets:
        logger.info("No LSP processes found")
        return None
    logger.info(format_processes(targets))
    logger.info("")

    resolver = EndpointResolver(
        targets,
        list_ports=list_listening_ports,
        list_companions=lambda: find_processes(config.companion_filter),
        remediate=send_quit_signal,
        max_attempts=config.max_attempts,
        retry_delay=config.retry_delay,
    )
    endpoints = resolver.resolve()

    collector = SnapshotCollector(min_bytes=config.min_bytes, timeout=config.request_timeout)
    snapshots = collector.collect_all(endpoints)
    path = write_report(snapshots, config.output)
    logger.info("SUCCESS: written %s", path)
    return path


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for lspreport."""
    config, verbose = parse_args(argv)
    configure_logging(verbose)
    try:
        run(config)
    except ExternalToolError as exc:
        print(exc.details(), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
