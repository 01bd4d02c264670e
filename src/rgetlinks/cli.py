"""
Command-line interface for rgetlinks.
"""
from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional

from rgetlinks import __version__
from rgetlinks.core import traverse
from rgetlinks.fetcher import DEFAULT_DEADLINE, DEFAULT_MAX_BYTES, DEFAULT_TIMEOUT, CrawlStats, LinkFetcher

EPILOG = """\
Example:
  rgetlinks --depth=3 http://www.perl.org > links.txt

Each discovered link is printed on its own line, indented by one space per
level of depth. Filter the output with grep and feed it to a downloader.
"""


def non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative: {value}")
    return number


def positive_int(value: str) -> int:
    number = non_negative_int(value)
    if number == 0:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rgetlinks",
        description="Recursively list the hyperlinks reachable from a web page.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("start_url", nargs="?", help="Start URL (e.g. http://www.perl.org)")
    parser.add_argument(
        "--depth", type=non_negative_int, default=2,
        help="The maximum depth of links to traverse (default: 2)",
    )
    parser.add_argument(
        "--timeout", type=float, default=DEFAULT_TIMEOUT,
        help=f"Per-request timeout in seconds (default: {DEFAULT_TIMEOUT:g})",
    )
    parser.add_argument(
        "--deadline", type=float, default=DEFAULT_DEADLINE,
        help=f"Maximum seconds spent downloading one page body (default: {DEFAULT_DEADLINE:g})",
    )
    parser.add_argument(
        "--max-bytes", type=positive_int, default=DEFAULT_MAX_BYTES,
        help=f"Stop scanning a page after this many bytes (default: {DEFAULT_MAX_BYTES})",
    )
    parser.add_argument("--user-agent", default=f"rgetlinks/{__version__}", help="User-Agent header")
    parser.add_argument(
        "--workers", type=positive_int, default=1,
        help="Number of pages fetched ahead in parallel; output order is unchanged (default: 1)",
    )
    parser.add_argument(
        "--href-only", action="store_true",
        help="Only follow href attributes instead of every <a> attribute value",
    )
    parser.add_argument("--verbose", action="store_true", help="Show fetch progress and summary on stderr")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def print_summary(stats: CrawlStats, emitted: int) -> None:
    """Print crawl summary to stderr."""
    sys.stderr.write("=" * 50 + "\n")
    sys.stderr.write("CRAWL SUMMARY\n")
    sys.stderr.write("=" * 50 + "\n\n")

    sys.stderr.write(f"Links listed:           {emitted}\n")
    sys.stderr.write(f"Pages probed:           {stats.pages_probed}\n")
    sys.stderr.write(f"Pages parsed:           {stats.pages_fetched}\n")
    sys.stderr.write(f"Non-text pages skipped: {stats.pages_skipped}\n\n")

    if stats.error_counts:
        sys.stderr.write("Errors by type:\n")
        for error_type, count in sorted(stats.error_counts.items()):
            if error_type == "connection_error":
                label = "Connection errors"
            elif error_type == "parse_error":
                label = "Unparseable pages"
            else:
                label = f"HTTP {error_type}"
            sys.stderr.write(f"  {label}: {count}\n")
    else:
        sys.stderr.write("No errors encountered.\n")

    sys.stderr.write("\n")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the rgetlinks CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.start_url:
        parser.print_help(sys.stdout)
        return 2

    fetcher = LinkFetcher(
        timeout_s=args.timeout,
        deadline_s=args.deadline,
        max_bytes=args.max_bytes,
        user_agent=args.user_agent,
        href_only=args.href_only,
        verbose=args.verbose,
    )

    try:
        records = traverse(args.start_url, args.depth, fetcher, workers=args.workers)
    except ValueError as e:
        sys.stderr.write(f"rgetlinks: {e}\n")
        return 2

    if args.verbose:
        sys.stderr.write(f"Starting from: {args.start_url.strip()}\n")
        sys.stderr.write(f"Max depth: {args.depth}\n\n")

    emitted = 0
    try:
        for record in records:
            sys.stdout.write(record.render() + "\n")
            sys.stdout.flush()
            emitted += 1
    except BrokenPipeError:
        # Downstream consumer went away; silence the flush at interpreter exit
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        records.close()
        return 0

    if args.verbose:
        print_summary(fetcher.stats, emitted)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
