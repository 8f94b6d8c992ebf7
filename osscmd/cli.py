"""Command-line interface for osscmd.

Provides argument parsing and the main entry point. The command itself is
dispatched by osscmd.commands; this module only turns argv into a
(command, args, options) tuple and renders the result.
"""

import argparse
import sys
from typing import Any, BinaryIO, Optional

from osscmd.client import OssClient
from osscmd.commands import COMMANDS, ALIASES, canonical_command, run_command
from osscmd.config import ConfigError, load_client_config
from osscmd.errors import OssError, TransferAborted, UsageError
from osscmd.log import setup_logging
from osscmd.models import MiB, ObjectEntry, TransferCounts
from osscmd.reporters import ConsoleReporter, JsonReporter, Reporter

# Commands whose result is a TransferCounts
BULK_COMMANDS = ("uploadfromdir", "copybucket", "deleteallobject")


class CompositeReporter(Reporter):
    """Reporter that delegates to multiple reporters.

    Allows using both ConsoleReporter and JsonReporter simultaneously.
    """

    def __init__(self, reporters: list[Reporter]):
        self._reporters = reporters

    def on_transfer_start(self, label: str, total: int) -> None:
        for reporter in self._reporters:
            reporter.on_transfer_start(label, total)

    def on_progress(self, label: str, finished: int, total: int) -> None:
        for reporter in self._reporters:
            reporter.on_progress(label, finished, total)

    def on_transfer_complete(self, label: str, counts: TransferCounts) -> None:
        for reporter in self._reporters:
            reporter.on_transfer_complete(label, counts)

    def on_entry(self, entry: ObjectEntry) -> None:
        for reporter in self._reporters:
            reporter.on_entry(entry)

    def on_command_complete(self, command: str, result: Any) -> None:
        for reporter in self._reporters:
            reporter.on_command_complete(command, result)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    commands = sorted(set(COMMANDS) | set(ALIASES))
    parser = argparse.ArgumentParser(
        prog="osscmd",
        description="Command-line client for OSS object storage",
    )

    parser.add_argument(
        "command",
        metavar="COMMAND",
        help=f"One of: {', '.join(commands)}",
    )
    parser.add_argument("args", nargs="*", help="Command arguments (local paths, oss://bucket/object)")

    parser.add_argument("--host", help="OSS endpoint host (default: oss-cn-hangzhou.aliyuncs.com)")
    parser.add_argument("--id", help="Access key id")
    parser.add_argument("--key", help="Access key secret")
    parser.add_argument(
        "-c", "--config",
        default="osscmd.json",
        help="Path to configuration file (default: osscmd.json)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress progress bars and listing lines",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "-j", "--json-output",
        metavar="PATH",
        help="Write JSON results to file",
    )

    parser.add_argument("--headers", help='Extra headers, e.g. "disposition:a.txt,x-oss-meta-k:v"')
    parser.add_argument("--force", action="store_true", help="Required by deleteallobject")
    parser.add_argument("--replace", action="store_true", help="Upload/copy even if the target looks up to date")
    parser.add_argument("--suffix", help="Comma-separated file suffixes for uploadfromdir")
    parser.add_argument("--marker", help="Start listing after this key")
    parser.add_argument("--delimiter", help="Group keys sharing a prefix up to this delimiter")
    parser.add_argument("--maxkeys", type=int, help="Maximum number of objects to list")
    parser.add_argument("--partsize", type=int, metavar="MB", help="Part size in MB (default: 10)")
    parser.add_argument("--thread_num", type=int, help="Number of concurrent workers (default: 10)")
    parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Count failed items and keep going instead of aborting",
    )

    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> dict[str, str]:
    """Option map for run_command from parsed arguments.

    --partsize is given in MB on the command line; the option map carries
    it in bytes.
    """
    options: dict[str, str] = {}
    if args.headers:
        options["headers"] = args.headers
    if args.force:
        options["force"] = "true"
    if args.replace:
        options["replace"] = "true"
    if args.continue_on_error:
        options["policy"] = "continue"
    for name in ("suffix", "marker", "delimiter"):
        value = getattr(args, name)
        if value:
            options[name] = value
    if args.maxkeys is not None:
        options["maxkeys"] = str(args.maxkeys)
    if args.partsize is not None:
        options["partsize"] = str(args.partsize * MiB)
    if args.thread_num is not None:
        options["thread_num"] = str(args.thread_num)
    return options


def create_reporters(args: argparse.Namespace) -> list[Reporter]:
    """Create reporters based on command-line arguments."""
    reporters: list[Reporter] = [ConsoleReporter(quiet=args.quiet)]
    if args.json_output:
        reporters.append(JsonReporter(output_path=args.json_output))
    return reporters


def write_chunks(chunks, out: BinaryIO) -> int:
    """Copy byte chunks to a binary stream; returns the byte count."""
    written = 0
    for chunk in chunks:
        out.write(chunk)
        written += len(chunk)
    out.flush()
    return written


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code: 0 for success, 1 for failed transfers, 2 for
        configuration or usage errors
    """
    args = parse_args(argv)
    setup_logging(args.verbose)

    # Load configuration
    try:
        config = load_client_config(args.host, args.id, args.key, args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    reporters = create_reporters(args)
    reporter = reporters[0] if len(reporters) == 1 else CompositeReporter(reporters)
    command = canonical_command(args.command)

    try:
        with OssClient(config) as client:
            result = run_command(client, command, args.args, build_options(args), reporter)
            if command == "cat":
                write_chunks(result, sys.stdout.buffer)
                return 0
            reporter.on_command_complete(command, result)
    except UsageError as e:
        print(f"Usage error: {e}", file=sys.stderr)
        return 2
    except TransferAborted as e:
        if e.counts is not None and command in BULK_COMMANDS:
            reporter.on_command_complete(command, e.counts)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OssError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # Bulk commands report failures through their counts
    if isinstance(result, TransferCounts) and result.fail:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
