"""
ergo command line interface.

    ergo <command-or-intent> [args...]
    ergo --nope [FEEDBACK] [--target NAME]
    ergo --list-cache | --cache-stats | --clear-cache | --remove-command NAME | --config
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional, Sequence

from pydantic import ValidationError

from ergo_ai import __version__
from ergo_ai.command_core.errors import (
    ErgoError,
    GenerationError,
    InvalidResponse,
    NoRecordToCorrect,
    PermissionDenied,
    SandboxFault,
    Unavailable,
)
from ergo_ai.command_core.runtime.approval import ConsoleApprovalPrompt, PreAuthorizedPrompt
from ergo_ai.command_core.service import CommandService, build_service, describe_config
from ergo_ai.core.config import Settings, load_settings
from ergo_ai.core.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_USAGE = 64
EXIT_UNAVAILABLE = 69
EXIT_SOFTWARE = 70
EXIT_NOPERM = 77
EXIT_CONFIG = 78
EXIT_INTERRUPTED = 130

MAX_DETAIL_CHARS = 500


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ergo",
        description="Run any command. Missing ones are generated, approved and run in a Deno sandbox.",
    )
    parser.add_argument(
        "--nope",
        nargs="?",
        const="",
        default=None,
        metavar="FEEDBACK",
        help="Correct the last generated command (optionally saying what was wrong) and re-run it",
    )
    parser.add_argument("--target", metavar="NAME", help="Command to correct with --nope instead of the last one")
    parser.add_argument("-y", "--yes", action="store_true", help="Approve permission requests without asking")
    parser.add_argument("-v", "--verbose", action="store_true", help="Announce generation and execution steps")
    parser.add_argument("--list-cache", action="store_true", help="List cached commands for the current mode")
    parser.add_argument("--remove-command", metavar="NAME", help="Remove a cached command")
    parser.add_argument("--clear-cache", action="store_true", help="Remove every cached command for the current mode")
    parser.add_argument("--cache-stats", action="store_true", help="Show cache statistics")
    parser.add_argument("--config", action="store_true", help="Show the effective configuration")
    parser.add_argument("--version", action="version", version=f"ergo {__version__}")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command name or free-text request, then its arguments")
    return parser


# ----------------------------------------------------------------------
# Management commands
# ----------------------------------------------------------------------


def cmd_list_cache(service: CommandService) -> int:
    records = service.list_records()
    if not records:
        print(f"No cached commands ({service.mode.value} mode).")
        return EXIT_OK
    print(f"Cached commands ({service.mode.value} mode):")
    for record in records:
        status = "approved" if record.is_approved else "pending"
        perms = ", ".join(g.to_flag() for g in record.permissions) or "none"
        print(f"  {record.name}  r{record.revision}  {status}  used {record.usage_count}x  [{perms}]")
        if record.description:
            print(f"      {record.description}")
    return EXIT_OK


def cmd_remove(service: CommandService, name: str) -> int:
    if service.remove(name):
        print(f"Removed '{name}' from the {service.mode.value} cache.")
        return EXIT_OK
    print(f"ergo: no cached command named '{name}'", file=sys.stderr)
    return EXIT_USAGE


def cmd_clear(service: CommandService) -> int:
    count = service.clear()
    print(f"Cleared {count} cached command(s) from the {service.mode.value} cache.")
    return EXIT_OK


def cmd_stats(service: CommandService) -> int:
    stats = service.stats()
    print(f"Cache statistics ({stats['mode']} mode):")
    print(f"  path:           {stats['path']}")
    print(f"  commands:       {stats['total_commands']}")
    print(f"  approved:       {stats['approved']}")
    print(f"  total usage:    {stats['total_usage']}")
    print(f"  average usage:  {stats['average_usage']:.1f}")
    return EXIT_OK


def cmd_config(settings: Settings) -> int:
    print("ergo configuration:")
    for key, value in describe_config(settings).items():
        if isinstance(value, list):
            value = ", ".join(value)
        print(f"  {key}: {value}")
    return EXIT_OK


# ----------------------------------------------------------------------
# Error reporting
# ----------------------------------------------------------------------


def _clip(text: str) -> str:
    text = text.strip()
    return text if len(text) <= MAX_DETAIL_CHARS else text[:MAX_DETAIL_CHARS] + "..."


def report_error(exc: ErgoError, verbose: bool = False) -> int:
    """Print a diagnostic for ``exc`` and return the matching exit code."""
    print(f"ergo: {exc}", file=sys.stderr)
    if isinstance(exc, Unavailable) and exc.details and verbose:
        print(f"  response: {_clip(str(exc.details))}", file=sys.stderr)
    if isinstance(exc, InvalidResponse) and exc.raw and verbose:
        print(f"  raw reply: {_clip(exc.raw)}", file=sys.stderr)

    if isinstance(exc, GenerationError):
        return EXIT_UNAVAILABLE
    if isinstance(exc, PermissionDenied):
        return EXIT_NOPERM
    if isinstance(exc, SandboxFault):
        if exc.stderr and verbose:
            print(f"  stderr: {_clip(exc.stderr)}", file=sys.stderr)
        return EXIT_SOFTWARE
    if isinstance(exc, NoRecordToCorrect):
        return EXIT_USAGE
    return EXIT_SOFTWARE


# ----------------------------------------------------------------------
# Entry point
# ----------------------------------------------------------------------


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    command: List[str] = list(args.command)

    try:
        settings = load_settings()
    except ValidationError as e:
        print(f"ergo: invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIG

    setup_logging(
        log_level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        enable_file=settings.enable_file_logging,
        log_dir=settings.log_dir,
    )

    if args.config:
        return cmd_config(settings)

    prompt = PreAuthorizedPrompt() if args.yes else ConsoleApprovalPrompt()
    service = build_service(settings, prompt=prompt, verbose=args.verbose)

    try:
        if args.list_cache:
            return cmd_list_cache(service)
        if args.remove_command:
            return cmd_remove(service, args.remove_command)
        if args.clear_cache:
            return cmd_clear(service)
        if args.cache_stats:
            return cmd_stats(service)
        if args.nope is not None:
            if command:
                parser.error("--nope takes feedback as a single quoted argument")
            return service.correct(feedback=args.nope or None, target=args.target)
        if not command:
            parser.print_help(sys.stderr)
            return EXIT_USAGE
        return service.run(command)
    except ErgoError as e:
        logger.debug(f"{type(e).__name__}: {e}")
        return report_error(e, verbose=args.verbose)
    except ValueError as e:
        print(f"ergo: {e}", file=sys.stderr)
        return EXIT_USAGE
    except KeyboardInterrupt:
        print("", file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
