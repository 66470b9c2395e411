#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""
CLI interface for pidlock.

Usage:
    pidlock run KEY [--base DIR] [--wait SECONDS] -- COMMAND [ARGS...]
    pidlock status KEY [--base DIR] [--json]
    pidlock clean KEY [--base DIR]
    python3 -m pidlock <command> [args]

`run` holds the lock for KEY while COMMAND executes. Two `pidlock run`
invocations count as the same application only if their whole command
lines (including COMMAND) match; a differing one takes the lock over.
"""

import argparse
import json as json_module
import math
import subprocess
import sys
import time

from pidlock.config import get_base_dir
from pidlock.protocol import guard
from pidlock.models import DEFAULT_RETRY_INTERVAL, GuardState
from pidlock.status import read_status, sweep_orphans

EXIT_REFUSED = 1
EXIT_FATAL = 2


def _non_negative_float(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if not (math.isfinite(seconds) and seconds >= 0):
        raise argparse.ArgumentTypeError(f"must be finite and non-negative: {value}")
    return seconds


def _run(args, command) -> int:
    if not command:
        print("Error: no command given (use: pidlock run KEY -- COMMAND ...)", file=sys.stderr)
        return EXIT_FATAL

    base_dir = get_base_dir(args.base)
    deadline = time.monotonic() + args.wait
    while True:
        outcome = guard(base_dir, args.key)
        if outcome.granted or outcome.state is GuardState.FATAL:
            break
        if time.monotonic() + args.interval > deadline:
            break
        time.sleep(args.interval)

    if outcome.state is GuardState.FATAL:
        print(f"Error: {outcome.error}", file=sys.stderr)
        return EXIT_FATAL
    if not outcome.granted:
        if not args.quiet:
            print(f"{args.key}: already running ({outcome.reason})", file=sys.stderr)
        return EXIT_REFUSED

    with outcome:
        try:
            returncode = subprocess.call(command)
        except OSError as e:
            print(f"Error: cannot run {command[0]}: {e}", file=sys.stderr)
            return EXIT_FATAL
        except KeyboardInterrupt:
            return 130
    if returncode < 0:
        # Killed by a signal; report it the way a shell would
        return 128 - returncode
    return returncode


def _status(args) -> int:
    status = read_status(get_base_dir(args.base), args.key)
    if args.json:
        print(json_module.dumps(status.to_dict(), indent=2))
    else:
        print(status.format())
    return 0 if status.held else 1


def _clean(args) -> int:
    removed = sweep_orphans(get_base_dir(args.base), args.key)
    if removed:
        print(f"Removed {len(removed)} orphan(s): {', '.join(str(pid) for pid in removed)}")
    else:
        print("(no orphans)")
    return 0


def main(argv=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="pidlock",
        description="pidlock - single-instance guard for processes, backed by the filesystem",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run command
    run_parser = subparsers.add_parser(
        "run",
        help="Run a command while holding the lock",
        usage="pidlock run KEY [options] -- COMMAND [ARGS...]",
    )
    run_parser.add_argument("key", help="Application key")
    run_parser.add_argument("--base", help="Base directory (default: $PIDLOCK_BASE or runtime dir)")
    run_parser.add_argument(
        "--wait",
        type=_non_negative_float,
        default=0.0,
        help="Keep retrying for up to SECONDS if refused",
    )
    run_parser.add_argument(
        "--interval",
        type=_non_negative_float,
        default=DEFAULT_RETRY_INTERVAL,
        help="Seconds between retries",
    )
    run_parser.add_argument("--quiet", "-q", action="store_true", help="No message when refused")

    # status command
    status_parser = subparsers.add_parser("status", help="Show who holds a key")
    status_parser.add_argument("key", help="Application key")
    status_parser.add_argument("--base", help="Base directory")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # clean command
    clean_parser = subparsers.add_parser("clean", help="Remove orphaned owner directories")
    clean_parser.add_argument("key", help="Application key")
    clean_parser.add_argument("--base", help="Base directory")

    if argv is None:
        argv = sys.argv[1:]
    # Everything after the first -- is the command for `run`, untouched
    command = None
    if "--" in argv:
        split = argv.index("--")
        argv, command = argv[:split], argv[split + 1:]
    args = parser.parse_args(argv)
    if command is not None and args.command != "run":
        parser.error("-- COMMAND is only accepted by the run command")

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == "run":
            sys.exit(_run(args, command))
        elif args.command == "status":
            sys.exit(_status(args))
        elif args.command == "clean":
            sys.exit(_clean(args))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)


if __name__ == "__main__":
    main()
