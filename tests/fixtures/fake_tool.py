#!/usr/bin/env python3
"""Fake security tool for integration testing.

This script simulates a long-running command-line tool (a brute-forcer, a
scanner) that prints progress lines on stdout and warnings on stderr.

Usage:
    python fake_tool.py [--lines N] [--interval SECONDS] [--stderr-lines N]
                        [--exit-code CODE] [--ignore-term] [--tag TEXT]
                        [--ready] [--text TEXT]

Arguments:
    --lines: Number of stdout progress lines (default: 3)
    --interval: Delay between lines (default: 0)
    --stderr-lines: Number of stderr warning lines (default: 0)
    --exit-code: Exit code after normal completion (default: 0)
    --ignore-term: Ignore SIGTERM (to exercise forced kill)
    --tag: Text included in every line (to tell processes apart)
    --ready: Print "ready" first, before any progress line
    --text: Write this text verbatim to stdout as UTF-8 and exit
"""

from __future__ import annotations

import argparse
import signal
import sys
import time
from typing import NoReturn


def main() -> NoReturn:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Fake tool for testing")
    parser.add_argument("--lines", type=int, default=3, help="stdout lines")
    parser.add_argument("--interval", type=float, default=0.0, help="Delay between lines")
    parser.add_argument("--stderr-lines", type=int, default=0, help="stderr lines")
    parser.add_argument("--exit-code", type=int, default=0, help="Exit code")
    parser.add_argument("--ignore-term", action="store_true", help="Ignore SIGTERM")
    parser.add_argument("--tag", type=str, default="tool", help="Line tag")
    parser.add_argument("--ready", action="store_true", help="Print ready first")
    parser.add_argument("--text", type=str, default=None, help="Raw text to write")
    args = parser.parse_args()

    if args.ignore_term:
        signal.signal(signal.SIGTERM, signal.SIG_IGN)

    if args.text is not None:
        sys.stdout.buffer.write(args.text.encode("utf-8"))
        sys.stdout.buffer.flush()
        sys.exit(args.exit_code)

    if args.ready:
        print("ready", flush=True)

    for index in range(args.stderr_lines):
        print(f"[{args.tag}] warning {index}", file=sys.stderr, flush=True)

    for index in range(args.lines):
        print(f"[{args.tag}] line {index}", flush=True)
        if args.interval:
            time.sleep(args.interval)

    sys.exit(args.exit_code)


if __name__ == "__main__":
    main()
