#!/usr/bin/env python3
# Repl.py - linecmd command line: interactive loop, one-shot commands, scripts
import argparse
import logging
import sys

from controlflow import ControlFlow
from interpreter import Interpreter
from linesource import StreamSource

HISTORY_FILE = ".linecmd_history"
PROMPT = "linecmd> "
CONTINUATION_PROMPT = "... "


def build_parser():
    parser = argparse.ArgumentParser(prog="linecmd", description="line oriented command interpreter")
    parser.add_argument("--history", default=HISTORY_FILE, metavar="FILE",
                        help=f"history file (default {HISTORY_FILE}, then ~/{HISTORY_FILE})")
    parser.add_argument("--no-history", dest="history", action="store_const", const=None,
                        help="don't read or write a history file")
    parser.add_argument("--shell", action="store_true", help="allow !command shell escapes")
    parser.add_argument("--timing", action="store_true", help="print how long each command took")
    parser.add_argument("--debug", action="store_true", help="log interpreter internals")
    parser.add_argument("-f", "--file", metavar="SCRIPT", help="run SCRIPT and exit")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="run one command before the loop")
    return parser


def make_interpreter(opts):
    return Interpreter(
        prompt=PROMPT,
        continuation_prompt=CONTINUATION_PROMPT,
        history_file=opts.history,
        enable_shell=opts.shell,
        timing=opts.timing,
        plugins=[ControlFlow()],
    )


def run_script(interp, path):
    try:
        script = open(path, "r", encoding="utf-8")
    except OSError as e:
        print(f"Script not found: {path} ({e.strerror})", file=sys.stderr)
        return 1
    with script:
        interp.execute(StreamSource(script))
    return 0


def main(argv=None):
    opts = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if opts.debug else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    interp = make_interpreter(opts)

    if opts.file:
        return run_script(interp, opts.file)

    if opts.command:
        if interp.run_line(" ".join(opts.command)):
            return 0

    interp.cmd_loop()
    print("\nExiting.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
