# argparser.py - option parsers and argument splitting for builtins
import argparse
import re
import shlex

_QUOTES = "\"'`"
_GROUPS = {"(": ")", "[": "]"}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_UNITS = {
    "ns": 1e-9, "us": 1e-6, "µs": 1e-6, "ms": 1e-3,
    "s": 1.0, "m": 60.0, "h": 3600.0,
}


class UsageError(Exception):
    """Wrong arguments to a builtin; the command becomes a no-op."""


class _Parser(argparse.ArgumentParser):
    # argparse wants to exit the process on bad input, we only want to report it
    def error(self, message):
        raise UsageError(f"{self.prog}: {message}")


def build_parsers():
    parsers = {}

    var = _Parser(prog="var", add_help=False)
    scope = var.add_mutually_exclusive_group()
    scope.add_argument("-g", "--global", dest="scope", action="store_const", const="global")
    scope.add_argument("-p", "--parent", "--return", dest="scope", action="store_const", const="parent")
    var.add_argument("-r", "-rm", "--remove", "-u", "--unset", dest="remove", action="store_true")
    parsers["var"] = var

    repeat = _Parser(prog="repeat", add_help=False)
    repeat.add_argument("--count", type=int, default=None)
    repeat.add_argument("--wait", type=parse_wait, default=0.0)
    parsers["repeat"] = repeat

    foreach = _Parser(prog="foreach", add_help=False)
    foreach.add_argument("--wait", type=parse_wait, default=0.0)
    parsers["foreach"] = foreach

    go = _Parser(prog="go", add_help=False)
    mode = go.add_mutually_exclusive_group(required=True)
    mode.add_argument("--start", type=int, nargs="?", const=0, default=None, metavar="N")
    mode.add_argument("--wait", action="store_true")
    parsers["go"] = go

    time_ = _Parser(prog="time", add_help=False)
    mark = time_.add_mutually_exclusive_group()
    mark.add_argument("--start", action="store_true")
    mark.add_argument("--elapsed", action="store_true")
    parsers["time"] = time_

    output = _Parser(prog="output", add_help=False)
    output.add_argument("--append", "-a", action="store_true")
    output.add_argument("path", nargs="?")
    parsers["output"] = output

    return parsers


# -----------------------
# Argument splitting
# -----------------------
def get_args(line: str):
    try:
        return shlex.split(line, posix=True)
    except ValueError as e:
        raise UsageError(f"cannot parse arguments: {e}")


def split_first(line: str, groups=True):
    """
    Split line into (first argument, remainder). A quoted first argument is
    unquoted; with groups, a parenthesized or bracketed group is returned whole.
    """
    line = line.strip()
    if not line:
        return "", ""

    ch = line[0]
    if ch in _QUOTES:
        end = line.find(ch, 1)
        if end < 0:
            raise UsageError(f"unbalanced quote in {line!r}")
        return line[1:end], line[end + 1:].strip()

    if groups and ch in _GROUPS:
        closer = _GROUPS[ch]
        depth = 0
        quote = None
        for i, c in enumerate(line):
            if quote:
                if c == quote:
                    quote = None
                continue
            if c in _QUOTES:
                quote = c
            elif c == ch:
                depth += 1
            elif c == closer:
                depth -= 1
                if depth == 0:
                    return line[:i + 1], line[i + 1:].strip()
        raise UsageError(f"missing {closer!r} in {line!r}")

    parts = line.split(None, 1)
    return parts[0], parts[1].strip() if len(parts) > 1 else ""


def split_options(line: str):
    """Take the leading -options off line; "--" ends the options."""
    options = []
    line = line.strip()
    while line.startswith("-"):
        parts = line.split(None, 1)
        opt, line = parts[0], parts[1].strip() if len(parts) > 1 else ""
        if opt == "--":
            break
        options.append(opt)
    return options, line


def parse_wait(text: str) -> float:
    """Seconds from "5", "1.5s", "250ms" or "1m30s"."""
    text = text.strip()
    try:
        return float(int(text))
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNITS[m.group(2)]
        pos = m.end()

    if pos == 0 or pos != len(text):
        raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
    return total


def unquote(text: str) -> str:
    if len(text) >= 2 and text[0] in _QUOTES and text[-1] == text[0]:
        return text[1:-1]
    return text
