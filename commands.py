#!/usr/bin/env python3
# commands.py - builtins every interpreter has

import datetime
import functools
import time

from argparser import UsageError, get_args
from scopes import float_string, float_value


class Command:
    """name, help text, handler(remainder) -> stop, optional help renderer."""

    def __init__(self, name, help="", call=None, help_func=None):
        self.name = name
        self.help = help
        self.call = call
        self.help_func = help_func

    def __repr__(self):
        return f"Command({self.name!r})"


# -----------------------
# Builtin commands
# Each function gets the interpreter and the rest of the command line
# -----------------------
def help_command(interp, line):
    return interp.help(line)


def echo(interp, line):
    print(line)


def exit_command(interp, line):
    return True


def go(interp, line):
    if not line:
        raise UsageError("usage: go [--start [N] | --wait | command]")

    if line.startswith("-"):
        opts = interp.parsers["go"].parse_args(get_args(line))
        if opts.wait:
            drained = interp.tasks.close_barrier(interp.interrupted)
            if drained is None:
                raise UsageError("go --wait: no go --start in effect")
            if not drained:
                interp.report("go --wait: interrupted")
        elif not interp.tasks.open_barrier(opts.start):
            raise UsageError("go --start: already started, use go --wait first")
        return

    task = interp.tasks.start(line, functools.partial(interp.run_async, line), interp.interrupted)
    if task is None:
        interp.report(f"go: interrupted, not started: {line}")


def jobs(interp, line):
    running = interp.tasks.running()
    if not running:
        print("no running tasks")
        return
    for task in running:
        print(task)


def time_command(interp, line):
    opts = interp.parsers["time"].parse_args(get_args(line))
    now = time.time()

    if opts.start:
        interp.set_var("start_time", repr(now))
        return

    if opts.elapsed:
        start, ok = interp.get_var("start_time")
        if not ok:
            raise UsageError("time --elapsed: no time --start")
        elapsed = float_string(now - float_value(start, now))
        print(elapsed)
        interp.set_var("elapsed", elapsed)
        return

    stamp = datetime.datetime.fromtimestamp(now).astimezone().isoformat(timespec="seconds")
    print(stamp)
    interp.set_var("time", stamp)


def output(interp, line):
    opts = interp.parsers["output"].parse_args(get_args(line))
    if opts.path is None:
        if not interp.restore_output():
            raise UsageError("output: not redirected")
        return
    interp.redirect_output(opts.path, append=opts.append)


BUILTINS = [
    ("help", "help [command]: list commands or show help for one", help_command),
    ("echo", "echo text: print text", echo),
    ("go", "go [--start [N] | --wait | command]: run command asynchronously", go),
    ("jobs", "jobs: list running asynchronous commands", jobs),
    ("time", "time [--start | --elapsed]: print the time or the time since --start", time_command),
    ("output", "output [--append] [file]: send output to file, or back to the terminal", output),
    ("exit", "exit: leave the interpreter", exit_command),
]


def register_builtins(interp):
    for name, text, func in BUILTINS:
        interp.add(Command(name, text, functools.partial(func, interp)))
