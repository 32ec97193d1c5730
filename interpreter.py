# interpreter.py - the re-entrant read/dispatch loop
"""
Line oriented command interpreter.

    interp = Interpreter(prompt="demo> ", plugins=[ControlFlow()])
    interp.add(Command("hello", "say hello", lambda line: print("hello", line)))
    interp.cmd_loop()

Every block (function body, loop body, conditional branch, loaded script)
runs through the same execute() loop against its own line source.
"""
import functools
import logging
import signal
import sys
import threading
import time

import argparser
import commands
import external_runner
from argparser import UsageError
from commands import Command
from blockreader import BlockSyntaxError, read_block, read_logical_line
from Interrupt import InterruptFlag, SignalListener
from linesource import (CommandCompleter, LinesSource, PromptSource,
                        restore_mode, terminal_mode)
from process_subsystem import TaskController
from scopes import LOCAL, ScopeStack, ScopeUnderflow, bool_value, int_value

logger = logging.getLogger(__name__)

SLEEP_SLICE = 0.1


class _NoVar:
    def __repr__(self):
        return "<no value>"


# passed to on_change for a variable that doesn't exist / is being removed
NO_VAR = _NoVar()


class _Abort:
    """Truthy stop value returned when a construct could not be parsed."""

    def __bool__(self):
        return True

    def __repr__(self):
        return "ABORT"


ABORT = _Abort()


class Interpreter:
    def __init__(self, prompt="> ", continuation_prompt=": ", history_file=None,
                 enable_shell=False, timing=False, handle_signals=True,
                 plugins=(), global_vars=None,
                 pre_loop=None, post_loop=None, pre_cmd=None, post_cmd=None,
                 empty_line=None, default=None, on_change=None,
                 on_interrupt=None, recover=None):
        self.prompt = prompt
        self.continuation_prompt = continuation_prompt
        self.history_file = history_file
        self.enable_shell = enable_shell
        self.timing = timing
        self.handle_signals = handle_signals

        self.pre_loop = pre_loop or (lambda: None)
        self.post_loop = post_loop or (lambda: None)
        self.pre_cmd = pre_cmd or (lambda line: None)
        self.post_cmd = post_cmd or (lambda line, stop: stop)
        self.empty_line = empty_line or (lambda: None)
        self.default = default or self._unknown_command
        self.on_change = on_change or (lambda name, old, new: new)
        self.recover = recover or (lambda exc: False)
        self._base_interrupt = on_interrupt or self._default_interrupt

        self.scopes = ScopeStack(global_vars)
        self.commands = {}
        self.parsers = argparser.build_parsers()
        self.flag = InterruptFlag()
        self.tasks = TaskController()

        self._local = threading.local()
        self._prev_stdout = None
        self._saved_mode = None

        commands.register_builtins(self)

        self.plugins = list(plugins)
        for plugin in self.plugins:
            plugin.plugin_init(self)

        # plugins wrap the previous link; later plugins are outermost
        self.one_cmd = self._chain("one_cmd", self.dispatch)
        self.help = self._chain("help", self.default_help)
        self.interrupt = self._chain("interrupt", self._base_interrupt)

    def _chain(self, name, last):
        call = last
        for plugin in self.plugins:
            link = getattr(plugin, name, None)
            if link is not None:
                call = functools.partial(link, call)
        return call

    # -----------------------
    # Registry
    # -----------------------
    def add(self, command):
        self.commands[command.name] = command

    def remove(self, name):
        self.commands.pop(name, None)

    def command_names(self):
        names = set(self.commands)
        for plugin in self.plugins:
            names.update(getattr(plugin, "names", lambda: ())())
        return sorted(names)

    # -----------------------
    # Variables
    # -----------------------
    def set_var(self, name, value, scope=LOCAL):
        self.scopes.set(name, value, scope)

    def get_var(self, name):
        return self.scopes.get(name)

    def get_bool_var(self, name) -> bool:
        value, ok = self.scopes.get(name)
        return ok and bool_value(value)

    def get_int_var(self, name, default=0) -> int:
        value, ok = self.scopes.get(name)
        return int_value(value, default) if ok else default

    def silent_result(self) -> bool:
        return self.get_bool_var("silent")

    def report(self, message):
        """Tell the user and leave the message in $error."""
        print(message)
        self.scopes.set("error", message)

    # -----------------------
    # Interrupts
    # -----------------------
    def interrupted(self) -> bool:
        return self.flag.is_set()

    def set_interrupted(self, value=True):
        self.flag.set(value)

    def _default_interrupt(self, signum):
        # ^C only stops the innermost construct, anything else quits
        return signum != signal.SIGINT

    def reset_terminal(self):
        restore_mode(self._saved_mode)

    def sleep(self, seconds) -> bool:
        """Sleep in short slices; returns True if interrupted."""
        deadline = time.monotonic() + seconds
        while not self.interrupted():
            left = deadline - time.monotonic()
            if left <= 0:
                return False
            time.sleep(min(left, SLEEP_SLICE))
        return True

    # -----------------------
    # Line sources and blocks
    # -----------------------
    @property
    def source(self):
        src = getattr(self._local, "source", None)
        if src is None:
            # threads started by "go" have nothing to read blocks from
            src = self._local.source = LinesSource(())
        return src

    def get_prompt(self, continuation=False):
        if continuation:
            return self.continuation_prompt
        return self.prompt.replace("%T", time.strftime("%Y-%m-%d %H:%M:%S"))

    def read_block(self, header, else_keyword=""):
        return read_block(self.source, header, else_keyword, self.get_prompt(True))

    def run_block(self, name, lines, args=None, new_scope=True):
        """
        Run lines as a block. A named block (function call) swallows its stop
        request; an unnamed one passes it on to the caller.
        """
        if new_scope:
            self.scopes.push(None, args)
        try:
            stop = self.execute(LinesSource(lines))
        finally:
            if new_scope:
                self.scopes.pop()

        return False if name else stop

    def execute(self, source, top_level=False):
        """Read and dispatch lines from source until it ends or a command says stop."""
        prev = getattr(self._local, "source", None)
        self._local.source = source
        stop = False
        try:
            while True:
                if top_level:
                    self.set_interrupted(False)

                line, more = read_logical_line(source, self.get_prompt(False), self.get_prompt(True))
                if not more:
                    break

                if not line or line.startswith("#"):
                    self.empty_line()
                    continue

                if top_level:
                    source.update_history(line)

                mode = terminal_mode()
                self.pre_cmd(line)

                started = time.monotonic()
                stop = self.one_cmd(line)
                if self.timing:
                    print(f"Elapsed: {time.monotonic() - started:.3f}s")

                # at the prompt the flag is cleared instead of ending the session
                stop = self.post_cmd(line, stop) or (not top_level and self.interrupted())
                restore_mode(mode)

                if stop is ABORT and top_level:
                    stop = False
                if stop:
                    break
        finally:
            self._local.source = prev

        return stop

    # -----------------------
    # Dispatch
    # -----------------------
    def dispatch(self, line):
        """Default one_cmd: "name rest" looks up name in the command table."""
        if self.enable_shell and line.startswith("!"):
            return self.shell_exec(line[1:].strip())

        parts = line.split(None, 1)
        if not parts:
            # the line expanded to nothing
            self.empty_line()
            return False
        name = parts[0]
        params = parts[1].strip() if len(parts) > 1 else ""

        command = self.commands.get(name)
        if command is None:
            self.default(line)
            return False

        self.scopes.unset("error")
        try:
            return command.call(params) or False
        except ScopeUnderflow:
            raise
        except BlockSyntaxError as e:
            self.report(f"syntax error: {e}")
            return ABORT
        except UsageError as e:
            self.report(str(e))
            return False
        except Exception as e:
            logger.debug("command %r failed", name, exc_info=True)
            self.report(f"{name}: {e}")
            return bool(self.recover(e))

    def _unknown_command(self, line):
        self.report(f"invalid command: {line}")

    def default_help(self, line):
        if not line:
            print("Available commands:")
            for name in sorted(self.commands):
                print(f"    {name}")
            return False

        command = self.commands.get(line)
        if command is None:
            print(f"unknown command: {line}")
        elif command.help_func is not None:
            command.help_func()
        elif command.help:
            print(command.help)
        else:
            print(f"No help for {line}")
        return False

    def shell_exec(self, line):
        self.scopes.unset("error")
        try:
            code, message = external_runner.shell_escape(line)
        except UsageError as e:
            self.report(str(e))
            return False

        self.scopes.set("status", code)
        if message:
            self.scopes.set("error", message)
        return False

    def run_async(self, line):
        """Body of a "go" task."""
        self._local.source = LinesSource(())
        try:
            self.one_cmd(line)
        except ScopeUnderflow:
            logger.critical("scope underflow in task %r", line)
            raise

    # -----------------------
    # Output redirection
    # -----------------------
    def redirect_output(self, path, append=False):
        if self._prev_stdout is not None:
            raise UsageError("output: already redirected")
        out = open(path, "a" if append else "w", encoding="utf-8")
        self._prev_stdout, sys.stdout = sys.stdout, out

    def restore_output(self):
        if self._prev_stdout is None:
            return False
        out, sys.stdout = sys.stdout, self._prev_stdout
        self._prev_stdout = None
        out.close()
        return True

    # -----------------------
    # Entry points
    # -----------------------
    def run_line(self, line):
        """Dispatch one line outside of any loop, as if typed at the prompt."""
        self._local.source = LinesSource(())
        return bool(self.one_cmd(line.strip()))

    def run_lines(self, lines):
        return bool(self.execute(LinesSource(lines)))

    def cmd_loop(self, source=None):
        if source is None:
            source = PromptSource(self.history_file, CommandCompleter(self))

        self._saved_mode = terminal_mode()
        listener = None
        if self.handle_signals and threading.current_thread() is threading.main_thread():
            listener = SignalListener(self).start()

        self.pre_loop()
        try:
            self.execute(source, top_level=True)
        finally:
            if listener is not None:
                listener.stop()
            self.restore_output()
            self.post_loop()
