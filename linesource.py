# linesource.py - where the interpreter gets its next line from
import os
import sys

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory, InMemoryHistory


class LineSource:
    """next(prompt) returns (line, has_more); has_more is False at end of input."""

    def next(self, prompt=""):
        raise NotImplementedError

    def update_history(self, line):
        pass


class LinesSource(LineSource):
    """An in-memory list of lines: a function body or a captured block."""

    def __init__(self, lines):
        self.lines = list(lines)
        self.pos = 0

    def next(self, prompt=""):
        if self.pos >= len(self.lines):
            return "", False
        line = self.lines[self.pos]
        self.pos += 1
        return line, True


class StreamSource(LineSource):
    """Lines from an open file or any text stream."""

    def __init__(self, stream):
        self.stream = stream

    def next(self, prompt=""):
        line = self.stream.readline()
        if not line:
            return "", False
        return line.rstrip("\r\n"), True


class PromptSource(LineSource):
    """Interactive input with history and completion."""

    def __init__(self, history_file=None, completer=None):
        self.history_path = find_history_file(history_file)
        history = FileHistory(self.history_path) if self.history_path else InMemoryHistory()
        self.session = PromptSession(history=history, completer=completer)
        self._last = None

    def next(self, prompt=""):
        try:
            self._last = self.session.prompt(prompt)
        except KeyboardInterrupt:
            # ^C at the prompt just drops the line
            print()
            return "", True
        except EOFError:
            return "", False
        return self._last, True

    def update_history(self, line):
        # the session already stored what was typed; keep merged continuation lines too
        if line != self._last:
            self.session.history.append_string(line)


def find_history_file(name):
    """Current directory first, then $HOME; the file is created if missing."""
    if not name:
        return None
    if os.path.exists(name):
        return name

    path = os.path.join(os.path.expanduser("~"), name)
    if os.path.exists(path):
        return path

    try:
        with open(path, "a", encoding="utf-8"):
            pass
    except OSError:
        return None
    return path


class CommandCompleter(Completer):
    def __init__(self, interp):
        self.interp = interp

    def get_completions(self, document, complete_event):
        word = document.get_word_before_cursor(WORD=True)
        before = document.text_before_cursor.lstrip()

        if before == word:
            candidates = self.interp.command_names()
        elif before.startswith(("var ", "set ")):
            candidates = self.interp.scopes.names()
        else:
            return

        for name in candidates:
            if name.startswith(word):
                yield Completion(name, -len(word))


# -----------------------
# Terminal mode
# -----------------------
def terminal_mode():
    if os.name != "posix":
        return None
    import termios
    try:
        if not sys.stdin.isatty():
            return None
        return termios.tcgetattr(sys.stdin.fileno())
    except (AttributeError, ValueError, OSError, termios.error):
        return None


def restore_mode(mode):
    if mode is None:
        return
    import termios
    try:
        termios.tcsetattr(sys.stdin.fileno(), termios.TCSADRAIN, mode)
    except (AttributeError, ValueError, OSError, termios.error):
        pass
