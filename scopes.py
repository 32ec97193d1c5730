# scopes.py - nested variable frames (global / parent / local)

import logging

logger = logging.getLogger(__name__)

LOCAL = "local"
PARENT = "parent"
GLOBAL = "global"

# exact spellings only; any other non-empty text counts as true
_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


class ScopeUnderflow(RuntimeError):
    """Raised when the permanent global frame would be popped."""


# -----------------------
# Value helpers (everything is stored as text)
# -----------------------
def to_string(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return float_string(value)
    if value is None:
        return ""
    return str(value)


def float_string(value: float) -> str:
    s = f"{value:.3f}"
    if s.endswith(".000"):
        s = s[:-4]
    if s == "-0":
        s = "0"
    return s


def bool_value(value: str) -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    return value != ""


def int_value(value: str, default=0) -> int:
    try:
        return int(value.strip(), 10)
    except (ValueError, AttributeError):
        return default


def float_value(value: str, default=0.0) -> float:
    try:
        return float(value.strip())
    except (ValueError, AttributeError):
        return default


class ScopeStack:
    """
    Stack of variable frames. Frame 0 is the global frame and is never popped,
    the top frame is "local" and the one below it is "parent".
    """

    def __init__(self, global_vars=None):
        self.frames = [{}]
        if global_vars:
            for k, v in global_vars.items():
                self.frames[0][k] = to_string(v)

    def __len__(self):
        return len(self.frames)

    def push(self, values=None, args=None):
        frame = {}
        if values:
            for k, v in values.items():
                frame[k] = to_string(v)

        if args:
            # args[0] is the invocation name
            for i, v in enumerate(args):
                frame[str(i)] = v
            frame["*"] = " ".join(args[1:])
            frame["#"] = str(len(args) - 1)

        self.frames.append(frame)

    def pop(self):
        if len(self.frames) <= 1:
            logger.critical("attempt to pop the global scope")
            raise ScopeUnderflow("no scopes left to pop")
        self.frames.pop()

    def frame(self, scope=LOCAL) -> dict:
        i = len(self.frames) - 1
        if scope == GLOBAL:
            i = 0
        elif scope == PARENT and i > 0:
            i -= 1
        return self.frames[i]

    def get(self, name):
        for frame in reversed(self.frames):
            if name in frame:
                return frame[name], True
        return "", False

    def set(self, name, value, scope=LOCAL):
        self.frame(scope)[name] = to_string(value)

    def unset(self, name, scope=LOCAL):
        self.frame(scope).pop(name, None)

    def all_vars(self) -> dict:
        merged = {}
        for frame in self.frames:
            merged.update(frame)
        return merged

    def names(self):
        return sorted(self.all_vars())

    def shift_args(self, n=1):
        frame = self.frame(LOCAL)
        if "#" not in frame:
            return  # no arguments

        nargs = int_value(frame["#"])
        if n < 0 or n > nargs:
            return

        rest = [frame[str(i)] for i in range(n + 1, nargs + 1) if str(i) in frame]
        for i in range(1, nargs + 1):
            frame.pop(str(i), None)
        for i, v in enumerate(rest, start=1):
            frame[str(i)] = v

        frame["*"] = " ".join(rest)
        frame["#"] = str(len(rest))
