# expander.py - $name / $(name) / $(env.NAME) substitution
import logging
import os
import re

logger = logging.getLogger(__name__)

# $var, $(var), $(env.VAR), $*, $#, $(*), $(#)
VAR_REF = re.compile(r"\$(\w+|\(\w+\)|\(env\.\w+\)|[*#]|\([*#]\))")

# stand-in for "$$" while expanding
_DOLLAR = "\ue000"

MAX_PASSES = 64
# expansion stops once the line grows past this
MAX_LENGTH = 1 << 16

# the bodies of these are expanded when they run, not when they are read
_DEFERRED = ("function ", "repeat ", "foreach ")


def can_expand(line: str) -> bool:
    return not line.startswith(_DEFERRED)


def expand_variables(line: str, scopes, environ=None) -> str:
    if "$" not in line:
        return line

    environ = os.environ if environ is None else environ

    def lookup(m):
        name = m.group(1).strip("()")
        if name.startswith("env."):
            return environ.get(name[4:], "")
        value, _ = scopes.get(name)
        return value

    line = line.replace("$$", _DOLLAR)
    for _ in range(MAX_PASSES):
        expanded = VAR_REF.sub(lookup, line)
        # a value may itself contain "$$"
        expanded = expanded.replace("$$", _DOLLAR)
        if expanded == line:
            break
        line = expanded
        if len(line) > MAX_LENGTH:
            logger.warning("variable expansion stopped at %d characters", len(line))
            break

    return line.replace(_DOLLAR, "$")
