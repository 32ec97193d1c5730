# controlflow.py - functions, variables, conditionals, loops and expressions
import argparse
import json
import math
import operator
import random
import re
import signal
import sys
import threading

from argparser import (UsageError, get_args, parse_wait, split_first,
                       split_options, unquote)
from commands import Command
from expander import can_expand, expand_variables
from interpreter import NO_VAR
from linesource import StreamSource
from scopes import bool_value, float_string, int_value

VAR_ASSIGN = re.compile(r"(\w+)=(.*)$", re.S)

_COMPARE = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}

_MATCH = {
    "startswith": lambda sub, s: s.startswith(sub),
    "endswith": lambda sub, s: s.endswith(sub),
    "contains": lambda sub, s: sub in s,
}

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


# -----------------------
# Helpers
# -----------------------
def int_string(n: int, base=10) -> str:
    if base == 10:
        return str(n)
    sign = "-" if n < 0 else ""
    n = abs(n)
    digits = []
    while True:
        n, r = divmod(n, base)
        digits.append(_DIGITS[r])
        if n == 0:
            break
    return sign + "".join(reversed(digits))


def get_list(text):
    """Items of "(a b c)", a JSON list, or plain words."""
    text = text.strip()
    if text.startswith("["):
        try:
            data = json.loads(text)
        except ValueError:
            text = text[1:]
            if text.endswith("]"):
                text = text[:-1]
        else:
            if not isinstance(data, list):
                data = [data]
            return [v if isinstance(v, str) else json.dumps(v) for v in data]
    elif text.startswith("("):
        text = text[1:]
        if text.endswith(")"):
            text = text[:-1]

    return get_args(text)


def compare(args, numeric):
    if len(args) > 2 or (numeric and len(args) != 2):
        raise UsageError(f"expected 2 arguments, got {len(args)}")

    a = args[0] if len(args) > 0 else ""
    b = args[1] if len(args) > 1 else ""
    if numeric:
        return int_value(a), int_value(b)
    return a, b


def evaluate(cond):
    """True/False for "(op args...)" or a bare value; UsageError on bad conditions."""
    if not (cond.startswith("(") and cond.endswith(")")):
        return cond not in ("", "0")

    args = get_args(cond[1:-1])
    if not args:
        raise UsageError(f"invalid condition: {cond!r}")

    op, args = args[0], args[1:]
    n = len(args)

    if op == "z":
        if n > 1:
            raise UsageError(f"expected 1 argument, got {n}")
        return n == 0 or args[0] == ""
    if op == "n":
        return n > 1 or (n == 1 and args[0] != "")
    if op == "t":
        return n > 1 or (n == 1 and bool_value(args[0]))
    if op == "f":
        return n == 0 or (n == 1 and not bool_value(args[0]))

    numeric = op.endswith("#")
    if op.rstrip("#") in _COMPARE:
        a, b = compare(args, numeric)
        return _COMPARE[op.rstrip("#")](a, b)

    if op in _MATCH:
        if n == 0 or n > 2:
            raise UsageError(f"expected 2 arguments, got {n}")
        return n == 2 and _MATCH[op](args[0], args[1])

    raise UsageError(f"invalid condition: {cond!r}")


class ControlFlow:
    """
    Plugin adding a small scripting language on top of the interpreter:
    user functions, scoped variables, if/else, repeat/foreach loops, expr.
    """

    def __init__(self):
        self.interp = None
        self.functions = {}
        self.loops = 0
        self.lock = threading.Lock()

    def plugin_init(self, interp):
        self.interp = interp
        for name, text, func in (
            ("function", "function name body: define (or --delete) a function", self.command_function),
            ("var", "var [-g|--global|--parent] [-r|--remove|-u|--unset] name[=value]", self.command_variable),
            ("shift", "shift [n]: drop the first n positional arguments", self.command_shift),
            ("if", "if [!](condition) body [else body]", self.command_conditional),
            ("expr", "expr operator operands...", self.command_expression),
            ("repeat", "repeat [--count=n] [--wait=duration] body", self.command_repeat),
            ("foreach", "foreach [--wait=duration] (items...) body", self.command_foreach),
            ("load", "load script-file", self.command_load),
            ("sleep", "sleep duration", self.command_sleep),
            ("stop", "stop: leave the current function or block", self.command_stop),
        ):
            interp.add(Command(name, text, func))

        interp.commands["set"] = interp.commands["var"]

    def names(self):
        return sorted(self.functions)

    def expand(self, line):
        return expand_variables(line, self.interp.scopes)

    def in_loop(self) -> bool:
        with self.lock:
            return self.loops > 0

    # -----------------------
    # Hook chain links
    # -----------------------
    def one_cmd(self, next_cmd, line):
        if can_expand(line):
            line = self.expand(line)

        if line.startswith("@"):
            return next_cmd("load " + line[1:].strip())

        parts = line.split(None, 1)
        name = parts[0] if parts else ""
        body = self.functions.get(name)
        if body is None:
            return next_cmd(line)

        try:
            args = get_args(parts[1]) if len(parts) > 1 else []
        except UsageError as e:
            self.interp.report(str(e))
            return False

        if self.interp.get_bool_var("echo"):
            print(f"{self.interp.get_prompt()}{line}")
        return self.interp.run_block(name, body, [name] + args)

    def help(self, next_help, line):
        if line in self.functions:
            print(f"{line} is a function")
            return False

        next_help(line)
        if not line and self.functions:
            print()
            print("Available functions:")
            for name in self.names():
                print(f"    {name}")
        return False

    def interrupt(self, next_interrupt, signum):
        if signum == signal.SIGINT and self.in_loop():
            return False
        return next_interrupt(signum)

    # -----------------------
    # function / var / shift
    # -----------------------
    def command_function(self, line):
        if not line:
            if not self.functions:
                print("no functions")
                return
            print("functions:")
            for name in self.names():
                print(f"  {name}")
            return

        parts = line.split(None, 1)
        name = parts[0]
        body = parts[1].strip() if len(parts) > 1 else ""

        if not body:
            lines = self.functions.get(name)
            if lines is None:
                raise UsageError(f"no function {name}")
            print(f"function {name} {{")
            for text in lines:
                print(f"  {text}")
            print("}")
            return

        if body == "--delete":
            if self.functions.pop(name, None) is None:
                raise UsageError(f"no function {name}")
            print(f"function {name} deleted")
            return

        block, _ = self.interp.read_block(body)
        self.functions[name] = tuple(block)

    def command_variable(self, line):
        options, line = split_options(line)
        opts = self.interp.parsers["var"].parse_args(options)
        scopes = self.interp.scopes

        if not line:
            if opts.scope or opts.remove:
                raise UsageError("var: missing variable name")
            for name, value in sorted(scopes.all_vars().items()):
                print(f"  {name}={value}")
            return

        m = VAR_ASSIGN.match(line)
        if m and "=" in line.split(None, 1)[0]:
            name, value = m.group(1), m.group(2)
        else:
            parts = line.split(None, 1)
            name = parts[0]
            value = unquote(parts[1].strip()) if len(parts) > 1 else None

        if value is not None:
            if opts.remove:
                raise UsageError("var: invalid use of remove option and value")
            self._change(name, value, opts.scope or "local")
            return

        if opts.remove:
            self._change(name, NO_VAR, opts.scope or "local")
            return

        if opts.scope:
            raise UsageError(f"var: invalid use of {opts.scope} scope option")

        value, ok = scopes.get(name)
        if ok:
            print(f"{name} = {value}")

    def _change(self, name, value, scope):
        scopes = self.interp.scopes
        current, ok = scopes.get(name)
        value = self.interp.on_change(name, current if ok else NO_VAR, value)
        if value is NO_VAR:
            scopes.unset(name, scope)
        else:
            scopes.set(name, value, scope)

    def command_shift(self, line):
        args = get_args(line)
        if len(args) > 1:
            raise UsageError("shift: too many arguments")

        n = 1
        if args:
            try:
                n = int(args[0])
            except ValueError:
                raise UsageError(f"shift: not a number: {args[0]}")
        self.interp.scopes.shift_args(n)

    # -----------------------
    # if
    # -----------------------
    def command_conditional(self, line):
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        if not line:
            raise UsageError("if: missing condition")

        cond, body = split_first(line)
        if not body:
            raise UsageError("if: missing body")

        # consume the blocks before judging the condition, so a bad
        # condition doesn't leave them to be run as commands
        block, else_block = self.interp.read_block(body, "else")

        result = evaluate(cond)
        if negate:
            result = not result

        lines = block if result else else_block
        if not lines:
            return False
        # no new scope: what the branch sets is visible afterwards
        return self.interp.run_block("", lines, new_scope=False)

    # -----------------------
    # expr
    # -----------------------
    def command_expression(self, line):
        op, line = split_first(line, groups=False)
        if not op or not line:
            raise UsageError("usage: expr operator operands...")

        if op in ("+", "-", "*", "/"):
            result = self._arithmetic(op, line)
        elif op in ("re", "regex", "regexp"):
            result = self._regexp(line)
        else:
            handler = getattr(self, f"_expr_{op}", None)
            if handler is None:
                raise UsageError(f"expr: invalid operator: {op}")
            result = handler(line)

        if not self.interp.silent_result():
            print(result)
        self.interp.set_var("result", result)

    def _arithmetic(self, op, line):
        args = get_args(line)
        if len(args) != 2:
            raise UsageError(f"usage: expr {op} arg1 arg2")

        nums = []
        for a in args:
            try:
                nums.append(float(a))
            except ValueError:
                raise UsageError(f"expr: not a number: {a}")

        a, b = nums
        if op == "+":
            n = a + b
        elif op == "-":
            n = a - b
        elif op == "*":
            n = a * b
        else:
            if b == 0:
                raise UsageError("expr: division by zero")
            n = a / b
        return float_string(n)

    def _expr_round(self, line):
        def func(n):
            # halves round down
            return math.ceil(n) if n - math.floor(n) > 0.5 else math.floor(n)

        if line.startswith("up "):
            func, line = math.ceil, line[3:].strip()
        elif line.startswith("down "):
            func, line = math.floor, line[5:].strip()

        try:
            n = float(line)
        except ValueError:
            raise UsageError(f"expr: not a number: {line}")
        return float_string(float(func(n)))

    def _expr_rand(self, line):
        args = get_args(line)
        if len(args) > 2:
            raise UsageError("usage: expr rand max [base]")

        neg = False
        top = int_value(args[0]) if args else 0
        if top == 0:
            top = sys.maxsize
        elif top < 0:
            neg, top = True, -top

        base = 10
        if len(args) == 2:
            try:
                base = int(args[1])
            except ValueError:
                raise UsageError("expr: base should be a number")
            if base <= 0:
                base = 10
            base = min(max(base, 2), 36)

        n = random.randrange(top)
        return int_string(-n if neg else n, base)

    def _expr_upper(self, line):
        return unquote(line).upper()

    def _expr_lower(self, line):
        return unquote(line).lower()

    def _expr_substr(self, line):
        srange, text = split_first(line, groups=False)
        text = unquote(text)
        if ":" not in srange:
            raise UsageError(f"expr: expected start:end, got {srange!r}")

        start, end = srange.split(":", 1)
        try:
            start = int(start) if start else None
            end = int(end) if end else None
        except ValueError:
            raise UsageError(f"expr: expected start:end, got {srange!r}")
        return text[start:end]

    def _expr_split(self, line):
        sep, text = split_first(line, groups=False)
        text = unquote(text)
        if not text:
            return ""
        if not sep:
            raise UsageError("expr: empty separator")
        return json.dumps(text.split(sep))

    def _regexp(self, line):
        pattern, text = split_first(line, groups=False)
        text = unquote(text)
        if not text:
            return ""

        try:
            m = re.search(pattern, text)
        except re.error as e:
            raise UsageError(f"expr: {e}")

        if m is None:
            return ""
        groups = m.groups()
        if not groups:
            return m.group(0)
        if len(groups) == 1:
            return groups[0] or ""
        return json.dumps([g or "" for g in groups])

    # -----------------------
    # Loops
    # -----------------------
    def _loop_options(self, name, line):
        options, line = split_options(line)
        opts = self.interp.parsers[name].parse_args([self.expand(o) for o in options])
        return opts, line

    def _run_loop(self, iterations, count, wait, block):
        interp = self.interp
        interp.scopes.push()
        interp.scopes.set("count", count)
        with self.lock:
            self.loops += 1
        try:
            for i, (index, item) in enumerate(iterations):
                if wait and i > 0 and interp.sleep(wait):
                    break
                interp.scopes.set("index", index)
                if item is not None:
                    interp.scopes.set("item", item)
                if interp.run_block("", block, new_scope=False) or interp.interrupted():
                    break
        finally:
            with self.lock:
                self.loops -= 1
            interp.scopes.pop()
        return False

    def command_repeat(self, line):
        opts, line = self._loop_options("repeat", line)
        if not line:
            raise UsageError("repeat: nothing to repeat")

        count = sys.maxsize if opts.count is None else opts.count
        if count >= 0:
            indexes = range(1, count + 1)
        else:
            indexes = range(-count, 0, -1)

        block, _ = self.interp.read_block(line)
        return self._run_loop(((i, None) for i in indexes), count, opts.wait, block)

    def command_foreach(self, line):
        opts, line = self._loop_options("foreach", line)
        items, body = split_first(line)
        if not body:
            raise UsageError("usage: foreach [--wait=duration] (items...) body")

        items = get_list(self.expand(items))
        block, _ = self.interp.read_block(body)
        return self._run_loop(enumerate(items), len(items), opts.wait, block)

    # -----------------------
    # load / sleep / stop
    # -----------------------
    def command_load(self, line):
        path = unquote(line.strip())
        if not path:
            raise UsageError("load: missing script file")

        try:
            script = open(path, encoding="utf-8")
        except OSError as e:
            raise UsageError(f"load: {e}")

        with script:
            return self.interp.execute(StreamSource(script))

    def command_sleep(self, line):
        try:
            seconds = parse_wait(line)
        except argparse.ArgumentTypeError as e:
            raise UsageError(f"sleep: {e}")
        self.interp.sleep(seconds)

    def command_stop(self, line):
        return True
