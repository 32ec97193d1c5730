# ControlFlow_test.py
import io
import os
import shutil
import tempfile
import unittest
from contextlib import redirect_stdout

from commands import Command
from controlflow import ControlFlow, evaluate, get_list, int_string
from interpreter import NO_VAR, Interpreter


def run(interp, *lines):
    out = io.StringIO()
    with redirect_stdout(out):
        interp.run_lines(lines)
    return out.getvalue()


def make(**kwargs):
    return Interpreter(handle_signals=False, plugins=[ControlFlow()], **kwargs)


class TestVariables(unittest.TestCase):
    def setUp(self):
        self.interp = make()

    def test_set_and_echo(self):
        self.assertEqual(run(self.interp, "var x 5", "echo $x"), "5\n")

    def test_assignment_forms(self):
        run(self.interp, "var a=1", "set b 2", "var greeting 'hello world'")
        self.assertEqual(self.interp.get_var("a"), ("1", True))
        self.assertEqual(self.interp.get_var("b"), ("2", True))
        self.assertEqual(self.interp.get_var("greeting"), ("hello world", True))

    def test_show_and_list(self):
        run(self.interp, "var b 2", "var a 1")
        self.assertEqual(run(self.interp, "var a"), "a = 1\n")
        self.assertEqual(run(self.interp, "var"), "  a=1\n  b=2\n")
        self.assertEqual(run(self.interp, "var missing"), "")

    def test_remove(self):
        run(self.interp, "var x 5", "var -r x")
        self.assertEqual(self.interp.get_var("x"), ("", False))

    def test_remove_with_value_is_an_error(self):
        self.assertEqual(run(self.interp, "var -r x 1"), "var: invalid use of remove option and value\n")

    def test_chained_reference(self):
        self.assertEqual(run(self.interp, "var a 1", "var b $$a", "echo $b"), "1\n")

    def test_self_doubling_value_terminates(self):
        out = run(self.interp, "var a $$a$$a", "echo $a")
        self.assertEqual(self.interp.get_var("a"), ("$a$a", True))
        self.assertTrue(out.startswith("$a$a"))
        self.assertLess(len(out), 1 << 18)

    def test_scope_options_in_function(self):
        run(self.interp,
            "function f {",
            "var -g gx 1",
            "var --parent px 2",
            "var lx 3",
            "}",
            "f")
        self.assertEqual(self.interp.get_var("gx"), ("1", True))
        self.assertEqual(self.interp.get_var("px"), ("2", True))
        self.assertEqual(self.interp.get_var("lx"), ("", False))

    def test_on_change(self):
        changes = []

        def on_change(name, old, new):
            changes.append((name, old, new))
            return old if name == "locked" else new

        interp = make(on_change=on_change)
        run(interp, "var x 1", "var x 2", "var -r x", "var locked 1")
        self.assertEqual(changes, [("x", NO_VAR, "1"), ("x", "1", "2"),
                                   ("x", "2", NO_VAR), ("locked", NO_VAR, "1")])
        self.assertEqual(interp.get_var("locked"), ("", False))


class TestFunctions(unittest.TestCase):
    def setUp(self):
        self.interp = make()

    def test_one_line_function(self):
        self.assertEqual(run(self.interp, "function f echo $1", "f hello"), "hello\n")

    def test_positional_arguments(self):
        out = run(self.interp, "function g {", "echo $0: $# $*", "}", "g a 'b c' d")
        self.assertEqual(out, "g: 3 a b c d\n")
        self.assertEqual(len(self.interp.scopes), 1)

    def test_body_expanded_when_called(self):
        out = run(self.interp, "var x 1", "function show echo $x", "var x 2", "show")
        self.assertEqual(out, "2\n")

    def test_shift(self):
        out = run(self.interp, "function f {", "shift", "echo $1 $#", "}", "f a b c")
        self.assertEqual(out, "b 2\n")

    def test_stop_ends_only_the_function(self):
        out = run(self.interp,
                  "function f {",
                  "echo one",
                  "if (t 1) stop",
                  "echo two",
                  "}",
                  "f",
                  "echo after")
        self.assertEqual(out, "one\nafter\n")

    def test_recursion(self):
        out = run(self.interp,
                  "var silent true",
                  "function countdown {",
                  "echo $1",
                  "if (gt# $1 1) {",
                  "expr - $1 1",
                  "countdown $result",
                  "}",
                  "}",
                  "countdown 3")
        self.assertEqual(out, "3\n2\n1\n")
        self.assertEqual(len(self.interp.scopes), 1)

    def test_list_show_delete(self):
        self.assertEqual(run(self.interp, "function"), "no functions\n")
        run(self.interp, "function f echo x")
        self.assertEqual(run(self.interp, "function"), "functions:\n  f\n")
        self.assertEqual(run(self.interp, "function f"), "function f {\n  echo x\n}\n")
        self.assertEqual(run(self.interp, "function f --delete"), "function f deleted\n")
        self.assertEqual(run(self.interp, "f"), "invalid command: f\n")

    def test_unterminated_body(self):
        out = io.StringIO()
        with redirect_stdout(out):
            stop = self.interp.run_lines(["function f {", "echo 1"])
        self.assertTrue(stop)
        self.assertEqual(out.getvalue(), "syntax error: unexpected end of input: missing '}'\n")
        self.assertNotIn("f", self.interp.commands)

    def test_echo_variable(self):
        out = run(self.interp, "var echo true", "function f echo hi", "f")
        self.assertEqual(out, "> f\nhi\n")

    def test_help(self):
        run(self.interp, "function f echo x")
        out = run(self.interp, "help")
        self.assertTrue(out.startswith("Available commands:\n"))
        self.assertIn("    repeat\n", out)
        self.assertTrue(out.endswith("\nAvailable functions:\n    f\n"))
        self.assertEqual(run(self.interp, "help f"), "f is a function\n")
        self.assertIn("f", self.interp.command_names())


class TestConditionals(unittest.TestCase):
    def setUp(self):
        self.interp = make()

    def test_examples(self):
        self.assertEqual(run(self.interp, "if (eq foo foo) echo yes"), "yes\n")
        self.assertEqual(run(self.interp, "if (eq# 10 9) echo yes else echo no"), "no\n")
        self.assertEqual(run(self.interp, 'if !(z "") echo yes'), "")

    def test_numeric_and_text_compare(self):
        self.assertEqual(run(self.interp, "if (gt 10 9) echo yes else echo no"), "no\n")
        self.assertEqual(run(self.interp, "if (gt# 10 9) echo yes else echo no"), "yes\n")
        self.assertEqual(run(self.interp, "if (lte# 3 3) echo yes"), "yes\n")

    def test_string_matches(self):
        self.assertEqual(run(self.interp, "if (startswith foo foobar) echo yes"), "yes\n")
        self.assertEqual(run(self.interp, "if (endswith bar foobar) echo yes"), "yes\n")
        self.assertEqual(run(self.interp, "if (contains xyz foobar) echo yes else echo no"), "no\n")

    def test_unset_variable(self):
        self.assertEqual(run(self.interp, "if (n $nope) echo set else echo unset"), "unset\n")

    def test_quoted_else_is_text(self):
        self.assertEqual(run(self.interp, 'if (eq a a) echo "now or else never"'),
                         '"now or else never"\n')
        self.assertEqual(run(self.interp, "if (eq a b) echo 'x else y' else echo z"), "z\n")

    def test_truthiness_spellings(self):
        self.assertEqual(run(self.interp, "if (t no) echo yes else echo no"), "yes\n")
        self.assertEqual(run(self.interp, "if (f on) echo yes else echo no"), "no\n")
        self.assertEqual(run(self.interp, "if (t False) echo yes else echo no"), "no\n")
        self.assertEqual(run(self.interp, "if (f T) echo yes else echo no"), "no\n")

    def test_bare_values(self):
        self.assertEqual(run(self.interp, "if 1 echo yes", "if 0 echo no"), "yes\n")

    def test_blocks(self):
        out = run(self.interp,
                  "var x 3",
                  "if (gt# $x 2) {",
                  "echo big",
                  "} else {",
                  "echo small",
                  "}",
                  "echo done")
        self.assertEqual(out, "big\ndone\n")

    def test_no_new_scope(self):
        out = run(self.interp, "function f {", "if (t 1) var y inner", "echo $y", "}", "f")
        self.assertEqual(out, "inner\n")

    def test_arity_errors(self):
        self.assertEqual(run(self.interp, "if (z a b) echo yes", "echo next"),
                         "expected 1 argument, got 2\nnext\n")
        self.assertEqual(run(self.interp, "if (eq a b c) echo yes"), "expected 2 arguments, got 3\n")
        self.assertEqual(run(self.interp, "if (contains a b c) echo yes"), "expected 2 arguments, got 3\n")
        self.assertEqual(run(self.interp, "if (startswith) echo yes"), "expected 2 arguments, got 0\n")

    def test_bad_condition_skips_block(self):
        out = run(self.interp, "if (bogus) {", "echo inside", "}", "echo after")
        self.assertEqual(out, "invalid condition: '(bogus)'\nafter\n")

    def test_evaluate(self):
        self.assertTrue(evaluate("(z)"))
        self.assertTrue(evaluate("(n a b)"))
        self.assertTrue(evaluate("(f false)"))
        self.assertTrue(evaluate("(ne# 1 2)"))
        self.assertFalse(evaluate(""))


class TestLoops(unittest.TestCase):
    def setUp(self):
        self.interp = make()
        self.interp.add(Command("trip", "", lambda line: self.interp.set_interrupted()))

    def test_repeat_count(self):
        self.assertEqual(run(self.interp, "repeat --count=3 echo $index"), "1\n2\n3\n")
        self.assertEqual(len(self.interp.scopes), 1)
        self.assertEqual(self.interp.get_var("index"), ("", False))

    def test_repeat_count_variable(self):
        self.assertEqual(run(self.interp, "repeat --count=2 echo $index/$count"), "1/2\n2/2\n")

    def test_repeat_counting_down(self):
        self.assertEqual(run(self.interp, "repeat --count=-2 echo $index"), "2\n1\n")

    def test_repeat_zero(self):
        self.assertEqual(run(self.interp, "repeat --count=0 echo x"), "")

    def test_repeat_wait(self):
        self.assertEqual(run(self.interp, "repeat --count=2 --wait=10ms echo $index"), "1\n2\n")

    def test_repeat_bad_option(self):
        self.assertEqual(run(self.interp, "repeat --count=x echo"),
                         "repeat: argument --count: invalid int value: 'x'\n")

    def test_stop_in_loop(self):
        out = run(self.interp,
                  "repeat --count=5 {",
                  "echo $index",
                  "if (eq# $index 2) stop",
                  "}",
                  "echo done")
        self.assertEqual(out, "1\n2\ndone\n")

    def test_interrupt_ends_loop(self):
        out = run(self.interp,
                  "repeat {",
                  "echo $index",
                  "if (eq# $index 2) trip",
                  "}")
        self.assertEqual(out, "1\n2\n")
        self.assertEqual(len(self.interp.scopes), 1)

    def test_foreach(self):
        self.assertEqual(run(self.interp, "foreach (a b c) echo $index $item"), "0 a\n1 b\n2 c\n")

    def test_foreach_json(self):
        self.assertEqual(run(self.interp, 'foreach ["x y", 2] echo $item'), "x y\n2\n")

    def test_foreach_variable(self):
        out = run(self.interp, "var names 'x y z'", "foreach $names {", "echo $item", "}")
        self.assertEqual(out, "x\ny\nz\n")

    def test_get_list(self):
        self.assertEqual(get_list("(a 'b c')"), ["a", "b c"])
        self.assertEqual(get_list('[1, "two", {"k": 3}]'), ["1", "two", '{"k": 3}'])
        self.assertEqual(get_list("plain words"), ["plain", "words"])


class TestExpressions(unittest.TestCase):
    def setUp(self):
        self.interp = make()

    def expr(self, line):
        return run(self.interp, "expr " + line)

    def test_arithmetic(self):
        self.assertEqual(self.expr("+ 1 2"), "3\n")
        self.assertEqual(self.interp.get_var("result"), ("3", True))
        self.assertEqual(self.expr("- 1 2.5"), "-1.500\n")
        self.assertEqual(self.expr("* 3 4"), "12\n")
        self.assertEqual(self.expr("/ 7 2"), "3.500\n")

    def test_arithmetic_errors(self):
        self.assertEqual(self.expr("/ 1 0"), "expr: division by zero\n")
        self.assertEqual(self.expr("+ a 1"), "expr: not a number: a\n")
        self.assertEqual(self.expr("+ 1"), "usage: expr + arg1 arg2\n")
        self.assertEqual(self.expr("foo bar"), "expr: invalid operator: foo\n")

    def test_round(self):
        self.assertEqual(self.expr("round 2.5"), "2\n")
        self.assertEqual(self.expr("round 2.6"), "3\n")
        self.assertEqual(self.expr("round up 2.1"), "3\n")
        self.assertEqual(self.expr("round down 2.9"), "2\n")

    def test_regexp(self):
        self.assertEqual(self.expr("re o+ foo"), "oo\n")
        self.assertEqual(self.expr(r're "v(\d+)" v42'), "42\n")
        self.assertEqual(self.expr(r'regexp "(\w+)@(\w+)" me@host'), '["me", "host"]\n')
        self.assertEqual(self.expr("re x+ abc"), "\n")

    def test_text(self):
        self.assertEqual(self.expr("upper 'Hello World'"), "HELLO WORLD\n")
        self.assertEqual(self.expr("lower ABC"), "abc\n")
        self.assertEqual(self.expr("substr 1:3 hello"), "el\n")
        self.assertEqual(self.expr("substr -3: hello"), "llo\n")
        self.assertEqual(self.expr("split , a,b,c"), '["a", "b", "c"]\n')

    def test_rand_silent(self):
        run(self.interp, "var silent yes")
        self.assertEqual(self.expr("rand 10"), "")
        n = int(self.interp.get_var("result")[0])
        self.assertTrue(0 <= n < 10)

        self.expr("rand 16 2")
        self.assertTrue(set(self.interp.get_var("result")[0]) <= {"0", "1"})

    def test_int_string(self):
        self.assertEqual(int_string(255, 16), "ff")
        self.assertEqual(int_string(-5, 2), "-101")
        self.assertEqual(int_string(0, 8), "0")


class TestScripts(unittest.TestCase):
    def setUp(self):
        self.interp = make()
        self.dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.dir, ignore_errors=True)

    def script(self, text):
        path = os.path.join(self.dir, "script.cmd")
        with open(path, "w") as f:
            f.write(text)
        return path

    def test_load(self):
        path = self.script("var loaded yes\necho from script\n")
        self.assertEqual(run(self.interp, f"load {path}"), "from script\n")
        self.assertEqual(self.interp.get_var("loaded"), ("yes", True))

    def test_at_shortcut_and_blocks(self):
        path = self.script("# squares\nfunction sq {\n  expr * $1 $1\n}\nsq 4\n")
        self.assertEqual(run(self.interp, f"@{path}"), "16\n")

    def test_missing_script(self):
        out = run(self.interp, "load " + os.path.join(self.dir, "missing"))
        self.assertTrue(out.startswith("load: "))

    def test_sleep(self):
        self.assertEqual(run(self.interp, "sleep 10ms"), "")
        self.assertEqual(run(self.interp, "sleep soon"), "sleep: invalid duration 'soon'\n")


if __name__ == "__main__":
    unittest.main(verbosity=2)
