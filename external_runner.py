# external_runner.py - "!command" shell escapes
from __future__ import annotations
import os, shutil, subprocess, sys
from typing import Tuple, Optional

from argparser import get_args

NOT_FOUND = 127
NOT_EXEC  = 126


def output_redirected() -> bool:
    """True while print() doesn't go to the process stdout ("output FILE", captured tests)."""
    return sys.stdout is not sys.__stdout__


def resolve_executable(cmd: str) -> Optional[str]:
    """Absolute path of cmd, or None. A cmd with a "/" is used as given."""
    if os.sep in cmd or "/" in cmd:
        return cmd if os.path.exists(cmd) else None
    return shutil.which(cmd)


def run_external(argv: list[str], *, capture: Optional[bool] = None,
                 env: Optional[dict] = None) -> Tuple[int, str, str]:
    """Run argv and wait for it.
    Returns (exit_code, stdout_text, stderr_text). capture defaults to
    output_redirected(); without capture the child writes straight to the
    terminal and both texts are empty."""
    if not argv:
        return 0, "", ""
    if capture is None:
        capture = output_redirected()

    exe = resolve_executable(argv[0])
    if not exe:
        return NOT_FOUND, "", f"{argv[0]}: command not found\n"

    try:
        if capture:
            cp = subprocess.run([exe, *argv[1:]], text=True, capture_output=True, env=env)
            return cp.returncode, cp.stdout, cp.stderr
        cp = subprocess.run([exe, *argv[1:]], env=env)
        return cp.returncode, "", ""
    except PermissionError:
        return NOT_EXEC, "", f"{argv[0]}: permission denied\n"
    except FileNotFoundError:
        return NOT_FOUND, "", f"{argv[0]}: no such file or directory\n"
    except OSError as e:
        return NOT_EXEC, "", f"{argv[0]}: {e.strerror or e}\n"


def shell_escape(line: str, env: Optional[dict] = None) -> Tuple[int, str]:
    """
    Run the words of a "!" line. The child's output goes wherever print()
    currently goes. Returns (exit_code, message); message is set when the
    program could not be started.
    """
    argv = get_args(line)
    if not argv:
        return 0, ""

    code, out, err = run_external(argv, env=env)
    if out:
        print(out, end="")
    if err:
        print(err, end="", file=sys.stderr)

    if code in (NOT_FOUND, NOT_EXEC) and err.startswith(f"{argv[0]}:"):
        return code, err.strip()
    return code, ""
