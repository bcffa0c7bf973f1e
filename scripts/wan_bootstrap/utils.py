"""Utility functions for the Wan2GP bootstrap.

This module provides terminal output formatting, user input helpers,
and subprocess helpers used throughout the bootstrap.
"""

import shutil
import subprocess
import sys
import threading
from typing import List, Mapping, Optional, Tuple

# Global TTY file handle for reading input when piped
_tty_handle = None


def tty_input(prompt: str = "") -> str:
    """Read input from TTY, even when stdin is piped.

    This allows the installer to work when run via: curl ... | bash
    """
    global _tty_handle

    if sys.stdin.isatty():
        return input(prompt)

    if _tty_handle is None:
        try:
            _tty_handle = open('/dev/tty', 'r', encoding='utf-8')
        except OSError:
            raise EOFError("No TTY available for input")

    if prompt:
        print(prompt, end='', flush=True)
    return _tty_handle.readline().rstrip('\n')


BROWSER_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class Colors:
    """Terminal colors for pretty output."""
    HEADER = '\033[95m'
    OKBLUE = '\033[94m'
    OKCYAN = '\033[96m'
    OKGREEN = '\033[92m'
    STEP = '\033[35m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def print_header(text: str):
    """Print section header."""
    print(f"\n{Colors.HEADER}{Colors.BOLD}{'='*60}{Colors.ENDC}")
    print(f"{Colors.HEADER}{Colors.BOLD}{text}{Colors.ENDC}")
    print(f"{Colors.HEADER}{Colors.BOLD}{'='*60}{Colors.ENDC}\n")


def print_step(text: str):
    """Print the start of a bootstrap stage."""
    print(f"\n{Colors.STEP}{Colors.BOLD}[STEP] {text}{Colors.ENDC}")


def print_success(text: str):
    """Print success message."""
    print(f"{Colors.OKGREEN}OK {text}{Colors.ENDC}")


def print_warning(text: str):
    """Print warning message."""
    print(f"{Colors.WARNING}! {text}{Colors.ENDC}")


def print_error(text: str):
    """Print error message."""
    print(f"{Colors.FAIL}X {text}{Colors.ENDC}")


def print_info(text: str):
    """Print info message."""
    print(f"{Colors.OKCYAN}> {text}{Colors.ENDC}")


def ask_yes_no(question: str, default: bool = True) -> bool:
    """Ask user yes/no question."""
    default_str = "Y/n" if default else "y/N"
    while True:
        response = tty_input(f"{question} [{default_str}]: ").strip().lower()
        if not response:
            return default
        if response in ('y', 'yes'):
            return True
        if response in ('n', 'no'):
            return False
        print("Please answer yes or no.")


def run_command(
    cmd: List[str],
    check: bool = True,
    capture: bool = False,
    timeout: Optional[float] = 600,
    stream: bool = False,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Tuple[bool, str]:
    """Run command and return success status and output.

    Args:
        cmd: Command and arguments
        check: Raise on non-zero exit (only if not capturing)
        capture: Capture output instead of showing it
        timeout: Timeout in seconds
        stream: Stream output line by line (for long-running commands)
        cwd: Working directory for the command
        env: Full environment for the child (defaults to the current one)
    """
    env = dict(env) if env is not None else None
    try:
        if capture:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=timeout, cwd=cwd, env=env
            )
            return result.returncode == 0, result.stdout + result.stderr
        elif stream:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
                cwd=cwd,
                env=env,
            )
            # readline() blocks, so a watchdog enforces the timeout
            timed_out = threading.Event()

            def _expire():
                timed_out.set()
                process.kill()

            watchdog = threading.Timer(timeout, _expire) if timeout else None
            if watchdog:
                watchdog.start()
            output_lines = []
            try:
                if process.stdout:
                    for line in iter(process.stdout.readline, ''):
                        print(f"    {line.rstrip()}")
                        sys.stdout.flush()
                        output_lines.append(line)
                process.wait()
            finally:
                if watchdog:
                    watchdog.cancel()
            if timed_out.is_set():
                raise subprocess.TimeoutExpired(cmd, timeout)
            return process.returncode == 0, ''.join(output_lines)
        else:
            result = subprocess.run(cmd, check=check, timeout=timeout, cwd=cwd, env=env)
            return result.returncode == 0, ""
    except subprocess.TimeoutExpired:
        print_warning(f"Command timed out after {timeout}s: {' '.join(cmd)}")
        return False, ""
    except (subprocess.CalledProcessError, FileNotFoundError, PermissionError):
        return False, ""


def check_command_available(command: str, path: Optional[str] = None) -> bool:
    """Check if command-line tool is available.

    Args:
        command: Executable name
        path: Optional PATH string to search instead of the process PATH
    """
    return shutil.which(command, path=path) is not None
