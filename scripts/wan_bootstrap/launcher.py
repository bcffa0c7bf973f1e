"""Launch a long-running server with ordered fallback attempts.

Each attempt is a LaunchAttempt descriptor tried strictly in order by a
small state machine:

    PENDING -> TRYING(i) -> SUCCEEDED(i) | FAILED

An attempt succeeds if its process is still running after the startup
grace period, or exits 0 within it. A non-zero exit inside the grace period
counts as a failed attempt. This cannot tell "flag not recognized" from
"flag accepted, crashed at startup for another reason"; both move on to the
next attempt.
"""

import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Mapping, MutableMapping, Optional, Sequence

from env_config import LAUNCH_GRACE_PERIOD, SHUTDOWN_GRACE_PERIOD

from .errors import AllAttemptsFailed, LaunchError, LaunchInterrupted
from .models import LaunchAttempt
from .utils import print_info, print_success, print_warning


class LaunchPhase(str, Enum):
    PENDING = "pending"
    TRYING = "trying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class AttemptRecord:
    index: int
    attempt: LaunchAttempt
    returncode: Optional[int] = None
    error: Optional[str] = None
    started: bool = False


@dataclass
class LaunchResult:
    """Outcome of a successful launch."""
    index: int
    attempt: LaunchAttempt
    returncode: int
    history: List[AttemptRecord] = field(default_factory=list)


class ProcessLauncher:
    """Runs LaunchAttempts in order and supervises the one that starts."""

    def __init__(
        self,
        grace_period: float = LAUNCH_GRACE_PERIOD,
        shutdown_grace: float = SHUTDOWN_GRACE_PERIOD,
        poll_interval: float = 0.1,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.grace_period = grace_period
        self.shutdown_grace = shutdown_grace
        self.poll_interval = poll_interval
        self.popen = popen
        self.phase = LaunchPhase.PENDING
        self.current: Optional[int] = None
        self.history: List[AttemptRecord] = []

    def launch(
        self,
        attempts: Sequence[LaunchAttempt],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        environ: Optional[MutableMapping[str, str]] = None,
    ) -> LaunchResult:
        """Try each attempt in order; block on the first one that starts.

        Args:
            attempts: Ordered attempt descriptors
            env: Variables exported process-wide before the first attempt
            cwd: Working directory for the child
            environ: Environment mapping to update (defaults to os.environ)

        Returns:
            LaunchResult with the selected attempt and the child's exit code

        Raises:
            AllAttemptsFailed: If no attempt started
            LaunchInterrupted: If the user interrupted the running server
        """
        if not attempts:
            raise LaunchError("No launch attempts configured")

        environ = os.environ if environ is None else environ
        if env:
            environ.update(env)

        self.phase = LaunchPhase.PENDING
        self.history = []

        # SIGTERM is handled like Ctrl+C from the first attempt on
        previous = None
        in_main_thread = threading.current_thread() is threading.main_thread()
        if in_main_thread:
            previous = signal.signal(signal.SIGTERM, _raise_keyboard_interrupt)
        try:
            return self._run_attempts(attempts, environ, cwd)
        finally:
            if in_main_thread:
                signal.signal(signal.SIGTERM, previous)

    def _run_attempts(self, attempts, environ, cwd) -> LaunchResult:
        for index, attempt in enumerate(attempts):
            self.phase = LaunchPhase.TRYING
            self.current = index
            record = AttemptRecord(index=index, attempt=attempt)
            self.history.append(record)

            print_info(f"Attempt {index + 1}/{len(attempts)}: {attempt.describe()}")
            try:
                process = self.popen(attempt.argv, cwd=str(cwd) if cwd else None, env=dict(environ))
            except OSError as e:
                record.error = str(e)
                print_warning(f"Could not start: {e}")
                continue
            record.started = True

            returncode = self._wait_for_startup(process)
            if returncode is not None and returncode != 0:
                record.returncode = returncode
                print_warning(f"Exited with code {returncode} during startup")
                continue

            self.phase = LaunchPhase.SUCCEEDED
            if returncode is None:
                print_success(f"Started: {attempt.describe()}")
                returncode = self._supervise(process)
            record.returncode = returncode
            return LaunchResult(index=index, attempt=attempt, returncode=returncode, history=list(self.history))

        self.phase = LaunchPhase.FAILED
        self.current = None
        raise AllAttemptsFailed(
            f"All {len(attempts)} launch attempts failed",
            history=list(self.history),
            remediation="Check the error messages above for troubleshooting",
        )

    def _wait_for_startup(self, process) -> Optional[int]:
        """Poll until the grace period ends. Returns the exit code, or None if still running."""
        deadline = time.monotonic() + self.grace_period
        try:
            while True:
                returncode = process.poll()
                if returncode is not None:
                    return returncode
                if time.monotonic() >= deadline:
                    return None
                time.sleep(self.poll_interval)
        except KeyboardInterrupt:
            self._shutdown(process)
            raise LaunchInterrupted("Interrupted by user during startup")

    def _supervise(self, process) -> int:
        """Block until the child exits, forwarding SIGINT/SIGTERM."""
        try:
            return process.wait()
        except KeyboardInterrupt:
            print()
            print_info("Shutting down...")
            self._shutdown(process)
            raise LaunchInterrupted("Interrupted by user")

    def _shutdown(self, process):
        """Stop the child: SIGINT, then terminate, then kill."""
        if process.poll() is not None:
            return
        # Ctrl+C in a terminal already reaches the child's process group
        try:
            process.wait(timeout=min(1.0, self.shutdown_grace))
            return
        except subprocess.TimeoutExpired:
            pass

        process.send_signal(signal.SIGINT)
        try:
            process.wait(timeout=self.shutdown_grace)
            return
        except subprocess.TimeoutExpired:
            pass

        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()


def _raise_keyboard_interrupt(signum, frame):
    raise KeyboardInterrupt()


def wan2gp_attempts(python: Sequence[str], entrypoint: str, port: int, i2v: bool = False) -> List[LaunchAttempt]:
    """Fallback order for Wan2GP: --port, then --server-port, then no port flag."""
    mode = ("--i2v",) if i2v else ()
    executable = (*python, entrypoint)
    argument_sets = [
        (*mode, "--port", str(port)),
        (*mode, "--server-port", str(port)),
        mode,
    ]
    return [
        LaunchAttempt(
            executable=executable,
            argument_set=args,
            label=" ".join((entrypoint,) + args),
        )
        for args in argument_sets
    ]
