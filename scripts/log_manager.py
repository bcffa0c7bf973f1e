"""Automatic log capture and rotation for bootstrap runs.

Captures all terminal output (stdout/stderr) of a bootstrap run to a
timestamped log file with automatic rotation (keeps newest 10 logs). Each
log starts with a header built from the host capability report, so a bug
report carries the OS, architecture and GPU runtime that were detected.

Usage:
    from log_manager import LogCapture

    with LogCapture(report=report) as log:
        bootstrap.run()

    # Log file automatically saved and rotated
"""

import platform
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO

from env_config import LOG_DIR
from wan_bootstrap.models import CapabilityReport
from wan_bootstrap.platform import CapabilityProbe


class TeeWriter:
    """Write to multiple streams simultaneously (tee-like behavior).

    If writing to one stream fails, continues with the others. The first
    stream (the terminal) is always written first so the user sees output
    even if the log file breaks.
    """

    def __init__(self, *streams: TextIO):
        self.streams = streams

    def write(self, data: str) -> None:
        if not isinstance(data, str):
            data = str(data)

        for stream in self.streams:
            try:
                stream.write(data)
                stream.flush()
            except (OSError, ValueError):
                continue

    def flush(self) -> None:
        for stream in self.streams:
            try:
                stream.flush()
            except (OSError, ValueError):
                continue

    def isatty(self) -> bool:
        """Delegates to the first stream, which decides whether we're interactive."""
        if self.streams:
            try:
                return self.streams[0].isatty()
            except (OSError, ValueError, AttributeError):
                return False
        return False

    def fileno(self) -> int:
        return self.streams[0].fileno()


class LogCapture:
    """Context manager for capturing terminal output to log files.

    Logging must never stop a bootstrap: if the log directory or file cannot
    be created, capture is disabled and the wrapped code runs normally.

    Attributes:
        log_dir: Directory where logs are stored (default: env_config.LOG_DIR)
        max_logs: Maximum number of logs to keep (default: 10)
    """

    def __init__(self, log_dir: Path = None, max_logs: int = 10, report: CapabilityReport = None):
        self.log_dir = Path(log_dir) if log_dir is not None else LOG_DIR
        self.max_logs = max(1, min(max_logs, 100))
        self.report = report
        self.log_file: Optional[Path] = None
        self.log_handle: Optional[TextIO] = None
        self._logging_enabled = False

        self._original_stdout = sys.stdout if sys.stdout is not None else sys.__stdout__
        self._original_stderr = sys.stderr if sys.stderr is not None else sys.__stderr__

    def __enter__(self):
        if self.report is None:
            self.report = CapabilityProbe.probe()

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = self._generate_log_filename()
            self.log_handle = open(self.log_file, 'w', encoding='utf-8')
            self._write_log_header()
        except OSError as e:
            print(f"Log capture disabled: {e}", file=self._original_stderr)
            if self.log_handle:
                self.log_handle.close()
            self.log_handle = None
            self.log_file = None
            return self

        sys.stdout = TeeWriter(self._original_stdout, self.log_handle)
        sys.stderr = TeeWriter(self._original_stderr, self.log_handle)
        self._logging_enabled = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore stdout/stderr, note any fatal error, then rotate."""
        sys.stdout = self._original_stdout
        sys.stderr = self._original_stderr

        if not self._logging_enabled:
            return False

        try:
            if exc_type is not None and not issubclass(exc_type, SystemExit):
                self.log_handle.write(f"\n{'='*80}\n")
                self.log_handle.write(f"FATAL ERROR: {exc_type.__name__}: {exc_val}\n")
                self.log_handle.write(f"{'='*80}\n")
            self.log_handle.close()
            self._rotate_logs()
        except OSError as e:
            print(f"Could not finalize log: {e}", file=self._original_stderr)

        return False

    def _generate_log_filename(self) -> Path:
        """Timestamped filename: YYYYMMDD_HHMMSS_microseconds_<os_family>_wan2gp.log

        Microseconds keep names unique for runs started in the same second.
        """
        now = datetime.now()
        timestamp = now.strftime("%Y%m%d_%H%M%S")
        return self.log_dir / f"{timestamp}_{now.microsecond:06d}_{self.report.os_family.value}_wan2gp.log"

    def _write_log_header(self) -> None:
        report = self.report
        gpu = report.gpu_backend.value
        if report.gpu_name:
            gpu = f"{gpu} ({report.gpu_name})"
        elif report.gpu_source:
            gpu = f"{gpu} (via {report.gpu_source})"

        header = f"""{'='*80}
Wan2GP Bootstrap Log
{'='*80}
Timestamp:       {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}
Git Commit:      {self._get_git_commit()}
OS:              {report.os_family.value} ({report.system} {report.machine})
Architecture:    {report.cpu_arch.value}
GPU Backend:     {gpu}
Package Manager: {report.package_manager}
Shell:           {report.shell}
Python Version:  {sys.version.split()[0]}
Platform:        {platform.platform()}
Command:         {' '.join(str(arg) for arg in sys.argv)}
{'='*80}

"""
        self.log_handle.write(header)
        self.log_handle.flush()

    def _get_git_commit(self) -> str:
        """Commit and branch of this checkout, e.g. "abc1234 (main)"."""
        repo_root = Path(__file__).parent.parent
        try:
            commit_result = subprocess.run(
                ["git", "rev-parse", "--short", "HEAD"],
                cwd=repo_root, capture_output=True, text=True, timeout=2
            )
            if commit_result.returncode != 0:
                return "unknown (not a git repository)"
            commit_hash = commit_result.stdout.strip()

            branch_result = subprocess.run(
                ["git", "rev-parse", "--abbrev-ref", "HEAD"],
                cwd=repo_root, capture_output=True, text=True, timeout=2
            )
        except (OSError, subprocess.TimeoutExpired):
            return "unknown"

        if branch_result.returncode == 0:
            return f"{commit_hash} ({branch_result.stdout.strip()})"
        return commit_hash

    def _rotate_logs(self) -> None:
        """Keep only the newest max_logs log files."""
        log_files = sorted(
            self.log_dir.glob("*.log"),
            key=lambda p: p.stat().st_mtime,
            reverse=True
        )
        for old_log in log_files[self.max_logs:]:
            old_log.unlink()
            print(f"Rotated old log: {old_log.name}", file=self._original_stdout)

    def get_log_path(self) -> Optional[Path]:
        return self.log_file
