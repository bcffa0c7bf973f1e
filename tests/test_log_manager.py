"""Tests for log capture, headers and rotation."""

import os
import sys
import time
from io import StringIO
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from log_manager import LogCapture, TeeWriter
from wan_bootstrap.models import CapabilityReport, CpuArch, GpuBackend, OSFamily

REPORT = CapabilityReport(
    os_family=OSFamily.LINUX_DEBIAN,
    cpu_arch=CpuArch.X86_64,
    gpu_backend=GpuBackend.CUDA,
    gpu_name="NVIDIA RTX 4090",
    gpu_source="nvidia-smi",
    system="Linux",
    machine="x86_64",
    package_manager="apt",
)


class BrokenStream:
    def write(self, data):
        raise OSError("disk full")

    def flush(self):
        raise OSError("disk full")


class TestTeeWriter:
    def test_writes_to_all_streams(self):
        a, b = StringIO(), StringIO()
        TeeWriter(a, b).write("hello")
        assert a.getvalue() == b.getvalue() == "hello"

    def test_broken_stream_does_not_stop_others(self):
        good = StringIO()
        tee = TeeWriter(BrokenStream(), good)
        tee.write("still here")
        tee.flush()
        assert good.getvalue() == "still here"


class TestLogCapture:
    def test_captures_output_with_header(self, tmp_path, capsys):
        with LogCapture(log_dir=tmp_path, report=REPORT) as log:
            print("bootstrap output")
            log_path = log.get_log_path()

        content = log_path.read_text()
        assert "Wan2GP Bootstrap Log" in content
        assert "linux_debian (Linux x86_64)" in content
        assert "cuda (NVIDIA RTX 4090)" in content
        assert "Package Manager: apt" in content
        assert "bootstrap output" in content
        assert "bootstrap output" in capsys.readouterr().out
        assert log_path.name.endswith("_linux_debian_wan2gp.log")

    def test_restores_streams(self, tmp_path):
        original = sys.stdout
        with LogCapture(log_dir=tmp_path, report=REPORT):
            assert sys.stdout is not original
        assert sys.stdout is original

    def test_records_fatal_error(self, tmp_path):
        capture = LogCapture(log_dir=tmp_path, report=REPORT)
        try:
            with capture:
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert "FATAL ERROR: RuntimeError: boom" in capture.get_log_path().read_text()

    def test_unwritable_dir_disables_logging(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with LogCapture(log_dir=blocker / "logs", report=REPORT) as log:
            print("runs anyway")
        assert log.get_log_path() is None

    def test_rotation_keeps_newest(self, tmp_path):
        for i in range(5):
            old = tmp_path / f"old_{i}.log"
            old.write_text("old")
            stamp = time.time() - 1000 + i
            os.utime(old, (stamp, stamp))

        with LogCapture(log_dir=tmp_path, max_logs=3, report=REPORT) as log:
            current = log.get_log_path()

        remaining = sorted(p.name for p in tmp_path.glob("*.log"))
        assert len(remaining) == 3
        assert current.name in remaining
        assert "old_4.log" in remaining
        assert "old_0.log" not in remaining
