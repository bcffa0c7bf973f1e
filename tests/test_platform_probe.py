"""Tests for CapabilityProbe host detection.

Every detector is exercised with the host mocked out, so results do not
depend on the machine running the tests.
"""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from wan_bootstrap.models import CapabilityReport, CpuArch, GpuBackend, OSFamily
from wan_bootstrap.platform import CapabilityProbe


def which_only(*available):
    """shutil.which replacement that only finds the given executables."""
    def _which(name, path=None):
        return f"/usr/bin/{name}" if name in available else None
    return _which


class TestDetectOSFamily:
    def test_darwin_with_brew(self):
        with patch("wan_bootstrap.platform.shutil.which", which_only("brew")):
            assert CapabilityProbe.detect_os_family("Darwin") == (OSFamily.MACOS, "brew")

    def test_darwin_without_brew(self):
        with patch("wan_bootstrap.platform.shutil.which", which_only()):
            assert CapabilityProbe.detect_os_family("Darwin") == (OSFamily.MACOS, "unknown")

    @pytest.mark.parametrize("tool,expected", [
        ("apt", (OSFamily.LINUX_DEBIAN, "apt")),
        ("apt-get", (OSFamily.LINUX_DEBIAN, "apt")),
        ("dnf", (OSFamily.LINUX_REDHAT, "dnf")),
        ("yum", (OSFamily.LINUX_REDHAT, "yum")),
        ("pacman", (OSFamily.LINUX_ARCH, "pacman")),
    ])
    def test_linux_by_package_manager(self, tool, expected):
        with patch("wan_bootstrap.platform.shutil.which", which_only(tool)):
            assert CapabilityProbe.detect_os_family("Linux") == expected

    def test_linux_without_package_manager_is_still_supported(self):
        with patch("wan_bootstrap.platform.shutil.which", which_only()):
            family, pm = CapabilityProbe.detect_os_family("Linux")
        assert family == OSFamily.LINUX
        assert family.is_linux
        assert pm == "unknown"

    @pytest.mark.parametrize("system", ["Windows", "FreeBSD", "CYGWIN_NT-10.0", "", None])
    def test_other_systems_unsupported(self, system):
        family, _ = CapabilityProbe.detect_os_family(system)
        assert family == OSFamily.UNSUPPORTED


class TestDetectCpuArch:
    @pytest.mark.parametrize("machine,expected", [
        ("x86_64", CpuArch.X86_64),
        ("AMD64", CpuArch.X86_64),
        ("arm64", CpuArch.ARM64),
        ("aarch64", CpuArch.ARM64),
        ("riscv64", CpuArch.X86_64),
        ("", CpuArch.X86_64),
    ])
    def test_mapping(self, machine, expected):
        assert CapabilityProbe.detect_cpu_arch(machine) == expected


class TestDetectGpu:
    def test_nvidia_smi_reports_name(self):
        with patch("wan_bootstrap.platform.shutil.which", which_only("nvidia-smi")), \
             patch("wan_bootstrap.platform.run_command", return_value=(True, "NVIDIA GeForce RTX 4090\n")) as mock_run:
            backend, name, source = CapabilityProbe.detect_gpu()
        assert (backend, name, source) == (GpuBackend.CUDA, "NVIDIA GeForce RTX 4090", "nvidia-smi")
        assert "--query-gpu=name" in mock_run.call_args[0][0]

    def test_failing_nvidia_smi_falls_through_to_nvcc(self):
        with patch("wan_bootstrap.platform.shutil.which", which_only("nvidia-smi", "nvcc")), \
             patch("wan_bootstrap.platform.run_command", return_value=(False, "")):
            assert CapabilityProbe.detect_gpu() == (GpuBackend.CUDA, None, "nvcc")

    def test_cuda_directory(self, tmp_path):
        with patch("wan_bootstrap.platform.shutil.which", which_only()), \
             patch("wan_bootstrap.platform.CUDA_INSTALL_DIRS", (tmp_path / "missing", tmp_path)):
            assert CapabilityProbe.detect_gpu() == (GpuBackend.CUDA, None, str(tmp_path))

    def test_ldconfig_libcuda(self, tmp_path):
        output = "\tlibcuda.so.1 (libc6,x86-64) => /usr/lib/x86_64-linux-gnu/libcuda.so.1\n"
        with patch("wan_bootstrap.platform.shutil.which", which_only("ldconfig")), \
             patch("wan_bootstrap.platform.CUDA_INSTALL_DIRS", (tmp_path / "missing",)), \
             patch("wan_bootstrap.platform.run_command", return_value=(True, output)):
            assert CapabilityProbe.detect_gpu() == (GpuBackend.CUDA, None, "ldconfig")

    def test_nothing_found(self, tmp_path):
        with patch("wan_bootstrap.platform.shutil.which", which_only("ldconfig")), \
             patch("wan_bootstrap.platform.CUDA_INSTALL_DIRS", (tmp_path / "missing",)), \
             patch("wan_bootstrap.platform.run_command", return_value=(True, "libc.so.6\n")):
            assert CapabilityProbe.detect_gpu() == (GpuBackend.NONE, None, None)


class TestProbe:
    @pytest.mark.parametrize("system,machine", [
        ("Linux", "x86_64"),
        ("Linux", "aarch64"),
        ("Darwin", "arm64"),
        ("Darwin", "x86_64"),
        ("Windows", "AMD64"),
        ("SunOS", "sparc"),
        ("", ""),
    ])
    def test_probe_is_total(self, system, machine):
        """Any system/machine string yields a complete report without raising."""
        with patch("wan_bootstrap.platform.platform.system", return_value=system), \
             patch("wan_bootstrap.platform.platform.machine", return_value=machine), \
             patch.object(CapabilityProbe, "detect_gpu", return_value=(GpuBackend.NONE, None, None)):
            report = CapabilityProbe.probe(tools=("git", "nonexistent_tool_xyz"))

        assert isinstance(report, CapabilityReport)
        assert isinstance(report.os_family, OSFamily)
        assert isinstance(report.cpu_arch, CpuArch)
        assert set(report.tool_present) == {"git", "nonexistent_tool_xyz"}
        assert report.has_tool("nonexistent_tool_xyz") is False
        assert report.system == system

    def test_default_tools_are_the_hard_requirements(self):
        with patch.object(CapabilityProbe, "detect_gpu", return_value=(GpuBackend.NONE, None, None)):
            report = CapabilityProbe.probe()
        assert set(report.tool_present) == {"conda", "git"}

    def test_report_is_frozen(self):
        report = CapabilityReport(os_family=OSFamily.LINUX, cpu_arch=CpuArch.X86_64)
        with pytest.raises(Exception):
            report.os_family = OSFamily.MACOS

    def test_unsupported_report(self):
        report = CapabilityReport(os_family=OSFamily.UNSUPPORTED, cpu_arch=CpuArch.X86_64)
        assert report.supported is False


class TestMissingDependencyInstructions:
    def test_debian(self):
        report = CapabilityReport(os_family=OSFamily.LINUX_DEBIAN, cpu_arch=CpuArch.X86_64, package_manager="apt")
        text = CapabilityProbe.get_missing_dependency_instructions("git", report)
        assert "sudo apt update && sudo apt install -y git" in text

    def test_macos_git_without_brew(self):
        report = CapabilityReport(os_family=OSFamily.MACOS, cpu_arch=CpuArch.ARM64)
        text = CapabilityProbe.get_missing_dependency_instructions("git", report)
        assert "xcode-select --install" in text

    def test_macos_with_brew(self):
        report = CapabilityReport(os_family=OSFamily.MACOS, cpu_arch=CpuArch.ARM64, package_manager="brew")
        assert "brew install ffmpeg" in CapabilityProbe.get_missing_dependency_instructions("ffmpeg", report)

    def test_generic_linux(self):
        report = CapabilityReport(os_family=OSFamily.LINUX, cpu_arch=CpuArch.X86_64)
        text = CapabilityProbe.get_missing_dependency_instructions("git", report)
        assert "package manager" in text
