"""Platform detection and OS-specific instructions.

Provides the capability probe (OS family, CPU architecture, GPU runtime and
tool availability) and OS-specific installation instructions for system
dependencies on Linux and macOS.
"""

import os
import platform
import shutil
from pathlib import Path
from typing import Iterable, Optional, Tuple

from env_config import PROBE_TIMEOUT

from .models import CapabilityReport, CpuArch, GpuBackend, OSFamily
from .utils import run_command

# Tools the bootstrap cares about by default
DEFAULT_TOOLS = ("conda", "git")

# Known CUDA toolkit install locations, checked after nvidia-smi and nvcc
CUDA_INSTALL_DIRS = (Path("/usr/local/cuda"), Path("/opt/cuda"))

# Package manager executable -> (canonical name, Linux family). First match wins.
LINUX_PACKAGE_MANAGERS = (
    ("apt", "apt", OSFamily.LINUX_DEBIAN),
    ("apt-get", "apt", OSFamily.LINUX_DEBIAN),
    ("dnf", "dnf", OSFamily.LINUX_REDHAT),
    ("yum", "yum", OSFamily.LINUX_REDHAT),
    ("pacman", "pacman", OSFamily.LINUX_ARCH),
)


class CapabilityProbe:
    """Read-only inspection of the host."""

    @staticmethod
    def probe(tools: Iterable[str] = DEFAULT_TOOLS) -> CapabilityReport:
        """Build a complete capability report.

        Never raises: unknown systems map to ``OSFamily.UNSUPPORTED`` and
        unknown architectures fall back to x86_64 so callers decide whether
        to abort.
        """
        system = platform.system()
        machine = platform.machine()

        os_family, package_manager = CapabilityProbe.detect_os_family(system)
        gpu_backend, gpu_name, gpu_source = CapabilityProbe.detect_gpu()

        return CapabilityReport(
            os_family=os_family,
            cpu_arch=CapabilityProbe.detect_cpu_arch(machine),
            gpu_backend=gpu_backend,
            gpu_name=gpu_name,
            gpu_source=gpu_source,
            tool_present={name: shutil.which(name) is not None for name in tools},
            system=system,
            machine=machine,
            package_manager=package_manager,
            has_sudo=shutil.which("sudo") is not None,
            is_root=CapabilityProbe._is_root(),
            shell=Path(os.environ.get("SHELL", "bash")).name or "bash",
        )

    @staticmethod
    def detect_os_family(system: str) -> Tuple[OSFamily, str]:
        """Map a ``uname -s`` string to an OS family and package manager.

        Returns:
            Tuple of (os_family, package_manager)
        """
        system = (system or "").lower()

        if system == "darwin":
            return OSFamily.MACOS, "brew" if shutil.which("brew") else "unknown"

        if system == "linux":
            for executable, name, family in LINUX_PACKAGE_MANAGERS:
                if shutil.which(executable):
                    return family, name
            return OSFamily.LINUX, "unknown"

        return OSFamily.UNSUPPORTED, "unknown"

    @staticmethod
    def detect_cpu_arch(machine: str) -> CpuArch:
        machine = (machine or "").lower()
        if machine in ("arm64", "aarch64"):
            return CpuArch.ARM64
        return CpuArch.X86_64

    @staticmethod
    def detect_gpu() -> Tuple[GpuBackend, Optional[str], Optional[str]]:
        """Detect a CUDA runtime. First rule that matches wins.

        1. nvidia-smi runs and reports a device name
        2. nvcc is on PATH
        3. A CUDA toolkit directory exists
        4. libcuda.so is in the dynamic linker cache

        Returns:
            Tuple of (backend, gpu_name, source) where source names the rule
        """
        if shutil.which("nvidia-smi"):
            success, output = run_command(
                ["nvidia-smi", "--query-gpu=name", "--format=csv,noheader,nounits"],
                check=False, capture=True, timeout=PROBE_TIMEOUT
            )
            if success:
                names = [line.strip() for line in output.splitlines() if line.strip()]
                return GpuBackend.CUDA, names[0] if names else None, "nvidia-smi"

        if shutil.which("nvcc"):
            return GpuBackend.CUDA, None, "nvcc"

        for cuda_dir in CUDA_INSTALL_DIRS:
            if cuda_dir.is_dir():
                return GpuBackend.CUDA, None, str(cuda_dir)

        ldconfig = shutil.which("ldconfig") or shutil.which("ldconfig", path="/sbin:/usr/sbin")
        if ldconfig:
            success, output = run_command(
                [ldconfig, "-p"], check=False, capture=True, timeout=PROBE_TIMEOUT
            )
            if success and "libcuda.so" in output:
                return GpuBackend.CUDA, None, "ldconfig"

        return GpuBackend.NONE, None, None

    @staticmethod
    def _is_root() -> bool:
        geteuid = getattr(os, "geteuid", None)
        return geteuid is not None and geteuid() == 0

    @staticmethod
    def get_system_package_install_cmd(
        package: str,
        pkg_manager: str
    ) -> Optional[str]:
        """Get command to install a system package.

        Args:
            package: Package name
            pkg_manager: Package manager ('apt', 'yum', 'brew', etc.)

        Returns:
            Installation command string or None if not available
        """
        commands = {
            "apt": f"sudo apt update && sudo apt install -y {package}",
            "yum": f"sudo yum install -y {package}",
            "dnf": f"sudo dnf install -y {package}",
            "pacman": f"sudo pacman -S {package}",
            "brew": f"brew install {package}",
        }

        return commands.get(pkg_manager)

    @staticmethod
    def get_missing_dependency_instructions(dependency: str, report: CapabilityReport) -> str:
        """Get installation instructions for a missing dependency.

        Args:
            dependency: Name of missing dependency (git, ffmpeg, ...)
            report: Capability report for the current host

        Returns:
            Instruction text
        """
        command = CapabilityProbe.get_system_package_install_cmd(dependency, report.package_manager)

        if report.os_family == OSFamily.MACOS:
            if command:
                return f"Install {dependency} using: {command}"
            if dependency == "git":
                return "Install git using: xcode-select --install (or install Homebrew, then: brew install git)"
            return (
                "Homebrew not found. Install Homebrew first:\n"
                '    /bin/bash -c "$(curl -fsSL https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh)"\n'
                f"Then run: brew install {dependency}"
            )

        if report.os_family.is_linux:
            if command:
                return f"Install {dependency} using: {command}"
            return f"Install {dependency} using your system's package manager"

        return f"Installation instructions not available for {dependency} on {report.system or 'this system'}"
