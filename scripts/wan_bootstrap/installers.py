"""Tool installers for the Wan2GP bootstrap.

This module provides installers for tools fetched as standalone installers
(Miniconda) and for tools installed through the OS package manager
(ffmpeg, cloudflared).
"""

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from env_config import (
    CLOUDFLARED_BIN_URL,
    CLOUDFLARED_DEB_URL,
    CONDA_ROOT,
    INSTALLER_TIMEOUT,
    MINICONDA_URL_TEMPLATE,
    PROBE_TIMEOUT,
)

from .downloader import download_file, download_workspace
from .environment import rc_file_for_shell, register_shell_hooks, tool_patch
from .errors import CorruptInstallation, InstallError, MissingPrerequisite, UnsupportedPlatform
from .models import CapabilityReport, CpuArch, EnvironmentPatch, InstallStatus, InstallTarget, OSFamily
from .platform import CapabilityProbe
from .utils import check_command_available, print_info, print_success, print_warning, run_command

Downloader = Callable[[str, Path], Path]


@dataclass
class InstallOutcome:
    """Result of ensuring a tool is present."""
    status: InstallStatus
    name: str
    executable: Optional[Path] = None
    patch: EnvironmentPatch = field(default_factory=EnvironmentPatch)
    warnings: List[str] = field(default_factory=list)
    remediation: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.status != InstallStatus.ALREADY_PRESENT


def miniconda_target(install_path: Path = None) -> InstallTarget:
    """Install target for Miniconda under the user's home."""
    return InstallTarget(
        name="conda",
        download_url=MINICONDA_URL_TEMPLATE,
        install_path=install_path or CONDA_ROOT,
        verify_command=("{binary}", "--version"),
        binaries=("bin/conda", "condabin/conda"),
        shell_init=True,
    )


def resolve_download_url(target: InstallTarget, report: CapabilityReport) -> str:
    """Fill the ``{platform}``/``{arch}`` placeholders of a download URL.

    Raises:
        UnsupportedPlatform: If the report's OS family is unsupported.
    """
    if not report.supported:
        raise UnsupportedPlatform(
            f"Unsupported operating system: {report.system or 'unknown'}",
            "This installer supports macOS and Linux-based systems"
        )

    if report.os_family == OSFamily.MACOS:
        platform_name = "MacOSX"
        arch = "arm64" if report.cpu_arch == CpuArch.ARM64 else "x86_64"
    else:
        platform_name = "Linux"
        arch = "aarch64" if report.cpu_arch == CpuArch.ARM64 else "x86_64"

    return target.download_url.format(platform=platform_name, arch=arch)


class ToolInstaller:
    """Idempotently installs a tool from a downloaded batch-mode installer."""

    def __init__(self, downloader: Downloader = download_file, timeout: float = INSTALLER_TIMEOUT):
        self.downloader = downloader
        self.timeout = timeout

    def ensure(self, target: InstallTarget, report: CapabilityReport) -> InstallOutcome:
        """Make sure ``target`` is installed.

        Raises:
            UnsupportedPlatform: Before any network I/O on unsupported hosts
            DownloadError: If the installer cannot be fetched
            InstallError: If a fresh install fails
            CorruptInstallation: If reinstalling over a corrupt install fails
        """
        if report.has_tool(target.name):
            found = shutil.which(target.name)
            print_info(f"{target.name} is already installed")
            return InstallOutcome(
                status=InstallStatus.ALREADY_PRESENT,
                name=target.name,
                executable=Path(found) if found else None,
            )

        # Fails fast for unsupported hosts before anything touches disk or network
        url = resolve_download_url(target, report)

        replacing_corrupt = False
        if target.install_path.exists():
            print_info(f"{target.name} directory already exists at {target.install_path}")
            binary = target.find_binary()
            if binary:
                print_success(f"Valid {target.name} installation found, skipping installation")
                return self._finish(target, report, binary, InstallStatus.ALREADY_PRESENT)
            print_warning(f"{target.name} directory exists but appears corrupted, removing and reinstalling...")
            self._remove(target.install_path)
            replacing_corrupt = True

        print_info(f"Downloading {target.name} installer for {report.os_family.value} ({report.cpu_arch.value})...")
        with download_workspace() as workdir:
            installer = self.downloader(url, workdir)
            binary = self._run_installer(target, installer)

        if binary is None:
            self._remove(target.install_path)
            if replacing_corrupt:
                raise CorruptInstallation(
                    f"Reinstalling {target.name} over a corrupt installation failed",
                    f"Remove {target.install_path} manually and re-run"
                )
            raise InstallError(
                f"Batch installation of {target.name} failed",
                f"Installer URL: {url}"
            )

        print_success(f"{target.name} installed successfully in batch mode")
        return self._finish(target, report, binary, InstallStatus.INSTALLED)

    def _run_installer(self, target: InstallTarget, installer: Path) -> Optional[Path]:
        """Run the installer non-interactively; return the installed binary."""
        installer.chmod(0o755)
        cmd = [
            arg.format(installer=installer, prefix=target.install_path)
            for arg in target.installer_args
        ]
        print_info(f"Installing {target.name} in batch mode (non-interactive)...")
        success, _ = run_command(cmd, check=False, timeout=self.timeout)
        if not success:
            return None
        return target.find_binary()

    def _finish(
        self,
        target: InstallTarget,
        report: CapabilityReport,
        binary: Path,
        status: InstallStatus,
    ) -> InstallOutcome:
        patch = tool_patch(target, binary)
        warnings = []
        registered = []

        if target.shell_init:
            registered, hook_warnings = register_shell_hooks(binary, report.shell)
            for shell in registered:
                print_success(f"{target.name} initialized successfully for {shell} ({rc_file_for_shell(shell)})")
            for warning in hook_warnings:
                print_warning(warning)
            warnings.extend(hook_warnings)

        if target.verify_command:
            cmd = [arg.format(binary=binary) for arg in target.verify_command]
            success, output = run_command(cmd, check=False, capture=True, timeout=PROBE_TIMEOUT * 6)
            if success and output.strip():
                print_info(f"{target.name} version: {output.strip().splitlines()[0]}")
            elif not success:
                warnings.append(f"'{' '.join(cmd)}' failed")

        # Re-probe the PATH a new terminal inherits; the patch only covers this process
        on_path = shutil.which(target.name, path=os.environ.get("PATH")) is not None
        if not on_path and not registered:
            bin_dir = binary.parent
            remediation = (
                f"Restart your terminal, or run: export PATH=\"{bin_dir}:$PATH\""
            )
            print_warning(f"{target.name} installed but may not be immediately available")
            return InstallOutcome(
                status=InstallStatus.INSTALLED_BUT_NOT_ON_PATH,
                name=target.name,
                executable=binary,
                patch=patch,
                warnings=warnings,
                remediation=remediation,
            )

        return InstallOutcome(status=status, name=target.name, executable=binary, patch=patch, warnings=warnings)

    @staticmethod
    def _remove(path: Path):
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path, ignore_errors=True)
        elif path.exists() or path.is_symlink():
            path.unlink()


# =============================================================================
# SYSTEM PACKAGES
# =============================================================================

def privileged(cmd: List[str], report: CapabilityReport) -> List[str]:
    """Prefix sudo when needed and available."""
    if report.is_root:
        return cmd
    if report.has_sudo:
        print_warning("This operation requires sudo privileges...")
        return ["sudo", *cmd]
    print_warning("sudo not available, running without privileges...")
    return cmd


class SystemPackageInstaller:
    """Installer for system packages via the OS package manager."""

    def __init__(self, name: str, package: str = None, command: str = None, timeout: float = INSTALLER_TIMEOUT):
        self.name = name
        self.package = package or name
        self.command = command or self.package
        self.timeout = timeout

    def check(self) -> bool:
        """Check if command is available system-wide."""
        return check_command_available(self.command)

    def ensure(self, report: CapabilityReport) -> InstallOutcome:
        if report.has_tool(self.command) or self.check():
            print_success(f"{self.name} is already installed")
            return InstallOutcome(InstallStatus.ALREADY_PRESENT, self.name, Path(shutil.which(self.command) or self.command))

        if not report.supported:
            raise UnsupportedPlatform(f"Unsupported operating system: {report.system or 'unknown'}")

        print_info(f"{self.name} not found. Installing...")
        self.install(report)

        found = shutil.which(self.command)
        if not found:
            raise InstallError(
                f"{self.name} install finished but '{self.command}' is not on PATH",
                CapabilityProbe.get_missing_dependency_instructions(self.package, report)
            )
        print_success(f"{self.name} installed successfully")
        return InstallOutcome(InstallStatus.INSTALLED, self.name, Path(found))

    def install(self, report: CapabilityReport):
        for cmd in self.package_manager_commands(report):
            success, _ = run_command(cmd, check=False, stream=True, timeout=self.timeout)
            if not success:
                raise InstallError(
                    f"'{' '.join(cmd)}' failed while installing {self.name}",
                    CapabilityProbe.get_missing_dependency_instructions(self.package, report)
                )

    def package_manager_commands(self, report: CapabilityReport) -> List[List[str]]:
        pm = report.package_manager
        if pm == "apt":
            return [
                privileged(["apt-get", "update"], report),
                privileged(["apt-get", "install", "-y", self.package], report),
            ]
        if pm in ("yum", "dnf"):
            return [privileged([pm, "install", "-y", self.package], report)]
        if pm == "pacman":
            return [privileged(["pacman", "-S", "--noconfirm", self.package], report)]
        if pm == "brew":
            return [["brew", "install", self.package]]
        raise MissingPrerequisite(
            f"Package manager not found. Please install {self.name} manually.",
            CapabilityProbe.get_missing_dependency_instructions(self.package, report)
        )


class CloudflaredInstaller(SystemPackageInstaller):
    """cloudflared ships as a .deb or a static binary rather than a distro package."""

    def __init__(self, downloader: Downloader = download_file, timeout: float = INSTALLER_TIMEOUT):
        super().__init__("Cloudflared", "cloudflared", timeout=timeout)
        self.downloader = downloader

    def install(self, report: CapabilityReport):
        if report.os_family == OSFamily.MACOS:
            return super().install(report)

        deb_url, bin_url = CLOUDFLARED_DEB_URL, CLOUDFLARED_BIN_URL
        if report.cpu_arch == CpuArch.ARM64:
            deb_url = deb_url.replace("amd64", "arm64")
            bin_url = bin_url.replace("amd64", "arm64")

        with download_workspace(prefix="cloudflared-") as workdir:
            if check_command_available("dpkg"):
                package = self.downloader(deb_url, workdir)
                cmd = privileged(["dpkg", "-i", str(package)], report)
            else:
                binary = self.downloader(bin_url, workdir)
                cmd = privileged(
                    ["install", "-m", "755", str(binary), "/usr/local/bin/cloudflared"], report
                )
            success, _ = run_command(cmd, check=False, stream=True, timeout=self.timeout)

        if not success:
            raise InstallError(
                f"'{' '.join(cmd)}' failed while installing {self.name}",
                "See https://developers.cloudflare.com/cloudflare-one/connections/connect-networks/downloads/"
            )
