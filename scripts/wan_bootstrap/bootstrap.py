"""Bootstrap orchestrator.

This module contains the EnvironmentBootstrap class that runs the full
setup-and-launch procedure, plus the two smaller flows behind the
companion entry points (tool installation and interactive Miniconda).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from env_config import (
    CONDA_ROOT,
    DEFAULT_PORT,
    PROBE_TIMEOUT,
    WAN2GP_DIR,
    WAN2GP_ENTRYPOINT,
    WAN2GP_REPO,
    get_activation_command,
    get_activation_instructions,
)

from .conda import CondaEnvironmentManager
from .dependencies import TORCH_CHECK, DependencyInstaller
from .environment import launch_patch
from .errors import BootstrapError, LaunchError, MissingPrerequisite, UnsupportedPlatform
from .installers import CloudflaredInstaller, InstallOutcome, SystemPackageInstaller, ToolInstaller, miniconda_target
from .launcher import ProcessLauncher, wan2gp_attempts
from .models import CapabilityReport, EnvironmentPatch, GpuBackend, InstallStatus, RepoState, RevisionPolicy
from .platform import CapabilityProbe
from .repo import RepoSync
from .utils import ask_yes_no, print_error, print_header, print_info, print_step, print_success, print_warning, run_command

REQUIRED_TOOLS = ("git",)


@dataclass
class BootstrapOptions:
    port: int = DEFAULT_PORT
    i2v: bool = False
    skip_conda: bool = False
    update_only: bool = False
    force_deps: bool = False
    wan_dir: Path = field(default_factory=lambda: WAN2GP_DIR)


def check_system_requirements(report: CapabilityReport):
    """Fail fast on unsupported hosts and missing required tools.

    Raises:
        UnsupportedPlatform: If the OS is not macOS or Linux
        MissingPrerequisite: If a required tool (git) is absent
    """
    print_step("Checking system requirements...")

    if not report.supported:
        raise UnsupportedPlatform(
            f"Unsupported operating system: {report.system or 'unknown'}",
            "This script supports macOS and Linux-based systems"
        )
    print_success(f"OS: {report.os_family.value} ({report.cpu_arch.value})")

    for tool in REQUIRED_TOOLS:
        if not report.has_tool(tool):
            raise MissingPrerequisite(
                f"Required dependency missing: {tool}",
                CapabilityProbe.get_missing_dependency_instructions(tool, report)
            )

    if report.gpu_backend == GpuBackend.CUDA:
        print_success(f"CUDA detected: {report.gpu_name or report.gpu_source}")
    else:
        print_warning("No CUDA runtime detected - PyTorch will be installed CPU-only")

    print_success("System requirements check passed")


def ensure_conda(report: CapabilityReport, tool_installer: ToolInstaller = None,
                 conda_root: Path = None) -> InstallOutcome:
    """Install Miniconda if needed and make it usable in this process."""
    tool_installer = tool_installer or ToolInstaller()
    outcome = tool_installer.ensure(miniconda_target(conda_root), report)
    outcome.patch.apply()

    if outcome.status == InstallStatus.INSTALLED_BUT_NOT_ON_PATH:
        print_warning(outcome.remediation)
    elif outcome.status == InstallStatus.INSTALLED:
        print_info(get_activation_instructions(conda_root or CONDA_ROOT))
    return outcome


class EnvironmentBootstrap:
    """Runs the full Wan2GP setup-and-launch procedure.

    Collaborators can be injected for tests; by default each is built from
    env_config values.
    """

    def __init__(
        self,
        options: BootstrapOptions,
        report: Optional[CapabilityReport] = None,
        tool_installer: Optional[ToolInstaller] = None,
        conda_manager: Optional[CondaEnvironmentManager] = None,
        repo_sync: Optional[RepoSync] = None,
        dependency_installer: Optional[DependencyInstaller] = None,
        launcher: Optional[ProcessLauncher] = None,
    ):
        self.options = options
        self.report = report
        self.tool_installer = tool_installer or ToolInstaller()
        self.conda_manager = conda_manager or CondaEnvironmentManager()
        self.repo_sync = repo_sync or RepoSync()
        self.dependency_installer = dependency_installer or DependencyInstaller(self.conda_manager)
        self.launcher = launcher or ProcessLauncher()

    @property
    def wan_dir(self) -> Path:
        return Path(self.options.wan_dir).resolve()

    def run(self) -> int:
        """Run every step in order.

        Returns:
            0 after --update-only, otherwise the server's exit code

        Raises:
            BootstrapError: On the first failing step
        """
        print_header("Wan2GP Setup and Launch")
        print_info(f"Target port: {self.options.port}")

        if self.report is None:
            self.report = CapabilityProbe.probe()

        check_system_requirements(self.report)

        conda_exe = None
        if not self.options.skip_conda:
            print_step("Checking Miniconda...")
            conda_exe = ensure_conda(self.report, self.tool_installer).executable

        self.setup_conda_environment(conda_exe)
        self.sync_repository()

        print_step("Installing dependencies...")
        self.dependency_installer.install(self.wan_dir, self.report, force=self.options.force_deps)

        if self.options.update_only:
            print_success("Update completed successfully!")
            if not self.options.force_deps:
                print_info("Use --force-deps if you want to force reinstall dependencies")
            return 0

        return self.launch()

    def setup_conda_environment(self, conda_exe: Optional[Path] = None):
        print_step("Setting up conda environment...")
        if not self.conda_manager.detect_conda(conda_exe):
            raise MissingPrerequisite(
                "conda not found",
                "Re-run without --skip-conda to install Miniconda, or run: "
                f"export PATH=\"{CONDA_ROOT / 'bin'}:$PATH\""
            )
        print_success(f"Conda available ({self.conda_manager.conda_exe})")

        if self.conda_manager.ensure_environment():
            print_info(f"Activate it in new terminals with: {get_activation_command()}")
        self.conda_manager.report_active()

    def sync_repository(self):
        print_step("Setting up Wan2GP repository...")
        state = RepoState(
            local_path=self.wan_dir,
            remote_url=WAN2GP_REPO,
            revision_policy=RevisionPolicy.HARD_RESET,
        )
        result = self.repo_sync.sync(state)
        if result.revision:
            print_info(f"Wan2GP at revision {result.revision} ({result.action.value})")
        return result

    def launch(self) -> int:
        """Start wgp.py, trying each port flag spelling in turn.

        Raises:
            LaunchError: If wgp.py is missing or every attempt fails
            LaunchInterrupted: If the user stops the server
        """
        print_step("Launching Wan2GP...")
        wan_dir = self.wan_dir
        if not (wan_dir / WAN2GP_ENTRYPOINT).is_file():
            raise LaunchError(
                f"{WAN2GP_ENTRYPOINT} not found in {wan_dir}",
                "Re-run the bootstrap to re-sync the Wan2GP repository"
            )

        print_info("Performing pre-launch checks...")
        torch_ok, _ = run_command(
            self.conda_manager.python_command(["-c", TORCH_CHECK]),
            check=False, capture=True, timeout=PROBE_TIMEOUT * 12
        )
        if torch_ok:
            print_success("PyTorch is working correctly")
        else:
            print_warning("PyTorch may have issues, but attempting to launch anyway...")

        port = self.options.port
        patch = launch_patch(port, self.report)
        for note in patch.notes:
            print_info(note)

        mode = " in image-to-video mode" if self.options.i2v else ""
        print_success(f"Starting Wan2GP{mode} on port {port}...")
        print_info(f"Access the interface at: http://localhost:{port}")
        print_info("Press Ctrl+C to stop the server")

        attempts = wan2gp_attempts(
            self.conda_manager.python_command([]), WAN2GP_ENTRYPOINT, port, i2v=self.options.i2v
        )
        result = self.launcher.launch(attempts, env=patch.variables, cwd=wan_dir)
        print_info(f"Wan2GP exited with code {result.returncode}")
        return result.returncode


def install_tools(report: Optional[CapabilityReport] = None, tool_installer: ToolInstaller = None,
                  system_installers: Dict[str, SystemPackageInstaller] = None) -> bool:
    """Ensure conda, cloudflared and ffmpeg are installed.

    Each tool is attempted even if an earlier one failed.

    Returns:
        True if every tool ended up installed
    """
    print_header("Wan2GP Tool Installation")
    report = report or CapabilityProbe.probe(tools=("conda", "git", "cloudflared", "ffmpeg"))
    if not report.supported:
        raise UnsupportedPlatform(
            f"Unsupported operating system: {report.system or 'unknown'}",
            "This script supports macOS and Linux-based systems"
        )

    system_installers = system_installers or {
        "cloudflared": CloudflaredInstaller(),
        "ffmpeg": SystemPackageInstaller("FFmpeg", "ffmpeg"),
    }

    failed = []
    added = EnvironmentPatch()

    print_step("Checking Conda...")
    try:
        outcome = ensure_conda(report, tool_installer)
        if outcome.changed:
            added = added.merge(outcome.patch)
    except BootstrapError as e:
        print_error(f"[{e.category}] {e.message}")
        if e.remediation:
            print_info(e.remediation)
        failed.append("conda")

    for name, installer in system_installers.items():
        print_step(f"Checking {installer.name}...")
        try:
            installer.ensure(report)
        except BootstrapError as e:
            print_error(f"[{e.category}] {e.message}")
            if e.remediation:
                print_info(e.remediation)
            failed.append(name)

    if not added.is_empty():
        print_info("If a new terminal cannot find the installed tools, run:")
        print_info(f'    export PATH="{os.pathsep.join(added.prepend_path)}:$PATH"')

    if failed:
        print_error(f"Installation incomplete: {', '.join(failed)}")
        return False

    print_header("Installation Complete!")
    return True


def install_miniconda_interactive(report: Optional[CapabilityReport] = None, assume_yes: bool = False,
                                  tool_installer: ToolInstaller = None) -> bool:
    """Report an existing conda, or confirm and install Miniconda.

    Returns:
        False if the user declined, True otherwise
    """
    print_info("Checking for existing Miniconda installation...")
    manager = CondaEnvironmentManager()
    if manager.detect_conda():
        print_info("Conda is already installed!")
        run_command([manager.conda_exe, "--version"], check=False)
        print_info("Conda environments:")
        run_command([manager.conda_exe, "info", "--envs"], check=False)
        return True

    print_info("Miniconda not found. Starting installation...")
    report = report or CapabilityProbe.probe()
    if not report.supported:
        raise UnsupportedPlatform(
            f"Unsupported operating system: {report.system or 'unknown'}",
            "This installer supports macOS and Linux-based systems"
        )

    if not assume_yes and not ask_yes_no("Do you want to install Miniconda?", default=False):
        print_info("Installation cancelled by user")
        return False

    ensure_conda(report, tool_installer)
    return True
