"""Environment changes for the bootstrap.

Three separate concerns:
- compute: build an EnvironmentPatch (pure)
- apply: EnvironmentPatch.apply() on the current process
- persist: register shell init hooks so future terminals see the tool
"""

import shutil
from pathlib import Path
from typing import List, Optional, Tuple

from env_config import PROBE_TIMEOUT

from .models import CapabilityReport, EnvironmentPatch, InstallTarget
from .utils import run_command

SHELL_RC_FILES = {
    "bash": Path(".bashrc"),
    "zsh": Path(".zshrc"),
    "fish": Path(".config") / "fish" / "config.fish",
}


def tool_patch(target: InstallTarget, binary: Optional[Path] = None) -> EnvironmentPatch:
    """Patch that makes an installed tool discoverable on PATH."""
    dirs = []
    for path in target.binary_paths():
        parent = str(path.parent)
        if parent not in dirs:
            dirs.append(parent)

    variables = {}
    if binary is not None and target.name == "conda":
        variables["CONDA_EXE"] = str(binary)

    return EnvironmentPatch(
        variables=variables,
        prepend_path=dirs,
        notes=[f"{target.name} installed under {target.install_path}"],
    )


def launch_patch(port: int, report: CapabilityReport) -> EnvironmentPatch:
    """Environment for the Wan2GP server process.

    The port is exported under both names the server may read, since its
    accepted flag spelling is not guaranteed.
    """
    variables = {
        "PORT": str(port),
        "GRADIO_SERVER_PORT": str(port),
    }
    notes = []
    if report.gpu_source == "nvidia-smi":
        variables["CUDA_VISIBLE_DEVICES"] = "0"
        notes.append("CUDA device set to GPU 0")
    return EnvironmentPatch(variables=variables, notes=notes)


def rc_file_for_shell(shell: str, home: Optional[Path] = None) -> Path:
    home = home or Path.home()
    return home / SHELL_RC_FILES.get(shell, SHELL_RC_FILES["bash"])


def shells_to_register(current_shell: str) -> List[str]:
    """Current shell first, then bash as fallback, then zsh if installed."""
    shells = [current_shell or "bash"]
    if "bash" not in shells:
        shells.append("bash")
    if "zsh" not in shells and shutil.which("zsh"):
        shells.append("zsh")
    return shells


def register_shell_hooks(conda_exe: Path, current_shell: str) -> Tuple[List[str], List[str]]:
    """Run ``conda init`` for the interactive shells.

    Failures are reported as warnings, never raised: the tool stays usable
    via its absolute path.

    Returns:
        Tuple of (registered_shells, warnings)
    """
    registered = []
    warnings = []
    for shell in shells_to_register(current_shell):
        success, _ = run_command(
            [str(conda_exe), "init", shell], check=False, capture=True, timeout=PROBE_TIMEOUT * 6
        )
        if success:
            registered.append(shell)
        else:
            warnings.append(f"Failed to initialize conda for {shell}")
    return registered, warnings
