"""Conda environment management for the Wan2GP bootstrap.

This module handles conda detection, environment creation, and building
commands that run inside the environment.
"""

import os
import shutil
from pathlib import Path
from typing import List, Optional

from env_config import CONDA_ENV_NAME, CONDA_ROOT, CONDA_TIMEOUT, PROBE_TIMEOUT, PYTHON_VERSION

from .errors import DependencyInstallError, MissingPrerequisite
from .utils import print_info, print_success, print_warning, run_command


def conda_search_paths(conda_root: Path = None) -> List[Path]:
    """Known conda binary locations, install root first."""
    conda_root = conda_root or CONDA_ROOT
    home = Path.home()
    return [
        conda_root / "bin" / "conda",
        conda_root / "condabin" / "conda",
        Path("/usr/local/miniconda3/bin/conda"),
        Path("/opt/miniconda3/bin/conda"),
        home / "miniconda" / "bin" / "conda",
    ]


class CondaEnvironmentManager:
    """Manages the Wan2GP conda environment."""

    def __init__(self, env_name: str = CONDA_ENV_NAME, python_version: str = PYTHON_VERSION,
                 conda_root: Path = None):
        self.env_name = env_name
        self.python_version = python_version
        self.conda_root = conda_root or CONDA_ROOT
        self.conda_exe: Optional[str] = None

    def detect_conda(self, conda_exe: Optional[Path] = None) -> bool:
        """Locate a working conda binary.

        Args:
            conda_exe: A binary already known to the caller (e.g. just installed)
        """
        candidates = []
        if conda_exe:
            candidates.append(str(conda_exe))
        on_path = shutil.which("conda")
        if on_path:
            candidates.append(on_path)
        conda_exe_env = os.environ.get('CONDA_EXE')
        if conda_exe_env:
            candidates.append(conda_exe_env)
        candidates.extend(str(p) for p in conda_search_paths(self.conda_root) if p.exists())

        for candidate in candidates:
            success, _ = run_command([candidate, "--version"], check=False, capture=True, timeout=PROBE_TIMEOUT * 6)
            if success:
                self.conda_exe = candidate
                return True
        return False

    def require_conda(self) -> str:
        if not self.conda_exe and not self.detect_conda():
            raise MissingPrerequisite(
                "conda is required but was not found",
                "Re-run without --skip-conda to install Miniconda, or restart your terminal"
            )
        return self.conda_exe

    def list_environments(self) -> List[str]:
        """List all conda environments."""
        if not self.conda_exe:
            return []

        success, output = run_command(
            [self.conda_exe, "env", "list"],
            check=False,
            capture=True,
            timeout=PROBE_TIMEOUT * 6
        )
        if not success:
            return []

        # Format: "envname  [*]  /path/to/env"
        envs = []
        for line in output.splitlines():
            line = line.strip()
            if line and not line.startswith('#'):
                parts = line.split()
                if parts and not parts[0].startswith('/'):
                    envs.append(parts[0])
        return envs

    def environment_exists(self) -> bool:
        return self.env_name in self.list_environments()

    def ensure_environment(self) -> bool:
        """Reuse the environment if it exists, otherwise create it.

        Returns:
            True if the environment was created, False if it already existed

        Raises:
            DependencyInstallError: If creation fails
        """
        conda_exe = self.require_conda()

        if self.environment_exists():
            print_info(f"Environment {self.env_name} already exists")
            return False

        print_info(f"Creating new conda environment: {self.env_name} (Python {self.python_version})")
        success, _ = run_command([
            conda_exe, "create",
            "-n", self.env_name,
            f"python={self.python_version}",
            "-y"
        ], check=False, stream=True, timeout=CONDA_TIMEOUT)

        if not success:
            raise DependencyInstallError(
                f"Failed to create conda environment '{self.env_name}'",
                f"Try manually: conda create -n {self.env_name} python={self.python_version} -y"
            )
        print_success(f"Conda environment '{self.env_name}' created")
        return True

    def env_command(self, argv: List[str]) -> List[str]:
        """Wrap a command so it runs inside the environment."""
        if os.environ.get("CONDA_DEFAULT_ENV") == self.env_name:
            return list(argv)
        conda_exe = self.require_conda()
        return [conda_exe, "run", "-n", self.env_name, "--no-capture-output", *argv]

    def pip_command(self, args: List[str]) -> List[str]:
        return self.env_command(["python", "-m", "pip", *args])

    def python_command(self, args: List[str]) -> List[str]:
        return self.env_command(["python", *args])

    def report_active(self):
        if os.environ.get("CONDA_DEFAULT_ENV") == self.env_name:
            print_success(f"Currently active environment: {self.env_name}")
        else:
            print_warning(f"Environment '{self.env_name}' is not active in this shell; commands run via 'conda run'")
