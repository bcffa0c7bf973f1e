"""Wan2GP environment bootstrap.

This package installs everything Wan2GP needs and launches it:
- Miniconda (batch install, shell hooks, PATH patch)
- The wan2gp conda environment (Python 3.10.9)
- The Wan2GP repository (clone, or fetch and hard reset)
- PyTorch for the detected GPU runtime, then requirements.txt
- wgp.py, with fallback port flag spellings

Usage:
    wan2gp-bootstrap
    wan2gp-bootstrap --port 8080 --i2v
    wan2gp-bootstrap --update-only
    python -m wan_bootstrap --skip-conda
"""

from .bootstrap import BootstrapOptions, EnvironmentBootstrap, install_miniconda_interactive, install_tools
from .conda import CondaEnvironmentManager
from .dependencies import DependencyInstaller
from .errors import BootstrapError
from .installers import CloudflaredInstaller, SystemPackageInstaller, ToolInstaller
from .launcher import ProcessLauncher
from .platform import CapabilityProbe
from .repo import RepoSync
from .utils import print_success, print_warning, print_error, print_info, run_command
from .cli import main

__all__ = [
    'main',
    'BootstrapOptions',
    'EnvironmentBootstrap',
    'install_miniconda_interactive',
    'install_tools',
    'BootstrapError',
    'CapabilityProbe',
    'CloudflaredInstaller',
    'CondaEnvironmentManager',
    'DependencyInstaller',
    'ProcessLauncher',
    'RepoSync',
    'SystemPackageInstaller',
    'ToolInstaller',
    'print_success',
    'print_warning',
    'print_error',
    'print_info',
    'run_command',
]
