#!/usr/bin/env python3
"""Centralized configuration for the Wan2GP bootstrap.

This module provides:
- Single source of truth for the conda environment, Wan2GP repo and PyTorch pins
- Filesystem layout (conda install root, working copy, logs)
- Port resolution with CLI > environment > default priority
- Helpers to guide users to activate the environment

Usage:
    from env_config import CONDA_ENV_NAME, resolve_port

    port = resolve_port(args.port)
"""

import os
import sys
from pathlib import Path
from typing import Mapping, Optional


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

# The canonical conda environment name for Wan2GP
CONDA_ENV_NAME = "wan2gp"

# Python version for the conda environment
PYTHON_VERSION = "3.10.9"

# PyTorch pins. CUDA builds carry the +cu124 local version suffix.
TORCH_VERSION = "2.6.0"
TORCH_CUDA_SUFFIX = "+cu124"
TORCH_INDEX_URL_CUDA = "https://download.pytorch.org/whl/cu124"
TORCH_INDEX_URL_CPU = "https://download.pytorch.org/whl/cpu"

WAN2GP_REPO = "https://github.com/deepbeepmeep/Wan2GP.git"
WAN2GP_ENTRYPOINT = "wgp.py"

DEFAULT_PORT = 7860
PORT_ENV_VAR = "PORT"

# Miniconda install root (fixed, under the invoking user's home)
CONDA_ROOT = Path(os.environ.get(
    "WAN2GP_CONDA_ROOT",
    str(Path.home() / "miniconda3")
))

# Working copy of the Wan2GP repository, relative to where the bootstrap runs
WAN2GP_DIR = Path(os.environ.get("WAN2GP_DIR", "Wan2GP"))

LOG_DIR = Path(os.environ.get("WAN2GP_LOG_DIR", "logs"))

MINICONDA_URL_TEMPLATE = "https://repo.anaconda.com/miniconda/Miniconda3-latest-{platform}-{arch}.sh"

CLOUDFLARED_DEB_URL = "https://github.com/cloudflare/cloudflared/releases/latest/download/cloudflared-linux-amd64.deb"
CLOUDFLARED_BIN_URL = "https://github.com/cloudflare/cloudflared/releases/latest/download/cloudflared-linux-amd64"


# =============================================================================
# TIMEOUTS (seconds)
# =============================================================================

PROBE_TIMEOUT = 10
DOWNLOAD_TIMEOUT = 300
INSTALLER_TIMEOUT = 1800
GIT_TIMEOUT = 1800
CONDA_TIMEOUT = 1800
PIP_TIMEOUT = 3600

# Time a launched server must survive before it counts as started
LAUNCH_GRACE_PERIOD = 5.0
SHUTDOWN_GRACE_PERIOD = 10.0


# =============================================================================
# PORT RESOLUTION
# =============================================================================

def resolve_port(cli_port: Optional[int] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    """Resolve the server port.

    Priority: explicit CLI flag, then the PORT environment variable,
    then DEFAULT_PORT.

    Raises:
        ValueError: If the PORT variable is not a valid TCP port.
    """
    if cli_port is not None:
        return validate_port(cli_port)

    environ = os.environ if environ is None else environ
    env_value = environ.get(PORT_ENV_VAR, "").strip()
    if env_value:
        try:
            return validate_port(int(env_value))
        except ValueError:
            raise ValueError(f"Invalid {PORT_ENV_VAR} value: {env_value!r}")

    return DEFAULT_PORT


def validate_port(port: int) -> int:
    if not 1 <= port <= 65535:
        raise ValueError(f"Port out of range (1-65535): {port}")
    return port


# =============================================================================
# ENVIRONMENT DETECTION
# =============================================================================

def get_active_conda_env() -> Optional[str]:
    """Get the currently active conda environment name."""
    return os.environ.get("CONDA_DEFAULT_ENV")


def is_conda_env_active(env_name: str = None) -> bool:
    """Check if the specified conda environment is currently active.

    Args:
        env_name: Environment name to check. Defaults to CONDA_ENV_NAME.
    """
    if env_name is None:
        env_name = CONDA_ENV_NAME
    return get_active_conda_env() == env_name


# =============================================================================
# ACTIVATION HELPERS
# =============================================================================

def get_activation_command(env_name: str = None) -> str:
    """Get the shell command to activate the Wan2GP environment."""
    return f"conda activate {env_name or CONDA_ENV_NAME}"


def get_activation_instructions(conda_root: Path = None) -> str:
    """Get user-friendly instructions for making conda usable in a new shell.

    Returns:
        Multi-line string with activation instructions.
    """
    conda_root = conda_root or CONDA_ROOT
    lines = [
        "",
        "=" * 60,
        "Conda is installed but not yet active in this terminal",
        "=" * 60,
        "",
        "Restart your terminal, or run:",
        "",
        f"    source {conda_root / 'etc' / 'profile.d' / 'conda.sh'}",
        f"    {get_activation_command()}",
        "",
        "If the conda command is still missing, add it to PATH:",
        "",
        f"    export PATH=\"{conda_root / 'bin'}:$PATH\"",
        "=" * 60,
        "",
    ]
    return "\n".join(lines)


# =============================================================================
# CLI INTERFACE
# =============================================================================

def main():
    """CLI to show the bootstrap configuration."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Show Wan2GP bootstrap configuration"
    )
    parser.add_argument(
        "--check", "-c", action="store_true",
        help="Check if the wan2gp environment is active (exit 0 if yes, 1 if no)"
    )
    parser.add_argument(
        "--show-activate", action="store_true",
        help="Show the activation command"
    )

    args = parser.parse_args()

    if args.show_activate:
        print(get_activation_command())
        return 0

    active = is_conda_env_active()
    if args.check:
        return 0 if active else 1

    try:
        port = resolve_port()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("Wan2GP Bootstrap Configuration")
    print("=" * 40)
    print(f"Conda root:           {CONDA_ROOT}")
    print(f"Conda environment:    {CONDA_ENV_NAME} (Python {PYTHON_VERSION})")
    print(f"Current environment:  {get_active_conda_env() or 'none'}")
    print(f"Wan2GP working copy:  {WAN2GP_DIR}")
    print(f"Wan2GP repository:    {WAN2GP_REPO}")
    print(f"Default port:         {port}")
    print(f"PyTorch:              {TORCH_VERSION}")
    print()

    if not active:
        print("To activate:")
        print(f"  {get_activation_command()}")

    return 0 if active else 1


if __name__ == "__main__":
    sys.exit(main())
