"""Command-line interface for the Wan2GP bootstrap.

Three entry points:
- wan2gp-bootstrap: full setup and launch
- wan2gp-tools: install conda, cloudflared and ffmpeg
- install-miniconda: interactive conda-only installer
"""

import argparse
import sys
from contextlib import nullcontext
from pathlib import Path

from env_config import DEFAULT_PORT, PORT_ENV_VAR, WAN2GP_DIR, resolve_port
import log_manager

from .bootstrap import BootstrapOptions, EnvironmentBootstrap, install_miniconda_interactive, install_tools
from .errors import BootstrapError
from .platform import CapabilityProbe
from .utils import print_error, print_info


class BootstrapArgumentParser(argparse.ArgumentParser):
    """Usage errors exit 1 rather than argparse's default 2."""

    def error(self, message):
        self.print_usage(sys.stderr)
        print_error(f"{self.prog}: {message}")
        self.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = BootstrapArgumentParser(
        prog="wan2gp-bootstrap",
        description="Wan2GP setup and launch",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Environment Variables:
    {PORT_ENV_VAR:<24}Port to use when --port is not given
    WAN2GP_DIR              Wan2GP working copy (default: ./Wan2GP)
    WAN2GP_CONDA_ROOT       Miniconda install root (default: ~/miniconda3)
    WAN2GP_LOG_DIR          Log directory (default: ./logs)

Examples:
    wan2gp-bootstrap                   # Full setup and launch
    wan2gp-bootstrap --port 8080       # Launch on port 8080
    wan2gp-bootstrap --i2v             # Launch in image-to-video mode
    wan2gp-bootstrap --update-only     # Only update existing installation
    wan2gp-bootstrap --force-deps      # Force reinstall all dependencies
"""
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help=f"Port for Wan2GP (default: ${PORT_ENV_VAR} or {DEFAULT_PORT})"
    )
    parser.add_argument(
        "--i2v",
        action="store_true",
        help="Launch in image-to-video mode"
    )
    parser.add_argument(
        "--skip-conda",
        action="store_true",
        help="Skip conda installation (assume already installed)"
    )
    parser.add_argument(
        "--update-only",
        action="store_true",
        help="Only update existing installation, don't launch"
    )
    parser.add_argument(
        "--force-deps",
        action="store_true",
        help="Force reinstall all dependencies"
    )
    parser.add_argument(
        "--wan-dir",
        type=Path,
        default=WAN2GP_DIR,
        help=f"Wan2GP working copy (default: {WAN2GP_DIR})"
    )
    parser.add_argument(
        "--no-log",
        action="store_true",
        help="Don't write a log file"
    )
    return parser


def report_error(error: BootstrapError):
    print_error(f"[{error.category}] {error.message}")
    if error.remediation:
        print_info(error.remediation)


def run_guarded(func) -> int:
    """Call func and map failures to exit codes (1 for errors, 130 for Ctrl+C)."""
    try:
        return func()
    except BootstrapError as e:
        report_error(e)
        return e.exit_code
    except KeyboardInterrupt:
        print()
        print_info("Script interrupted by user")
        return 130


def main(argv=None) -> int:
    """Main entry point for wan2gp-bootstrap."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        port = resolve_port(args.port)
    except ValueError as e:
        parser.error(str(e))

    options = BootstrapOptions(
        port=port,
        i2v=args.i2v,
        skip_conda=args.skip_conda,
        update_only=args.update_only,
        force_deps=args.force_deps,
        wan_dir=args.wan_dir,
    )

    report = CapabilityProbe.probe()
    bootstrap = EnvironmentBootstrap(options, report=report)
    capture = nullcontext() if args.no_log else log_manager.LogCapture(report=report)
    with capture:
        return run_guarded(bootstrap.run)


def tools_main(argv=None) -> int:
    """Main entry point for wan2gp-tools."""
    parser = BootstrapArgumentParser(
        prog="wan2gp-tools",
        description="Install conda, cloudflared and ffmpeg"
    )
    parser.add_argument("--no-log", action="store_true", help="Don't write a log file")
    args = parser.parse_args(argv)

    report = CapabilityProbe.probe(tools=("conda", "git", "cloudflared", "ffmpeg"))
    capture = nullcontext() if args.no_log else log_manager.LogCapture(report=report)
    with capture:
        return run_guarded(lambda: 0 if install_tools(report) else 1)


def conda_main(argv=None) -> int:
    """Main entry point for install-miniconda."""
    parser = BootstrapArgumentParser(
        prog="install-miniconda",
        description="Install Miniconda if it is not already present"
    )
    parser.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Install without asking for confirmation"
    )
    args = parser.parse_args(argv)

    def install():
        # Declining the prompt is not an error
        install_miniconda_interactive(assume_yes=args.yes)
        return 0

    return run_guarded(install)


if __name__ == "__main__":
    sys.exit(main())
