"""Python dependency installation for Wan2GP.

PyTorch is installed first from the index matching the detected GPU
runtime, then the rest of Wan2GP's requirements.txt.
"""

from pathlib import Path
from typing import List, Tuple

from env_config import (
    PIP_TIMEOUT,
    PROBE_TIMEOUT,
    TORCH_CUDA_SUFFIX,
    TORCH_INDEX_URL_CPU,
    TORCH_INDEX_URL_CUDA,
    TORCH_VERSION,
)

from .conda import CondaEnvironmentManager
from .errors import DependencyInstallError
from .models import CapabilityReport, GpuBackend
from .utils import print_info, print_success, print_warning, run_command

TORCH_CHECK = "import torch; print('PyTorch version:', torch.__version__); print('CUDA available:', torch.cuda.is_available())"
TORCH_CUDA_ASSERT = "import torch; assert torch.cuda.is_available()"

CUDA_TROUBLESHOOTING = [
    "1. Check CUDA runtime: nvidia-smi",
    "2. Verify CUDA version compatibility",
    "3. Try running: export CUDA_VISIBLE_DEVICES=0",
    "4. Restart with --force-deps to reinstall PyTorch",
]


def torch_requirements(report: CapabilityReport) -> Tuple[List[str], str]:
    """Pick PyTorch package specs and wheel index for the host.

    Returns:
        Tuple of (package_specs, index_url)
    """
    if report.gpu_backend == GpuBackend.CUDA:
        return [f"torch=={TORCH_VERSION}{TORCH_CUDA_SUFFIX}", "torchvision", "torchaudio"], TORCH_INDEX_URL_CUDA
    return [f"torch=={TORCH_VERSION}", "torchvision", "torchaudio"], TORCH_INDEX_URL_CPU


class DependencyInstaller:
    """Installs Wan2GP's Python dependencies into the conda environment."""

    def __init__(self, conda_manager: CondaEnvironmentManager, timeout: float = PIP_TIMEOUT):
        self.conda_manager = conda_manager
        self.timeout = timeout

    def install(self, wan_dir: Path, report: CapabilityReport, force: bool = False):
        """Install PyTorch and requirements.txt.

        Raises:
            DependencyInstallError: If requirements.txt is missing or pip fails
        """
        requirements = wan_dir / "requirements.txt"
        if not requirements.exists():
            raise DependencyInstallError(
                f"requirements.txt not found in {wan_dir}",
                "Re-run the bootstrap to re-sync the Wan2GP repository"
            )

        self.install_torch(report, force)
        self.verify_torch(report)

        print_info("Installing requirements from requirements.txt...")
        args = ["install", "-r", str(requirements)]
        args.append("--force-reinstall" if force else "--upgrade")
        self._pip(args, cwd=wan_dir, what="requirements.txt")
        print_success("Dependencies installed successfully")

    def install_torch(self, report: CapabilityReport, force: bool = False):
        packages, index_url = torch_requirements(report)
        if report.gpu_backend == GpuBackend.CUDA:
            print_success("CUDA detected - installing PyTorch with CUDA support")
        else:
            print_info("No CUDA detected - installing CPU-only PyTorch")

        print_info(f"Installing PyTorch {TORCH_VERSION} with appropriate backend...")
        args = ["install", *packages, "--index-url", index_url]
        if force:
            args.append("--force-reinstall")
        self._pip(args, what="PyTorch")

    def verify_torch(self, report: CapabilityReport) -> bool:
        """Check that torch imports. Problems are warnings only."""
        print_info("Verifying PyTorch installation...")
        success, output = run_command(
            self.conda_manager.python_command(["-c", TORCH_CHECK]),
            check=False, capture=True, timeout=PROBE_TIMEOUT * 12
        )
        if not success:
            print_warning("PyTorch installation verification failed, but continuing...")
            return False

        for line in output.strip().splitlines():
            print_info(line)
        print_success("PyTorch installation verified")

        if report.gpu_backend == GpuBackend.CUDA:
            cuda_ok, _ = run_command(
                self.conda_manager.python_command(["-c", TORCH_CUDA_ASSERT]),
                check=False, capture=True, timeout=PROBE_TIMEOUT * 12
            )
            if not cuda_ok:
                print_warning("CUDA GPU detected but PyTorch cannot access it")
                print_info("Troubleshooting tips:")
                for tip in CUDA_TROUBLESHOOTING:
                    print_info(tip)
        return True

    def _pip(self, args: List[str], what: str, cwd: Path = None):
        cmd = self.conda_manager.pip_command(args)
        success, _ = run_command(cmd, check=False, stream=True, timeout=self.timeout,
                                 cwd=str(cwd) if cwd else None)
        if not success:
            raise DependencyInstallError(
                f"pip failed while installing {what}",
                f"Re-run with --force-deps, or run manually: {' '.join(cmd)}"
            )
