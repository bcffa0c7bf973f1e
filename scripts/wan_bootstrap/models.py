"""Value types shared by the bootstrap stages.

Reports and targets are frozen pydantic models so a stage can hand them
on without worrying about later mutation.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Dict, List, MutableMapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class OSFamily(str, Enum):
    """Operating system family."""
    MACOS = "macos"
    LINUX_DEBIAN = "linux_debian"
    LINUX_REDHAT = "linux_redhat"
    LINUX_ARCH = "linux_arch"
    LINUX = "linux"
    UNSUPPORTED = "unsupported"

    @property
    def is_linux(self) -> bool:
        return self.value.startswith("linux")


class CpuArch(str, Enum):
    X86_64 = "x86_64"
    ARM64 = "arm64"


class GpuBackend(str, Enum):
    NONE = "none"
    CUDA = "cuda"


class RevisionPolicy(str, Enum):
    """How an existing working copy is brought up to date."""
    FAST_FORWARD = "fast_forward"
    HARD_RESET = "hard_reset"


class InstallStatus(str, Enum):
    INSTALLED = "installed"
    ALREADY_PRESENT = "already_present"
    INSTALLED_BUT_NOT_ON_PATH = "installed_but_not_on_path"


class CapabilityReport(BaseModel):
    """Snapshot of host capabilities, computed once per run."""
    os_family: OSFamily
    cpu_arch: CpuArch
    gpu_backend: GpuBackend = GpuBackend.NONE
    tool_present: Dict[str, bool] = Field(default_factory=dict)
    system: str = ""
    machine: str = ""
    package_manager: str = "unknown"
    gpu_name: Optional[str] = None
    gpu_source: Optional[str] = None
    has_sudo: bool = False
    is_root: bool = False
    shell: str = "bash"

    model_config = ConfigDict(frozen=True)

    @property
    def supported(self) -> bool:
        return self.os_family != OSFamily.UNSUPPORTED

    def has_tool(self, name: str) -> bool:
        return self.tool_present.get(name, False)


class InstallTarget(BaseModel):
    """Static description of a tool installed from a downloaded installer.

    ``download_url`` may contain ``{platform}`` and ``{arch}`` placeholders;
    ``installer_args`` may reference ``{installer}`` and ``{prefix}``.
    """
    name: str
    download_url: str
    install_path: Path
    verify_command: Tuple[str, ...] = ()
    binaries: Tuple[str, ...] = ()
    installer_args: Tuple[str, ...] = ("bash", "{installer}", "-b", "-p", "{prefix}")
    shell_init: bool = False

    model_config = ConfigDict(frozen=True)

    def binary_paths(self) -> List[Path]:
        return [self.install_path / rel for rel in self.binaries]

    def find_binary(self) -> Optional[Path]:
        """Return the first expected binary that exists under install_path."""
        for path in self.binary_paths():
            if path.is_file():
                return path
        return None


class RepoState(BaseModel):
    """A managed working copy of an external repository."""
    local_path: Path
    remote_url: str
    revision_policy: RevisionPolicy = RevisionPolicy.HARD_RESET
    branch: Optional[str] = None


class LaunchAttempt(BaseModel):
    """One candidate invocation of the downstream program."""
    executable: Tuple[str, ...]
    argument_set: Tuple[str, ...] = ()
    label: str = ""

    model_config = ConfigDict(frozen=True)

    @property
    def argv(self) -> List[str]:
        return [*self.executable, *self.argument_set]

    def describe(self) -> str:
        return self.label or " ".join(self.argv)


class EnvironmentPatch(BaseModel):
    """Desired changes to a process environment.

    Computing a patch has no side effects; ``apply`` mutates a mapping
    (usually ``os.environ``). Persisting changes for future shells is a
    separate step handled by shell hook registration.
    """
    variables: Dict[str, str] = Field(default_factory=dict)
    prepend_path: List[str] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.variables and not self.prepend_path

    def merge(self, other: "EnvironmentPatch") -> "EnvironmentPatch":
        prepend = list(self.prepend_path)
        for entry in other.prepend_path:
            if entry not in prepend:
                prepend.append(entry)
        return EnvironmentPatch(
            variables={**self.variables, **other.variables},
            prepend_path=prepend,
            notes=[*self.notes, *other.notes],
        )

    def apply(self, environ: Optional[MutableMapping[str, str]] = None) -> None:
        environ = os.environ if environ is None else environ
        environ.update(self.variables)
        if self.prepend_path:
            current = [p for p in environ.get("PATH", "").split(os.pathsep) if p]
            new_entries = [p for p in self.prepend_path if p not in current]
            environ["PATH"] = os.pathsep.join(new_entries + current)
