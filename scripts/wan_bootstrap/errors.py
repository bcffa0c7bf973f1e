"""Error taxonomy for the Wan2GP bootstrap.

Every failure the bootstrap reports carries a human-readable category and,
where one exists, a literal next step for the user. The CLI turns these
into exit codes.
"""

from typing import List, Optional


class BootstrapError(Exception):
    """Base class for all bootstrap failures."""

    category = "Bootstrap error"
    exit_code = 1

    def __init__(self, message: str, remediation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.remediation = remediation


class UnsupportedPlatform(BootstrapError):
    category = "Unsupported platform"


class MissingPrerequisite(BootstrapError):
    category = "Missing prerequisite"


class DownloadError(BootstrapError):
    category = "Download failed"


class InstallError(BootstrapError):
    category = "Install failed"


class CorruptInstallation(InstallError):
    category = "Corrupt installation"


class SyncError(BootstrapError):
    category = "Repository sync failed"


class DependencyInstallError(BootstrapError):
    category = "Dependency install failed"


class LaunchError(BootstrapError):
    category = "Launch failed"


class AllAttemptsFailed(LaunchError):
    """Every launch attempt exited before the startup grace period."""

    def __init__(self, message: str, history: List = None, remediation: Optional[str] = None):
        super().__init__(message, remediation)
        self.history = history or []


class LaunchInterrupted(BootstrapError):
    """User interrupted the running server."""

    category = "Interrupted"
    exit_code = 130
