"""Working copy management for external repositories.

RepoSync keeps a managed clone (Wan2GP) present and current. The working
tree on disk is the only state; an interrupted clone never lands at the
final path, and anything at that path that is not a valid clone of the
expected remote is replaced.
"""

import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from env_config import GIT_TIMEOUT, PROBE_TIMEOUT

from .errors import SyncError
from .models import RepoState, RevisionPolicy
from .utils import print_info, print_success, print_warning, run_command


class SyncAction(str, Enum):
    CLONED = "cloned"
    UPDATED = "updated"
    RECLONED = "recloned"


@dataclass
class SyncResult:
    path: Path
    action: SyncAction
    revision: Optional[str] = None
    discarded_local_changes: bool = False


class RepoSync:
    """Clone or update a managed working copy."""

    def __init__(self, git: str = "git", timeout: float = GIT_TIMEOUT):
        self.git = git
        self.timeout = timeout

    def sync(self, state: RepoState) -> SyncResult:
        """Bring ``state.local_path`` to the latest upstream revision.

        With ``RevisionPolicy.HARD_RESET`` local modifications in the working
        copy are discarded. The working copy is a managed dependency, not
        user data.

        Raises:
            SyncError: On any clone/fetch/update failure
        """
        path = state.local_path

        if not path.exists():
            print_info(f"Cloning {state.remote_url}...")
            self._clone(state)
            return SyncResult(path, SyncAction.CLONED, self._revision(path))

        if not self.is_valid_working_copy(path, state.remote_url):
            print_warning(f"{path} exists but is not a valid git repository for {state.remote_url}, removing and cloning...")
            self._remove(path)
            self._clone(state)
            return SyncResult(path, SyncAction.RECLONED, self._revision(path))

        print_info(f"{path} exists. Updating...")
        discarded = self._update(state)
        print_success("Repository updated successfully")
        return SyncResult(path, SyncAction.UPDATED, self._revision(path), discarded)

    def is_valid_working_copy(self, path: Path, remote_url: Optional[str] = None) -> bool:
        """Check git metadata and, optionally, that origin points at remote_url."""
        if not path.is_dir() or not (path / ".git").exists():
            return False
        success, _ = self._git(["rev-parse", "--git-dir"], cwd=path, timeout=PROBE_TIMEOUT)
        if not success:
            return False
        if remote_url is None:
            return True
        success, output = self._git(["remote", "get-url", "origin"], cwd=path, timeout=PROBE_TIMEOUT)
        return success and output.strip() == str(remote_url)

    def default_branch(self, path: Path) -> str:
        """Branch that origin/HEAD points at, falling back to main."""
        success, output = self._git(
            ["symbolic-ref", "--short", "refs/remotes/origin/HEAD"], cwd=path, timeout=PROBE_TIMEOUT
        )
        if success and output.strip().startswith("origin/"):
            return output.strip()[len("origin/"):]
        return "main"

    def _clone(self, state: RepoState):
        path = state.local_path
        path.parent.mkdir(parents=True, exist_ok=True)

        # Clone beside the target and rename, so an interrupted clone never
        # leaves a half-populated directory at the final path
        staging = path.with_name(path.name + ".partial")
        self._remove(staging)

        cmd = ["clone"]
        if state.branch:
            cmd.extend(["--branch", state.branch])
        cmd.extend([state.remote_url, str(staging)])

        success, output = self._git(cmd)
        if not success:
            self._remove(staging)
            raise SyncError(
                f"Failed to clone {state.remote_url}",
                _tail(output) or "Check your network connection and the repository URL"
            )
        staging.rename(path)
        print_success(f"Cloned into {path}")

    def _update(self, state: RepoState) -> bool:
        """Fetch and apply the revision policy. Returns True if local changes were discarded."""
        path = state.local_path
        success, output = self._git(["fetch", "origin"], cwd=path)
        if not success:
            raise SyncError(f"Failed to fetch origin in {path}", _tail(output) or "Check your network connection")

        if state.revision_policy == RevisionPolicy.FAST_FORWARD:
            cmd = ["pull", "origin", state.branch] if state.branch else ["pull"]
            success, output = self._git(cmd, cwd=path)
            if not success:
                raise SyncError(
                    f"Failed to pull in {path}",
                    _tail(output) or f"Resolve local changes in {path} or use a hard reset"
                )
            return False

        branch = state.branch or self.default_branch(path)
        dirty = self._has_local_changes(path)
        if dirty:
            print_warning(f"Discarding local changes in {path}")
        success, output = self._git(["reset", "--hard", f"origin/{branch}"], cwd=path)
        if not success:
            raise SyncError(f"Failed to reset {path} to origin/{branch}", _tail(output))
        return dirty

    def _has_local_changes(self, path: Path) -> bool:
        success, output = self._git(["status", "--porcelain"], cwd=path, timeout=PROBE_TIMEOUT)
        return success and bool(output.strip())

    def _revision(self, path: Path) -> Optional[str]:
        success, output = self._git(["rev-parse", "--short", "HEAD"], cwd=path, timeout=PROBE_TIMEOUT)
        return output.strip() if success else None

    def _git(self, args, cwd: Path = None, timeout: float = None):
        return run_command(
            [self.git, *args],
            check=False,
            capture=True,
            timeout=timeout or self.timeout,
            cwd=str(cwd) if cwd else None,
        )

    @staticmethod
    def _remove(path: Path):
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.exists():
            shutil.rmtree(path)


def _tail(output: str, lines: int = 5) -> str:
    return "\n".join(output.strip().splitlines()[-lines:])
