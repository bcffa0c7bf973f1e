"""Tests for CondaEnvironmentManager."""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from wan_bootstrap.conda import CondaEnvironmentManager, conda_search_paths
from wan_bootstrap.errors import DependencyInstallError, MissingPrerequisite

ENV_LIST = """# conda environments:
#
base                  *  /home/user/miniconda3
wan2gp                   /home/user/miniconda3/envs/wan2gp
                         /opt/other/env
"""


@pytest.fixture
def manager():
    manager = CondaEnvironmentManager(conda_root=Path("/nonexistent/miniconda3"))
    manager.conda_exe = "/opt/conda/bin/conda"
    return manager


class TestDetectConda:
    def test_search_paths_start_at_root(self, tmp_path):
        paths = conda_search_paths(tmp_path)
        assert paths[0] == tmp_path / "bin" / "conda"
        assert paths[1] == tmp_path / "condabin" / "conda"

    def test_explicit_binary_first(self, monkeypatch):
        monkeypatch.delenv("CONDA_EXE", raising=False)
        manager = CondaEnvironmentManager(conda_root=Path("/nonexistent"))
        with patch("wan_bootstrap.conda.shutil.which", return_value="/usr/bin/conda"), \
             patch("wan_bootstrap.conda.run_command", return_value=(True, "conda 24.1.0")) as mock_run:
            assert manager.detect_conda(Path("/home/u/miniconda3/bin/conda")) is True
        assert manager.conda_exe == "/home/u/miniconda3/bin/conda"
        assert mock_run.call_count == 1

    def test_falls_back_to_install_root(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CONDA_EXE", raising=False)
        binary = tmp_path / "bin" / "conda"
        binary.parent.mkdir()
        binary.write_text("#!/bin/sh\n")
        manager = CondaEnvironmentManager(conda_root=tmp_path)
        with patch("wan_bootstrap.conda.shutil.which", return_value=None), \
             patch("wan_bootstrap.conda.run_command", return_value=(True, "conda 24.1.0")):
            assert manager.detect_conda() is True
        assert manager.conda_exe == str(binary)

    def test_not_found(self, monkeypatch):
        monkeypatch.delenv("CONDA_EXE", raising=False)
        manager = CondaEnvironmentManager(conda_root=Path("/nonexistent"))
        with patch("wan_bootstrap.conda.shutil.which", return_value=None), \
             patch("wan_bootstrap.conda.conda_search_paths", return_value=[]):
            assert manager.detect_conda() is False
            with pytest.raises(MissingPrerequisite):
                manager.require_conda()


class TestEnvironments:
    def test_list_environments(self, manager):
        with patch("wan_bootstrap.conda.run_command", return_value=(True, ENV_LIST)):
            assert manager.list_environments() == ["base", "wan2gp"]

    def test_existing_environment_reused(self, manager):
        with patch("wan_bootstrap.conda.run_command", return_value=(True, ENV_LIST)) as mock_run:
            assert manager.ensure_environment() is False
        assert mock_run.call_count == 1

    def test_creates_environment(self, manager):
        with patch("wan_bootstrap.conda.run_command", side_effect=[(True, "base  /x\n"), (True, "")]) as mock_run:
            assert manager.ensure_environment() is True
        assert mock_run.call_args[0][0] == [
            "/opt/conda/bin/conda", "create", "-n", "wan2gp", "python=3.10.9", "-y"
        ]

    def test_create_failure(self, manager):
        with patch("wan_bootstrap.conda.run_command", side_effect=[(True, ""), (False, "")]):
            with pytest.raises(DependencyInstallError, match="wan2gp"):
                manager.ensure_environment()


class TestEnvCommand:
    def test_wraps_with_conda_run(self, manager, monkeypatch):
        monkeypatch.delenv("CONDA_DEFAULT_ENV", raising=False)
        assert manager.pip_command(["install", "x"]) == [
            "/opt/conda/bin/conda", "run", "-n", "wan2gp", "--no-capture-output",
            "python", "-m", "pip", "install", "x",
        ]

    def test_active_environment_runs_directly(self, manager, monkeypatch):
        monkeypatch.setenv("CONDA_DEFAULT_ENV", "wan2gp")
        assert manager.python_command(["wgp.py"]) == ["python", "wgp.py"]
