"""
Tests for adapter protocol, registry, mock, and the tool adapters.
"""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from comfyprov.adapters.base import ExecutionContext
from comfyprov.adapters.mock import MockAdapter
from comfyprov.adapters.python.pip import PipAdapter
from comfyprov.adapters.registry import AdapterRegistry
from comfyprov.adapters.shell.command import ShellCommandAdapter
from comfyprov.adapters.shell.filesystem import FilesystemAdapter
from comfyprov.adapters.system.apt import AptAdapter
from comfyprov.adapters.vcs.git import GitAdapter
from comfyprov.core.models.action import Action, Receipt

_RUN = "comfyprov.core.execution.subprocess_runner.subprocess.run"


def _completed(cmd, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)


def _ctx(adapter: str, **params) -> ExecutionContext:
    return ExecutionContext(
        action=Action(id=f"{adapter}-1", adapter=adapter, params=params),
        params=params,
    )


@pytest.fixture
def as_root():
    """Pretend to be root so commands are not prefixed with sudo."""
    with patch("comfyprov.core.execution.subprocess_runner.os.geteuid", return_value=0):
        yield


# ── Protocol Tests ───────────────────────────────────────────────────


class TestExecutionContext:
    def test_working_dir_from_params(self):
        ctx = ExecutionContext(
            action=Action(id="t", adapter="shell"), cwd="/base", params={"cwd": "/override"}
        )
        assert ctx.working_dir == "/override"

    def test_working_dir_from_cwd(self):
        ctx = ExecutionContext(action=Action(id="t", adapter="shell"), cwd="/base")
        assert ctx.working_dir == "/base"

    def test_working_dir_default(self):
        ctx = ExecutionContext(action=Action(id="t", adapter="shell"))
        assert ctx.working_dir == "."


# ── Mock Adapter Tests ───────────────────────────────────────────────


class TestMockAdapter:
    def test_default_success(self):
        mock = MockAdapter(adapter_name="test-mock")
        receipt = mock.execute(_ctx("test-mock"))
        assert receipt.ok
        assert receipt.metadata["mock"] is True
        assert mock.call_count == 1

    def test_custom_response_by_action_id(self):
        mock = MockAdapter()
        mock.set_response("mock-1", Receipt.success(adapter="mock", action_id="mock-1", output="custom"))
        assert mock.execute(_ctx("mock")).output == "custom"

    def test_failure_by_operation(self):
        mock = MockAdapter()
        mock.set_failure("install", error="Intentional failure")
        receipt = mock.execute(_ctx("mock", operation="install"))
        assert receipt.failed
        assert "Intentional failure" in receipt.error
        assert mock.execute(_ctx("mock", operation="update")).ok

    def test_calls_for(self):
        mock = MockAdapter()
        mock.execute(_ctx("mock", operation="install"))
        mock.execute(_ctx("mock", operation="uninstall"))
        mock.execute(_ctx("mock", operation="install"))
        assert len(mock.calls_for("install")) == 2

    def test_reset(self):
        mock = MockAdapter()
        mock.set_failure("install")
        mock.execute(_ctx("mock", operation="install"))
        mock.reset()
        assert mock.call_count == 0
        assert mock.execute(_ctx("mock", operation="install")).ok


# ── Registry Tests ──────────────────────────────────────────────────


class _RaisingAdapter(MockAdapter):
    def execute(self, context):
        raise RuntimeError("adapter bug")


class TestAdapterRegistry:
    def test_register_replaces_same_name(self):
        registry = AdapterRegistry()
        old, new = MockAdapter(adapter_name="git"), MockAdapter(adapter_name="git")
        registry.register(old)
        registry.register(new)
        registry.run("git", "clone", url="u", destination="d")
        assert old.call_count == 0
        assert new.call_count == 1

    def test_run_builds_action(self):
        registry = AdapterRegistry()
        mock = MockAdapter(adapter_name="pip")
        registry.register(mock)
        receipt = registry.run("pip", "install", packages=["a==1"])
        assert receipt.ok
        call = mock.call_log[0]
        assert call.params == {"operation": "install", "packages": ["a==1"]}
        assert call.action.id.startswith("pip:install:")

    def test_missing_adapter_fails(self):
        receipt = AdapterRegistry().run("nope", "x")
        assert receipt.failed
        assert "No adapter registered" in receipt.error

    def test_validation_failure(self):
        registry = AdapterRegistry()
        registry.register(AptAdapter())
        receipt = registry.run("apt", "install")
        assert receipt.failed
        assert "Validation failed" in receipt.error

    def test_adapter_exception_becomes_failure(self):
        registry = AdapterRegistry()
        registry.register(_RaisingAdapter(adapter_name="bad"))
        receipt = registry.run("bad", "x")
        assert receipt.failed
        assert "adapter bug" in receipt.error

    def test_dry_run_skips_without_executing(self):
        registry = AdapterRegistry(dry_run=True)
        mock = MockAdapter(adapter_name="filesystem")
        registry.register(mock)
        receipt = registry.run("filesystem", "write", path="/x", content="secret")
        assert receipt.skipped
        assert mock.call_count == 0
        assert receipt.metadata["params"]["content"] == "<content>"

    def test_mock_mode_without_adapter(self):
        registry = AdapterRegistry(mock_mode=True)
        receipt = registry.run("apt", "update")
        assert receipt.ok
        assert receipt.metadata["mock"] is True

    def test_mock_mode_routes_to_mock(self, mock_registry, mock_adapter):
        mock_registry.run("git", "clone", url="u", destination="d")
        assert mock_adapter.calls_for("clone")[0].params["url"] == "u"


# ── APT ─────────────────────────────────────────────────────────────


class TestAptAdapter:
    def test_install_command(self, as_root):
        with patch(_RUN, return_value=_completed([])) as run:
            receipt = AptAdapter().execute(_ctx("apt", operation="install", packages=["git", "curl"]))
        assert receipt.ok
        cmd = run.call_args[0][0]
        assert cmd == ["apt-get", "install", "-y", "--no-install-recommends", "git", "curl"]
        assert run.call_args.kwargs["env"]["DEBIAN_FRONTEND"] == "noninteractive"

    def test_add_repository(self, as_root):
        with patch(_RUN, return_value=_completed([])) as run:
            AptAdapter().execute(_ctx("apt", operation="add_repository", repository="ppa:deadsnakes/ppa"))
        assert run.call_args[0][0] == ["add-apt-repository", "-y", "ppa:deadsnakes/ppa"]

    def test_failure_carries_stderr(self, as_root):
        with patch(_RUN, return_value=_completed([], returncode=100, stderr="E: Unable to locate")):
            receipt = AptAdapter().execute(_ctx("apt", operation="update"))
        assert receipt.failed
        assert "exit 100" in receipt.error
        assert "Unable to locate" in receipt.error

    def test_sudo_prefix_when_not_root(self):
        with (
            patch("comfyprov.core.execution.subprocess_runner.os.geteuid", return_value=1000),
            patch("comfyprov.core.execution.subprocess_runner.shutil.which", return_value="/usr/bin/sudo"),
            patch(_RUN, return_value=_completed([])) as run,
        ):
            AptAdapter().execute(_ctx("apt", operation="update"))
        cmd = run.call_args[0][0]
        assert cmd[:5] == ["sudo", "-n", "env", "DEBIAN_FRONTEND=noninteractive", "apt-get"]
        assert run.call_args.kwargs["stdin"] is subprocess.DEVNULL

    def test_sudo_without_overrides_skips_env(self):
        with (
            patch("comfyprov.core.execution.subprocess_runner.os.geteuid", return_value=1000),
            patch("comfyprov.core.execution.subprocess_runner.shutil.which", return_value="/usr/bin/sudo"),
            patch(_RUN, return_value=_completed([])) as run,
        ):
            ShellCommandAdapter().execute(_ctx("shell", operation="run", command="true", needs_root=True))
        assert run.call_args[0][0][:3] == ["sudo", "-n", "bash"]

    def test_sudo_unavailable_fails(self):
        with (
            patch("comfyprov.core.execution.subprocess_runner.os.geteuid", return_value=1000),
            patch("comfyprov.core.execution.subprocess_runner.shutil.which", return_value=None),
            patch(_RUN) as run,
        ):
            receipt = AptAdapter().execute(_ctx("apt", operation="update"))
        assert receipt.failed
        assert "sudo is not available" in receipt.error
        run.assert_not_called()

    def test_validate_unknown_operation(self):
        valid, msg = AptAdapter().validate(_ctx("apt", operation="upgrade"))
        assert not valid
        assert "Unknown operation" in msg


# ── pip ─────────────────────────────────────────────────────────────


class TestPipAdapter:
    def test_build_install_command(self):
        pip = PipAdapter(python="python3.11")
        cmd = pip.build_command(
            {
                "operation": "install",
                "packages": ["torch==2.1.2+cu121"],
                "index_url": "https://download.pytorch.org/whl/cu121",
            }
        )
        assert cmd == [
            "python3.11", "-m", "pip", "install", "--no-cache-dir",
            "--index-url", "https://download.pytorch.org/whl/cu121",
            "torch==2.1.2+cu121",
        ]

    def test_build_forced_install(self):
        cmd = PipAdapter(no_cache=False).build_command(
            {"operation": "install", "packages": ["a==1"], "no_deps": True, "force_reinstall": True}
        )
        assert cmd[3:] == ["install", "--force-reinstall", "--no-deps", "a==1"]

    def test_build_uninstall(self):
        cmd = PipAdapter().build_command({"operation": "uninstall", "packages": ["a", "b"]})
        assert cmd[3:] == ["uninstall", "-y", "a", "b"]

    def test_missing_requirements_is_skip(self, tmp_path: Path):
        with patch(_RUN) as run:
            receipt = PipAdapter().execute(
                _ctx("pip", operation="install_requirements", requirements=str(tmp_path / "none.txt"))
            )
        assert receipt.skipped
        run.assert_not_called()

    def test_requirements_install(self, tmp_path: Path):
        req = tmp_path / "requirements.txt"
        req.write_text("numpy\n")
        with patch(_RUN, return_value=_completed([])) as run:
            receipt = PipAdapter().execute(_ctx("pip", operation="install_requirements", requirements=str(req)))
        assert receipt.ok
        assert run.call_args[0][0][-2:] == ["-r", str(req)]

    def test_constraints_env_when_file_exists(self, tmp_path: Path):
        constraints = tmp_path / "c.txt"
        constraints.write_text("a==1\n")
        pip = PipAdapter(constraints_file=constraints)
        with patch(_RUN, return_value=_completed([])) as run:
            receipt = pip.execute(_ctx("pip", operation="install", packages=["b"]))
        assert run.call_args.kwargs["env"]["PIP_CONSTRAINT"] == str(constraints)
        assert receipt.metadata["constraints"] == str(constraints)

    def test_constraints_not_applied_when_disabled(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv("PIP_CONSTRAINT", raising=False)
        constraints = tmp_path / "c.txt"
        constraints.write_text("a==1\n")
        pip = PipAdapter(constraints_file=constraints)
        with patch(_RUN, return_value=_completed([])) as run:
            pip.execute(_ctx("pip", operation="install", packages=["a==1"], use_constraints=False))
        assert "PIP_CONSTRAINT" not in run.call_args.kwargs["env"]

    def test_constraints_not_applied_before_file_written(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv("PIP_CONSTRAINT", raising=False)
        pip = PipAdapter(constraints_file=tmp_path / "later.txt")
        with patch(_RUN, return_value=_completed([])) as run:
            pip.execute(_ctx("pip", operation="install", packages=["b"]))
        assert "PIP_CONSTRAINT" not in run.call_args.kwargs["env"]

    def test_validate_requires_packages(self):
        valid, msg = PipAdapter().validate(_ctx("pip", operation="install"))
        assert not valid
        assert "packages" in msg


# ── git ─────────────────────────────────────────────────────────────


class TestGitAdapter:
    def test_clone_command(self, tmp_path: Path):
        dest = tmp_path / "nodes" / "ComfyUI-Manager"
        with patch(_RUN, return_value=_completed([])) as run:
            receipt = GitAdapter().execute(
                _ctx("git", operation="clone", url="https://x/ComfyUI-Manager.git", destination=str(dest))
            )
        assert receipt.ok
        assert run.call_args[0][0] == [
            "git", "clone", "--depth", "1", "https://x/ComfyUI-Manager.git", str(dest),
        ]
        assert run.call_args.kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"
        assert dest.parent.is_dir()

    def test_clone_with_branch(self, tmp_path: Path):
        with patch(_RUN, return_value=_completed([])) as run:
            GitAdapter().execute(
                _ctx("git", operation="clone", url="u", destination=str(tmp_path / "app"), branch="main")
            )
        cmd = run.call_args[0][0]
        assert cmd[cmd.index("--branch") + 1] == "main"
        assert "--single-branch" in cmd

    def test_existing_destination_is_skip(self, tmp_path: Path):
        (tmp_path / "app").mkdir()
        with patch(_RUN) as run:
            receipt = GitAdapter().execute(_ctx("git", operation="clone", url="u", destination=str(tmp_path / "app")))
        assert receipt.skipped
        run.assert_not_called()

    def test_legacy_git_suffix_folder_renamed(self, tmp_path: Path):
        legacy = tmp_path / "ComfyUI_PuLID_Flux_ll_FaceNet.git"
        legacy.mkdir()
        dest = tmp_path / "ComfyUI_PuLID_Flux_ll_FaceNet"
        with patch(_RUN) as run:
            receipt = GitAdapter().execute(_ctx("git", operation="clone", url="u", destination=str(dest)))
        assert receipt.skipped
        assert dest.is_dir()
        assert not legacy.exists()
        run.assert_not_called()

    def test_clone_failure(self, tmp_path: Path):
        with patch(_RUN, return_value=_completed([], returncode=128, stderr="fatal: repository not found")):
            receipt = GitAdapter().execute(
                _ctx("git", operation="clone", url="u", destination=str(tmp_path / "x"))
            )
        assert receipt.failed
        assert "repository not found" in receipt.error


# ── shell ───────────────────────────────────────────────────────────


class TestShellCommandAdapter:
    def test_runs_through_bash_with_pipefail(self):
        with patch(_RUN, return_value=_completed([], stdout="hello\n")) as run:
            receipt = ShellCommandAdapter().execute(_ctx("shell", operation="run", command="echo hello"))
        assert receipt.ok
        assert receipt.output == "hello"
        assert run.call_args[0][0] == ["bash", "-o", "pipefail", "-c", "echo hello"]

    def test_failing_pipeline_stage_fails_command(self):
        receipt = ShellCommandAdapter().execute(_ctx("shell", operation="run", command="false | cat"))
        assert receipt.failed
        assert "exit 1" in receipt.error

    def test_command_not_found(self):
        with patch(_RUN, side_effect=FileNotFoundError()):
            receipt = ShellCommandAdapter().execute(_ctx("shell", operation="run", command="x"))
        assert receipt.failed
        assert "Command not found: bash" in receipt.error

    def test_validate_requires_command(self):
        valid, _ = ShellCommandAdapter().validate(_ctx("shell", operation="run"))
        assert not valid


# ── filesystem ──────────────────────────────────────────────────────


class TestFilesystemAdapter:
    def test_write_with_mode(self, tmp_path: Path):
        target = tmp_path / "bin" / "start.sh"
        receipt = FilesystemAdapter().execute(
            _ctx("filesystem", operation="write", path=str(target), content="#!/bin/bash\n", mode=0o755)
        )
        assert receipt.ok
        assert target.read_text() == "#!/bin/bash\n"
        assert target.stat().st_mode & 0o777 == 0o755

    def test_mkdir(self, tmp_path: Path):
        target = tmp_path / "a" / "b"
        assert FilesystemAdapter().execute(_ctx("filesystem", operation="mkdir", path=str(target))).ok
        assert target.is_dir()

    def test_remove_missing_is_skip(self, tmp_path: Path):
        receipt = FilesystemAdapter().execute(
            _ctx("filesystem", operation="remove", path=str(tmp_path / "gone"))
        )
        assert receipt.skipped

    def test_remove(self, tmp_path: Path):
        target = tmp_path / "c.txt"
        target.write_text("x")
        assert FilesystemAdapter().execute(_ctx("filesystem", operation="remove", path=str(target))).ok
        assert not target.exists()

    def test_validate_rejects_unknown_operation(self):
        valid, msg = FilesystemAdapter().validate(_ctx("filesystem", operation="exists", path="/x"))
        assert not valid
        assert "Valid: mkdir, remove, write" in msg

    def test_relative_path_uses_working_dir(self, tmp_path: Path):
        ctx = _ctx("filesystem", operation="mkdir", path="rel", cwd=str(tmp_path))
        FilesystemAdapter().execute(ctx)
        assert (tmp_path / "rel").is_dir()

    def test_os_error_becomes_failure(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        receipt = FilesystemAdapter().execute(
            _ctx("filesystem", operation="mkdir", path=str(blocker / "child"))
        )
        assert receipt.failed
        assert "Filesystem error" in receipt.error
