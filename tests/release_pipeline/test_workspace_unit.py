"""Unit tests for per-run checkouts of the event commit."""

import asyncio
import base64
from typing import List
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.release_pipeline.errors import WorkspaceProvisionError
from src.release_pipeline.stages.workspace import (
    ProvisionedWorkspace,
    WorkspaceProvisioner,
)


def run_async(coro):
    return asyncio.run(coro)


SHA = "6113728f27ae82c7b1a177c8d03f9e96e0adf246"
REMOTE = "https://github.com/zana-app/zana.git"


def _make_mock_process(returncode: int, stderr: bytes = b""):
    process = AsyncMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(b"", stderr))
    process.kill = MagicMock()
    process.wait = AsyncMock()
    return process


def _git_args(create) -> List[List[str]]:
    return [list(call.args[1:]) for call in create.call_args_list]


class TestProvision:
    def test_checks_out_event_commit(self, tmp_path):
        provisioner = WorkspaceProvisioner(tmp_path, REMOTE)

        with patch(
            "asyncio.create_subprocess_exec",
            side_effect=lambda *a, **kw: _make_mock_process(0),
        ) as create:
            workspace = run_async(provisioner.provision(SHA))

        assert workspace.commit_sha == SHA
        assert workspace.path.parent == tmp_path.resolve()
        assert workspace.path.name.startswith(SHA[:12])
        assert workspace.path.is_dir()
        assert _git_args(create) == [
            ["init", "--quiet", "."],
            ["fetch", "--quiet", "--depth", "1", REMOTE, SHA],
            ["checkout", "--quiet", "--detach", "FETCH_HEAD"],
        ]
        assert all(call.args[0] == "git" for call in create.call_args_list)
        assert all(
            call.kwargs["cwd"] == str(workspace.path) for call in create.call_args_list
        )

    def test_token_sent_as_header_not_in_url(self, tmp_path):
        provisioner = WorkspaceProvisioner(tmp_path, REMOTE, token="ghp_secret")

        with patch(
            "asyncio.create_subprocess_exec",
            side_effect=lambda *a, **kw: _make_mock_process(0),
        ) as create:
            run_async(provisioner.provision(SHA))

        fetch = _git_args(create)[1]
        expected = base64.b64encode(b"x-access-token:ghp_secret").decode()
        assert fetch[:2] == ["-c", f"http.extraHeader=AUTHORIZATION: basic {expected}"]
        assert REMOTE in fetch
        assert all("ghp_secret" not in arg for arg in fetch)

    def test_each_run_gets_its_own_directory(self, tmp_path):
        provisioner = WorkspaceProvisioner(tmp_path, REMOTE)

        with patch(
            "asyncio.create_subprocess_exec",
            side_effect=lambda *a, **kw: _make_mock_process(0),
        ):
            first = run_async(provisioner.provision(SHA))
            second = run_async(provisioner.provision(SHA))

        assert first.path != second.path

    def test_failed_fetch_removes_directory(self, tmp_path):
        provisioner = WorkspaceProvisioner(tmp_path, REMOTE)
        processes = [
            _make_mock_process(0),
            _make_mock_process(128, b"fatal: remote error: upload-pack: not our ref\n"),
        ]

        with patch("asyncio.create_subprocess_exec", side_effect=processes):
            with pytest.raises(WorkspaceProvisionError) as exc_info:
                run_async(provisioner.provision(SHA))

        assert exc_info.value.commit_sha == SHA
        assert "git fetch exited with 128" in str(exc_info.value)
        assert "not our ref" in str(exc_info.value)
        assert list(tmp_path.iterdir()) == []

    def test_missing_git_binary(self, tmp_path):
        provisioner = WorkspaceProvisioner(tmp_path, REMOTE)

        with patch(
            "asyncio.create_subprocess_exec",
            side_effect=FileNotFoundError("git"),
        ):
            with pytest.raises(WorkspaceProvisionError, match="failed to execute git"):
                run_async(provisioner.provision(SHA))

        assert list(tmp_path.iterdir()) == []

    def test_timeout_kills_git(self, tmp_path):
        provisioner = WorkspaceProvisioner(tmp_path, REMOTE, timeout_seconds=0.05)
        process = _make_mock_process(0)

        async def hang():
            await asyncio.sleep(10)

        process.communicate = hang

        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(WorkspaceProvisionError, match="timed out"):
                run_async(provisioner.provision(SHA))

        process.kill.assert_called_once()
        process.wait.assert_awaited_once()


class TestRemove:
    def test_deletes_checkout(self, tmp_path):
        path = tmp_path / "checkout"
        (path / "services").mkdir(parents=True)
        (path / "services" / "main.rs").write_text("fn main() {}\n")

        WorkspaceProvisioner(tmp_path, REMOTE).remove(
            ProvisionedWorkspace(path=path, commit_sha=SHA)
        )

        assert not path.exists()

    def test_missing_checkout_is_ignored(self, tmp_path):
        WorkspaceProvisioner(tmp_path, REMOTE).remove(
            ProvisionedWorkspace(path=tmp_path / "gone", commit_sha=SHA)
        )
