"""Per-run checkouts of the commit a pipeline run operates on.

The webhook server has no CI runner checking out the event commit for it,
so every run gets a fresh directory holding exactly that commit. Toolchain
steps run inside it, and it is removed when the run ends.

A checkout is three git commands: ``init``, a shallow ``fetch`` of the
commit SHA and a detached ``checkout`` of what was fetched.
"""

import asyncio
import base64
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from src.release_pipeline.errors import WorkspaceProvisionError


logger = logging.getLogger(__name__)

GIT_COMMAND_TIMEOUT_SECONDS = 600


@dataclass(frozen=True)
class ProvisionedWorkspace:
    """A checkout prepared for one run.

    Attributes:
        path: Directory holding the checked-out tree.
        commit_sha: The commit checked out.
    """

    path: Path
    commit_sha: str


class WorkspaceProvisioner:
    """Checks out single commits into fresh directories.

    Attributes:
        base_path: Directory the per-run checkouts are created under.
        remote_url: Git URL of the repository.
        timeout_seconds: Limit for each git command.
    """

    def __init__(
        self,
        base_path: Union[str, Path],
        remote_url: str,
        token: Optional[str] = None,
        timeout_seconds: float = GIT_COMMAND_TIMEOUT_SECONDS,
    ):
        self.base_path = Path(base_path).resolve()
        self.remote_url = remote_url
        self.timeout_seconds = timeout_seconds
        self._token = token

    async def provision(self, commit_sha: str) -> ProvisionedWorkspace:
        """Check out ``commit_sha`` into a new directory.

        Raises:
            WorkspaceProvisionError: If the directory cannot be created or a
                git command fails. Partial checkouts are removed.
        """
        workspace = ProvisionedWorkspace(
            path=self._build_workspace_path(commit_sha),
            commit_sha=commit_sha,
        )
        try:
            workspace.path.mkdir(parents=True, exist_ok=False)
        except OSError as exc:
            raise WorkspaceProvisionError(
                commit_sha, f"cannot create {workspace.path}: {exc}"
            ) from exc

        try:
            await self._git(commit_sha, "init", ["init", "--quiet", "."], workspace.path)
            await self._git(
                commit_sha,
                "fetch",
                self._auth_args()
                + ["fetch", "--quiet", "--depth", "1", self.remote_url, commit_sha],
                workspace.path,
            )
            await self._git(
                commit_sha,
                "checkout",
                ["checkout", "--quiet", "--detach", "FETCH_HEAD"],
                workspace.path,
            )
        except WorkspaceProvisionError:
            self.remove(workspace)
            raise

        logger.info(
            "Checked out commit",
            extra={"commit_sha": commit_sha, "workspace": str(workspace.path)},
        )
        return workspace

    def remove(self, workspace: ProvisionedWorkspace) -> None:
        """Delete a checkout. Failures are logged, not raised."""
        try:
            shutil.rmtree(workspace.path)
        except FileNotFoundError:
            return
        except OSError:
            logger.exception(
                "Failed to remove workspace",
                extra={"workspace": str(workspace.path)},
            )
            return
        logger.info("Removed workspace", extra={"workspace": str(workspace.path)})

    def _build_workspace_path(self, commit_sha: str) -> Path:
        return self.base_path / f"{commit_sha[:12]}-{time.time_ns()}"

    def _auth_args(self) -> List[str]:
        """Git config passing the token as a header, keeping it out of URLs."""
        if not self._token:
            return []
        credentials = base64.b64encode(
            f"x-access-token:{self._token}".encode()
        ).decode()
        return ["-c", f"http.extraHeader=AUTHORIZATION: basic {credentials}"]

    async def _git(
        self, commit_sha: str, action: str, args: List[str], cwd: Path
    ) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                "git",
                *args,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise WorkspaceProvisionError(
                commit_sha, f"failed to execute git: {exc}"
            ) from exc

        try:
            _, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise WorkspaceProvisionError(
                commit_sha, f"git {action} timed out after {self.timeout_seconds}s"
            ) from exc

        if process.returncode != 0:
            raise WorkspaceProvisionError(
                commit_sha,
                f"git {action} exited with {process.returncode}: "
                f"{stderr.decode(errors='replace').strip()}",
            )
