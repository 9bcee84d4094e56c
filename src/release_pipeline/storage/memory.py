"""In-memory repository for dry runs and local development."""

import hashlib
import logging
from typing import Dict, List, Optional

from src.release_pipeline.errors import (
    BranchAlreadyExistsError,
    TagAlreadyExistsError,
)
from src.release_pipeline.release.models import (
    CommitIdentity,
    PullRequestRequest,
    PullRequestResult,
    Release,
    Tag,
)


logger = logging.getLogger(__name__)


class InMemoryRepository:
    """Minimal in-memory repository satisfying the RepositoryPort protocol.

    Holds the version file as of every branch head and every commit it
    knows, plus the tag, release and pull request records created during a
    run. Nothing is pushed anywhere.

    Attributes:
        mainline_branch: Branch read when no ref is given.
        head_sha: Commit the mainline branch starts at.
        tags: Created tags by name.
        releases: Published releases by tag name.
        branches: Branch heads by name.
        pull_requests: Opened pull requests in creation order.
        commits: Commit messages by branch.
    """

    def __init__(
        self,
        version_text: str = "0.1.0\n",
        mainline_branch: str = "main",
        head_sha: str = "0" * 40,
    ):
        self.mainline_branch = mainline_branch
        self.tags: Dict[str, Tag] = {}
        self.releases: Dict[str, Release] = {}
        self.branches: Dict[str, str] = {mainline_branch: head_sha}
        self.pull_requests: List[PullRequestRequest] = []
        self.commits: Dict[str, List[str]] = {}
        # Version file contents by branch name or commit SHA
        self._files: Dict[str, str] = {
            mainline_branch: version_text,
            head_sha: version_text,
        }

    async def read_version(self, ref: Optional[str] = None) -> str:
        ref = ref or self.mainline_branch
        if ref not in self._files:
            raise KeyError(f"Unknown ref: {ref}")
        return self._files[ref]

    async def write_version(
        self,
        branch: str,
        version_text: str,
        message: str,
        author: CommitIdentity,
    ) -> str:
        if branch not in self.branches:
            raise KeyError(f"Unknown branch: {branch}")

        self._files[branch] = version_text
        self.commits.setdefault(branch, []).append(message)

        sha = hashlib.sha1(
            f"{self.branches[branch]}:{branch}:{version_text}:{message}".encode()
        ).hexdigest()
        self.branches[branch] = sha
        self._files[sha] = version_text

        logger.info(
            "Committed version file",
            extra={"branch": branch, "commit_sha": sha, "author": author.name},
        )
        return sha

    async def create_tag(self, tag: Tag, tagger: CommitIdentity) -> Tag:
        if tag.name in self.tags:
            raise TagAlreadyExistsError(tag.name)
        self.tags[tag.name] = tag
        return tag

    async def create_release(self, release: Release) -> Release:
        if release.tag_name not in self.tags:
            raise KeyError(f"Unknown tag: {release.tag_name}")
        self.releases[release.tag_name] = release
        return release

    async def create_branch(self, name: str, from_sha: str) -> None:
        if name in self.branches:
            raise BranchAlreadyExistsError(name)
        self.branches[name] = from_sha
        self._files[name] = self._files[from_sha]

    async def open_pull_request(
        self, request: PullRequestRequest
    ) -> PullRequestResult:
        self.pull_requests.append(request)
        number = len(self.pull_requests)
        return PullRequestResult(number=number, url=f"memory://pulls/{number}")
