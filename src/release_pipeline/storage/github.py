"""GitHub implementation of the repository storage port.

Maps the port operations onto the GitHub REST API:
- read_version / write_version: contents API on the version file
- create_tag: annotated tag object + ``refs/tags/<name>`` ref
- create_release: releases API
- create_branch: ``refs/heads/<name>`` ref
- open_pull_request: pulls API

A 422 "already exists" from the refs API becomes TagAlreadyExistsError or
BranchAlreadyExistsError. Other API failures propagate as GitHubAPIError.
"""

import logging
from typing import Optional, Tuple

from src.release_pipeline.errors import (
    BranchAlreadyExistsError,
    TagAlreadyExistsError,
)
from src.release_pipeline.github.client import GitHubAPIError, GitHubClient
from src.release_pipeline.release.models import (
    CommitIdentity,
    PullRequestRequest,
    PullRequestResult,
    Release,
    Tag,
)


logger = logging.getLogger(__name__)


def split_repository(repository: str) -> Tuple[str, str]:
    """Split ``owner/repo`` into its two parts.

    Raises:
        ValueError: If the value is not of the form ``owner/repo``.
    """
    owner, sep, repo = repository.partition("/")
    if not sep or not owner or not repo or "/" in repo:
        raise ValueError(f"Repository must be in 'owner/repo' format, got {repository!r}")
    return owner, repo


class GitHubRepository:
    """Repository port backed by the GitHub REST API.

    Attributes:
        client: Authenticated GitHub API client.
        owner: Repository owner.
        repo: Repository name.
        mainline_branch: Branch read when no ref is given.
        version_file_path: Path of the version file in the repository.
    """

    def __init__(
        self,
        client: GitHubClient,
        repository: str,
        mainline_branch: str = "main",
        version_file_path: str = "VERSION",
    ):
        self.client = client
        self.owner, self.repo = split_repository(repository)
        self.mainline_branch = mainline_branch
        self.version_file_path = version_file_path

    async def read_version(self, ref: Optional[str] = None) -> str:
        contents = await self.client.get_file(
            self.owner,
            self.repo,
            self.version_file_path,
            ref=ref or self.mainline_branch,
        )
        return contents.content

    async def write_version(
        self,
        branch: str,
        version_text: str,
        message: str,
        author: CommitIdentity,
    ) -> str:
        # The contents API needs the blob SHA of the file being replaced
        current = await self.client.get_file(
            self.owner, self.repo, self.version_file_path, ref=branch
        )
        result = await self.client.put_file(
            self.owner,
            self.repo,
            self.version_file_path,
            content=version_text,
            message=message,
            branch=branch,
            sha=current.sha,
            author=author.to_github(),
        )
        return result.sha

    async def create_tag(self, tag: Tag, tagger: CommitIdentity) -> Tag:
        tag_object = await self.client.create_tag_object(
            self.owner,
            self.repo,
            tag=tag.name,
            message=tag.message,
            object_sha=tag.commit_sha,
            tagger=tagger.to_github(),
        )
        try:
            await self.client.create_ref(
                self.owner, self.repo, f"refs/tags/{tag.name}", tag_object.sha
            )
        except GitHubAPIError as e:
            if e.is_already_exists:
                raise TagAlreadyExistsError(tag.name) from e
            raise

        logger.info(
            "Created tag",
            extra={"tag": tag.name, "commit_sha": tag.commit_sha, "tag_object": tag_object.sha},
        )
        return tag

    async def create_release(self, release: Release) -> Release:
        result = await self.client.create_release(
            self.owner,
            self.repo,
            tag_name=release.tag_name,
            body=release.notes,
        )
        return release.model_copy(update={"url": result.html_url or None})

    async def create_branch(self, name: str, from_sha: str) -> None:
        try:
            await self.client.create_ref(
                self.owner, self.repo, f"refs/heads/{name}", from_sha
            )
        except GitHubAPIError as e:
            if e.is_already_exists:
                raise BranchAlreadyExistsError(name) from e
            raise

        logger.info("Created branch", extra={"branch": name, "from_sha": from_sha})

    async def open_pull_request(
        self, request: PullRequestRequest
    ) -> PullRequestResult:
        result = await self.client.create_pr(
            self.owner,
            self.repo,
            title=request.title,
            body=request.body,
            head_branch=request.head_branch,
            base_branch=request.base_branch,
        )
        return PullRequestResult(number=result.pr_number, url=result.pr_url)
