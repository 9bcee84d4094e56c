"""Storage port over the source repository.

The version file, the tag namespace and the branch namespace of the source
repository are the only state that outlives a pipeline run. This module
narrows them to one protocol so the release logic can run against the
hosting API, a local double, or a test fake.

Implementations must uphold:
- create_tag raises TagAlreadyExistsError instead of moving a tag
- create_branch raises BranchAlreadyExistsError instead of reusing a branch
- write_version commits to the named branch only, never to mainline

There is no locking. Two concurrent runs targeting the same version are
separated only by the two "already exists" errors, which fail the second
run.
"""

from typing import Optional, Protocol, runtime_checkable

from src.release_pipeline.release.models import (
    CommitIdentity,
    PullRequestRequest,
    PullRequestResult,
    Release,
    Tag,
)


@runtime_checkable
class RepositoryPort(Protocol):
    """Protocol defining the repository operations the pipeline performs."""

    async def read_version(self, ref: Optional[str] = None) -> str:
        """Read the raw contents of the version file.

        Args:
            ref: Branch or commit to read from. Defaults to mainline.

        Returns:
            The unparsed file contents.
        """
        ...

    async def write_version(
        self,
        branch: str,
        version_text: str,
        message: str,
        author: CommitIdentity,
    ) -> str:
        """Commit new version file contents to a branch.

        Args:
            branch: Branch receiving the commit.
            version_text: New file contents.
            message: Commit message.
            author: Commit author and committer identity.

        Returns:
            The SHA of the created commit.
        """
        ...

    async def create_tag(self, tag: Tag, tagger: CommitIdentity) -> Tag:
        """Create an annotated tag.

        Raises:
            TagAlreadyExistsError: If the tag name is taken.
        """
        ...

    async def create_release(self, release: Release) -> Release:
        """Publish a release for an existing tag."""
        ...

    async def create_branch(self, name: str, from_sha: str) -> None:
        """Create a branch pointing at a commit.

        Raises:
            BranchAlreadyExistsError: If the branch name is taken.
        """
        ...

    async def open_pull_request(
        self, request: PullRequestRequest
    ) -> PullRequestResult:
        """Open a pull request."""
        ...
