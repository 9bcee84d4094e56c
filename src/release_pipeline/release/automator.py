"""Version-update branch and pull request automation.

After a release, the bumped version is never written to mainline directly.
It goes onto a fresh branch named after the new version and reaches
mainline through a pull request, whose merge commit carries the
``release:`` prefix and therefore does not trigger another release.
"""

import logging
from dataclasses import dataclass

from src.release_pipeline.errors import BranchAlreadyExistsError
from src.release_pipeline.release.models import (
    CommitIdentity,
    PullRequestRequest,
    PullRequestResult,
)
from src.release_pipeline.storage.port import RepositoryPort
from src.release_pipeline.version.models import VersionState


logger = logging.getLogger(__name__)

VERSION_UPDATE_COMMIT_MESSAGE = "release: version update"
VERSION_UPDATE_PR_TITLE = "Version update"
VERSION_UPDATE_PR_BODY = "Version update after release"


@dataclass(frozen=True)
class VersionUpdateProposal:
    """The pull request proposing a version update, as requested and opened.

    Attributes:
        request: What was asked of the hosting system.
        pull_request: The opened pull request.
        commit_sha: Commit on the update branch carrying the new version.
    """

    request: PullRequestRequest
    pull_request: PullRequestResult
    commit_sha: str


class BranchPRAutomator:
    """Proposes a bumped version through a branch and a pull request.

    Attributes:
        repository: Storage port holding branches and the version file.
        mainline_branch: Base branch of the pull request.
        author: Identity of the version-update commit.
    """

    def __init__(
        self,
        repository: RepositoryPort,
        mainline_branch: str,
        author: CommitIdentity,
    ):
        self.repository = repository
        self.mainline_branch = mainline_branch
        self.author = author

    async def propose_version_update(
        self, new_version: VersionState, head_sha: str
    ) -> VersionUpdateProposal:
        """Create the update branch, commit the new version, open the PR.

        Args:
            new_version: The bumped version.
            head_sha: Commit the branch starts from (the released commit).

        Returns:
            VersionUpdateProposal: The request sent and the PR opened.

        Raises:
            BranchAlreadyExistsError: If the branch name is taken. Not
                                      retried.
        """
        branch = new_version.branch_name

        try:
            await self.repository.create_branch(branch, head_sha)
        except BranchAlreadyExistsError:
            logger.error(
                "Version update branch already exists",
                extra={"branch": branch, "version": str(new_version)},
            )
            raise

        commit_sha = await self.repository.write_version(
            branch,
            f"{new_version}\n",
            VERSION_UPDATE_COMMIT_MESSAGE,
            self.author,
        )

        request = PullRequestRequest(
            head_branch=branch,
            base_branch=self.mainline_branch,
            title=VERSION_UPDATE_PR_TITLE,
            body=VERSION_UPDATE_PR_BODY,
        )
        pull_request = await self.repository.open_pull_request(request)

        logger.info(
            "Opened version update pull request",
            extra={
                "branch": branch,
                "version": str(new_version),
                "pr_number": pull_request.number,
                "pr_url": pull_request.url,
            },
        )
        return VersionUpdateProposal(
            request=request,
            pull_request=pull_request,
            commit_sha=commit_sha,
        )
