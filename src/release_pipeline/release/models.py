"""Release publication models.

This module defines the records the release stage produces:
- CommitIdentity: Author/tagger name and email used for automated writes
- Tag: Immutable named pointer to the released commit
- Release: Published record referencing a tag
- PullRequestRequest / PullRequestResult: Version-update pull request

The models use Pydantic for validation, consistent with the trigger and
version models.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CommitIdentity(BaseModel):
    """Name and email recorded on automated tags and commits.

    Attributes:
        name: Display name of the automation identity.
        email: Email address of the automation identity.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Author or tagger name")
    email: str = Field(..., min_length=1, description="Author or tagger email")

    def to_github(self) -> dict:
        return {"name": self.name, "email": self.email}


class Tag(BaseModel):
    """Tag marking a published version.

    Tags are append-only: creation fails if the name is taken and an
    existing tag is never moved.

    Attributes:
        name: Tag name in format "v{major}.{minor}.{patch}".
        commit_sha: The commit the tag points at.
        message: Annotation message of the tag.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=2, description="Tag name, e.g. v1.4.2")
    commit_sha: str = Field(..., min_length=1, description="Tagged commit SHA")
    message: str = Field(default="", description="Tag annotation message")


class Release(BaseModel):
    """Published release, one-to-one with a Tag.

    Attributes:
        tag_name: Name of the tag this release references.
        notes: Release notes body.
        url: Web URL of the release once published.
    """

    model_config = ConfigDict(frozen=True)

    tag_name: str = Field(..., min_length=2, description="Referenced tag name")
    notes: str = Field(default="", description="Release notes body")
    url: Optional[str] = Field(default=None, description="Published release URL")


class PullRequestRequest(BaseModel):
    """Pull request proposing a committed version update.

    Attributes:
        head_branch: Branch carrying the version update commit.
        base_branch: Mainline branch the update targets.
        title: Pull request title.
        body: Pull request description.
    """

    model_config = ConfigDict(frozen=True)

    head_branch: str = Field(..., min_length=1, description="Source branch")
    base_branch: str = Field(..., min_length=1, description="Target branch")
    title: str = Field(..., min_length=1, description="Pull request title")
    body: str = Field(default="", description="Pull request description")


class PullRequestResult(BaseModel):
    """Pull request opened by the hosting system.

    Attributes:
        number: Pull request number.
        url: Web URL of the pull request.
    """

    model_config = ConfigDict(frozen=True)

    number: int = Field(..., gt=0, description="Pull request number")
    url: str = Field(default="", description="Pull request web URL")
