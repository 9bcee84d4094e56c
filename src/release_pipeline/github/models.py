"""GitHub REST API response models.

Thin Pydantic views over the JSON the GitHub API returns for the objects
the release pipeline creates. Unknown fields are ignored.
"""

from typing import Any, Dict

from pydantic import BaseModel, Field


class FileContents(BaseModel):
    """A file read through the contents API.

    Attributes:
        path: Repository path of the file.
        sha: Blob SHA, required to update the file.
        content: Decoded file text.
    """

    path: str
    sha: str
    content: str


class GitObjectResult(BaseModel):
    """A created git object (tag object or commit).

    Attributes:
        sha: SHA of the created object.
    """

    sha: str = Field(..., min_length=1)

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "GitObjectResult":
        return cls(sha=data["sha"])


class ReleaseCreateResult(BaseModel):
    """A release created through the releases API."""

    release_id: int = Field(..., gt=0)
    tag_name: str
    html_url: str = ""

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "ReleaseCreateResult":
        return cls(
            release_id=data["id"],
            tag_name=data["tag_name"],
            html_url=data.get("html_url") or "",
        )


class PRCreateResult(BaseModel):
    """A pull request created through the pulls API."""

    pr_number: int = Field(..., gt=0)
    pr_url: str = ""

    @classmethod
    def from_github_response(cls, data: Dict[str, Any]) -> "PRCreateResult":
        return cls(
            pr_number=data["number"],
            pr_url=data.get("html_url") or "",
        )
