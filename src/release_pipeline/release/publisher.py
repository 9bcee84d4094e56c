"""Tag and release publication.

Publishing is two steps against the storage port: create the tag, then the
release record for it. The steps are not atomic. When the release record
fails the tag stays where it is and ReleasePublicationError tells the
operator which tag needs a release created by hand.
"""

import logging
from typing import Optional

from src.release_pipeline.errors import (
    ReleasePublicationError,
    TagAlreadyExistsError,
)
from src.release_pipeline.release.models import CommitIdentity, Release, Tag
from src.release_pipeline.storage.port import RepositoryPort
from src.release_pipeline.version.models import VersionState


logger = logging.getLogger(__name__)


def build_tag_message(version: VersionState) -> str:
    return f"Release {version.tag_name}"


def build_release_notes(version: VersionState, commit_message: str = "") -> str:
    """Default release notes: the tag message, then the triggering commit."""
    notes = build_tag_message(version)
    commit_message = commit_message.strip()
    if commit_message:
        notes = f"{notes}\n\n{commit_message}"
    return notes


class TagReleasePublisher:
    """Creates the version tag and its release.

    Attributes:
        repository: Storage port receiving the tag and release.
        tagger: Identity recorded on the annotated tag.
    """

    def __init__(self, repository: RepositoryPort, tagger: CommitIdentity):
        self.repository = repository
        self.tagger = tagger

    async def publish(
        self,
        version: VersionState,
        commit_sha: str,
        notes: Optional[str] = None,
    ) -> Release:
        """Tag ``commit_sha`` as ``version`` and publish a release for it.

        Args:
            version: The version being released (the pre-bump value).
            commit_sha: Commit the tag points at.
            notes: Release notes. Defaults to the tag message.

        Returns:
            Release: The published release.

        Raises:
            TagAlreadyExistsError: If the tag name is taken. Nothing is
                                   created.
            ReleasePublicationError: If the release fails after the tag was
                                     created. The tag remains.
        """
        tag = Tag(
            name=version.tag_name,
            commit_sha=commit_sha,
            message=build_tag_message(version),
        )

        try:
            await self.repository.create_tag(tag, self.tagger)
        except TagAlreadyExistsError:
            logger.error(
                "Release tag already exists",
                extra={"tag": tag.name, "commit_sha": commit_sha},
            )
            raise

        release = Release(
            tag_name=tag.name,
            notes=notes if notes is not None else build_release_notes(version),
        )

        try:
            published = await self.repository.create_release(release)
        except Exception as e:
            logger.error(
                "Release failed after tag creation; tag left in place",
                extra={
                    "tag": tag.name,
                    "commit_sha": commit_sha,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise ReleasePublicationError(tag.name, str(e) or type(e).__name__) from e

        logger.info(
            "Published release",
            extra={"tag": tag.name, "commit_sha": commit_sha, "url": published.url},
        )
        return published
