"""Work of the release stage.

Reads the current version, computes its successor, publishes the current
version at the triggering commit, then proposes the successor:

    current = ledger.current()
    next    = ledger.next(current, bump_kind)
    publisher.publish(current, commit_sha)
    automator.propose_version_update(next, commit_sha)

The release is tagged at the version already in the file; the bump lands on
mainline later, through the version-update pull request.
"""

import logging
from dataclasses import dataclass

from src.release_pipeline.release.automator import (
    BranchPRAutomator,
    VersionUpdateProposal,
)
from src.release_pipeline.release.models import Release
from src.release_pipeline.release.publisher import (
    TagReleasePublisher,
    build_release_notes,
)
from src.release_pipeline.trigger.evaluator import bump_kind_for
from src.release_pipeline.trigger.models import TriggerEvent
from src.release_pipeline.version.ledger import VersionLedger
from src.release_pipeline.version.models import BumpKind, VersionState


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReleaseOutcome:
    """What the release stage produced."""

    released_version: VersionState
    next_version: VersionState
    bump_kind: BumpKind
    release: Release
    proposal: VersionUpdateProposal

    def to_dict(self) -> dict:
        return {
            "released_version": str(self.released_version),
            "next_version": str(self.next_version),
            "bump_kind": self.bump_kind.value,
            "tag": self.release.tag_name,
            "release_url": self.release.url,
            "version_update_branch": self.proposal.request.head_branch,
            "pull_request_number": self.proposal.pull_request.number,
            "pull_request_url": self.proposal.pull_request.url,
        }


class ReleaseWorkflow:
    """Release stage work: ledger, then publisher, then automator."""

    def __init__(
        self,
        ledger: VersionLedger,
        publisher: TagReleasePublisher,
        automator: BranchPRAutomator,
    ):
        self.ledger = ledger
        self.publisher = publisher
        self.automator = automator

    async def __call__(self, event: TriggerEvent) -> ReleaseOutcome:
        # Read at the released commit, not the mainline tip, which may have
        # moved since the event. A malformed version halts here, before any
        # tag exists.
        current = await self.ledger.current(event.commit_sha)
        bump_kind = bump_kind_for(event.commit_message)
        next_version = VersionLedger.next(current, bump_kind)

        logger.info(
            "Releasing version",
            extra={
                "version": str(current),
                "next_version": str(next_version),
                "bump_kind": bump_kind.value,
                "commit_sha": event.commit_sha,
            },
        )

        release = await self.publisher.publish(
            current,
            event.commit_sha,
            notes=build_release_notes(current, event.commit_message),
        )
        proposal = await self.automator.propose_version_update(
            next_version, event.commit_sha
        )

        return ReleaseOutcome(
            released_version=current,
            next_version=next_version,
            bump_kind=bump_kind,
            release=release,
            proposal=proposal,
        )
