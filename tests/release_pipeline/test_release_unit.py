"""Unit tests for tag/release publication and version-update automation."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.release_pipeline.errors import (
    BranchAlreadyExistsError,
    MalformedVersionError,
    ReleasePublicationError,
    TagAlreadyExistsError,
)
from src.release_pipeline.release.automator import BranchPRAutomator
from src.release_pipeline.release.models import Release, Tag
from src.release_pipeline.release.publisher import (
    TagReleasePublisher,
    build_release_notes,
)
from src.release_pipeline.release.workflow import ReleaseWorkflow
from src.release_pipeline.storage.memory import InMemoryRepository
from src.release_pipeline.trigger.models import EventType, TriggerEvent
from src.release_pipeline.version.ledger import VersionLedger
from src.release_pipeline.version.models import BumpKind, VersionState


SHA = "6113728f27ae82c7b1a177c8d03f9e96e0adf246"


def run_async(coro):
    return asyncio.run(coro)


def _version(raw: str) -> VersionState:
    return VersionState.parse(raw)


class TestTagReleasePublisher:
    def test_creates_tag_then_release(self, memory_repository, identity):
        publisher = TagReleasePublisher(memory_repository, tagger=identity)

        release = run_async(publisher.publish(_version("1.4.2"), SHA, notes="notes"))

        assert memory_repository.tags["v1.4.2"] == Tag(
            name="v1.4.2", commit_sha=SHA, message="Release v1.4.2"
        )
        assert release == Release(tag_name="v1.4.2", notes="notes")
        assert memory_repository.releases["v1.4.2"] == release

    def test_default_notes(self, memory_repository, identity):
        publisher = TagReleasePublisher(memory_repository, tagger=identity)

        release = run_async(publisher.publish(_version("2.0.1"), SHA))

        assert release.notes == "Release v2.0.1"

    def test_existing_tag_fails_without_release(self, memory_repository, identity):
        run_async(
            memory_repository.create_tag(Tag(name="v1.4.2", commit_sha="old"), identity)
        )
        publisher = TagReleasePublisher(memory_repository, tagger=identity)

        with pytest.raises(TagAlreadyExistsError) as exc_info:
            run_async(publisher.publish(_version("1.4.2"), SHA))

        assert exc_info.value.tag_name == "v1.4.2"
        assert memory_repository.tags["v1.4.2"].commit_sha == "old"
        assert memory_repository.releases == {}

    def test_release_failure_leaves_tag(self, identity):
        repository = AsyncMock()
        repository.create_tag.side_effect = lambda tag, tagger: tag
        repository.create_release.side_effect = RuntimeError("502 Bad Gateway")
        publisher = TagReleasePublisher(repository, tagger=identity)

        with pytest.raises(ReleasePublicationError) as exc_info:
            run_async(publisher.publish(_version("1.4.2"), SHA))

        assert exc_info.value.tag_name == "v1.4.2"
        assert "502 Bad Gateway" in str(exc_info.value)
        repository.create_tag.assert_awaited_once()

    def test_tagger_identity_is_passed(self, identity):
        repository = AsyncMock()
        repository.create_release.side_effect = lambda release: release
        publisher = TagReleasePublisher(repository, tagger=identity)

        run_async(publisher.publish(_version("1.0.0"), SHA))

        tag, tagger = repository.create_tag.await_args.args
        assert tag.name == "v1.0.0"
        assert tagger == identity

    def test_release_notes_include_commit_message(self):
        notes = build_release_notes(_version("1.4.2"), "feat: add search\n")

        assert notes == "Release v1.4.2\n\nfeat: add search"


class TestBranchPRAutomator:
    def test_branch_commit_and_pull_request(self, memory_repository, identity):
        automator = BranchPRAutomator(memory_repository, "main", author=identity)

        proposal = run_async(automator.propose_version_update(_version("1.5.0"), SHA))

        assert "version-update-1.5.0" in memory_repository.branches
        assert run_async(memory_repository.read_version("version-update-1.5.0")) == "1.5.0\n"
        assert memory_repository.commits["version-update-1.5.0"] == ["release: version update"]
        assert proposal.request.head_branch == "version-update-1.5.0"
        assert proposal.request.base_branch == "main"
        assert proposal.request.title == "Version update"
        assert proposal.request.body == "Version update after release"
        assert proposal.pull_request.number == 1
        assert memory_repository.branches["version-update-1.5.0"] == proposal.commit_sha

    def test_mainline_version_untouched(self, memory_repository, identity):
        automator = BranchPRAutomator(memory_repository, "main", author=identity)

        run_async(automator.propose_version_update(_version("1.4.3"), SHA))

        assert run_async(memory_repository.read_version()) == "1.4.2\n"
        assert "main" not in memory_repository.commits

    def test_existing_branch_fails_without_pull_request(self, memory_repository, identity):
        run_async(memory_repository.create_branch("version-update-1.5.0", SHA))
        automator = BranchPRAutomator(memory_repository, "main", author=identity)

        with pytest.raises(BranchAlreadyExistsError) as exc_info:
            run_async(automator.propose_version_update(_version("1.5.0"), SHA))

        assert exc_info.value.branch_name == "version-update-1.5.0"
        assert memory_repository.pull_requests == []


def _workflow(repository, identity) -> ReleaseWorkflow:
    return ReleaseWorkflow(
        ledger=VersionLedger(repository),
        publisher=TagReleasePublisher(repository, tagger=identity),
        automator=BranchPRAutomator(repository, "main", author=identity),
    )


def _event(message: str) -> TriggerEvent:
    return TriggerEvent(
        event_type=EventType.PUSH,
        branch="main",
        commit_message=message,
        commit_sha=SHA,
    )


class TestReleaseWorkflow:
    def test_patch_release(self, memory_repository, identity):
        outcome = run_async(_workflow(memory_repository, identity)(_event("fix: x")))

        assert str(outcome.released_version) == "1.4.2"
        assert str(outcome.next_version) == "1.4.3"
        assert outcome.bump_kind == BumpKind.PATCH
        assert outcome.release.tag_name == "v1.4.2"
        assert outcome.proposal.request.head_branch == "version-update-1.4.3"
        assert outcome.to_dict()["pull_request_number"] == 1

    def test_malformed_version_halts_before_tagging(self, identity):
        repository = InMemoryRepository(version_text="1.4\n", head_sha=SHA)

        with pytest.raises(MalformedVersionError):
            run_async(_workflow(repository, identity)(_event("feat: x")))

        assert repository.tags == {}
        assert repository.pull_requests == []

    def test_existing_tag_halts_before_branch(self, memory_repository, identity):
        run_async(memory_repository.create_tag(Tag(name="v1.4.2", commit_sha="old"), identity))

        with pytest.raises(TagAlreadyExistsError):
            run_async(_workflow(memory_repository, identity)(_event("feat: x")))

        assert "version-update-1.5.0" not in memory_repository.branches

    def test_version_comes_from_event_commit(self, memory_repository, identity):
        # Mainline advanced to 1.5.0 while the run for SHA was in flight
        run_async(
            memory_repository.write_version(
                "main", "1.5.0\n", "release: version update", identity
            )
        )

        outcome = run_async(_workflow(memory_repository, identity)(_event("feat: x")))

        assert outcome.release.tag_name == "v1.4.2"
        assert memory_repository.tags["v1.4.2"].commit_sha == SHA
        assert str(outcome.next_version) == "1.5.0"
        assert (
            run_async(memory_repository.read_version("version-update-1.5.0"))
            == "1.5.0\n"
        )
