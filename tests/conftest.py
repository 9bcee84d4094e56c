"""Pytest configuration for all tests."""

import pytest

from src.release_pipeline.release.models import CommitIdentity
from src.release_pipeline.storage.memory import InMemoryRepository


HEAD_SHA = "6113728f27ae82c7b1a177c8d03f9e96e0adf246"


@pytest.fixture
def identity() -> CommitIdentity:
    return CommitIdentity(name="Release Bot", email="release-bot@example.com")


@pytest.fixture
def memory_repository() -> InMemoryRepository:
    """Repository at version 1.4.2 with mainline at HEAD_SHA."""
    return InMemoryRepository(
        version_text="1.4.2\n",
        mainline_branch="main",
        head_sha=HEAD_SHA,
    )
