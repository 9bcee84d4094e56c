"""Trigger event models for the release pipeline.

This module defines the data models for the event that starts a pipeline
run and the gate decisions derived from it:
- EventType: Hosting-system event kinds the pipeline reacts to
- TriggerEvent: One immutable event per pipeline run
- GateDecision: Structured result of evaluating the stage gates

The models use Pydantic for validation, consistent with the pipeline's
configuration approach in config.py.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.release_pipeline.version.models import BumpKind


class EventType(str, Enum):
    """Event kinds that trigger a pipeline run.

    Attributes:
        PUSH: Commits pushed to the mainline branch. Eligible for deploy
              and release.
        PULL_REQUEST: Pull request opened or updated against the mainline
                      branch. Build only.
    """

    PUSH = "push"
    PULL_REQUEST = "pull_request"


class TriggerEvent(BaseModel):
    """Event that triggered a pipeline run.

    Attributes:
        event_type: The kind of hosting-system event.
        branch: The branch the event targets.
        commit_message: Head commit message. Empty when the hosting system
                        provides none (pull request events).
        commit_sha: The commit the pipeline builds and may tag.
    """

    model_config = ConfigDict(frozen=True)

    event_type: EventType = Field(
        ...,
        description="The kind of event that triggered the run",
    )

    branch: str = Field(
        ...,
        min_length=1,
        description="Branch targeted by the event",
    )

    commit_message: str = Field(
        default="",
        description="Head commit message (may be empty)",
    )

    commit_sha: str = Field(
        ...,
        min_length=1,
        description="Commit SHA the run operates on",
    )

    @property
    def short_sha(self) -> str:
        return self.commit_sha[:7]

    @property
    def subject(self) -> str:
        """First line of the commit message."""
        return self.commit_message.split("\n", 1)[0].strip()


class GateDecision(BaseModel):
    """Gate decisions computed from a trigger event.

    Attributes:
        run_deploy: Whether the deploy stage's work executes.
        run_release: Whether the release stage's work executes.
        bump_kind: Version bump applied if the release stage runs.
    """

    model_config = ConfigDict(frozen=True)

    run_deploy: bool
    run_release: bool
    bump_kind: BumpKind
