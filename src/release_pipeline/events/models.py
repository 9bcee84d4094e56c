"""Pipeline event models for observability.

This module defines the data models for pipeline events, including:
- EventType: Enum of all event types emitted by the pipeline
- PipelineEvent: Structured event with all required metadata

One event is emitted per stage outcome, plus one completion or error event
per run. Events carry the commit a run operates on, so a run can be traced
end to end by its SHA.

The models use Pydantic for validation, consistent with the trigger and
release models.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted by the release pipeline.

    Attributes:
        STAGE_OUTCOME: A stage was skipped, succeeded or failed.
        ERROR: A run failed. Details name the failed stage and error.
        COMPLETION: A run finished without failures.
    """

    STAGE_OUTCOME = "stage_outcome"
    ERROR = "error"
    COMPLETION = "completion"


class PipelineEvent(BaseModel):
    """Structured event emitted by the release pipeline.

    Attributes:
        event_type: The category of event.
        commit_sha: Commit the run operates on.
        repository: Full repository path in format "{owner}/{repo}".
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Details Field Conventions:
        For STAGE_OUTCOME events:
            - stage: Stage name
            - outcome: skipped, succeeded or failed
            - skip_reason: gate or upstream_failure, for skipped stages
            - duration_seconds: Time spent in the stage's work

        For ERROR events:
            - stage: Stage that failed, "orchestrator" or "workspace"
            - error: Human-readable error description
            - error_type: Exception class name
            - duration_seconds: Run time up to the failure

        For COMPLETION events:
            - released_version / next_version: Set when a release ran
            - pr_url: Version update pull request URL, when a release ran
            - duration_seconds: Total run time
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    commit_sha: str = Field(
        ...,
        min_length=1,
        description="Commit the pipeline run operates on",
    )

    repository: str = Field(
        ...,
        min_length=1,
        description='Full repository path in format "{owner}/{repo}"',
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten the event for structured logging.

        Example:
            >>> event = PipelineEvent(
            ...     event_type=EventType.ERROR,
            ...     commit_sha="abc123",
            ...     repository="org/repo",
            ...     details={"stage": "deploy"},
            ... )
            >>> event.to_log_dict()["stage"]
            'deploy'
        """
        return {
            "event_type": self.event_type.value,
            "commit_sha": self.commit_sha,
            "repository": self.repository,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
