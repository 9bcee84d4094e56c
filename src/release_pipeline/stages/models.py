"""Stage definition and stage run models.

This module defines:
- StageOutcome: Result of one stage in one run
- SkipReason: Why a stage was skipped
- StageDefinition: Static stage configuration (dependencies, gate, work)
- StageRun: Record of a stage's outcome, written once per run

Stage Flow:
    build → deploy → release

A stage whose gate is false is skipped without failing the run. A stage
downstream of a failure is skipped without evaluating its gate.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, FrozenSet, Optional

from src.release_pipeline.trigger.models import TriggerEvent


class StageOutcome(str, Enum):
    """Outcome of a stage in a pipeline run.

    Attributes:
        SKIPPED: The stage's work did not execute.
        SUCCEEDED: The stage's work completed.
        FAILED: The stage's work raised; remaining stages are aborted.
    """

    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SkipReason(str, Enum):
    """Why a stage was skipped.

    Attributes:
        GATE: The stage's gate evaluated to false. Not a failure.
        UPSTREAM_FAILURE: A dependency failed or was itself skipped because
                          of a failure further upstream.
    """

    GATE = "gate"
    UPSTREAM_FAILURE = "upstream_failure"


Gate = Callable[[TriggerEvent], bool]
StageWork = Callable[[TriggerEvent], Awaitable[Any]]


def always(event: TriggerEvent) -> bool:
    """Gate for stages that run unconditionally."""
    return True


@dataclass(frozen=True)
class StageDefinition:
    """A named unit of pipeline work.

    Attributes:
        name: Unique stage name.
        work: Coroutine function executing the stage's delegated work.
              Raising any exception fails the stage.
        depends_on: Names of stages that must not have failed.
        gate: Pure predicate over the trigger event.
    """

    name: str
    work: StageWork
    depends_on: FrozenSet[str] = field(default_factory=frozenset)
    gate: Gate = always

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("Stage name cannot be empty")
        object.__setattr__(self, "depends_on", frozenset(self.depends_on))


@dataclass(frozen=True)
class StageRun:
    """Record of one stage's outcome in one pipeline run.

    Attributes:
        stage: Stage name.
        outcome: Skipped, succeeded or failed.
        skip_reason: Set only when the outcome is SKIPPED.
        error: Error description when the outcome is FAILED.
        error_type: Exception class name when the outcome is FAILED.
        duration_seconds: Wall-clock time spent in the stage's work.
        output: Value returned by the stage's work, if any.
    """

    stage: str
    outcome: StageOutcome
    skip_reason: Optional[SkipReason] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    duration_seconds: float = 0.0
    output: Any = None

    @property
    def blocks_downstream(self) -> bool:
        """True when dependants must be skipped without evaluating gates."""
        return self.outcome == StageOutcome.FAILED or (
            self.outcome == StageOutcome.SKIPPED
            and self.skip_reason == SkipReason.UPSTREAM_FAILURE
        )

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "outcome": self.outcome.value,
            "skip_reason": self.skip_reason.value if self.skip_reason else None,
            "error": self.error,
            "error_type": self.error_type,
            "duration_seconds": round(self.duration_seconds, 3),
        }
