"""Pipeline orchestrator running one trigger event end to end.

Evaluates the gates, runs the stage graph (build → deploy → release) and
reports every stage outcome through the event emitter. The orchestrator
delegates all work to injected dependencies:

- src/release_pipeline/trigger/evaluator.py (TriggerEvaluator)
- src/release_pipeline/stages/graph.py (StageGraph)
- src/release_pipeline/stages/catalog.py (build_default_stages)
- src/release_pipeline/release/workflow.py (ReleaseWorkflow)
- src/release_pipeline/events/emitter.py (EventEmitter)
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from src.release_pipeline.errors import PipelineError
from src.release_pipeline.events.emitter import EventEmitter
from src.release_pipeline.events.models import EventType, PipelineEvent
from src.release_pipeline.release.automator import BranchPRAutomator
from src.release_pipeline.release.models import CommitIdentity
from src.release_pipeline.release.publisher import TagReleasePublisher
from src.release_pipeline.release.workflow import ReleaseOutcome, ReleaseWorkflow
from src.release_pipeline.stages.catalog import RELEASE, build_default_stages
from src.release_pipeline.stages.graph import StageGraph
from src.release_pipeline.stages.models import StageDefinition, StageOutcome, StageRun
from src.release_pipeline.stages.plan import StagePlan
from src.release_pipeline.stages.runner import CommandRunner
from src.release_pipeline.storage.port import RepositoryPort
from src.release_pipeline.trigger.evaluator import TriggerEvaluator
from src.release_pipeline.trigger.models import GateDecision, TriggerEvent
from src.release_pipeline.version.ledger import VersionLedger

logger = logging.getLogger(__name__)


@dataclass
class PipelineRunResult:
    """Result of one pipeline run.

    Attributes:
        event: The trigger event.
        decision: Gate decisions computed for the event.
        stage_runs: One record per stage, in execution order.
        release_outcome: What the release stage produced, if it succeeded.
        error: Description of the failure that halted the run.
        duration_seconds: Wall-clock run time.
    """

    event: TriggerEvent
    decision: GateDecision
    stage_runs: List[StageRun] = field(default_factory=list)
    release_outcome: Optional[ReleaseOutcome] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def failed_stage(self) -> Optional[StageRun]:
        return next(
            (run for run in self.stage_runs if run.outcome == StageOutcome.FAILED),
            None,
        )

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.failed_stage is None

    def outcome_of(self, stage: str) -> Optional[StageRun]:
        return next((run for run in self.stage_runs if run.stage == stage), None)

    def to_dict(self) -> dict:
        return {
            "event_type": self.event.event_type.value,
            "branch": self.event.branch,
            "commit_sha": self.event.commit_sha,
            "decision": self.decision.model_dump(mode="json"),
            "stages": [run.to_dict() for run in self.stage_runs],
            "release": self.release_outcome.to_dict() if self.release_outcome else None,
            "succeeded": self.succeeded,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class PipelineOrchestrator:
    """Runs the stage graph for trigger events.

    Attributes:
        graph: The validated stage graph.
        event_emitter: Emits pipeline events for observability.
        repository: "owner/repo" label attached to events.
        evaluator: Computes gate decisions for logging and results.
    """

    def __init__(
        self,
        stages: Iterable[StageDefinition],
        event_emitter: EventEmitter,
        repository: str,
        evaluator: Optional[TriggerEvaluator] = None,
    ):
        self.graph = StageGraph(stages)
        self.event_emitter = event_emitter
        self.repository = repository
        self.evaluator = evaluator or TriggerEvaluator()

    async def run(self, event: TriggerEvent) -> PipelineRunResult:
        """Run every stage once for ``event``.

        Stage failures are recorded in the result rather than raised.

        Args:
            event: The trigger event.

        Returns:
            PipelineRunResult: Stage records and the release outcome.
        """
        start_time = time.monotonic()
        decision = self.evaluator.evaluate(event)

        logger.info(
            "Starting pipeline run",
            extra={
                "event_type": event.event_type.value,
                "branch": event.branch,
                "commit_sha": event.commit_sha,
                "commit_subject": event.subject,
                "run_deploy": decision.run_deploy,
                "run_release": decision.run_release,
                "bump_kind": decision.bump_kind.value,
            },
        )

        result = PipelineRunResult(event=event, decision=decision)

        try:
            result.stage_runs = await self.graph.run(event)
        except PipelineError as exc:
            result.error = str(exc)
            result.duration_seconds = time.monotonic() - start_time
            logger.error(
                "Pipeline run aborted",
                extra={"commit_sha": event.commit_sha, "error": str(exc)},
            )
            await self._emit_error_event(
                event, "orchestrator", str(exc), type(exc).__name__, result.duration_seconds
            )
            return result

        for run in result.stage_runs:
            await self._emit_stage_event(event, run)

        release_run = result.outcome_of(RELEASE)
        if release_run is not None and isinstance(release_run.output, ReleaseOutcome):
            result.release_outcome = release_run.output

        result.duration_seconds = time.monotonic() - start_time
        failed = result.failed_stage

        if failed is not None:
            result.error = failed.error
            logger.error(
                "Pipeline run failed",
                extra={
                    "commit_sha": event.commit_sha,
                    "stage": failed.stage,
                    "error": failed.error,
                },
            )
            await self._emit_error_event(
                event,
                failed.stage,
                failed.error or "",
                failed.error_type or "",
                result.duration_seconds,
            )
        else:
            logger.info(
                "Pipeline run succeeded",
                extra={
                    "commit_sha": event.commit_sha,
                    "duration": result.duration_seconds,
                },
            )
            await self._emit_completion_event(event, result)

        return result

    async def _emit_stage_event(self, event: TriggerEvent, run: StageRun) -> None:
        """Emit a STAGE_OUTCOME event."""
        await self._safe_emit(
            PipelineEvent(
                event_type=EventType.STAGE_OUTCOME,
                commit_sha=event.commit_sha,
                repository=self.repository,
                details={
                    "stage": run.stage,
                    "outcome": run.outcome.value,
                    "skip_reason": run.skip_reason.value if run.skip_reason else None,
                    "duration_seconds": run.duration_seconds,
                },
            )
        )

    async def _emit_error_event(
        self,
        event: TriggerEvent,
        stage: str,
        error: str,
        error_type: str,
        duration_seconds: float,
    ) -> None:
        """Emit an ERROR event."""
        await self._safe_emit(
            PipelineEvent(
                event_type=EventType.ERROR,
                commit_sha=event.commit_sha,
                repository=self.repository,
                details={
                    "stage": stage,
                    "error": error,
                    "error_type": error_type,
                    "duration_seconds": duration_seconds,
                },
            )
        )

    async def _emit_completion_event(
        self, event: TriggerEvent, result: PipelineRunResult
    ) -> None:
        """Emit a COMPLETION event."""
        details = {"duration_seconds": result.duration_seconds}
        if result.release_outcome is not None:
            details.update(
                {
                    "released_version": str(result.release_outcome.released_version),
                    "next_version": str(result.release_outcome.next_version),
                    "pr_url": result.release_outcome.proposal.pull_request.url,
                }
            )
        await self._safe_emit(
            PipelineEvent(
                event_type=EventType.COMPLETION,
                commit_sha=event.commit_sha,
                repository=self.repository,
                details=details,
            )
        )

    async def _safe_emit(self, event: PipelineEvent) -> None:
        """Emit an event, swallowing exceptions to avoid disrupting the pipeline."""
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit pipeline event",
                extra={
                    "event_type": event.event_type.value,
                    "commit_sha": event.commit_sha,
                },
            )


def build_orchestrator(
    repository_port: RepositoryPort,
    plan: StagePlan,
    runner: CommandRunner,
    event_emitter: EventEmitter,
    repository: str,
    mainline_branch: str,
    identity: CommitIdentity,
) -> PipelineOrchestrator:
    """Wire the default stages into a PipelineOrchestrator.

    Args:
        repository_port: Storage port for versions, tags, branches and PRs.
        plan: Toolchain steps of the build and deploy stages.
        runner: Executes toolchain steps.
        event_emitter: Sink for pipeline events.
        repository: "owner/repo" label attached to events.
        mainline_branch: Base branch of version-update pull requests.
        identity: Tagger and version-update commit author.

    Returns:
        Fully wired PipelineOrchestrator.
    """
    release_work = ReleaseWorkflow(
        ledger=VersionLedger(repository_port),
        publisher=TagReleasePublisher(repository_port, tagger=identity),
        automator=BranchPRAutomator(
            repository_port,
            mainline_branch=mainline_branch,
            author=identity,
        ),
    )
    return PipelineOrchestrator(
        stages=build_default_stages(plan, runner, release_work),
        event_emitter=event_emitter,
        repository=repository,
    )
