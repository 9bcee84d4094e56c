"""Fail-fast stage execution.

StageGraph orders stage definitions by their dependencies and runs them one
at a time. It is a linear pipeline with short-circuit evaluation, not a
scheduler: stages never run in parallel, and the first failure aborts every
stage after it.

Per stage, in order:
- a dependency failed, or was skipped because of a failure: skip
  (upstream_failure) without evaluating the gate
- the gate is false: skip (gate) and continue
- otherwise await the work: any exception fails the stage and aborts the
  rest of the run; a normal return succeeds
"""

import logging
import time
from typing import Dict, Iterable, List, Optional

from src.release_pipeline.errors import GateEvaluationError, StageGraphError
from src.release_pipeline.stages.models import (
    SkipReason,
    StageDefinition,
    StageOutcome,
    StageRun,
)
from src.release_pipeline.trigger.models import TriggerEvent


logger = logging.getLogger(__name__)


def order_stages(stages: Iterable[StageDefinition]) -> List[StageDefinition]:
    """Return stages in a stable topological order.

    Among stages whose dependencies are satisfied, the one declared first
    comes first, so a declared chain keeps its declared order.

    Raises:
        StageGraphError: On duplicate names, unknown dependencies or cycles.
    """
    declared = list(stages)
    by_name: Dict[str, StageDefinition] = {}
    for stage in declared:
        if stage.name in by_name:
            raise StageGraphError(f"Duplicate stage name: {stage.name}")
        by_name[stage.name] = stage

    for stage in declared:
        unknown = stage.depends_on - set(by_name)
        if unknown:
            raise StageGraphError(
                f"Stage {stage.name} depends on unknown stages: "
                f"{', '.join(sorted(unknown))}"
            )

    ordered: List[StageDefinition] = []
    placed: set = set()
    remaining = list(declared)
    while remaining:
        ready = next(
            (stage for stage in remaining if stage.depends_on <= placed),
            None,
        )
        if ready is None:
            cycle = ", ".join(stage.name for stage in remaining)
            raise StageGraphError(f"Stage dependencies form a cycle: {cycle}")
        ordered.append(ready)
        placed.add(ready.name)
        remaining.remove(ready)

    return ordered


class StageGraph:
    """Runs stage definitions in dependency order with fail-fast semantics.

    Attributes:
        stages: Stage definitions in execution order.

    Example:
        >>> graph = StageGraph([build, deploy, release])
        >>> runs = await graph.run(event)
        >>> [run.outcome.value for run in runs]
        ['succeeded', 'succeeded', 'skipped']
    """

    def __init__(self, stages: Iterable[StageDefinition]):
        self.stages = order_stages(stages)

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    async def run(self, event: TriggerEvent) -> List[StageRun]:
        """Run every stage once against an event.

        A gate that raises fails its stage, like failing work would, so the
        stages recorded before it are kept.

        Args:
            event: The trigger event passed to gates and work.

        Returns:
            One StageRun per stage, in execution order.
        """
        runs: Dict[str, StageRun] = {}
        aborted_by: Optional[str] = None

        for stage in self.stages:
            if aborted_by is not None:
                run = self._skip(stage, SkipReason.UPSTREAM_FAILURE, aborted_by)
            elif any(runs[dep].blocks_downstream for dep in stage.depends_on):
                run = self._skip(stage, SkipReason.UPSTREAM_FAILURE)
            else:
                try:
                    gate_open = self._gate_passes(stage, event)
                except GateEvaluationError as exc:
                    run = self._gate_failure(stage, exc)
                else:
                    if gate_open:
                        run = await self._execute(stage, event)
                    else:
                        run = self._skip(stage, SkipReason.GATE)
                if run.outcome == StageOutcome.FAILED:
                    aborted_by = stage.name

            runs[stage.name] = run

        return list(runs.values())

    def _gate_passes(self, stage: StageDefinition, event: TriggerEvent) -> bool:
        """Evaluate a stage gate.

        Raises:
            GateEvaluationError: If a custom gate raises. The built-in gates
                                 are total and never do.
        """
        try:
            return bool(stage.gate(event))
        except Exception as exc:
            raise GateEvaluationError(
                f"Gate for stage {stage.name} raised {type(exc).__name__}: {exc}"
            ) from exc

    async def _execute(
        self, stage: StageDefinition, event: TriggerEvent
    ) -> StageRun:
        """Await a stage's work and record its outcome."""
        logger.info(
            "Starting stage",
            extra={"stage": stage.name, "commit_sha": event.commit_sha},
        )
        start_time = time.monotonic()

        try:
            output = await stage.work(event)
        except Exception as exc:
            duration = time.monotonic() - start_time
            logger.exception(
                "Stage failed",
                extra={
                    "stage": stage.name,
                    "error_type": type(exc).__name__,
                    "duration": duration,
                },
            )
            return StageRun(
                stage=stage.name,
                outcome=StageOutcome.FAILED,
                error=str(exc) or type(exc).__name__,
                error_type=type(exc).__name__,
                duration_seconds=duration,
            )

        duration = time.monotonic() - start_time
        logger.info(
            "Stage succeeded",
            extra={"stage": stage.name, "duration": duration},
        )
        return StageRun(
            stage=stage.name,
            outcome=StageOutcome.SUCCEEDED,
            duration_seconds=duration,
            output=output,
        )

    def _skip(
        self,
        stage: StageDefinition,
        reason: SkipReason,
        aborted_by: Optional[str] = None,
    ) -> StageRun:
        logger.info(
            "Skipping stage",
            extra={
                "stage": stage.name,
                "skip_reason": reason.value,
                "aborted_by": aborted_by,
            },
        )
        return StageRun(stage=stage.name, outcome=StageOutcome.SKIPPED, skip_reason=reason)

    def _gate_failure(
        self, stage: StageDefinition, exc: GateEvaluationError
    ) -> StageRun:
        logger.error(
            "Stage gate raised",
            extra={"stage": stage.name, "error": str(exc)},
        )
        return StageRun(
            stage=stage.name,
            outcome=StageOutcome.FAILED,
            error=str(exc),
            error_type=type(exc).__name__,
        )
