"""The pipeline's stage definitions.

    build   always runs
    deploy  depends on build, gated by deploy_gate
    release depends on deploy, gated by release_gate

build and deploy delegate to the toolchain commands of the stage plan.
release runs the release workflow.
"""

from typing import Any, List

from src.release_pipeline.stages.models import StageDefinition, StageWork, always
from src.release_pipeline.stages.plan import StagePlan
from src.release_pipeline.stages.runner import CommandRunner
from src.release_pipeline.trigger.evaluator import deploy_gate, release_gate
from src.release_pipeline.trigger.models import TriggerEvent


BUILD = "build"
DEPLOY = "deploy"
RELEASE = "release"


def command_stage_work(stage: str, plan: StagePlan, runner: CommandRunner) -> StageWork:
    """Stage work that runs the plan's steps for ``stage``."""

    async def work(event: TriggerEvent) -> Any:
        results = await runner.run_stage(stage, plan.steps_for(stage))
        return {"steps": len(results)}

    return work


def build_default_stages(
    plan: StagePlan,
    runner: CommandRunner,
    release_work: StageWork,
) -> List[StageDefinition]:
    return [
        StageDefinition(
            name=BUILD,
            work=command_stage_work(BUILD, plan, runner),
            gate=always,
        ),
        StageDefinition(
            name=DEPLOY,
            work=command_stage_work(DEPLOY, plan, runner),
            depends_on=frozenset({BUILD}),
            gate=deploy_gate,
        ),
        StageDefinition(
            name=RELEASE,
            work=release_work,
            depends_on=frozenset({DEPLOY}),
            gate=release_gate,
        ),
    ]
