"""Stage plans: the toolchain commands each stage delegates to.

The pipeline does not compile, test or deploy anything itself. Each stage's
work is a list of shell steps run by the command runner. A plan is either
the built-in default, which mirrors the service's original CI workflow, or
a YAML file of the form:

    stages:
      build:
        - name: Build zana service
          run: cargo build --verbose
          working_directory: services/zana
      deploy:
        - name: Deploy to AWS
          run: cdk deploy --require-approval never
          working_directory: deployment/zana_aws
          env:
            CDK_NEW_BOOTSTRAP: "1"

Stages missing from the file have no steps and succeed trivially when they
run.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from src.release_pipeline.errors import StagePlanError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageStep:
    """One shell command of a stage.

    Attributes:
        name: Human-readable step name used in logs and errors.
        run: Shell command line.
        working_directory: Directory relative to the workspace root.
        env: Extra environment variables for this step.
    """

    name: str
    run: str
    working_directory: str = "."
    env: Dict[str, str] = field(default_factory=dict)


@dataclass
class StagePlan:
    """Steps to run for each stage name."""

    stages: Dict[str, List[StageStep]] = field(default_factory=dict)

    def steps_for(self, stage: str) -> List[StageStep]:
        return list(self.stages.get(stage, []))


DEFAULT_PLAN: Dict[str, List[Dict[str, Any]]] = {
    "build": [
        {
            "name": "Build zana service",
            "run": "cargo build --verbose",
            "working_directory": "services/zana",
        },
        {
            "name": "Run tests in zana service",
            "run": "cargo test --verbose",
            "working_directory": "services/zana",
        },
        {
            "name": "Build zana_lambda service",
            "run": "cargo lambda build --release --output-format zip --verbose",
            "working_directory": "services/zana_lambda",
        },
        {
            "name": "Run tests in zana_lambda service",
            "run": "cargo test --verbose",
            "working_directory": "services/zana_lambda",
        },
        {
            "name": "Run tests in zana_aws service",
            "run": "mvn clean compile && mvn clean test",
            "working_directory": "deployment/zana_aws",
        },
        {
            "name": "Lint zana extension",
            "run": "web-ext lint",
            "working_directory": "extension/addon",
        },
        {
            "name": "Run tests in zana extension",
            "run": "npm install && npm test",
            "working_directory": "extension",
        },
        {
            "name": "Run tests in release tool",
            "run": "npm install && npm test",
            "working_directory": "tools/release",
        },
    ],
    "deploy": [
        {
            "name": "Build zana_lambda service",
            "run": "cargo lambda build --release --output-format zip --verbose",
            "working_directory": "services/zana_lambda",
        },
        {
            "name": "Deploy to AWS",
            "run": "cdk deploy --require-approval never",
            "working_directory": "deployment/zana_aws",
        },
    ],
}


def parse_plan(data: Any) -> StagePlan:
    """Validate a plan mapping and build a StagePlan.

    Args:
        data: Mapping with a top-level ``stages`` key, as loaded from YAML.

    Returns:
        StagePlan: The validated plan.

    Raises:
        StagePlanError: If the structure or any step is invalid.
    """
    if not isinstance(data, dict):
        raise StagePlanError("Stage plan must be a mapping")

    stages_data = data.get("stages")
    if not isinstance(stages_data, dict):
        raise StagePlanError("Stage plan must define a 'stages' mapping")

    stages: Dict[str, List[StageStep]] = {}
    for stage_name, steps_data in stages_data.items():
        if steps_data is None:
            steps_data = []
        if not isinstance(steps_data, list):
            raise StagePlanError(f"Steps of stage '{stage_name}' must be a list")
        stages[str(stage_name)] = [
            _parse_step(str(stage_name), index, step_data)
            for index, step_data in enumerate(steps_data)
        ]

    return StagePlan(stages=stages)


def _parse_step(stage: str, index: int, data: Any) -> StageStep:
    """Validate a single step entry."""
    where = f"step {index + 1} of stage '{stage}'"
    if not isinstance(data, dict):
        raise StagePlanError(f"{where} must be a mapping")

    run = data.get("run")
    if not isinstance(run, str) or not run.strip():
        raise StagePlanError(f"{where} must have a non-empty 'run' command")

    name = data.get("name") or run.strip().split("\n", 1)[0]

    working_directory = data.get("working_directory", ".")
    if not isinstance(working_directory, str) or not working_directory.strip():
        raise StagePlanError(f"{where} has an invalid 'working_directory'")
    if Path(working_directory).is_absolute():
        raise StagePlanError(f"{where} 'working_directory' must be relative")

    env = data.get("env") or {}
    if not isinstance(env, dict):
        raise StagePlanError(f"{where} 'env' must be a mapping")

    return StageStep(
        name=str(name),
        run=run.strip(),
        working_directory=working_directory.strip(),
        env={str(key): str(value) for key, value in env.items()},
    )


def default_plan() -> StagePlan:
    return parse_plan({"stages": DEFAULT_PLAN})


def load_plan(plan_path: Optional[Union[str, Path]] = None) -> StagePlan:
    """Load a stage plan from YAML, or the default plan when no path is set.

    Raises:
        StagePlanError: If the file is missing, unparseable or invalid.
    """
    if plan_path is None:
        return default_plan()

    try:
        with open(plan_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise StagePlanError(f"Stage plan file not found: {plan_path}")
    except yaml.YAMLError as e:
        raise StagePlanError(f"Failed to parse stage plan YAML: {e}")

    if not data:
        raise StagePlanError(f"Stage plan file is empty: {plan_path}")

    plan = parse_plan(data)
    logger.info(
        "Loaded stage plan",
        extra={
            "plan_path": str(plan_path),
            "step_counts": {name: len(steps) for name, steps in plan.stages.items()},
        },
    )
    return plan
