"""Command-line entry point for CI job execution.

Runs the pipeline for the event a CI runner describes through
GITHUB_EVENT_NAME and GITHUB_EVENT_PATH:

    python -m src.release_pipeline.cli run
    python -m src.release_pipeline.cli run --dry-run
    python -m src.release_pipeline.cli evaluate --event-name push --event-path event.json

``evaluate`` prints the gate decision and touches nothing. ``run --dry-run``
logs the toolchain commands instead of executing them and records tags,
releases and pull requests in memory, seeded from the local version file.

Exit codes: 0 on success or ignored event, 1 on failure.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

import structlog
from prometheus_client import REGISTRY, push_to_gateway
from pydantic import ValidationError

from src.release_pipeline.config import PipelineSettings, get_settings, redacted_settings
from src.release_pipeline.errors import PipelineError
from src.release_pipeline.events.emitter import EventSinkType, create_event_emitter
from src.release_pipeline.github.client import GitHubClient
from src.release_pipeline.orchestrator import PipelineRunResult, build_orchestrator
from src.release_pipeline.stages.plan import load_plan
from src.release_pipeline.stages.runner import CommandRunner, DryRunCommandRunner
from src.release_pipeline.storage.github import GitHubRepository
from src.release_pipeline.storage.memory import InMemoryRepository
from src.release_pipeline.trigger.evaluator import TriggerEvaluator
from src.release_pipeline.trigger.handler import EventPayloadParser
from src.release_pipeline.trigger.models import TriggerEvent

logger = structlog.get_logger()

METRICS_JOB_NAME = "release-pipeline"


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging and structlog JSON output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="release-pipeline",
        description="Build, deploy and release the mainline branch",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("RELEASE_LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("run", "Run the pipeline for an event"),
        ("evaluate", "Print the gate decision for an event"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--event-name",
            default=os.environ.get("GITHUB_EVENT_NAME"),
            help="GitHub event name (default: $GITHUB_EVENT_NAME)",
        )
        sub.add_argument(
            "--event-path",
            default=os.environ.get("GITHUB_EVENT_PATH"),
            help="Path to the event payload JSON (default: $GITHUB_EVENT_PATH)",
        )
        if name == "run":
            sub.add_argument(
                "--dry-run",
                action="store_true",
                help="Log commands and keep repository writes in memory",
            )
        else:
            sub.add_argument(
                "--mainline-branch",
                default=os.environ.get("RELEASE_MAINLINE_BRANCH", "main"),
                help="Branch whose events start a run (default: main)",
            )

    return parser


def load_event(
    event_name: Optional[str],
    event_path: Optional[str],
    mainline_branch: str,
) -> Optional[TriggerEvent]:
    """Load the trigger event described by the CI environment.

    Raises:
        ValueError: If the event name or path is missing.
    """
    if not event_name or not event_path:
        raise ValueError("Both --event-name and --event-path are required")
    return EventPayloadParser(mainline_branch).load(event_name, event_path)


def evaluate_command(args: argparse.Namespace) -> int:
    event = load_event(args.event_name, args.event_path, args.mainline_branch)
    if event is None:
        print(json.dumps({"status": "ignored"}))
        return 0

    decision = TriggerEvaluator().evaluate(event)
    print(json.dumps({"status": "evaluated", **decision.model_dump(mode="json")}))
    return 0


async def execute_run(
    settings: PipelineSettings,
    event: TriggerEvent,
    dry_run: bool = False,
) -> PipelineRunResult:
    """Wire the pipeline from settings and run it for one event."""
    plan = load_plan(settings.stage_plan_path)
    emitter = create_event_emitter([EventSinkType.LOGGING, EventSinkType.METRICS])

    if dry_run:
        version_file = settings.workspace / settings.version_file_path
        repository_port = InMemoryRepository(
            version_text=version_file.read_text(encoding="utf-8"),
            mainline_branch=settings.mainline_branch,
            head_sha=event.commit_sha,
        )
        runner: CommandRunner = DryRunCommandRunner(settings.workspace)
        github_client = None
    else:
        github_client = GitHubClient(
            token=settings.github_token,
            base_url=settings.github_base_url,
        )
        repository_port = GitHubRepository(
            github_client,
            settings.repository,
            mainline_branch=settings.mainline_branch,
            version_file_path=settings.version_file_path,
        )
        runner = CommandRunner(
            settings.workspace,
            timeout_seconds=settings.step_timeout_seconds,
            base_env=settings.deployment_env(),
        )

    orchestrator = build_orchestrator(
        repository_port,
        plan,
        runner,
        emitter,
        repository=settings.repository,
        mainline_branch=settings.mainline_branch,
        identity=settings.commit_identity,
    )

    try:
        return await orchestrator.run(event)
    finally:
        await emitter.close()
        if github_client is not None:
            await github_client.close()


def push_metrics(gateway_url: Optional[str]) -> None:
    """Push metrics to Prometheus gateway if configured."""
    if gateway_url:
        try:
            push_to_gateway(gateway_url, job=METRICS_JOB_NAME, registry=REGISTRY)
            logger.debug("Metrics pushed to gateway", gateway_url=gateway_url)
        except Exception as e:
            logger.warning("Failed to push metrics", error=str(e))


def run_command(args: argparse.Namespace) -> int:
    try:
        settings = get_settings()
    except ValidationError as e:
        logger.error("Invalid configuration", error=str(e))
        return 1

    logger.info("Pipeline configuration", **redacted_settings(settings))

    event = load_event(args.event_name, args.event_path, settings.mainline_branch)
    if event is None:
        logger.info("Event ignored", event_name=args.event_name)
        print(json.dumps({"status": "ignored"}))
        return 0

    try:
        result = asyncio.run(execute_run(settings, event, dry_run=args.dry_run))
    except (PipelineError, OSError) as e:
        logger.error("Pipeline setup failed", error=str(e), exc_info=True)
        return 1

    push_metrics(settings.pushgateway_url)
    print(json.dumps(result.to_dict(), indent=2))

    if not result.succeeded:
        logger.error("Pipeline run failed", error=result.error)
        return 1

    logger.info(
        "Pipeline run completed",
        duration_seconds=round(result.duration_seconds, 3),
        dry_run=args.dry_run,
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        if args.command == "evaluate":
            return evaluate_command(args)
        return run_command(args)
    except (ValueError, OSError) as e:
        logger.error("Failed to load event", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
