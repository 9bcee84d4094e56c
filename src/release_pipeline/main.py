"""FastAPI application entry point for the release pipeline.

Receives GitHub push and pull_request webhooks and runs the pipeline for
events on the mainline branch. The webhook is acknowledged immediately and
the run is queued.

Runs execute one at a time in arrival order, each in a fresh checkout of
its event commit that is removed when the run ends.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST

from .config import PipelineSettings, get_settings, redacted_settings
from .errors import WorkspaceProvisionError
from .events.emitter import EventEmitter, EventSinkType, create_event_emitter
from .events.metrics import generate_metrics_output
from .events.models import EventType, PipelineEvent
from .github.client import GitHubClient
from .orchestrator import PipelineOrchestrator, build_orchestrator
from .scheduling import SerialRunQueue
from .stages.plan import StagePlan, load_plan
from .stages.runner import CommandRunner
from .stages.workspace import WorkspaceProvisioner
from .storage.github import GitHubRepository
from .trigger.handler import EventPayloadParser
from .trigger.models import TriggerEvent

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instances, initialized during lifespan startup
settings: Optional[PipelineSettings] = None
payload_parser: Optional[EventPayloadParser] = None
github_client: Optional[GitHubClient] = None
event_emitter: Optional[EventEmitter] = None
stage_plan: Optional[StagePlan] = None
provisioner: Optional[WorkspaceProvisioner] = None
run_queue: Optional[SerialRunQueue] = None


def _log_configuration(cfg: PipelineSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Pipeline configuration:")
    for key, value in redacted_settings(cfg).items():
        logger.info("  %s: %s", key, value)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown.

    Handles:
    - Configuration loading and validation
    - Logging configuration (with secrets redacted)
    - Stage plan loading, so an invalid plan fails startup
    - Waiting for queued runs and cleanup on shutdown
    """
    global settings, payload_parser, github_client, event_emitter
    global stage_plan, provisioner, run_queue

    logger.info("Release pipeline starting up...")

    settings = get_settings()
    _log_configuration(settings)

    payload_parser = EventPayloadParser(mainline_branch=settings.mainline_branch)
    github_client = GitHubClient(
        token=settings.github_token,
        base_url=settings.github_base_url,
    )
    event_emitter = create_event_emitter(
        [EventSinkType.LOGGING, EventSinkType.METRICS]
    )
    stage_plan = load_plan(settings.stage_plan_path)
    provisioner = WorkspaceProvisioner(
        settings.workspaces_path,
        settings.remote_url,
        token=settings.github_token,
    )
    run_queue = SerialRunQueue(_run_pipeline)

    logger.info("Release pipeline started successfully")

    yield

    logger.info("Release pipeline shutting down...")

    if run_queue.pending:
        logger.info("Waiting for %d queued pipeline run(s)", run_queue.pending)
    await run_queue.drain()

    await event_emitter.close()
    await github_client.close()

    logger.info("Release pipeline shutdown complete")


def _build_orchestrator(
    cfg: PipelineSettings,
    gh_client: GitHubClient,
    emitter: EventEmitter,
    plan: StagePlan,
    workspace: Path,
) -> PipelineOrchestrator:
    """Wire the pipeline for one run, with toolchain steps in ``workspace``."""
    repository_port = GitHubRepository(
        gh_client,
        cfg.repository,
        mainline_branch=cfg.mainline_branch,
        version_file_path=cfg.version_file_path,
    )
    runner = CommandRunner(
        workspace,
        timeout_seconds=cfg.step_timeout_seconds,
        base_env=cfg.deployment_env(),
    )
    return build_orchestrator(
        repository_port,
        plan,
        runner,
        emitter,
        repository=cfg.repository,
        mainline_branch=cfg.mainline_branch,
        identity=cfg.commit_identity,
    )


async def _run_pipeline(event: TriggerEvent) -> None:
    """Run one event in a checkout of its commit."""
    try:
        workspace = await provisioner.provision(event.commit_sha)
    except WorkspaceProvisionError as exc:
        logger.error(
            "Pipeline run not started",
            extra={"commit_sha": event.commit_sha, "error": str(exc)},
        )
        await event_emitter.emit(
            PipelineEvent(
                event_type=EventType.ERROR,
                commit_sha=event.commit_sha,
                repository=settings.repository,
                details={
                    "stage": "workspace",
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
        )
        return

    try:
        orchestrator = _build_orchestrator(
            settings, github_client, event_emitter, stage_plan, workspace.path
        )
        result = await orchestrator.run(event)
    finally:
        provisioner.remove(workspace)

    logger.info(
        "Pipeline run finished",
        extra={"commit_sha": event.commit_sha, "succeeded": result.succeeded},
    )


app = FastAPI(
    title="Release Pipeline",
    description="Build, deploy and release orchestration for the mainline branch",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    """Liveness check endpoint."""
    return {"status": "healthy"}


@app.get("/ready")
async def ready():
    """Readiness check endpoint.

    Checks that the pipeline is wired and the GitHub API is reachable.

    Raises:
        HTTPException: 503 if critical dependencies are unavailable.
    """
    github_status = "unknown"
    if github_client is not None:
        github_healthy = await github_client.health_check()
        github_status = "healthy" if github_healthy else "unhealthy"

    is_ready = run_queue is not None and github_status == "healthy"
    body = {
        "status": "ready" if is_ready else "not_ready",
        "dependencies": {"github": github_status},
        "queued_pipelines": run_queue.pending if run_queue is not None else 0,
    }
    if not is_ready:
        raise HTTPException(status_code=503, detail=body)
    return body


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    """Prometheus metrics endpoint."""
    return PlainTextResponse(
        generate_metrics_output().decode("utf-8"),
        media_type=CONTENT_TYPE_LATEST,
    )


@app.post("/webhooks/github")
async def github_webhook(
    request: Request,
    x_github_event: Optional[str] = Header(default=None),
):
    """GitHub webhook receiver endpoint.

    Signature validation is performed in front of this service, so
    incoming requests are trusted.

    Returns:
        dict: Acknowledgment of webhook receipt.
    """
    if payload_parser is None or run_queue is None:
        logger.error("Pipeline not initialized")
        raise HTTPException(status_code=503, detail="Pipeline not initialized")

    if not x_github_event:
        return {"status": "ignored", "message": "Missing X-GitHub-Event header"}

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    event = payload_parser.parse(x_github_event, payload)
    if event is None:
        return {"status": "ignored", "message": "Unsupported or filtered event"}

    run_queue.submit(event)

    return {
        "status": "accepted",
        "event_type": event.event_type.value,
        "commit_sha": event.commit_sha,
    }


if __name__ == "__main__":
    import uvicorn

    # For local development, load settings to get host/port
    dev_settings = get_settings()
    uvicorn.run(
        "src.release_pipeline.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
    )
