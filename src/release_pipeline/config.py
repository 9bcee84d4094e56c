"""Pipeline configuration using pydantic-settings.

This module defines the PipelineSettings class that reads configuration
from environment variables with the RELEASE_ prefix. The GitHub token and
the repository must be set for the pipeline to start.

Deployment values (region, account, environment, role) are opaque to the
pipeline. They are handed to every toolchain step as environment variables
and interpreted only by the deployment tooling.
"""

from pathlib import Path
from typing import Dict, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.release_pipeline.release.models import CommitIdentity


class PipelineSettings(BaseSettings):
    """Release pipeline configuration from environment variables.

    All environment variables are prefixed with RELEASE_ (e.g.,
    RELEASE_GITHUB_TOKEN).

    Required fields (must be set via environment variables):
    - github_token: GitHub API token for tags, releases, branches and PRs
    - repository: Repository in "owner/repo" format
    """

    model_config = SettingsConfigDict(
        env_prefix="RELEASE_",
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    github_token: str

    # Base URL for GitHub API (supports GitHub Enterprise)
    github_base_url: str = "https://api.github.com"

    # Repository the pipeline releases, "owner/repo"
    repository: str

    # Only events on this branch start a run; version PRs target it
    mainline_branch: str = "main"

    # Path of the version file within the repository
    version_file_path: str = "VERSION"

    # -------------------------------------------------------------------------
    # Identity for automated tags and commits
    # -------------------------------------------------------------------------
    commit_author_name: str = "github-actions[bot]"
    commit_author_email: str = "41898282+github-actions[bot]@users.noreply.github.com"

    # -------------------------------------------------------------------------
    # Stage Execution
    # -------------------------------------------------------------------------
    # Checkout the CLI runs toolchain steps in; the CI runner has already
    # checked out the event commit there
    workspace_path: str = "."

    # YAML stage plan; the built-in plan is used when unset
    stage_plan_path: Optional[str] = None

    # Timeout in seconds for a single toolchain step
    step_timeout_seconds: int = 3600

    # Directory the webhook server creates per-run checkouts under
    workspaces_path: str = ".release-workspaces"

    # Git URL the server checks commits out from; GitHub.com URL of
    # repository when unset
    git_remote_url: Optional[str] = None

    # -------------------------------------------------------------------------
    # Deployment Configuration (passed through to toolchain steps)
    # -------------------------------------------------------------------------
    aws_region: str = ""
    aws_account_id: str = ""
    aws_role_to_assume: str = ""
    aws_role_session_name: str = ""
    deploy_environment: str = "prod"

    # Name of the variable carrying deploy_environment
    deploy_environment_variable: str = "ZANA_ENV"

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------
    # Prometheus Pushgateway the CLI pushes run metrics to, if set
    pushgateway_url: Optional[str] = None

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_token")
    @classmethod
    def validate_github_token(cls, v: str) -> str:
        """Validate that GitHub token is not empty."""
        if not v or not v.strip():
            raise ValueError("github_token cannot be empty")
        return v

    @field_validator("github_base_url", "pushgateway_url")
    @classmethod
    def validate_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that URLs use http:// or https://."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, v: str) -> str:
        """Validate the "owner/repo" format."""
        owner, sep, repo = v.partition("/")
        if not sep or not owner.strip() or not repo.strip() or "/" in repo:
            raise ValueError("repository must be in 'owner/repo' format")
        return v

    @field_validator(
        "mainline_branch",
        "version_file_path",
        "deploy_environment_variable",
        "workspaces_path",
    )
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        return v.strip()

    @field_validator("step_timeout_seconds")
    @classmethod
    def validate_step_timeout(cls, v: int) -> int:
        """Validate that step timeout is positive."""
        if v < 1:
            raise ValueError("step_timeout_seconds must be at least 1")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @property
    def workspace(self) -> Path:
        return Path(self.workspace_path).resolve()

    @property
    def remote_url(self) -> str:
        return self.git_remote_url or f"https://github.com/{self.repository}.git"

    @property
    def commit_identity(self) -> CommitIdentity:
        return CommitIdentity(
            name=self.commit_author_name,
            email=self.commit_author_email,
        )

    def deployment_env(self) -> Dict[str, str]:
        """Environment variables injected into every toolchain step.

        Unset values are left out so they do not mask variables the runner
        already provides.

        Example:
            >>> settings.deployment_env()
            {'CDK_DEFAULT_REGION': 'eu-central-1', 'AWS_REGION': 'eu-central-1',
             'CDK_DEFAULT_ACCOUNT': '123456789012', 'ZANA_ENV': 'prod'}
        """
        env: Dict[str, str] = {}
        if self.aws_region:
            env["CDK_DEFAULT_REGION"] = self.aws_region
            env["AWS_REGION"] = self.aws_region
        if self.aws_account_id:
            env["CDK_DEFAULT_ACCOUNT"] = self.aws_account_id
        if self.aws_role_to_assume:
            env["AWS_ROLE_TO_ASSUME"] = self.aws_role_to_assume
        if self.aws_role_session_name:
            env["AWS_ROLE_SESSION_NAME"] = self.aws_role_session_name
        if self.deploy_environment:
            env[self.deploy_environment_variable] = self.deploy_environment
        return env


def redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact.
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def redacted_settings(settings: PipelineSettings) -> Dict[str, object]:
    """Settings as a dict safe to log."""
    data = settings.model_dump()
    data["github_token"] = redact_secret(settings.github_token)
    if settings.aws_account_id:
        data["aws_account_id"] = redact_secret(settings.aws_account_id)
    if settings.aws_role_to_assume:
        data["aws_role_to_assume"] = redact_secret(settings.aws_role_to_assume, 12)
    return data


def get_settings() -> PipelineSettings:
    """Create and return PipelineSettings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return PipelineSettings()
