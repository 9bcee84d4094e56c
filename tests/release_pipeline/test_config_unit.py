"""Unit tests for PipelineSettings."""

import pytest
from pydantic import ValidationError

from src.release_pipeline.config import (
    PipelineSettings,
    redact_secret,
    redacted_settings,
)


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("RELEASE_GITHUB_TOKEN", "ghp_abcdefghijklmnop")
    monkeypatch.setenv("RELEASE_REPOSITORY", "acme/zana")
    return monkeypatch


class TestPipelineSettings:
    def test_defaults(self, env):
        settings = PipelineSettings()

        assert settings.mainline_branch == "main"
        assert settings.version_file_path == "VERSION"
        assert settings.deploy_environment == "prod"
        assert settings.stage_plan_path is None
        assert settings.commit_identity.name == "github-actions[bot]"

    def test_required_fields(self, monkeypatch):
        monkeypatch.delenv("RELEASE_GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("RELEASE_REPOSITORY", raising=False)

        with pytest.raises(ValidationError):
            PipelineSettings()

    @pytest.mark.parametrize(
        "name, value",
        [
            ("RELEASE_GITHUB_TOKEN", "   "),
            ("RELEASE_REPOSITORY", "zana"),
            ("RELEASE_REPOSITORY", "acme/zana/extra"),
            ("RELEASE_GITHUB_BASE_URL", "api.github.com"),
            ("RELEASE_PUSHGATEWAY_URL", "pushgateway:9091"),
            ("RELEASE_STEP_TIMEOUT_SECONDS", "0"),
            ("RELEASE_PORT", "70000"),
            ("RELEASE_MAINLINE_BRANCH", " "),
            ("RELEASE_WORKSPACES_PATH", ""),
        ],
    )
    def test_invalid_values(self, env, name, value):
        env.setenv(name, value)

        with pytest.raises(ValidationError):
            PipelineSettings()

    def test_remote_url_defaults_to_github(self, env):
        settings = PipelineSettings()

        assert settings.remote_url == "https://github.com/acme/zana.git"
        assert settings.workspaces_path == ".release-workspaces"

    def test_remote_url_override(self, env):
        env.setenv("RELEASE_GIT_REMOTE_URL", "https://git.internal/acme/zana.git")

        assert PipelineSettings().remote_url == "https://git.internal/acme/zana.git"

    def test_deployment_env(self, env):
        env.setenv("RELEASE_AWS_REGION", "eu-central-1")
        env.setenv("RELEASE_AWS_ACCOUNT_ID", "123456789012")
        env.setenv("RELEASE_AWS_ROLE_TO_ASSUME", "arn:aws:iam::123456789012:role/deploy")

        assert PipelineSettings().deployment_env() == {
            "CDK_DEFAULT_REGION": "eu-central-1",
            "AWS_REGION": "eu-central-1",
            "CDK_DEFAULT_ACCOUNT": "123456789012",
            "AWS_ROLE_TO_ASSUME": "arn:aws:iam::123456789012:role/deploy",
            "ZANA_ENV": "prod",
        }

    def test_deployment_env_omits_unset_values(self, env):
        assert PipelineSettings().deployment_env() == {"ZANA_ENV": "prod"}


class TestRedaction:
    def test_redact_secret(self):
        assert redact_secret("ghp_abcdef") == "ghp_******"
        assert redact_secret("abc") == "***"

    def test_redacted_settings_hide_token(self, env):
        data = redacted_settings(PipelineSettings())

        assert data["github_token"] == "ghp_" + "*" * 16
        assert data["repository"] == "acme/zana"
