"""Unit tests for Pydantic configuration models.

Tests cover:
- Default value behavior
- Model validation with invalid inputs
- Hook command validators
- Environment variable override support (PublishConfig)
"""

import pytest
from pydantic import ValidationError

from package_publisher.config.models import (
    AllowedCommandConfig,
    HookCommand,
    NPMRegistryConfig,
    PublishConfig,
    PublishSettings,
    PyPIRegistryConfig,
)


class TestPublishConfigDefaults:
    """Tests for the root model's defaults."""

    def test_defaults(self) -> None:
        """An empty configuration is valid and safe by default."""
        config = PublishConfig()
        assert config.version == "1.0"
        assert config.project.default_registry is None
        assert config.registries.npm.tag == "latest"
        assert config.registries.npm.access == "public"
        assert config.registries.crates.features == []
        assert config.registries.pypi.repository == "pypi"
        assert config.security.secrets_scanning.enabled is True
        assert config.security.allowed_commands == {}
        assert config.hooks.pre_publish == []
        assert config.publish.dry_run == "first"
        assert config.publish.confirm is True
        assert config.plugins == []

    def test_nested_values(self) -> None:
        config = PublishConfig(
            registries={"crates": {"features": ["serde"], "allow_dirty": True}},
            security={"allowed_commands": {"npm": {"forbidden_args": ["--force"]}}},
            plugins=[{"name": "acme_publisher:ArtifactoryPlugin", "config": {"url": "https://repo"}}],
        )
        assert config.registries.crates.features == ["serde"]
        assert config.security.allowed_commands["npm"] == AllowedCommandConfig(forbidden_args=["--force"])
        assert config.plugins[0].config == {"url": "https://repo"}


class TestRegistryConfigs:
    def test_npm_access_restricted_to_known_values(self) -> None:
        assert NPMRegistryConfig(access="restricted").access == "restricted"
        with pytest.raises(ValidationError):
            NPMRegistryConfig(access="secret")  # type: ignore[arg-type]

    def test_pypi_repository(self) -> None:
        assert PyPIRegistryConfig(repository="testpypi").repository == "testpypi"
        with pytest.raises(ValidationError):
            PyPIRegistryConfig(repository="artifactory")  # type: ignore[arg-type]

    def test_dry_run_policy(self) -> None:
        assert PublishSettings(dry_run="never").dry_run == "never"
        with pytest.raises(ValidationError):
            PublishSettings(dry_run="sometimes")  # type: ignore[arg-type]


class TestHookCommand:
    """Tests for HookCommand validators."""

    def test_valid_hook(self) -> None:
        hook = HookCommand(command="npm run build", allowed_commands=["npm"])
        assert hook.timeout == 300
        assert hook.working_directory == "./"

    def test_allowed_commands_required(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            HookCommand(command="npm run build", allowed_commands=[])
        assert "allowed_commands" in str(exc_info.value)

    def test_blank_command_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HookCommand(command="   ", allowed_commands=["npm"])

    def test_blank_allowed_entry_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HookCommand(command="npm test", allowed_commands=["npm", " "])

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            HookCommand(command="npm test", allowed_commands=["npm"], timeout=0)

    def test_frozen(self) -> None:
        hook = HookCommand(command="npm test", allowed_commands=["npm"])
        with pytest.raises(ValidationError):
            hook.command = "rm -rf /"  # type: ignore[misc]


class TestEnvironmentOverrides:
    """Tests for PUBLISH_* environment variables."""

    def test_nested_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PUBLISH_PUBLISH__INTERACTIVE", "false")
        monkeypatch.setenv("PUBLISH_PROJECT__DEFAULT_REGISTRY", "pypi")
        config = PublishConfig()
        assert config.publish.interactive is False
        assert config.project.default_registry == "pypi"

    def test_explicit_values_win_over_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PUBLISH_PROJECT__DEFAULT_REGISTRY", "pypi")
        config = PublishConfig(project={"default_registry": "npm"})
        assert config.project.default_registry == "npm"
