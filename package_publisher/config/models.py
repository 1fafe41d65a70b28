"""Pydantic v2 configuration models for .publish-config.yaml.

These models provide:
- Type-safe configuration loading
- Automatic validation
- Default values
- Environment variable override support
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

DryRunPolicy = Literal["first", "always", "never"]


class ProjectConfig(BaseModel):
    """Project identification."""

    name: str | None = Field(default=None, description="Project name")
    default_registry: str | None = Field(
        default=None,
        description="Registry used when none is given on the command line",
    )


class NPMRegistryConfig(BaseModel):
    """npm publishing configuration."""

    enabled: bool = Field(default=True, description="Enable npm publishing")
    tag: str = Field(default="latest", description="Default dist-tag")
    access: Literal["public", "restricted"] = Field(
        default="public",
        description="Access level for scoped packages",
    )


class CratesRegistryConfig(BaseModel):
    """crates.io publishing configuration."""

    enabled: bool = Field(default=True, description="Enable crates.io publishing")
    features: list[str] = Field(
        default_factory=list,
        description="Cargo features to enable when publishing",
    )
    allow_dirty: bool = Field(
        default=False,
        description="Pass --allow-dirty to cargo publish",
    )


class PyPIRegistryConfig(BaseModel):
    """PyPI publishing configuration."""

    enabled: bool = Field(default=True, description="Enable PyPI publishing")
    repository: Literal["pypi", "testpypi"] = Field(
        default="pypi",
        description="Target index",
    )


class HomebrewRegistryConfig(BaseModel):
    """Homebrew formula publishing configuration."""

    enabled: bool = Field(default=True, description="Enable Homebrew publishing")
    tap: str | None = Field(default=None, description="Tap repository (owner/homebrew-name)")


class RegistriesConfig(BaseModel):
    """Per-registry settings."""

    npm: NPMRegistryConfig = Field(default_factory=NPMRegistryConfig)
    crates: CratesRegistryConfig = Field(default_factory=CratesRegistryConfig)
    pypi: PyPIRegistryConfig = Field(default_factory=PyPIRegistryConfig)
    homebrew: HomebrewRegistryConfig = Field(default_factory=HomebrewRegistryConfig)


class SecretsScanningConfig(BaseModel):
    """Secrets scanner settings."""

    enabled: bool = Field(default=True, description="Scan the project before publishing")
    ignore_patterns: list[str] = Field(
        default_factory=list,
        description="Extra file globs to skip (e.g. 'tests/fixtures/*')",
    )


class AllowedCommandConfig(BaseModel):
    """Restrictions for one external tool."""

    executable: str | None = Field(
        default=None,
        description="Executable to spawn instead of the bare tool name",
    )
    allowed_args: list[str] = Field(
        default_factory=list,
        description="Allowed subcommands (first argument); empty allows any",
    )
    forbidden_args: list[str] = Field(
        default_factory=list,
        description="Arguments that are always rejected",
    )


class SecurityConfig(BaseModel):
    """Security gate settings."""

    secrets_scanning: SecretsScanningConfig = Field(default_factory=SecretsScanningConfig)
    allowed_commands: dict[str, AllowedCommandConfig] = Field(
        default_factory=dict,
        description="Per-tool command policies, keyed by tool name",
    )


class HookCommand(BaseModel):
    """A user-declared command run at a lifecycle phase."""

    model_config = ConfigDict(frozen=True)

    command: str = Field(description="Command line; supports ${VERSION} and friends")
    allowed_commands: list[str] = Field(
        min_length=1,
        description="Programs (or program prefixes) this hook may run",
    )
    timeout: int = Field(default=300, ge=1, description="Timeout in seconds")
    working_directory: str = Field(
        default="./",
        description="Directory relative to the project root",
    )

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("command cannot be empty")
        return v

    @field_validator("allowed_commands")
    @classmethod
    def validate_allowed_commands(cls, v: list[str]) -> list[str]:
        if any(not entry.strip() for entry in v):
            raise ValueError("allowed_commands entries cannot be empty")
        return v


class HooksConfig(BaseModel):
    """Hook commands per lifecycle phase."""

    pre_build: list[HookCommand] = Field(default_factory=list)
    pre_publish: list[HookCommand] = Field(default_factory=list)
    post_publish: list[HookCommand] = Field(default_factory=list)
    on_error: list[HookCommand] = Field(default_factory=list)


class PublishSettings(BaseModel):
    """Workflow toggles."""

    dry_run: DryRunPolicy = Field(
        default="first",
        description="first: rehearse before publishing; always: only rehearse; never: skip",
    )
    confirm: bool = Field(default=True, description="Ask before publishing")
    verify: bool = Field(default=True, description="Verify the published version")
    interactive: bool = Field(default=True, description="Allow terminal prompts")


class PluginConfig(BaseModel):
    """A third-party registry plugin."""

    name: str = Field(description="'module.path:ClassName' or an entry point name")
    config: dict[str, Any] = Field(default_factory=dict)


class PublishConfig(BaseSettings):
    """Root configuration model for .publish-config.yaml.

    Supports environment variable overrides with PUBLISH_ prefix.
    Example: PUBLISH_PUBLISH__INTERACTIVE=false
    """

    version: str = Field(default="1.0", description="Configuration format version")
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    registries: RegistriesConfig = Field(default_factory=RegistriesConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    hooks: HooksConfig = Field(default_factory=HooksConfig)
    publish: PublishSettings = Field(default_factory=PublishSettings)
    plugins: list[PluginConfig] = Field(default_factory=list)

    model_config = {
        "env_prefix": "PUBLISH_",
        "env_nested_delimiter": "__",
    }
