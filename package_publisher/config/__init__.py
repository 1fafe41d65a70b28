"""Configuration management for the package publisher."""

from package_publisher.config.loader import load_config
from package_publisher.config.models import (
    AllowedCommandConfig,
    HookCommand,
    HooksConfig,
    PluginConfig,
    ProjectConfig,
    PublishConfig,
    PublishSettings,
    RegistriesConfig,
    SecretsScanningConfig,
    SecurityConfig,
)

__all__ = [
    "load_config",
    "PublishConfig",
    "ProjectConfig",
    "RegistriesConfig",
    "SecurityConfig",
    "SecretsScanningConfig",
    "AllowedCommandConfig",
    "HookCommand",
    "HooksConfig",
    "PublishSettings",
    "PluginConfig",
]
